"""
Line-preserving model of the container configuration file.

The working configuration (``containers/app.yml``) is YAML, but the installer
only ever touches simple ``KEY: value`` lines and ``- item`` list entries,
many of which ship commented out in the template (``#DISCOURSE_SMTP_PORT: 587``).
Rather than editing with pattern substitution, the file is parsed into an
ordered list of lines where each recognised line knows its key or item value
and whether it is enabled or disabled. Lines that are never touched are
written back byte for byte.
"""

import os
import re
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Union

KEY_RE = re.compile(
    r"^(?P<indent>[ \t]*)(?P<marker>#?)(?P<key>[A-Za-z_][A-Za-z0-9_]*):(?P<rest>(?:[ \t].*)?)$"
)
ITEM_RE = re.compile(r"^(?P<indent>[ \t]*)(?P<marker>#?)-[ \t]+(?P<rest>\S.*)$")
PLAIN_RE = re.compile(r"[A-Za-z0-9_][A-Za-z0-9_.@+,/-]*")

YAML_KEYWORDS = {"true", "false", "yes", "no", "on", "off", "y", "n", "null", "~"}
DISABLED_MARKER = "#"

ScalarValue = Union[str, int]


class EntryState(Enum):
    """Whether an optional line is active or commented out."""

    ENABLED = "enabled"
    DISABLED = "disabled"


class LineKind(Enum):
    KEY = "key"
    ITEM = "item"
    TEXT = "text"


@dataclass
class ConfigLine:
    """One physical line of the file, line ending kept separately."""

    text: str
    ending: str = ""
    kind: LineKind = LineKind.TEXT
    indent: str = ""
    key: Optional[str] = None
    raw_value: str = ""
    state: EntryState = EntryState.ENABLED

    @classmethod
    def parse(cls, line: str) -> "ConfigLine":
        body = line.rstrip("\r\n")
        ending = line[len(body):]

        match = KEY_RE.match(body)
        if match:
            return cls(
                text=body,
                ending=ending,
                kind=LineKind.KEY,
                indent=match.group("indent"),
                key=match.group("key"),
                raw_value=match.group("rest").strip(),
                state=_state(match.group("marker")),
            )

        match = ITEM_RE.match(body)
        if match:
            return cls(
                text=body,
                ending=ending,
                kind=LineKind.ITEM,
                indent=match.group("indent"),
                raw_value=match.group("rest").strip(),
                state=_state(match.group("marker")),
            )

        return cls(text=body, ending=ending)

    @property
    def value(self) -> str:
        return parse_value(self.raw_value)

    @property
    def enabled(self) -> bool:
        return self.state is EntryState.ENABLED

    def render(self) -> str:
        return self.text + self.ending


@dataclass
class Change:
    """A single applied rewrite, ``old == new`` when the line already matched."""

    key: str
    line_number: int
    old: str
    new: str

    @property
    def modified(self) -> bool:
        return self.old != self.new


def _state(marker: str) -> EntryState:
    return EntryState.DISABLED if marker == DISABLED_MARKER else EntryState.ENABLED


# ----------------------------------------------------------------
# Scalar rendering
# ----------------------------------------------------------------
def _looks_numeric(text: str) -> bool:
    if text.lower().startswith(("0x", "0o")):
        return True
    try:
        float(text.replace("_", ""))
    except ValueError:
        return False
    return True


def render_value(value: ScalarValue, quote: bool = False) -> str:
    """
    Render a scalar for the right-hand side of a ``KEY: value`` line.

    Integers are written bare. Strings are written bare only when they consist
    of a conservative set of characters and would not be read back as a
    number, boolean or null; everything else is double-quoted with
    backslashes, quotes and control characters escaped.
    """
    if isinstance(value, bool):
        raise TypeError("boolean values are not supported")
    if isinstance(value, int):
        return str(value)

    text = str(value)
    if (
        not quote
        and PLAIN_RE.fullmatch(text)
        and text.lower() not in YAML_KEYWORDS
        and not _looks_numeric(text)
    ):
        return text

    escaped = []
    for char in text:
        if char == "\\":
            escaped.append("\\\\")
        elif char == '"':
            escaped.append('\\"')
        elif char == "\n":
            escaped.append("\\n")
        elif char == "\t":
            escaped.append("\\t")
        elif char == "\r":
            escaped.append("\\r")
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            escaped.append(f"\\x{ord(char):02x}")
        else:
            escaped.append(char)
    return '"' + "".join(escaped) + '"'


def _parse_double_quoted(raw: str) -> str:
    simple = {"\\": "\\", '"': '"', "n": "\n", "t": "\t", "r": "\r", "0": "\0", "/": "/"}
    out = []
    i = 1
    while i < len(raw):
        char = raw[i]
        if char == '"':
            break
        if char == "\\" and i + 1 < len(raw):
            nxt = raw[i + 1]
            if nxt in simple:
                out.append(simple[nxt])
                i += 2
                continue
            if nxt == "x" and i + 3 < len(raw):
                try:
                    out.append(chr(int(raw[i + 2 : i + 4], 16)))
                    i += 4
                    continue
                except ValueError:
                    pass
        out.append(char)
        i += 1
    return "".join(out)


def _parse_single_quoted(raw: str) -> str:
    out = []
    i = 1
    while i < len(raw):
        char = raw[i]
        if char == "'":
            if raw[i + 1 : i + 2] == "'":
                out.append("'")
                i += 2
                continue
            break
        out.append(char)
        i += 1
    return "".join(out)


def parse_value(raw: str) -> str:
    """Read back a scalar written by :func:`render_value` or by hand."""
    raw = raw.strip()
    if not raw:
        return ""
    if raw.startswith('"'):
        return _parse_double_quoted(raw)
    if raw.startswith("'"):
        return _parse_single_quoted(raw)
    if raw.startswith("#"):
        return ""
    comment = re.search(r"[ \t]#", raw)
    if comment:
        raw = raw[: comment.start()]
    return raw.strip()


# ----------------------------------------------------------------
# Document
# ----------------------------------------------------------------
class ConfigDocument:
    """Ordered lines of a configuration file with get/set by key."""

    def __init__(self, lines: Optional[List[ConfigLine]] = None) -> None:
        self.lines: List[ConfigLine] = lines or []

    @classmethod
    def parse(cls, text: str) -> "ConfigDocument":
        return cls([ConfigLine.parse(line) for line in text.splitlines(keepends=True)])

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ConfigDocument":
        # newline="" keeps CRLF endings intact for untouched lines
        with open(path, "r", encoding="utf-8", newline="") as f:
            return cls.parse(f.read())

    def render(self) -> str:
        return "".join(line.render() for line in self.lines)

    def save(self, path: Union[str, Path]) -> None:
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(self.render())

    def __iter__(self) -> Iterator[ConfigLine]:
        return iter(self.lines)

    # -- keys ----------------------------------------------------
    def _key_indexes(self, key: str) -> List[int]:
        return [
            i
            for i, line in enumerate(self.lines)
            if line.kind is LineKind.KEY and line.key == key
        ]

    def _entry_index(self, key: str) -> Optional[int]:
        indexes = self._key_indexes(key)
        for i in indexes:
            if self.lines[i].enabled:
                return i
        return indexes[0] if indexes else None

    def entry(self, key: str) -> Optional[ConfigLine]:
        """The line for ``key``, preferring an enabled one over a commented one."""
        index = self._entry_index(key)
        return None if index is None else self.lines[index]

    def get(self, key: str) -> Optional[str]:
        """Value of the enabled ``key`` line, or None when absent or commented out."""
        line = self.entry(key)
        if line is None or not line.enabled:
            return None
        return line.value

    def set(self, key: str, value: ScalarValue, quote: bool = False) -> Optional[Change]:
        """
        Rewrite the line for ``key`` as ``KEY: value``, enabling it if needed.

        Returns None when the document has no line for ``key``; callers treat
        that as a failed update.
        """
        index = self._entry_index(key)
        if index is None:
            return None

        old = self.lines[index]
        new_text = f"{old.indent}{key}: {render_value(value, quote)}"
        self.lines[index] = ConfigLine.parse(new_text + old.ending)
        return Change(key=key, line_number=index + 1, old=old.text, new=new_text)

    # -- list items ------------------------------------------------
    def item(self, value: str) -> Optional[ConfigLine]:
        for line in self.lines:
            if line.kind is LineKind.ITEM and line.value == value:
                return line
        return None

    def enable_item(self, value: str) -> Optional[Change]:
        """Uncomment the ``- value`` list entry; None when there is no such entry."""
        for index, line in enumerate(self.lines):
            if line.kind is not LineKind.ITEM or line.value != value:
                continue
            if line.enabled:
                return Change(key=value, line_number=index + 1, old=line.text, new=line.text)
            prefix = len(line.indent)
            new_text = line.indent + line.text[prefix + len(DISABLED_MARKER):]
            self.lines[index] = ConfigLine.parse(new_text + line.ending)
            return Change(key=value, line_number=index + 1, old=line.text, new=new_text)
        return None


# ----------------------------------------------------------------
# Change tracking
# ----------------------------------------------------------------
@dataclass
class ChangeLog:
    """
    Per-invocation record of applied changes.

    Only the line number and key of each change are written to the tracking
    file so that secrets never land in the temp directory.
    """

    directory: Optional[Path] = None
    changes: List[Change] = field(default_factory=list)

    def __post_init__(self) -> None:
        base = Path(self.directory) if self.directory else Path(tempfile.gettempdir())
        fd, name = tempfile.mkstemp(prefix="discourse-setup-changes.", dir=str(base))
        os.close(fd)
        self.path: Path = Path(name)

    def record(self, change: Change) -> None:
        self.changes.append(change)
        fd = os.open(str(self.path), os.O_WRONLY | os.O_CREAT | os.O_APPEND | os.O_NOFOLLOW, 0o600)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            f.write(f"{change.line_number}\t{change.key}\n")

    def keys(self) -> List[str]:
        return [change.key for change in self.changes]

    def cleanup(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
