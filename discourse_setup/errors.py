"""Exceptions raised by the installer stages.

Every stage raises a subclass of :class:`SetupError`; only the command line
entry point catches them, prints the message and exits with status 1.
"""

from typing import List, Optional, Sequence


class SetupError(Exception):
    """Base class for all fatal installer failures."""


class EnvironmentCheckError(SetupError):
    """The host does not meet a prerequisite (privilege, runtime, memory, disk, ports)."""


class ConfigStateError(SetupError):
    """The working configuration is in a state the installer refuses to touch."""


class ConfigWriteError(SetupError):
    """One or more configuration keys could not be updated."""

    def __init__(self, keys: Sequence[str], message: Optional[str] = None) -> None:
        self.keys: List[str] = list(keys)
        if message is None:
            message = "Failed to update: " + ", ".join(self.keys)
        super().__init__(message)


class ConfigValidationError(SetupError):
    """The finished configuration is missing values or still holds defaults."""

    def __init__(self, problems: Sequence[str]) -> None:
        self.problems: List[str] = list(problems)
        super().__init__("Configuration errors:\n" + "\n".join(self.problems))


class LaunchError(SetupError):
    """The launcher returned a non-zero exit status."""


class CommandError(Exception):
    """An OS command could not be run or exited with an error."""

    def __init__(self, cmd: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(
            f"Command '{' '.join(self.cmd)}' failed with exit code {returncode}{detail}"
        )
