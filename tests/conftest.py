"""Shared fixtures: a fake host, a scratch discourse_docker checkout and scripted prompts."""

import stat
from pathlib import Path
from typing import Iterable, List, Optional, Set

import pytest

from discourse_setup.config_file import ChangeLog, ConfigDocument
from discourse_setup.host import Host, ResourceSnapshot
from discourse_setup.settings import InstallerSettings

FIXTURES = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def template_text() -> str:
    return (FIXTURES / "standalone.yml").read_text()


@pytest.fixture
def document(template_text) -> ConfigDocument:
    return ConfigDocument.parse(template_text)


@pytest.fixture
def changelog(tmp_path) -> ChangeLog:
    log = ChangeLog(directory=tmp_path)
    yield log
    log.cleanup()


class FakeHost(Host):
    """Host with fixed measurements and a recorded swap-file call."""

    name = "fake"

    def __init__(
        self,
        memory_gb: int = 4,
        cpu_cores: int = 2,
        swap_gb: int = 0,
        free_disk_kb: int = 20_000_000,
        ports: Optional[Set[int]] = None,
        swap_after_create: Optional[int] = None,
    ) -> None:
        self._memory_gb = memory_gb
        self._cpu_cores = cpu_cores
        self._swap_gb = swap_gb
        self._free_disk_kb = free_disk_kb
        self._ports = ports or set()
        self._swap_after_create = swap_after_create
        self.swapfile_calls: List[tuple] = []

    def memory_gb(self) -> int:
        return self._memory_gb

    def cpu_cores(self) -> int:
        return self._cpu_cores

    def swap_gb(self) -> int:
        return self._swap_gb

    def free_disk_kb(self, path) -> int:
        return self._free_disk_kb

    def listening_ports(self) -> Set[int]:
        return set(self._ports)

    def create_swapfile(self, path, size_gb, fstab_path, sysctl_conf_path, swappiness) -> None:
        self.swapfile_calls.append((path, size_gb, fstab_path, sysctl_conf_path, swappiness))
        if self._swap_after_create is not None:
            self._swap_gb = self._swap_after_create


@pytest.fixture
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def snapshot() -> ResourceSnapshot:
    return ResourceSnapshot(memory_gb=4, cpu_cores=2, swap_gb=0, free_disk_kb=20_000_000)


@pytest.fixture
def checkout(tmp_path, template_text) -> Path:
    """A minimal discourse_docker checkout with the sample template and a launcher."""
    base = tmp_path / "discourse"
    (base / "samples").mkdir(parents=True)
    (base / "samples" / "standalone.yml").write_text(template_text)
    launcher = base / "launcher"
    launcher.write_text("#!/bin/sh\nexit 0\n")
    launcher.chmod(launcher.stat().st_mode | stat.S_IXUSR)
    return base


@pytest.fixture
def settings(checkout, tmp_path) -> InstallerSettings:
    return InstallerSettings(
        base_dir=checkout,
        log_file=tmp_path / "setup.log",
        swapfile_path=tmp_path / "swapfile",
        fstab_path=tmp_path / "fstab",
        sysctl_conf_path=tmp_path / "sysctl.conf",
        disk_probe_path=tmp_path,
    )


class ScriptedPrompts:
    """Feed answers to the wizard in order; unanswered prompts keep the default."""

    def __init__(self, answers: Iterable[str] = (), replies: Iterable[str] = ("",)) -> None:
        self.answers = list(answers)
        self.replies = list(replies)
        self.asked: List[str] = []
        self.defaults: List[str] = []

    def ask(self, label: str, current: str) -> str:
        self.asked.append(label)
        self.defaults.append(current)
        return self.answers.pop(0) if self.answers else ""

    def reply(self, question: str) -> str:
        return self.replies.pop(0) if self.replies else ""


@pytest.fixture
def prompts() -> ScriptedPrompts:
    return ScriptedPrompts()
