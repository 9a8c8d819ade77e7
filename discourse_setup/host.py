"""
Host introspection behind a small per-OS interface.

Each implementation shells out to the utilities that ship with its OS and
returns plain numbers, so the checks in :mod:`discourse_setup.preflight`
never parse command output themselves.
"""

import logging
import os
import platform
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set, Union

from discourse_setup.commands import command_exists, run_command
from discourse_setup.errors import CommandError, EnvironmentCheckError
from discourse_setup.settings import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


@dataclass
class ResourceSnapshot:
    """Measurements taken once during preflight and reused by autoscale."""

    memory_gb: int
    cpu_cores: int
    swap_gb: int
    free_disk_kb: int


def _port_from_address(address: str) -> Optional[int]:
    # Matches "0.0.0.0:80", "[::]:443", "*:80" and the BSD style "*.80"
    match = re.search(r"[:.](\d+)$", address)
    return int(match.group(1)) if match else None


def parse_df_available_kb(output: str) -> int:
    """Available KB from ``df -Pk <path>`` (last line, fourth column)."""
    lines = [line for line in output.splitlines() if line.strip()]
    if len(lines) < 2:
        raise ValueError(f"Unexpected df output: {output!r}")
    return int(lines[-1].split()[3])


class Host:
    """Facts about the machine the installer is running on."""

    name = "generic"

    def memory_gb(self) -> int:
        raise NotImplementedError

    def cpu_cores(self) -> int:
        raise NotImplementedError

    def swap_gb(self) -> int:
        raise NotImplementedError

    def listening_ports(self) -> Set[int]:
        raise NotImplementedError

    def free_disk_kb(self, path: Union[str, Path]) -> int:
        result = run_command(["df", "-Pk", str(path)])
        return parse_df_available_kb(result.stdout)

    def create_swapfile(
        self,
        path: Path,
        size_gb: int,
        fstab_path: Path,
        sysctl_conf_path: Path,
        swappiness: int,
    ) -> None:
        raise EnvironmentCheckError(
            f"Creating a swap file is not supported on {self.name}."
        )

    def snapshot(self, disk_path: Union[str, Path]) -> ResourceSnapshot:
        snap = ResourceSnapshot(
            memory_gb=self.memory_gb(),
            cpu_cores=self.cpu_cores(),
            swap_gb=self.swap_gb(),
            free_disk_kb=self.free_disk_kb(disk_path),
        )
        logger.debug(f"Resource snapshot: {snap}")
        return snap


# ----------------------------------------------------------------
# Linux
# ----------------------------------------------------------------
class LinuxHost(Host):
    name = "Linux"

    def __init__(self, cpuinfo_path: Path = Path("/proc/cpuinfo")) -> None:
        self.cpuinfo_path = cpuinfo_path

    def _free_row(self, label: str) -> int:
        result = run_command(["free", "-g", "--si"])
        for line in result.stdout.splitlines():
            if line.startswith(f"{label}:"):
                return int(line.split()[1])
        raise ValueError(f"No '{label}:' row in free output")

    def memory_gb(self) -> int:
        return self._free_row("Mem")

    def swap_gb(self) -> int:
        return self._free_row("Swap")

    def cpu_cores(self) -> int:
        """Physical cores: ``cpu cores`` times the number of distinct sockets."""
        try:
            text = self.cpuinfo_path.read_text()
        except OSError:
            text = ""

        cores_per_socket = 0
        sockets: Set[str] = set()
        for line in text.splitlines():
            name, _, value = line.partition(":")
            name = name.strip()
            if name == "cpu cores" and not cores_per_socket:
                cores_per_socket = int(value.strip())
            elif name == "physical id":
                sockets.add(value.strip())

        if cores_per_socket:
            return cores_per_socket * max(len(sockets), 1)
        return os.cpu_count() or 1

    def listening_ports(self) -> Set[int]:
        # ss -l only prints listening sockets; netstat marks them in the last column
        use_ss = command_exists("ss") is not None
        result = run_command(["ss", "-tln"] if use_ss else ["netstat", "-tln"])

        ports: Set[int] = set()
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) < 4 or (not use_ss and parts[-1] != "LISTEN"):
                continue
            port = _port_from_address(parts[3])
            if port is not None:
                ports.add(port)
        return ports

    def create_swapfile(
        self,
        path: Path,
        size_gb: int,
        fstab_path: Path,
        sysctl_conf_path: Path,
        swappiness: int,
    ) -> None:
        logger.info(f"Creating {size_gb}GB swap file at {path}")
        run_command(["install", "-o", "root", "-g", "root", "-m", "0600", "/dev/null", str(path)])
        try:
            run_command(["fallocate", "-l", f"{size_gb}G", str(path)], timeout=None)
        except CommandError as e:
            logger.debug(f"fallocate failed, falling back to dd: {e}")
            run_command(
                ["dd", "if=/dev/zero", f"of={path}", "bs=1k", f"count={size_gb * 1024}k"],
                timeout=None,
            )
        run_command(["mkswap", str(path)])
        run_command(["swapon", str(path)])

        with open(fstab_path, "a") as f:
            f.write(f"{path}       swap    swap    auto      0       0\n")
        run_command(["sysctl", "-w", f"vm.swappiness={swappiness}"])
        with open(sysctl_conf_path, "a") as f:
            f.write(f"vm.swappiness = {swappiness}\n")


# ----------------------------------------------------------------
# macOS
# ----------------------------------------------------------------
class DarwinHost(Host):
    name = "macOS"

    def _sysctl(self, name: str) -> str:
        return run_command(["sysctl", "-n", name]).stdout.strip()

    def memory_gb(self) -> int:
        return int(self._sysctl("hw.memsize")) // (1024 ** 3)

    def cpu_cores(self) -> int:
        return int(self._sysctl("hw.physicalcpu"))

    def swap_gb(self) -> int:
        # "total = 2048.00M  used = 1024.50M  free = 1023.50M  (encrypted)"
        match = re.search(r"total\s*=\s*([\d.]+)([MG])", self._sysctl("vm.swapusage"))
        if not match:
            return 0
        size = float(match.group(1))
        return int(size / 1024) if match.group(2) == "M" else int(size)

    def listening_ports(self) -> Set[int]:
        result = run_command(["netstat", "-anp", "tcp"])
        ports: Set[int] = set()
        for line in result.stdout.splitlines():
            parts = line.split()
            if "LISTEN" not in parts or len(parts) < 4:
                continue
            port = _port_from_address(parts[3])
            if port is not None:
                ports.add(port)
        return ports


def detect_host(system: Optional[str] = None) -> Host:
    """Pick the Host implementation for the running OS."""
    system = system or platform.system()
    if system == "Linux":
        return LinuxHost()
    if system == "Darwin":
        return DarwinHost()
    raise EnvironmentCheckError(f"Unsupported operating system: {system}")


def describe(snapshot: ResourceSnapshot) -> List[str]:
    return [
        f"Memory: {snapshot.memory_gb} GB",
        f"CPU cores: {snapshot.cpu_cores}",
        f"Swap: {snapshot.swap_gb} GB",
        f"Free disk: {snapshot.free_disk_kb} KB",
    ]
