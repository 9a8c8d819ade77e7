"""
Preflight checks run before anything is written.

Each check returns quietly on success and raises EnvironmentCheckError with a
message meant for the operator otherwise. Only the runtime and swap checks
offer a remediation, and only after asking.
"""

import logging
import os
import tempfile
from typing import Callable, Optional

import requests
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
)
from rich.prompt import Confirm

from discourse_setup.commands import command_exists, run_command
from discourse_setup.errors import CommandError, EnvironmentCheckError
from discourse_setup.host import Host, ResourceSnapshot, describe
from discourse_setup.settings import (
    DOCKER_BINARIES,
    DOCKER_INSTALL_URL,
    DOWNLOAD_TIMEOUT,
    LOGGER_NAME,
    InstallerSettings,
)
from discourse_setup.ui import console, print_step, print_success, print_warning

ConfirmFn = Callable[[str], bool]

logger = logging.getLogger(LOGGER_NAME)


def ask_confirm(question: str) -> bool:
    return Confirm.ask(f"[bold]{question}[/]", default=True)


# ----------------------------------------------------------------
# Privilege
# ----------------------------------------------------------------
def check_root(euid: Optional[int] = None) -> None:
    if euid is None:
        euid = os.geteuid()
    if euid != 0:
        raise EnvironmentCheckError(
            "This command must be run as root. Please sudo or log in as root first."
        )


# ----------------------------------------------------------------
# Container runtime
# ----------------------------------------------------------------
def find_docker() -> Optional[str]:
    for name in DOCKER_BINARIES:
        path = command_exists(name)
        if path:
            return path
    return None


def download_install_script(url: str, destination: str) -> None:
    """Download the runtime install script with a progress bar."""
    with requests.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT) as response:
        response.raise_for_status()
        total_length = int(response.headers.get("content-length", 0))
        with (
            open(destination, "wb") as script_file,
            Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                " • ",
                DownloadColumn(),
                TimeRemainingColumn(),
                console=console,
                transient=True,
            ) as progress,
        ):
            task = progress.add_task("Downloading", total=total_length or None)
            for chunk in response.iter_content(chunk_size=8192):
                if chunk:
                    script_file.write(chunk)
                    progress.update(task, advance=len(chunk))


def install_docker(url: str = DOCKER_INSTALL_URL) -> None:
    fd, script_path = tempfile.mkstemp(prefix="discourse-setup-docker-", suffix=".sh")
    os.close(fd)
    try:
        print_step(f"Downloading Docker install script from {url}")
        try:
            download_install_script(url, script_path)
        except requests.RequestException as e:
            raise EnvironmentCheckError(f"Could not download Docker installer: {e}")
        print_step("Running Docker install script...")
        run_command(["sh", script_path], capture_output=False, timeout=None)
    except CommandError as e:
        logger.error(f"Docker install script failed: {e}")
    finally:
        os.unlink(script_path)


def check_and_install_docker(confirm: ConfirmFn = ask_confirm) -> str:
    """Return the path of the docker binary, installing it if the operator agrees."""
    docker_path = find_docker()
    if docker_path:
        logger.debug(f"Docker found at {docker_path}")
        return docker_path

    print_warning("Docker not installed.")
    if not confirm(f"Install Docker from {DOCKER_INSTALL_URL}?"):
        raise EnvironmentCheckError("Docker is required. Quitting.")
    install_docker()

    docker_path = find_docker()
    if not docker_path:
        raise EnvironmentCheckError("Docker install failed. Quitting.")
    print_success(f"Docker installed at {docker_path}")
    return docker_path


# ----------------------------------------------------------------
# Memory, swap and disk
# ----------------------------------------------------------------
def check_memory_and_swap(
    host: Host,
    snapshot: ResourceSnapshot,
    settings: InstallerSettings,
    confirm: ConfirmFn = ask_confirm,
) -> ResourceSnapshot:
    """
    Enforce the RAM minimum and, on small machines, the swap minimum.

    Returns the snapshot, refreshed with the new swap size when a swap file
    had to be created.
    """
    for line in describe(snapshot):
        logger.info(line)

    if snapshot.memory_gb < settings.min_memory_gb:
        raise EnvironmentCheckError(
            f"Discourse requires {settings.min_memory_gb}GB RAM to run. "
            "This system does not appear to have sufficient memory."
        )

    if snapshot.memory_gb > settings.swap_threshold_gb:
        return snapshot
    if snapshot.swap_gb >= settings.required_swap_gb:
        return snapshot

    print_warning(
        f"Discourse requires at least {settings.required_swap_gb}GB of swap when "
        f"running with {settings.swap_threshold_gb}GB of RAM or less. "
        f"This system has {snapshot.swap_gb}GB of swap."
    )
    if not confirm(f"Create a {settings.required_swap_gb}GB swap file at {settings.swapfile_path}?"):
        raise EnvironmentCheckError("Insufficient swap. Please add swap and try again.")

    try:
        host.create_swapfile(
            settings.swapfile_path,
            settings.required_swap_gb,
            settings.fstab_path,
            settings.sysctl_conf_path,
            settings.swappiness,
        )
    except (CommandError, OSError) as e:
        raise EnvironmentCheckError(f"Failed to create swap: {e}")

    snapshot.swap_gb = host.swap_gb()
    if snapshot.swap_gb < settings.required_swap_gb:
        raise EnvironmentCheckError(
            f"Failed to create swap: only {snapshot.swap_gb}GB available after setup."
        )
    print_success(f"Swap file created; {snapshot.swap_gb}GB of swap available.")
    return snapshot


def check_disk(snapshot: ResourceSnapshot, settings: InstallerSettings) -> None:
    if snapshot.free_disk_kb <= settings.min_free_disk_kb:
        raise EnvironmentCheckError(
            f"Discourse requires at least {settings.min_free_disk_kb // 1_000_000}GB "
            f"free disk space. {settings.disk_probe_path} has only "
            f"{snapshot.free_disk_kb}KB free. Please free up some space, or expand "
            "your disk, before continuing."
        )


# ----------------------------------------------------------------
# Ports
# ----------------------------------------------------------------
def check_ports(host: Host, settings: InstallerSettings) -> None:
    listening = host.listening_ports()
    busy = [port for port in settings.web_ports if port in listening]
    if busy:
        raise EnvironmentCheckError(
            "Port(s) "
            + ", ".join(str(port) for port in busy)
            + " already in use. Stop the service using them and try again."
        )


def run_preflight(
    host: Host,
    settings: InstallerSettings,
    confirm: ConfirmFn = ask_confirm,
) -> ResourceSnapshot:
    """Run every check in order and hand back the resource snapshot."""
    print_step("Checking for Docker...")
    check_and_install_docker(confirm)

    print_step("Checking memory, swap and disk...")
    try:
        snapshot = host.snapshot(settings.disk_probe_path)
    except (CommandError, ValueError) as e:
        raise EnvironmentCheckError(f"Could not read system resources: {e}")
    snapshot = check_memory_and_swap(host, snapshot, settings, confirm)
    check_disk(snapshot, settings)

    print_step("Checking ports...")
    try:
        check_ports(host, settings)
    except CommandError as e:
        raise EnvironmentCheckError(f"Could not list listening ports: {e}")

    print_success("Preflight checks passed.")
    return snapshot
