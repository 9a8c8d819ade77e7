"""Installer paths, thresholds and fixed values."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

APP_NAME: str = "Discourse Setup"
VERSION: str = "1.0.0"
LOGGER_NAME: str = "discourse_setup"

DOCKER_INSTALL_URL: str = "https://get.docker.com/"
DOCKER_BINARIES: Tuple[str, ...] = ("docker.io", "docker")
OPERATION_TIMEOUT: int = 60
DOWNLOAD_TIMEOUT: int = 60

PLACEHOLDER_DOMAIN: str = "example.com"


@dataclass
class InstallerSettings:
    """Everything the pipeline needs to know about where it runs."""

    base_dir: Path = field(default_factory=Path.cwd)
    app_name: str = "app"
    template_relpath: str = "samples/standalone.yml"
    config_relpath: str = "containers/app.yml"
    launcher_relpath: str = "launcher"
    log_file: Optional[Path] = None

    # Resource thresholds
    min_memory_gb: int = 1
    swap_threshold_gb: int = 2
    required_swap_gb: int = 2
    min_free_disk_kb: int = 5_000_000
    disk_probe_path: Path = Path("/var")
    web_ports: List[int] = field(default_factory=lambda: [80, 443])

    # Swap creation
    swapfile_path: Path = Path("/swapfile")
    fstab_path: Path = Path("/etc/fstab")
    sysctl_conf_path: Path = Path("/etc/sysctl.conf")
    swappiness: int = 10

    # Autoscale caps
    max_db_shared_buffers_mb: int = 4096
    max_unicorn_workers: int = 8

    def __post_init__(self) -> None:
        self.base_dir = Path(self.base_dir)
        if self.log_file is None:
            self.log_file = self.base_dir / "discourse-setup.log"
        self.log_file = Path(self.log_file)

    @property
    def template_path(self) -> Path:
        return self.base_dir / self.template_relpath

    @property
    def config_path(self) -> Path:
        return self.base_dir / self.config_relpath

    @property
    def launcher_path(self) -> Path:
        return self.base_dir / self.launcher_relpath
