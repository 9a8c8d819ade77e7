"""Hand the finished configuration over to ``./launcher``."""

import logging

from discourse_setup.commands import run_command
from discourse_setup.errors import CommandError, LaunchError
from discourse_setup.settings import LOGGER_NAME, InstallerSettings
from discourse_setup.ui import print_step, print_success

LAUNCH_ACTIONS = ("bootstrap", "start")


def run_launcher(settings: InstallerSettings, action: str) -> None:
    """Run ``./launcher <action> <app>`` attached to the terminal, without a timeout."""
    logger = logging.getLogger(LOGGER_NAME)
    launcher = settings.launcher_path
    if not launcher.is_file():
        raise LaunchError(f"Launcher not found at {launcher}")

    print_step(f"Running {launcher.name} {action} {settings.app_name}...")
    try:
        run_command(
            [str(launcher), action, settings.app_name],
            capture_output=False,
            timeout=None,
            cwd=settings.base_dir,
        )
    except CommandError as e:
        logger.error(f"launcher {action} failed: {e}")
        raise LaunchError(f"'{launcher.name} {action} {settings.app_name}' failed.")
    print_success(f"{launcher.name} {action} {settings.app_name} finished.")


def launch(settings: InstallerSettings) -> None:
    for action in LAUNCH_ACTIONS:
        run_launcher(settings, action)
