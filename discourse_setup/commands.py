"""Thin wrapper around subprocess for the OS utilities the installer calls."""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

from discourse_setup.errors import CommandError
from discourse_setup.settings import LOGGER_NAME, OPERATION_TIMEOUT


def run_command(
    cmd: List[str],
    check: bool = True,
    capture_output: bool = True,
    timeout: Optional[int] = OPERATION_TIMEOUT,
    cwd: Optional[Path] = None,
) -> subprocess.CompletedProcess:
    """
    Run a system command and return the CompletedProcess.

    Args:
        cmd: Command and arguments as a list
        check: Raise CommandError on a non-zero exit status
        capture_output: Capture stdout/stderr as text instead of sharing the terminal
        timeout: Seconds before the command is abandoned, None to wait forever
        cwd: Working directory for the command

    Raises:
        CommandError: If the command is missing, times out, or fails and check is True
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.debug(f"Running command: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=capture_output,
            text=True,
            timeout=timeout,
            cwd=cwd,
        )
    except FileNotFoundError:
        raise CommandError(cmd, 127, f"{cmd[0]}: command not found")
    except subprocess.TimeoutExpired:
        raise CommandError(cmd, -1, f"timed out after {timeout} seconds")

    if check and result.returncode != 0:
        raise CommandError(cmd, result.returncode, result.stderr or "")
    return result


def command_exists(name: str) -> Optional[str]:
    """Return the full path of ``name`` on the search path, or None."""
    return shutil.which(name)
