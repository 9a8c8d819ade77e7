"""Create the working configuration from the sample template."""

import logging
import shutil
from pathlib import Path

from discourse_setup.errors import ConfigStateError
from discourse_setup.settings import LOGGER_NAME


def scaffold_config(template_path: Path, config_path: Path) -> None:
    """
    Copy ``template_path`` to ``config_path``.

    An existing working configuration is never overwritten; the operator has
    to remove it by hand first.
    """
    logger = logging.getLogger(LOGGER_NAME)

    if config_path.exists():
        raise ConfigStateError(
            f"{config_path} already exists. This installer only creates new "
            f"configurations; remove {config_path} manually and run it again."
        )
    if not template_path.is_file():
        raise ConfigStateError(
            f"Template {template_path} not found. Run this from a discourse_docker checkout."
        )

    config_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(template_path, config_path)
    logger.info(f"Copied {template_path} to {config_path}")
