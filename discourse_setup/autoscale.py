"""Size the database buffers and web workers to the machine."""

import logging
from typing import List

from discourse_setup.config_file import ChangeLog, ConfigDocument
from discourse_setup.errors import ConfigWriteError
from discourse_setup.host import ResourceSnapshot
from discourse_setup.settings import LOGGER_NAME

DB_SHARED_BUFFERS_KEY = "db_shared_buffers"
UNICORN_WORKERS_KEY = "UNICORN_WORKERS"

DEFAULT_MAX_BUFFERS_MB = 4096
DEFAULT_MAX_WORKERS = 8


def db_shared_buffers_mb(memory_gb: int, cap: int = DEFAULT_MAX_BUFFERS_MB) -> int:
    """128MB for 1GB of RAM, 256MB for 2GB, otherwise 256MB per GB, capped."""
    if memory_gb <= 1:
        buffers = 128
    elif memory_gb == 2:
        buffers = 256
    else:
        buffers = 256 * memory_gb
    return min(buffers, cap)


def unicorn_workers(memory_gb: int, cpu_cores: int, cap: int = DEFAULT_MAX_WORKERS) -> int:
    """Two workers per GB on small machines, two per physical core otherwise."""
    if memory_gb <= 2:
        workers = 2 * memory_gb
    else:
        workers = 2 * cpu_cores
    return min(workers, cap)


def apply_autoscale(
    document: ConfigDocument,
    snapshot: ResourceSnapshot,
    changelog: ChangeLog,
    max_buffers_mb: int = DEFAULT_MAX_BUFFERS_MB,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> None:
    logger = logging.getLogger(LOGGER_NAME)

    buffers = db_shared_buffers_mb(snapshot.memory_gb, max_buffers_mb)
    workers = unicorn_workers(snapshot.memory_gb, snapshot.cpu_cores, max_workers)

    failed: List[str] = []
    change = document.set(DB_SHARED_BUFFERS_KEY, f"{buffers}MB", quote=True)
    if change is None:
        failed.append(DB_SHARED_BUFFERS_KEY)
    else:
        changelog.record(change)
        logger.info(f"Setting db_shared_buffers to {buffers}MB")

    change = document.set(UNICORN_WORKERS_KEY, workers)
    if change is None:
        failed.append(UNICORN_WORKERS_KEY)
    else:
        changelog.record(change)
        logger.info(f"Setting UNICORN_WORKERS to {workers}")

    if failed:
        raise ConfigWriteError(
            failed, "Unable to change " + ", ".join(failed) + " in the configuration file."
        )
