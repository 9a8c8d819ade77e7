"""
Discourse Setup
---------------

Interactive first-time installer for a standalone Discourse container.
Run it as root from a discourse_docker checkout. It:
  • checks for root, Docker, enough RAM/swap/disk and free web ports
  • copies samples/standalone.yml to containers/app.yml
  • sizes the database buffers and web workers to this machine
  • asks for hostname, admin emails, SMTP settings and Let's Encrypt email
  • validates the result and runs ./launcher bootstrap and start

Pressing Ctrl+C stops immediately; changes already written to
containers/app.yml are not rolled back.
"""

import atexit
import logging
import sys
from pathlib import Path
from typing import List, Optional

import click
from rich import box
from rich.table import Table
from rich.traceback import install as install_rich_traceback

from discourse_setup.autoscale import apply_autoscale
from discourse_setup.config_file import Change, ChangeLog, ConfigDocument
from discourse_setup.errors import SetupError
from discourse_setup.host import Host, detect_host
from discourse_setup.launcher import launch
from discourse_setup.preflight import ConfirmFn, ask_confirm, check_root, run_preflight
from discourse_setup.scaffold import scaffold_config
from discourse_setup.settings import LOGGER_NAME, VERSION, InstallerSettings
from discourse_setup.ui import (
    NordColors,
    console,
    create_header,
    display_panel,
    print_error,
    print_section,
    print_success,
    print_warning,
    setup_logger,
)
from discourse_setup.validation import validate_config
from discourse_setup.wizard import ConfigWizard, WizardState

install_rich_traceback(show_locals=False)


def print_change_summary(changes: List[Change]) -> None:
    table = Table(title="Configuration changes", box=box.ROUNDED)
    table.add_column("Line", justify="right", style=NordColors.FROST_3)
    table.add_column("Setting", style=f"bold {NordColors.FROST_2}")
    table.add_column("Status", style=NordColors.SNOW_STORM_1)
    for change in changes:
        table.add_row(
            str(change.line_number),
            change.key,
            "updated" if change.modified else "unchanged",
        )
    console.print(table)


def run_setup(
    settings: InstallerSettings,
    host: Optional[Host] = None,
    confirm: ConfirmFn = ask_confirm,
    wizard: Optional[ConfigWizard] = None,
) -> None:
    """Every stage after the privilege check, in order."""
    logger = logging.getLogger(LOGGER_NAME)
    host = host or detect_host()

    print_section("Preflight Checks")
    snapshot = run_preflight(host, settings, confirm)

    print_section("Configuration")
    scaffold_config(settings.template_path, settings.config_path)

    changelog = ChangeLog()
    atexit.register(changelog.cleanup)
    logger.debug(f"Tracking changes in {changelog.path}")

    document = ConfigDocument.load(settings.config_path)
    apply_autoscale(
        document,
        snapshot,
        changelog,
        settings.max_db_shared_buffers_mb,
        settings.max_unicorn_workers,
    )
    document.save(settings.config_path)

    wizard = wizard or ConfigWizard()
    if wizard.run(document, changelog) is WizardState.ABORTED:
        raise SetupError(
            f"Configuration aborted. Remove {settings.config_path} before running again."
        )
    document.save(settings.config_path)
    print_change_summary(changelog.changes)
    print_success(f"Configuration file at {settings.config_path} updated successfully!")

    print_section("Validation")
    validate_config(ConfigDocument.load(settings.config_path))
    print_success("Configuration is valid.")

    print_section("Launch")
    launch(settings)
    scheme = "https" if wizard.params.enable_tls else "http"
    display_panel(
        f"Discourse is starting. Visit {scheme}://{wizard.params.hostname} once the container is up.",
        NordColors.GREEN,
        "Setup Complete",
    )


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--base-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="discourse_docker checkout to configure.",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where to write the detailed log. [default: <base-dir>/discourse-setup.log]",
)
@click.option("--debug", is_flag=True, help="Show debug output on the console.")
@click.version_option(VERSION)
def main(base_dir: Path, log_file: Optional[Path], debug: bool) -> None:
    """Configure and launch a standalone Discourse container."""
    settings = InstallerSettings(base_dir=base_dir.resolve(), log_file=log_file)
    console.print(create_header())

    try:
        check_root()
        logger = setup_logger(settings.log_file, debug)
        logger.debug(f"Settings: {settings}")
        run_setup(settings)
    except SetupError as e:
        print_error(str(e))
        sys.exit(1)
    except OSError as e:
        print_error(f"File operation failed: {e}")
        sys.exit(1)
    except EOFError:
        print_error("Input closed before setup finished.")
        sys.exit(1)
    except KeyboardInterrupt:
        print_warning("Setup interrupted. Changes already written are left in place.")
        sys.exit(130)


if __name__ == "__main__":
    main()
