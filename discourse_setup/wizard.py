"""
Interactive collection of the deployment parameters.

The wizard is a small state machine: values are collected, shown back for
confirmation, and either collected again, committed to the configuration
document, or abandoned.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from rich import box
from rich.prompt import Prompt
from rich.table import Table
from rich.text import Text

from discourse_setup.config_file import Change, ChangeLog, ConfigDocument, ScalarValue
from discourse_setup.errors import ConfigWriteError
from discourse_setup.settings import LOGGER_NAME, PLACEHOLDER_DOMAIN
from discourse_setup.ui import NordColors, console, print_warning

HOSTNAME_KEY = "DISCOURSE_HOSTNAME"
DEVELOPER_EMAILS_KEY = "DISCOURSE_DEVELOPER_EMAILS"
SMTP_ADDRESS_KEY = "DISCOURSE_SMTP_ADDRESS"
SMTP_PORT_KEY = "DISCOURSE_SMTP_PORT"
SMTP_USER_KEY = "DISCOURSE_SMTP_USER_NAME"
SMTP_PASSWORD_KEY = "DISCOURSE_SMTP_PASSWORD"
LETSENCRYPT_EMAIL_KEY = "LETSENCRYPT_ACCOUNT_EMAIL"

TLS_TEMPLATES: Tuple[str, ...] = (
    "templates/web.ssl.template.yml",
    "templates/web.letsencrypt.ssl.template.yml",
)

# Exact SMTP address -> default user name; "{hostname}" is filled in
SMTP_PROVIDER_USERS = {
    "smtp.sparkpostmail.com": "SMTP_Injection",
    "smtp.sendgrid.net": "apikey",
    "smtp.mailgun.org": "postmaster@{hostname}",
}

LETSENCRYPT_OFF = "off"

AskFn = Callable[[str, str], str]
ReplyFn = Callable[[str], str]


def provider_default_user(smtp_address: str, hostname: str) -> Optional[str]:
    template = SMTP_PROVIDER_USERS.get(smtp_address)
    if template is None:
        return None
    return template.format(hostname=hostname)


@dataclass
class SessionParameters:
    """Values gathered during one run, starting from the template's defaults."""

    hostname: str = "discourse.example.com"
    developer_emails: str = "me@example.com,you@example.com"
    smtp_address: str = "smtp.example.com"
    smtp_port: int = 587
    smtp_user: str = "user@example.com"
    smtp_password: str = "pa$$word"
    letsencrypt_email: str = "me@example.com"

    @property
    def enable_tls(self) -> bool:
        email = self.letsencrypt_email.strip()
        return (
            bool(email)
            and email.lower() != LETSENCRYPT_OFF
            and email.rpartition("@")[2].lower() != PLACEHOLDER_DOMAIN
        )


class WizardState(Enum):
    COLLECTING = "collecting"
    CONFIRMING = "confirming"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ABORTED = "aborted"


def ask_value(label: str, current: str) -> str:
    return Prompt.ask(f"[bold]{label}[/]", default=current, show_default=True)


def ask_reply(question: str) -> str:
    return Prompt.ask(f"[bold {NordColors.FROST_2}]{question}[/]", default="", show_default=False)


def show_summary(params: SessionParameters) -> None:
    table = Table(title="Discourse configuration", box=box.ROUNDED)
    table.add_column("Setting", style=f"bold {NordColors.FROST_2}")
    table.add_column("Value", style=NordColors.SNOW_STORM_1)

    table.add_row("Hostname", Text(params.hostname))
    table.add_row("Email", Text(params.developer_emails))
    table.add_row("SMTP address", Text(params.smtp_address))
    table.add_row("SMTP port", str(params.smtp_port))
    table.add_row("SMTP username", Text(params.smtp_user))
    table.add_row("SMTP password", Text(params.smtp_password))
    if params.enable_tls:
        table.add_row("Let's Encrypt", Text(params.letsencrypt_email))
    else:
        table.add_row("Let's Encrypt", Text(f"{params.letsencrypt_email} (skipped)"))
    console.print(table)


class ConfigWizard:
    """Drive the collect, confirm, commit loop."""

    def __init__(
        self,
        params: Optional[SessionParameters] = None,
        ask: AskFn = ask_value,
        reply: ReplyFn = ask_reply,
        show: Callable[[SessionParameters], None] = show_summary,
    ) -> None:
        self.params = params or SessionParameters()
        self.ask = ask
        self.reply = reply
        self.show = show
        self.state = WizardState.COLLECTING
        self.changes: List[Change] = []

    def _ask(self, label: str, current: str) -> str:
        answer = self.ask(label, current)
        answer = answer.strip() if answer else ""
        return answer or current

    def _ask_port(self, current: int) -> int:
        while True:
            answer = self._ask("SMTP port?", str(current))
            if answer.isascii() and answer.isdigit() and 0 < int(answer) < 65536:
                return int(answer)
            print_warning(f"'{answer}' is not a valid port number.")

    def collect(self) -> None:
        p = self.params
        p.hostname = self._ask("Hostname for your Discourse?", p.hostname)
        p.developer_emails = self._ask(
            "Email address for admin account(s)?", p.developer_emails
        )
        p.smtp_address = self._ask("SMTP server address?", p.smtp_address)

        provider_user = provider_default_user(p.smtp_address, p.hostname)
        if provider_user:
            p.smtp_user = provider_user

        p.smtp_port = self._ask_port(p.smtp_port)
        p.smtp_user = self._ask("SMTP user name?", p.smtp_user)
        p.smtp_password = self._ask("SMTP password?", p.smtp_password)
        p.letsencrypt_email = self._ask(
            f"Optional email address for Let's Encrypt warnings? "
            f"(ENTER to skip, '{LETSENCRYPT_OFF}' to disable)",
            p.letsencrypt_email,
        )

    def confirm(self) -> WizardState:
        self.show(self.params)
        while True:
            answer = self.reply(
                "Does this look right? ENTER to continue, 'n' to try again, 'q' to quit:"
            ).strip().lower()
            if answer in ("", "y", "yes"):
                return WizardState.COMMITTING
            if answer in ("n", "no"):
                return WizardState.COLLECTING
            if answer in ("q", "quit"):
                return WizardState.ABORTED

    def run(self, document: ConfigDocument, changelog: ChangeLog) -> WizardState:
        self.state = WizardState.COLLECTING
        while True:
            if self.state is WizardState.COLLECTING:
                self.collect()
                self.state = WizardState.CONFIRMING
            elif self.state is WizardState.CONFIRMING:
                self.state = self.confirm()
            elif self.state is WizardState.COMMITTING:
                self.changes = commit_parameters(document, self.params, changelog)
                self.state = WizardState.COMMITTED
            else:
                return self.state


def _fields(params: SessionParameters) -> List[Tuple[str, ScalarValue, bool]]:
    fields: List[Tuple[str, ScalarValue, bool]] = [
        (HOSTNAME_KEY, params.hostname, False),
        (DEVELOPER_EMAILS_KEY, params.developer_emails, False),
        (SMTP_ADDRESS_KEY, params.smtp_address, False),
        (SMTP_PORT_KEY, params.smtp_port, False),
        (SMTP_USER_KEY, params.smtp_user, False),
        (SMTP_PASSWORD_KEY, params.smtp_password, True),
    ]
    if params.enable_tls:
        fields.append((LETSENCRYPT_EMAIL_KEY, params.letsencrypt_email, False))
    return fields


def commit_parameters(
    document: ConfigDocument, params: SessionParameters, changelog: ChangeLog
) -> List[Change]:
    """
    Write every collected value into ``document``.

    All keys are attempted before failing so the operator sees every key that
    could not be updated at once.
    """
    logger = logging.getLogger(LOGGER_NAME)
    changes: List[Change] = []
    failed: List[str] = []

    for key, value, quote in _fields(params):
        change = document.set(key, value, quote=quote)
        if change is None:
            failed.append(key)
            continue
        changelog.record(change)
        changes.append(change)
        logger.debug(f"Updated {key} on line {change.line_number}")

    if params.enable_tls:
        for template in TLS_TEMPLATES:
            change = document.enable_item(template)
            if change is None:
                failed.append(template)
                continue
            changelog.record(change)
            changes.append(change)
            logger.debug(f"Enabled {template} on line {change.line_number}")

    if failed:
        for key in failed:
            logger.error(f"{key} change failed.")
        raise ConfigWriteError(failed)
    return changes
