"""Final sanity check of the working configuration before launching."""

from typing import List, Tuple

from discourse_setup.config_file import ConfigDocument
from discourse_setup.errors import ConfigValidationError
from discourse_setup.settings import PLACEHOLDER_DOMAIN
from discourse_setup.wizard import (
    DEVELOPER_EMAILS_KEY,
    HOSTNAME_KEY,
    SMTP_ADDRESS_KEY,
    SMTP_PASSWORD_KEY,
    SMTP_USER_KEY,
)

REQUIRED_KEYS: Tuple[str, ...] = (
    SMTP_ADDRESS_KEY,
    SMTP_USER_KEY,
    SMTP_PASSWORD_KEY,
    DEVELOPER_EMAILS_KEY,
    HOSTNAME_KEY,
)


def find_config_problems(document: ConfigDocument) -> List[str]:
    """One message per required key that is missing, blank or left at its default."""
    problems: List[str] = []
    for key in REQUIRED_KEYS:
        value = document.get(key)
        if value is None:
            problems.append(f"{key} not present")
        elif not value.strip():
            problems.append(f"{key} was not configured")
        elif PLACEHOLDER_DOMAIN in value:
            problems.append(f"{key} left at incorrect default of {PLACEHOLDER_DOMAIN}")
    return problems


def validate_config(document: ConfigDocument) -> None:
    problems = find_config_problems(document)
    if problems:
        raise ConfigValidationError(problems)
