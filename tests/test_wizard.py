"""Tests for the interactive configuration wizard."""

import pytest

from conftest import ScriptedPrompts
from discourse_setup.config_file import ConfigDocument
from discourse_setup.errors import ConfigWriteError
from discourse_setup.wizard import (
    TLS_TEMPLATES,
    ConfigWizard,
    SessionParameters,
    WizardState,
    commit_parameters,
    provider_default_user,
    show_summary,
)
from discourse_setup.ui import console

# hostname, emails, smtp address, port, user, password, letsencrypt email
FULL_ANSWERS = [
    "forum.example.org",
    "admin@example.org",
    "smtp.mail.example.org",
    "2525",
    "mailer@example.org",
    "hunter2",
    "",
]


def _wizard(prompts: ScriptedPrompts) -> ConfigWizard:
    return ConfigWizard(ask=prompts.ask, reply=prompts.reply, show=lambda params: None)


class TestProviderDefaults:

    @pytest.mark.parametrize("address,expected", [
        ("smtp.sendgrid.net", "apikey"),
        ("smtp.sparkpostmail.com", "SMTP_Injection"),
        ("smtp.mailgun.org", "postmaster@forum.example.org"),
        ("smtp.sendgrid.net.evil.org", None),
        ("SMTP.SENDGRID.NET", None),
    ])
    def test_exact_match_table(self, address, expected):
        assert provider_default_user(address, "forum.example.org") == expected

    def test_sendgrid_with_empty_username_yields_apikey(self):
        prompts = ScriptedPrompts(["forum.example.org", "a@b.org", "smtp.sendgrid.net", "", "", "key"])
        wizard = _wizard(prompts)
        wizard.collect()
        assert wizard.params.smtp_user == "apikey"
        assert prompts.defaults[4] == "apikey"

    def test_sparkpost_with_empty_username(self):
        prompts = ScriptedPrompts(["forum.example.org", "a@b.org", "smtp.sparkpostmail.com"])
        wizard = _wizard(prompts)
        wizard.collect()
        assert wizard.params.smtp_user == "SMTP_Injection"

    def test_explicit_username_wins_over_provider(self):
        prompts = ScriptedPrompts(["forum.example.org", "a@b.org", "smtp.sendgrid.net", "", "someone"])
        wizard = _wizard(prompts)
        wizard.collect()
        assert wizard.params.smtp_user == "someone"


class TestSessionParameters:

    def test_defaults_skip_tls(self):
        assert not SessionParameters().enable_tls

    @pytest.mark.parametrize("email,enabled", [
        ("admin@example.org", True),
        ("me@example.com", False),
        ("", False),
        ("OFF", False),
        ("ops@myexample.com", True),
        ("me@example.community.org", True),
        ("Admin@Example.com", False),
    ])
    def test_enable_tls(self, email, enabled):
        assert SessionParameters(letsencrypt_email=email).enable_tls is enabled


class TestShowSummary:

    def test_skipped_tls_still_echoes_the_email(self):
        with console.capture() as capture:
            show_summary(SessionParameters(letsencrypt_email="off"))
        assert "off (skipped)" in capture.get()

    def test_enabled_tls_shows_the_email(self):
        with console.capture() as capture:
            show_summary(SessionParameters(letsencrypt_email="ops@myexample.com"))
        output = capture.get()
        assert "ops@myexample.com" in output
        assert "(skipped)" not in output


class TestCollect:

    def test_empty_answers_keep_current_values(self):
        prompts = ScriptedPrompts()
        wizard = _wizard(prompts)
        wizard.collect()
        assert wizard.params == SessionParameters()
        assert len(prompts.asked) == 7

    def test_invalid_port_is_asked_again(self):
        prompts = ScriptedPrompts(["", "", "", "smtp", "99999", "\u00b2", "465"])
        wizard = _wizard(prompts)
        wizard.collect()
        assert wizard.params.smtp_port == 465

    def test_previous_answers_become_defaults(self):
        prompts = ScriptedPrompts(FULL_ANSWERS)
        wizard = _wizard(prompts)
        wizard.collect()
        wizard.collect()
        assert prompts.defaults[7] == "forum.example.org"
        assert wizard.params.smtp_password == "hunter2"


class TestRun:

    def test_confirm_commits(self, document, changelog):
        prompts = ScriptedPrompts(FULL_ANSWERS, replies=[""])
        wizard = _wizard(prompts)

        assert wizard.run(document, changelog) is WizardState.COMMITTED
        assert document.get("DISCOURSE_HOSTNAME") == "forum.example.org"
        assert document.get("DISCOURSE_SMTP_PORT") == "2525"
        assert document.get("DISCOURSE_SMTP_PASSWORD") == "hunter2"

    def test_no_loops_back_to_collecting(self, document, changelog):
        prompts = ScriptedPrompts(FULL_ANSWERS + ["other.example.org"], replies=["n", "y"])
        wizard = _wizard(prompts)

        assert wizard.run(document, changelog) is WizardState.COMMITTED
        assert len(prompts.asked) == 14
        assert document.get("DISCOURSE_HOSTNAME") == "other.example.org"

    def test_unknown_reply_asks_again(self, document, changelog):
        prompts = ScriptedPrompts(FULL_ANSWERS, replies=["maybe", "yes"])
        assert _wizard(prompts).run(document, changelog) is WizardState.COMMITTED

    def test_quit_aborts_without_writing(self, document, changelog, template_text):
        prompts = ScriptedPrompts(FULL_ANSWERS, replies=["q"])
        wizard = _wizard(prompts)

        assert wizard.run(document, changelog) is WizardState.ABORTED
        assert document.render() == template_text
        assert changelog.changes == []


class TestCommitParameters:

    def _params(self, **overrides) -> SessionParameters:
        values = dict(
            hostname="forum.example.org",
            developer_emails="admin@example.org,ops@example.org",
            smtp_address="smtp.mail.example.org",
            smtp_port=587,
            smtp_user="mailer@example.org",
            smtp_password="pa$$ #word",
        )
        values.update(overrides)
        return SessionParameters(**values)

    def test_writes_all_fields(self, document, changelog):
        commit_parameters(document, self._params(), changelog)

        assert document.get("DISCOURSE_DEVELOPER_EMAILS") == "admin@example.org,ops@example.org"
        assert document.get("DISCOURSE_SMTP_USER_NAME") == "mailer@example.org"
        assert document.get("DISCOURSE_SMTP_PASSWORD") == "pa$$ #word"
        assert '  DISCOURSE_SMTP_PASSWORD: "pa$$ #word"' in document.render()
        assert document.get("LETSENCRYPT_ACCOUNT_EMAIL") is None

    def test_tls_enables_exactly_two_include_lines(self, document, changelog, template_text):
        changes = commit_parameters(
            document, self._params(letsencrypt_email="admin@example.org"), changelog
        )

        before = template_text.splitlines(keepends=True)
        after = document.render().splitlines(keepends=True)
        changed = {i + 1 for i, (a, b) in enumerate(zip(before, after)) if a != b}
        assert changed == {c.line_number for c in changes if c.modified}

        enabled_items = [c for c in changes if c.key in TLS_TEMPLATES]
        assert len(enabled_items) == 2
        for template in TLS_TEMPLATES:
            assert document.item(template).enabled
        assert document.get("LETSENCRYPT_ACCOUNT_EMAIL") == "admin@example.org"

    def test_all_failures_are_reported_together(self, changelog):
        doc = ConfigDocument.parse("env:\n  DISCOURSE_HOSTNAME: x\n  #DISCOURSE_SMTP_PORT: 587\n")

        with pytest.raises(ConfigWriteError) as exc_info:
            commit_parameters(doc, self._params(), changelog)

        assert exc_info.value.keys == [
            "DISCOURSE_DEVELOPER_EMAILS",
            "DISCOURSE_SMTP_ADDRESS",
            "DISCOURSE_SMTP_USER_NAME",
            "DISCOURSE_SMTP_PASSWORD",
        ]

    def test_missing_tls_include_is_a_failure(self, changelog):
        doc = ConfigDocument.parse(
            "env:\n"
            "  DISCOURSE_HOSTNAME: x\n"
            "  DISCOURSE_DEVELOPER_EMAILS: x\n"
            "  DISCOURSE_SMTP_ADDRESS: x\n"
            "  #DISCOURSE_SMTP_PORT: 587\n"
            "  #DISCOURSE_SMTP_USER_NAME: x\n"
            "  #DISCOURSE_SMTP_PASSWORD: x\n"
            "  #LETSENCRYPT_ACCOUNT_EMAIL: x\n"
        )
        with pytest.raises(ConfigWriteError) as exc_info:
            commit_parameters(doc, self._params(letsencrypt_email="admin@example.org"), changelog)
        assert exc_info.value.keys == list(TLS_TEMPLATES)
