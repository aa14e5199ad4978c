"""Tests for the outbound notification transports."""

import smtplib
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from pydantic import SecretStr

from core.notifier import LoggingNotifier, SmtpNotifier, build_notifier, redact_email


def _mail_settings(**overrides):
    values = dict(
        enabled=True,
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="mailer",
        smtp_password=SecretStr("pw"),
        use_tls=True,
        from_address="noreply@example.com",
        admin_address="ops@example.com",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestRedactEmail:
    def test_redacts_local_part(self):
        assert redact_email("alice@example.com") == "al***@example.com"

    def test_non_address(self):
        assert redact_email("") == "redacted"
        assert redact_email("nobody") == "redacted"


class TestBuildNotifier:
    def test_smtp_when_enabled(self):
        notifier = build_notifier(_mail_settings())
        assert isinstance(notifier, SmtpNotifier)
        assert notifier.from_address == "noreply@example.com"

    def test_logging_when_disabled(self):
        assert isinstance(build_notifier(_mail_settings(enabled=False)), LoggingNotifier)

    def test_logging_when_host_missing(self):
        assert isinstance(build_notifier(_mail_settings(smtp_host=None)), LoggingNotifier)


class TestSmtpNotifier:
    @patch("core.notifier.smtplib.SMTP")
    def test_send_with_starttls(self, smtp_cls):
        server = MagicMock()
        smtp_cls.return_value.__enter__.return_value = server

        result = SmtpNotifier("smtp.example.com", smtp_user="mailer", smtp_password="pw").send(
            "alice@example.com", "Subject", "Body"
        )

        assert result.ok
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer", "pw")
        from_address, recipients, _ = server.sendmail.call_args[0]
        assert from_address == "mailer"
        assert recipients == ["alice@example.com"]

    @patch("core.notifier.smtplib.SMTP")
    def test_smtp_error_reported_not_raised(self, smtp_cls):
        server = MagicMock()
        server.sendmail.side_effect = smtplib.SMTPServerDisconnected("gone")
        smtp_cls.return_value.__enter__.return_value = server

        result = SmtpNotifier("smtp.example.com").send("alice@example.com", "Subject", "Body")

        assert not result.ok
        assert result.error == "SMTPServerDisconnected"

    @patch("core.notifier.smtplib.SMTP")
    def test_auth_failure(self, smtp_cls):
        server = MagicMock()
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        smtp_cls.return_value.__enter__.return_value = server

        result = SmtpNotifier("smtp.example.com", smtp_user="mailer", smtp_password="bad").send(
            "alice@example.com", "Subject", "Body"
        )
        assert result.error == "smtp_auth_failed"


class TestLoggingNotifier:
    def test_always_succeeds(self):
        assert LoggingNotifier().send("alice@example.com", "Subject", "Body").ok
