"""
Outbound notification channel.

The auth core never talks to a mail server directly; it calls
``Notifier.send(recipient, subject, body)`` and inspects the returned
``NotifyResult``. SmtpNotifier is the production transport, LoggingNotifier
is used when mail is disabled (dev mode): the message is logged instead of
sent and the call reports success.
"""

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.text import MIMEText
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotifyResult:
    """Outcome of a single send."""
    ok: bool
    error: Optional[str] = None


class Notifier(Protocol):
    def send(self, recipient: str, subject: str, body: str) -> NotifyResult: ...


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if not email or "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class LoggingNotifier:
    """Logs notifications instead of delivering them."""

    def send(self, recipient: str, subject: str, body: str) -> NotifyResult:
        logger.info(
            f"Notification (mail disabled) to {redact_email(recipient)}: {subject}",
            extra={"body_preview": body[:200]},
        )
        return NotifyResult(ok=True)


class SmtpNotifier:
    """Plain-text mail over SMTP with STARTTLS (or implicit TLS)."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        use_tls: bool = True,
        from_address: Optional[str] = None,
        timeout: int = 30,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.use_tls = use_tls
        self.from_address = from_address or smtp_user
        self.timeout = timeout

    def _build_message(self, recipient: str, subject: str, body: str) -> MIMEText:
        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.from_address
        msg["To"] = recipient
        return msg

    def send(self, recipient: str, subject: str, body: str) -> NotifyResult:
        msg = self._build_message(recipient, subject, body)
        context = ssl.create_default_context()

        try:
            if self.use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_address, [recipient], msg.as_string())
            else:
                with smtplib.SMTP_SSL(
                    self.smtp_host, self.smtp_port, context=context, timeout=self.timeout
                ) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.sendmail(self.from_address, [recipient], msg.as_string())
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed for {self.smtp_host}: {e.smtp_code}")
            return NotifyResult(ok=False, error="smtp_auth_failed")
        except smtplib.SMTPRecipientsRefused:
            logger.error(f"SMTP recipient refused: {redact_email(recipient)}")
            return NotifyResult(ok=False, error="recipient_refused")
        except (smtplib.SMTPException, ssl.SSLError, OSError) as e:
            logger.error(f"Mail to {redact_email(recipient)} failed: {type(e).__name__}: {e}")
            return NotifyResult(ok=False, error=type(e).__name__)

        logger.info(f"Mail sent to {redact_email(recipient)}: {subject}")
        return NotifyResult(ok=True)


def build_notifier(mail_settings) -> Notifier:
    """Pick the transport for the given MailSettings."""
    if mail_settings.enabled and mail_settings.smtp_host:
        return SmtpNotifier(
            smtp_host=mail_settings.smtp_host,
            smtp_port=mail_settings.smtp_port,
            smtp_user=mail_settings.smtp_user,
            smtp_password=mail_settings.smtp_password.get_secret_value() or None,
            use_tls=mail_settings.use_tls,
            from_address=mail_settings.from_address,
        )
    if mail_settings.enabled:
        logger.warning("MAIL_ENABLED is set but MAIL_SMTP_HOST is empty; notifications will only be logged")
    return LoggingNotifier()
