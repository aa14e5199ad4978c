"""
Password lifecycle: expiry warnings and the one-time expired notice.

The daily state of a password is a pure function of (today, expiration
date). "Exactly one expired notice" comes from date arithmetic alone: the
ExpiredNotice state holds on exactly one calendar day, so no per-user
"already notified" flag is stored.

Known limitation: when several instances each run the scan without a
shared lock, the expired notice is sent once per instance.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Union

from core.notifier import Notifier
from core.timestamps import Clock, SystemClock

from .config import SELF_SERVICE_EXCLUDED_ROLES
from .store import CredentialStore
from .types import ScanSummary, User

logger = logging.getLogger(__name__)


class NotificationFailed(Exception):
    """The notifier reported a delivery failure."""
    pass


# =============================================================================
# Password State
# =============================================================================

@dataclass(frozen=True)
class Active:
    pass


@dataclass(frozen=True)
class ExpiringSoon:
    days_remaining: int


@dataclass(frozen=True)
class ExpiredNotice:
    pass


@dataclass(frozen=True)
class Expired:
    pass


PasswordState = Union[Active, ExpiringSoon, ExpiredNotice, Expired]


def password_state(today: date, expiration_date: Optional[date], warning_days: int = 7) -> PasswordState:
    """Classify a password for the given day.

    - no expiration date: Active
    - 1..warning_days days left: ExpiringSoon(days)
    - expired yesterday: ExpiredNotice
    - expired before yesterday: Expired
    - anything else (more days left, or expiring today): Active
    """
    if expiration_date is None:
        return Active()

    days = (expiration_date - today).days
    if 0 < days <= warning_days:
        return ExpiringSoon(days)
    if days == -1:
        return ExpiredNotice()
    if days < -1:
        return Expired()
    return Active()


def is_password_expired(user: User, today: date) -> bool:
    """True once the expiration date has passed. Never for users without one."""
    return user.expiration_date is not None and today > user.expiration_date


def urgency(days_remaining: int) -> str:
    """Warning headline keyed to 1, 2-3 and 4+ days remaining."""
    if days_remaining <= 1:
        return "URGENT: Your password expires in 1 day!"
    if days_remaining <= 3:
        return f"IMPORTANT: Your password expires in {days_remaining} days!"
    return f"Your password will expire in {days_remaining} days."


# =============================================================================
# Notification Text
# =============================================================================

WARNING_SUBJECT = "Password Expiration Warning: {days} {unit} remaining"

WARNING_BODY = """Hello {name},

{headline}

Passwords must be changed every {period} days. Change yours before
{expiration_date} to keep access to your account.

To change it, sign in and use Update Password on your profile page.
Once the password expires you will have to change it at your next login
before you can do anything else.

This is an automated message. Do not reply.
"""

EXPIRED_SUBJECT = "Password Has Expired - Action Required"

EXPIRED_BODY = """Hello {name},

Your password expired on {expiration_date}.

At your next login you will be asked to choose a new password. Your
current password will work one final time for that change only.

If you need help, contact your system administrator.

This is an automated message. Do not reply.
"""


# =============================================================================
# Scan
# =============================================================================

class PasswordLifecycleManager:
    """Runs the daily scan over all users and sends notifications."""

    def __init__(
        self,
        store: CredentialStore,
        notifier: Notifier,
        clock: Clock = None,
        warning_days: int = 7,
        expiration_period_days: int = 90,
    ):
        self.store = store
        self.notifier = notifier
        self.clock = clock or SystemClock()
        self.warning_days = warning_days
        self.expiration_period_days = expiration_period_days

    def _skip_reason(self, user: User) -> Optional[str]:
        if user.role in SELF_SERVICE_EXCLUDED_ROLES:
            return "excluded role"
        if not user.enabled:
            return "disabled"
        if user.account_locked:
            return "locked"
        if not user.email:
            return "no email"
        if user.expiration_date is None:
            return "no expiration"
        return None

    def scan(self, today: Optional[date] = None) -> ScanSummary:
        """Send warnings and expired notices for ``today`` (default: clock's today).

        Running twice for the same day sends the same set of messages; the
        scheduler is expected to run it once per day. A failure for one
        user is logged and counted, never aborting the batch.
        """
        today = today or self.clock.today()
        summary = ScanSummary()
        logger.info(f"Password lifecycle scan started for {today.isoformat()}")

        for user in self.store.list_users():
            summary.checked += 1
            if self._skip_reason(user):
                summary.skipped += 1
                continue

            state = password_state(today, user.expiration_date, self.warning_days)
            try:
                if isinstance(state, ExpiringSoon):
                    self._send_warning(user, state.days_remaining)
                    summary.warnings_sent += 1
                elif isinstance(state, ExpiredNotice):
                    self._send_expired_notice(user)
                    summary.expired_notices_sent += 1
            except NotificationFailed as e:
                summary.failed += 1
                summary.failures.append(user.username)
                logger.error(f"Lifecycle notification for {user.username} failed: {e}")
            except Exception:
                summary.failed += 1
                summary.failures.append(user.username)
                logger.exception(f"Lifecycle scan error for user {user.username}")

        logger.info(
            f"Password lifecycle scan finished: checked={summary.checked} "
            f"warnings={summary.warnings_sent} expired={summary.expired_notices_sent} "
            f"skipped={summary.skipped} failed={summary.failed}"
        )
        return summary

    def _send_warning(self, user: User, days_remaining: int):
        body = WARNING_BODY.format(
            name=user.display_name,
            headline=urgency(days_remaining),
            period=self.expiration_period_days,
            expiration_date=user.expiration_date.isoformat(),
        )
        unit = "day" if days_remaining == 1 else "days"
        self._send(user, WARNING_SUBJECT.format(days=days_remaining, unit=unit), body)

    def _send_expired_notice(self, user: User):
        body = EXPIRED_BODY.format(
            name=user.display_name,
            expiration_date=user.expiration_date.isoformat(),
        )
        self._send(user, EXPIRED_SUBJECT, body)

    def _send(self, user: User, subject: str, body: str):
        result = self.notifier.send(user.email, subject, body)
        if not result.ok:
            raise NotificationFailed(result.error or "unknown error")

