"""
Account lockout after repeated failed logins.

State per user: Active[count] -> Locked once count reaches the threshold.
A successful login resets count to 0. Locked stays locked until an
administrator unlocks the account; there is no timed release.

Concurrency: failures for one account are serialized in-process by a
striped lock, and the store applies each increment as a single conditional
UPDATE, so parallel bad attempts can neither skip nor overshoot the trip.
"""
import logging
import threading
from typing import Optional

from core.notifier import Notifier
from core.timestamps import Clock, SystemClock

from .errors import AccountLocked
from .store import CredentialStore
from .types import User

logger = logging.getLogger(__name__)

_LOCK_STRIPES = 64

LOCKOUT_ALERT_SUBJECT = "Account Locked: {username}"

LOCKOUT_ALERT_BODY = """ACCOUNT LOCKOUT ALERT

The account below was locked after {attempts} consecutive failed login attempts.

  Username:   {username}
  Name:       {name}
  Locked at:  {timestamp}
  IP address: {ip_address}

The account stays locked until an administrator unlocks it
(POST /api/admin/users/{username}/unlock) or resets its password.

This is an automated message. Do not reply.
"""


class LockoutManager:
    """Failed-login counting, lock gate and admin unlock."""

    def __init__(
        self,
        store: CredentialStore,
        threshold: int = 5,
        notifier: Optional[Notifier] = None,
        admin_address: Optional[str] = None,
        clock: Clock = None,
    ):
        self.store = store
        self.threshold = threshold
        self.notifier = notifier
        self.admin_address = admin_address
        self.clock = clock or SystemClock()
        self._stripes = [threading.Lock() for _ in range(_LOCK_STRIPES)]

    def _lock_for(self, username: str) -> threading.Lock:
        return self._stripes[hash(username) % _LOCK_STRIPES]

    def check(self, user: Optional[User]):
        """Gate run before password verification.

        Raises:
            AccountLocked: if the account is locked
        """
        if user is not None and user.account_locked:
            raise AccountLocked(f"Login attempt on locked account: {user.username}")

    def record_failure(self, username: str, ip_address: str = None) -> tuple[int, bool]:
        """Count a failed login.

        Returns:
            (failed_login_count, tripped) tuple; tripped is True only for the
            failure that locked the account
        """
        with self._lock_for(username):
            count, tripped = self.store.increment_failed_login(username, self.threshold)

        if tripped:
            logger.warning(f"Account locked after {count} failed attempts: {username}")
            self._notify_admin(username, count, ip_address)
        else:
            logger.info(f"Failed login {count}/{self.threshold} for user: {username}")
        return count, tripped

    def record_success(self, username: str):
        with self._lock_for(username):
            self.store.reset_failed_logins(username)

    def unlock(self, username: str):
        """Administrator action: clear the lock and the counter."""
        with self._lock_for(username):
            self.store.unlock(username)
        logger.info(f"Account unlocked: {username}")

    def _notify_admin(self, username: str, attempts: int, ip_address: Optional[str]):
        if self.notifier is None or not self.admin_address:
            return
        user = self.store.get_user(username)
        body = LOCKOUT_ALERT_BODY.format(
            username=username,
            name=user.display_name if user else username,
            attempts=attempts,
            timestamp=self.clock.now().isoformat(),
            ip_address=ip_address or "unknown",
        )
        result = self.notifier.send(
            self.admin_address,
            LOCKOUT_ALERT_SUBJECT.format(username=username),
            body,
        )
        if not result.ok:
            logger.error(f"Lockout alert for {username} not delivered: {result.error}")
