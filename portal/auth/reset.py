"""
Self-service password reset by email.

request_reset(email) mails a single-use link to every account registered
under the address that may reset its own password. Unknown addresses,
GUEST, disabled and locked accounts get nothing, and the caller gets the
same answer either way.

Reset tokens are random UUIDs held in process memory until they are used
or expire (PASSWORD_RESET_TOKEN_MINUTES, default 15). A restart drops
outstanding links; the user asks again. purge_expired() runs on the
scheduler to drop links nobody used.
"""
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from core.notifier import Notifier, redact_email
from core.timestamps import Clock, SystemClock

from .config import SELF_SERVICE_EXCLUDED_ROLES
from .errors import PasswordPolicyViolation, ResetTokenInvalid
from .identity import AuthenticationService
from .store import CredentialStore
from .types import User

logger = logging.getLogger(__name__)

RESET_SUBJECT = "Password Reset Request"

RESET_BODY = """Hello {name},

You requested a password reset for your TaskActivity account ({username}).

Use the link below to choose a new password:
{link}

The link works once and expires in {minutes} minutes.

If you did not request this reset, ignore this message. Your password stays
unchanged. Do not share this link with anyone.

This is an automated message. Do not reply.
"""


@dataclass(frozen=True)
class ResetGrant:
    username: str
    expires_at: datetime


class PasswordResetService:
    """Issues and redeems emailed password reset links."""

    def __init__(
        self,
        store: CredentialStore,
        identity: AuthenticationService,
        notifier: Notifier,
        clock: Clock = None,
        token_ttl_minutes: int = 15,
        link_base_url: str = "http://localhost:8080",
    ):
        self.store = store
        self.identity = identity
        self.notifier = notifier
        self.clock = clock or SystemClock()
        self.token_ttl = timedelta(minutes=token_ttl_minutes)
        self.link_base_url = link_base_url.rstrip("/")
        self._grants: dict[str, ResetGrant] = {}
        self._lock = threading.Lock()

    def _eligible(self, user: User) -> bool:
        return (
            user.role not in SELF_SERVICE_EXCLUDED_ROLES
            and user.enabled
            and not user.account_locked
        )

    # =========================================================================
    # Request
    # =========================================================================

    def request_reset(self, email: str) -> None:
        """Mail a reset link to each eligible account under ``email``.

        Returns nothing and raises nothing for unknown or ineligible
        addresses, so callers cannot tell which addresses are registered.
        """
        users = self.store.find_users_by_email(email) if email else []
        if not users:
            logger.info(f"Password reset requested for unregistered address {redact_email(email)}")
            return

        for user in users:
            if not self._eligible(user):
                logger.warning(f"Password reset not offered to {user.username} (role={user.role})")
                continue
            self._send_link(user)

    def _send_link(self, user: User):
        token = str(uuid.uuid4())
        with self._lock:
            self._grants[token] = ResetGrant(user.username, self.clock.now() + self.token_ttl)

        body = RESET_BODY.format(
            name=user.display_name,
            username=user.username,
            link=f"{self.link_base_url}/change-password?token={token}",
            minutes=int(self.token_ttl.total_seconds() // 60),
        )
        result = self.notifier.send(user.email, RESET_SUBJECT, body)
        if not result.ok:
            # Undelivered links are withdrawn
            with self._lock:
                self._grants.pop(token, None)
            logger.error(f"Password reset mail for {user.username} not delivered: {result.error}")
            return
        logger.info(f"Password reset link sent to {redact_email(user.email)} for user {user.username}")

    # =========================================================================
    # Redeem
    # =========================================================================

    def validate_token(self, token: str) -> Optional[str]:
        """Username the token was issued for, or None if unknown or expired."""
        with self._lock:
            grant = self._grants.get(token)
            if grant is None:
                return None
            if self.clock.now() >= grant.expires_at:
                del self._grants[token]
                return None
            return grant.username

    def reset_password(self, token: str, new_password: str) -> User:
        """Redeem a reset link.

        The token is claimed before the password is written, so two
        concurrent redemptions cannot both succeed. A policy rejection
        hands the token back for another attempt until it expires.

        Raises:
            ResetTokenInvalid: unknown, used or expired token
            PasswordPolicyViolation: new password rejected by policy or history
            PermissionDenied, AccountLocked, AccountDisabled: account changed
                since the link was issued
        """
        with self._lock:
            grant = self._grants.pop(token, None)
        if grant is None or self.clock.now() >= grant.expires_at:
            raise ResetTokenInvalid("Unknown, used or expired reset token")

        try:
            return self.identity.complete_reset(grant.username, new_password)
        except PasswordPolicyViolation:
            with self._lock:
                self._grants.setdefault(token, grant)
            raise

    def purge_expired(self) -> int:
        """Drop links past their expiry. Returns how many were removed."""
        now = self.clock.now()
        with self._lock:
            expired = [token for token, grant in self._grants.items() if grant.expires_at <= now]
            for token in expired:
                del self._grants[token]
        if expired:
            logger.info(f"Purged {len(expired)} expired password reset token(s)")
        return len(expired)

    def __len__(self) -> int:
        return len(self._grants)
