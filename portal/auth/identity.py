"""
User identity flows: login, password change, and account administration.

Handles:
- Login (lockout gate, password check, account state, token issue, audit)
- Self-service password change, including the one-time change with an
  expired password
- Admin actions: create, disable/enable, unlock, reset password
- Completing an emailed password reset (see reset.py)

A GUEST login sends a notice to the administrator address.
"""
import logging
from datetime import timedelta

from core.notifier import Notifier
from core.timestamps import Clock, SystemClock

from .audit import AuditLog
from .config import ROLE_GUEST, SELF_SERVICE_EXCLUDED_ROLES
from .errors import (
    AccountDisabled,
    AccountLocked,
    InvalidCredentials,
    PasswordExpired,
    PasswordPolicyViolation,
    PermissionDenied,
)
from .lifecycle import is_password_expired
from .lockout import LockoutManager
from .passwords import PasswordPolicy, hash_password, verify_against_dummy, verify_password
from .store import CredentialStore
from .tokens import TokenService
from .types import LoginOutcome, LoginResult, User

logger = logging.getLogger(__name__)

GUEST_LOGIN_SUBJECT = "GUEST User Login"

GUEST_LOGIN_BODY = """A user with the GUEST role has logged in.

  Name:       {name}
  Username:   {username}
  Logged in:  {timestamp}
  IP address: {ip_address}

This is an automated message. Do not reply.
"""


class AuthenticationService:
    """Login and credential lifecycle operations."""

    def __init__(
        self,
        store: CredentialStore,
        tokens: TokenService,
        lockout: LockoutManager,
        audit: AuditLog,
        policy: PasswordPolicy = None,
        clock: Clock = None,
        password_expiration_days: int = 90,
        password_history_size: int = 5,
        notifier: Notifier = None,
        admin_address: str = None,
    ):
        self.store = store
        self.tokens = tokens
        self.lockout = lockout
        self.audit = audit
        self.policy = policy or PasswordPolicy()
        self.clock = clock or SystemClock()
        self.password_expiration_days = password_expiration_days
        self.password_history_size = password_history_size
        self.notifier = notifier
        self.admin_address = admin_address

    def _next_expiration(self):
        return self.clock.today() + timedelta(days=self.password_expiration_days)

    # =========================================================================
    # Login
    # =========================================================================

    def login(
        self,
        username: str,
        password: str,
        ip_address: str = None,
        user_agent: str = None,
    ) -> LoginResult:
        """Authenticate and issue a token pair.

        Raises:
            AccountLocked: account is locked, or this failure locked it
            InvalidCredentials: unknown user or wrong password (indistinguishable)
            AccountDisabled: correct password, account disabled
            PasswordExpired: correct password past its expiration date
        """
        def fail(error, detail):
            self.audit.record_login(username, LoginOutcome.FAILURE, ip_address, user_agent, detail)
            raise error

        user = self.store.get_user(username)

        try:
            self.lockout.check(user)
        except AccountLocked as e:
            fail(e, "account locked")

        if user is None:
            verify_against_dummy(password)
            fail(InvalidCredentials(f"Unknown user: {username}"), "invalid credentials")

        if not verify_password(password, user.password_hash):
            _, tripped = self.lockout.record_failure(username, ip_address)
            if tripped:
                fail(AccountLocked(f"Account locked by this failure: {username}"), "invalid credentials; account locked")
            fail(InvalidCredentials(f"Wrong password for {username}"), "invalid credentials")

        if not user.enabled:
            fail(AccountDisabled(f"Disabled account: {username}"), "account disabled")

        if is_password_expired(user, self.clock.today()):
            self_service = user.role not in SELF_SERVICE_EXCLUDED_ROLES
            fail(PasswordExpired(f"Password expired for {username}", self_service=self_service), "password expired")

        self.lockout.record_success(username)
        pair = self.tokens.issue(user)
        self.audit.record_login(username, LoginOutcome.SUCCESS, ip_address, user_agent, None)
        logger.info(f"User logged in: {username}")
        if user.role == ROLE_GUEST:
            self._notify_guest_login(user, ip_address)

        return LoginResult(
            username=user.username,
            role=user.role,
            tokens=pair,
            password_change_required=user.force_password_change,
        )

    def _notify_guest_login(self, user: User, ip_address: str = None):
        """Tell the administrator a GUEST account was used. Never fails the login."""
        if self.notifier is None or not self.admin_address:
            return
        body = GUEST_LOGIN_BODY.format(
            name=user.display_name,
            username=user.username,
            timestamp=self.clock.now().isoformat(),
            ip_address=ip_address or "unknown",
        )
        result = self.notifier.send(self.admin_address, GUEST_LOGIN_SUBJECT, body)
        if not result.ok:
            logger.error(f"GUEST login notice for {user.username} not delivered: {result.error}")

    # =========================================================================
    # Password Change
    # =========================================================================

    def change_password(self, username: str, current_password: str, new_password: str) -> User:
        """Self-service password change.

        Also the one-time path for an expired password: the expired password
        is accepted here as ``current_password``, and once replaced it no
        longer matches and sits in history, so it cannot be used again.

        Raises:
            PermissionDenied: role has no password self-service (GUEST)
            InvalidCredentials: unknown user or wrong current password
            AccountLocked, AccountDisabled: account state forbids the change
            PasswordPolicyViolation: new password rejected by policy or history
        """
        user = self.store.get_user(username)
        if user is None:
            verify_against_dummy(current_password)
            raise InvalidCredentials(f"Unknown user: {username}")

        if user.role in SELF_SERVICE_EXCLUDED_ROLES:
            raise PermissionDenied(f"Role {user.role} has no password self-service")

        self.lockout.check(user)

        if not verify_password(current_password, user.password_hash):
            _, tripped = self.lockout.record_failure(username)
            if tripped:
                raise AccountLocked(f"Account locked by this failure: {username}")
            raise InvalidCredentials(f"Wrong current password for {username}")

        if not user.enabled:
            raise AccountDisabled(f"Disabled account: {username}")

        self._check_new_password(user, new_password, check_history=True)

        self.store.set_password(
            username,
            hash_password(new_password),
            changed_at=self.clock.now(),
            expiration_date=self._next_expiration(),
            force_password_change=False,
            history_size=self.password_history_size,
        )
        self.lockout.record_success(username)
        logger.info(f"Password changed for user: {username}")
        return self.store.require_user(username)

    def _check_new_password(self, user: User, new_password: str, check_history: bool):
        ok, message = self.policy.validate(new_password, user.username)
        if not ok:
            raise PasswordPolicyViolation(message)

        if verify_password(new_password, user.password_hash):
            raise PasswordPolicyViolation("New password must be different from the current password")

        if check_history:
            for old_hash in self.store.recent_password_hashes(user.username, self.password_history_size):
                if verify_password(new_password, old_hash):
                    raise PasswordPolicyViolation(
                        f"Password was used recently. Choose one not among your last "
                        f"{self.password_history_size} passwords"
                    )

    def complete_reset(self, username: str, new_password: str) -> User:
        """Set the password chosen through an emailed reset link.

        The link stands in for the current password; policy and history
        apply as for a normal change.

        Raises:
            PermissionDenied: role has no password self-service (GUEST)
            AccountLocked, AccountDisabled: account state forbids the change
            PasswordPolicyViolation: new password rejected by policy or history
        """
        user = self.store.require_user(username)
        if user.role in SELF_SERVICE_EXCLUDED_ROLES:
            raise PermissionDenied(f"Role {user.role} has no password self-service")
        self.lockout.check(user)
        if not user.enabled:
            raise AccountDisabled(f"Disabled account: {username}")

        self._check_new_password(user, new_password, check_history=True)

        self.store.set_password(
            username,
            hash_password(new_password),
            changed_at=self.clock.now(),
            expiration_date=self._next_expiration(),
            force_password_change=False,
            history_size=self.password_history_size,
        )
        logger.info(f"Password reset by email link for user: {username}")
        return self.store.require_user(username)

    # =========================================================================
    # Administration
    # =========================================================================

    def create_user(
        self,
        username: str,
        password: str,
        role: str,
        email: str = None,
        firstname: str = None,
        lastname: str = None,
        force_password_change: bool = True,
    ) -> User:
        """Create an account. Usernames are permanent; renaming means disable + create.

        Roles without password self-service (GUEST) never get a forced change.
        """
        if not username or not username.strip():
            raise PasswordPolicyViolation("Username is required")

        ok, message = self.policy.validate(password, username)
        if not ok:
            raise PasswordPolicyViolation(message)

        return self.store.create_user(
            username=username.strip(),
            password_hash=hash_password(password),
            role=role,
            changed_at=self.clock.now(),
            email=email,
            firstname=firstname,
            lastname=lastname,
            expiration_date=self._next_expiration(),
            force_password_change=force_password_change and role not in SELF_SERVICE_EXCLUDED_ROLES,
        )

    def admin_reset_password(self, username: str, new_password: str) -> User:
        """Set a temporary password: unlocks, and forces a change at next login.

        Moves the password-change cutoff, so every token issued before the
        reset stops working. GUEST accounts get no forced change.
        """
        user = self.store.require_user(username)
        self._check_new_password(user, new_password, check_history=False)

        self.store.set_password(
            username,
            hash_password(new_password),
            changed_at=self.clock.now(),
            expiration_date=self._next_expiration(),
            force_password_change=user.role not in SELF_SERVICE_EXCLUDED_ROLES,
            history_size=self.password_history_size,
        )
        self.lockout.unlock(username)
        logger.info(f"Password reset by administrator for user: {username}")
        return self.store.require_user(username)

    def set_enabled(self, username: str, enabled: bool) -> User:
        self.store.set_enabled(username, enabled)
        logger.info(f"User {'enabled' if enabled else 'disabled'}: {username}")
        return self.store.require_user(username)

    def unlock(self, username: str) -> User:
        self.lockout.unlock(username)
        return self.store.require_user(username)
