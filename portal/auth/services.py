"""
Wiring for the auth core.

build_auth_services() constructs every component from settings and shares
one clock, one database and one notifier between them. The Flask app keeps
the result in app.extensions["auth"]; request code reaches it through
get_auth_services().
"""
import logging
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from core.db import DatabaseManager
from core.notifier import Notifier
from core.timestamps import Clock, SystemClock

from .audit import AuditLog
from .codec import TokenCodec
from .identity import AuthenticationService
from .lifecycle import PasswordLifecycleManager
from .lockout import LockoutManager
from .passwords import PasswordPolicy
from .permissions import PermissionEnforcer, PermissionRegistry
from .reset import PasswordResetService
from .revocation import RevocationRegistry, build_revocation_registry
from .schema import init_database
from .store import CredentialStore
from .tokens import TokenService

logger = logging.getLogger(__name__)

EXTENSION_KEY = "auth"


@dataclass
class AuthServices:
    clock: Clock
    db: DatabaseManager
    store: CredentialStore
    revocation: RevocationRegistry
    tokens: TokenService
    permissions: PermissionRegistry
    enforcer: PermissionEnforcer
    lockout: LockoutManager
    audit: AuditLog
    lifecycle: PasswordLifecycleManager
    identity: AuthenticationService
    resets: PasswordResetService


def build_auth_services(
    settings,
    db: DatabaseManager,
    notifier: Notifier,
    clock: Clock = None,
    revocation: RevocationRegistry = None,
) -> AuthServices:
    """Create the schema (idempotent) and every auth component."""
    clock = clock or SystemClock()
    auth = settings.auth

    init_database(
        db,
        admin_password=auth.admin_initial_password.get_secret_value() or None,
        clock=clock,
    )

    store = CredentialStore(db)
    if revocation is None:
        revocation = build_revocation_registry(auth, settings.redis, db, clock)

    codec = TokenCodec(auth.jwt_secret.get_secret_value(), auth.jwt_algorithm, clock)
    tokens = TokenService(
        codec,
        revocation,
        store,
        clock=clock,
        access_lifetime=timedelta(hours=auth.jwt_expiration_hours),
        refresh_lifetime=timedelta(days=auth.jwt_refresh_expiration_days),
    )

    permissions = PermissionRegistry(store)
    audit = AuditLog(db, clock=clock, registry=permissions)
    enforcer = PermissionEnforcer(permissions, audit)

    lockout = LockoutManager(
        store,
        threshold=auth.lockout_threshold,
        notifier=notifier,
        admin_address=settings.mail.admin_address,
        clock=clock,
    )
    lifecycle = PasswordLifecycleManager(
        store,
        notifier,
        clock=clock,
        warning_days=auth.expiration_warning_days,
        expiration_period_days=auth.password_expiration_days,
    )
    identity = AuthenticationService(
        store,
        tokens,
        lockout,
        audit,
        policy=PasswordPolicy.from_settings(auth),
        clock=clock,
        password_expiration_days=auth.password_expiration_days,
        password_history_size=auth.password_history_size,
        notifier=notifier,
        admin_address=settings.mail.admin_address,
    )
    resets = PasswordResetService(
        store,
        identity,
        notifier,
        clock=clock,
        token_ttl_minutes=auth.password_reset_token_minutes,
        link_base_url=auth.password_reset_link_base_url,
    )

    return AuthServices(
        clock=clock,
        db=db,
        store=store,
        revocation=revocation,
        tokens=tokens,
        permissions=permissions,
        enforcer=enforcer,
        lockout=lockout,
        audit=audit,
        lifecycle=lifecycle,
        identity=identity,
        resets=resets,
    )


def get_auth_services() -> AuthServices:
    """Services for the current Flask app."""
    return current_app.extensions[EXTENSION_KEY]
