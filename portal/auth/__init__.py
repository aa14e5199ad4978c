"""
Authentication, authorization and credential lifecycle.

Public API:
- Decorators: jwt_required, permission_required, has_permission
- Wiring: AuthServices, build_auth_services, get_auth_services
- Components: TokenService, PermissionRegistry, PermissionEnforcer,
  LockoutManager, PasswordLifecycleManager, AuditLog, AuthenticationService,
  PasswordResetService
- Errors: the auth failure taxonomy

Internal modules should import from submodules directly.
External callers should use this facade.

Import Rules:
- External callers: Use `from portal.auth import X` (this facade)
- Internal auth modules: Use `from .submodule import X` (direct imports)
- Ban: `from portal.auth import X` inside auth submodules (causes facade import)
"""

# =============================================================================
# Decorators (most commonly used)
# =============================================================================
from .decorators import (
    jwt_required,
    permission_required,
    has_permission,
)

# =============================================================================
# Wiring
# =============================================================================
from .services import (
    AuthServices,
    build_auth_services,
    get_auth_services,
)

# =============================================================================
# Components
# =============================================================================
from .audit import AuditLog
from .codec import TokenCodec
from .identity import AuthenticationService
from .lifecycle import (
    PasswordLifecycleManager,
    password_state,
    is_password_expired,
    urgency,
    Active,
    ExpiringSoon,
    ExpiredNotice,
    Expired,
)
from .lockout import LockoutManager
from .passwords import PasswordPolicy, hash_password, verify_password
from .permissions import PermissionEnforcer, PermissionRegistry
from .reset import PasswordResetService
from .revocation import (
    InMemoryRevocationRegistry,
    SqliteRevocationRegistry,
    RedisRevocationRegistry,
    RevocationUnavailable,
)
from .schema import init_database
from .store import CredentialStore
from .tokens import TokenService, get_token_from_request

# =============================================================================
# Types & Errors
# =============================================================================
from .types import (
    User,
    TokenKind,
    TokenClaims,
    TokenPair,
    LoginResult,
    LoginOutcome,
    Authorized,
    AuditPage,
    ScanSummary,
)
from .errors import (
    InvalidCredentials,
    AccountDisabled,
    AccountLocked,
    PasswordExpired,
    TokenInvalid,
    TokenMalformed,
    TokenSubjectInvalid,
    TokenExpired,
    TokenWrongKind,
    TokenRevoked,
    TokenPrecedesPasswordChange,
    PermissionDenied,
    PasswordChangeRequired,
    PasswordPolicyViolation,
    UserNotFound,
    UserExists,
    RoleNotFound,
    ResetTokenInvalid,
)

__all__ = [
    # Decorators
    "jwt_required",
    "permission_required",
    "has_permission",
    # Wiring
    "AuthServices",
    "build_auth_services",
    "get_auth_services",
    # Components
    "AuditLog",
    "TokenCodec",
    "AuthenticationService",
    "PasswordLifecycleManager",
    "password_state",
    "is_password_expired",
    "urgency",
    "Active",
    "ExpiringSoon",
    "ExpiredNotice",
    "Expired",
    "LockoutManager",
    "PasswordPolicy",
    "hash_password",
    "verify_password",
    "PermissionEnforcer",
    "PermissionRegistry",
    "PasswordResetService",
    "InMemoryRevocationRegistry",
    "SqliteRevocationRegistry",
    "RedisRevocationRegistry",
    "RevocationUnavailable",
    "init_database",
    "CredentialStore",
    "TokenService",
    "get_token_from_request",
    # Types
    "User",
    "TokenKind",
    "TokenClaims",
    "TokenPair",
    "LoginResult",
    "LoginOutcome",
    "Authorized",
    "AuditPage",
    "ScanSummary",
    # Errors
    "InvalidCredentials",
    "AccountDisabled",
    "AccountLocked",
    "PasswordExpired",
    "TokenInvalid",
    "TokenMalformed",
    "TokenSubjectInvalid",
    "TokenExpired",
    "TokenWrongKind",
    "TokenRevoked",
    "TokenPrecedesPasswordChange",
    "PermissionDenied",
    "PasswordChangeRequired",
    "PasswordPolicyViolation",
    "UserNotFound",
    "UserExists",
    "RoleNotFound",
    "ResetTokenInvalid",
]
