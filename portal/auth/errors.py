"""
Auth failure taxonomy.

Every class is an APIError so register_error_handlers renders it. Token
failures share one public message, and credential failures never say
whether the username or the password was wrong.
"""
from core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


# =============================================================================
# Credential Failures (login)
# =============================================================================

class InvalidCredentials(AuthenticationError):
    code = "invalid_credentials"
    public_message = "Invalid username or password"


class AccountDisabled(AuthenticationError):
    code = "account_disabled"
    public_message = "Account is disabled. Please contact an administrator."


class AccountLocked(AuthenticationError):
    code = "account_locked"
    public_message = "Account is locked due to too many failed login attempts. Please contact an administrator."


class PasswordExpired(AuthenticationError):
    """
    Password is past its expiration date.

    ``self_service`` tells the client whether the one-time expired-password
    change is available. GUEST accounts get a terminal message instead.
    """
    code = "password_expired"

    def __init__(self, message: str = "", self_service: bool = True):
        super().__init__(message, status_code=403, payload={"self_service": self_service})
        self.self_service = self_service

    def client_message(self) -> str:
        if self.self_service:
            return "Your password has expired. Please change your password to continue."
        return "Your password has expired. Please contact an administrator to reset your password."


# =============================================================================
# Token Failures
# =============================================================================

class TokenInvalid(AuthenticationError):
    """Base for every token rejection. The client only ever sees the generic message."""
    code = "token_invalid"
    public_message = "Invalid or expired token"


class TokenMalformed(TokenInvalid):
    pass


class TokenSubjectInvalid(TokenMalformed):
    """Signature is fine but the subject is unknown, disabled or locked."""
    pass


class TokenExpired(TokenInvalid):
    pass


class TokenWrongKind(TokenInvalid):
    pass


class TokenRevoked(TokenInvalid):
    pass


class TokenPrecedesPasswordChange(TokenInvalid):
    pass


# =============================================================================
# Authorization and Account Management
# =============================================================================

class PermissionDenied(PermissionDeniedError):
    public_message = "Access denied"

    def __init__(self, message: str = "", resource: str = None, action: str = None):
        super().__init__(message)
        self.resource = resource
        self.action = action


class PasswordChangeRequired(PermissionDeniedError):
    code = "password_change_required"
    public_message = "Password change required"


class PasswordPolicyViolation(ValidationError):
    """Message is the policy rule that failed, safe to show."""
    code = "password_policy"


class UserNotFound(NotFoundError):
    code = "user_not_found"


class UserExists(ConflictError):
    code = "user_exists"


class RoleNotFound(NotFoundError):
    code = "role_not_found"


class RoleExists(ConflictError):
    code = "role_exists"


class PermissionNotFound(NotFoundError):
    code = "permission_not_found"


class ResetTokenInvalid(ValidationError):
    """Unknown, used or expired password reset link."""
    code = "reset_token_invalid"
    public_message = "Invalid or expired reset link. Please request a new one."
