"""
Flask route decorators for authentication and authorization.

Provides:
- jwt_required: Require a valid access token
- permission_required: Require a (resource, action) grant for the caller's role

Every protected view declares its requirement as metadata
(``view.required_permission``) and the check runs before the view body.
Failures raise APIError subclasses; core.errors renders them as JSON.
"""
from functools import wraps

from flask import g, request

from core.errors import AuthenticationError

from .errors import PasswordChangeRequired
from .services import get_auth_services
from .tokens import get_token_from_request

# Reachable while a forced password change is pending
PASSWORD_CHANGE_ALLOWED_PATHS = frozenset({
    "/api/auth/change-password",
    "/api/auth/logout",
    "/api/auth/me",
})


class MissingToken(AuthenticationError):
    code = "token_missing"
    public_message = "Missing authorization token"


def jwt_required(f):
    """Decorator to require a valid access token for endpoint.

    Sets g.current_user, g.current_role and g.token_claims on success.
    Accounts flagged for a forced password change may only reach the
    password change, logout and identity endpoints.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        token = get_token_from_request()
        if not token:
            raise MissingToken("No bearer token on request")

        claims, user = get_auth_services().tokens.authenticate(token)

        # Store user info in Flask's g object for access in route
        g.current_user = user.username
        g.current_role = user.role
        g.token_claims = claims
        g.access_token = token

        if user.force_password_change and request.path not in PASSWORD_CHANGE_ALLOWED_PATHS:
            raise PasswordChangeRequired(f"{user.username} must change password before accessing {request.path}")

        return f(*args, **kwargs)
    return decorated


def permission_required(resource: str, action: str):
    """Decorator factory to require one (resource, action) permission.

    Usage:
        @permission_required("USER_MANAGEMENT", "CREATE")
        def create_user():
            ...
    """
    def decorator(f):
        @wraps(f)
        @jwt_required
        def decorated(*args, **kwargs):
            get_auth_services().enforcer.authorize(g.current_user, g.current_role, resource, action)
            return f(*args, **kwargs)

        decorated.required_permission = (resource, action)
        return decorated
    return decorator


def has_permission(resource: str, action: str) -> bool:
    """Helper to check the current caller's role inside a route (no audit on False)."""
    role = getattr(g, "current_role", None)
    if role is None:
        return False
    return get_auth_services().permissions.has_permission(role, resource, action)
