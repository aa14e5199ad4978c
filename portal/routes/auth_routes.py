"""
Authentication endpoints for the TaskActivity API.

Provides login, token refresh, logout, password changes, password reset by
email and login audit.
"""

from flask import Blueprint, jsonify, request, g

from core.errors import ValidationError
from portal.auth import (
    get_auth_services,
    get_token_from_request,
    jwt_required,
)

# Create blueprint
auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

MAX_USERNAME_LENGTH = 100
MAX_PASSWORD_LENGTH = 200
MAX_TOKEN_LENGTH = 4096
MAX_EMAIL_LENGTH = 254


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        raise ValidationError("No data provided")
    return data


def _max_length(name: str) -> int:
    if name == "username":
        return MAX_USERNAME_LENGTH
    if name == "email":
        return MAX_EMAIL_LENGTH
    if name.endswith("_token"):
        return MAX_TOKEN_LENGTH
    return MAX_PASSWORD_LENGTH


def _required_strings(data: dict, *fields: str) -> list[str]:
    """Pull string fields, rejecting missing, non-string or oversized values."""
    values = []
    for name in fields:
        value = data.get(name)
        # Type validation - prevent type confusion attacks
        if not isinstance(value, str) or not value:
            raise ValidationError(f"'{name}' is required and must be a string")
        limit = _max_length(name)
        if len(value) > limit:
            raise ValidationError(f"'{name}' exceeds maximum length")
        values.append(value)
    return values


def _client_meta() -> tuple[str, str]:
    return request.remote_addr, request.headers.get("User-Agent")


# =============================================================================
# Login / Logout / Token Management
# =============================================================================

@auth_bp.route('/login', methods=['POST'])
def login():
    """
    Authenticate user and return an access/refresh token pair.
    Rate limited (RATE_LIMIT_AUTH, applied at registration).
    """
    username, password = _required_strings(_json_body(), "username", "password")
    ip_address, user_agent = _client_meta()

    result = get_auth_services().identity.login(username, password, ip_address, user_agent)
    response = result.to_dict()
    response["message"] = "Password change required" if result.password_change_required else "Login successful"
    return jsonify(response)


@auth_bp.route('/refresh', methods=['POST'])
def refresh_access_token():
    """Get a new token pair using a refresh token (with rotation)."""
    (refresh_token,) = _required_strings(_json_body(), "refresh_token")
    pair = get_auth_services().tokens.refresh(refresh_token)
    return jsonify({
        "access_token": pair.access_token,
        "refresh_token": pair.refresh_token,
        "token_type": pair.token_type,
        "access_expires_in_ms": pair.access_expires_in_ms,
    })


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Revoke the presented tokens. Always succeeds."""
    access_token = get_token_from_request()
    data = request.get_json(silent=True) or {}
    refresh_token = data.get("refresh_token") if isinstance(data, dict) else None
    refresh_token = refresh_token or request.headers.get("X-Refresh-Token")

    get_auth_services().tokens.logout(
        access_token,
        refresh_token if isinstance(refresh_token, str) else None,
    )
    return jsonify({"message": "Logged out successfully"})


@auth_bp.route('/me', methods=['GET'])
@jwt_required
def get_current_user():
    """Get current authenticated user info."""
    user = get_auth_services().store.require_user(g.current_user)
    return jsonify({
        "username": user.username,
        "role": user.role,
        "email": user.email,
        "firstname": user.firstname,
        "lastname": user.lastname,
        "password_change_required": user.force_password_change,
        "password_expiration_date": user.expiration_date.isoformat() if user.expiration_date else None,
    })


# =============================================================================
# Password Changes
# =============================================================================

@auth_bp.route('/change-password', methods=['POST'])
@jwt_required
def change_user_password():
    """Change current user's password and return a fresh token pair.

    Tokens issued before the change stop working, so the caller needs the
    new pair to continue.
    """
    current_password, new_password = _required_strings(_json_body(), "current_password", "new_password")
    services = get_auth_services()

    user = services.identity.change_password(g.current_user, current_password, new_password)
    pair = services.tokens.issue(user)
    return jsonify({
        "message": "Password changed successfully",
        "access_token": pair.access_token,
        "refresh_token": pair.refresh_token,
        "token_type": pair.token_type,
        "access_expires_in_ms": pair.access_expires_in_ms,
    })


@auth_bp.route('/expired-password', methods=['POST'])
def change_expired_password():
    """One-time change for an expired password, then log in with the new one."""
    username, current_password, new_password = _required_strings(
        _json_body(), "username", "current_password", "new_password"
    )
    ip_address, user_agent = _client_meta()
    identity = get_auth_services().identity

    identity.change_password(username, current_password, new_password)
    result = identity.login(username, new_password, ip_address, user_agent)
    response = result.to_dict()
    response["message"] = "Password changed successfully"
    return jsonify(response)


@auth_bp.route('/forgot-password', methods=['POST'])
def request_password_reset():
    """Email a reset link. The answer never reveals whether the address is registered."""
    (email,) = _required_strings(_json_body(), "email")
    get_auth_services().resets.request_reset(email)
    return jsonify({
        "message": "If that email address is registered, you will receive a password reset link shortly."
    })


@auth_bp.route('/reset-password', methods=['POST'])
def reset_password_with_token():
    """Set a new password using the token from a reset email."""
    reset_token, new_password = _required_strings(_json_body(), "reset_token", "new_password")
    get_auth_services().resets.reset_password(reset_token, new_password)
    return jsonify({"message": "Password reset successfully. Please log in with your new password."})


# =============================================================================
# Login Audit
# =============================================================================

@auth_bp.route('/login-audit', methods=['GET'])
@jwt_required
def get_login_audit():
    """Login history. Own entries, or anyone's with LOGIN_AUDIT:READ_ALL."""
    page = get_auth_services().audit.get_login_audit(
        g.current_user,
        g.current_role,
        target_username=request.args.get("username") or None,
        page=request.args.get("page", 1),
        page_size=request.args.get("page_size", 50),
    )
    return jsonify(page.to_dict())
