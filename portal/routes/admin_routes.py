"""
Administrative endpoints: users, role permissions, password lifecycle.

Every route declares the (resource, action) it needs through
permission_required; the check runs before the view body.

USER holds USER_MANAGEMENT:READ/UPDATE for its own profile, so changes to
another account's state (unlock, enable/disable, reset) need CREATE or
DELETE, which only ADMIN holds by default.
"""

import logging

from flask import Blueprint, jsonify, request, g

from core.errors import ValidationError
from portal.auth import get_auth_services, permission_required

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        raise ValidationError("No data provided")
    return data


def _user_dict(user) -> dict:
    return {
        "username": user.username,
        "role": user.role,
        "enabled": user.enabled,
        "account_locked": user.account_locked,
        "failed_login_count": user.failed_login_count,
        "force_password_change": user.force_password_change,
        "expiration_date": user.expiration_date.isoformat() if user.expiration_date else None,
        "email": user.email,
        "firstname": user.firstname,
        "lastname": user.lastname,
    }


# =============================================================================
# Users
# =============================================================================

@admin_bp.route('/users', methods=['GET'])
@permission_required("USER_MANAGEMENT", "READ")
def list_users():
    users = get_auth_services().store.list_users()
    return jsonify({"users": [_user_dict(u) for u in users]})


@admin_bp.route('/users', methods=['POST'])
@permission_required("USER_MANAGEMENT", "CREATE")
def create_user():
    """Create a user. The temporary password must be changed at first login."""
    data = _json_body()
    username = data.get("username")
    password = data.get("password")
    role = data.get("role", "USER")

    if not isinstance(username, str) or not isinstance(password, str) or not isinstance(role, str):
        raise ValidationError("username, password and role must be strings")

    user = get_auth_services().identity.create_user(
        username,
        password,
        role,
        email=data.get("email"),
        firstname=data.get("firstname"),
        lastname=data.get("lastname"),
        force_password_change=bool(data.get("force_password_change", True)),
    )
    logger.info(f"User {username} created by {g.current_user}")
    return jsonify(_user_dict(user)), 201


@admin_bp.route('/users/<username>/unlock', methods=['POST'])
@permission_required("USER_MANAGEMENT", "CREATE")
def unlock_user(username):
    user = get_auth_services().identity.unlock(username)
    logger.info(f"User {username} unlocked by {g.current_user}")
    return jsonify(_user_dict(user))


@admin_bp.route('/users/<username>/disable', methods=['POST'])
@permission_required("USER_MANAGEMENT", "DELETE")
def disable_user(username):
    user = get_auth_services().identity.set_enabled(username, False)
    logger.info(f"User {username} disabled by {g.current_user}")
    return jsonify(_user_dict(user))


@admin_bp.route('/users/<username>/enable', methods=['POST'])
@permission_required("USER_MANAGEMENT", "DELETE")
def enable_user(username):
    user = get_auth_services().identity.set_enabled(username, True)
    logger.info(f"User {username} enabled by {g.current_user}")
    return jsonify(_user_dict(user))


@admin_bp.route('/users/<username>/reset-password', methods=['POST'])
@permission_required("USER_MANAGEMENT", "CREATE")
def reset_password(username):
    new_password = _json_body().get("new_password")
    if not isinstance(new_password, str) or not new_password:
        raise ValidationError("'new_password' is required and must be a string")
    user = get_auth_services().identity.admin_reset_password(username, new_password)
    logger.info(f"Password for {username} reset by {g.current_user}")
    return jsonify(_user_dict(user))


# =============================================================================
# Role Permissions
# =============================================================================

@admin_bp.route('/roles', methods=['GET'])
@permission_required("USER_MANAGEMENT", "READ")
def list_roles():
    registry = get_auth_services().permissions
    return jsonify({
        "roles": {
            role: sorted(f"{r}:{a}" for r, a in registry.permissions_for(role))
            for role in registry.roles()
        }
    })


@admin_bp.route('/roles/<role>/permissions', methods=['PUT'])
@permission_required("USER_MANAGEMENT", "MANAGE_ROLES")
def update_role_permissions(role):
    """Grant and/or revoke permissions on a role.

    Body: {"grant": [["EXPENSE", "APPROVE"], ...], "revoke": [[...], ...]}
    """
    data = _json_body()
    registry = get_auth_services().permissions

    pairs = {}
    for key in ("grant", "revoke"):
        items = data.get(key, [])
        if not isinstance(items, list):
            raise ValidationError(f"'{key}' must be a list of [resource, action] pairs")
        for item in items:
            if (not isinstance(item, (list, tuple)) or len(item) != 2
                    or not all(isinstance(part, str) for part in item)):
                raise ValidationError(f"'{key}' must be a list of [resource, action] pairs")
        pairs[key] = [tuple(item) for item in items]

    for resource, action in pairs["grant"]:
        registry.grant(role, resource, action)
    for resource, action in pairs["revoke"]:
        registry.revoke(role, resource, action)

    logger.info(f"Role {role} permissions updated by {g.current_user}")
    return jsonify({
        "role": role,
        "permissions": sorted(f"{r}:{a}" for r, a in registry.permissions_for(role)),
    })


# =============================================================================
# Password Lifecycle
# =============================================================================

@admin_bp.route('/password-lifecycle/scan', methods=['POST'])
@permission_required("PASSWORD_LIFECYCLE", "RUN")
def run_password_lifecycle_scan():
    """Run the daily scan now. Returns counts only."""
    summary = get_auth_services().lifecycle.scan()
    logger.info(f"Password lifecycle scan triggered by {g.current_user}")
    return jsonify(summary.to_dict())
