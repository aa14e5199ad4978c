"""
Credential store: users, roles, permissions, role grants, password history.

The only module that issues SQL against the identity tables. Other auth
components hold plain identifiers (username, role name, (resource, action))
and look records up here.
"""
import logging
import sqlite3
from datetime import date, datetime
from typing import Optional

from core.db import DatabaseManager
from core.timestamps import parse_date, parse_timestamp

from .errors import PermissionNotFound, RoleExists, RoleNotFound, UserExists, UserNotFound
from .types import User

logger = logging.getLogger(__name__)

_USER_SELECT = """
    SELECT u.*, r.name AS role_name
    FROM users u
    JOIN roles r ON r.id = u.role_id
"""


def _row_to_user(row) -> User:
    changed_at = row["last_password_change_at"]
    return User(
        id=row["id"],
        username=row["username"],
        password_hash=row["password_hash"],
        role=row["role_name"],
        enabled=bool(row["enabled"]),
        account_locked=bool(row["account_locked"]),
        failed_login_count=row["failed_login_count"],
        expiration_date=parse_date(row["expiration_date"]),
        force_password_change=bool(row["force_password_change"]),
        last_password_change_at=parse_timestamp(changed_at) if changed_at else None,
        email=row["email"],
        firstname=row["firstname"],
        lastname=row["lastname"],
    )


class CredentialStore:
    """SQL access for identity records."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    # =========================================================================
    # Users
    # =========================================================================

    def get_user(self, username: str) -> Optional[User]:
        with self.db.connect() as conn:
            row = conn.execute(_USER_SELECT + " WHERE u.username = ?", (username,)).fetchone()
        return _row_to_user(row) if row else None

    def require_user(self, username: str) -> User:
        user = self.get_user(username)
        if user is None:
            raise UserNotFound(f"User '{username}' not found")
        return user

    def list_users(self) -> list[User]:
        with self.db.connect() as conn:
            rows = conn.execute(_USER_SELECT + " ORDER BY u.username").fetchall()
        return [_row_to_user(row) for row in rows]

    def find_users_by_email(self, email: str) -> list[User]:
        """Accounts registered under an address, case-insensitively."""
        with self.db.connect() as conn:
            rows = conn.execute(
                _USER_SELECT + " WHERE lower(u.email) = lower(?) ORDER BY u.username",
                (email.strip(),),
            ).fetchall()
        return [_row_to_user(row) for row in rows]

    def create_user(
        self,
        username: str,
        password_hash: str,
        role: str,
        changed_at: datetime,
        email: str = None,
        firstname: str = None,
        lastname: str = None,
        expiration_date: Optional[date] = None,
        force_password_change: bool = False,
    ) -> User:
        """Insert a user. The username is fixed from here on."""
        with self.db.connect() as conn:
            role_row = conn.execute("SELECT id FROM roles WHERE name = ?", (role,)).fetchone()
            if not role_row:
                raise RoleNotFound(f"Role '{role}' not found")
            try:
                conn.execute(
                    """INSERT INTO users (username, password_hash, role_id, email, firstname, lastname,
                                          expiration_date, force_password_change, last_password_change_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        username,
                        password_hash,
                        role_row["id"],
                        email,
                        firstname,
                        lastname,
                        expiration_date.isoformat() if expiration_date else None,
                        1 if force_password_change else 0,
                        changed_at.isoformat(),
                    ),
                )
            except sqlite3.IntegrityError:
                raise UserExists(f"User '{username}' already exists")
        logger.info(f"User created: {username} ({role})")
        return self.require_user(username)

    def set_enabled(self, username: str, enabled: bool):
        self._update_user(username, "UPDATE users SET enabled = ? WHERE username = ?", (1 if enabled else 0, username))

    def set_role(self, username: str, role: str):
        with self.db.connect() as conn:
            role_row = conn.execute("SELECT id FROM roles WHERE name = ?", (role,)).fetchone()
            if not role_row:
                raise RoleNotFound(f"Role '{role}' not found")
            cursor = conn.execute("UPDATE users SET role_id = ? WHERE username = ?", (role_row["id"], username))
            if cursor.rowcount == 0:
                raise UserNotFound(f"User '{username}' not found")

    def set_expiration_date(self, username: str, expiration_date: Optional[date]):
        value = expiration_date.isoformat() if expiration_date else None
        self._update_user(username, "UPDATE users SET expiration_date = ? WHERE username = ?", (value, username))

    def set_email(self, username: str, email: Optional[str]):
        self._update_user(username, "UPDATE users SET email = ? WHERE username = ?", (email, username))

    def _update_user(self, username: str, sql: str, params: tuple):
        with self.db.connect() as conn:
            cursor = conn.execute(sql, params)
            if cursor.rowcount == 0:
                raise UserNotFound(f"User '{username}' not found")

    # =========================================================================
    # Failed-login Counter
    # =========================================================================

    def increment_failed_login(self, username: str, threshold: int) -> tuple[int, bool]:
        """Add one failure; lock in the same statement when the threshold is reached.

        Only unlocked rows are touched, so the counter never passes the
        threshold. Returns (failed_login_count, tripped) where tripped is True
        only for the call that performed the lock.
        """
        with self.db.connect() as conn:
            cursor = conn.execute(
                """UPDATE users
                   SET failed_login_count = failed_login_count + 1,
                       account_locked = CASE WHEN failed_login_count + 1 >= ? THEN 1 ELSE 0 END
                   WHERE username = ? AND account_locked = 0""",
                (threshold, username),
            )
            updated = cursor.rowcount
            row = conn.execute(
                "SELECT failed_login_count, account_locked FROM users WHERE username = ?",
                (username,),
            ).fetchone()
        if row is None:
            return 0, False
        tripped = bool(updated and row["account_locked"])
        return row["failed_login_count"], tripped

    def reset_failed_logins(self, username: str):
        with self.db.connect() as conn:
            conn.execute(
                "UPDATE users SET failed_login_count = 0 WHERE username = ? AND failed_login_count != 0",
                (username,),
            )

    def unlock(self, username: str):
        self._update_user(
            username,
            "UPDATE users SET account_locked = 0, failed_login_count = 0 WHERE username = ?",
            (username,),
        )

    # =========================================================================
    # Passwords
    # =========================================================================

    def set_password(
        self,
        username: str,
        password_hash: str,
        changed_at: datetime,
        expiration_date: Optional[date],
        force_password_change: bool,
        history_size: int,
    ):
        """Replace the password hash, archiving the previous one.

        History is trimmed to the most recent ``history_size`` entries.
        """
        with self.db.connect() as conn:
            row = conn.execute("SELECT id, password_hash FROM users WHERE username = ?", (username,)).fetchone()
            if not row:
                raise UserNotFound(f"User '{username}' not found")
            user_id = row["id"]

            conn.execute(
                "INSERT INTO password_history (user_id, password_hash, created_at) VALUES (?, ?, ?)",
                (user_id, row["password_hash"], changed_at.isoformat()),
            )
            conn.execute(
                """DELETE FROM password_history
                   WHERE user_id = ? AND id NOT IN (
                       SELECT id FROM password_history WHERE user_id = ?
                       ORDER BY created_at DESC, id DESC LIMIT ?
                   )""",
                (user_id, user_id, history_size),
            )
            conn.execute(
                """UPDATE users
                   SET password_hash = ?, last_password_change_at = ?, expiration_date = ?,
                       force_password_change = ?
                   WHERE id = ?""",
                (
                    password_hash,
                    changed_at.isoformat(),
                    expiration_date.isoformat() if expiration_date else None,
                    1 if force_password_change else 0,
                    user_id,
                ),
            )

    def recent_password_hashes(self, username: str, limit: int) -> list[str]:
        """Most recent archived hashes, newest first."""
        with self.db.connect() as conn:
            rows = conn.execute(
                """SELECT ph.password_hash FROM password_history ph
                   JOIN users u ON u.id = ph.user_id
                   WHERE u.username = ?
                   ORDER BY ph.created_at DESC, ph.id DESC LIMIT ?""",
                (username, limit),
            ).fetchall()
        return [row["password_hash"] for row in rows]

    # =========================================================================
    # Roles and Permissions
    # =========================================================================

    def list_roles(self) -> list[str]:
        with self.db.connect() as conn:
            rows = conn.execute("SELECT name FROM roles ORDER BY name").fetchall()
        return [row["name"] for row in rows]

    def create_role(self, name: str, description: str = None):
        with self.db.connect() as conn:
            try:
                conn.execute("INSERT INTO roles (name, description) VALUES (?, ?)", (name, description))
            except sqlite3.IntegrityError:
                raise RoleExists(f"Role '{name}' already exists")

    def list_permissions(self) -> list[dict]:
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT resource, action, description FROM permissions ORDER BY resource, action"
            ).fetchall()
        return [dict(row) for row in rows]

    def create_permission(self, resource: str, action: str, description: str = None) -> bool:
        """Add a (resource, action) to the catalog. False if it already existed."""
        with self.db.connect() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO permissions (resource, action, description) VALUES (?, ?, ?)",
                (resource, action, description),
            )
            return cursor.rowcount == 1

    def delete_permission(self, resource: str, action: str) -> bool:
        """Remove a permission; its role grants cascade."""
        with self.db.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM permissions WHERE resource = ? AND action = ?", (resource, action)
            )
            return cursor.rowcount == 1

    def grant(self, role: str, resource: str, action: str) -> bool:
        with self.db.connect() as conn:
            role_row = conn.execute("SELECT id FROM roles WHERE name = ?", (role,)).fetchone()
            if not role_row:
                raise RoleNotFound(f"Role '{role}' not found")
            perm_row = conn.execute(
                "SELECT id FROM permissions WHERE resource = ? AND action = ?", (resource, action)
            ).fetchone()
            if not perm_row:
                raise PermissionNotFound(f"Permission {resource}:{action} not found")
            cursor = conn.execute(
                "INSERT OR IGNORE INTO role_permissions (role_id, permission_id) VALUES (?, ?)",
                (role_row["id"], perm_row["id"]),
            )
            return cursor.rowcount == 1

    def revoke(self, role: str, resource: str, action: str) -> bool:
        with self.db.connect() as conn:
            cursor = conn.execute(
                """DELETE FROM role_permissions
                   WHERE role_id = (SELECT id FROM roles WHERE name = ?)
                     AND permission_id = (SELECT id FROM permissions WHERE resource = ? AND action = ?)""",
                (role, resource, action),
            )
            return cursor.rowcount == 1

    def load_role_permissions(self) -> dict[str, set[tuple[str, str]]]:
        """Every role mapped to its granted (resource, action) pairs."""
        grants: dict[str, set[tuple[str, str]]] = {}
        with self.db.connect() as conn:
            for row in conn.execute("SELECT name FROM roles").fetchall():
                grants[row["name"]] = set()
            rows = conn.execute(
                """SELECT r.name AS role, p.resource, p.action
                   FROM role_permissions rp
                   JOIN roles r ON r.id = rp.role_id
                   JOIN permissions p ON p.id = rp.permission_id"""
            ).fetchall()
        for row in rows:
            grants[row["role"]].add((row["resource"], row["action"]))
        return grants
