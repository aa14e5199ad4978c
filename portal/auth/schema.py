"""
Auth database schema initialization and seeding.

IMPORTANT: init_database() should ONLY be called by:
- portal/app.py at startup
- Test fixtures

Never call schema initialization from feature code (routes, decorators, etc.).
"""
import logging
import sqlite3
from typing import Optional

from werkzeug.security import generate_password_hash

from core.db import DatabaseManager, column_exists
from core.timestamps import Clock, SystemClock

from .config import DEFAULT_PERMISSIONS, DEFAULT_ROLE_GRANTS, DEFAULT_ROLES, ROLE_ADMIN

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS roles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT UNIQUE NOT NULL,
    description TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS permissions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    resource TEXT NOT NULL,
    action TEXT NOT NULL,
    description TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (resource, action)
);

CREATE TABLE IF NOT EXISTS role_permissions (
    role_id INTEGER NOT NULL,
    permission_id INTEGER NOT NULL,
    PRIMARY KEY (role_id, permission_id),
    FOREIGN KEY (role_id) REFERENCES roles(id) ON DELETE CASCADE,
    FOREIGN KEY (permission_id) REFERENCES permissions(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT UNIQUE NOT NULL,
    password_hash TEXT NOT NULL,
    role_id INTEGER NOT NULL,
    enabled INTEGER NOT NULL DEFAULT 1,
    account_locked INTEGER NOT NULL DEFAULT 0,
    failed_login_count INTEGER NOT NULL DEFAULT 0,
    expiration_date TEXT,
    force_password_change INTEGER NOT NULL DEFAULT 0,
    last_password_change_at TEXT,
    email TEXT,
    firstname TEXT,
    lastname TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (role_id) REFERENCES roles(id)
);

CREATE TABLE IF NOT EXISTS password_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS token_blacklist (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    jti TEXT UNIQUE NOT NULL,
    expires_at TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS login_audit (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    outcome TEXT NOT NULL,
    ip_address TEXT,
    user_agent TEXT,
    detail TEXT
);

CREATE TABLE IF NOT EXISTS permission_denials (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL,
    role TEXT,
    resource TEXT NOT NULL,
    action TEXT NOT NULL,
    timestamp TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_login_audit_user_ts ON login_audit (username, timestamp);
CREATE INDEX IF NOT EXISTS idx_token_blacklist_expires ON token_blacklist (expires_at);
CREATE INDEX IF NOT EXISTS idx_password_history_user ON password_history (user_id, created_at);
"""

# Columns added after the first release; older databases get them on startup
USER_COLUMN_MIGRATIONS = [
    ("last_password_change_at", "TEXT"),
    ("email", "TEXT"),
    ("firstname", "TEXT"),
    ("lastname", "TEXT"),
]


def init_database(
    db: DatabaseManager,
    admin_password: Optional[str] = None,
    clock: Optional[Clock] = None,
):
    """Create all tables and seed roles, permissions and grants.

    When admin_password is given and no 'admin' user exists, one is created
    with force_password_change set so the seeded password is single use.
    """
    with db.connect() as conn:
        conn.executescript(SCHEMA)
        _run_migrations(conn)
        _seed_default_data(conn)
        if admin_password:
            _seed_admin_user(conn, admin_password, clock or SystemClock())
    logger.info(f"Auth database initialized: {db.db_path}")


def _run_migrations(conn):
    """Add columns missing from a users table created by an older schema."""
    for column, column_type in USER_COLUMN_MIGRATIONS:
        if not column_exists(conn, "users", column):
            conn.execute(f"ALTER TABLE users ADD COLUMN {column} {column_type}")
            logger.info(f"Migrated users table: added {column}")


def _seed_default_data(conn):
    """Seed default roles, permissions and role grants."""
    for role_name, description in DEFAULT_ROLES.items():
        conn.execute(
            "INSERT OR IGNORE INTO roles (name, description) VALUES (?, ?)",
            (role_name, description),
        )

    for resource, action, description in DEFAULT_PERMISSIONS:
        conn.execute(
            "INSERT OR IGNORE INTO permissions (resource, action, description) VALUES (?, ?, ?)",
            (resource, action, description),
        )

    for role_name, grants in DEFAULT_ROLE_GRANTS.items():
        for resource, action in grants:
            conn.execute(
                """INSERT OR IGNORE INTO role_permissions (role_id, permission_id)
                   SELECT r.id, p.id FROM roles r, permissions p
                   WHERE r.name = ? AND p.resource = ? AND p.action = ?""",
                (role_name, resource, action),
            )


def _seed_admin_user(conn, admin_password: str, clock: Clock):
    """Create the initial admin account if not present."""
    row = conn.execute("SELECT id FROM users WHERE username = 'admin'").fetchone()
    if row:
        return

    try:
        conn.execute(
            """INSERT INTO users (username, password_hash, role_id, force_password_change,
                                  last_password_change_at)
               SELECT 'admin', ?, id, 1, ? FROM roles WHERE name = ?""",
            (generate_password_hash(admin_password), clock.now().isoformat(), ROLE_ADMIN),
        )
    except sqlite3.IntegrityError:
        return  # Raced with another initializer
    logger.info("Default admin user created (password change required on first login)")
