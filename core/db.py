"""
Database connection management (sqlite3).

Not an ORM: a pooled connection factory with WAL journaling and foreign
keys enabled on every connection handed out.

Usage:
    from core.db import DatabaseManager

    dm = DatabaseManager("data/taskactivity.db")
    with dm.connect() as conn:
        row = conn.execute("SELECT * FROM users WHERE username = ?", ("alice",)).fetchone()
"""

import logging
import queue
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "taskactivity.db"

# Seconds a writer waits on a locked database before raising
_BUSY_TIMEOUT = 30

_IDENTIFIER_RE = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')


def _validate_identifier(name: str, label: str) -> None:
    """Validate a SQL identifier (table or column name) against injection.

    Raises ValueError if the identifier contains invalid characters.
    """
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid {label} name: {name!r}")


def column_exists(conn, table: str, column: str) -> bool:
    """
    Check if a column exists in a table.

    Raises:
        ValueError: If table or column names contain invalid characters
    """
    _validate_identifier(table, "table")
    _validate_identifier(column, "column")

    cursor = conn.execute(f"PRAGMA table_info({table})")
    return column in [row["name"] for row in cursor.fetchall()]


class DatabaseManager:
    """
    Connection pool for the credential database.

    Defaults to data/taskactivity.db when no path is given; tests pass a
    temporary path.

    Usage:
        dm = DatabaseManager(settings.database.database_path)
        with dm.connect() as conn:
            conn.execute("SELECT ...")
    """

    def __init__(self, db_path: Optional[Path] = None, pool_size: int = 10):
        self._db_path = Path(db_path) if db_path else _DEFAULT_DB_PATH
        self._pool_size = pool_size
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._pool: queue.Queue = queue.Queue(maxsize=pool_size)

    def close_all(self):
        """Close every pooled connection."""
        while True:
            try:
                conn = self._pool.get_nowait()
            except queue.Empty:
                break
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.debug(f"Error closing pooled connection: {e}")

    # ----- connection acquisition / release -----------------------------------

    def get_connection(self) -> sqlite3.Connection:
        """Acquire a connection from the pool."""
        try:
            conn = self._pool.get_nowait()
            # Verify connection is still usable
            conn.execute("SELECT 1")
            return conn
        except queue.Empty:
            pass
        except sqlite3.Error:
            pass  # Stale connection, create a new one

        conn = sqlite3.connect(str(self._db_path), timeout=_BUSY_TIMEOUT, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def release_connection(self, conn: sqlite3.Connection):
        """Return a connection to the pool."""
        try:
            self._pool.put_nowait(conn)
        except queue.Full:
            conn.close()

    @contextmanager
    def connect(self):
        """Context manager: acquire → yield → commit/rollback → release."""
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.release_connection(conn)

    @property
    def db_path(self) -> Path:
        """Return the SQLite database path."""
        return self._db_path
