"""
Append-only audit of login attempts and permission denials.

Rows are only ever inserted. The read path is access-controlled: a caller
may read their own login history, and callers whose role holds
LOGIN_AUDIT:READ_ALL may read anyone's.
"""
import logging
from typing import Optional

from core.db import DatabaseManager
from core.timestamps import Clock, SystemClock, parse_timestamp

from .config import AUDIT_READ_ALL
from .errors import PermissionDenied
from .types import AuditPage, LoginAuditEntry, LoginOutcome

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200
DEFAULT_PAGE_SIZE = 50

# Stored user agents are truncated to this many characters
_USER_AGENT_MAX = 512


def clamp_page(page, page_size) -> tuple[int, int]:
    """Clamp paging input: page >= 1, 1 <= page_size <= 200."""
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(page_size)
    except (TypeError, ValueError):
        page_size = DEFAULT_PAGE_SIZE
    return max(1, page), min(max(1, page_size), MAX_PAGE_SIZE)


class AuditLog:
    """Writes and reads login_audit and permission_denials."""

    def __init__(self, db: DatabaseManager, clock: Clock = None, registry=None):
        self.db = db
        self.clock = clock or SystemClock()
        self.registry = registry

    # =========================================================================
    # Writes
    # =========================================================================

    def record_login(
        self,
        username: str,
        outcome: LoginOutcome,
        ip_address: str = None,
        user_agent: str = None,
        detail: str = None,
    ):
        with self.db.connect() as conn:
            conn.execute(
                """INSERT INTO login_audit (username, timestamp, outcome, ip_address, user_agent, detail)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    username,
                    self.clock.now().isoformat(),
                    LoginOutcome(outcome).value,
                    ip_address,
                    user_agent[:_USER_AGENT_MAX] if user_agent else None,
                    detail,
                ),
            )

    def record_denial(self, username: str, role: str, resource: str, action: str):
        with self.db.connect() as conn:
            conn.execute(
                """INSERT INTO permission_denials (username, role, resource, action, timestamp)
                   VALUES (?, ?, ?, ?, ?)""",
                (username, role, resource, action, self.clock.now().isoformat()),
            )

    # =========================================================================
    # Reads
    # =========================================================================

    def can_read_all(self, role: str) -> bool:
        return self.registry is not None and self.registry.has_permission(role, *AUDIT_READ_ALL)

    def get_login_audit(
        self,
        caller: str,
        caller_role: str,
        target_username: Optional[str] = None,
        page=1,
        page_size=DEFAULT_PAGE_SIZE,
    ) -> AuditPage:
        """Login history, newest first.

        Without a target, privileged callers see every user's entries and
        everyone else sees their own.

        Raises:
            PermissionDenied: caller asked for another user's history without
                LOGIN_AUDIT:READ_ALL
        """
        privileged = self.can_read_all(caller_role)
        if target_username and target_username != caller and not privileged:
            self.record_denial(caller, caller_role, *AUDIT_READ_ALL)
            raise PermissionDenied(
                f"{caller} may not read login audit of {target_username}",
                resource=AUDIT_READ_ALL[0],
                action=AUDIT_READ_ALL[1],
            )

        if target_username is None and not privileged:
            target_username = caller

        page, page_size = clamp_page(page, page_size)
        offset = (page - 1) * page_size

        where, params = ("", ()) if target_username is None else ("WHERE username = ?", (target_username,))
        with self.db.connect() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM login_audit {where}", params).fetchone()[0]
            rows = conn.execute(
                f"""SELECT * FROM login_audit {where}
                    ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?""",
                params + (page_size, offset),
            ).fetchall()

        entries = tuple(
            LoginAuditEntry(
                id=row["id"],
                username=row["username"],
                timestamp=parse_timestamp(row["timestamp"]),
                outcome=LoginOutcome(row["outcome"]),
                ip_address=row["ip_address"],
                user_agent=row["user_agent"],
                detail=row["detail"],
            )
            for row in rows
        )
        return AuditPage(entries=entries, page=page, page_size=page_size, total=total)

    def list_denials(self, limit: int = 100) -> list[dict]:
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM permission_denials ORDER BY id DESC LIMIT ?",
                (min(max(1, limit), MAX_PAGE_SIZE),),
            ).fetchall()
        return [dict(row) for row in rows]
