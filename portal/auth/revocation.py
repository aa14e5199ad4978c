"""
Token revocation registry.

Holds revoked jti values until the token's own expiry, never longer.

Backends:
- InMemoryRevocationRegistry: single process, lost on restart
- SqliteRevocationRegistry: token_blacklist table, survives restarts
- RedisRevocationRegistry: SETEX with the remaining lifetime as TTL, shared
  across instances; optional SQLite fallback while Redis is unreachable

Every backend is read-after-write: once revoke() returns, is_revoked() on
the same backend reports True.
"""
import logging
import math
import sqlite3
import threading
from datetime import datetime
from typing import Optional, Protocol

import redis

from core.db import DatabaseManager
from core.errors import ServiceUnavailableError
from core.timestamps import Clock, SystemClock, parse_timestamp

logger = logging.getLogger(__name__)

REDIS_KEY_PREFIX = "blacklist:"


class RevocationUnavailable(ServiceUnavailableError):
    """The registry cannot record or confirm revocations (fail-closed mode)."""
    code = "revocation_unavailable"
    public_message = "Token service temporarily unavailable. Please try again."


class RevocationRegistry(Protocol):
    def revoke(self, jti: str, expires_at: datetime) -> None: ...

    def is_revoked(self, jti: str) -> bool: ...

    def purge_expired(self) -> int: ...


class InMemoryRevocationRegistry:
    """Dict-backed registry for tests and single-process deployments."""

    def __init__(self, clock: Clock = None):
        self._clock = clock or SystemClock()
        self._entries: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def revoke(self, jti: str, expires_at: datetime) -> None:
        with self._lock:
            self._entries[jti] = expires_at

    def is_revoked(self, jti: str) -> bool:
        with self._lock:
            return jti in self._entries

    def purge_expired(self) -> int:
        now = self._clock.now()
        with self._lock:
            expired = [jti for jti, expires_at in self._entries.items() if expires_at <= now]
            for jti in expired:
                del self._entries[jti]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class SqliteRevocationRegistry:
    """token_blacklist table."""

    def __init__(self, db: DatabaseManager, clock: Clock = None):
        self.db = db
        self._clock = clock or SystemClock()

    def revoke(self, jti: str, expires_at: datetime) -> None:
        with self.db.connect() as conn:
            try:
                conn.execute(
                    "INSERT INTO token_blacklist (jti, expires_at) VALUES (?, ?)",
                    (jti, expires_at.isoformat()),
                )
            except sqlite3.IntegrityError:
                pass  # Already blacklisted

    def is_revoked(self, jti: str) -> bool:
        with self.db.connect() as conn:
            row = conn.execute("SELECT 1 FROM token_blacklist WHERE jti = ?", (jti,)).fetchone()
        return row is not None

    def purge_expired(self) -> int:
        """Remove entries whose token has expired. Returns rows deleted."""
        now = self._clock.now()
        with self.db.connect() as conn:
            rows = conn.execute("SELECT jti, expires_at FROM token_blacklist").fetchall()
            expired = [(row["jti"],) for row in rows if parse_timestamp(row["expires_at"]) <= now]
            if expired:
                conn.executemany("DELETE FROM token_blacklist WHERE jti = ?", expired)
        return len(expired)


class RedisRevocationRegistry:
    """
    Redis-backed registry shared by every instance.

    TTL is the token's remaining lifetime, so Redis expires entries itself.
    When Redis fails:
    - fail_closed=True: writes raise RevocationUnavailable, reads report revoked
    - otherwise: the fallback registry (if any) is used, else reads report
      not revoked and the failure is logged
    """

    def __init__(
        self,
        client: "redis.Redis",
        clock: Clock = None,
        fallback: Optional[RevocationRegistry] = None,
        fail_closed: bool = False,
    ):
        self._client = client
        self._clock = clock or SystemClock()
        self._fallback = fallback
        self._fail_closed = fail_closed

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisRevocationRegistry":
        return cls(redis.from_url(url, decode_responses=True), **kwargs)

    def revoke(self, jti: str, expires_at: datetime) -> None:
        ttl = math.ceil((expires_at - self._clock.now()).total_seconds())
        if ttl <= 0:
            return  # Token is already dead

        try:
            self._client.setex(f"{REDIS_KEY_PREFIX}{jti}", ttl, "1")
            return
        except redis.RedisError as e:
            logger.warning(f"Redis blacklist write failed: {e}")
            if self._fail_closed:
                raise RevocationUnavailable(f"Redis blacklist unavailable (fail-closed mode): {e}")

        if self._fallback is None:
            raise RevocationUnavailable("Redis blacklist unavailable and no fallback configured")
        self._fallback.revoke(jti, expires_at)

    def is_revoked(self, jti: str) -> bool:
        try:
            if self._client.exists(f"{REDIS_KEY_PREFIX}{jti}") > 0:
                return True
        except redis.RedisError as e:
            logger.warning(f"Redis blacklist read failed: {e}")
            if self._fail_closed:
                return True  # Fail-closed: assume blacklisted if can't verify

        # Entries written while Redis was down live in the fallback
        if self._fallback is not None:
            return self._fallback.is_revoked(jti)
        return False

    def purge_expired(self) -> int:
        """Redis expires its own keys; only the fallback needs purging."""
        if self._fallback is not None:
            return self._fallback.purge_expired()
        return 0

    def status(self) -> dict:
        """Redis blacklist health for monitoring."""
        try:
            info = self._client.info("server")
        except redis.RedisError:
            return {
                "available": False,
                "backend": "redis",
                "fail_closed": self._fail_closed,
            }
        return {
            "available": True,
            "backend": "redis",
            "redis_version": info.get("redis_version"),
            "fail_closed": self._fail_closed,
        }


def build_revocation_registry(auth_settings, redis_settings, db: DatabaseManager, clock: Clock = None):
    """Pick the backend named by REVOCATION_BACKEND."""
    backend = auth_settings.revocation_backend.lower()
    if backend == "memory":
        logger.warning("Token revocation is in-memory: not shared across workers, lost on restart")
        return InMemoryRevocationRegistry(clock)
    if backend == "redis":
        return RedisRevocationRegistry.from_url(
            redis_settings.redis_url,
            clock=clock,
            fallback=SqliteRevocationRegistry(db, clock),
            fail_closed=auth_settings.redis_blacklist_fail_closed,
        )
    return SqliteRevocationRegistry(db, clock)
