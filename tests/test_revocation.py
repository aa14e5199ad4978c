"""Tests for the revocation registry backends."""

from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import redis

from portal.auth import (
    InMemoryRevocationRegistry,
    RedisRevocationRegistry,
    RevocationUnavailable,
    SqliteRevocationRegistry,
    init_database,
)
from portal.auth.revocation import build_revocation_registry


@pytest.fixture
def sqlite_registry(db, clock):
    init_database(db, clock=clock)
    return SqliteRevocationRegistry(db, clock)


class TestInMemoryRegistry:
    def test_read_after_write(self, clock):
        registry = InMemoryRevocationRegistry(clock)
        registry.revoke("jti-1", clock.now() + timedelta(hours=1))
        assert registry.is_revoked("jti-1")
        assert not registry.is_revoked("jti-2")

    def test_purge_drops_only_expired(self, clock):
        registry = InMemoryRevocationRegistry(clock)
        registry.revoke("short", clock.now() + timedelta(minutes=5))
        registry.revoke("long", clock.now() + timedelta(days=7))
        clock.advance(minutes=5)
        assert registry.purge_expired() == 1
        assert not registry.is_revoked("short")
        assert registry.is_revoked("long")
        assert len(registry) == 1


class TestSqliteRegistry:
    def test_read_after_write(self, sqlite_registry, clock):
        sqlite_registry.revoke("jti-1", clock.now() + timedelta(hours=1))
        assert sqlite_registry.is_revoked("jti-1")

    def test_duplicate_revoke_is_harmless(self, sqlite_registry, clock):
        sqlite_registry.revoke("jti-1", clock.now() + timedelta(hours=1))
        sqlite_registry.revoke("jti-1", clock.now() + timedelta(hours=1))
        assert sqlite_registry.is_revoked("jti-1")

    def test_survives_new_registry_instance(self, sqlite_registry, db, clock):
        sqlite_registry.revoke("jti-1", clock.now() + timedelta(hours=1))
        assert SqliteRevocationRegistry(db, clock).is_revoked("jti-1")

    def test_purge_expired(self, sqlite_registry, clock):
        sqlite_registry.revoke("a", clock.now() + timedelta(hours=1))
        sqlite_registry.revoke("b", clock.now() + timedelta(hours=2))
        clock.advance(hours=1, minutes=30)
        assert sqlite_registry.purge_expired() == 1
        assert not sqlite_registry.is_revoked("a")
        assert sqlite_registry.is_revoked("b")


class TestRedisRegistry:
    def test_setex_with_remaining_lifetime(self, clock):
        client = MagicMock()
        registry = RedisRevocationRegistry(client, clock)
        registry.revoke("jti-1", clock.now() + timedelta(seconds=90, milliseconds=500))
        client.setex.assert_called_once_with("blacklist:jti-1", 91, "1")

    def test_already_expired_not_written(self, clock):
        client = MagicMock()
        RedisRevocationRegistry(client, clock).revoke("jti-1", clock.now())
        client.setex.assert_not_called()

    def test_is_revoked_reads_key(self, clock):
        client = MagicMock()
        client.exists.return_value = 1
        assert RedisRevocationRegistry(client, clock).is_revoked("jti-1")
        client.exists.assert_called_once_with("blacklist:jti-1")

    def test_write_failure_uses_fallback(self, clock):
        client = MagicMock()
        client.setex.side_effect = redis.ConnectionError("down")
        client.exists.side_effect = redis.ConnectionError("down")
        fallback = InMemoryRevocationRegistry(clock)
        registry = RedisRevocationRegistry(client, clock, fallback=fallback)

        registry.revoke("jti-1", clock.now() + timedelta(hours=1))
        assert fallback.is_revoked("jti-1")
        assert registry.is_revoked("jti-1")

    def test_fallback_consulted_after_redis_recovers(self, clock):
        client = MagicMock()
        client.exists.return_value = 0
        fallback = InMemoryRevocationRegistry(clock)
        fallback.revoke("jti-1", clock.now() + timedelta(hours=1))
        assert RedisRevocationRegistry(client, clock, fallback=fallback).is_revoked("jti-1")

    def test_write_failure_without_fallback_raises(self, clock):
        client = MagicMock()
        client.setex.side_effect = redis.ConnectionError("down")
        with pytest.raises(RevocationUnavailable) as exc_info:
            RedisRevocationRegistry(client, clock).revoke("jti-1", clock.now() + timedelta(hours=1))
        assert exc_info.value.status_code == 503

    def test_fail_closed_write_raises_even_with_fallback(self, clock):
        client = MagicMock()
        client.setex.side_effect = redis.ConnectionError("down")
        fallback = InMemoryRevocationRegistry(clock)
        registry = RedisRevocationRegistry(client, clock, fallback=fallback, fail_closed=True)
        with pytest.raises(RevocationUnavailable):
            registry.revoke("jti-1", clock.now() + timedelta(hours=1))
        assert len(fallback) == 0

    def test_fail_closed_read_reports_revoked(self, clock):
        client = MagicMock()
        client.exists.side_effect = redis.ConnectionError("down")
        assert RedisRevocationRegistry(client, clock, fail_closed=True).is_revoked("anything")

    def test_fail_open_read_without_fallback_reports_not_revoked(self, clock):
        client = MagicMock()
        client.exists.side_effect = redis.ConnectionError("down")
        assert not RedisRevocationRegistry(client, clock).is_revoked("anything")

    def test_status_reports_unavailable(self, clock):
        client = MagicMock()
        client.info.side_effect = redis.ConnectionError("down")
        status = RedisRevocationRegistry(client, clock, fail_closed=True).status()
        assert status == {"available": False, "backend": "redis", "fail_closed": True}


class TestBuildRegistry:
    def _auth(self, backend):
        return SimpleNamespace(revocation_backend=backend, redis_blacklist_fail_closed=False)

    def test_memory_backend(self, db, clock):
        registry = build_revocation_registry(self._auth("memory"), None, db, clock)
        assert isinstance(registry, InMemoryRevocationRegistry)

    def test_sqlite_backend_is_default(self, db, clock):
        registry = build_revocation_registry(self._auth("sqlite"), None, db, clock)
        assert isinstance(registry, SqliteRevocationRegistry)

    def test_redis_backend_has_sqlite_fallback(self, db, clock):
        redis_settings = SimpleNamespace(redis_url="redis://localhost:6399/0")
        registry = build_revocation_registry(self._auth("REDIS"), redis_settings, db, clock)
        assert isinstance(registry, RedisRevocationRegistry)
        assert isinstance(registry._fallback, SqliteRevocationRegistry)
