"""Shared pytest fixtures for the auth service tests."""
import os
from datetime import timedelta

import pytest

# ---------------------------------------------------------------------------
# Deterministic test environment - set BEFORE any settings are built.
# The signing secret must pass the startup check (>= 32 bytes, not a default).
# ---------------------------------------------------------------------------
os.environ.setdefault('JWT_SECRET', 'test-jwt-secret-for-pytest-0123456789abcdef')
os.environ.setdefault('SCHEDULER_ENABLED', 'false')
os.environ.setdefault('MAIL_ENABLED', 'false')
os.environ.setdefault('REVOCATION_BACKEND', 'sqlite')
os.environ.setdefault('LOG_FORMAT', 'text')

from config.settings import AppSettings  # noqa: E402
from core.db import DatabaseManager  # noqa: E402
from core.timestamps import FixedClock  # noqa: E402
from helpers import PASSWORD, START, RecordingNotifier  # noqa: E402


# =============================================================================
# Core Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def db(tmp_path):
    """Per-test SQLite database."""
    manager = DatabaseManager(db_path=tmp_path / "taskactivity_test.db")
    yield manager
    manager.close_all()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings():
    return AppSettings()


@pytest.fixture
def services(settings, db, notifier, clock):
    """Fully wired auth core on a fresh database."""
    from portal.auth import build_auth_services
    return build_auth_services(settings, db, notifier, clock=clock)


@pytest.fixture
def make_user(services):
    """Factory creating ready-to-use accounts (no forced change, fresh password)."""
    def _make(username, role="USER", password=PASSWORD, email=None, force_password_change=False, **kwargs):
        return services.identity.create_user(
            username,
            password,
            role,
            email=email or f"{username}@example.com",
            force_password_change=force_password_change,
            **kwargs,
        )
    return _make


@pytest.fixture
def expire_password(services, clock):
    """Move a user's expiration date relative to the clock's today."""
    def _expire(username, days_from_today):
        services.store.set_expiration_date(username, clock.today() + timedelta(days=days_from_today))
    return _expire


# =============================================================================
# Flask Fixtures
# =============================================================================

@pytest.fixture
def app(settings, db, clock, notifier):
    from portal.app import create_app
    app = create_app(
        config={'TESTING': True, 'RATELIMIT_ENABLED': False},
        settings=settings,
        db=db,
        clock=clock,
        notifier=notifier,
    )
    yield app


@pytest.fixture
def app_services(app):
    return app.extensions["auth"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    """Log in through the API and return the JSON body."""
    def _login(username, password=PASSWORD):
        response = client.post('/api/auth/login', json={"username": username, "password": password})
        assert response.status_code == 200, response.get_json()
        return response.get_json()
    return _login
