"""
Health check endpoints for the TaskActivity auth service.

Liveness and readiness checks; both are exempt from rate limiting.
"""

import logging
import sqlite3
from datetime import datetime, timezone

from flask import Blueprint, jsonify

from portal.auth import get_auth_services

logger = logging.getLogger(__name__)

health_bp = Blueprint('health', __name__)


def check_database_health(db) -> tuple[bool, str]:
    """Check the credential database answers a trivial query."""
    try:
        with db.connect() as conn:
            conn.execute("SELECT 1")
        return True, "connected"
    except sqlite3.Error as e:
        logger.warning(f"Database health check failed: {e}")
        return False, "connection failed"


def check_revocation_health(registry) -> tuple[bool, dict]:
    """Revocation backend status. Only the Redis backend can be unavailable."""
    status = getattr(registry, "status", None)
    if status is None:
        return True, {"backend": type(registry).__name__}
    details = status()
    return details.get("available", False), details


@health_bp.route('/healthz')
def liveness():
    """Liveness check - is the process running?"""
    return jsonify({
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "taskactivity-auth",
    })


@health_bp.route('/readyz')
def readiness():
    """Readiness check - can we verify credentials and revocations?"""
    services = get_auth_services()
    checks = {}

    db_ok, db_msg = check_database_health(services.db)
    checks["database"] = {"healthy": db_ok, "message": db_msg}

    revocation_ok, revocation_details = check_revocation_health(services.revocation)
    checks["revocation"] = {"healthy": revocation_ok, **revocation_details}

    ready = db_ok and revocation_ok
    return jsonify({
        "status": "ready" if ready else "not_ready",
        "checks": checks,
    }), 200 if ready else 503
