"""
Flask extension instances.

Centralized extension objects initialized via init_extensions(app).
Import these objects in the app factory instead of creating new instances.
"""

import logging

import redis
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

logger = logging.getLogger(__name__)

# Created in init_extensions with full config
limiter = None


def _get_rate_limit_storage(storage):
    """Get rate limit storage URI, falling back to memory if Redis unavailable."""
    if storage and storage.startswith('redis://'):
        try:
            r = redis.from_url(storage, socket_timeout=1)
            r.ping()
            return storage
        except redis.RedisError:
            logger.warning("Redis unavailable for rate limiting, using in-memory storage")
            return "memory://"
    return storage or "memory://"


def _get_rate_limit_key():
    """
    Custom rate limit key function.
    Uses authenticated username if available, otherwise IP address.
    """
    from portal.auth import TokenInvalid, get_auth_services, get_token_from_request

    token = get_token_from_request()
    if token:
        try:
            claims = get_auth_services().tokens.verify_access(token)
            return f"user:{claims.sub}"
        except TokenInvalid:
            pass
    return f"ip:{get_remote_address()}"


def init_extensions(app, settings):
    """Initialize all Flask extensions with the app instance.

    Args:
        app: Flask application instance
        settings: AppSettings (rate_limit group)
    """
    global limiter
    limiter = Limiter(
        app=app,
        key_func=_get_rate_limit_key,
        default_limits=[settings.rate_limit.default],
        storage_uri=_get_rate_limit_storage(settings.rate_limit.storage),
        strategy="moving-window",
    )

    @app.errorhandler(429)
    def ratelimit_handler(e):
        logger.warning(f"Rate limit exceeded: {e.description}")
        return {
            "error": "Rate limit exceeded",
            "code": "rate_limited",
            "message": str(e.description),
            "retry_after": e.get_response().headers.get("Retry-After", 60)
        }, 429

    return limiter
