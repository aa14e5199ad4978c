"""
Flask Application Factory.

Creates and configures the Flask app with extensions, the auth services
container, blueprints and the daily job scheduler.
"""

import atexit
import logging
import time
import uuid

from flask import Flask, jsonify, request, g
from werkzeug.exceptions import HTTPException

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

LIFECYCLE_SCAN_JOB = "password_lifecycle_scan"
REVOCATION_PURGE_JOB = "revocation_purge"
RESET_TOKEN_PURGE_JOB = "password_reset_token_purge"


def create_app(config=None, settings=None, db=None, clock=None, notifier=None, revocation=None):
    """Create and configure the Flask application.

    Args:
        config: Optional dict of config overrides (e.g. {'TESTING': True}).
        settings: AppSettings; defaults to get_settings() (validates JWT_SECRET).
        db: DatabaseManager; defaults to one at DATABASE_PATH.
        clock: Clock shared by every auth component; defaults to SystemClock.
        notifier: Notifier for lifecycle and lockout mail; defaults per MAIL_* settings.
        revocation: Revocation registry; defaults per REVOCATION_BACKEND.

    Returns:
        Configured Flask app instance.

    Raises:
        ConfigurationInvalid: if the signing secret is missing or insecure.
    """
    from config.settings import get_settings
    from core.db import DatabaseManager
    from core.notifier import build_notifier

    # Fails fast on an unusable JWT secret before anything else is built
    settings = settings or get_settings()

    app = Flask(__name__)
    if config:
        app.config.update(config)

    # Configure logging
    from portal.logging_config import configure_logging
    configure_logging(app, settings)

    # Initialize extensions (limiter)
    from portal.extensions import init_extensions
    init_extensions(app, settings)

    # Register custom error handlers for APIError hierarchy
    from core.errors import register_error_handlers
    register_error_handlers(app)

    # Initialize auth database and services
    from portal.auth.services import EXTENSION_KEY, build_auth_services
    if db is None:
        db = DatabaseManager(settings.database.database_path)
    services = build_auth_services(
        settings,
        db,
        notifier or build_notifier(settings.mail),
        clock=clock,
        revocation=revocation,
    )
    app.extensions[EXTENSION_KEY] = services

    # Register blueprints
    _register_blueprints(app, settings)

    # Register middleware
    _register_middleware(app)

    # Register global error handlers
    _register_error_handlers(app)

    # Daily jobs
    _init_scheduler(app, settings, services)

    return app


def _register_blueprints(app, settings):
    """Register all route blueprints with rate limits."""
    from portal.extensions import limiter
    from portal.routes import auth_bp, admin_bp, health_bp

    # Brute-force protection on every auth endpoint
    limiter.limit(settings.rate_limit.auth)(auth_bp)
    app.register_blueprint(auth_bp)

    app.register_blueprint(admin_bp)

    limiter.exempt(health_bp)
    app.register_blueprint(health_bp)


def _register_middleware(app):
    """Register request tracking and security middleware."""

    @app.before_request
    def before_request_tracking():
        """Track request start and assign request ID."""
        g.request_id = request.headers.get('X-Request-ID', str(uuid.uuid4())[:8])
        g.start_time = time.time()

    @app.after_request
    def after_request_tracking(response):
        """Log request completion with timing and add security headers."""
        duration_ms = 0
        if hasattr(g, 'start_time'):
            duration_ms = (time.time() - g.start_time) * 1000

        if hasattr(g, 'request_id'):
            response.headers['X-Request-ID'] = g.request_id

        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        if request.path in ['/healthz', '/readyz']:
            log_level = logging.DEBUG

        logger.log(
            log_level,
            f"{request.method} {request.path} -> {response.status_code} ({duration_ms:.1f}ms)",
            extra={
                'request_id': getattr(g, 'request_id', 'unknown'),
                'method': request.method,
                'endpoint': request.path,
                'status_code': response.status_code,
                'duration_ms': round(duration_ms, 2),
                'remote_addr': request.remote_addr,
                'user': getattr(g, 'current_user', None),
            }
        )

        # Security headers
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Cache-Control'] = 'no-store'
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        return response


def _register_error_handlers(app):
    """Register global exception handler."""

    @app.errorhandler(Exception)
    def handle_exception(e):
        # 404/405/429 and friends keep their own status
        if isinstance(e, HTTPException):
            return jsonify({
                'error': e.description,
                'code': e.name.lower().replace(' ', '_'),
            }), e.code

        logger.exception(
            f"Unhandled exception: {str(e)}",
            extra={
                'request_id': getattr(g, 'request_id', 'unknown'),
                'method': request.method,
                'endpoint': request.path,
                'remote_addr': request.remote_addr,
            }
        )
        return jsonify({
            'error': 'Internal server error',
            'code': 'internal_error',
            'request_id': getattr(g, 'request_id', 'unknown'),
        }), 500


def _init_scheduler(app, settings, services):
    """Register the daily jobs; start the scheduler outside of tests."""
    from core.scheduler import DailyJobScheduler

    scheduler = DailyJobScheduler(clock=services.clock)
    scheduler.add_job(LIFECYCLE_SCAN_JOB, services.lifecycle.scan, settings.scheduler.lifecycle_scan_cron)
    scheduler.add_job(REVOCATION_PURGE_JOB, services.revocation.purge_expired, settings.scheduler.revocation_purge_cron)
    scheduler.add_job(RESET_TOKEN_PURGE_JOB, services.resets.purge_expired, settings.scheduler.reset_token_purge_cron)
    app.extensions["scheduler"] = scheduler

    if settings.scheduler.enabled and not app.config.get('TESTING'):
        scheduler.start()
        atexit.register(scheduler.stop)
