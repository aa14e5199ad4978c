"""
Centralized error handling for the TaskActivity API.

Error Hierarchy:
- APIError (4xx, 503): Expected errors with messages safe to expose to clients
- ConfigurationInvalid: Startup-fatal misconfiguration, never reaches a request

Anything else that escapes a view is answered with a generic 500 by the
app factory's global handler; internal details are logged, never returned.

Usage:
    from core.errors import NotFoundError, ValidationError

    raise NotFoundError(f"User {username} not found")
"""

import logging
import uuid
from flask import jsonify

logger = logging.getLogger(__name__)


# =============================================================================
# Exception Classes (4xx - Expected Errors)
# =============================================================================

class APIError(Exception):
    """
    Base class for expected API errors (4xx status codes).

    ``public_message`` is what the client sees; the exception's own message
    may carry more detail for the log. Subclasses that must not leak detail
    (token and credential failures) pin ``public_message`` to a fixed string.
    """
    status_code = 400
    code = "bad_request"
    public_message = None

    def __init__(self, message: str = "", status_code: int = None, payload: dict = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
        # Extra public fields merged into the JSON body
        self.payload = payload or {}

    def client_message(self) -> str:
        return self.public_message or str(self) or self.code


class NotFoundError(APIError):
    """Resource not found (404)."""
    status_code = 404
    code = "not_found"


class ValidationError(APIError):
    """Request validation failed (400)."""
    status_code = 400
    code = "validation_error"


class PermissionDeniedError(APIError):
    """Permission denied (403)."""
    status_code = 403
    code = "permission_denied"


class AuthenticationError(APIError):
    """Authentication failed (401)."""
    status_code = 401
    code = "authentication_failed"


class ConflictError(APIError):
    """Resource conflict (409)."""
    status_code = 409
    code = "conflict"


class ServiceUnavailableError(APIError):
    """A backing service is down and the request cannot be completed safely (503)."""
    status_code = 503
    code = "service_unavailable"


# =============================================================================
# Startup Errors
# =============================================================================

class ConfigurationInvalid(Exception):
    """
    Configuration that makes the service unsafe to run.

    Raised at startup (settings load, app factory). Not a ValueError, so
    pydantic validators propagate it unwrapped.
    """
    pass


# =============================================================================
# Flask Handlers
# =============================================================================

def _error_body(e: APIError, error_id: str = None) -> dict:
    body = {"error": e.client_message(), "code": e.code}
    body.update(e.payload)
    if error_id:
        body["error_id"] = error_id
    return body


def register_error_handlers(app):
    """
    Register Flask error handlers for APIError exceptions.

    Call this in your Flask app factory:
        from core.errors import register_error_handlers
        register_error_handlers(app)
    """

    @app.errorhandler(APIError)
    def handle_api_error(e):
        """Handle all APIError subclasses."""
        error_id = str(uuid.uuid4())[:8]
        logger.warning(f"API error ({e.code}): {e}", extra={'error_id': error_id})
        return jsonify(_error_body(e, error_id)), e.status_code

    @app.errorhandler(500)
    def handle_internal_error(e):
        """Handle unexpected 500 errors."""
        error_id = str(uuid.uuid4())[:8]
        logger.exception("Internal server error", extra={'error_id': error_id})
        return jsonify({
            "error": "Internal server error",
            "code": "internal_error",
            "error_id": error_id
        }), 500
