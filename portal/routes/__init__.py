"""
Route blueprints for the TaskActivity API.
"""

from .health import health_bp
from .auth_routes import auth_bp
from .admin_routes import admin_bp

__all__ = ['health_bp', 'auth_bp', 'admin_bp']
