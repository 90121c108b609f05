"""
Users blueprint package (admin user management API).
"""

from .routes import users_bp  # noqa: F401
