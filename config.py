"""
Application configuration.

This module defines the configuration settings for the Flask application: the Redis
connection used as the key-value store, the secret key, the admin bootstrap key and
cache/logging settings. Values come from environment variables with development
defaults. In production, set the environment variables and keep the secret keys private.
"""

import os


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Key-value store (every collection is one key holding a JSON array)
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
    REDIS_SOCKET_TIMEOUT = float(os.environ.get("REDIS_SOCKET_TIMEOUT", "5"))

    # Required by POST /api/auth/setup-admin to create the first admin
    ADMIN_SETUP_KEY = os.environ.get("ADMIN_SETUP_KEY", "change-me-admin-setup-key")

    # Seconds the aggregated dashboard payload stays in the read cache
    DASHBOARD_CACHE_TTL = int(os.environ.get("DASHBOARD_CACHE_TTL", "30"))

    # CSRF protection (API clients send the X-CSRFToken header)
    WTF_CSRF_ENABLED = os.environ.get("WTF_CSRF_ENABLED", "true").lower() == "true"

    LOG_LEVEL = os.environ.get("LOG_LEVEL")

    DEBUG = False
    TESTING = False

    # App name (used in log lines and responses)
    APP_NAME = "Portfolio Status Dashboard"


class DevelopmentConfig(Config):
    """Local development."""

    DEBUG = True


class TestingConfig(Config):
    """Test suite configuration. The store client is injected by the fixtures."""

    TESTING = True
    SECRET_KEY = "test-secret"
    ADMIN_SETUP_KEY = "test-setup-key"
    WTF_CSRF_ENABLED = False
    DASHBOARD_CACHE_TTL = 30
