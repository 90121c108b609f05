"""
Central place for Flask extensions and per-app service handles.

This avoids circular imports and keeps create_app clean.
Extensions are initialized in create_app() in __init__.py, where the app context is available.

The key-value store and read cache are NOT module globals: create_app() builds them
and keeps them in app.extensions; the accessors below hand them to the services
explicitly for the current app.
"""

from flask import current_app
from flask_login import LoginManager
from flask_wtf import CSRFProtect

from .cache import ReadCache
from .services.portfolio import PortfolioService
from .services.users import UserDirectory
from .store import KeyValueStore

# Global extension instances - initialized in create_app() with the app.
login_manager = LoginManager()
csrf = CSRFProtect()

STORE_EXTENSION = "kv_store"
CACHE_EXTENSION = "read_cache"


def get_store() -> KeyValueStore:
    return current_app.extensions[STORE_EXTENSION]


def get_read_cache() -> ReadCache:
    return current_app.extensions[CACHE_EXTENSION]


def portfolio_service() -> PortfolioService:
    return PortfolioService(get_store(), get_read_cache())


def user_directory() -> UserDirectory:
    return UserDirectory(get_store())
