"""
portfolio_status/__init__.py

Flask application factory for the Portfolio Status Dashboard.

Architecture:
- Every collection lives in ONE key of a Redis key-value store as a JSON array.
- The store client and the dashboard read cache are owned by the app
  (app.extensions), never by module globals; tests inject their own client.
- JSON API only. The UI is never trusted; permissions are enforced server-side.

Roles:
- "user"  read the dashboard
- "admin" edit master data, statuses and users
"""

from __future__ import annotations

from typing import Any, Optional

import click
from flask import Flask, jsonify
from flask_login import current_user
from werkzeug.exceptions import HTTPException

from .cache import ReadCache
from .exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    StorageUnavailable,
    ValidationError,
)
from .extensions import (
    CACHE_EXTENSION,
    STORE_EXTENSION,
    csrf,
    get_store,
    login_manager,
    portfolio_service,
    user_directory,
)
from .logging_config import configure_logging
from .models import SessionUser
from .store import KeyValueStore, redis_client_factory


def _register_error_handlers(app: Flask) -> None:
    """Map domain exceptions to JSON responses with stable status codes."""

    def _error(message: str, status: int, details: Optional[dict] = None):
        body = {"success": False, "error": message}
        if details:
            body["details"] = details
        return jsonify(body), status

    @app.errorhandler(ValidationError)
    def _validation(exc: ValidationError):
        return _error(str(exc), 400, exc.details)

    @app.errorhandler(AuthenticationError)
    def _authentication(exc: AuthenticationError):
        return _error(str(exc), 401)

    @app.errorhandler(NotFoundError)
    def _not_found(exc: NotFoundError):
        return _error(str(exc), 404)

    @app.errorhandler(ConflictError)
    def _conflict(exc: ConflictError):
        return _error(str(exc), 409, exc.details)

    @app.errorhandler(StorageUnavailable)
    def _storage(exc: StorageUnavailable):
        app.logger.error("Store unavailable: %s", exc)
        return _error("Storage is unavailable, please retry later.", 503)

    @app.errorhandler(HTTPException)
    def _http(exc: HTTPException):
        return _error(exc.description or exc.name, exc.code or 500)


def create_app(config_object: str | object = "config.Config", kv_client: Any = None) -> Flask:
    """
    Create and configure the Flask application.

    Parameters:
        config_object: import path or class passed to app.config.from_object
        kv_client: ready Redis-compatible client to use instead of REDIS_URL
    """
    app = Flask(__name__)
    app.config.from_object(config_object)

    configure_logging(app)

    # ----------------------------------------------------------------------
    # Store + read cache (per app)
    # ----------------------------------------------------------------------
    if kv_client is not None:
        factory = lambda: kv_client  # noqa: E731
    else:
        factory = redis_client_factory(
            app.config["REDIS_URL"],
            socket_timeout=app.config.get("REDIS_SOCKET_TIMEOUT"),
        )
    app.extensions[STORE_EXTENSION] = KeyValueStore(factory)
    app.extensions[CACHE_EXTENSION] = ReadCache(app.config.get("DASHBOARD_CACHE_TTL", 30))

    # ----------------------------------------------------------------------
    # Extensions
    # ----------------------------------------------------------------------
    csrf.init_app(app)
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> SessionUser | None:
        """Only approved users hold a session."""
        user = user_directory().find_approved_by_id(user_id)
        return SessionUser(user) if user is not None else None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "error": "Authentication required"}), 401

    _register_error_handlers(app)

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.catalog import catalog_bp
    from .blueprints.portfolio import portfolio_bp
    from .blueprints.users import users_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(portfolio_bp)

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("seed-data")
    def seed_data_command():
        """Seed default statuses, countries, procedures and product types."""
        from .seed import seed_default_data

        added = seed_default_data(get_store())
        for key, count in added.items():
            click.echo(f"{key}: {count} added")
        result = portfolio_service().refresh_derived()
        click.echo(result.message)

    @app.cli.command("rebuild-view")
    def rebuild_view_command():
        """Recompute portfolioStatusView from the source collections."""
        result = portfolio_service().rebuild_portfolio_status_view()
        if not result.success:
            raise click.ClickException(result.message)
        click.echo(result.message)
        click.echo(
            f"{result.products} products, {result.skipped_products} products skipped, "
            f"{result.skipped_rows} rows skipped"
        )

    @app.cli.command("create-admin")
    @click.option("--name", required=True)
    @click.option("--email", required=True)
    @click.password_option()
    def create_admin_command(name: str, email: str, password: str):
        """Create an approved admin user directly in the store."""
        try:
            user, _ = user_directory().create_user(
                name=name, email=email, role="admin", status="approved", password=password
            )
        except (ValidationError, ConflictError) as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Admin {user.email} created (id={user.id}).")

    # ----------------------------------------------------------------------
    # Home
    # ----------------------------------------------------------------------
    @app.route("/")
    def index():
        """Service banner; tells the client whether a session is active."""
        return jsonify(
            {
                "app": app.config.get("APP_NAME"),
                "authenticated": bool(current_user.is_authenticated),
            }
        )

    return app
