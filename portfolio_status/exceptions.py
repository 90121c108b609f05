"""
portfolio_status/exceptions.py

Exception hierarchy shared by the store, the services and the HTTP layer.

Services raise these types; portfolio_status/__init__.py registers one JSON error handler per
type so every blueprint maps them to the same HTTP status codes:

    ValidationError      -> 400
    AuthenticationError  -> 401
    NotFoundError        -> 404
    ConflictError        -> 409
    StorageUnavailable   -> 503

DanglingReference is never raised to callers: the view builder records one per
skipped item and reports the counts in its result.
"""

from __future__ import annotations


class PortfolioError(Exception):
    """Base class for all domain errors."""


class StorageUnavailable(PortfolioError):
    """
    The key-value store could not be reached or returned malformed data.

    Raised instead of synthesizing an empty collection, so callers can tell an
    empty collection apart from a store failure.
    """

    def __init__(self, message: str, key: str | None = None) -> None:
        self.key = key
        if key is not None:
            message = f"{message} (key={key!r})"
        super().__init__(message)


class ValidationError(PortfolioError):
    """
    Malformed input to a write operation. Raised before any store mutation.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(PortfolioError):
    """A requested record does not exist."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ConflictError(PortfolioError):
    """The write would duplicate a unique value or orphan a referencing record."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(PortfolioError):
    """
    Login or credential check failed.

    The message is deliberately generic for login so that "no such user" and
    "wrong password" look the same to the client.
    """

    def __init__(self, message: str = "Invalid email or password.") -> None:
        super().__init__(message)


class DanglingReference(PortfolioError):
    """A foreign key did not resolve during a view rebuild."""

    def __init__(self, entity: str, entity_id: str, field: str, target_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.field = field
        self.target_id = target_id
        super().__init__(f"{entity} {entity_id}: {field}={target_id!r} does not resolve")
