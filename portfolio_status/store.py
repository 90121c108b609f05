"""
portfolio_status/store.py

Key-value store client.

Every collection is ONE Redis key holding a JSON array. The only write primitive is
a whole-key replace (SET), so every non-additive change is a read-modify-write of the
full array and the unit of atomicity is one key's value.

The client handle is created by a factory and owned by a KeyValueStore instance
(one per Flask app, see create_app). reset() drops the handle and builds a new one
from the factory; nothing else mutates it.

Errors:
- Connection/timeout/protocol errors -> StorageUnavailable
- Key holding something other than a JSON array of valid records -> StorageUnavailable
- Missing key -> empty collection
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable, List, Optional, Type, TypeVar

import redis
from pydantic import ValidationError as PydanticValidationError

from .exceptions import StorageUnavailable
from .models import Record

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)


# ---------------------------------------------------------------------
# Canonical keys (must not change: existing data lives under these names)
# ---------------------------------------------------------------------
COUNTRIES_KEY = "countries"
PROCEDURES_KEY = "procedures"
PRODUCT_TYPES_KEY = "productTypes"
PRODUCTS_KEY = "products"
STATUSES_KEY = "statuses"
STATUS_PORTFOLIOS_KEY = "statusPortfolios"
PORTFOLIO_VIEW_KEY = "portfolioStatusView"
PENDING_USERS_KEY = "auth:pendingUsers"
APPROVED_USERS_KEY = "auth:approvedUsers"

COLLECTION_KEYS = (
    COUNTRIES_KEY,
    PROCEDURES_KEY,
    PRODUCT_TYPES_KEY,
    PRODUCTS_KEY,
    STATUSES_KEY,
    STATUS_PORTFOLIOS_KEY,
    PORTFOLIO_VIEW_KEY,
    PENDING_USERS_KEY,
    APPROVED_USERS_KEY,
)


def redis_client_factory(url: str, socket_timeout: float | None = None) -> Callable[[], Any]:
    """Return a factory building a Redis client for `url` (str responses)."""

    def factory():
        return redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    return factory


def encode_collection(items: Iterable[Any]) -> str:
    """Serialize a sequence of records (or plain dicts) to the stored JSON text."""
    payload = [item.to_store() if isinstance(item, Record) else item for item in items]
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


class KeyValueStore:
    """Typed get/set/keys/delete over named string keys."""

    def __init__(self, client_factory: Callable[[], Any]) -> None:
        self._factory = client_factory
        self._client = None

    # -----------------------------------------------------------------
    # Connection lifecycle
    # -----------------------------------------------------------------
    @property
    def client(self):
        if self._client is None:
            self._client = self._factory()
        return self._client

    def reset(self) -> None:
        """Drop the current client handle and connect again on next use."""
        old, self._client = self._client, None
        if old is not None:
            try:
                old.close()
            except redis.RedisError:
                logger.warning("Error closing previous store client", exc_info=True)
        logger.info("Store client reset")

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as exc:
            raise StorageUnavailable(f"Store ping failed: {exc}") from exc

    # -----------------------------------------------------------------
    # Raw key access
    # -----------------------------------------------------------------
    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except redis.RedisError as exc:
            raise StorageUnavailable(f"Store read failed: {exc}", key=key) from exc

    def set(self, key: str, value: str) -> bool:
        try:
            return bool(self.client.set(key, value))
        except redis.RedisError as exc:
            raise StorageUnavailable(f"Store write failed: {exc}", key=key) from exc

    def delete(self, *keys: str) -> int:
        try:
            return int(self.client.delete(*keys))
        except redis.RedisError as exc:
            raise StorageUnavailable(f"Store delete failed: {exc}") from exc

    def keys(self, pattern: str = "*") -> List[str]:
        try:
            return sorted(self.client.keys(pattern))
        except redis.RedisError as exc:
            raise StorageUnavailable(f"Store keys failed: {exc}") from exc

    # -----------------------------------------------------------------
    # Collections
    # -----------------------------------------------------------------
    def get_raw_collection(self, key: str) -> list:
        """Stored JSON array for `key` (empty list if the key is missing)."""
        raw = self.get(key)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as exc:
            raise StorageUnavailable("Collection is not valid JSON", key=key) from exc
        if not isinstance(data, list):
            raise StorageUnavailable(
                f"Collection holds {type(data).__name__}, expected array", key=key
            )
        return data

    def get_collection(self, key: str, model: Type[R]) -> List[R]:
        """Read `key` and validate every element against `model`."""
        data = self.get_raw_collection(key)
        try:
            return [model.model_validate(item) for item in data]
        except PydanticValidationError as exc:
            logger.error("Malformed %s record in %r: %s", model.__name__, key, exc)
            raise StorageUnavailable(
                f"Collection holds malformed {model.__name__} records", key=key
            ) from exc

    def set_collection(self, key: str, items: Iterable[Any]) -> bool:
        """Replace the whole collection stored at `key` in a single SET."""
        text = encode_collection(items)
        ok = self.set(key, text)
        logger.debug("Wrote %s (%d bytes)", key, len(text))
        return ok
