"""
In-process read cache for the dashboard payload.

Sits in front of the key-value store so repeated dashboard loads do not re-read six
collections. Entries expire after a TTL; clear() drops everything so the next read
refetches from the store. Each app owns one instance (app.extensions["read_cache"]).
"""

import logging
import threading
import time

logger = logging.getLogger(__name__)


class ReadCache:
    """Small TTL cache: key -> (value, expire_ts)."""

    def __init__(self, ttl_seconds=30):
        self.ttl_seconds = ttl_seconds
        self._entries = {}
        self._lock = threading.Lock()

    def get(self, key):
        """Return the cached value, or None on miss/expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires = entry
            if expires and time.monotonic() > expires:
                self._entries.pop(key, None)
                return None
            return value

    def set(self, key, value, ttl_seconds=None):
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (value, time.monotonic() + ttl if ttl else None)

    def clear(self):
        """Drop every entry. Returns the number of entries removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Read cache cleared (%d entries)", count)
        return count

    def __len__(self):
        return len(self._entries)
