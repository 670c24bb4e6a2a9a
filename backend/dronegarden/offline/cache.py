"""Persistent key-value cache with per-entry timestamps and a 24 h TTL.

The cache is advisory: every failure (quota, serialization, malformed or
expired data) degrades to "no cached data" and is logged, never raised.
Entries are stored as JSON `{"data": ..., "timestamp": <epoch ms>}` under
`prefix + key` in a `KeyValueStorage`.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError

from .storage import KeyValueStorage

logger = logging.getLogger("dronegarden.offline.cache")

CACHE_PREFIX = "app_cache_"
CACHE_TTL_MS = 24 * 60 * 60 * 1000


class CacheKeys:
    USER = "current_user"
    SERVICE_REQUESTS = "service_requests"
    ALL_SERVICE_REQUESTS = "all_service_requests"
    USERS = "admin_users"


class CacheEntry(BaseModel):
    data: Any
    timestamp: int


def _now_ms() -> int:
    return int(time.time() * 1000)


class PersistentCache:
    def __init__(
        self,
        storage: KeyValueStorage,
        prefix: str = CACHE_PREFIX,
        ttl_ms: int = CACHE_TTL_MS,
        clock: Callable[[], int] = _now_ms,
    ):
        self.storage = storage
        self.prefix = prefix
        self.ttl_ms = ttl_ms
        self._clock = clock

    def _entry(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = self.storage.get_item(self.prefix + key)
        except Exception:
            logger.warning("cache read failed for %s", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError:
            logger.debug("discarding malformed cache entry %s", key)
            return None

    def set(self, key: str, data: Any) -> None:
        """Store `data` with the current timestamp; failures are only logged."""
        try:
            payload = json.dumps({"data": data, "timestamp": self._clock()})
            self.storage.set_item(self.prefix + key, payload)
        except Exception as exc:
            logger.warning("cache write failed for %s: %s", key, exc)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached payload, or None when missing, malformed or expired."""
        entry = self._entry(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp > self.ttl_ms:
            self.remove(key)
            return None
        return entry.data

    def remove(self, key: str) -> None:
        try:
            self.storage.remove_item(self.prefix + key)
        except Exception:
            logger.warning("cache remove failed for %s", key, exc_info=True)

    def clear(self) -> None:
        """Remove every entry under this cache's prefix, nothing else."""
        try:
            owned = [k for k in self.storage.keys() if k.startswith(self.prefix)]
        except Exception:
            logger.warning("cache clear could not list keys", exc_info=True)
            return
        for full_key in owned:
            self.remove(full_key[len(self.prefix):])

    def get_timestamp(self, key: str) -> Optional[int]:
        """Epoch-millis of the stored entry, for showing data staleness."""
        entry = self._entry(key)
        return entry.timestamp if entry else None
