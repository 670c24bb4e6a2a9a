"""Durable string key/value stores backing the client cache and token.

`MemoryStorage` is process-local; `JsonFileStorage` persists every write
to a JSON file so data survives restarts of a field client. Both can be
given a byte quota; exceeding it raises `StorageQuotaExceeded`, the
equivalent of a browser's quota error.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Iterator, Optional, Protocol

logger = logging.getLogger("dronegarden.offline.storage")


class StorageQuotaExceeded(Exception):
    pass


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> Iterator[str]: ...


def _usage(items: dict[str, str]) -> int:
    return sum(len(k) + len(v) for k, v in items.items())


class MemoryStorage:
    def __init__(self, quota_bytes: Optional[int] = None):
        self._items: dict[str, str] = {}
        self.quota_bytes = quota_bytes
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            candidate = dict(self._items)
            candidate[key] = value
            if self.quota_bytes is not None and _usage(candidate) > self.quota_bytes:
                raise StorageQuotaExceeded(f"storing {key!r} exceeds the {self.quota_bytes} byte quota")
            self._commit(candidate)

    def remove_item(self, key: str) -> None:
        with self._lock:
            if key not in self._items:
                return
            candidate = dict(self._items)
            del candidate[key]
            self._commit(candidate)

    def _commit(self, items: dict[str, str]) -> None:
        self._items = items

    def keys(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._items))


class JsonFileStorage(MemoryStorage):
    """MemoryStorage mirrored to a JSON file after every change."""

    def __init__(self, path: os.PathLike | str, quota_bytes: Optional[int] = None):
        super().__init__(quota_bytes=quota_bytes)
        self.path = Path(path)
        self._items = self._load()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("storage file %s is unreadable; starting empty", self.path)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _flush(self, items: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(items, fh)
            os.replace(tmp, self.path)
        finally:
            if os.path.exists(tmp):
                os.unlink(tmp)

    def _commit(self, items: dict[str, str]) -> None:
        # memory only changes once the file holds the new state
        self._flush(items)
        self._items = items
