"""In-process cache for model descriptors."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


class CacheKeyError(KeyError):
    """Raised by `MemoryCache.get` for missing or expired keys."""


@dataclass
class _Item:
    value: Any
    ttl: Optional[float]
    created: float

    def expired(self, now: float) -> bool:
        if self.ttl is None:
            return False
        return now - self.created > self.ttl


class MemoryCache:
    """Thread-safe key/value store with per-entry time-to-live.

    A `ttl` of `None` keeps the entry forever. Expired entries are dropped
    lazily when read.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._items: Dict[str, _Item] = {}
        self._lock = threading.RLock()
        self._clock = clock

    def get(self, key: str) -> Any:
        """Return the value stored under `key`.

        Raises:
            CacheKeyError: If the key does not exist or has expired.
        """

        with self._lock:
            item = self._items.get(key)
            if item is None or item.expired(self._clock()):
                self._items.pop(key, None)
                raise CacheKeyError(f"cache: key {key!r} does not exist")
            return item.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if ttl is not None and ttl <= 0:
            raise ValueError("ttl must be positive or None.")
        with self._lock:
            self._items[key] = _Item(value=value, ttl=ttl, created=self._clock())

    def exist(self, key: str) -> bool:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return False
            if item.expired(self._clock()):
                del self._items[key]
                return False
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            if key not in self._items:
                raise CacheKeyError(f"cache: key {key!r} does not exist")
            del self._items[key]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
