# src/cache/ttl_cache.py — v1
"""In-process TTL cache with LRU eviction and an injectable clock.

Holds analysis results keyed by script text hash. Entries expire after
ttl_s seconds of the injected clock; when capacity is reached the least
recently used entry is evicted.
"""

from __future__ import annotations

import hashlib
import time
from collections import OrderedDict
from typing import Callable, Generic, TypeVar

V = TypeVar("V")


def text_key(*parts: str) -> str:
    """Stable cache key from one or more text parts."""
    digest = hashlib.sha256()
    for part in parts:
        digest.update(part.encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


class TTLCache(Generic[V]):
    """Bounded mapping whose entries expire after a fixed TTL."""

    def __init__(
        self,
        capacity: int = 128,
        ttl_s: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self._capacity = capacity
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, V]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> V | None:
        """Return the live value for key, or None."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return value

    def put(self, key: str, value: V) -> None:
        self._entries[key] = (self._clock() + self._ttl_s, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self._capacity:
            self._entries.popitem(last=False)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
