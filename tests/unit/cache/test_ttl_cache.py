# tests/unit/cache/test_ttl_cache.py — v1
"""Tests for cache/ttl_cache.py — bounded TTL cache with injected clock."""

from __future__ import annotations

import pytest

from scriptconveyor.cache.ttl_cache import TTLCache, text_key


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestTextKey:
    def test_stable(self):
        assert text_key("a", "news") == text_key("a", "news")

    def test_parts_are_separated(self):
        assert text_key("ab", "c") != text_key("a", "bc")


class TestTTLCache:
    def test_put_get(self):
        cache: TTLCache[int] = TTLCache(capacity=2)
        cache.put("a", 1)
        assert cache.get("a") == 1
        assert cache.hits == 1

    def test_miss(self):
        cache: TTLCache[int] = TTLCache()
        assert cache.get("nope") is None
        assert cache.misses == 1

    def test_expiry_uses_clock(self):
        clock = FakeClock()
        cache: TTLCache[str] = TTLCache(capacity=4, ttl_s=10, clock=clock)
        cache.put("k", "v")
        clock.now = 9.9
        assert cache.get("k") == "v"
        clock.now = 10.0
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_evicts_least_recently_used(self):
        cache: TTLCache[int] = TTLCache(capacity=2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")
        cache.put("c", 3)
        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3

    def test_invalidate_and_clear(self):
        cache: TTLCache[int] = TTLCache()
        cache.put("a", 1)
        cache.put("b", 2)
        cache.invalidate("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            TTLCache(capacity=0)
