"""Tests for agent_03_resolution.search — TTL cache."""

import pytest

from agent_03_resolution.search.cache import (
    MemoryTTLCache,
    NullCache,
    coordinate_cache_key,
    make_cache_key,
)


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


# ---- keys -------------------------------------------------------------------


class TestCacheKeys:
    def test_deterministic(self):
        assert make_cache_key("local", 1, 2) == make_cache_key("local", 1, 2)

    def test_sixteen_hex_chars(self):
        key = make_cache_key("local", 1, 2)
        assert len(key) == 16
        int(key, 16)

    def test_nearby_coordinates_share_key(self):
        assert coordinate_cache_key("local", 39.831, -98.579) == \
            coordinate_cache_key("local", 39.834, -98.581)

    def test_distinct_cells(self):
        assert coordinate_cache_key("local", 39.83, -98.58) != \
            coordinate_cache_key("local", 39.84, -98.58)

    def test_prefix_matters(self):
        assert coordinate_cache_key("local", 1.0, 2.0) != coordinate_cache_key("map", 1.0, 2.0)


# ---- MemoryTTLCache ---------------------------------------------------------


class TestMemoryTTLCache:
    def test_set_and_get(self):
        cache = MemoryTTLCache(clock=FakeClock())
        cache.set("k", [1, 2])
        assert cache.get("k") == [1, 2]

    def test_miss(self):
        assert MemoryTTLCache().get("missing") is None

    def test_expiry(self):
        clock = FakeClock()
        cache = MemoryTTLCache(ttl_seconds=300, clock=clock)
        cache.set("k", "v")
        clock.advance(299)
        assert cache.get("k") == "v"
        clock.advance(1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_oldest_evicted_when_full(self):
        cache = MemoryTTLCache(max_entries=2, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.get("a") is None
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_overwrite_does_not_evict(self):
        cache = MemoryTTLCache(max_entries=2, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        assert cache.get("a") == 10
        assert cache.get("b") == 2

    def test_invalidate_and_clear(self):
        cache = MemoryTTLCache(clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_rejects_bad_limits(self):
        with pytest.raises(ValueError):
            MemoryTTLCache(ttl_seconds=0)
        with pytest.raises(ValueError):
            MemoryTTLCache(max_entries=0)


class TestNullCache:
    def test_never_stores(self):
        cache = NullCache()
        cache.set("k", "v")
        assert cache.get("k") is None
        assert len(cache) == 0
