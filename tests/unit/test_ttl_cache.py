"""
Tests for the injectable TTL cache.

Expiry is driven by a fake monotonic time source so no test sleeps on TTLs.
"""

import time

import pytest

from exchange_kernel.utils.cache import CacheStats, TTLCache


class FakeTime:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def cache(fake_time):
    return TTLCache(ttl_seconds=10, cleanup_interval_seconds=60, time_source=fake_time)


class TestTTLCacheAccess:

    def test_get_returns_value_before_expiry(self, cache, fake_time):
        cache.set("k", "v")
        fake_time.advance(9.9)
        assert cache.get("k") == "v"

    def test_get_misses_after_expiry(self, cache, fake_time):
        """Expired entries are never served, even before cleanup runs."""
        cache.set("k", "v")
        fake_time.advance(10)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_default_returned_on_miss(self, cache):
        assert cache.get("missing", "fallback") == "fallback"

    def test_per_entry_ttl(self, cache, fake_time):
        cache.set("short", 1, ttl_seconds=1)
        cache.set("long", 2)
        fake_time.advance(2)
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_invalidate(self, cache):
        cache.set("k", "v")
        assert cache.invalidate("k") is True
        assert cache.invalidate("k") is False
        assert cache.get("k") is None

    def test_invalidate_prefix_is_scoped(self, cache):
        cache.set("inventory:t1:CAD", 1)
        cache.set("inventory:t1:USD", 2)
        cache.set("inventory:t2:CAD", 3)
        assert cache.invalidate_prefix("inventory:t1:") == 2
        assert cache.get("inventory:t2:CAD") == 3

    def test_purge_expired(self, cache, fake_time):
        cache.set("a", 1, ttl_seconds=1)
        cache.set("b", 2, ttl_seconds=100)
        fake_time.advance(5)
        assert cache.purge_expired() == 1
        assert len(cache) == 1

    def test_stats(self, cache, fake_time):
        cache.set("k", "v")
        cache.get("k")
        cache.get("nope")
        fake_time.advance(11)
        cache.get("k")
        assert cache.stats() == CacheStats(size=0, hits=1, misses=2, evictions=1)

    def test_clear(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert len(cache) == 0


class TestTTLCacheLifecycle:

    def test_invalid_settings_rejected(self):
        with pytest.raises(ValueError):
            TTLCache(ttl_seconds=-1)
        with pytest.raises(ValueError):
            TTLCache(cleanup_interval_seconds=0)

    def test_start_and_close(self):
        cache = TTLCache(ttl_seconds=10, cleanup_interval_seconds=0.05)
        cache.start()
        try:
            assert cache.is_running
        finally:
            cache.close()
        assert not cache.is_running

    def test_start_is_idempotent(self):
        cache = TTLCache(cleanup_interval_seconds=0.05)
        with cache:
            thread = cache._thread
            cache.start()
            assert cache._thread is thread

    def test_close_drops_entries(self):
        cache = TTLCache(cleanup_interval_seconds=0.05).start()
        cache.set("k", "v")
        cache.close()
        assert len(cache) == 0

    def test_cleanup_thread_evicts_expired_entries(self, captured_logs):
        cache = TTLCache(ttl_seconds=0.01, cleanup_interval_seconds=0.02, name="test")
        with cache:
            cache.set("k", "v")
            deadline = time.monotonic() + 2.0
            while len(cache) and time.monotonic() < deadline:
                time.sleep(0.02)
            assert len(cache) == 0
        messages = [r["message"] for r in captured_logs()]
        assert "cache_started" in messages
        assert "cache_closed" in messages
