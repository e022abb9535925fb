# Overview: Pytest coverage for the revalidation cache and its monitor.

"""
Cache Service Tests

Verifies:
- Repeat calls within the revalidation interval hit the cache
- Tag invalidation forces recomputation
- Entries expire after their interval
- Exceptions are never cached
- Per-key metrics and aggregate stats
"""

import asyncio

import pytest

from reseller_ops.services.cache_service import (
    CacheDuration,
    CacheMonitor,
    CacheStore,
    CacheTags,
    make_cache_key,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return CacheStore(clock=clock)


class TestCacheKeys:

    def test_duration_tags(self):
        assert CacheDuration.SHORT == 300
        assert CacheDuration.VERY_LONG == 86400
        assert CacheDuration.MEDIUM.tag == "medium"
        assert CacheDuration.VERY_LONG.tag == "very-long"

    def test_make_cache_key_is_stable(self):
        assert make_cache_key("stats", "env-1") == "stats-env-1"
        assert make_cache_key("stats", None, True) == "stats-null-true"
        assert make_cache_key("stats", b=2, a=1) == make_cache_key("stats", a=1, b=2)
        assert make_cache_key("stats") == "stats"


class TestCachedCalls:

    def test_second_call_is_a_hit(self, store):
        calls = []

        def compute(environment_id):
            calls.append(environment_id)
            return {"env": environment_id}

        cached = store.cached(compute, key="test:compute", tags=[CacheTags.PRODUCTS])

        assert cached("env-1") == {"env": "env-1"}
        assert cached("env-1") == {"env": "env-1"}
        assert calls == ["env-1"]

        metrics = store.monitor.get_metrics("test:compute")
        assert metrics.hits == 1
        assert metrics.misses == 1

    def test_arguments_are_cached_separately(self, store):
        calls = []
        cached = store.cached(lambda env: calls.append(env) or env, key="test:per-arg")

        cached("env-1")
        cached("env-2")
        cached("env-1")

        assert calls == ["env-1", "env-2"]

    def test_async_function_is_cached(self, store):
        calls = []

        async def compute(environment_id):
            calls.append(environment_id)
            return 42

        cached = store.cached(compute, key="test:async")

        async def run():
            return [await cached("env-1"), await cached("env-1")]

        assert asyncio.run(run()) == [42, 42]
        assert calls == ["env-1"]
        assert cached.cache_key == "test:async"

    def test_tag_invalidation_forces_recompute(self, store):
        calls = []
        cached = store.cached(lambda env: calls.append(env) or len(calls), key="test:tagged",
                              tags=[CacheTags.PRODUCTS])

        assert cached("env-1") == 1
        assert cached("env-1") == 1
        misses_before = store.monitor.get_metrics("test:tagged").misses

        affected = store.invalidate_tags([CacheTags.PRODUCTS])

        assert affected == ["test:tagged"]
        assert cached("env-1") == 2
        assert store.monitor.get_metrics("test:tagged").misses == misses_before + 1
        assert store.monitor.get_metrics("test:tagged").invalidations == 1

    def test_invalidation_during_compute_is_not_lost(self, store):
        state = {"value": 1}

        async def fetch(environment_id):
            value = state["value"]
            await asyncio.sleep(0)
            state["value"] = 2
            store.invalidate_tags([CacheTags.PRODUCTS])
            return value

        cached = store.cached(fetch, key="test:mid-compute", tags=[CacheTags.PRODUCTS])

        async def run():
            return await cached("env-1"), await cached("env-1")

        first, second = asyncio.run(run())

        assert first == 1
        assert second == 2

    def test_sync_invalidation_during_compute_is_not_lost(self, store):
        state = {"value": 1}

        def fetch(environment_id):
            value = state["value"]
            state["value"] += 1
            store.invalidate_tags([CacheTags.LOCATIONS])
            return value

        cached = store.cached(fetch, key="test:mid-compute-sync", tags=[CacheTags.LOCATIONS])

        assert cached("env-1") == 1
        assert cached("env-1") == 2

    def test_user_profiles_tag(self):
        assert CacheTags.USER_PROFILES == "user-profiles"

    def test_unrelated_tag_does_not_invalidate(self, store):
        calls = []
        cached = store.cached(lambda env: calls.append(env), key="test:untouched",
                              tags=[CacheTags.PRODUCTS])

        cached("env-1")
        assert store.invalidate_tags([CacheTags.LOCATIONS]) == []
        cached("env-1")

        assert calls == ["env-1"]

    def test_duration_is_a_tag(self, store):
        calls = []
        cached = store.cached(lambda env: calls.append(env), key="test:by-duration",
                              duration=CacheDuration.LONG)

        cached("env-1")
        store.invalidate_tags([CacheDuration.LONG.tag])
        cached("env-1")

        assert calls == ["env-1", "env-1"]

    def test_entry_expires_after_interval(self, store, clock):
        calls = []
        cached = store.cached(lambda env: calls.append(env), key="test:ttl",
                              duration=CacheDuration.SHORT)

        cached("env-1")
        clock.advance(CacheDuration.SHORT - 1)
        cached("env-1")
        assert len(calls) == 1

        clock.advance(1)
        cached("env-1")
        assert len(calls) == 2

    def test_exceptions_are_not_cached(self, store):
        attempts = []

        def flaky(env):
            attempts.append(env)
            if len(attempts) == 1:
                raise RuntimeError("store unavailable")
            return "ok"

        cached = store.cached(flaky, key="test:flaky")

        with pytest.raises(RuntimeError):
            cached("env-1")
        assert cached("env-1") == "ok"
        assert cached("env-1") == "ok"
        assert len(attempts) == 2

    def test_clear_drops_entries(self, store):
        calls = []
        cached = store.cached(lambda env: calls.append(env), key="test:clear")

        cached("env-1")
        store.clear()
        cached("env-1")

        assert len(calls) == 2


class TestCacheMonitor:

    def test_stats_aggregate_all_keys(self):
        monitor = CacheMonitor()
        monitor.record_miss("a")
        monitor.record_hit("a")
        monitor.record_hit("a")
        monitor.record_miss("b")

        stats = monitor.get_stats()

        assert stats["total_hits"] == 2
        assert stats["total_misses"] == 2
        assert stats["overall_hit_rate"] == 50.0
        assert sorted(stats["cache_keys"]) == ["a", "b"]
        assert stats["keys"]["a"]["hit_rate"] == pytest.approx(66.67)
        assert monitor.get_hit_rate("b") == 0.0
        assert monitor.get_hit_rate("missing") == 0.0

    def test_empty_monitor(self):
        stats = CacheMonitor().get_stats()
        assert stats["overall_hit_rate"] == 0.0
        assert stats["cache_keys"] == []

    def test_clear_resets_metrics(self):
        monitor = CacheMonitor()
        monitor.record_hit("a")
        monitor.clear()
        assert monitor.get_metrics("a") is None
