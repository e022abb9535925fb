# Overview: Time- and tag-based result cache for read operations, with per-key hit/miss monitoring.

"""
Cache Service

Wraps a read function so that, per unique argument tuple, it runs at most once
per revalidation interval. Every cached entry is registered under a set of
tags; invalidating a tag makes all entries carrying it stale immediately.

USAGE:
    store = CacheStore()
    get_stats = store.cached(
        fetch_stats,
        key="dashboard:stats",
        duration=CacheDuration.SHORT,
        tags=[CacheTags.PRODUCTS, CacheTags.DASHBOARD_STATS],
    )
    await get_stats(environment_id)      # miss, runs fetch_stats
    await get_stats(environment_id)      # hit
    store.invalidate_tags([CacheTags.PRODUCTS])
    await get_stats(environment_id)      # miss again

INVARIANTS:
- Exceptions raised by the wrapped function are never cached.
- A store is never shared between Flask apps (see extensions.init_cache).
- Monitoring is observability only; it never changes what is returned.
"""

from __future__ import annotations

import enum
import functools
import inspect
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable

from ..time_utils import utcnow


logger = logging.getLogger(__name__)


class CacheDuration(enum.IntEnum):
    """Named revalidation intervals, in seconds."""

    SHORT = 300
    MEDIUM = 1800
    LONG = 7200
    VERY_LONG = 86400

    @property
    def tag(self) -> str:
        return self.name.lower().replace("_", "-")


class CacheTags:
    PRODUCTS = "products"
    LOCATIONS = "locations"
    ENVIRONMENTS = "environments"
    MEMBERSHIPS = "memberships"
    DASHBOARD_STATS = "dashboard-stats"
    USER_PROFILES = "user-profiles"
    DEMO_DATA = "demo-data"


def make_cache_key(prefix: str, *params: Any, **named: Any) -> str:
    """Stable string key from a prefix and call arguments."""
    def render(value: Any) -> str:
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (str, int, float)):
            return str(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, (dict, list, tuple)):
            return json.dumps(value, sort_keys=True, default=str)
        return str(value)

    parts = [render(p) for p in params]
    parts.extend(f"{k}={render(named[k])}" for k in sorted(named))
    return "-".join([prefix, *parts]) if parts else prefix


@dataclass
class CacheMetrics:
    hits: int = 0
    misses: int = 0
    invalidations: int = 0
    last_access: datetime = field(default_factory=utcnow)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total) * 100 if total > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "invalidations": self.invalidations,
            "hit_rate": round(self.hit_rate, 2),
            "last_access": self.last_access.isoformat(),
        }


class CacheMonitor:
    """Per cache key counters. Used for debugging and the cache stats endpoint."""

    def __init__(self):
        self._metrics: dict[str, CacheMetrics] = {}
        self._lock = threading.Lock()

    def _touch(self, cache_key: str) -> CacheMetrics:
        metrics = self._metrics.setdefault(cache_key, CacheMetrics())
        metrics.last_access = utcnow()
        return metrics

    def record_hit(self, cache_key: str) -> None:
        with self._lock:
            self._touch(cache_key).hits += 1
        logger.debug("Cache HIT: %s", cache_key)

    def record_miss(self, cache_key: str) -> None:
        with self._lock:
            self._touch(cache_key).misses += 1
        logger.debug("Cache MISS: %s", cache_key)

    def record_invalidation(self, tags: Iterable[str], affected_keys: Iterable[str]) -> None:
        with self._lock:
            for key in affected_keys:
                self._touch(key).invalidations += 1
        logger.debug("Cache INVALIDATION: %s", ", ".join(tags))

    def get_metrics(self, cache_key: str) -> CacheMetrics | None:
        return self._metrics.get(cache_key)

    def get_hit_rate(self, cache_key: str) -> float:
        metrics = self._metrics.get(cache_key)
        return metrics.hit_rate if metrics else 0.0

    def get_stats(self) -> dict:
        with self._lock:
            items = list(self._metrics.items())
        total_hits = sum(m.hits for _, m in items)
        total_misses = sum(m.misses for _, m in items)
        total = total_hits + total_misses
        return {
            "total_hits": total_hits,
            "total_misses": total_misses,
            "total_invalidations": sum(m.invalidations for _, m in items),
            "overall_hit_rate": round((total_hits / total) * 100, 2) if total else 0.0,
            "cache_keys": [key for key, _ in items],
            "keys": {key: m.to_dict() for key, m in items},
        }

    def clear(self) -> None:
        with self._lock:
            self._metrics.clear()


@dataclass
class _Entry:
    value: Any
    expires_at: float
    tag_versions: dict[str, int]


class CacheStore:
    """
    In-process revalidation store.

    Entries are keyed by (cache key, argument key). Tags carry a version
    counter; an entry is fresh while it has not expired and none of its tags
    has been bumped since it was written.
    """

    def __init__(self, monitor: CacheMonitor | None = None, clock: Callable[[], float] = time.monotonic):
        self.monitor = monitor if monitor is not None else CacheMonitor()
        self._clock = clock
        self._entries: dict[tuple[str, str], _Entry] = {}
        self._tag_versions: dict[str, int] = {}
        self._key_tags: dict[str, frozenset[str]] = {}
        self._lock = threading.Lock()

    def register(self, cache_key: str, tags: Iterable[str]) -> None:
        with self._lock:
            self._key_tags[cache_key] = frozenset(tags)

    def lookup(self, cache_key: str, arg_key: str) -> tuple[bool, Any]:
        with self._lock:
            entry = self._entries.get((cache_key, arg_key))
            if entry is None:
                return False, None
            if self._clock() >= entry.expires_at or any(
                self._tag_versions.get(tag, 0) != version for tag, version in entry.tag_versions.items()
            ):
                del self._entries[(cache_key, arg_key)]
                return False, None
            return True, entry.value

    def tag_snapshot(self, cache_key: str) -> dict[str, int]:
        """Current version of every tag registered for `cache_key`."""
        with self._lock:
            tags = self._key_tags.get(cache_key, frozenset())
            return {tag: self._tag_versions.get(tag, 0) for tag in tags}

    def put(self, cache_key: str, arg_key: str, value: Any, *, revalidate: int,
            tag_versions: dict[str, int] | None = None) -> None:
        # Callers snapshot versions before computing; a mid-compute invalidation leaves the entry stale.
        if tag_versions is None:
            tag_versions = self.tag_snapshot(cache_key)
        with self._lock:
            self._entries[(cache_key, arg_key)] = _Entry(
                value=value,
                expires_at=self._clock() + revalidate,
                tag_versions=tag_versions,
            )

    def invalidate_tags(self, tags: Iterable[str]) -> list[str]:
        """Mark every entry carrying any of `tags` stale. Returns the affected cache keys."""
        tags = list(tags)
        with self._lock:
            for tag in tags:
                self._tag_versions[tag] = self._tag_versions.get(tag, 0) + 1
            affected = sorted(key for key, key_tags in self._key_tags.items() if key_tags.intersection(tags))
        self.monitor.record_invalidation(tags, affected)
        logger.info("Cache invalidation for tags: %s", ", ".join(tags))
        return affected

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cached(
        self,
        fn: Callable,
        *,
        duration: CacheDuration = CacheDuration.SHORT,
        tags: Iterable[str] = (),
        key: str | None = None,
    ) -> Callable:
        """Return `fn` wrapped with this store's revalidation and tag policy."""
        cache_key = key or getattr(fn, "__qualname__", None) or fn.__name__
        self.register(cache_key, {duration.tag, *tags})
        revalidate = int(duration)

        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args, **kwargs):
                arg_key = make_cache_key(cache_key, *args, **kwargs)
                hit, value = self.lookup(cache_key, arg_key)
                if hit:
                    self.monitor.record_hit(cache_key)
                    return value
                versions = self.tag_snapshot(cache_key)
                try:
                    result = await fn(*args, **kwargs)
                except Exception:
                    logger.error("Cache function error for %s", cache_key)
                    raise
                self.put(cache_key, arg_key, result, revalidate=revalidate, tag_versions=versions)
                self.monitor.record_miss(cache_key)
                return result

            async_wrapper.cache_key = cache_key
            return async_wrapper

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            arg_key = make_cache_key(cache_key, *args, **kwargs)
            hit, value = self.lookup(cache_key, arg_key)
            if hit:
                self.monitor.record_hit(cache_key)
                return value
            versions = self.tag_snapshot(cache_key)
            try:
                result = fn(*args, **kwargs)
            except Exception:
                logger.error("Cache function error for %s", cache_key)
                raise
            self.put(cache_key, arg_key, result, revalidate=revalidate, tag_versions=versions)
            self.monitor.record_miss(cache_key)
            return result

        wrapper.cache_key = cache_key
        return wrapper


def invalidate_cache(tags: Iterable[str], store: CacheStore | None = None) -> list[str]:
    """Invalidate tags on `store`, or on the current app's store when omitted."""
    if store is None:
        from ..extensions import get_cache_store

        store = get_cache_store()
    return store.invalidate_tags(tags)
