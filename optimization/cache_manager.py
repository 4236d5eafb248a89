"""
Cache Manager - Process-wide Response Cache
============================================

In-memory TTL + LRU cache shared across generation calls. Holds search API
responses so that discovery re-launched on a retried attempt does not pay
for the same queries twice.

Features:
- Per-entry TTL with lazy expiry
- LRU eviction at capacity, after purging expired entries
- Hit-rate tracking
- Injectable clock for deterministic tests

All state mutation happens in synchronous methods, so coroutines sharing one
instance on an event loop never observe a half-updated entry table.
"""

import hashlib
import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger


@dataclass
class CacheStats:
    """Cache statistics for monitoring."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate percentage."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0

    @property
    def total_operations(self) -> int:
        return self.hits + self.misses + self.sets


@dataclass
class CacheEntry:
    """Cache entry with metadata."""

    key: str
    value: Any
    created_at: float
    ttl_seconds: Optional[float] = None
    access_count: int = 0

    def is_expired(self, now: float) -> bool:
        """Check if entry has expired."""
        if self.ttl_seconds is None:
            return False
        return (now - self.created_at) > self.ttl_seconds

    def touch(self) -> None:
        self.access_count += 1


def make_cache_key(namespace: str, payload: Dict[str, Any]) -> str:
    """Stable key for a request payload."""
    digest = hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()
    return f"{namespace}:{digest[:32]}"


class ResponseCache:
    """
    Bounded in-memory cache with TTL expiry and LRU eviction.

    Shared by all generations handled by one orchestrator instance.
    """

    def __init__(
        self,
        max_entries: int = 100,
        default_ttl: Optional[float] = 300.0,
        clock: Callable[[], float] = time.monotonic,
        metrics_collector: Optional[Any] = None,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self.stats = CacheStats()
        self.metrics_collector = metrics_collector

        logger.debug(f"Response cache initialized | max_entries={max_entries} ttl={default_ttl}")

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on miss/expiry."""
        entry = self._entries.get(key)
        if entry is None:
            self._record_miss(key)
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.stats.expirations += 1
            self._record_miss(key)
            return None

        entry.touch()
        self._entries.move_to_end(key)
        self.stats.hits += 1
        if self.metrics_collector:
            self.metrics_collector.record_cache_hit(self._namespace(key))
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Store a value; None is never cached.

        At capacity, expired entries are purged before any live entry is
        evicted.
        """
        if value is None:
            return

        if key in self._entries:
            del self._entries[key]
        if len(self._entries) >= self.max_entries:
            self.cleanup_expired()
        while len(self._entries) >= self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.stats.evictions += 1
            logger.debug(f"Evicted LRU entry: {evicted}")

        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            created_at=self._clock(),
            ttl_seconds=self.default_ttl if ttl is None else ttl,
        )
        self.stats.sets += 1

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Response cache cleared")

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Return the cached value or compute, store and return it.

        Exceptions from the factory propagate and nothing is stored.
        """
        value = self.get(key)
        if value is not None:
            return value

        value = await factory()
        self.set(key, value, ttl=ttl)
        return value

    def cleanup_expired(self) -> int:
        """Drop every expired entry; returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        self.stats.expirations += len(expired)
        return len(expired)

    def get_statistics(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "hit_rate": self.stats.hit_rate,
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "sets": self.stats.sets,
            "evictions": self.stats.evictions,
            "expirations": self.stats.expirations,
            "size": len(self._entries),
            "max_size": self.max_entries,
        }

    def _record_miss(self, key: str) -> None:
        self.stats.misses += 1
        if self.metrics_collector:
            self.metrics_collector.record_cache_miss(self._namespace(key))

    @staticmethod
    def _namespace(key: str) -> str:
        return key.split(":", 1)[0]
