#!/usr/bin/env python3
"""
In-Memory Response Cache

Read-through TTL cache for latency only. Nothing whose loss would break
correctness is ever stored here: tasks and cluster state live in the
repository, the cache only holds parsed feed responses and derived reads.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A single cache entry with metadata."""
    key: str
    value: Any
    created_at: float
    ttl_seconds: int
    last_accessed: float = 0.0

    def is_expired(self, now: float) -> bool:
        return now > (self.created_at + self.ttl_seconds)


class ResponseCache:
    """
    Thread-safe in-memory cache with TTL expiry and LRU eviction.

    Callers own invalidation: any write that changes what a cached read
    would return must call `invalidate_prefix` afterwards.
    """

    def __init__(self,
                 default_ttl: int = 900,
                 max_entries: int = 500,
                 timer: Callable[[], float] = time.monotonic):
        """
        Initialize response cache.

        Args:
            default_ttl: Default TTL in seconds
            max_entries: Maximum number of entries before LRU eviction
            timer: Monotonic time source, injectable for tests
        """
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._timer = timer

        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._stats = {'hits': 0, 'misses': 0, 'sets': 0, 'evictions': 0, 'invalidations': 0}

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            now = self._timer()

            if entry is None:
                self._stats['misses'] += 1
                return default

            if entry.is_expired(now):
                del self._entries[key]
                self._stats['misses'] += 1
                logger.debug(f"Cache key expired: {key}")
                return default

            entry.last_accessed = now
            self._stats['hits'] += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        with self._lock:
            now = self._timer()
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                created_at=now,
                ttl_seconds=self.default_ttl if ttl is None else ttl,
                last_accessed=now
            )
            self._stats['sets'] += 1

            if len(self._entries) > self.max_entries:
                self._evict_lru()

    def get_or_set(self, key: str, factory: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """
        Read-through helper.

        Args:
            key: Cache key
            factory: Called on a miss; its result is cached
            ttl: TTL in seconds (uses default if None)

        Returns:
            Cached or freshly computed value
        """
        value = self.get(key)
        if value is not None:
            return value
        value = factory()
        self.set(key, value, ttl)
        return value

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with prefix."""
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            self._stats['invalidations'] += len(keys)
            if keys:
                logger.debug(f"Invalidated {len(keys)} cache entries with prefix {prefix}")
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            logger.debug(f"Cleared {count} cache entries")

    def _evict_lru(self) -> None:
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return
        oldest = sorted(self._entries.values(), key=lambda e: e.last_accessed)[:overflow]
        for entry in oldest:
            del self._entries[entry.key]
            self._stats['evictions'] += 1
        logger.debug(f"Evicted {len(oldest)} LRU entries")

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total_requests = self._stats['hits'] + self._stats['misses']
            hit_rate = (self._stats['hits'] / total_requests * 100) if total_requests > 0 else 0

            return {
                'entries': len(self._entries),
                'hit_rate': hit_rate,
                'max_entries': self.max_entries,
                'default_ttl': self.default_ttl,
                **self._stats
            }
