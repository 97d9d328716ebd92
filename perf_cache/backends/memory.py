"""In-memory strategy cache backend."""

import itertools
import logging
import re
from threading import RLock
from typing import Any, Callable, Optional, Union

from perf_cache.backends.base import BaseBackend, Clock
from perf_cache.config import CacheConfig, CacheEntry, CacheStrategy
from perf_cache.exceptions import CacheBackendError
from perf_cache.stats import CacheStats
from perf_cache.utils import estimate_size

logger = logging.getLogger(__name__)


def _lru_key(entry: CacheEntry) -> tuple:
    return (entry.last_accessed_at, entry.access_order, entry.insert_order)


def _lfu_key(entry: CacheEntry) -> tuple:
    return (entry.access_count, entry.last_accessed_at, entry.access_order)


def _ttl_key(entry: CacheEntry) -> tuple:
    # Entries without expiry go last, oldest first
    if entry.expires_at is None:
        return (1, entry.inserted_at, entry.insert_order)
    return (0, entry.expires_at, entry.insert_order)


def _fifo_key(entry: CacheEntry) -> tuple:
    return (entry.inserted_at, entry.insert_order)


_VICTIM_KEYS: dict[CacheStrategy, Callable[[CacheEntry], tuple]] = {
    CacheStrategy.LRU: _lru_key,
    CacheStrategy.LFU: _lfu_key,
    CacheStrategy.TTL: _ttl_key,
    CacheStrategy.FIFO: _fifo_key,
}


class MemoryBackend(BaseBackend):
    """In-memory cache with a fixed eviction strategy.

    Capacity is bounded by entry count and, optionally, by an estimated
    byte budget. Both bounds are enforced on every insert by evicting
    entries in the strategy's victim order; expired entries are purged
    before any live entry is evicted.
    """

    def __init__(
        self,
        strategy: Union[str, CacheStrategy] = CacheStrategy.LRU,
        config: Optional[CacheConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        """Initialize memory backend.

        Args:
            strategy: Eviction strategy, immutable for this instance
            config: Capacity and TTL settings
            clock: Time source in seconds (defaults to time.time)

        Raises:
            ConfigurationError: If the strategy is unknown
        """
        super().__init__(clock)
        self.strategy = CacheStrategy.parse(strategy)
        self._config = config or CacheConfig()
        self._victim_key = _VICTIM_KEYS[self.strategy]
        self._entries: dict[str, CacheEntry] = {}
        self._total_bytes = 0
        self._evictions = 0
        self._sequence = itertools.count(1)
        self._lock = RLock()

    @property
    def max_entries(self) -> int:
        return self._config.max_entries

    @property
    def max_bytes(self) -> Optional[int]:
        return self._config.max_bytes

    def get(self, key: str, default: Any = None) -> Optional[Any]:
        """Retrieve a value by key.

        Args:
            key: Cache key to retrieve
            default: Returned as-is on a miss

        Returns:
            A copy of the value if found and not expired, default otherwise
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._increment_misses()
                return default

            now = self._clock()
            if entry.is_expired(now):
                self._remove(key)
                self._increment_misses()
                return default

            entry.access_count += 1
            entry.last_accessed_at = now
            entry.access_order = next(self._sequence)
            self._increment_hits()
            return self._copy(entry.value)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Insert or replace a value.

        Args:
            key: Cache key to store under
            value: Value to store (copied)
            ttl: Seconds to live (None = config default, <= 0 = already expired)
        """
        stored = self._copy(value)
        size = estimate_size(stored)

        with self._lock:
            now = self._clock()
            # Replacing drops the old entry's bookkeeping first
            self._remove(key)

            if not self._fits(size):
                logger.debug("Not caching %s: %d bytes exceeds capacity", key, size)
                return

            if self._over_capacity(size):
                self._purge_expired(now)
            while self._entries and self._over_capacity(size):
                self._evict_one()

            order = next(self._sequence)
            self._entries[key] = CacheEntry(
                key=key,
                value=stored,
                inserted_at=now,
                last_accessed_at=now,
                expires_at=self._expiry(now, ttl),
                size_estimate=size,
                insert_order=order,
                access_order=order,
            )
            self._total_bytes += size

    def invalidate(self, key: str) -> None:
        """Remove an entry; missing keys are ignored."""
        with self._lock:
            self._remove(key)

    def clear(self) -> None:
        """Remove all entries. Hit and miss counters are kept."""
        with self._lock:
            self._entries.clear()
            self._total_bytes = 0

    def purge_expired(self) -> int:
        """Drop expired entries.

        Returns:
            Number of entries removed
        """
        with self._lock:
            return self._purge_expired(self._clock())

    def evict(self, count: int) -> int:
        """Evict up to count entries in strategy victim order.

        Returns:
            Number of entries evicted
        """
        evicted = 0
        with self._lock:
            while evicted < count and self._entries:
                self._evict_one()
                evicted += 1
        return evicted

    def invalidate_pattern(self, pattern: str) -> int:
        """Remove every entry whose key matches a regular expression.

        Returns:
            Number of entries removed

        Raises:
            CacheBackendError: If the pattern is not a valid regular expression
        """
        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise CacheBackendError(f"Invalid invalidation pattern {pattern!r}: {e}") from e

        with self._lock:
            matched = [key for key in self._entries if regex.search(key)]
            for key in matched:
                self._remove(key)

        logger.debug("Invalidated %d cache entries matching %r", len(matched), pattern)
        return len(matched)

    def keys(self) -> list[str]:
        """List the keys of live entries in insertion order."""
        with self._lock:
            now = self._clock()
            return [k for k, e in self._entries.items() if not e.is_expired(now)]

    def stats(self) -> CacheStats:
        """Get backend statistics.

        Returns:
            CacheStats with size, hits, misses, evictions and byte total
        """
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                size=len(self._entries),
                total_bytes=self._total_bytes,
            )

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key) if isinstance(key, str) else None
            return entry is not None and not entry.is_expired(self._clock())

    def _fits(self, size: int) -> bool:
        if self.max_entries <= 0:
            return False
        return self.max_bytes is None or size <= self.max_bytes

    def _over_capacity(self, incoming_size: int) -> bool:
        if len(self._entries) + 1 > self.max_entries:
            return True
        return self.max_bytes is not None and self._total_bytes + incoming_size > self.max_bytes

    def _expiry(self, now: float, ttl: Optional[float]) -> Optional[float]:
        if ttl is None:
            ttl = self._config.default_ttl
        if ttl is None:
            return None
        return now + ttl

    def _purge_expired(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            self._remove(key)
        return len(expired)

    def _evict_one(self) -> None:
        victim = min(self._entries.values(), key=self._victim_key)
        self._remove(victim.key)
        self._evictions += 1

    def _remove(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._total_bytes -= entry.size_estimate
        return entry
