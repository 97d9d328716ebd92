"""Cache backend interface for perf-cache."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any, Optional

from perf_cache.config import CacheStrategy
from perf_cache.stats import CacheStats

logger = logging.getLogger(__name__)

PreloadItem = tuple[str, Any, Optional[float]]


class CacheBackend(ABC):
    """Abstract base class for cache services handed to consumers."""

    strategy: CacheStrategy

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Optional[Any]:
        """Retrieve a value by key.

        Args:
            key: Cache key to retrieve
            default: Returned as-is on a miss

        Returns:
            A copy of the stored value if present and not expired, default otherwise
        """
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Insert or replace a value, evicting other entries if needed.

        Args:
            key: Cache key to store under
            value: Value to store (copied)
            ttl: Time to live in seconds (None = backend default, <= 0 = expired)

        Raises:
            CacheSerializationError: If the value cannot be copied
        """
        pass

    @abstractmethod
    def invalidate(self, key: str) -> None:
        """Remove an entry; missing keys are ignored.

        Args:
            key: Cache key to remove
        """
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove all entries."""
        pass

    @abstractmethod
    def stats(self) -> CacheStats:
        """Get cache statistics.

        Returns:
            CacheStats snapshot
        """
        pass

    @abstractmethod
    def purge_expired(self) -> int:
        """Drop expired entries.

        Returns:
            Number of entries removed
        """
        pass

    @abstractmethod
    def evict(self, count: int) -> int:
        """Evict up to count entries in strategy victim order.

        Args:
            count: Maximum number of entries to evict

        Returns:
            Number of entries evicted
        """
        pass

    @abstractmethod
    def invalidate_pattern(self, pattern: str) -> int:
        """Remove every entry whose key matches a regular expression.

        Args:
            pattern: Regular expression searched in each key

        Returns:
            Number of entries removed
        """
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        """List the keys of live entries."""
        pass

    def evict_fraction(self, fraction: float) -> int:
        """Evict a share of the current entries in strategy victim order.

        Args:
            fraction: Share of entries to evict (0.0 - 1.0)

        Returns:
            Number of entries evicted
        """
        size = self.stats().size
        if size == 0 or fraction <= 0:
            return 0
        count = max(1, int(size * min(fraction, 1.0)))
        return self.evict(count)

    def preload(self, items: Iterable[PreloadItem]) -> int:
        """Bulk insert (key, value, ttl) items.

        Args:
            items: Items to store

        Returns:
            Number of items stored
        """
        loaded = 0
        for key, value, ttl in items:
            try:
                self.set(key, value, ttl)
            except Exception:
                logger.warning("Failed to preload cache item %s", key, exc_info=True)
                continue
            if key in self:
                loaded += 1
        return loaded

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key in self.keys()

    def __len__(self) -> int:
        return self.stats().size
