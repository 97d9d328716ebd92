"""Base backend implementation with common functionality."""

import copy
import time
from typing import Any, Callable, Optional

from perf_cache.config import CacheEntry
from perf_cache.exceptions import CacheSerializationError
from perf_cache.stats import CacheStats
from perf_cache.storage import CacheBackend

Clock = Callable[[], float]


class BaseBackend(CacheBackend):
    """Base backend with hit/miss accounting and value isolation."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        """Initialize base backend.

        Args:
            clock: Time source in seconds (defaults to time.time)
        """
        self._clock: Clock = clock or time.time
        self._hits: int = 0
        self._misses: int = 0

    def _increment_hits(self) -> None:
        """Increment hit counter."""
        self._hits += 1

    def _increment_misses(self) -> None:
        """Increment miss counter."""
        self._misses += 1

    def _check_expired(self, entry: CacheEntry) -> bool:
        """Check if entry is expired.

        Args:
            entry: CacheEntry to check

        Returns:
            True if expired, False otherwise
        """
        return entry.is_expired(self._clock())

    @staticmethod
    def _copy(value: Any) -> Any:
        """Deep-copy a value so callers never alias stored state.

        Raises:
            CacheSerializationError: If the value cannot be copied
        """
        try:
            return copy.deepcopy(value)
        except Exception as e:
            raise CacheSerializationError(
                f"Cannot copy value of type {type(value).__name__}: {e}"
            ) from e

    def stats(self) -> CacheStats:
        """Get backend statistics.

        Returns:
            CacheStats with hits and misses
        """
        return CacheStats(hits=self._hits, misses=self._misses)
