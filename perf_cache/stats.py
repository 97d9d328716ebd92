"""Cache statistics for perf-cache."""

from dataclasses import dataclass
from typing import Any


@dataclass
class CacheStats:
    """Point-in-time statistics for one cache instance."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0
    total_bytes: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate.

        Returns:
            Hit rate between 0 and 1
        """
        total = self.hits + self.misses
        return self.hits / max(total, 1)

    @property
    def total_requests(self) -> int:
        """Get total number of requests.

        Returns:
            Total hits + misses
        """
        return self.hits + self.misses

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary.

        Returns:
            Dictionary representation of stats
        """
        return {
            "size": self.size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
            "total_requests": self.total_requests,
            "evictions": self.evictions,
            "total_bytes": self.total_bytes,
        }

    def __iadd__(self, other: "CacheStats") -> "CacheStats":
        """Add another stats object to this one.

        Args:
            other: Other CacheStats to add

        Returns:
            self
        """
        self.hits += other.hits
        self.misses += other.misses
        self.evictions += other.evictions
        self.size += other.size
        self.total_bytes += other.total_bytes
        return self
