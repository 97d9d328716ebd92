"""No-op cache backend used when caching is disabled."""

from typing import Any, Optional, Union

from perf_cache.backends.base import BaseBackend, Clock
from perf_cache.config import CacheStrategy


class NullBackend(BaseBackend):
    """Cache stand-in that stores nothing and always misses."""

    def __init__(
        self,
        strategy: Union[str, CacheStrategy] = CacheStrategy.LRU,
        clock: Optional[Clock] = None,
    ) -> None:
        super().__init__(clock)
        self.strategy = CacheStrategy.parse(strategy)

    def get(self, key: str, default: Any = None) -> Optional[Any]:
        self._increment_misses()
        return default

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        pass

    def invalidate(self, key: str) -> None:
        pass

    def clear(self) -> None:
        pass

    def purge_expired(self) -> int:
        return 0

    def evict(self, count: int) -> int:
        return 0

    def invalidate_pattern(self, pattern: str) -> int:
        return 0

    def keys(self) -> list[str]:
        return []

    def __contains__(self, key: object) -> bool:
        return False
