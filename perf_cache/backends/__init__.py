"""Cache backends for perf-cache."""

from typing import Optional, Union

from perf_cache.backends.base import BaseBackend, Clock
from perf_cache.backends.memory import MemoryBackend
from perf_cache.backends.null import NullBackend
from perf_cache.config import CacheConfig, CacheStrategy


def create_backend(
    strategy: Union[str, CacheStrategy] = CacheStrategy.LRU,
    config: Optional[CacheConfig] = None,
    enabled: bool = True,
    clock: Optional[Clock] = None,
) -> BaseBackend:
    """Build a real cache or its no-op stand-in.

    Args:
        strategy: Eviction strategy
        config: Capacity and TTL settings
        enabled: False returns a NullBackend
        clock: Time source in seconds

    Returns:
        MemoryBackend or NullBackend
    """
    if not enabled:
        return NullBackend(strategy, clock=clock)
    return MemoryBackend(strategy, config=config, clock=clock)


__all__ = [
    "BaseBackend",
    "MemoryBackend",
    "NullBackend",
    "create_backend",
]
