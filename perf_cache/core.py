"""Read-through caching for AI provider calls."""

import functools
import inspect
import logging
import time
from typing import Any, Callable, Optional

from perf_cache.backends import NullBackend
from perf_cache.exceptions import ProviderCallError
from perf_cache.metrics import NullMetricsRegistry, PerformanceMonitor
from perf_cache.storage import CacheBackend
from perf_cache.utils import estimate_size, make_cache_key

logger = logging.getLogger(__name__)

# Distinguishes a miss from a cached None
_MISSING = object()


class CachedAIClient:
    """AI client wrapper that reads through an injected cache.

    Starts with no-op services; an optimizer wires the real ones through
    set_cache_service() and set_performance_monitor().

    Examples:
        >>> client = CachedAIClient(provider="openai", model="gpt-4")
        >>> optimizer.optimize_ai_service(client)
        >>> answer = await client.complete("What is Python?", call_openai)
    """

    def __init__(
        self,
        provider: str = "default",
        model: Optional[str] = None,
        ttl: Optional[float] = None,
        kind: str = "ai-call",
    ) -> None:
        """Initialize cached AI client.

        Args:
            provider: Provider name (part of the cache key)
            model: Model name (part of the cache key)
            ttl: Time-to-live for responses (None = cache default)
            kind: Operation kind recorded for provider calls
        """
        self.provider = provider
        self.model = model
        self.ttl = ttl
        self.kind = kind
        self._cache: CacheBackend = NullBackend()
        self._monitor: PerformanceMonitor = NullMetricsRegistry()

    def set_cache_service(self, cache: CacheBackend) -> None:
        self._cache = cache

    def set_performance_monitor(self, monitor: PerformanceMonitor) -> None:
        self._monitor = monitor

    @property
    def cache(self) -> CacheBackend:
        return self._cache

    @property
    def monitor(self) -> PerformanceMonitor:
        return self._monitor

    def cache_key(self, prompt: str, **params: Any) -> str:
        """Cache key for a request to this client's provider and model."""
        return make_cache_key(prompt, self.provider, self.model, params)

    async def complete(
        self,
        prompt: str,
        llm_func: Callable[..., Any],
        **params: Any,
    ) -> Any:
        """Get a response, calling the provider only on a cache miss.

        Args:
            prompt: Input prompt
            llm_func: Provider call (sync or async), invoked as llm_func(prompt, **params)
            **params: Request parameters, part of the cache key

        Returns:
            Provider response (cached or fresh)

        Raises:
            ProviderCallError: If the provider call fails
        """
        key = self.cache_key(prompt, **params)
        cached_response = self._cache.get(key, _MISSING)
        if cached_response is not _MISSING:
            return cached_response

        start = time.perf_counter()
        try:
            response = llm_func(prompt, **params)
            if inspect.isawaitable(response):
                response = await response
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self._monitor.record(self.kind, elapsed_ms, False, error=str(e) or type(e).__name__)
            raise ProviderCallError(f"{self.provider} call failed: {e}") from e

        elapsed_ms = (time.perf_counter() - start) * 1000
        self._monitor.record(self.kind, elapsed_ms, True, size_bytes=estimate_size(response))
        self._store(key, response)
        return response

    def _store(self, key: str, response: Any) -> None:
        try:
            self._cache.set(key, response, self.ttl)
        except Exception:
            logger.warning("Could not cache %s response", self.provider, exc_info=True)


def cached(
    backend: Optional[CacheBackend] = None,
    monitor: Optional[PerformanceMonitor] = None,
    kind: str = "ai-call",
    ttl: Optional[float] = None,
    key_func: Optional[Callable[..., str]] = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator for read-through caching of a provider function.

    Works for both plain and ``async def`` functions. Failures of the
    wrapped function are recorded and re-raised as ProviderCallError.

    Args:
        backend: Cache to read through (None = no caching)
        monitor: Metrics sink for calls (None = not recorded)
        kind: Operation kind recorded for calls
        ttl: Time-to-live in seconds (None = cache default)
        key_func: Custom cache key function

    Returns:
        Decorated function with caching

    Examples:
        >>> @cached(backend=optimizer.cache, monitor=optimizer.monitor)
        ... def ask_gpt(prompt: str) -> str:
        ...     return call_openai(prompt)
    """
    if backend is None:
        backend = NullBackend()
    if monitor is None:
        monitor = NullMetricsRegistry()

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        def make_key(args: tuple, kwargs: dict[str, Any]) -> str:
            if key_func:
                return key_func(*args, **kwargs)
            if args and isinstance(args[0], str):
                params = {"args": list(args[1:]), "kwargs": kwargs}
                return make_cache_key(args[0], func.__qualname__, params=params)
            # Use all arguments as key
            return make_cache_key(
                str(args) + str(sorted(kwargs.items())), func.__qualname__
            )

        def fail(start: float, e: Exception) -> ProviderCallError:
            elapsed_ms = (time.perf_counter() - start) * 1000
            monitor.record(kind, elapsed_ms, False, error=str(e) or type(e).__name__)
            return ProviderCallError(f"{func.__qualname__} failed: {e}")

        def succeed(key: str, start: float, response: Any) -> None:
            elapsed_ms = (time.perf_counter() - start) * 1000
            monitor.record(kind, elapsed_ms, True, size_bytes=estimate_size(response))
            try:
                backend.set(key, response, ttl)
            except Exception:
                logger.warning("Could not cache result of %s", func.__qualname__, exc_info=True)

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                key = make_key(args, kwargs)
                hit = backend.get(key, _MISSING)
                if hit is not _MISSING:
                    return hit

                start = time.perf_counter()
                try:
                    response = await func(*args, **kwargs)
                except Exception as e:
                    raise fail(start, e) from e
                succeed(key, start, response)
                return response

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            key = make_key(args, kwargs)
            hit = backend.get(key, _MISSING)
            if hit is not _MISSING:
                return hit

            start = time.perf_counter()
            try:
                response = func(*args, **kwargs)
            except Exception as e:
                raise fail(start, e) from e
            succeed(key, start, response)
            return response

        return wrapper

    return decorator


__all__ = [
    "CachedAIClient",
    "cached",
]
