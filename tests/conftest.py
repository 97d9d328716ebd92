"""Pytest configuration and fixtures for perf-cache tests."""

import pytest

from perf_cache.backends import MemoryBackend
from perf_cache.config import TESTING, CacheConfig, CacheStrategy
from perf_cache.metrics import MetricsRegistry
from perf_cache.optimizer import PerformanceOptimizer


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Provide a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def backend(clock):
    """Provide a fresh LRU memory backend with no expiry."""
    return MemoryBackend(
        CacheStrategy.LRU,
        config=CacheConfig(max_entries=100, max_bytes=None, default_ttl=None),
        clock=clock,
    )


@pytest.fixture
def make_backend(clock):
    """Build memory backends with a given strategy and capacity."""

    def _make(strategy=CacheStrategy.LRU, max_entries=3, max_bytes=None, default_ttl=None):
        return MemoryBackend(
            strategy,
            config=CacheConfig(
                max_entries=max_entries, max_bytes=max_bytes, default_ttl=default_ttl
            ),
            clock=clock,
        )

    return _make


@pytest.fixture
def registry(clock):
    """Provide a metrics registry on the fake clock."""
    return MetricsRegistry(max_samples=100, window_seconds=60.0, clock=clock)


@pytest.fixture
def optimizer(clock):
    """Provide an optimizer built from the testing preset."""
    opt = PerformanceOptimizer(TESTING, clock=clock)
    yield opt
    opt.destroy()


@pytest.fixture
def mock_llm_func():
    """Provide a mock LLM function that counts its calls."""
    responses = {
        "What is Python?": "Python is a programming language.",
        "What is Rust?": "Rust is a systems programming language.",
    }

    def _func(prompt: str, **kwargs) -> str:
        _func.calls += 1
        return responses.get(prompt, f"Response to: {prompt}")

    _func.calls = 0
    return _func
