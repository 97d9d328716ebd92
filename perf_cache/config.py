"""Configuration management for perf-cache."""

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from perf_cache.exceptions import ConfigurationError

MB = 1024 * 1024


class CacheStrategy(str, Enum):
    """Eviction policy family, fixed for the lifetime of a cache."""

    LRU = "lru"  # Least Recently Used
    LFU = "lfu"  # Least Frequently Used
    TTL = "ttl"  # Nearest expiry first
    FIFO = "fifo"  # First In, First Out

    @classmethod
    def parse(cls, value: Union[str, "CacheStrategy"]) -> "CacheStrategy":
        """Coerce a strategy name into a CacheStrategy.

        Args:
            value: Strategy or its name (case-insensitive)

        Returns:
            Matching CacheStrategy

        Raises:
            ConfigurationError: If the name is not a known strategy
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            known = ", ".join(s.value for s in cls)
            raise ConfigurationError(
                f"Unknown cache strategy {value!r} (expected one of: {known})"
            ) from None


class OptimizationLevel(str, Enum):
    """How eagerly the optimizer reacts; scales every threshold."""

    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"

    @property
    def threshold_factor(self) -> float:
        """Multiplier applied to the reference thresholds."""
        return _LEVEL_FACTORS[self]

    @classmethod
    def parse(cls, value: Union[str, "OptimizationLevel"]) -> "OptimizationLevel":
        """Coerce a level name into an OptimizationLevel.

        Raises:
            ConfigurationError: If the name is not a known level
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            known = ", ".join(level.value for level in cls)
            raise ConfigurationError(
                f"Unknown optimization level {value!r} (expected one of: {known})"
            ) from None


_LEVEL_FACTORS = {
    OptimizationLevel.CONSERVATIVE: 1.5,
    OptimizationLevel.BALANCED: 1.0,
    OptimizationLevel.AGGRESSIVE: 0.5,
}


@dataclass(frozen=True)
class CacheConfig:
    """Configuration for cache behavior."""

    max_entries: int = 1000  # 0 = store nothing
    max_bytes: Optional[int] = 20 * MB  # None = no byte budget
    default_ttl: Optional[float] = 1800.0  # Seconds, None = forever

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_entries < 0:
            raise ConfigurationError("max_entries must be zero or positive")
        if self.max_bytes is not None and self.max_bytes < 0:
            raise ConfigurationError("max_bytes must be zero, positive or None")
        if self.default_ttl is not None and self.default_ttl <= 0:
            raise ConfigurationError("default_ttl must be positive or None")


@dataclass(frozen=True)
class Thresholds:
    """Reference thresholds for the balanced optimization level."""

    critical_memory_bytes: float = 100 * MB
    medium_memory_bytes: float = 50 * MB
    slow_response_ms: float = 2000.0
    high_error_rate: float = 20.0  # Percent
    warn_error_rate: float = 5.0  # Percent
    slow_operation_ms: float = 1000.0
    slow_dom_ms: float = 100.0
    low_hit_rate: float = 0.5  # Fraction, not scaled

    def __post_init__(self) -> None:
        """Validate thresholds."""
        for f in dataclasses.fields(self):
            if getattr(self, f.name) < 0:
                raise ConfigurationError(f"{f.name} must not be negative")
        if self.low_hit_rate > 1.0:
            raise ConfigurationError("low_hit_rate must be between 0.0 and 1.0")

    def scaled(self, factor: float) -> "Thresholds":
        """Return a copy with every upper-bound threshold multiplied by factor.

        Args:
            factor: Multiplier (below 1.0 triggers sooner)

        Returns:
            New Thresholds instance
        """
        return dataclasses.replace(
            self,
            critical_memory_bytes=self.critical_memory_bytes * factor,
            medium_memory_bytes=self.medium_memory_bytes * factor,
            slow_response_ms=self.slow_response_ms * factor,
            high_error_rate=self.high_error_rate * factor,
            warn_error_rate=self.warn_error_rate * factor,
            slow_operation_ms=self.slow_operation_ms * factor,
            slow_dom_ms=self.slow_dom_ms * factor,
        )


def _coerce_section(name: str, value: Any, section: type) -> Any:
    """Build a nested config section from a mapping of its fields.

    Raises:
        ConfigurationError: If value is neither the section type nor a valid mapping
    """
    if isinstance(value, section):
        return value
    if isinstance(value, Mapping):
        try:
            return section(**value)
        except TypeError as e:
            raise ConfigurationError(f"Invalid {name} option: {e}") from e
    raise ConfigurationError(
        f"{name} must be a {section.__name__} or a mapping, got {type(value).__name__}"
    )


@dataclass(frozen=True)
class OptimizerConfig:
    """Construction-time configuration for a PerformanceOptimizer."""

    enable_caching: bool = True
    enable_lazy_loading: bool = True
    enable_performance_monitoring: bool = True
    enable_dom_optimization: bool = True
    optimization_level: OptimizationLevel = OptimizationLevel.BALANCED
    cache_strategy: CacheStrategy = CacheStrategy.LRU
    cache: CacheConfig = field(default_factory=CacheConfig)
    thresholds: Thresholds = field(default_factory=Thresholds)

    # Metrics registry bounds
    metrics_window_seconds: float = 60.0
    max_metrics_samples: int = 1000

    # Control loop
    memory_eviction_fraction: float = 0.25
    auto_optimize_interval: Optional[float] = None  # Seconds, None = no timer
    preload_entries: tuple[tuple[str, Any, Optional[float]], ...] = ()

    primary_operation_kind: str = "ai-call"
    dom_operation_kind: str = "dom-query"
    verbose: bool = False

    def __post_init__(self) -> None:
        """Coerce enum fields and validate configuration."""
        object.__setattr__(
            self, "optimization_level", OptimizationLevel.parse(self.optimization_level)
        )
        object.__setattr__(self, "cache_strategy", CacheStrategy.parse(self.cache_strategy))
        object.__setattr__(self, "cache", _coerce_section("cache", self.cache, CacheConfig))
        object.__setattr__(
            self, "thresholds", _coerce_section("thresholds", self.thresholds, Thresholds)
        )
        if not 0.0 <= self.memory_eviction_fraction <= 1.0:
            raise ConfigurationError("memory_eviction_fraction must be between 0.0 and 1.0")
        if self.metrics_window_seconds <= 0:
            raise ConfigurationError("metrics_window_seconds must be positive")
        if self.max_metrics_samples <= 0:
            raise ConfigurationError("max_metrics_samples must be positive")
        if self.auto_optimize_interval is not None and self.auto_optimize_interval <= 0:
            raise ConfigurationError("auto_optimize_interval must be positive or None")

    @property
    def effective_thresholds(self) -> Thresholds:
        """Thresholds scaled for the configured optimization level."""
        return self.thresholds.scaled(self.optimization_level.threshold_factor)

    def replace(self, **changes: Any) -> "OptimizerConfig":
        """Return a validated copy with the given fields changed."""
        return dataclasses.replace(self, **changes)


@dataclass
class CacheEntry:
    """A cached value with access and expiry metadata."""

    key: str
    value: Any
    inserted_at: float
    last_accessed_at: float
    access_count: int = 0
    expires_at: Optional[float] = None  # Absolute time, None = never
    size_estimate: int = 0

    # Monotonic tie-breakers for entries sharing a timestamp
    insert_order: int = field(default=0, repr=False)
    access_order: int = field(default=0, repr=False)

    def is_expired(self, current_time: float) -> bool:
        """Check if entry has expired."""
        return self.expires_at is not None and current_time >= self.expires_at


# Named presets for common deployment contexts
DEVELOPMENT = OptimizerConfig(
    optimization_level=OptimizationLevel.AGGRESSIVE,
    cache=CacheConfig(max_entries=500, max_bytes=10 * MB, default_ttl=300.0),
    metrics_window_seconds=30.0,
    max_metrics_samples=500,
    auto_optimize_interval=30.0,
    verbose=True,
)

PRODUCTION = OptimizerConfig(
    optimization_level=OptimizationLevel.CONSERVATIVE,
    cache=CacheConfig(max_entries=5000, max_bytes=50 * MB, default_ttl=3600.0),
    auto_optimize_interval=60.0,
)

TESTING = OptimizerConfig(
    cache=CacheConfig(max_entries=100, max_bytes=None, default_ttl=None),
    auto_optimize_interval=None,
)

PRESETS: dict[str, OptimizerConfig] = {
    "development": DEVELOPMENT,
    "production": PRODUCTION,
    "testing": TESTING,
}


def get_preset(name: str) -> OptimizerConfig:
    """Look up a named optimizer preset.

    Args:
        name: "development", "production" or "testing" (case-insensitive)

    Returns:
        The preset configuration

    Raises:
        ConfigurationError: If no preset has that name
    """
    try:
        return PRESETS[name.strip().lower()]
    except KeyError:
        raise ConfigurationError(f"Unknown optimizer preset {name!r}") from None
