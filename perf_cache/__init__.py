"""
perf-cache: Adaptive caching and performance optimization for AI services.

Strategy caches, bounded operation metrics and a threshold-driven optimizer.
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Core exports
from perf_cache.backends import MemoryBackend, NullBackend, create_backend
from perf_cache.config import (
    DEVELOPMENT,
    PRESETS,
    PRODUCTION,
    TESTING,
    CacheConfig,
    CacheEntry,
    CacheStrategy,
    OptimizationLevel,
    OptimizerConfig,
    Thresholds,
    get_preset,
)
from perf_cache.core import CachedAIClient, cached
from perf_cache.exceptions import (
    CacheBackendError,
    CacheSerializationError,
    ConfigurationError,
    PerfCacheError,
    ProviderCallError,
)
from perf_cache.metrics import (
    CustomMetric,
    MemoryUsage,
    MetricsRegistry,
    NullMetricsRegistry,
    PerformanceMonitor,
    Sample,
    SystemMetrics,
)
from perf_cache.optimizer import (
    OptimizerState,
    PerformanceOptimizer,
    create_performance_optimizer,
)
from perf_cache.report import (
    OptimizationReport,
    PerformanceStatus,
    Priority,
    Recommendation,
)
from perf_cache.stats import CacheStats
from perf_cache.storage import CacheBackend

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Optimizer
    "PerformanceOptimizer",
    "OptimizerState",
    "create_performance_optimizer",
    "OptimizationReport",
    "PerformanceStatus",
    "Recommendation",
    "Priority",
    # Cache
    "CacheBackend",
    "MemoryBackend",
    "NullBackend",
    "create_backend",
    "CacheStats",
    "CacheEntry",
    # Metrics
    "PerformanceMonitor",
    "MetricsRegistry",
    "NullMetricsRegistry",
    "Sample",
    "CustomMetric",
    "SystemMetrics",
    "MemoryUsage",
    # Consumers
    "CachedAIClient",
    "cached",
    # Configuration
    "OptimizerConfig",
    "CacheConfig",
    "Thresholds",
    "CacheStrategy",
    "OptimizationLevel",
    "DEVELOPMENT",
    "PRODUCTION",
    "TESTING",
    "PRESETS",
    "get_preset",
    # Exceptions
    "PerfCacheError",
    "ConfigurationError",
    "CacheBackendError",
    "CacheSerializationError",
    "ProviderCallError",
]
