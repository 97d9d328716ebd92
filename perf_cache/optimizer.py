"""Performance optimizer: the control loop over cache and metrics.

The optimizer owns one cache and one metrics registry (or their no-op
stand-ins, depending on configuration), hands them to consumer services,
and periodically or on demand reads the metrics back to decide on
corrective actions.
"""

import asyncio
import gc
import inspect
import logging
import time
from collections.abc import Mapping
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

from perf_cache.backends import NullBackend, create_backend
from perf_cache.config import OptimizerConfig, Thresholds, get_preset
from perf_cache.exceptions import ConfigurationError
from perf_cache.metrics import (
    MetricsRegistry,
    NullMetricsRegistry,
    PerformanceMonitor,
    SystemMetrics,
)
from perf_cache.policy import AUTOMATIC_ACTIONS, CRITICAL_ISSUES, fired, recommend
from perf_cache.report import (
    OperationSummary,
    OptimizationReport,
    PerformanceStatus,
    PerformanceSummary,
)
from perf_cache.stats import CacheStats
from perf_cache.storage import CacheBackend

logger = logging.getLogger(__name__)


class OptimizerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    DESTROYED = "destroyed"


@runtime_checkable
class AIServiceConsumer(Protocol):
    """Extension points an optimized service must expose."""

    def set_cache_service(self, cache: CacheBackend) -> None: ...

    def set_performance_monitor(self, monitor: PerformanceMonitor) -> None: ...


class ResourceLoader(Protocol):
    """Lazy loader that can warm and drop priority resources."""

    def preload_priority(self) -> Union[None, Awaitable[None]]: ...

    def clear_loaded_data(self) -> None: ...


class DOMOptimizer(Protocol):
    """DOM-facing collaborator (batching, deferred layout work)."""

    def clear_caches(self) -> None: ...

    def average_operation_ms(self) -> float: ...


class PerformanceOptimizer:
    """Wires caching and monitoring into consumers and applies corrective actions.

    Lifecycle is ``UNINITIALIZED -> ACTIVE -> DESTROYED``. Once destroyed,
    every operation is a safe no-op; coroutines still resolve.

    Examples:
        >>> optimizer = PerformanceOptimizer(TESTING)
        >>> optimizer.optimize_ai_service(client)
        >>> await optimizer.apply_automatic_optimizations()
        >>> optimizer.destroy()
    """

    def __init__(
        self,
        config: Optional[OptimizerConfig] = None,
        *,
        resource_loader: Optional[ResourceLoader] = None,
        dom_optimizer: Optional[DOMOptimizer] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        """Initialize optimizer and its owned services.

        Args:
            config: Optimizer configuration (defaults to OptimizerConfig())
            resource_loader: Optional lazy loader used by preloading
            dom_optimizer: Optional DOM collaborator, used only when DOM
                optimization is enabled
            clock: Time source in seconds (defaults to time.time)

        Raises:
            ConfigurationError: If config is not an OptimizerConfig
        """
        # Safe defaults first so destroy() works on a partially built instance
        self.state = OptimizerState.UNINITIALIZED
        self._consumers: dict[int, Any] = {}
        self._auto_task: Optional[asyncio.Task] = None
        self._cache: CacheBackend = NullBackend()
        self._monitor: PerformanceMonitor = NullMetricsRegistry()
        self._resource_loader: Optional[ResourceLoader] = None
        self._dom_optimizer: Optional[DOMOptimizer] = None

        if config is None:
            config = OptimizerConfig()
        if not isinstance(config, OptimizerConfig):
            raise ConfigurationError(
                f"Expected OptimizerConfig, got {type(config).__name__}"
            )
        self.config = config
        self._clock = clock or time.time
        self._thresholds = config.effective_thresholds

        self._cache = create_backend(
            config.cache_strategy,
            config.cache,
            enabled=config.enable_caching,
            clock=self._clock,
        )
        if config.enable_performance_monitoring:
            self._monitor = MetricsRegistry(
                max_samples=config.max_metrics_samples,
                window_seconds=config.metrics_window_seconds,
                slow_operation_ms=self._thresholds.slow_operation_ms,
                memory_probe=self._cache_bytes,
                clock=self._clock,
            )

        self._resource_loader = resource_loader
        if config.enable_dom_optimization:
            self._dom_optimizer = dom_optimizer
        for collaborator in (self._resource_loader, self._dom_optimizer):
            if collaborator is not None:
                self._inject(collaborator, self._cache, self._monitor, required=False)

        self.state = OptimizerState.ACTIVE
        self._log(
            "Performance optimizer initialized (strategy=%s, level=%s, caching=%s, monitoring=%s)",
            config.cache_strategy.value,
            config.optimization_level.value,
            config.enable_caching,
            config.enable_performance_monitoring,
        )

    @property
    def cache(self) -> CacheBackend:
        return self._cache

    @property
    def monitor(self) -> PerformanceMonitor:
        return self._monitor

    @property
    def thresholds(self) -> Thresholds:
        """Thresholds after optimization-level scaling."""
        return self._thresholds

    @property
    def is_active(self) -> bool:
        return self.state is OptimizerState.ACTIVE

    def optimize_ai_service(self, consumer: AIServiceConsumer) -> None:
        """Inject the cache and monitor into a consumer.

        Calling this again for the same consumer re-injects the same
        services without registering the consumer twice.

        Args:
            consumer: Object exposing set_cache_service/set_performance_monitor
        """
        if not self.is_active:
            logger.warning("Ignoring optimize_ai_service on %s optimizer", self.state.value)
            return

        self._inject(consumer, self._cache, self._monitor)
        self._consumers[id(consumer)] = consumer
        self._log("AI service optimized: %s", type(consumer).__name__)

    async def preload_critical_resources(self) -> None:
        """Warm state needed for a fast first response. Never raises."""
        if not self.is_active or not self.config.enable_lazy_loading:
            return

        start = time.perf_counter()
        failures: list[str] = []

        if self._resource_loader is not None:
            try:
                result = self._resource_loader.preload_priority()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                failures.append(f"priority preload: {e}")
                logger.warning("Priority resource preload failed", exc_info=True)

        # Destroyed while suspended
        if not self.is_active:
            return

        try:
            loaded = self._cache.preload(self.config.preload_entries)
            self._log("Preloaded %d/%d cache entries", loaded, len(self.config.preload_entries))
        except Exception as e:
            failures.append(f"cache preload: {e}")
            logger.warning("Cache preload failed", exc_info=True)

        self._record("preload-critical-resources", start, failures)

    async def optimize_memory_usage(self) -> None:
        """Reduce memory held by owned services. Never raises."""
        if not self.is_active:
            return

        start = time.perf_counter()
        failures: list[str] = []

        try:
            purged = self._cache.purge_expired()
            evicted = self._cache.evict_fraction(self.config.memory_eviction_fraction)
            self._log("Memory optimization purged %d expired and evicted %d entries", purged, evicted)
        except Exception as e:
            failures.append(f"cache eviction: {e}")
            logger.warning("Cache eviction failed during memory optimization", exc_info=True)

        if self._dom_optimizer is not None:
            try:
                self._dom_optimizer.clear_caches()
            except Exception as e:
                failures.append(f"dom caches: {e}")
                logger.warning("Clearing DOM caches failed", exc_info=True)

        if self._resource_loader is not None:
            try:
                self._resource_loader.clear_loaded_data()
            except Exception as e:
                failures.append(f"loaded data: {e}")
                logger.warning("Clearing lazily loaded data failed", exc_info=True)

        try:
            self._monitor.reset()
        except Exception as e:
            failures.append(f"metrics reset: {e}")
            logger.warning("Resetting metrics failed", exc_info=True)

        gc.collect()
        self._record("optimize-memory", start, failures)

    def generate_optimization_report(self) -> OptimizationReport:
        """Summarize current metrics and derive recommendations. Never raises.

        Returns:
            OptimizationReport, with default figures when metrics are unavailable
        """
        if not self.is_active:
            return OptimizationReport(timestamp=self._clock())

        try:
            system = self._monitor.get_current_system_metrics()
        except Exception:
            logger.warning("Reading system metrics failed, using defaults", exc_info=True)
            system = SystemMetrics.empty(self._clock())

        try:
            cache_stats = self._cache.stats()
        except Exception:
            logger.warning("Reading cache stats failed, using defaults", exc_info=True)
            cache_stats = CacheStats()

        try:
            report = self._build_report(system, cache_stats)
            report.recommendations = recommend(report, self._thresholds)
            return report
        except Exception:
            logger.warning("Building optimization report failed, using defaults", exc_info=True)
            return OptimizationReport(timestamp=self._clock())

    def get_performance_status(self) -> PerformanceStatus:
        """Classify current health. Never raises.

        Returns:
            PerformanceStatus; is_optimized is True iff no critical issue fired
        """
        report = self.generate_optimization_report()
        if not self.is_active:
            return PerformanceStatus(metrics=report)

        try:
            issues = [rule.action for rule in fired(CRITICAL_ISSUES, report, self._thresholds)]
        except Exception:
            logger.warning("Evaluating critical issues failed", exc_info=True)
            issues = []

        return PerformanceStatus(
            is_optimized=not issues,
            critical_issues=issues,
            recommendations=[str(rec) for rec in report.recommendations],
            metrics=report,
        )

    async def apply_automatic_optimizations(self) -> list[str]:
        """Run one control-loop step. Never raises.

        Evaluates the automatic action table against a fresh report and runs
        every action whose threshold is exceeded, in table order. A failing
        action does not stop the ones after it.

        Returns:
            Names of the actions that ran successfully
        """
        if not self.is_active:
            return []

        start = time.perf_counter()
        report = self.generate_optimization_report()
        try:
            rules = fired(AUTOMATIC_ACTIONS, report, self._thresholds)
        except Exception:
            logger.warning("Evaluating automatic actions failed", exc_info=True)
            rules = []

        applied: list[str] = []
        failures: list[str] = []
        for rule in rules:
            self._log(
                "Applying %s: %s %.1f exceeds %.1f",
                rule.action,
                rule.metric,
                report.metric(rule.metric),
                rule.limit(self._thresholds),
            )
            try:
                await getattr(self, rule.action)()
                applied.append(rule.action)
            except Exception as e:
                failures.append(f"{rule.action}: {e}")
                logger.warning("Automatic action %s failed", rule.action, exc_info=True)

        self._record("apply-auto-optimizations", start, failures)
        return applied

    async def start(self) -> None:
        """Start the background control loop if an interval is configured."""
        if not self.is_active or self.config.auto_optimize_interval is None:
            return
        if self._auto_task is not None and not self._auto_task.done():
            return
        self._auto_task = asyncio.get_running_loop().create_task(self._auto_optimize_loop())
        self._log("Automatic optimization every %.1fs", self.config.auto_optimize_interval)

    def destroy(self) -> None:
        """Stop timers, detach consumers and release owned services. Idempotent."""
        if self.state is OptimizerState.DESTROYED:
            return
        self.state = OptimizerState.DESTROYED

        if self._auto_task is not None:
            self._auto_task.cancel()
            self._auto_task = None

        null_cache = NullBackend()
        null_monitor = NullMetricsRegistry()
        for consumer in self._consumers.values():
            try:
                self._inject(consumer, null_cache, null_monitor, required=False)
            except Exception:
                logger.warning("Detaching %s failed", type(consumer).__name__, exc_info=True)
        self._consumers.clear()

        try:
            self._cache.clear()
            self._monitor.reset()
        except Exception:
            logger.warning("Releasing optimizer services failed", exc_info=True)

        self._cache = null_cache
        self._monitor = null_monitor
        self._resource_loader = None
        self._dom_optimizer = None
        logger.debug("Performance optimizer destroyed")

    def __enter__(self) -> "PerformanceOptimizer":
        return self

    def __exit__(self, *args: Any) -> None:
        self.destroy()

    async def _auto_optimize_loop(self) -> None:
        interval = self.config.auto_optimize_interval
        while self.is_active:
            try:
                await asyncio.sleep(interval)
                await self.apply_automatic_optimizations()
            except asyncio.CancelledError:
                break

    def _build_report(self, system: SystemMetrics, cache_stats: CacheStats) -> OptimizationReport:
        counts = system.operation_counts
        total = sum(counts.values())
        failures = sum(
            system.error_rates.get(kind, 0.0) / 100 * count for kind, count in counts.items()
        )
        error_rate = failures / total * 100 if total else 0.0

        if self._dom_optimizer is not None:
            dom_time = float(self._dom_optimizer.average_operation_ms())
        else:
            dom_time = system.average_response_times.get(self.config.dom_operation_kind, 0.0)

        return OptimizationReport(
            timestamp=system.timestamp or self._clock(),
            performance=PerformanceSummary(
                average_response_time=system.average_response_times.get(
                    self.config.primary_operation_kind, 0.0
                ),
                cache_hit_rate=cache_stats.hit_rate,
                memory_usage=system.memory_usage.used,
                dom_operation_time=dom_time,
                cache_requests=cache_stats.total_requests,
            ),
            metrics=OperationSummary(
                total_operations=total,
                success_rate=100.0 - error_rate,
                error_rate=error_rate,
                slow_operations=system.slow_operations,
            ),
        )

    def _inject(
        self,
        consumer: Any,
        cache: CacheBackend,
        monitor: PerformanceMonitor,
        required: bool = True,
    ) -> None:
        for setter, service in (
            ("set_cache_service", cache),
            ("set_performance_monitor", monitor),
        ):
            method = getattr(consumer, setter, None)
            if callable(method):
                method(service)
            elif required:
                logger.warning("%s has no %s(), skipping", type(consumer).__name__, setter)

    def _cache_bytes(self) -> float:
        return float(self._cache.stats().total_bytes)

    def _record(self, kind: str, start: float, failures: list[str]) -> None:
        self._monitor.record(
            kind,
            (time.perf_counter() - start) * 1000,
            not failures,
            error="; ".join(failures) or None,
        )

    def _log(self, msg: str, *args: Any) -> None:
        logger.log(logging.INFO if self.config.verbose else logging.DEBUG, msg, *args)


def create_performance_optimizer(
    config: Union[OptimizerConfig, Mapping[str, Any], str, None] = None,
    **overrides: Any,
) -> PerformanceOptimizer:
    """Create an optimizer from a config, a mapping of options or a preset name.

    Args:
        config: OptimizerConfig, dict of OptimizerConfig fields, or a preset
            name ("development", "production", "testing")
        **overrides: Fields replaced on top of config

    Returns:
        Active PerformanceOptimizer

    Raises:
        ConfigurationError: If the configuration is invalid

    Examples:
        >>> optimizer = create_performance_optimizer("production", enable_caching=False)
    """
    if config is None:
        resolved = OptimizerConfig()
    elif isinstance(config, str):
        resolved = get_preset(config)
    elif isinstance(config, OptimizerConfig):
        resolved = config
    elif isinstance(config, Mapping):
        try:
            resolved = OptimizerConfig(**config)
        except TypeError as e:
            raise ConfigurationError(f"Invalid optimizer option: {e}") from e
    else:
        raise ConfigurationError(f"Unsupported optimizer config: {type(config).__name__}")

    if overrides:
        try:
            resolved = resolved.replace(**overrides)
        except TypeError as e:
            raise ConfigurationError(f"Invalid optimizer option: {e}") from e
    return PerformanceOptimizer(resolved)
