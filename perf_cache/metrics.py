"""Operation metrics for perf-cache.

Consumers report each unit of work with ``record(kind, duration_ms, success)``
and the optimizer reads aggregated snapshots back with
``get_current_system_metrics()``. Collection is strictly best-effort: neither
call ever raises into the caller doing real work.
"""

import itertools
import logging
import time
from abc import ABC, abstractmethod
from collections import Counter, OrderedDict, defaultdict, deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from threading import Lock
from typing import Any, Callable, Optional

import numpy as np
import psutil

logger = logging.getLogger(__name__)

# Rough per-sample retention cost used in the footprint estimate
SAMPLE_OVERHEAD_BYTES = 256


@dataclass(frozen=True)
class Sample:
    """Outcome of one observed unit of work."""

    kind: str
    duration_ms: float
    success: bool
    timestamp: float
    size_bytes: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class CustomMetric:
    """A named value that is not an operation duration."""

    name: str
    value: float
    timestamp: float


@dataclass
class MemoryUsage:
    """Coarse memory figures in bytes."""

    used: float = 0.0  # Estimated footprint of the subsystem
    total: float = 0.0  # Process resident set size
    percentage: float = 0.0


@dataclass
class SystemMetrics:
    """Aggregated snapshot of recent samples."""

    timestamp: float = 0.0
    memory_usage: MemoryUsage = field(default_factory=MemoryUsage)
    operation_counts: dict[str, int] = field(default_factory=dict)
    average_response_times: dict[str, float] = field(default_factory=dict)
    p95_response_times: dict[str, float] = field(default_factory=dict)
    error_rates: dict[str, float] = field(default_factory=dict)  # Percent
    slow_operations: int = 0
    total_bytes: int = 0
    top_errors: list[tuple[str, int]] = field(default_factory=list)
    custom_metrics: dict[str, float] = field(default_factory=dict)  # Mean per name
    in_flight_operations: int = 0

    @classmethod
    def empty(cls, timestamp: Optional[float] = None) -> "SystemMetrics":
        """Snapshot with zero values, used when nothing can be measured."""
        return cls(timestamp=time.time() if timestamp is None else timestamp)

    @property
    def total_operations(self) -> int:
        return sum(self.operation_counts.values())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PerformanceMonitor(ABC):
    """Capability handed to consumers for reporting operation outcomes."""

    @abstractmethod
    def record(
        self,
        kind: str,
        duration_ms: float,
        success: bool,
        size_bytes: int = 0,
        error: Optional[str] = None,
    ) -> None:
        """Record one operation outcome. Never raises.

        Args:
            kind: Operation category (e.g. "ai-call", "dom-query")
            duration_ms: Wall time of the operation in milliseconds
            success: Whether the operation succeeded
            size_bytes: Bytes produced or transferred by the operation
            error: Optional error message for failures
        """
        pass

    @abstractmethod
    def start_operation(self, kind: str) -> str:
        """Begin timing an operation that ends outside the current scope.

        Args:
            kind: Operation category

        Returns:
            Operation id for end_operation ("" when not tracked)
        """
        pass

    @abstractmethod
    def end_operation(
        self,
        operation_id: str,
        success: bool = True,
        error: Optional[str] = None,
        size_bytes: int = 0,
    ) -> None:
        """Finish a started operation and record it. Unknown ids are ignored."""
        pass

    @abstractmethod
    def record_custom_metric(self, name: str, value: float) -> None:
        """Record a named value that is not an operation duration. Never raises."""
        pass

    @abstractmethod
    def get_current_system_metrics(self) -> SystemMetrics:
        """Aggregate recent samples into a snapshot. Never raises."""
        pass

    @abstractmethod
    def reset(self) -> None:
        """Drop all recorded samples."""
        pass

    @contextmanager
    def measure(self, kind: str, size_bytes: int = 0) -> Iterator[None]:
        """Time a block and record its outcome.

        Exceptions raised inside the block are recorded as failures and
        re-raised unchanged.

        Examples:
            >>> with monitor.measure("dom-query"):
            ...     extract_content(page)
        """
        start = time.perf_counter()
        try:
            yield
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.record(kind, elapsed_ms, False, size_bytes, error=str(e) or type(e).__name__)
            raise
        self.record(kind, (time.perf_counter() - start) * 1000, True, size_bytes)


class MetricsRegistry(PerformanceMonitor):
    """Bounded, thread-safe store of operation samples.

    Samples are kept in a fixed-size ring buffer and snapshots only consider
    the samples inside a rolling time window, so memory stays bounded no
    matter how many operations are recorded.
    """

    def __init__(
        self,
        max_samples: int = 1000,
        window_seconds: float = 60.0,
        slow_operation_ms: float = 1000.0,
        memory_probe: Optional[Callable[[], float]] = None,
        clock: Optional[Callable[[], float]] = None,
        max_in_flight: Optional[int] = None,
    ) -> None:
        """Initialize metrics registry.

        Args:
            max_samples: Ring buffer capacity
            window_seconds: Age limit for samples included in snapshots
            slow_operation_ms: Samples slower than this count as slow
            memory_probe: Returns the bytes held by other owned structures
            clock: Time source in seconds (defaults to time.time)
            max_in_flight: Bound on started but unfinished operations
                (defaults to max_samples); the oldest is dropped when full
        """
        self._samples: deque[Sample] = deque(maxlen=max_samples)
        self._custom: deque[CustomMetric] = deque(maxlen=max_samples)
        self._in_flight: OrderedDict[str, tuple[str, float]] = OrderedDict()
        self._max_in_flight = max_in_flight or max_samples
        self._operation_ids = itertools.count(1)
        self._window_seconds = window_seconds
        self._slow_operation_ms = slow_operation_ms
        self._memory_probe = memory_probe
        self._clock = clock or time.time
        self._lock = Lock()
        self._process: Optional[psutil.Process] = None

    def record(
        self,
        kind: str,
        duration_ms: float,
        success: bool,
        size_bytes: int = 0,
        error: Optional[str] = None,
    ) -> None:
        try:
            sample = Sample(
                kind=str(kind),
                duration_ms=float(duration_ms),
                success=bool(success),
                timestamp=self._clock(),
                size_bytes=int(size_bytes),
                error=error,
            )
            with self._lock:
                self._samples.append(sample)
        except Exception:
            logger.debug("Dropped metrics sample for %r", kind, exc_info=True)
            return

        if sample.duration_ms > self._slow_operation_ms:
            logger.debug("Slow operation: %s took %.2fms", sample.kind, sample.duration_ms)

    def start_operation(self, kind: str) -> str:
        operation_id = f"{kind}-{next(self._operation_ids)}"
        with self._lock:
            self._in_flight[operation_id] = (str(kind), self._clock())
            while len(self._in_flight) > self._max_in_flight:
                dropped, _ = self._in_flight.popitem(last=False)
                logger.debug("Dropped unfinished operation %s", dropped)
        return operation_id

    def end_operation(
        self,
        operation_id: str,
        success: bool = True,
        error: Optional[str] = None,
        size_bytes: int = 0,
    ) -> None:
        with self._lock:
            started = self._in_flight.pop(operation_id, None)
        if started is None:
            return
        kind, start = started
        self.record(kind, (self._clock() - start) * 1000, success, size_bytes, error=error)

    def record_custom_metric(self, name: str, value: float) -> None:
        try:
            metric = CustomMetric(name=str(name), value=float(value), timestamp=self._clock())
            with self._lock:
                self._custom.append(metric)
        except Exception:
            logger.debug("Dropped custom metric %r", name, exc_info=True)

    def get_current_system_metrics(self) -> SystemMetrics:
        try:
            return self._aggregate()
        except Exception:
            logger.warning("Metrics aggregation failed, returning empty snapshot", exc_info=True)
            return SystemMetrics.empty()

    def reset(self) -> None:
        """Drop recorded samples and custom metrics. Started operations stay open."""
        with self._lock:
            self._samples.clear()
            self._custom.clear()

    @property
    def sample_count(self) -> int:
        with self._lock:
            return len(self._samples)

    def _aggregate(self) -> SystemMetrics:
        now = self._clock()
        cutoff = now - self._window_seconds
        with self._lock:
            retained = len(self._samples) + len(self._custom)
            recent = [s for s in self._samples if s.timestamp >= cutoff]
            custom = [m for m in self._custom if m.timestamp >= cutoff]
            in_flight = len(self._in_flight)

        by_kind: dict[str, list[Sample]] = defaultdict(list)
        for sample in recent:
            by_kind[sample.kind].append(sample)

        counts: dict[str, int] = {}
        averages: dict[str, float] = {}
        p95s: dict[str, float] = {}
        error_rates: dict[str, float] = {}
        for kind, group in by_kind.items():
            durations = np.fromiter((s.duration_ms for s in group), dtype=np.float64, count=len(group))
            failures = sum(1 for s in group if not s.success)
            counts[kind] = len(group)
            averages[kind] = float(durations.mean())
            p95s[kind] = float(np.percentile(durations, 95))
            error_rates[kind] = failures / len(group) * 100

        errors = Counter(s.error for s in recent if not s.success and s.error)

        custom_values: dict[str, list[float]] = defaultdict(list)
        for metric in custom:
            custom_values[metric.name].append(metric.value)

        return SystemMetrics(
            timestamp=now,
            memory_usage=self._memory_usage(retained),
            operation_counts=counts,
            average_response_times=averages,
            p95_response_times=p95s,
            error_rates=error_rates,
            slow_operations=sum(1 for s in recent if s.duration_ms > self._slow_operation_ms),
            total_bytes=sum(s.size_bytes for s in recent),
            top_errors=errors.most_common(5),
            custom_metrics={name: float(np.mean(values)) for name, values in custom_values.items()},
            in_flight_operations=in_flight,
        )

    def _memory_usage(self, retained_samples: int) -> MemoryUsage:
        used = float(retained_samples * SAMPLE_OVERHEAD_BYTES)
        if self._memory_probe is not None:
            used += float(self._memory_probe())
        total = float(self._process_rss())
        return MemoryUsage(
            used=used,
            total=total,
            percentage=used / total * 100 if total > 0 else 0.0,
        )

    def _process_rss(self) -> int:
        try:
            if self._process is None:
                self._process = psutil.Process()
            return self._process.memory_info().rss
        except psutil.Error:
            logger.debug("Process memory unavailable", exc_info=True)
            return 0


class NullMetricsRegistry(PerformanceMonitor):
    """Monitor stand-in that discards every sample."""

    def record(
        self,
        kind: str,
        duration_ms: float,
        success: bool,
        size_bytes: int = 0,
        error: Optional[str] = None,
    ) -> None:
        pass

    def start_operation(self, kind: str) -> str:
        return ""

    def end_operation(
        self,
        operation_id: str,
        success: bool = True,
        error: Optional[str] = None,
        size_bytes: int = 0,
    ) -> None:
        pass

    def record_custom_metric(self, name: str, value: float) -> None:
        pass

    def get_current_system_metrics(self) -> SystemMetrics:
        return SystemMetrics.empty()

    def reset(self) -> None:
        pass
