"""Report types produced by the optimizer."""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class Priority(str, Enum):
    """Urgency of a recommendation."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANKS[self]


_PRIORITY_RANKS = {
    Priority.CRITICAL: 4,
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


@dataclass
class PerformanceSummary:
    """Headline performance figures."""

    average_response_time: float = 0.0  # ms
    cache_hit_rate: float = 0.0  # Fraction 0..1
    memory_usage: float = 0.0  # Bytes
    dom_operation_time: float = 0.0  # ms
    cache_requests: int = 0


@dataclass
class OperationSummary:
    """Aggregate outcome of recorded operations."""

    total_operations: int = 0
    success_rate: float = 100.0  # Percent
    error_rate: float = 0.0  # Percent
    slow_operations: int = 0


@dataclass
class Recommendation:
    """One human-readable advisory."""

    type: str
    priority: Priority
    description: str
    implementation: str

    def __str__(self) -> str:
        return f"{self.description}: {self.implementation}"


@dataclass
class OptimizationReport:
    """Point-in-time view of system health."""

    timestamp: float = field(default_factory=time.time)
    performance: PerformanceSummary = field(default_factory=PerformanceSummary)
    recommendations: list[Recommendation] = field(default_factory=list)
    metrics: OperationSummary = field(default_factory=OperationSummary)

    def metric(self, name: str) -> float:
        """Look up a report figure by name.

        Args:
            name: Field of the performance or metrics block

        Returns:
            The figure as a float

        Raises:
            KeyError: If no block has that field
        """
        for block in (self.performance, self.metrics):
            if hasattr(block, name):
                return float(getattr(block, name))
        raise KeyError(name)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PerformanceStatus:
    """Health classification derived from a report."""

    is_optimized: bool = True
    critical_issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    metrics: OptimizationReport = field(default_factory=OptimizationReport)
