"""Threshold tables driving the optimizer.

Each table is an ordered sequence of rules. A rule compares one named report
figure against one named threshold; the optimizer evaluates a table once per
call and acts on every rule that fires, in table order.
"""

import operator
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Callable, Optional

from perf_cache.config import MB, Thresholds
from perf_cache.report import OptimizationReport, Priority, Recommendation


@dataclass(frozen=True)
class ThresholdRule:
    """Compare a report figure against a threshold."""

    name: str
    metric: str  # Report field, see OptimizationReport.metric
    comparator: Callable[[float, float], bool]
    threshold: str  # Thresholds field
    action: str
    guard: Optional[str] = None  # Report field that must be positive

    def limit(self, thresholds: Thresholds) -> float:
        return float(getattr(thresholds, self.threshold))

    def fires(self, report: OptimizationReport, thresholds: Thresholds) -> bool:
        if self.guard is not None and report.metric(self.guard) <= 0:
            return False
        return self.comparator(report.metric(self.metric), self.limit(thresholds))


@dataclass(frozen=True)
class RecommendationRule:
    """Emit an advisory when its threshold rule fires."""

    rule: ThresholdRule
    type: str
    priority: Priority
    description: str  # Formatted with value= and mb=

    def build(self, report: OptimizationReport) -> Recommendation:
        value = report.metric(self.rule.metric)
        return Recommendation(
            type=self.type,
            priority=self.priority,
            description=self.description.format(value=value, mb=value / MB),
            implementation=self.rule.action,
        )


# Control-loop actions; action names are PerformanceOptimizer coroutines
AUTOMATIC_ACTIONS: tuple[ThresholdRule, ...] = (
    ThresholdRule(
        name="memory-pressure",
        metric="memory_usage",
        comparator=operator.gt,
        threshold="medium_memory_bytes",
        action="optimize_memory_usage",
    ),
    ThresholdRule(
        name="slow-responses",
        metric="average_response_time",
        comparator=operator.gt,
        threshold="slow_response_ms",
        action="preload_critical_resources",
    ),
)

# Conditions that mark the system as not optimized; action is the issue text
CRITICAL_ISSUES: tuple[ThresholdRule, ...] = (
    ThresholdRule(
        name="memory-critical",
        metric="memory_usage",
        comparator=operator.gt,
        threshold="critical_memory_bytes",
        action="Very high memory usage detected",
    ),
    ThresholdRule(
        name="error-rate-critical",
        metric="error_rate",
        comparator=operator.gt,
        threshold="high_error_rate",
        action="High error rate detected",
        guard="total_operations",
    ),
)

RECOMMENDATIONS: tuple[RecommendationRule, ...] = (
    RecommendationRule(
        rule=ThresholdRule(
            name="memory-high",
            metric="memory_usage",
            comparator=operator.gt,
            threshold="medium_memory_bytes",
            action="Evict stale cache entries and reduce retained metrics",
        ),
        type="memory",
        priority=Priority.HIGH,
        description="High memory usage ({mb:.1f}MB)",
    ),
    RecommendationRule(
        rule=ThresholdRule(
            name="error-rate-high",
            metric="error_rate",
            comparator=operator.gt,
            threshold="warn_error_rate",
            action="Add retries and fallbacks around provider calls",
            guard="total_operations",
        ),
        type="network",
        priority=Priority.HIGH,
        description="Error rate is high ({value:.1f}%)",
    ),
    RecommendationRule(
        rule=ThresholdRule(
            name="low-hit-rate",
            metric="cache_hit_rate",
            comparator=operator.lt,
            threshold="low_hit_rate",
            action="Consider increasing TTL or cache capacity",
            guard="cache_requests",
        ),
        type="cache",
        priority=Priority.MEDIUM,
        description="Cache hit rate is low ({value:.0%})",
    ),
    RecommendationRule(
        rule=ThresholdRule(
            name="slow-responses",
            metric="average_response_time",
            comparator=operator.gt,
            threshold="slow_response_ms",
            action="Preload hot prompts or enable more aggressive caching",
        ),
        type="network",
        priority=Priority.MEDIUM,
        description="AI responses are slow (avg {value:.0f}ms)",
    ),
    RecommendationRule(
        rule=ThresholdRule(
            name="slow-dom",
            metric="dom_operation_time",
            comparator=operator.gt,
            threshold="slow_dom_ms",
            action="Batch DOM operations and defer layout work",
        ),
        type="dom",
        priority=Priority.LOW,
        description="DOM operations are slow (avg {value:.1f}ms)",
    ),
)


def fired(
    rules: Iterable[ThresholdRule],
    report: OptimizationReport,
    thresholds: Thresholds,
) -> list[ThresholdRule]:
    """Return the rules that fire for a report, in table order."""
    return [rule for rule in rules if rule.fires(report, thresholds)]


def recommend(
    report: OptimizationReport,
    thresholds: Thresholds,
    rules: Iterable[RecommendationRule] = RECOMMENDATIONS,
) -> list[Recommendation]:
    """Build the advisories for a report, most urgent first."""
    found = [r.build(report) for r in rules if r.rule.fires(report, thresholds)]
    return sorted(found, key=lambda rec: rec.priority.rank, reverse=True)
