"""Tests for the metrics registry."""

from unittest.mock import patch

import psutil
import pytest

from perf_cache.metrics import (
    SAMPLE_OVERHEAD_BYTES,
    MetricsRegistry,
    NullMetricsRegistry,
    SystemMetrics,
)


class TestRecord:
    """Tests for recording samples."""

    def test_record_and_aggregate(self, registry):
        """Test per-kind counts, averages and error rates."""
        registry.record("ai-call", 100, True)
        registry.record("ai-call", 300, True)
        registry.record("ai-call", 200, False, error="timeout")
        registry.record("dom-query", 10, True)

        metrics = registry.get_current_system_metrics()

        assert metrics.operation_counts == {"ai-call": 3, "dom-query": 1}
        assert metrics.average_response_times["ai-call"] == pytest.approx(200.0)
        assert metrics.error_rates["ai-call"] == pytest.approx(100 / 3)
        assert metrics.error_rates["dom-query"] == 0.0
        assert metrics.total_operations == 4
        assert metrics.top_errors == [("timeout", 1)]

    def test_p95(self, registry):
        """Test 95th percentile per kind."""
        for ms in range(1, 101):
            registry.record("ai-call", ms, True)

        metrics = registry.get_current_system_metrics()
        assert metrics.p95_response_times["ai-call"] == pytest.approx(95.05)

    def test_slow_operations_and_bytes(self, clock):
        """Test slow samples and byte totals are counted."""
        registry = MetricsRegistry(slow_operation_ms=500, clock=clock)
        registry.record("ai-call", 600, True, size_bytes=10)
        registry.record("ai-call", 400, True, size_bytes=5)

        metrics = registry.get_current_system_metrics()
        assert metrics.slow_operations == 1
        assert metrics.total_bytes == 15

    def test_record_never_raises(self, registry):
        """Test malformed samples are dropped silently."""
        registry.record("ai-call", "not-a-number", True)
        assert registry.sample_count == 0

    def test_ring_buffer_bounded(self, clock):
        """Test only the newest samples are retained."""
        registry = MetricsRegistry(max_samples=10, clock=clock)
        for i in range(25):
            registry.record("ai-call", i, True)

        assert registry.sample_count == 10
        metrics = registry.get_current_system_metrics()
        assert metrics.average_response_times["ai-call"] == pytest.approx(19.5)

    def test_window_excludes_old_samples(self, registry, clock):
        """Test samples older than the window are ignored."""
        registry.record("ai-call", 1000, True)
        clock.advance(61)
        registry.record("ai-call", 10, True)

        metrics = registry.get_current_system_metrics()
        assert metrics.operation_counts == {"ai-call": 1}
        assert metrics.average_response_times["ai-call"] == 10.0

    def test_reset(self, registry):
        """Test reset drops every sample."""
        registry.record("ai-call", 5, True)
        registry.reset()

        assert registry.sample_count == 0
        assert registry.get_current_system_metrics().operation_counts == {}


class TestMeasure:
    """Tests for the measure context manager."""

    def test_success(self, registry):
        """Test a successful block records a success."""
        with registry.measure("dom-query", size_bytes=3):
            pass

        metrics = registry.get_current_system_metrics()
        assert metrics.operation_counts == {"dom-query": 1}
        assert metrics.error_rates["dom-query"] == 0.0
        assert metrics.total_bytes == 3

    def test_failure_reraised(self, registry):
        """Test a failing block records a failure and re-raises."""
        with pytest.raises(RuntimeError):
            with registry.measure("dom-query"):
                raise RuntimeError("boom")

        metrics = registry.get_current_system_metrics()
        assert metrics.error_rates["dom-query"] == 100.0
        assert metrics.top_errors == [("boom", 1)]


class TestMemoryUsage:
    """Tests for the memory footprint estimate."""

    def test_used_includes_samples_and_owned_bytes(self, clock):
        """Test used bytes combine retained samples and bytes held elsewhere."""
        registry = MetricsRegistry(memory_probe=lambda: 1000, clock=clock)
        registry.record("ai-call", 1, True)
        registry.record("ai-call", 1, True)

        usage = registry.get_current_system_metrics().memory_usage
        assert usage.used == 2 * SAMPLE_OVERHEAD_BYTES + 1000
        assert usage.total > 0
        assert 0 < usage.percentage < 100

    def test_process_memory_unavailable(self, registry):
        """Test psutil failures leave total at zero."""
        with patch("perf_cache.metrics.psutil.Process", side_effect=psutil.AccessDenied()):
            usage = registry.get_current_system_metrics().memory_usage

        assert usage.total == 0
        assert usage.percentage == 0.0

    def test_aggregation_failure_returns_empty(self, clock):
        """Test a failing memory source yields an empty snapshot instead of raising."""

        def broken_source():
            raise RuntimeError("memory source failed")

        registry = MetricsRegistry(memory_probe=broken_source, clock=clock)
        registry.record("ai-call", 1, True)

        metrics = registry.get_current_system_metrics()
        assert metrics.operation_counts == {}
        assert metrics.memory_usage.used == 0.0


class TestNullMetricsRegistry:
    """Tests for the no-op registry."""

    def test_discards_samples(self):
        """Test nothing is retained."""
        registry = NullMetricsRegistry()
        registry.record("ai-call", 5, True)
        with registry.measure("ai-call"):
            pass

        metrics = registry.get_current_system_metrics()
        assert isinstance(metrics, SystemMetrics)
        assert metrics.total_operations == 0

    def test_operation_tracking_is_noop(self):
        """Test started operations and custom metrics are discarded."""
        registry = NullMetricsRegistry()
        operation_id = registry.start_operation("ai-call")
        registry.end_operation(operation_id)
        registry.record_custom_metric("queue-depth", 3)

        assert operation_id == ""
        metrics = registry.get_current_system_metrics()
        assert metrics.custom_metrics == {}
        assert metrics.in_flight_operations == 0


class TestOperations:
    """Tests for start_operation / end_operation."""

    def test_duration_measured_between_calls(self, registry, clock):
        """Test the sample spans start to end on the registry clock."""
        operation_id = registry.start_operation("ai-call")
        clock.advance(2)
        registry.end_operation(operation_id, size_bytes=64)

        metrics = registry.get_current_system_metrics()
        assert metrics.operation_counts == {"ai-call": 1}
        assert metrics.average_response_times["ai-call"] == 2000.0
        assert metrics.total_bytes == 64
        assert metrics.in_flight_operations == 0

    def test_ids_are_unique(self, registry):
        """Test concurrent operations of one kind get distinct ids."""
        first = registry.start_operation("ai-call")
        second = registry.start_operation("ai-call")

        assert first != second
        assert registry.get_current_system_metrics().in_flight_operations == 2

    def test_failure_recorded_with_error(self, registry, clock):
        """Test a failed operation counts toward error rate and top errors."""
        operation_id = registry.start_operation("ai-call")
        clock.advance(0.5)
        registry.end_operation(operation_id, success=False, error="timeout")

        metrics = registry.get_current_system_metrics()
        assert metrics.error_rates["ai-call"] == 100.0
        assert metrics.top_errors == [("timeout", 1)]

    def test_unknown_id_ignored(self, registry):
        """Test ending an unknown or already ended operation records nothing."""
        operation_id = registry.start_operation("ai-call")
        registry.end_operation(operation_id)
        registry.end_operation(operation_id)
        registry.end_operation("never-started")

        assert registry.sample_count == 1

    def test_in_flight_bounded(self, clock):
        """Test the oldest unfinished operation is dropped when full."""
        registry = MetricsRegistry(clock=clock, max_in_flight=2)
        oldest = registry.start_operation("ai-call")
        registry.start_operation("ai-call")
        newest = registry.start_operation("dom-query")

        assert registry.get_current_system_metrics().in_flight_operations == 2
        registry.end_operation(oldest)
        registry.end_operation(newest)
        assert registry.get_current_system_metrics().operation_counts == {"dom-query": 1}

    def test_reset_keeps_open_operations(self, registry, clock):
        """Test reset drops samples but an open operation can still end."""
        operation_id = registry.start_operation("ai-call")
        registry.record("ai-call", 10, True)
        registry.reset()
        clock.advance(1)
        registry.end_operation(operation_id)

        metrics = registry.get_current_system_metrics()
        assert metrics.operation_counts == {"ai-call": 1}
        assert metrics.average_response_times["ai-call"] == 1000.0


class TestCustomMetrics:
    """Tests for named custom metrics."""

    def test_mean_per_name(self, registry):
        """Test values are averaged per name and kept out of operation counts."""
        registry.record_custom_metric("queue-depth", 2)
        registry.record_custom_metric("queue-depth", 4)
        registry.record_custom_metric("tokens", 100)

        metrics = registry.get_current_system_metrics()
        assert metrics.custom_metrics == {"queue-depth": 3.0, "tokens": 100.0}
        assert metrics.total_operations == 0

    def test_outside_window_excluded(self, registry, clock):
        """Test old custom metrics age out of snapshots."""
        registry.record_custom_metric("queue-depth", 10)
        clock.advance(61)
        registry.record_custom_metric("queue-depth", 2)

        assert registry.get_current_system_metrics().custom_metrics == {"queue-depth": 2.0}

    def test_invalid_value_dropped(self, registry):
        """Test a non-numeric value is dropped without raising."""
        registry.record_custom_metric("queue-depth", "lots")

        assert registry.get_current_system_metrics().custom_metrics == {}

    def test_reset_clears(self, registry):
        """Test reset drops custom metrics."""
        registry.record_custom_metric("queue-depth", 5)
        registry.reset()

        assert registry.get_current_system_metrics().custom_metrics == {}

    def test_counted_in_memory_estimate(self, registry):
        """Test retained custom metrics add to the footprint estimate."""
        registry.record_custom_metric("queue-depth", 5)

        metrics = registry.get_current_system_metrics()
        assert metrics.memory_usage.used == SAMPLE_OVERHEAD_BYTES
