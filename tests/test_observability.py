"""Tests for the observability module.

Tests for metrics collection, operation timing and logging configuration.
"""
import logging
import tempfile
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from notex_mcp.observability import (
    PACKAGE_LOGGER,
    MetricsCollector,
    configure_logging,
    is_logging_configured,
    metrics,
    timed_operation,
    traced,
)


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_record_success_and_failure(self):
        collector = MetricsCollector()
        collector.record_operation("save", 10.0, True)
        collector.record_operation("save", 30.0, False, "disk full")

        data = collector.get_metrics()["save"]
        assert data["count"] == 2
        assert data["success_count"] == 1
        assert data["error_count"] == 1
        assert data["avg_duration_ms"] == 20.0
        assert data["min_duration_ms"] == 10.0
        assert data["max_duration_ms"] == 30.0
        assert data["last_error"] == "disk full"
        assert data["last_error_time"] is not None

    def test_summary(self):
        collector = MetricsCollector()
        assert collector.get_summary()["overall_success_rate"] == 1.0
        collector.record_operation("a", 1.0, True)
        collector.record_operation("b", 1.0, False)
        summary = collector.get_summary()
        assert summary["total_operations"] == 2
        assert summary["overall_success_rate"] == 0.5
        assert summary["operations_tracked"] == ["a", "b"]

    def test_reset(self):
        collector = MetricsCollector()
        collector.record_operation("a", 1.0, True)
        collector.reset()
        assert collector.get_metrics() == {}


class TestTimedOperation:
    """Tests for the timed_operation context manager and traced decorator."""

    def setup_method(self):
        metrics.reset()

    def test_success_recorded(self):
        with timed_operation("unit_op", note_id="n1") as op:
            op["result_count"] = 3
        assert metrics.get_metrics()["unit_op"]["success_count"] == 1

    def test_failure_recorded_and_reraised(self):
        with pytest.raises(RuntimeError):
            with timed_operation("failing_op"):
                raise RuntimeError("nope")
        data = metrics.get_metrics()["failing_op"]
        assert data["error_count"] == 1
        assert data["last_error"] == "nope"

    def test_traced_decorator(self):
        @traced("traced_op")
        def produce(note_id=None):
            return [1, 2]

        assert produce(note_id="n1") == [1, 2]
        assert metrics.get_metrics()["traced_op"]["count"] == 1

    def test_traced_defaults_to_function_name(self):
        @traced()
        def helper():
            return None

        helper()
        assert "helper" in metrics.get_metrics()


class TestConfigureLogging:
    def test_creates_rotating_log_file(self):
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        before = list(package_logger.handlers)
        with tempfile.TemporaryDirectory() as tmp:
            log_dir = Path(tmp) / "logs"
            try:
                result = configure_logging(log_dir=log_dir, console=False)
                assert result == log_dir
                assert (log_dir / "notex.log").exists()
                assert is_logging_configured()
                assert any(
                    isinstance(h, RotatingFileHandler) for h in package_logger.handlers
                )
            finally:
                for handler in package_logger.handlers[:]:
                    if handler not in before:
                        handler.close()
                        package_logger.removeHandler(handler)
