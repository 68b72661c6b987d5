# tests/test_observability.py
"""Tests for the observability module."""
import logging
import tempfile
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from qingnote.observability import (MetricsCollector, configure_logging,
                                    is_logging_configured, timed_operation,
                                    traced)


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    @pytest.fixture
    def metrics_collector(self):
        return MetricsCollector()

    def test_record_successful_operation(self, metrics_collector):
        """Test recording a successful operation."""
        metrics_collector.record_operation("note.insert", 100.0, True)

        metrics = metrics_collector.get_metrics()
        assert metrics["note.insert"]["count"] == 1
        assert metrics["note.insert"]["success_count"] == 1
        assert metrics["note.insert"]["error_count"] == 0
        assert metrics["note.insert"]["avg_duration_ms"] == 100.0

    def test_record_failed_operation(self, metrics_collector):
        """Test recording a failed operation with error."""
        metrics_collector.record_operation("note.insert", 50.0, False, "FOREIGN KEY constraint failed")

        metrics = metrics_collector.get_metrics()
        assert metrics["note.insert"]["error_count"] == 1
        assert metrics["note.insert"]["last_error"] == "FOREIGN KEY constraint failed"
        assert metrics["note.insert"]["last_error_time"] is not None

    def test_multiple_operations_aggregated(self, metrics_collector):
        metrics_collector.record_operation("note.search", 100.0, True)
        metrics_collector.record_operation("note.search", 200.0, True)
        metrics_collector.record_operation("note.search", 300.0, False, "Error")

        metrics = metrics_collector.get_metrics()["note.search"]
        assert metrics["count"] == 3
        assert metrics["success_count"] == 2
        assert metrics["avg_duration_ms"] == 200.0
        assert metrics["min_duration_ms"] == 100.0
        assert metrics["max_duration_ms"] == 300.0

    def test_get_summary(self, metrics_collector):
        metrics_collector.record_operation("op1", 100.0, True)
        metrics_collector.record_operation("op2", 200.0, False, "Error")

        summary = metrics_collector.get_summary()
        assert summary["total_operations"] == 2
        assert summary["total_success"] == 1
        assert summary["total_errors"] == 1
        assert set(summary["operations_tracked"]) == {"op1", "op2"}

    def test_snapshot_fields(self, metrics_collector):
        metrics_collector.record_operation("user.insert", 12.5, True)

        snapshot = metrics_collector.get_metrics()["user.insert"]
        assert snapshot == {
            "count": 1,
            "success_count": 1,
            "error_count": 0,
            "avg_duration_ms": 12.5,
            "min_duration_ms": 12.5,
            "max_duration_ms": 12.5,
            "last_error": None,
            "last_error_time": None,
        }

    def test_empty_summary(self, metrics_collector):
        assert metrics_collector.get_summary()["overall_success_rate"] == 1.0

    def test_reset_metrics(self, metrics_collector):
        metrics_collector.record_operation("op", 100.0, True)
        metrics_collector.reset()
        assert metrics_collector.get_metrics() == {}


class TestTimedOperation:
    """Tests for timed_operation context manager."""

    def test_timed_operation_records_success(self):
        collector = MetricsCollector()
        with patch('qingnote.observability.metrics', collector):
            with timed_operation("note.insert", note_id=1) as op:
                time.sleep(0.01)
                op["rows"] = 1

        metrics = collector.get_metrics()
        assert metrics["note.insert"]["success_count"] == 1
        assert metrics["note.insert"]["avg_duration_ms"] >= 10
        assert len(op["correlation_id"]) == 8

    def test_timed_operation_records_failure(self):
        collector = MetricsCollector()
        with patch('qingnote.observability.metrics', collector):
            with pytest.raises(ValueError):
                with timed_operation("note.insert"):
                    raise ValueError("Test error")

        metrics = collector.get_metrics()
        assert metrics["note.insert"]["error_count"] == 1
        assert "Test error" in metrics["note.insert"]["last_error"]


class TestTraced:

    def test_traced_uses_given_name(self):
        collector = MetricsCollector()

        @traced("auth.login")
        def login(username):
            return [username]

        with patch('qingnote.observability.metrics', collector):
            assert login(username="alice") == ["alice"]

        assert collector.get_metrics()["auth.login"]["count"] == 1

    def test_traced_defaults_to_function_name(self):
        collector = MetricsCollector()

        @traced()
        def lookup():
            raise KeyError("missing")

        with patch('qingnote.observability.metrics', collector):
            with pytest.raises(KeyError):
                lookup()

        assert collector.get_metrics()["lookup"]["error_count"] == 1
        assert lookup.__name__ == "lookup"


class TestConfigureLogging:
    """Tests for configure_logging function."""

    @pytest.fixture(autouse=True)
    def restore_handlers(self):
        logger = logging.getLogger("qingnote")
        handlers, level = list(logger.handlers), logger.level
        yield
        for handler in logger.handlers:
            if handler not in handlers:
                handler.close()
        logger.handlers = handlers
        logger.setLevel(level)

    def test_configure_logging_creates_directory(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_dir = Path(temp_dir) / "logs"
            result = configure_logging(log_dir=log_dir, console=False)
            assert result == log_dir
            assert log_dir.is_dir()
            assert (log_dir / "qingnote.log").exists()
            assert is_logging_configured()

    def test_configure_logging_sets_level(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            configure_logging(log_dir=Path(temp_dir) / "logs", level=logging.DEBUG, console=False)
            assert logging.getLogger("qingnote").level == logging.DEBUG

    def test_configure_logging_is_idempotent(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_dir = Path(temp_dir) / "logs"
            configure_logging(log_dir=log_dir, console=False)
            count = len(logging.getLogger("qingnote").handlers)
            configure_logging(log_dir=log_dir, console=False)
            assert len(logging.getLogger("qingnote").handlers) == count
