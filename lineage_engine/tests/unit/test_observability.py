"""Unit tests for profiling and structured logging."""

from __future__ import annotations

import json
import logging
import sys

import pytest
from lineage_engine.config import Settings
from lineage_engine.logging_setup import JSONFormatter, configure_logging
from lineage_engine.telemetry.profiling import ProfileCollector, ProfileResult, profile_operation

# ---------------------------------------------------------------------------
# Profiling
# ---------------------------------------------------------------------------


class TestProfileOperation:
    def test_sync_function_recorded(self):
        @profile_operation("test.sync")
        def add(a: int, b: int) -> int:
            return a + b

        assert add(1, 2) == 3
        stats = ProfileCollector.get_instance().get_stats("test.sync")
        assert stats is not None
        assert stats["count"] == 1

    @pytest.mark.asyncio
    async def test_async_function_recorded(self):
        @profile_operation("test.async")
        async def double(x: int) -> int:
            return x * 2

        assert await double(4) == 8
        stats = ProfileCollector.get_instance().get_stats("test.async")
        assert stats is not None
        assert stats["count"] == 1

    def test_recorded_even_when_raising(self):
        @profile_operation("test.raises")
        def fail() -> None:
            raise ValueError("nope")

        with pytest.raises(ValueError):
            fail()
        stats = ProfileCollector.get_instance().get_stats("test.raises")
        assert stats is not None
        assert stats["failures"] == 1

    def test_all_stats_sorted_by_operation(self):
        collector = ProfileCollector()
        collector.record(ProfileResult("resolver.resolve_mappings", 2.0))
        collector.record(ProfileResult("script.decode", 1.0, failed=True))
        stats = collector.all_stats()
        assert [s["operation"] for s in stats] == ["resolver.resolve_mappings", "script.decode"]
        assert [s["failures"] for s in stats] == [0, 1]

    def test_preserves_name(self):
        @profile_operation("test.name")
        def my_function() -> None:
            pass

        assert my_function.__name__ == "my_function"

    def test_collector_bounded(self):
        collector = ProfileCollector(max_results=3)
        for i in range(5):
            collector.record(ProfileResult(operation="op", duration_ms=float(i)))
        stats = collector.get_stats("op")
        assert stats is not None
        assert stats["count"] == 3
        assert stats["max_ms"] == 4.0

    def test_unknown_operation(self):
        assert ProfileCollector.get_instance().get_stats("never") is None


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord("lineage_engine.test", logging.WARNING, __file__, 1, "skipped %s", ("x",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_fields(self):
        payload = json.loads(JSONFormatter().format(_record()))
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "lineage_engine.test"
        assert payload["message"] == "skipped x"
        assert "timestamp" in payload
        assert "job" not in payload

    def test_job_extra_included(self):
        payload = json.loads(JSONFormatter().format(_record(job={"etl_name": "orders", "state": "Committed"})))
        assert payload["job"] == {"etl_name": "orders", "state": "Committed"}

    def test_exception_included(self):
        try:
            raise RuntimeError("kaput")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        payload = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: kaput" in payload["exc_info"]


class TestConfigureLogging:
    def test_structured_installs_json_formatter(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(Settings(structured_logging=True, log_level="WARNING"))
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
            assert root.level == logging.WARNING
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_debug_forces_debug_level(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(Settings(debug=True))
            assert root.level == logging.DEBUG
            assert not isinstance(root.handlers[0].formatter, JSONFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
