"""Unit tests for flow_engine.telemetry.profiling."""

from __future__ import annotations

import pytest

from flow_engine.telemetry.profiling import (
    ProfileCollector,
    ProfileResult,
    profile_operation,
    profiled,
)


class TestProfileCollector:
    def test_percentiles(self):
        collector = ProfileCollector()
        for ms in (5.0, 1.0, 3.0, 2.0, 4.0):
            collector.record(ProfileResult(operation="op", duration_ms=ms))
        stats = collector.get_stats("op")
        assert stats["count"] == 5
        assert stats["p50_ms"] == 3.0
        assert stats["min_ms"] == 1.0
        assert stats["max_ms"] == 5.0
        assert stats["mean_ms"] == 3.0
        assert stats["p95_ms"] == pytest.approx(4.8)

    def test_unknown_operation(self):
        assert ProfileCollector().get_stats("missing") is None

    def test_samples_are_bounded(self):
        collector = ProfileCollector(max_results=3)
        for ms in range(10):
            collector.record(ProfileResult(operation="op", duration_ms=float(ms)))
        stats = collector.get_stats("op")
        assert stats["count"] == 3
        assert stats["min_ms"] == 7.0

    def test_all_stats_sorted_by_operation(self):
        collector = ProfileCollector()
        collector.record(ProfileResult(operation="b", duration_ms=1.0))
        collector.record(ProfileResult(operation="a", duration_ms=1.0))
        assert [s["operation"] for s in collector.get_all_stats()] == ["a", "b"]
        collector.clear()
        assert collector.operations() == []

    def test_singleton_reset(self):
        first = ProfileCollector.get_instance()
        assert ProfileCollector.get_instance() is first
        ProfileCollector.reset()
        assert ProfileCollector.get_instance() is not first


class TestInstrumentation:
    def test_decorator_records_and_returns(self):
        @profile_operation("test.double")
        def double(x):
            return x * 2

        assert double(4) == 8
        assert double.__name__ == "double"
        assert ProfileCollector.get_instance().get_stats("test.double")["count"] == 1

    def test_decorator_records_failures(self):
        @profile_operation("test.fail")
        def fail():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            fail()
        assert ProfileCollector.get_instance().get_stats("test.fail")["count"] == 1

    def test_context_manager_metadata(self):
        with profiled("test.block", source="unit") as meta:
            meta["rows"] = 3
        collector = ProfileCollector.get_instance()
        assert collector.operations() == ["test.block"]
        sample = collector._data["test.block"][0]
        assert sample.metadata == {"source": "unit", "rows": 3}
