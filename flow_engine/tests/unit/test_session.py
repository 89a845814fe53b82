"""Unit tests for flow_engine.workspace.session."""

from __future__ import annotations

import threading

import pytest

from flow_engine.config import load_settings
from flow_engine.lineage.builder import LineageBuilder
from flow_engine.lineage.impact_analyzer import ChangeKind
from flow_engine.sql_toolkit import Dialect
from flow_engine.telemetry.profiling import ProfileCollector
from flow_engine.workspace.session import LineageSession


@pytest.fixture
def session():
    return LineageSession(load_settings(), dialect=Dialect.MYSQL)


class TestIndexMaintenance:
    def test_unchanged_content_is_skipped(self, session):
        assert session.update_file("a.sql", "SELECT 1") is True
        assert session.update_file("a.sql", "SELECT 1") is False
        assert session.update_file("a.sql", "SELECT 2") is True

    def test_staleness(self, session):
        assert session.is_stale is False
        session.update_file("a.sql", "CREATE TABLE a (id INT)")
        assert session.is_stale is True
        session.rebuild()
        assert session.is_stale is False
        assert session.remove_file("a.sql") is True
        assert session.is_stale is True
        assert session.remove_file("a.sql") is False

    def test_update_files_counts_changes(self, session):
        assert session.update_files({"a.sql": "SELECT 1", "b.sql": "SELECT 2"}) == 2
        assert session.update_files({"a.sql": "SELECT 1", "b.sql": "SELECT 3"}) == 1

    def test_dialect_defaults_to_settings(self):
        settings = load_settings(default_dialect="postgresql")
        assert LineageSession(settings).dialect == Dialect.POSTGRESQL


class TestRebuild:
    def test_rebuild_swaps_graph(self, session):
        session.update_file("ddl.sql", "CREATE TABLE orders (id INT)")
        session.update_file("etl.sql", "INSERT INTO archive SELECT * FROM orders")
        before = session.graph
        graph = session.rebuild()
        assert graph is session.graph
        assert graph is not before
        assert session.get_node("table:archive") is not None
        assert session.get_downstream("table:orders").node_ids() == ["table:archive"]
        assert session.get_upstream("table:archive").node_ids() == ["table:orders"]
        assert session.stats().nodes == len(graph)
        assert [n.id for n in session.search("arch")] == ["table:archive"]

    def test_removed_file_disappears_after_rebuild(self, session):
        session.update_file("ddl.sql", "CREATE TABLE orders (id INT)")
        session.rebuild()
        session.remove_file("ddl.sql")
        assert session.get_node("table:orders") is not None
        session.rebuild()
        assert session.get_node("table:orders") is None

    def test_rebuild_is_profiled(self, session):
        session.update_file("ddl.sql", "CREATE TABLE orders (id INT)")
        session.rebuild()
        stats = ProfileCollector.get_instance().get_stats("session.rebuild")
        assert stats["count"] == 1

    def test_settings_control_builder(self):
        session = LineageSession(load_settings(include_external=False))
        session.update_file("etl.sql", "INSERT INTO y SELECT * FROM x")
        session.rebuild()
        assert session.get_node("external:x") is None

    def test_concurrent_rebuilds_are_coalesced(self, session, monkeypatch):
        entered = threading.Event()
        release = threading.Event()
        calls = []
        original = LineageBuilder.build_from_index

        def slow_build(self, index, graph=None):
            calls.append(1)
            entered.set()
            assert release.wait(5)
            return original(self, index, graph)

        monkeypatch.setattr(LineageBuilder, "build_from_index", slow_build)
        session.update_file("ddl.sql", "CREATE TABLE orders (id INT)")

        results = {}

        def run(name):
            results[name] = session.rebuild()

        first = threading.Thread(target=run, args=("first",))
        first.start()
        assert entered.wait(5)
        second = threading.Thread(target=run, args=("second",))
        second.start()
        # The second caller must be parked on the in-flight build.
        second.join(0.2)
        assert second.is_alive()
        release.set()
        first.join(5)
        second.join(5)

        assert calls == [1]
        assert results["first"] is results["second"]
        assert session.graph is results["first"]

    def test_failed_rebuild_propagates_and_recovers(self, session, monkeypatch):
        def broken(self, index, graph=None):
            raise RuntimeError("index corrupted")

        session.update_file("ddl.sql", "CREATE TABLE orders (id INT)")
        with monkeypatch.context() as patch:
            patch.setattr(LineageBuilder, "build_from_index", broken)
            with pytest.raises(RuntimeError, match="index corrupted"):
                session.rebuild()
        assert session.is_stale is True
        session.rebuild()
        assert session.get_node("table:orders") is not None


class TestQueries:
    def test_impact_and_column_lineage(self, session):
        session.update_files(
            {
                "ddl.sql": "CREATE TABLE orders (id INT, amount INT)",
                "views.sql": "CREATE VIEW order_totals AS SELECT id, amount FROM orders",
            }
        )
        session.analyze_workspace()
        report = session.analyze_impact("orders", change=ChangeKind.DROP)
        assert [i.node.id for i in report.direct_impacts] == ["view:order_totals"]
        column_report = session.analyze_impact("orders", "amount")
        assert column_report.target_id == "column:orders.amount"
        lineage = session.column_lineage("order_totals", "amount")
        assert [n.id for n in lineage.upstream.nodes] == ["column:orders.amount"]
