"""Shared fixtures for flow_engine tests."""

from __future__ import annotations

import pytest

from flow_engine.sql_toolkit import reset_toolkit
from flow_engine.telemetry.profiling import ProfileCollector


@pytest.fixture(autouse=True)
def _fresh_singletons():
    """Every test starts with the default toolkit and an empty profile store."""
    reset_toolkit()
    ProfileCollector.reset()
    yield
    reset_toolkit()
    ProfileCollector.reset()


ORDERS_WORKSPACE = {
    "ddl.sql": "CREATE TABLE orders (id INT, amount INT)",
    "views.sql": "CREATE VIEW order_totals AS SELECT id, amount FROM orders",
    "report.sql": "INSERT INTO report SELECT * FROM order_totals",
}


@pytest.fixture
def orders_graph():
    """orders -> order_totals (view) -> report, with column flows into the view."""
    from flow_engine.lineage.builder import LineageBuilder
    from flow_engine.workspace.extractor import build_workspace_index

    return LineageBuilder().build_from_index(build_workspace_index(ORDERS_WORKSPACE))
