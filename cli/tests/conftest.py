"""Shared fixtures for CLI tests."""

from __future__ import annotations

import pytest

from flow_engine.sql_toolkit import reset_toolkit
from flow_engine.telemetry.profiling import ProfileCollector


@pytest.fixture(autouse=True)
def _quiet_environment(monkeypatch):
    """Keep log noise out of command output and start from clean singletons."""
    monkeypatch.setenv("SQLFLOW_LOG_LEVEL", "WARNING")
    monkeypatch.delenv("SQLFLOW_DEFAULT_DIALECT", raising=False)
    reset_toolkit()
    ProfileCollector.reset()
    yield
    reset_toolkit()
    ProfileCollector.reset()


@pytest.fixture
def sql_file(tmp_path):
    path = tmp_path / "queries.sql"
    path.write_text(
        "SELECT id, name\nFROM users\nWHERE active = 1;\n\n"
        "SELECT * FROM orders o JOIN customers c ON o.cid = c.id LIMIT 5;\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def workspace(tmp_path):
    """A directory of SQL files: orders -> order_totals -> report, plus archive."""
    root = tmp_path / "warehouse"
    (root / "views").mkdir(parents=True)
    (root / "ddl.sql").write_text("CREATE TABLE orders (id INT, amount INT);\n", encoding="utf-8")
    (root / "views" / "order_totals.sql").write_text(
        "CREATE VIEW order_totals AS SELECT id, amount FROM orders;\n", encoding="utf-8"
    )
    (root / "report.sql").write_text(
        "INSERT INTO report SELECT * FROM order_totals;\n"
        "INSERT INTO archive SELECT * FROM orders;\n",
        encoding="utf-8",
    )
    (root / "notes.txt").write_text("not sql", encoding="utf-8")
    return root
