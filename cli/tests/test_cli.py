"""Tests for cli/cli/app.py -- the sqlflow CLI application.

Commands are invoked through typer.testing.CliRunner against real SQL
files in a temporary directory.  Human-readable output goes to stderr, so
JSON assertions slice the object out of the captured output.
"""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from cli.app import app

runner = CliRunner()


def _json(output: str):
    return json.loads(output[output.index("{") : output.rindex("}") + 1])


# ---------------------------------------------------------------------------
# analyze
# ---------------------------------------------------------------------------


class TestAnalyze:
    def test_human_output(self, sql_file):
        result = runner.invoke(app, ["analyze", str(sql_file)])
        assert result.exit_code == 0, result.output
        assert "queries.sql" in result.output
        assert "SELECT * detected" in result.output
        assert "No LIMIT clause" in result.output

    def test_json_output(self, sql_file):
        result = runner.invoke(app, ["--json", "analyze", str(sql_file)])
        assert result.exit_code == 0, result.output
        payload = _json(result.output)
        assert len(payload["statements"]) == 2
        assert payload["statement_ranges"][1]["start_line"] == 5
        first = payload["statements"][0]
        assert [n["kind"] for n in first["nodes"]] == ["table", "filter", "select", "result"]
        assert payload["total_stats"]["joins"] == 1
        assert payload["validation_error"] is None

    def test_parse_error_exits_1(self, tmp_path):
        path = tmp_path / "bad.sql"
        path.write_text("SELECT 1;\nSELECT * FROM (", encoding="utf-8")
        result = runner.invoke(app, ["--json", "analyze", str(path)])
        assert result.exit_code == 1
        payload = _json(result.output)
        assert payload["statements"][1]["error"]

    def test_empty_file_exits_3(self, tmp_path):
        path = tmp_path / "empty.sql"
        path.write_text("   \n", encoding="utf-8")
        result = runner.invoke(app, ["analyze", str(path)])
        assert result.exit_code == 3
        assert "No SQL provided" in result.output

    def test_unknown_dialect_exits_3(self, sql_file):
        result = runner.invoke(app, ["analyze", str(sql_file), "--dialect", "cobol"])
        assert result.exit_code == 3
        assert "Unsupported dialect" in result.output

    def test_dialect_is_recorded(self, sql_file):
        result = runner.invoke(
            app, ["--json", "analyze", str(sql_file), "--dialect", "postgresql"]
        )
        assert result.exit_code == 0, result.output
        assert _json(result.output)["statements"][0]["dialect"] == "PostgreSQL"

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["analyze", str(tmp_path / "nope.sql")])
        assert result.exit_code != 0


# ---------------------------------------------------------------------------
# lineage
# ---------------------------------------------------------------------------


class TestLineage:
    def test_json_by_name(self, workspace):
        result = runner.invoke(app, ["--json", "lineage", str(workspace), "--node", "orders"])
        assert result.exit_code == 0, result.output
        payload = _json(result.output)
        assert payload["node"]["id"] == "table:orders"
        downstream = [n["id"] for n in payload["downstream"]["nodes"]]
        assert downstream == ["table:archive", "view:order_totals", "table:report"]
        assert payload["upstream"]["nodes"] == []

    def test_json_by_id_with_depth(self, workspace):
        result = runner.invoke(
            app, ["--json", "lineage", str(workspace), "-n", "table:orders", "--depth", "1"]
        )
        assert result.exit_code == 0, result.output
        downstream = [n["id"] for n in _json(result.output)["downstream"]["nodes"]]
        assert sorted(downstream) == ["table:archive", "view:order_totals"]

    def test_human_output(self, workspace):
        result = runner.invoke(app, ["lineage", str(workspace), "--node", "order_totals"])
        assert result.exit_code == 0, result.output
        assert "Lineage graph:" in result.output
        assert "upstream" in result.output
        assert "report" in result.output

    def test_column_lineage(self, workspace):
        result = runner.invoke(
            app, ["--json", "lineage", str(workspace), "-n", "order_totals", "-c", "amount"]
        )
        assert result.exit_code == 0, result.output
        payload = _json(result.output)
        assert payload["column_id"] == "column:order_totals.amount"
        assert [n["id"] for n in payload["upstream"]["nodes"]] == ["column:orders.amount"]

    def test_unknown_node_exits_3(self, workspace):
        result = runner.invoke(app, ["lineage", str(workspace), "--node", "ord"])
        assert result.exit_code == 3
        assert "not found" in result.output
        assert "Similar:" in result.output

    def test_empty_directory(self, tmp_path):
        result = runner.invoke(app, ["lineage", str(tmp_path), "--node", "orders"])
        assert result.exit_code == 0
        assert "No SQL files found" in result.output


# ---------------------------------------------------------------------------
# impact
# ---------------------------------------------------------------------------


class TestImpact:
    def test_json_drop(self, workspace):
        result = runner.invoke(
            app, ["--json", "impact", str(workspace), "--table", "orders", "--change", "drop"]
        )
        assert result.exit_code == 0, result.output
        payload = _json(result.output)
        assert payload["change_type"] == "drop"
        assert payload["found"] is True
        assert sorted(i["node"]["id"] for i in payload["direct_impacts"]) == [
            "table:archive",
            "view:order_totals",
        ]
        assert [i["node"]["id"] for i in payload["transitive_impacts"]] == ["table:report"]
        # Three impacts across two files, raised once for spread and once for the drop.
        assert payload["severity"] == "critical"

    def test_human_output(self, workspace):
        result = runner.invoke(app, ["impact", str(workspace), "-t", "orders"])
        assert result.exit_code == 0, result.output
        assert "Impact Analysis" in result.output
        assert "Severity:" in result.output

    def test_column_change(self, workspace):
        result = runner.invoke(
            app, ["--json", "impact", str(workspace), "-t", "orders", "-c", "amount"]
        )
        assert result.exit_code == 0, result.output
        payload = _json(result.output)
        assert payload["target_kind"] == "column"
        assert payload["target_id"] == "column:orders.amount"

    def test_unknown_table_exits_3(self, workspace):
        result = runner.invoke(app, ["--json", "impact", str(workspace), "-t", "nope"])
        assert result.exit_code == 3
        assert _json(result.output)["found"] is False

    @pytest.mark.parametrize("change", ["DROP", "Rename"])
    def test_change_is_case_insensitive(self, workspace, change):
        result = runner.invoke(
            app, ["--json", "impact", str(workspace), "-t", "orders", "--change", change]
        )
        assert result.exit_code == 0, result.output
        assert _json(result.output)["change_type"] == change.lower()
