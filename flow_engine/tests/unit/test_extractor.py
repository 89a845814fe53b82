"""Unit tests for flow_engine.workspace.extractor."""

from __future__ import annotations

from flow_engine.models.workspace import ReferenceKind, SchemaObjectKind
from flow_engine.workspace.extractor import build_workspace_index, content_hash, extract_file

DDL = """CREATE TABLE sales.orders (
    id INT PRIMARY KEY,
    amount DECIMAL(10, 2)
);

CREATE VIEW big AS SELECT id FROM sales.orders WHERE amount > 100;
"""


def _refs(analysis):
    return {(r.qualified_key, r.reference_kind) for r in analysis.references}


class TestDefinitions:
    def test_table_and_view(self):
        analysis = extract_file("ddl.sql", DDL)
        table, view = analysis.definitions
        assert table.qualified_key == "sales.orders"
        assert table.kind == SchemaObjectKind.TABLE
        assert [c.name for c in table.columns] == ["id", "amount"]
        assert table.line_number == 1
        assert table.statement_index == 0

        assert view.name == "big"
        assert view.kind == SchemaObjectKind.VIEW
        assert [c.name for c in view.columns] == ["id"]
        assert view.statement_index == 1
        assert view.line_number == 6
        assert view.file_path == "ddl.sql"

    def test_view_reads_its_source(self):
        analysis = extract_file("ddl.sql", DDL)
        assert ("sales.orders", ReferenceKind.SELECT) in _refs(analysis)

    def test_statement_count_and_hash(self):
        analysis = extract_file("ddl.sql", DDL)
        assert analysis.statement_count == 2
        assert analysis.content_hash == content_hash(DDL)
        assert content_hash(DDL) != content_hash(DDL + " ")


class TestReferences:
    def test_cte_names_are_not_tables(self):
        analysis = extract_file(
            "q.sql", "WITH recent AS (SELECT * FROM orders) SELECT * FROM recent"
        )
        assert _refs(analysis) == {("orders", ReferenceKind.SELECT)}

    def test_join_and_subquery_kinds(self):
        sql = (
            "SELECT o.id FROM orders o JOIN customers c ON o.cid = c.id "
            "WHERE c.region IN (SELECT region FROM regions)"
        )
        assert _refs(extract_file("q.sql", sql)) == {
            ("orders", ReferenceKind.SELECT),
            ("customers", ReferenceKind.JOIN),
            ("regions", ReferenceKind.SUBQUERY),
        }

    def test_write_kinds(self):
        sql = (
            "INSERT INTO archive SELECT * FROM orders;\n"
            "UPDATE accounts SET flag = 1 WHERE id = 2;\n"
            "DELETE FROM logs WHERE id IN (SELECT id FROM purged)"
        )
        analysis = extract_file("w.sql", sql)
        assert _refs(analysis) == {
            ("archive", ReferenceKind.INSERT),
            ("orders", ReferenceKind.SELECT),
            ("accounts", ReferenceKind.UPDATE),
            ("logs", ReferenceKind.DELETE),
            ("purged", ReferenceKind.SUBQUERY),
        }
        by_key = {r.qualified_key: r for r in analysis.references}
        assert by_key["archive"].statement_index == 0
        assert by_key["accounts"].statement_index == 1
        assert by_key["accounts"].line_number == 2
        assert by_key["logs"].context == "DELETE FROM"

    def test_parse_errors_do_not_stop_the_file(self):
        analysis = extract_file("bad.sql", "SELECT id FROM ok_table;\nSELECT * FROM (")
        assert ("ok_table", ReferenceKind.SELECT) in _refs(analysis)
        assert len(analysis.parse_errors) == 1
        assert analysis.parse_errors[0].startswith("statement 2: ")


class TestColumnFlows:
    def test_insert_uses_declared_columns(self):
        analysis = extract_file(
            "i.sql", "INSERT INTO report (order_id, total) SELECT o.id, o.amount FROM orders o"
        )
        flows = {(f.source_table, f.source_column, f.target_table, f.target_column)
                 for f in analysis.column_flows}
        assert flows == {
            ("orders", "id", "report", "order_id"),
            ("orders", "amount", "report", "total"),
        }

    def test_ctas_uses_output_names(self):
        analysis = extract_file(
            "c.sql", "CREATE TABLE totals AS SELECT id, price * qty AS total FROM items"
        )
        flows = {(f.source_column, f.target_column) for f in analysis.column_flows}
        assert flows == {("id", "id"), ("price", "total"), ("qty", "total")}
        assert all(f.target_table == "totals" for f in analysis.column_flows)

    def test_plain_select_has_no_flows(self):
        assert extract_file("s.sql", "SELECT id FROM t").column_flows == []


class TestWorkspaceIndex:
    def test_maps(self):
        index = build_workspace_index(
            {"a.sql": DDL, "b.sql": "SELECT * FROM sales.orders"}
        )
        assert set(index.files) == {"a.sql", "b.sql"}
        assert [d.name for d in index.definition_map["sales.orders"]] == ["orders"]
        assert len(index.reference_map["sales.orders"]) == 2
        assert index.remove("b.sql") is True
        assert index.remove("b.sql") is False
