"""Unit tests for output-column lineage."""

from __future__ import annotations

from flow_engine.parser.flow_builder import analyze_statement


def _sources(result, output):
    entry = next(c for c in result.column_lineage if c.output_column == output)
    return {(s.table, s.column) for s in entry.sources}


class TestColumnLineage:
    def test_aliases_resolve_to_tables(self):
        result = analyze_statement(
            "SELECT o.id, c.name AS customer FROM orders o "
            "JOIN customers c ON o.customer_id = c.id"
        )
        assert [c.output_column for c in result.column_lineage] == ["id", "customer"]
        assert _sources(result, "id") == {("orders", "id")}
        assert _sources(result, "customer") == {("customers", "name")}

    def test_source_points_at_table_node(self):
        result = analyze_statement("SELECT o.id FROM orders o")
        (source,) = result.column_lineage[0].sources
        node = result.node(source.node_id)
        assert node is not None
        assert node.label == "orders"

    def test_unqualified_column_with_one_table(self):
        result = analyze_statement("SELECT id FROM users")
        assert _sources(result, "id") == {("users", "id")}

    def test_unqualified_column_is_ambiguous_with_two_tables(self):
        result = analyze_statement("SELECT id FROM a JOIN b ON a.x = b.x")
        assert result.column_lineage[0].sources == []

    def test_star_expands_per_table(self):
        result = analyze_statement("SELECT * FROM a JOIN b ON a.x = b.x")
        (entry,) = result.column_lineage
        assert entry.output_column == "*"
        assert {(s.table, s.column) for s in entry.sources} == {("a", "*"), ("b", "*")}

    def test_expression_collects_every_column(self):
        result = analyze_statement("SELECT price * qty AS total FROM items")
        assert _sources(result, "total") == {("items", "price"), ("items", "qty")}

    def test_insert_select_uses_query_columns(self):
        result = analyze_statement("INSERT INTO archive SELECT id FROM orders")
        assert _sources(result, "id") == {("orders", "id")}

    def test_update_has_no_lineage(self):
        result = analyze_statement("UPDATE users SET active = 0 WHERE id = 1")
        assert result.column_lineage == []

    def test_where_subquery_table_is_not_in_scope(self):
        result = analyze_statement("SELECT id FROM z WHERE k IN (SELECT k FROM y)")
        assert _sources(result, "id") == {("z", "id")}

    def test_scalar_subquery_table_is_not_in_scope(self):
        result = analyze_statement("SELECT id, (SELECT MAX(x) FROM y) AS mx FROM z")
        assert _sources(result, "id") == {("z", "id")}

    def test_star_ignores_subquery_tables(self):
        result = analyze_statement("SELECT * FROM z WHERE k IN (SELECT k FROM y)")
        (entry,) = result.column_lineage
        assert {(s.table, s.column) for s in entry.sources} == {("z", "*")}

    def test_star_covers_self_join_once_per_from_item(self):
        result = analyze_statement("SELECT * FROM t a JOIN t b ON a.id = b.parent_id")
        (entry,) = result.column_lineage
        assert [s.table for s in entry.sources] == ["t", "t"]
        assert len({s.node_id for s in entry.sources}) == 2
