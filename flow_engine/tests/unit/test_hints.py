"""Unit tests for flow_engine.parser.hints via analyze_statement."""

from __future__ import annotations

from flow_engine.models.flow import FlowNodeKind, HintKind, HintSeverity, ParseResult
from flow_engine.parser.flow_builder import analyze_statement


def _messages(result: ParseResult) -> list[str]:
    return [h.message for h in result.hints]


class TestHints:
    def test_clean_query_has_no_hints(self):
        result = analyze_statement("SELECT id FROM t LIMIT 10")
        assert result.hints == []

    def test_select_star(self):
        result = analyze_statement("SELECT * FROM t LIMIT 5")
        (hint,) = result.hints
        assert hint.message == "SELECT * detected"
        assert hint.kind == HintKind.WARNING
        assert hint.severity == HintSeverity.MEDIUM
        assert hint.node_id == result.nodes_of_kind(FlowNodeKind.SELECT)[0].id

    def test_missing_limit(self):
        result = analyze_statement("SELECT id FROM t")
        (hint,) = result.hints
        assert hint.message == "No LIMIT clause"
        assert hint.kind == HintKind.INFO
        assert hint.severity == HintSeverity.LOW

    def test_update_without_where(self):
        result = analyze_statement("UPDATE users SET x = 1")
        (hint,) = result.hints
        assert hint.kind == HintKind.ERROR
        assert hint.message == "UPDATE without WHERE clause"
        assert hint.category == "safety"
        assert "ALL rows" in hint.suggestion

    def test_delete_without_where(self):
        result = analyze_statement("DELETE FROM logs")
        assert "DELETE without WHERE clause" in _messages(result)

    def test_delete_with_where_is_safe(self):
        result = analyze_statement("DELETE FROM logs WHERE created_at < '2020-01-01'")
        assert result.hints == []

    def test_many_joins(self):
        sql = "SELECT t0.id FROM t0" + "".join(
            f" JOIN t{i} ON t{i}.id = t{i - 1}.id" for i in range(1, 7)
        ) + " LIMIT 1"
        result = analyze_statement(sql)
        assert result.stats.joins == 6
        assert "High number of JOINs (6)" in _messages(result)

    def test_five_joins_is_fine(self):
        sql = "SELECT t0.id FROM t0" + "".join(
            f" JOIN t{i} ON t{i}.id = t{i - 1}.id" for i in range(1, 6)
        ) + " LIMIT 1"
        result = analyze_statement(sql)
        assert result.hints == []

    def test_many_subqueries(self):
        sql = (
            "SELECT id FROM t "
            "WHERE a IN (SELECT a FROM s1) AND b IN (SELECT b FROM s2) "
            "AND c IN (SELECT c FROM s3) AND d IN (SELECT d FROM s4) LIMIT 1"
        )
        result = analyze_statement(sql)
        assert result.stats.subqueries == 4
        hint = next(h for h in result.hints if h.message.startswith("Multiple subqueries"))
        assert hint.message == "Multiple subqueries detected (4)"
        assert hint.category == "readability"

    def test_cartesian_product(self):
        result = analyze_statement("SELECT * FROM a, b")
        hint = next(h for h in result.hints if h.message == "Possible Cartesian product")
        assert hint.kind == HintKind.ERROR
        assert hint.severity == HintSeverity.HIGH

    def test_comma_join_with_filter_is_not_cartesian(self):
        result = analyze_statement("SELECT a.id FROM a, b WHERE a.id = b.id LIMIT 1")
        assert result.hints == []

    def test_write_target_does_not_count_towards_cartesian(self):
        result = analyze_statement("INSERT INTO archive SELECT id FROM orders")
        assert "Possible Cartesian product" not in _messages(result)

    def test_checks_are_independent(self):
        result = analyze_statement("SELECT * FROM a, b")
        assert set(_messages(result)) == {
            "SELECT * detected",
            "No LIMIT clause",
            "Possible Cartesian product",
        }


class TestAdvancedHints:
    def test_unused_cte(self):
        result = analyze_statement(
            "WITH recent AS (SELECT id FROM orders), stale AS (SELECT id FROM orders) "
            "SELECT id FROM recent LIMIT 10"
        )
        hint = next(h for h in result.hints if h.message.startswith("Unused CTE"))
        assert hint.message == 'Unused CTE: "stale"'
        assert hint.kind == HintKind.WARNING
        assert hint.severity == HintSeverity.MEDIUM
        assert hint.category == "quality"
        assert result.node(hint.node_id).label == "WITH stale"
        assert sum(h.message.startswith("Unused CTE") for h in result.hints) == 1

    def test_cte_read_by_later_cte_is_used(self):
        result = analyze_statement(
            "WITH base AS (SELECT id FROM orders), latest AS (SELECT id FROM base) "
            "SELECT id FROM latest LIMIT 5"
        )
        assert not any(m.startswith("Unused CTE") for m in _messages(result))

    def test_cte_read_in_where_subquery_is_used(self):
        result = analyze_statement(
            "WITH vip AS (SELECT id FROM customers) "
            "SELECT id FROM orders WHERE customer_id IN (SELECT id FROM vip) LIMIT 5"
        )
        assert not any(m.startswith("Unused CTE") for m in _messages(result))

    def test_table_scanned_twice(self):
        result = analyze_statement(
            "SELECT a.id FROM events a JOIN events b ON a.id = b.parent_id LIMIT 5"
        )
        hint = next(h for h in result.hints if "scanned" in h.message)
        assert hint.message == 'Table "events" scanned 2 times'
        assert hint.category == "performance"
        assert hint.severity == HintSeverity.MEDIUM

    def test_cte_body_and_main_query_both_scan(self):
        result = analyze_statement(
            "WITH recent AS (SELECT id FROM orders) "
            "SELECT o.id FROM orders o JOIN recent r ON o.id = r.id LIMIT 5"
        )
        assert 'Table "orders" scanned 2 times' in _messages(result)

    def test_write_target_is_not_a_scan(self):
        result = analyze_statement("INSERT INTO orders SELECT * FROM orders_staging")
        assert not any("scanned" in m for m in _messages(result))
