"""Unit tests for flow_engine.parser.line_numbers."""

from __future__ import annotations

from flow_engine.models.flow import FlowNode, FlowNodeKind
from flow_engine.parser.flow_builder import analyze_statement
from flow_engine.parser.line_numbers import keyword_lines, shift_lines


def _line_of(result, kind, label=None):
    node = next(
        n for n in result.nodes if n.kind == kind and (label is None or n.label == label)
    )
    return node.source_line


class TestAssignLineNumbers:
    def test_clause_lines(self):
        sql = "SELECT id, name\nFROM users\nWHERE active = 1\nORDER BY id\nLIMIT 5"
        result = analyze_statement(sql)
        assert _line_of(result, FlowNodeKind.TABLE) == 2
        assert _line_of(result, FlowNodeKind.FILTER) == 3
        assert _line_of(result, FlowNodeKind.SELECT) == 1
        assert _line_of(result, FlowNodeKind.SORT) == 4
        assert _line_of(result, FlowNodeKind.LIMIT) == 5
        assert _line_of(result, FlowNodeKind.RESULT) == 1

    def test_joins_claim_distinct_lines(self):
        sql = "SELECT a.id\nFROM a\nJOIN b ON b.id = a.id\nJOIN c ON c.id = a.id"
        result = analyze_statement(sql)
        joins = result.nodes_of_kind(FlowNodeKind.JOIN)
        assert [j.source_line for j in joins] == [3, 4]
        assert _line_of(result, FlowNodeKind.TABLE, "a") == 2
        assert _line_of(result, FlowNodeKind.TABLE, "b") == 3
        assert _line_of(result, FlowNodeKind.TABLE, "c") == 4

    def test_single_line_statement(self):
        result = analyze_statement("SELECT id FROM t WHERE x = 1")
        assert {n.source_line for n in result.nodes} == {1}


class TestHelpers:
    def test_keyword_lines(self):
        lines = keyword_lines("SELECT x\nFROM t\nGROUP   BY x\nORDER BY x")
        assert lines["SELECT"] == [1]
        assert lines["FROM"] == [2]
        assert lines["GROUP BY"] == [3]
        assert lines["ORDER BY"] == [4]
        assert "WHERE" not in lines

    def test_keywords_match_whole_words(self):
        assert "FROM" not in keyword_lines("SELECT from_date FROMAGE")

    def test_shift_lines(self):
        nodes = [
            FlowNode(id="a", kind=FlowNodeKind.TABLE, label="t", source_line=2, end_line=3),
            FlowNode(id="b", kind=FlowNodeKind.RESULT, label="Result"),
        ]
        shift_lines(nodes, 10)
        assert (nodes[0].source_line, nodes[0].end_line) == (12, 13)
        assert nodes[1].source_line is None
