"""Unit tests for flow_engine.parser.splitter."""

from __future__ import annotations

from flow_engine.parser.splitter import (
    count_statements,
    split_statements,
    strip_leading_comments,
)


class TestSplitStatements:
    def test_splits_on_semicolons(self):
        assert split_statements("SELECT 1; SELECT 2;") == ["SELECT 1", "SELECT 2"]

    def test_trailing_statement_without_semicolon(self):
        assert split_statements("SELECT 1;\nSELECT 2") == ["SELECT 1", "SELECT 2"]

    def test_semicolon_inside_single_quotes(self):
        assert split_statements("SELECT 'a;b'; SELECT 2") == ["SELECT 'a;b'", "SELECT 2"]

    def test_semicolon_inside_double_quotes(self):
        assert split_statements('SELECT "x;y" FROM t; SELECT 2') == [
            'SELECT "x;y" FROM t',
            "SELECT 2",
        ]

    def test_semicolon_inside_comments(self):
        sql = "-- note; here\nSELECT 1; /* x; y */ SELECT 2"
        assert split_statements(sql) == ["-- note; here\nSELECT 1", "/* x; y */ SELECT 2"]

    def test_semicolon_inside_parentheses(self):
        sql = "SELECT (SELECT 1; ) AS x; SELECT 2"
        assert split_statements(sql) == ["SELECT (SELECT 1; ) AS x", "SELECT 2"]

    def test_backslash_quote_does_not_close_string(self):
        sql = "SELECT 'it\\'s; fine'; SELECT 2"
        assert split_statements(sql) == ["SELECT 'it\\'s; fine'", "SELECT 2"]

    def test_comment_only_slices_are_dropped(self):
        assert split_statements("SELECT 1; -- trailing note") == ["SELECT 1"]
        assert split_statements("/* header */;;SELECT 1") == ["SELECT 1"]

    def test_empty_input(self):
        assert split_statements("") == []
        assert split_statements("  ;\n ; ") == []

    def test_statements_keep_their_own_comments(self):
        result = split_statements("SELECT 1 -- one\n;SELECT 2")
        assert result[0] == "SELECT 1 -- one"

    def test_count_statements(self):
        assert count_statements("SELECT 1; SELECT 2; SELECT 3") == 3
        assert count_statements("-- nothing here") == 0


class TestStripLeadingComments:
    def test_mixed_leading_comments(self):
        assert strip_leading_comments("-- a\n/* b */ SELECT 1") == "SELECT 1"

    def test_only_comments(self):
        assert strip_leading_comments("-- only") == ""
        assert strip_leading_comments("/* unterminated") == ""

    def test_inner_comments_kept(self):
        assert strip_leading_comments("SELECT 1 -- tail") == "SELECT 1 -- tail"
