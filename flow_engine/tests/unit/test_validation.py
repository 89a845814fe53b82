"""Unit tests for flow_engine.parser.validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from flow_engine.models.flow import ValidationKind
from flow_engine.parser.validation import (
    SqlValidationError,
    ValidationLimits,
    assert_sql_valid,
    estimate_statement_count,
    format_bytes,
    validate_sql,
)


class TestValidateSql:
    def test_valid_input_passes(self):
        assert validate_sql("SELECT 1") is None

    @pytest.mark.parametrize("sql", ["", "   \n\t "])
    def test_empty_input(self, sql):
        issue = validate_sql(sql)
        assert issue is not None
        assert issue.kind == ValidationKind.EMPTY_INPUT
        assert issue.message == "No SQL provided"

    def test_size_limit(self):
        issue = validate_sql("SELECT 1 FROM t", ValidationLimits(max_sql_size_bytes=10))
        assert issue is not None
        assert issue.kind == ValidationKind.SIZE_LIMIT
        assert issue.details.actual == 15
        assert issue.details.limit == 10
        assert issue.details.unit == "bytes"
        assert issue.message == "SQL input exceeds maximum size limit of 10 bytes"

    def test_size_is_measured_in_utf8_bytes(self):
        # Four characters, eight bytes.
        issue = validate_sql("ññññ", ValidationLimits(max_sql_size_bytes=6))
        assert issue is not None
        assert issue.details.actual == 8

    def test_query_count_limit(self):
        issue = validate_sql(
            "SELECT 1; SELECT 2; SELECT 3", ValidationLimits(max_query_count=2)
        )
        assert issue is not None
        assert issue.kind == ValidationKind.QUERY_COUNT_LIMIT
        assert issue.details.actual == 3
        assert "exceeding the limit of 2" in issue.message

    def test_size_checked_before_count(self):
        limits = ValidationLimits(max_sql_size_bytes=5, max_query_count=1)
        issue = validate_sql("SELECT 1; SELECT 2", limits)
        assert issue.kind == ValidationKind.SIZE_LIMIT

    def test_limits_must_be_positive(self):
        with pytest.raises(ValidationError):
            ValidationLimits(max_query_count=0)


class TestEstimateStatementCount:
    def test_ignores_semicolons_in_strings_and_comments(self):
        assert estimate_statement_count("SELECT ';'; -- ;\nSELECT 2;") == 2

    def test_no_semicolon_is_one_statement(self):
        assert estimate_statement_count("SELECT 1") == 1

    def test_missing_trailing_semicolon(self):
        assert estimate_statement_count("SELECT 1; SELECT 2") == 2

    def test_comment_only(self):
        assert estimate_statement_count("/* nothing */") == 0


class TestFormatBytes:
    def test_units(self):
        assert format_bytes(512) == "512 bytes"
        assert format_bytes(100 * 1024) == "100.0KB"
        assert format_bytes(1536 * 1024) == "1.5MB"


class TestAssertSqlValid:
    def test_raises_with_issue(self):
        with pytest.raises(SqlValidationError) as excinfo:
            assert_sql_valid("")
        assert excinfo.value.kind == ValidationKind.EMPTY_INPUT
        assert str(excinfo.value) == "No SQL provided"

    def test_passes_silently(self):
        assert_sql_valid("SELECT 1")
