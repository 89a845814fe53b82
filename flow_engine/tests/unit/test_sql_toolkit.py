"""Unit tests for the SQL toolkit facade and its SQLGlot backend."""

from __future__ import annotations

import pytest

from flow_engine.parser.flow_builder import analyze_statement
from flow_engine.sql_toolkit import (
    DEFAULT_BACKEND,
    Dialect,
    SelectStatement,
    SqlParseError,
    SqlToolkit,
    TableSource,
    active_backend,
    get_sql_toolkit,
    register_implementation,
    reset_toolkit,
    statement_kind,
    use_toolkit,
)


class TestDialect:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("mysql", Dialect.MYSQL),
            ("PostgreSQL", Dialect.POSTGRESQL),
            ("postgresql", Dialect.POSTGRESQL),
            (" snowflake ", Dialect.SNOWFLAKE),
            ("transactsql", Dialect.TRANSACTSQL),
        ],
    )
    def test_from_name(self, name, expected):
        assert Dialect.from_name(name) == expected

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unsupported dialect"):
            Dialect.from_name("cobol")


class TestSqlGlotParser:
    def test_default_toolkit_satisfies_protocol(self):
        assert isinstance(get_sql_toolkit(), SqlToolkit)

    def test_simple_select(self):
        parsed = get_sql_toolkit().parser.parse_statement("SELECT a FROM sales.t AS x")
        statement = parsed.statement
        assert isinstance(statement, SelectStatement)
        assert statement_kind(statement) == "select"
        assert isinstance(statement.source, TableSource)
        assert statement.source.display_name == "sales.t"
        assert statement.source.reference_name == "x"
        assert parsed.dialect == Dialect.MYSQL

    @pytest.mark.parametrize("sql", ["", "   "])
    def test_empty_input(self, sql):
        with pytest.raises(SqlParseError):
            get_sql_toolkit().parser.parse_statement(sql)

    def test_syntax_error(self):
        with pytest.raises(SqlParseError):
            get_sql_toolkit().parser.parse_statement("SELECT * FROM (")


class _RejectingParser:
    def parse_statement(self, sql, dialect=Dialect.MYSQL, *, max_depth=100):
        raise SqlParseError("rejected by test backend", line=2)


class _RejectingToolkit:
    @property
    def parser(self):
        return _RejectingParser()


class TestRegisterImplementation:
    def test_custom_backend_is_used(self):
        register_implementation(_RejectingToolkit)
        assert isinstance(get_sql_toolkit(), _RejectingToolkit)
        result = analyze_statement("SELECT 1")
        assert result.error == "rejected by test backend"
        assert result.error_line == 2
        assert result.nodes == []
        assert active_backend() == "_RejectingToolkit"

    def test_named_registration_and_reset(self):
        register_implementation(_RejectingToolkit, name="rejecting")
        assert active_backend() == "rejecting"
        reset_toolkit()
        assert active_backend() == DEFAULT_BACKEND
        assert not isinstance(get_sql_toolkit(), _RejectingToolkit)

    def test_instance_is_cached(self):
        assert get_sql_toolkit() is get_sql_toolkit()


class TestUseToolkit:
    def test_scoped_override(self):
        default = get_sql_toolkit()
        stub = _RejectingToolkit()
        with use_toolkit(stub, name="stub") as active:
            assert active is stub
            assert get_sql_toolkit() is stub
            assert active_backend() == "stub"
            assert analyze_statement("SELECT 1").error == "rejected by test backend"
        assert get_sql_toolkit() is default
        assert active_backend() == DEFAULT_BACKEND
        assert analyze_statement("SELECT 1").ok
