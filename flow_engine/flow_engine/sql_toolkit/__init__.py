"""SQL Toolkit: implementation-agnostic SQL parsing into a closed statement model.

Usage::

    from flow_engine.sql_toolkit import get_sql_toolkit, Dialect

    tk = get_sql_toolkit()
    parsed = tk.parser.parse_statement("SELECT * FROM orders", Dialect.POSTGRESQL)
    parsed.statement  # SelectStatement(...)

The default implementation delegates to SQLGlot.  A different backend can be
swapped in via ``register_implementation()`` without touching consumer code.
"""

from ._factory import (
    DEFAULT_BACKEND,
    active_backend,
    get_sql_toolkit,
    register_implementation,
    reset_toolkit,
    use_toolkit,
)
from ._protocols import SqlParser, SqlToolkit
from ._types import (
    Assignment,
    BinaryExpr,
    CaseBranch,
    CaseExpr,
    CastExpr,
    ColumnDef,
    ColumnExpr,
    CreateStatement,
    CteDefinition,
    DeleteStatement,
    Dialect,
    DropStatement,
    Expr,
    FromSource,
    FunctionExpr,
    FunctionSource,
    InsertStatement,
    Join,
    LiteralExpr,
    MergeStatement,
    OrderItem,
    ParsedStatement,
    QueryStatement,
    SelectItem,
    SelectStatement,
    SetOperation,
    SqlParseError,
    SqlToolkitError,
    StarExpr,
    Statement,
    SubqueryExpr,
    SubquerySource,
    TableSource,
    UnaryExpr,
    UnknownExpr,
    UnknownSource,
    UnrecognizedStatement,
    UpdateStatement,
    WindowSpec,
    statement_kind,
)

__all__ = [
    # Factory
    "DEFAULT_BACKEND",
    "active_backend",
    "use_toolkit",
    "get_sql_toolkit",
    "register_implementation",
    "reset_toolkit",
    # Protocols
    "SqlToolkit",
    "SqlParser",
    # Types
    "Dialect",
    "ParsedStatement",
    "Statement",
    "QueryStatement",
    "SelectStatement",
    "SetOperation",
    "InsertStatement",
    "UpdateStatement",
    "DeleteStatement",
    "MergeStatement",
    "CreateStatement",
    "DropStatement",
    "UnrecognizedStatement",
    "Assignment",
    "ColumnDef",
    "CteDefinition",
    "SelectItem",
    "OrderItem",
    "Join",
    "FromSource",
    "TableSource",
    "SubquerySource",
    "FunctionSource",
    "UnknownSource",
    "Expr",
    "ColumnExpr",
    "StarExpr",
    "LiteralExpr",
    "FunctionExpr",
    "WindowSpec",
    "CaseExpr",
    "CaseBranch",
    "BinaryExpr",
    "UnaryExpr",
    "CastExpr",
    "SubqueryExpr",
    "UnknownExpr",
    "statement_kind",
    # Exceptions
    "SqlToolkitError",
    "SqlParseError",
]
