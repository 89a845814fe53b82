"""SQL toolkit shared types.

Every type here is implementation-agnostic.  Consumer code (the flow builder,
the workspace extractor) operates on these types exclusively.  The backing
implementation converts its native parse tree into this closed, tagged
statement model once, so nothing downstream ever inspects loosely structured
parser output.

ZERO dependency on any SQL parsing library.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Union

# ---------------------------------------------------------------------------
# Dialect
# ---------------------------------------------------------------------------


class Dialect(str, enum.Enum):
    """Supported SQL dialects.

    The value is the user-facing name; the implementation maps it to its own
    dialect identifier.
    """

    MYSQL = "MySQL"
    POSTGRESQL = "PostgreSQL"
    TRANSACTSQL = "TransactSQL"
    MARIADB = "MariaDB"
    SQLITE = "SQLite"
    SNOWFLAKE = "Snowflake"
    BIGQUERY = "BigQuery"
    HIVE = "Hive"
    REDSHIFT = "Redshift"
    ATHENA = "Athena"
    TRINO = "Trino"

    @classmethod
    def from_name(cls, name: str) -> Dialect:
        """Resolve a dialect from its value or member name, case-insensitively.

        Raises
        ------
        ValueError
            If *name* matches no supported dialect.
        """
        needle = name.strip().lower()
        for member in cls:
            if needle in (member.value.lower(), member.name.lower()):
                return member
        supported = ", ".join(m.value for m in cls)
        raise ValueError(f"Unsupported dialect '{name}'. Supported: {supported}")


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ColumnExpr:
    """A column reference, optionally qualified by a table name or alias."""

    name: str
    table: str | None = None
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class StarExpr:
    """``*`` or ``t.*``."""

    table: str | None = None
    sql_text: str = "*"


@dataclass(frozen=True, slots=True)
class LiteralExpr:
    value: str
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class WindowSpec:
    """The ``OVER (...)`` clause of a window function call."""

    partition_by: tuple[str, ...] = ()
    order_by: tuple[str, ...] = ()
    frame: str | None = None


@dataclass(frozen=True, slots=True)
class FunctionExpr:
    """A function call.

    ``aggregate`` is set for recognised aggregate functions.  A call with an
    ``over`` clause is a window function, whatever its name.
    """

    name: str
    args: tuple[Expr, ...] = ()
    aggregate: bool = False
    distinct: bool = False
    over: WindowSpec | None = None
    sql_text: str = ""

    @property
    def is_window(self) -> bool:
        return self.over is not None


@dataclass(frozen=True, slots=True)
class CaseBranch:
    condition: Expr
    result: Expr


@dataclass(frozen=True, slots=True)
class CaseExpr:
    """``CASE [operand] WHEN ... THEN ... [ELSE ...] END``."""

    branches: tuple[CaseBranch, ...]
    operand: Expr | None = None
    default: Expr | None = None
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class BinaryExpr:
    """Any two-operand expression: comparisons, arithmetic, AND/OR, LIKE."""

    operator: str
    left: Expr
    right: Expr
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class UnaryExpr:
    operator: str
    operand: Expr
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class CastExpr:
    operand: Expr
    data_type: str
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class SubqueryExpr:
    """A query used as an expression (scalar, ``IN (...)``, ``EXISTS (...)``)."""

    query: QueryStatement
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class UnknownExpr:
    """Fallback for expression shapes the model does not name.

    ``children`` keeps the sub-expressions so column references nested inside
    (``BETWEEN``, ``IN`` lists, ...) are still reachable.
    """

    sql_text: str = ""
    children: tuple[Expr, ...] = ()


Expr = Union[
    ColumnExpr,
    StarExpr,
    LiteralExpr,
    FunctionExpr,
    CaseExpr,
    BinaryExpr,
    UnaryExpr,
    CastExpr,
    SubqueryExpr,
    UnknownExpr,
]


# ---------------------------------------------------------------------------
# FROM clause
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TableSource:
    """A physical table (or CTE) named in FROM / JOIN / a write target."""

    name: str
    schema: str | None = None
    catalog: str | None = None
    alias: str | None = None

    @property
    def display_name(self) -> str:
        """Return ``schema.name`` (or bare ``name``) as written."""
        if self.schema:
            return f"{self.schema}.{self.name}"
        return self.name

    @property
    def reference_name(self) -> str:
        """Return the name other clauses use to refer to this source."""
        return self.alias or self.name


@dataclass(frozen=True, slots=True)
class SubquerySource:
    """A derived table: ``(SELECT ...) AS alias``."""

    query: QueryStatement
    alias: str | None = None


@dataclass(frozen=True, slots=True)
class FunctionSource:
    """A table-valued function or ``UNNEST``/``LATERAL`` source."""

    name: str
    alias: str | None = None
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class UnknownSource:
    sql_text: str = ""
    alias: str | None = None


FromSource = Union[TableSource, SubquerySource, FunctionSource, UnknownSource]


@dataclass(frozen=True, slots=True)
class Join:
    """One entry of the join chain following the first FROM item.

    ``implicit`` marks a comma-separated FROM item, which has no join keyword
    and no condition.
    """

    source: FromSource
    kind: str = "INNER JOIN"
    condition: Expr | None = None
    using: tuple[str, ...] = ()
    implicit: bool = False


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SelectItem:
    expr: Expr
    alias: str | None = None

    @property
    def output_name(self) -> str:
        """Return the name this item has in the result set."""
        if self.alias:
            return self.alias
        if isinstance(self.expr, ColumnExpr):
            return self.expr.name
        if isinstance(self.expr, StarExpr):
            return self.expr.sql_text or "*"
        if isinstance(self.expr, FunctionExpr):
            return self.expr.name.lower()
        return self.expr.sql_text or "expr"


@dataclass(frozen=True, slots=True)
class OrderItem:
    expr: Expr
    descending: bool = False

    @property
    def sql_text(self) -> str:
        text = getattr(self.expr, "sql_text", "") or "?"
        return f"{text} DESC" if self.descending else text


@dataclass(frozen=True, slots=True)
class CteDefinition:
    name: str
    query: QueryStatement
    recursive: bool = False
    columns: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SelectStatement:
    """A single ``SELECT`` block.

    ``source`` is the first FROM item; every other FROM item (comma-separated
    or joined) is an entry of ``joins`` in textual order.
    """

    items: tuple[SelectItem, ...] = ()
    ctes: tuple[CteDefinition, ...] = ()
    source: FromSource | None = None
    joins: tuple[Join, ...] = ()
    where: Expr | None = None
    group_by: tuple[Expr, ...] = ()
    having: Expr | None = None
    order_by: tuple[OrderItem, ...] = ()
    limit: str | None = None
    distinct: bool = False
    sql_text: str = ""

    @property
    def from_sources(self) -> tuple[FromSource, ...]:
        """Return every FROM item, the first source followed by join sources."""
        if self.source is None:
            return ()
        return (self.source, *(j.source for j in self.joins))


@dataclass(frozen=True, slots=True)
class SetOperation:
    """``left UNION|UNION ALL|INTERSECT|EXCEPT right``."""

    operator: str
    left: QueryStatement
    right: QueryStatement
    ctes: tuple[CteDefinition, ...] = ()
    order_by: tuple[OrderItem, ...] = ()
    limit: str | None = None
    sql_text: str = ""

    @property
    def leftmost(self) -> SelectStatement | None:
        """Return the first ``SELECT`` block, which names the output columns."""
        node: QueryStatement = self.left
        while isinstance(node, SetOperation):
            node = node.left
        return node if isinstance(node, SelectStatement) else None


QueryStatement = Union[SelectStatement, SetOperation]


# ---------------------------------------------------------------------------
# Write / DDL statements
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class InsertStatement:
    target: TableSource
    columns: tuple[str, ...] = ()
    query: QueryStatement | None = None
    values_rows: int = 0
    overwrite: bool = False
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class Assignment:
    column: str
    value: Expr


@dataclass(frozen=True, slots=True)
class UpdateStatement:
    target: TableSource
    assignments: tuple[Assignment, ...] = ()
    source: FromSource | None = None
    joins: tuple[Join, ...] = ()
    where: Expr | None = None
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class DeleteStatement:
    target: TableSource
    using: tuple[FromSource, ...] = ()
    where: Expr | None = None
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class MergeStatement:
    target: TableSource
    source: FromSource | None = None
    condition: Expr | None = None
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class ColumnDef:
    """A column declared in ``CREATE TABLE``."""

    name: str
    data_type: str = ""
    nullable: bool = True
    primary_key: bool = False


@dataclass(frozen=True, slots=True)
class CreateStatement:
    """``CREATE TABLE|VIEW ...`` with optional ``AS <query>``."""

    object_kind: str
    target: TableSource
    columns: tuple[ColumnDef, ...] = ()
    query: QueryStatement | None = None
    replace: bool = False
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class DropStatement:
    object_kind: str
    target: TableSource
    sql_text: str = ""


@dataclass(frozen=True, slots=True)
class UnrecognizedStatement:
    """Fallback for statements the model does not name (ALTER, GRANT, ...)."""

    keyword: str
    sql_text: str = ""


Statement = Union[
    SelectStatement,
    SetOperation,
    InsertStatement,
    UpdateStatement,
    DeleteStatement,
    MergeStatement,
    CreateStatement,
    DropStatement,
    UnrecognizedStatement,
]


def statement_kind(statement: Statement) -> str:
    """Return the lower-case statement keyword (``select``, ``insert``, ...)."""
    if isinstance(statement, (SelectStatement, SetOperation)):
        return "select"
    if isinstance(statement, InsertStatement):
        return "insert"
    if isinstance(statement, UpdateStatement):
        return "update"
    if isinstance(statement, DeleteStatement):
        return "delete"
    if isinstance(statement, MergeStatement):
        return "merge"
    if isinstance(statement, CreateStatement):
        return "create"
    if isinstance(statement, DropStatement):
        return "drop"
    return statement.keyword.lower() or "unknown"


# ---------------------------------------------------------------------------
# Parse result
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedStatement:
    """One statement produced by the parser together with its dialect."""

    statement: Statement
    dialect: Dialect
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class SqlToolkitError(Exception):
    """Base exception for all SQL toolkit errors."""


class SqlParseError(SqlToolkitError):
    """Raised when SQL text cannot be turned into a statement.

    Attributes
    ----------
    line:
        1-indexed line of the failure relative to the statement, when the
        parser reports one.
    """

    def __init__(self, message: str, *, line: int | None = None) -> None:
        super().__init__(message)
        self.line = line
