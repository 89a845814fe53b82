"""SQLGlot-backed implementation of the SQL toolkit protocols.

This is the ONLY file in the entire codebase that imports ``sqlglot`` directly.
All consumer code goes through the protocol interfaces defined in
:mod:`flow_engine.sql_toolkit._protocols` and the statement model defined in
:mod:`flow_engine.sql_toolkit._types`.

The converter below walks a sqlglot expression tree once and produces the
closed statement model.  Shapes it does not recognise become
:class:`UnknownExpr` / :class:`UnknownSource` / :class:`UnrecognizedStatement`
rather than errors, so a single odd clause never hides the rest of a query.

Supports SQLGlot v25 and later.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError, SqlglotError

from .._types import (
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
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal: dialect and operator tables
# ---------------------------------------------------------------------------

_DIALECT_MAP: dict[Dialect, str] = {
    Dialect.MYSQL: "mysql",
    Dialect.POSTGRESQL: "postgres",
    Dialect.TRANSACTSQL: "tsql",
    Dialect.MARIADB: "mysql",
    Dialect.SQLITE: "sqlite",
    Dialect.SNOWFLAKE: "snowflake",
    Dialect.BIGQUERY: "bigquery",
    Dialect.HIVE: "hive",
    Dialect.REDSHIFT: "redshift",
    Dialect.ATHENA: "athena",
    Dialect.TRINO: "trino",
}

# Maps sqlglot binary expression class names to the operator text.
_BINARY_OPERATORS: dict[str, str] = {
    "EQ": "=",
    "NEQ": "<>",
    "NullSafeEQ": "<=>",
    "GT": ">",
    "GTE": ">=",
    "LT": "<",
    "LTE": "<=",
    "And": "AND",
    "Or": "OR",
    "Add": "+",
    "Sub": "-",
    "Mul": "*",
    "Div": "/",
    "Mod": "%",
    "DPipe": "||",
    "Like": "LIKE",
    "ILike": "ILIKE",
    "Is": "IS",
    "BitwiseAnd": "&",
    "BitwiseOr": "|",
    "BitwiseXor": "^",
}

# Aggregates that some dialects parse as anonymous function calls.
_ANONYMOUS_AGGREGATES: frozenset[str] = frozenset(
    {
        "APPROX_COUNT_DISTINCT",
        "ARRAY_AGG",
        "BIT_AND",
        "BIT_OR",
        "BOOL_AND",
        "BOOL_OR",
        "CORR",
        "COVAR_POP",
        "COVAR_SAMP",
        "EVERY",
        "GROUP_CONCAT",
        "LISTAGG",
        "MEDIAN",
        "MODE",
        "PERCENTILE_CONT",
        "PERCENTILE_DISC",
        "STRING_AGG",
    }
)

# Set operations.  ``Intersect``/``Except`` are checked before ``Union``
# because older sqlglot releases derive them from ``Union``.
_SET_OPERATIONS: tuple[tuple[type[exp.Expression], str], ...] = (
    (exp.Intersect, "INTERSECT"),
    (exp.Except, "EXCEPT"),
    (exp.Union, "UNION"),
)

_QUERY_TYPES: tuple[type[exp.Expression], ...] = (exp.Select,) + tuple(
    cls for cls, _ in _SET_OPERATIONS
)


def _dialect_value(dialect: Dialect) -> str:
    """Return the sqlglot dialect string for a :class:`Dialect` enum member."""
    return _DIALECT_MAP[dialect]


def _arg(node: exp.Expression, *keys: str) -> Any:
    """Return the first non-None arg among *keys*.

    sqlglot has renamed a few arg keys across releases (``with`` became
    ``with_``, ``from`` became ``from_``); every lookup of those goes
    through here.
    """
    for key in keys:
        value = node.args.get(key)
        if value is not None:
            return value
    return None


def _function_name(node: exp.Expression) -> str:
    if isinstance(node, exp.Anonymous):
        return str(node.name).upper()
    if isinstance(node, exp.Func):
        return node.sql_name()
    return type(node).__name__.upper()


def _identifier_name(node: exp.Expression) -> str:
    if isinstance(node, exp.Ordered):
        node = node.this
    return node.name if node is not None else ""


def _parse_error_details(exc: ParseError) -> tuple[str, int | None]:
    """Return the first error description and its line from a ParseError."""
    errors = getattr(exc, "errors", None) or []
    if errors:
        first = errors[0]
        description = first.get("description") or str(exc)
        return description, first.get("line")
    return str(exc), None


# ---------------------------------------------------------------------------
# Internal: statement converter
# ---------------------------------------------------------------------------


class _StatementConverter:
    """Converts one sqlglot tree into the toolkit statement model."""

    def __init__(self, dialect: Dialect, max_depth: int) -> None:
        self._dialect = dialect
        self._dialect_str = _dialect_value(dialect)
        self._max_depth = max_depth

    def _sql(self, node: exp.Expression | None) -> str:
        if node is None:
            return ""
        try:
            return node.sql(dialect=self._dialect_str)
        except Exception:
            logger.debug("Could not render %s back to SQL", type(node).__name__)
            return ""

    # -- statements ----------------------------------------------------------

    def statement(self, node: exp.Expression, sql: str) -> Statement:
        text = sql.strip()

        if isinstance(node, exp.Subquery):
            node = node.unnest()

        if isinstance(node, _QUERY_TYPES):
            query = self.query(node, 0)
            if query is not None:
                return query

        if isinstance(node, exp.Insert):
            return self._insert(node, text)
        if isinstance(node, exp.Update):
            return self._update(node, text)
        if isinstance(node, exp.Delete):
            return self._delete(node, text)
        if isinstance(node, exp.Merge):
            return self._merge(node, text)
        if isinstance(node, exp.Create):
            return self._create(node, text)
        if isinstance(node, exp.Drop):
            return DropStatement(
                object_kind=(node.args.get("kind") or "").upper(),
                target=self._table(node.this),
                sql_text=text,
            )

        keyword = text.split(None, 1)[0].upper() if text else "UNKNOWN"
        return UnrecognizedStatement(keyword=keyword, sql_text=text)

    def _insert(self, node: exp.Insert, text: str) -> InsertStatement:
        target_node = node.this
        columns: tuple[str, ...] = ()
        if isinstance(target_node, exp.Schema):
            columns = tuple(_identifier_name(c) for c in target_node.expressions)
            target_node = target_node.this

        source = node.expression
        if isinstance(source, exp.Subquery):
            source = source.unnest()
        query = self.query(source, 1) if isinstance(source, _QUERY_TYPES) else None

        # ``WITH x AS (...) INSERT INTO ...`` attaches the CTEs to the insert.
        ctes = self._ctes(_arg(node, "with", "with_"), 1)
        if ctes and query is not None:
            query = dataclasses.replace(query, ctes=ctes + query.ctes)

        values_rows = len(source.expressions) if isinstance(source, exp.Values) else 0
        return InsertStatement(
            target=self._table(target_node),
            columns=columns,
            query=query,
            values_rows=values_rows,
            overwrite=bool(node.args.get("overwrite")),
            sql_text=text,
        )

    def _update(self, node: exp.Update, text: str) -> UpdateStatement:
        assignments: list[Assignment] = []
        for eq in node.expressions:
            column = eq.this if isinstance(eq, exp.EQ) else eq
            value = eq.expression if isinstance(eq, exp.EQ) else None
            assignments.append(
                Assignment(
                    column=_identifier_name(column) or self._sql(column),
                    value=self.expr(value, 1),
                )
            )

        source, joins = self._from_clause(node, 1)
        where = node.args.get("where")
        return UpdateStatement(
            target=self._table(node.this),
            assignments=tuple(assignments),
            source=source,
            joins=joins,
            where=self.expr(where.this, 1) if where is not None else None,
            sql_text=text,
        )

    def _delete(self, node: exp.Delete, text: str) -> DeleteStatement:
        using = tuple(self._source(u, 1) for u in node.args.get("using") or [])
        where = node.args.get("where")
        return DeleteStatement(
            target=self._table(node.this),
            using=using,
            where=self.expr(where.this, 1) if where is not None else None,
            sql_text=text,
        )

    def _merge(self, node: exp.Merge, text: str) -> MergeStatement:
        using = node.args.get("using")
        on = node.args.get("on")
        return MergeStatement(
            target=self._table(node.this),
            source=self._source(using, 1) if using is not None else None,
            condition=self.expr(on, 1) if on is not None else None,
            sql_text=text,
        )

    def _create(self, node: exp.Create, text: str) -> CreateStatement:
        kind = (node.args.get("kind") or "").upper()
        target_node = node.this
        columns: tuple[ColumnDef, ...] = ()
        if isinstance(target_node, exp.Schema):
            columns = self._column_defs(target_node)
            target_node = target_node.this

        body = node.expression
        if isinstance(body, exp.Subquery):
            body = body.unnest()
        query = self.query(body, 1) if isinstance(body, _QUERY_TYPES) else None

        return CreateStatement(
            object_kind=kind,
            target=self._table(target_node),
            columns=columns,
            query=query,
            replace=bool(node.args.get("replace")),
            sql_text=text,
        )

    def _column_defs(self, schema: exp.Schema) -> tuple[ColumnDef, ...]:
        defs: list[ColumnDef] = []
        primary_keys: set[str] = set()

        for item in schema.expressions:
            if isinstance(item, exp.ColumnDef):
                kind = item.args.get("kind")
                nullable = True
                primary_key = False
                for constraint in item.args.get("constraints") or []:
                    ckind = (
                        constraint.args.get("kind")
                        if isinstance(constraint, exp.ColumnConstraint)
                        else constraint
                    )
                    if isinstance(ckind, exp.NotNullColumnConstraint):
                        nullable = bool(ckind.args.get("allow_null"))
                    elif isinstance(ckind, exp.PrimaryKeyColumnConstraint):
                        primary_key = True
                        nullable = False
                defs.append(
                    ColumnDef(
                        name=item.name,
                        data_type=self._sql(kind) if kind is not None else "",
                        nullable=nullable,
                        primary_key=primary_key,
                    )
                )
            elif isinstance(item, exp.PrimaryKey):
                primary_keys.update(_identifier_name(c).lower() for c in item.expressions)

        if primary_keys:
            defs = [
                dataclasses.replace(d, primary_key=True, nullable=False)
                if d.name.lower() in primary_keys
                else d
                for d in defs
            ]
        return tuple(defs)

    # -- queries -------------------------------------------------------------

    def query(self, node: exp.Expression, depth: int) -> QueryStatement | None:
        """Convert a SELECT or set operation; ``None`` for anything else."""
        if depth > self._max_depth:
            return None
        if isinstance(node, exp.Subquery):
            node = node.unnest()
        if isinstance(node, exp.Select):
            return self._select(node, depth)
        for cls, operator in _SET_OPERATIONS:
            if isinstance(node, cls):
                return self._set_operation(node, operator, depth)
        return None

    def _set_operation(
        self, node: exp.Expression, operator: str, depth: int
    ) -> QueryStatement | None:
        left = self.query(node.this, depth + 1)
        right = self.query(node.expression, depth + 1)
        if left is None or right is None:
            return left or right
        if node.args.get("distinct") is False:
            operator = f"{operator} ALL"
        return SetOperation(
            operator=operator,
            left=left,
            right=right,
            ctes=self._ctes(_arg(node, "with", "with_"), depth),
            order_by=self._order(node, depth),
            limit=self._limit(node),
            sql_text=self._sql(node),
        )

    def _select(self, node: exp.Select, depth: int) -> SelectStatement:
        source, joins = self._from_clause(node, depth)
        where = node.args.get("where")
        group = node.args.get("group")
        having = node.args.get("having")

        return SelectStatement(
            items=tuple(self._select_item(e, depth) for e in node.expressions),
            ctes=self._ctes(_arg(node, "with", "with_"), depth),
            source=source,
            joins=joins,
            where=self.expr(where.this, depth + 1) if where is not None else None,
            group_by=tuple(self.expr(g, depth + 1) for g in group.expressions)
            if group is not None
            else (),
            having=self.expr(having.this, depth + 1) if having is not None else None,
            order_by=self._order(node, depth),
            limit=self._limit(node),
            distinct=node.args.get("distinct") is not None,
            sql_text=self._sql(node),
        )

    def _from_clause(
        self, node: exp.Expression, depth: int
    ) -> tuple[FromSource | None, tuple[Join, ...]]:
        from_ = _arg(node, "from", "from_")
        if from_ is None:
            return None, ()

        source = self._source(from_.this, depth)
        joins: list[Join] = []
        # Older releases keep comma-separated tables on the FROM node.
        for extra in from_.expressions or []:
            joins.append(Join(source=self._source(extra, depth), kind="CROSS JOIN", implicit=True))
        for join in node.args.get("joins") or []:
            joins.append(self._join(join, depth))
        return source, tuple(joins)

    def _join(self, node: exp.Join, depth: int) -> Join:
        side = node.text("side").upper()
        kind = node.text("kind").upper()
        method = node.text("method").upper()
        on = node.args.get("on")
        using = tuple(_identifier_name(u) for u in node.args.get("using") or [])
        source = self._source(node.this, depth)

        # sqlglot models ``FROM a, b`` as a join with no keyword and no condition.
        if not (side or kind or method) and on is None and not using:
            return Join(source=source, kind="CROSS JOIN", implicit=True)

        if side:
            label = f"{side} {kind} JOIN" if kind and kind != "OUTER" else f"{side} JOIN"
        elif kind:
            label = f"{kind} JOIN"
        else:
            label = "INNER JOIN"

        return Join(
            source=source,
            kind=label,
            condition=self.expr(on, depth + 1) if on is not None else None,
            using=using,
        )

    def _source(self, node: exp.Expression, depth: int) -> FromSource:
        alias = (node.alias or None) if isinstance(node, exp.Expression) else None

        if isinstance(node, exp.Table):
            if isinstance(node.this, exp.Func):
                return FunctionSource(
                    name=_function_name(node.this), alias=alias, sql_text=self._sql(node)
                )
            return self._table(node)

        if isinstance(node, exp.Subquery):
            query = self.query(node.this, depth + 1)
            if query is None:
                return UnknownSource(sql_text=self._sql(node), alias=alias)
            return SubquerySource(query=query, alias=alias)

        if isinstance(node, (exp.Unnest, exp.Lateral, exp.Func)):
            name = "UNNEST" if isinstance(node, exp.Unnest) else _function_name(
                node.this if isinstance(node, exp.Lateral) else node
            )
            return FunctionSource(name=name, alias=alias, sql_text=self._sql(node))

        return UnknownSource(sql_text=self._sql(node), alias=alias)

    def _table(self, node: exp.Expression | None) -> TableSource:
        if isinstance(node, exp.Schema):
            node = node.this
        if isinstance(node, exp.Table):
            return TableSource(
                name=node.name,
                schema=node.db or None,
                catalog=node.catalog or None,
                alias=node.alias or None,
            )
        if node is None:
            return TableSource(name="unknown")
        return TableSource(name=node.name or self._sql(node) or "unknown")

    def _ctes(self, with_: exp.Expression | None, depth: int) -> tuple[CteDefinition, ...]:
        if with_ is None:
            return ()
        recursive = bool(with_.args.get("recursive"))
        ctes: list[CteDefinition] = []
        for cte in with_.expressions:
            query = self.query(cte.this, depth + 1)
            if query is None:
                logger.debug("Skipping CTE %s with a non-query body", cte.alias)
                continue
            alias = cte.args.get("alias")
            columns = (
                tuple(c.name for c in alias.columns)
                if isinstance(alias, exp.TableAlias)
                else ()
            )
            ctes.append(
                CteDefinition(name=cte.alias, query=query, recursive=recursive, columns=columns)
            )
        return tuple(ctes)

    def _order(self, node: exp.Expression, depth: int) -> tuple[OrderItem, ...]:
        order = node.args.get("order")
        if order is None:
            return ()
        items: list[OrderItem] = []
        for ordered in order.expressions:
            if isinstance(ordered, exp.Ordered):
                items.append(
                    OrderItem(
                        expr=self.expr(ordered.this, depth + 1),
                        descending=bool(ordered.args.get("desc")),
                    )
                )
            else:
                items.append(OrderItem(expr=self.expr(ordered, depth + 1)))
        return tuple(items)

    def _limit(self, node: exp.Expression) -> str | None:
        limit = node.args.get("limit")
        if limit is not None:
            value = limit.args.get("expression") or limit.this
            if isinstance(value, exp.Expression):
                return self._sql(value)
            return str(value) if value is not None else ""
        fetch = node.args.get("fetch")
        if fetch is not None:
            count = fetch.args.get("count")
            return self._sql(count) if count is not None else "ALL"
        return None

    def _select_item(self, node: exp.Expression, depth: int) -> SelectItem:
        if isinstance(node, exp.Alias):
            return SelectItem(expr=self.expr(node.this, depth + 1), alias=node.alias or None)
        return SelectItem(expr=self.expr(node, depth + 1))

    # -- expressions ---------------------------------------------------------

    def expr(self, node: exp.Expression | None, depth: int) -> Expr:
        """Convert an expression, collapsing anything beyond the depth bound."""
        if node is None:
            return UnknownExpr()
        text = self._sql(node)
        if depth > self._max_depth:
            return UnknownExpr(sql_text=text)

        if isinstance(node, (exp.Alias, exp.Paren)):
            return self.expr(node.this, depth)

        if isinstance(node, exp.Column):
            if isinstance(node.this, exp.Star):
                return StarExpr(table=node.table or None, sql_text=text)
            return ColumnExpr(name=node.name, table=node.table or None, sql_text=text)
        if isinstance(node, exp.Star):
            return StarExpr(sql_text=text)
        if isinstance(node, exp.Literal):
            return LiteralExpr(value=node.name, sql_text=text)
        if isinstance(node, (exp.Null, exp.Boolean)):
            return LiteralExpr(value=text, sql_text=text)

        if isinstance(node, (exp.Subquery, *_QUERY_TYPES)):
            query = self.query(node, depth + 1)
            if query is None:
                return UnknownExpr(sql_text=text)
            return SubqueryExpr(query=query, sql_text=text)

        if isinstance(node, exp.Window):
            return self._window(node, depth, text)
        if isinstance(node, exp.Case):
            return self._case(node, depth, text)
        if isinstance(node, exp.Cast):
            return CastExpr(
                operand=self.expr(node.this, depth + 1),
                data_type=self._sql(node.args.get("to")),
                sql_text=text,
            )
        if isinstance(node, exp.Not):
            return UnaryExpr(operator="NOT", operand=self.expr(node.this, depth + 1), sql_text=text)
        if isinstance(node, exp.Neg):
            return UnaryExpr(operator="-", operand=self.expr(node.this, depth + 1), sql_text=text)
        if isinstance(node, exp.Binary):
            operator = _BINARY_OPERATORS.get(type(node).__name__, type(node).__name__.upper())
            return BinaryExpr(
                operator=operator,
                left=self.expr(node.left, depth + 1),
                right=self.expr(node.right, depth + 1),
                sql_text=text,
            )
        if isinstance(node, exp.Func):
            return self._function(node, depth, text)

        children = tuple(self.expr(c, depth + 1) for c in node.iter_expressions())
        return UnknownExpr(sql_text=text, children=children)

    def _function(self, node: exp.Func, depth: int, text: str) -> FunctionExpr:
        args: list[Expr] = []
        distinct = False
        for child in node.iter_expressions():
            if isinstance(child, exp.Distinct):
                distinct = True
                args.extend(self.expr(c, depth + 1) for c in child.expressions)
            else:
                args.append(self.expr(child, depth + 1))

        name = _function_name(node)
        return FunctionExpr(
            name=name,
            args=tuple(args),
            aggregate=isinstance(node, exp.AggFunc) or name in _ANONYMOUS_AGGREGATES,
            distinct=distinct,
            sql_text=text,
        )

    def _window(self, node: exp.Window, depth: int, text: str) -> FunctionExpr:
        order = node.args.get("order")
        frame = node.args.get("spec")
        spec = WindowSpec(
            partition_by=tuple(self._sql(p) for p in node.args.get("partition_by") or []),
            order_by=tuple(self._sql(o) for o in order.expressions) if order is not None else (),
            frame=self._sql(frame) if frame is not None else None,
        )
        inner = self.expr(node.this, depth + 1)
        if isinstance(inner, FunctionExpr):
            return dataclasses.replace(inner, over=spec, sql_text=text)
        return FunctionExpr(
            name=getattr(inner, "sql_text", "") or "WINDOW",
            args=(inner,),
            over=spec,
            sql_text=text,
        )

    def _case(self, node: exp.Case, depth: int, text: str) -> CaseExpr:
        branches = tuple(
            CaseBranch(
                condition=self.expr(branch.this, depth + 1),
                result=self.expr(branch.args.get("true"), depth + 1),
            )
            for branch in node.args.get("ifs") or []
        )
        operand = node.this
        default = node.args.get("default")
        return CaseExpr(
            branches=branches,
            operand=self.expr(operand, depth + 1) if operand is not None else None,
            default=self.expr(default, depth + 1) if default is not None else None,
            sql_text=text,
        )


# ---------------------------------------------------------------------------
# SqlGlotParser
# ---------------------------------------------------------------------------


class SqlGlotParser:
    """SQLGlot-backed :class:`SqlParser` implementation."""

    def parse_statement(
        self,
        sql: str,
        dialect: Dialect = Dialect.MYSQL,
        *,
        max_depth: int = 100,
    ) -> ParsedStatement:
        """Parse the first statement of *sql* into the toolkit model."""
        if not sql or not sql.strip():
            raise SqlParseError("Empty SQL statement")

        try:
            trees = sqlglot.parse(sql, read=_dialect_value(dialect))
        except ParseError as exc:
            description, line = _parse_error_details(exc)
            raise SqlParseError(f"Failed to parse SQL: {description}", line=line) from exc
        except SqlglotError as exc:
            raise SqlParseError(f"Failed to parse SQL: {exc}") from exc

        tree = next((t for t in trees if t is not None), None)
        if tree is None:
            raise SqlParseError("No SQL statement found")

        converter = _StatementConverter(dialect, max_depth)
        return ParsedStatement(statement=converter.statement(tree, sql), dialect=dialect)


# ---------------------------------------------------------------------------
# Composite Toolkit
# ---------------------------------------------------------------------------


class SqlGlotToolkit:
    """Composite :class:`SqlToolkit` backed by SQLGlot.

    This is the default implementation returned by :func:`get_sql_toolkit`.
    """

    def __init__(self) -> None:
        self._parser = SqlGlotParser()

    @property
    def parser(self) -> SqlGlotParser:
        return self._parser
