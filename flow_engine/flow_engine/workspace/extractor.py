"""Definition and reference extraction for workspace files.

Each file is split into statements and every statement is parsed on its
own.  ``CREATE TABLE`` / ``CREATE VIEW`` produce :class:`SchemaDefinition`
entries; every table a statement reads or writes produces a
:class:`TableReference` tagged with how it is used.  Both carry the index of
their statement so the lineage builder can scope edges per statement.

Names bound by a ``WITH`` clause are never reported as table references.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Mapping

from flow_engine.models.workspace import (
    ColumnDefinition,
    ColumnFlow,
    FileAnalysis,
    ReferenceKind,
    SchemaDefinition,
    SchemaObjectKind,
    TableReference,
    WorkspaceIndex,
)
from flow_engine.parser.batch import locate_statements
from flow_engine.parser.column_lineage import alias_map, output_block
from flow_engine.parser.expressions import find_subqueries, walk_expr
from flow_engine.parser.splitter import split_statements
from flow_engine.sql_toolkit import (
    ColumnExpr,
    CreateStatement,
    DeleteStatement,
    Dialect,
    Expr,
    FromSource,
    InsertStatement,
    MergeStatement,
    QueryStatement,
    SelectStatement,
    SetOperation,
    SqlParseError,
    Statement,
    SubquerySource,
    TableSource,
    UpdateStatement,
    get_sql_toolkit,
)

logger = logging.getLogger(__name__)

# Nested query depth beyond which references are no longer collected.
_MAX_QUERY_DEPTH = 32


def content_hash(sql: str) -> str:
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Reference collection
# ---------------------------------------------------------------------------


class _StatementScan:
    """Collects the references of one statement."""

    def __init__(self, file_path: str, statement_index: int, text: str, start_line: int) -> None:
        self.file_path = file_path
        self.statement_index = statement_index
        self.lines = text.split("\n")
        self.start_line = start_line
        self.references: list[TableReference] = []
        self._seen: set[tuple[str, ReferenceKind]] = set()

    def line_of(self, name: str) -> int:
        """Absolute line of the first mention of *name* in the statement."""
        pattern = re.compile(r"\b" + re.escape(name) + r"\b", re.IGNORECASE)
        for offset, line in enumerate(self.lines):
            if pattern.search(line):
                return self.start_line + offset
        return self.start_line

    def add(
        self,
        table: TableSource,
        kind: ReferenceKind,
        context: str,
        scope: frozenset[str] = frozenset(),
    ) -> None:
        if table.schema is None and table.name.lower() in scope:
            return
        reference = TableReference(
            table_name=table.name,
            schema_name=table.schema,
            reference_kind=kind,
            file_path=self.file_path,
            line_number=self.line_of(table.name),
            statement_index=self.statement_index,
            alias=table.alias,
            context=context,
        )
        key = (reference.qualified_key, kind)
        if key not in self._seen:
            self._seen.add(key)
            self.references.append(reference)

    # -- queries ------------------------------------------------------------

    def query(
        self,
        query: QueryStatement,
        scope: frozenset[str] = frozenset(),
        *,
        nested: bool = False,
        depth: int = 0,
    ) -> None:
        if depth > _MAX_QUERY_DEPTH:
            logger.debug("Reference scan depth limit reached in %s", self.file_path)
            return
        scope = scope | {c.name.lower() for c in query.ctes}
        for cte in query.ctes:
            self.query(cte.query, scope, nested=nested, depth=depth + 1)
        if isinstance(query, SetOperation):
            self.query(query.left, scope, nested=nested, depth=depth + 1)
            self.query(query.right, scope, nested=nested, depth=depth + 1)
            return
        self._select(query, scope, nested=nested, depth=depth)

    def _select(
        self, block: SelectStatement, scope: frozenset[str], *, nested: bool, depth: int
    ) -> None:
        if block.source is not None:
            kind = ReferenceKind.SUBQUERY if nested else ReferenceKind.SELECT
            self.source(block.source, kind, "FROM", scope, depth=depth)
        for join in block.joins:
            if nested:
                kind = ReferenceKind.SUBQUERY
            else:
                kind = ReferenceKind.SELECT if join.implicit else ReferenceKind.JOIN
            self.source(join.source, kind, "FROM" if join.implicit else join.kind, scope, depth=depth)
            self.expression(join.condition, scope, depth=depth)
        for expr in (block.where, block.having, *(item.expr for item in block.items)):
            self.expression(expr, scope, depth=depth)

    def source(
        self,
        source: FromSource,
        kind: ReferenceKind,
        context: str,
        scope: frozenset[str],
        *,
        depth: int = 0,
    ) -> None:
        if isinstance(source, TableSource):
            self.add(source, kind, context, scope)
        elif isinstance(source, SubquerySource):
            self.query(source.query, scope, nested=True, depth=depth + 1)

    def expression(self, expr: Expr | None, scope: frozenset[str], *, depth: int = 0) -> None:
        for sub in find_subqueries(expr):
            self.query(sub.query, scope, nested=True, depth=depth + 1)

    # -- statements ---------------------------------------------------------

    def statement(self, stmt: Statement) -> None:
        if isinstance(stmt, (SelectStatement, SetOperation)):
            self.query(stmt)
        elif isinstance(stmt, InsertStatement):
            self.add(stmt.target, ReferenceKind.INSERT, "INSERT INTO")
            if stmt.query is not None:
                self.query(stmt.query)
        elif isinstance(stmt, UpdateStatement):
            self.add(stmt.target, ReferenceKind.UPDATE, "UPDATE")
            if stmt.source is not None:
                self.source(stmt.source, ReferenceKind.SELECT, "FROM", frozenset())
            for join in stmt.joins:
                self.source(join.source, ReferenceKind.JOIN, join.kind, frozenset())
            for assignment in stmt.assignments:
                self.expression(assignment.value, frozenset())
            self.expression(stmt.where, frozenset())
        elif isinstance(stmt, DeleteStatement):
            self.add(stmt.target, ReferenceKind.DELETE, "DELETE FROM")
            for source in stmt.using:
                self.source(source, ReferenceKind.SELECT, "USING", frozenset())
            self.expression(stmt.where, frozenset())
        elif isinstance(stmt, MergeStatement):
            self.add(stmt.target, ReferenceKind.MERGE, "MERGE INTO")
            if stmt.source is not None:
                self.source(stmt.source, ReferenceKind.SELECT, "USING", frozenset())
        elif isinstance(stmt, CreateStatement) and stmt.query is not None:
            self.query(stmt.query)


# ---------------------------------------------------------------------------
# Definitions and column flows
# ---------------------------------------------------------------------------


def _definition(
    stmt: CreateStatement, scan: _StatementScan, text: str
) -> SchemaDefinition | None:
    if stmt.object_kind not in ("TABLE", "VIEW"):
        return None
    columns = [
        ColumnDefinition(
            name=c.name, data_type=c.data_type, nullable=c.nullable, primary_key=c.primary_key
        )
        for c in stmt.columns
    ]
    if not columns and stmt.query is not None:
        block = output_block(stmt)
        if block is not None:
            columns = [
                ColumnDefinition(name=item.output_name)
                for item in block.items
                if not item.output_name.endswith("*")
            ]
    return SchemaDefinition(
        name=stmt.target.name,
        schema_name=stmt.target.schema,
        kind=SchemaObjectKind.VIEW if stmt.object_kind == "VIEW" else SchemaObjectKind.TABLE,
        columns=columns,
        file_path=scan.file_path,
        line_number=scan.line_of(stmt.target.name),
        sql=text,
        statement_index=scan.statement_index,
    )


def column_flows(stmt: Statement, statement_index: int = 0) -> list[ColumnFlow]:
    """Return base-column → target-column flows of an INSERT or CTAS."""
    if isinstance(stmt, InsertStatement):
        target, declared = stmt.target, list(stmt.columns)
    elif isinstance(stmt, CreateStatement) and stmt.query is not None:
        target, declared = stmt.target, [c.name for c in stmt.columns]
    else:
        return []
    block = output_block(stmt)
    if block is None:
        return []

    aliases = alias_map(block)
    physical = [s for s in block.from_sources if isinstance(s, TableSource)]
    flows: list[ColumnFlow] = []
    for position, item in enumerate(block.items):
        target_column = declared[position] if position < len(declared) else item.output_name
        for expr in walk_expr(item.expr):
            if not isinstance(expr, ColumnExpr):
                continue
            if expr.table:
                source_table = aliases.get(expr.table.lower(), expr.table)
            elif len(physical) == 1:
                source_table = physical[0].display_name
            else:
                continue
            flows.append(
                ColumnFlow(
                    source_table=source_table,
                    source_column=expr.name,
                    target_table=target.display_name,
                    target_column=target_column,
                    statement_index=statement_index,
                    expression=getattr(item.expr, "sql_text", None) or None,
                )
            )
    return flows


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def extract_file(file_path: str, sql: str, dialect: Dialect = Dialect.MYSQL) -> FileAnalysis:
    """Extract definitions, references and column flows from one file.

    Statements that fail to parse are skipped and their messages recorded
    in ``parse_errors``; the rest of the file still contributes.
    """
    statements = split_statements(sql)
    ranges = locate_statements(sql, statements)
    parser = get_sql_toolkit().parser
    analysis = FileAnalysis(
        file_path=file_path, statement_count=len(statements), content_hash=content_hash(sql)
    )

    for index, (text, line_range) in enumerate(zip(statements, ranges)):
        try:
            parsed = parser.parse_statement(text, dialect)
        except SqlParseError as exc:
            logger.debug("Skipping statement %d of %s: %s", index, file_path, exc)
            analysis.parse_errors.append(f"statement {index + 1}: {exc}")
            continue

        scan = _StatementScan(file_path, index, text, line_range.start_line)
        stmt = parsed.statement
        scan.statement(stmt)
        analysis.references.extend(scan.references)
        if isinstance(stmt, CreateStatement):
            definition = _definition(stmt, scan, text)
            if definition is not None:
                analysis.definitions.append(definition)
        analysis.column_flows.extend(column_flows(stmt, index))

    return analysis


def build_workspace_index(
    files: Mapping[str, str], dialect: Dialect = Dialect.MYSQL
) -> WorkspaceIndex:
    """Extract every file of *files* (path → SQL text) into a :class:`WorkspaceIndex`."""
    index = WorkspaceIndex()
    for path, sql in files.items():
        index.add(extract_file(path, sql, dialect))
    logger.debug("Indexed %d file(s)", len(index.files))
    return index
