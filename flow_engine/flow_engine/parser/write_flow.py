"""Flow construction for INSERT, UPDATE, DELETE, MERGE, CREATE and DROP.

Every write statement ends in a single ``result`` node labelled by the
statement kind.  The table being written is a ``table`` node with
``access_mode=write`` that feeds the result, so data flows
``sources -> target -> result``.  Read-side inputs (``INSERT ... SELECT``,
``UPDATE ... FROM``, ``DELETE ... USING`` and subqueries in ``WHERE``) are
built with the SELECT machinery and wired in ahead of the target.
"""

from __future__ import annotations

import logging

from flow_engine.models.flow import AccessMode, FlowNode, FlowNodeKind, TableCategory
from flow_engine.parser.expressions import (
    expr_sql,
    find_subqueries,
    query_tables,
    split_conditions,
)
from flow_engine.parser.select_flow import build_query_flow, emit_join, emit_source
from flow_engine.parser.walk_context import FlowGraph, WalkContext
from flow_engine.sql_toolkit import (
    CreateStatement,
    DeleteStatement,
    DropStatement,
    Expr,
    FromSource,
    InsertStatement,
    Join,
    MergeStatement,
    Statement,
    TableSource,
    UnrecognizedStatement,
    UpdateStatement,
)

logger = logging.getLogger(__name__)


def build_write_flow(ctx: WalkContext, stmt: Statement, graph: FlowGraph) -> str:
    """Build the flow of a non-SELECT statement and return its result node id."""
    if isinstance(stmt, InsertStatement):
        return _insert(ctx, stmt, graph)
    if isinstance(stmt, UpdateStatement):
        return _update(ctx, stmt, graph)
    if isinstance(stmt, DeleteStatement):
        return _delete(ctx, stmt, graph)
    if isinstance(stmt, MergeStatement):
        return _merge(ctx, stmt, graph)
    if isinstance(stmt, CreateStatement):
        return _create(ctx, stmt, graph)
    if isinstance(stmt, DropStatement):
        target_id = _target(ctx, stmt.target, graph, f"Dropped {stmt.object_kind.lower()}")
        return _result(ctx, graph, f"DROP {stmt.object_kind.upper()}", target_id)
    if isinstance(stmt, UnrecognizedStatement):
        return _result(
            ctx, graph, stmt.keyword.upper() or "STATEMENT", None, description="Statement"
        )
    raise TypeError(f"not a write statement: {type(stmt).__name__}")


# ---------------------------------------------------------------------------
# Statement kinds
# ---------------------------------------------------------------------------


def _insert(ctx: WalkContext, stmt: InsertStatement, graph: FlowGraph) -> str:
    upstream_id = None
    if stmt.query is not None:
        upstream_id = build_query_flow(ctx, stmt.query, graph, emit_result=False)

    details = [f"Columns: {', '.join(stmt.columns)}"] if stmt.columns else []
    if stmt.values_rows:
        details.append(f"{stmt.values_rows} row(s) of VALUES")
    target_id = _target(
        ctx,
        stmt.target,
        graph,
        "Overwrite target table" if stmt.overwrite else "Insert target table",
        details=details,
    )
    ctx.connect(graph, upstream_id, target_id, clause_type="insert")
    return _result(ctx, graph, "INSERT", target_id)


def _update(ctx: WalkContext, stmt: UpdateStatement, graph: FlowGraph) -> str:
    sources = [stmt.source] if stmt.source is not None else []
    upstream_id = _source_chain(ctx, sources, stmt.joins, graph)
    upstream_id = _where(ctx, stmt.where, graph, upstream_id)

    details = [f"SET {a.column} = {expr_sql(a.value)}" for a in stmt.assignments]
    target_id = _target(ctx, stmt.target, graph, "Update target table", details=details)
    ctx.connect(graph, upstream_id, target_id, clause_type="update")
    return _result(ctx, graph, "UPDATE", target_id)


def _delete(ctx: WalkContext, stmt: DeleteStatement, graph: FlowGraph) -> str:
    sources = list(stmt.using)
    joins = tuple(Join(source=s, kind="CROSS JOIN", implicit=True) for s in sources[1:])
    upstream_id = _source_chain(ctx, sources[:1], joins, graph)
    upstream_id = _where(ctx, stmt.where, graph, upstream_id)

    target_id = _target(ctx, stmt.target, graph, "Delete target table")
    ctx.connect(graph, upstream_id, target_id, clause_type="delete")
    return _result(ctx, graph, "DELETE", target_id)


def _merge(ctx: WalkContext, stmt: MergeStatement, graph: FlowGraph) -> str:
    source_id = None
    if stmt.source is not None:
        source_id = emit_source(ctx, stmt.source, graph)
    target_id = _target(ctx, stmt.target, graph, "Merge target table")
    condition = expr_sql(stmt.condition) if stmt.condition is not None else None
    ctx.connect(graph, source_id, target_id, clause_type="on", sql_clause=condition)
    return _result(ctx, graph, "MERGE", target_id)


def _create(ctx: WalkContext, stmt: CreateStatement, graph: FlowGraph) -> str:
    kind = stmt.object_kind.upper() or "TABLE"
    upstream_id = None
    if stmt.query is not None:
        upstream_id = build_query_flow(ctx, stmt.query, graph, emit_result=False)

    details = [f"{c.name} {c.data_type}".strip() for c in stmt.columns]
    target_id = _target(
        ctx, stmt.target, graph, f"Created {kind.lower()}", details=ctx.bounded(details)
    )
    ctx.connect(graph, upstream_id, target_id, clause_type="create")
    return _result(ctx, graph, f"CREATE {kind}", target_id)


# ---------------------------------------------------------------------------
# Shared pieces
# ---------------------------------------------------------------------------


def _source_chain(
    ctx: WalkContext,
    sources: list[FromSource],
    joins: tuple[Join, ...],
    graph: FlowGraph,
) -> str | None:
    """Emit read-side sources and their join chain; return the chain output."""
    if not sources:
        return None
    previous_id: str | None = emit_source(ctx, sources[0], graph)
    for join in joins:
        right_id = emit_source(ctx, join.source, graph, as_join=not join.implicit)
        previous_id = emit_join(ctx, join, graph, previous_id, right_id)
    return previous_id


def _where(
    ctx: WalkContext, where: Expr | None, graph: FlowGraph, upstream_id: str | None
) -> str | None:
    """Emit the DML filter node and any tables its subqueries read."""
    if where is None:
        return upstream_id

    conditions = split_conditions(where, ctx.max_expression_depth)
    ctx.stats.conditions += len(conditions)
    filter_id = graph.add(
        FlowNode(
            id=ctx.next_id("filter"),
            kind=FlowNodeKind.FILTER,
            label="WHERE",
            description="DML filter condition",
            details=ctx.bounded(conditions),
        )
    )
    ctx.connect(
        graph, upstream_id, filter_id, clause_type="where", sql_clause=" AND ".join(conditions)
    )

    for sub in find_subqueries(where, ctx.max_expression_depth):
        ctx.stats.subqueries += 1
        for table in query_tables(sub.query):
            ctx.stats.tables += 1
            ctx.track_table(table)
            table_id = graph.add(
                FlowNode(
                    id=ctx.next_id("table"),
                    kind=FlowNodeKind.TABLE,
                    label=table,
                    description="Subquery source",
                    table_category=TableCategory.PHYSICAL,
                    access_mode=AccessMode.READ,
                )
            )
            ctx.connect(
                graph, table_id, filter_id, clause_type="flow", sql_clause="Subquery source"
            )
    return filter_id


def _target(
    ctx: WalkContext,
    target: TableSource,
    graph: FlowGraph,
    description: str,
    *,
    details: list[str] | None = None,
) -> str:
    ctx.stats.tables += 1
    ctx.write_targets += 1
    ctx.track_table(target.display_name)
    return graph.add(
        FlowNode(
            id=ctx.next_id("table"),
            kind=FlowNodeKind.TABLE,
            label=target.display_name,
            description=description,
            details=ctx.bounded(details or []),
            table_category=TableCategory.PHYSICAL,
            access_mode=AccessMode.WRITE,
        )
    )


def _result(
    ctx: WalkContext,
    graph: FlowGraph,
    label: str,
    upstream_id: str | None,
    *,
    description: str | None = None,
) -> str:
    result_id = graph.add(
        FlowNode(
            id=ctx.next_id("result"),
            kind=FlowNodeKind.RESULT,
            label=label,
            description=description or f"{label} statement",
            width=120,
        )
    )
    ctx.connect(graph, upstream_id, result_id)
    return result_id
