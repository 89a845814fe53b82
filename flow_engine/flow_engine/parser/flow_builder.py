"""Single-statement analysis: SQL text in, :class:`ParseResult` out.

:func:`analyze_statement` is the boundary of the flow engine and never
raises for bad input.  A statement the parser rejects comes back with
``error`` set; a construct the walk cannot handle degrades to a partial
graph; the hint, column-lineage and line-number passes are advisory and a
failure in one of them only omits its output.
"""

from __future__ import annotations

import logging

from flow_engine.models.flow import (
    ColumnLineage,
    FlowEdge,
    FlowNode,
    FlowNodeKind,
    OptimizationHint,
    ParseResult,
)
from flow_engine.parser.column_lineage import extract_column_lineage
from flow_engine.parser.hints import generate_hints
from flow_engine.parser.line_numbers import assign_line_numbers
from flow_engine.parser.metrics import apply_complexity, apply_graph_metrics
from flow_engine.parser.select_flow import build_query_flow
from flow_engine.parser.walk_context import FlowGraph, WalkContext
from flow_engine.parser.write_flow import build_write_flow
from flow_engine.sql_toolkit import (
    Dialect,
    ParsedStatement,
    SelectStatement,
    SetOperation,
    SqlParseError,
    get_sql_toolkit,
    statement_kind,
)
from flow_engine.telemetry.profiling import profile_operation

logger = logging.getLogger(__name__)


@profile_operation("flow.analyze")
def analyze_statement(
    sql: str,
    dialect: Dialect = Dialect.MYSQL,
    *,
    max_expression_depth: int = 12,
    max_details: int = 10,
) -> ParseResult:
    """Parse and analyse one SQL statement.

    Parameters
    ----------
    sql:
        Text of a single statement.  Use :func:`~flow_engine.parser.batch.process_batch`
        for multi-statement text.
    dialect:
        Dialect passed through to the parser.
    max_expression_depth:
        Bound on expression recursion during the walk and lineage passes.
    max_details:
        Maximum number of ``details`` strings per node.

    Returns
    -------
    ParseResult
        The flow graph and derived data, or a result with ``error`` set when
        the parser rejected *sql*.
    """
    try:
        parsed = get_sql_toolkit().parser.parse_statement(sql, dialect)
    except SqlParseError as exc:
        logger.debug("Parse failed (%s): %s", dialect.value, exc)
        return ParseResult(sql=sql, dialect=dialect.value, error=str(exc), error_line=exc.line)

    return build_flow(
        parsed, sql, max_expression_depth=max_expression_depth, max_details=max_details
    )


def build_flow(
    parsed: ParsedStatement,
    sql: str = "",
    *,
    max_expression_depth: int = 12,
    max_details: int = 10,
) -> ParseResult:
    """Build the :class:`ParseResult` of an already parsed statement."""
    statement = parsed.statement
    ctx = WalkContext(
        dialect=parsed.dialect,
        sql=sql,
        max_expression_depth=max_expression_depth,
        max_details=max_details,
    )
    graph = FlowGraph()

    try:
        if isinstance(statement, (SelectStatement, SetOperation)):
            build_query_flow(ctx, statement, graph)
        else:
            build_write_flow(ctx, statement, graph)
    except Exception as exc:
        logger.warning("Flow walk failed, keeping partial graph: %s", exc, exc_info=True)
        ctx.walk_errors.append(str(exc))
        _add_placeholder(ctx, graph)

    edges = _drop_dangling(graph.nodes, graph.edges)
    stats = ctx.stats
    apply_complexity(stats)
    apply_graph_metrics(stats, statement, graph.nodes, edges)

    hints = _hints(ctx, parsed, graph.nodes)
    lineage = _lineage(parsed, graph.nodes, max_expression_depth)
    if sql:
        try:
            assign_line_numbers(graph.nodes, sql)
        except Exception:
            logger.warning("Line-number assignment failed", exc_info=True)

    return ParseResult(
        sql=sql,
        dialect=parsed.dialect.value,
        statement_kind=statement_kind(statement),
        nodes=graph.nodes,
        edges=edges,
        stats=stats,
        hints=hints,
        column_lineage=lineage,
        table_usage_counts=dict(ctx.table_usage),
        function_usage=dict(ctx.function_usage),
    )


# ---------------------------------------------------------------------------
# Advisory passes
# ---------------------------------------------------------------------------


def _hints(
    ctx: WalkContext, parsed: ParsedStatement, nodes: list[FlowNode]
) -> list[OptimizationHint]:
    try:
        return generate_hints(ctx, parsed.statement, nodes)
    except Exception:
        logger.warning("Hint generation failed; omitting hints", exc_info=True)
        return []


def _lineage(
    parsed: ParsedStatement, nodes: list[FlowNode], max_depth: int
) -> list[ColumnLineage]:
    try:
        return extract_column_lineage(parsed.statement, nodes, max_depth)
    except Exception:
        logger.warning("Column lineage failed; omitting lineage", exc_info=True)
        return []


# ---------------------------------------------------------------------------
# Graph hygiene
# ---------------------------------------------------------------------------


def _drop_dangling(nodes: list[FlowNode], edges: list[FlowEdge]) -> list[FlowEdge]:
    """Return *edges* without those touching a node that was never emitted."""
    ids = {n.id for n in nodes}
    kept = [e for e in edges if e.source in ids and e.target in ids]
    if len(kept) != len(edges):
        logger.debug("Dropped %d dangling edge(s)", len(edges) - len(kept))
    return kept


def _add_placeholder(ctx: WalkContext, graph: FlowGraph) -> None:
    """Terminate a partial graph with an ``Unknown`` result node."""
    if any(n.kind == FlowNodeKind.RESULT for n in graph.nodes):
        return
    placeholder = FlowNode(
        id=ctx.next_id("result"),
        kind=FlowNodeKind.RESULT,
        label="Unknown",
        description="Statement could not be fully analysed",
        details=ctx.bounded(ctx.walk_errors),
        width=120,
    )
    last_id = graph.nodes[-1].id if graph.nodes else None
    graph.add(placeholder)
    ctx.connect(graph, last_id, placeholder.id)
