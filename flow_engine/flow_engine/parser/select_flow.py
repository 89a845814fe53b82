"""Flow construction for SELECT statements and set operations.

The main chain of a SELECT block is built clause by clause in evaluation
order::

    CTEs -> tables -> joins -> WHERE -> GROUP BY -> HAVING -> AGGREGATE
         -> CASE -> WINDOW -> SELECT -> ORDER BY -> LIMIT -> Result

Every stage links only from the current previous-output id, so an omitted
clause is skipped without leaving a dangling edge.  Joins form a left-deep
chain: the running output is the left input and the joined table node is the
right input.  Stats counters are incremented where each construct is emitted.
"""

from __future__ import annotations

import logging

from flow_engine.models.flow import (
    AggregateFunctionDetail,
    CaseBranchDetail,
    CaseDetail,
    FlowEdge,
    FlowNode,
    FlowNodeKind,
    FunctionCategory,
    TableCategory,
    WindowFunctionDetail,
)
from flow_engine.parser.expressions import (
    expr_sql,
    find_aggregates,
    find_cases,
    find_functions,
    find_subqueries,
    find_windows,
    query_tables,
    select_blocks,
    source_label,
    split_conditions,
    walk_expr,
)
from flow_engine.parser.walk_context import FlowGraph, WalkContext
from flow_engine.sql_toolkit import (
    ColumnExpr,
    CteDefinition,
    FromSource,
    FunctionSource,
    Join,
    OrderItem,
    QueryStatement,
    SelectItem,
    SelectStatement,
    SetOperation,
    StarExpr,
    SubquerySource,
    TableSource,
)

logger = logging.getLogger(__name__)

# Above this many SELECT items the select node summarises instead of listing.
_MAX_LISTED_COLUMNS = 5


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def build_query_flow(
    ctx: WalkContext,
    query: QueryStatement,
    graph: FlowGraph,
    cte_names: frozenset[str] = frozenset(),
    *,
    emit_result: bool = True,
) -> str | None:
    """Build the flow of a SELECT or set operation; return its output node id.

    With ``emit_result=False`` a plain SELECT ends at its last clause node so
    a write statement can take over as the terminal.
    """
    if isinstance(query, SetOperation):
        return _build_set_operation(ctx, query, graph, cte_names)
    return build_select_flow(ctx, query, graph, cte_names, emit_result=emit_result)


def build_select_flow(
    ctx: WalkContext,
    stmt: SelectStatement,
    graph: FlowGraph,
    cte_names: frozenset[str] = frozenset(),
    *,
    emit_result: bool = True,
) -> str | None:
    """Build the main chain of one SELECT block; return its last node id."""
    cte_ids = emit_ctes(ctx, stmt.ctes, graph)
    scope = cte_names | frozenset(cte_ids)

    # Tables first, so join nodes can reference their right-hand inputs.
    source_ids: list[str] = []
    for position, source in enumerate(stmt.from_sources):
        as_join = position > 0 and not stmt.joins[position - 1].implicit
        source_ids.append(emit_source(ctx, source, graph, scope, as_join=as_join))
    _wire_ctes(ctx, graph, cte_ids, source_ids)

    previous_id = source_ids[0] if source_ids else None
    for join, right_id in zip(stmt.joins, source_ids[1:]):
        previous_id = emit_join(ctx, join, graph, previous_id, right_id)

    for expr in (stmt.where, stmt.having, *(item.expr for item in stmt.items)):
        ctx.stats.subqueries += len(find_subqueries(expr, ctx.max_expression_depth))

    if stmt.where is not None:
        conditions = split_conditions(stmt.where, ctx.max_expression_depth)
        ctx.stats.conditions += len(conditions)
        where_id = graph.add(
            FlowNode(
                id=ctx.next_id("filter"),
                kind=FlowNodeKind.FILTER,
                label="WHERE",
                description="Filter rows",
                details=ctx.bounded(conditions),
            )
        )
        ctx.connect(
            graph, previous_id, where_id, clause_type="where", sql_clause=" AND ".join(conditions)
        )
        previous_id = where_id

    if stmt.group_by:
        ctx.stats.aggregations += 1
        group_id = graph.add(
            FlowNode(
                id=ctx.next_id("agg"),
                kind=FlowNodeKind.AGGREGATE,
                label="GROUP BY",
                description="Aggregate rows",
                details=[f"Columns: {', '.join(expr_sql(g) for g in stmt.group_by)}"],
            )
        )
        ctx.connect(graph, previous_id, group_id)
        previous_id = group_id

    if stmt.having is not None:
        conditions = split_conditions(stmt.having, ctx.max_expression_depth)
        ctx.stats.conditions += len(conditions)
        having_id = graph.add(
            FlowNode(
                id=ctx.next_id("filter"),
                kind=FlowNodeKind.FILTER,
                label="HAVING",
                description="Filter groups",
                details=ctx.bounded(conditions),
            )
        )
        ctx.connect(graph, previous_id, having_id, clause_type="having")
        previous_id = having_id

    aggregates = _aggregate_details(ctx, stmt.items)
    if aggregates:
        # A scalar aggregate with no GROUP BY is still an aggregation step.
        if not stmt.group_by:
            ctx.stats.aggregations += 1
        aggregate_id = graph.add(
            FlowNode(
                id=ctx.next_id("aggregate"),
                kind=FlowNodeKind.AGGREGATE,
                label="AGGREGATE",
                description=_plural(len(aggregates), "aggregate function"),
                aggregate_details=aggregates,
                width=220,
                height=min(50 + 28 * len(aggregates), 180),
            )
        )
        ctx.connect(graph, previous_id, aggregate_id)
        previous_id = aggregate_id

    cases = _case_details(ctx, stmt.items)
    if cases:
        case_id = graph.add(
            FlowNode(
                id=ctx.next_id("case"),
                kind=FlowNodeKind.CASE,
                label="CASE",
                description=_plural(len(cases), "CASE statement"),
                case_details=cases,
                width=220,
                height=min(50 + 35 * len(cases), 200),
            )
        )
        ctx.connect(graph, previous_id, case_id)
        previous_id = case_id

    windows = _window_details(ctx, stmt.items)
    if windows:
        ctx.stats.window_functions += len(windows)
        window_id = graph.add(
            FlowNode(
                id=ctx.next_id("window"),
                kind=FlowNodeKind.WINDOW,
                label="WINDOW",
                description=_plural(len(windows), "window function"),
                window_details=windows,
                width=220,
                height=min(50 + 28 * len(windows), 180),
            )
        )
        ctx.connect(graph, previous_id, window_id)
        previous_id = window_id

    _track_scalar_functions(ctx, stmt)

    columns = [item.output_name for item in stmt.items]
    if any(isinstance(item.expr, StarExpr) for item in stmt.items):
        ctx.has_select_star = True
    select_id = graph.add(
        FlowNode(
            id=ctx.next_id("select"),
            kind=FlowNodeKind.SELECT,
            label="SELECT",
            description="Project distinct columns" if stmt.distinct else "Project columns",
            details=columns
            if len(columns) <= _MAX_LISTED_COLUMNS
            else [f"{len(columns)} columns"],
            columns=columns,
        )
    )
    ctx.connect(graph, previous_id, select_id)
    _emit_subquery_sources(ctx, stmt, graph, scope, select_id)
    previous_id = select_id

    previous_id = _emit_order_and_limit(ctx, stmt.order_by, stmt.limit, graph, previous_id)

    if not emit_result:
        return previous_id

    result_id = graph.add(
        FlowNode(
            id=ctx.next_id("result"),
            kind=FlowNodeKind.RESULT,
            label="Result",
            description="Query output",
            width=120,
        )
    )
    ctx.connect(graph, previous_id, result_id)
    return result_id


def _build_set_operation(
    ctx: WalkContext,
    op: SetOperation,
    graph: FlowGraph,
    cte_names: frozenset[str],
) -> str | None:
    cte_ids = emit_ctes(ctx, op.ctes, graph)
    scope = cte_names | frozenset(cte_ids)
    first_new = len(graph.nodes)

    left_id = build_query_flow(ctx, op.left, graph, scope)
    ctx.stats.unions += 1
    right_id = build_query_flow(ctx, op.right, graph, scope)

    branch_tables = [
        n.id for n in graph.nodes[first_new:] if n.kind == FlowNodeKind.TABLE
    ]
    _wire_ctes(ctx, graph, cte_ids, branch_tables)

    details: list[str] = []
    left_tables = query_tables(op.left, scope)
    right_tables = query_tables(op.right, scope)
    if left_tables:
        details.append(f"Left: {', '.join(left_tables)}")
    if right_tables:
        details.append(f"Right: {', '.join(right_tables)}")

    union_id = graph.add(
        FlowNode(
            id=ctx.next_id("union"),
            kind=FlowNodeKind.UNION,
            label=op.operator,
            description=f"{op.operator} operation",
            details=details,
        )
    )
    ctx.connect(graph, left_id, union_id)
    ctx.connect(graph, right_id, union_id)
    return _emit_order_and_limit(ctx, op.order_by, op.limit, graph, union_id)


# ---------------------------------------------------------------------------
# Sources and joins
# ---------------------------------------------------------------------------


def emit_source(
    ctx: WalkContext,
    source: FromSource,
    graph: FlowGraph,
    scope: frozenset[str] = frozenset(),
    *,
    as_join: bool = False,
) -> str:
    """Emit the node for one FROM item and return its id."""
    if isinstance(source, SubquerySource):
        ctx.stats.subqueries += 1
        node_id = ctx.next_id("subquery")
        children = build_mini_flow(ctx, source.query, scope)
        label = source.alias or "subquery"
        return graph.add(
            FlowNode(
                id=node_id,
                kind=FlowNodeKind.SUBQUERY,
                label=label,
                description=f"Derived table with {len(children.nodes)} operations"
                if children.nodes
                else "Derived table",
                children=children.nodes or None,
                child_edges=children.edges or None,
                expanded=True,
                table_category=TableCategory.DERIVED,
                width=220 if children.nodes else 160,
                height=55 + 28 * len(children.nodes) if children.nodes else 60,
            )
        )

    if isinstance(source, FunctionSource):
        ctx.track_function(source.name, FunctionCategory.TVF)
        ctx.stats.tables += 1
        label = source_label(source)
        ctx.track_table(label)
        details = [f"Function: {source.name}"]
        if source.alias and source.alias != label:
            details.append(f"Alias: {source.alias}")
        return graph.add(
            FlowNode(
                id=ctx.next_id("table"),
                kind=FlowNodeKind.TABLE,
                label=label,
                description=f"Joined table function ({source.name})"
                if as_join
                else f"Table function source ({source.name})",
                details=details,
                table_category=TableCategory.TABLE_FUNCTION,
            )
        )

    if isinstance(source, TableSource):
        ctx.stats.tables += 1
        ctx.track_table(source.display_name)
        is_cte = source.schema is None and source.name.lower() in scope
        if is_cte:
            description = "Joined CTE reference" if as_join else "CTE reference"
        else:
            description = "Joined table" if as_join else "Source table"
        return graph.add(
            FlowNode(
                id=ctx.next_id("table"),
                kind=FlowNodeKind.TABLE,
                label=source.display_name,
                description=description,
                details=[f"Alias: {source.alias}"] if source.alias else [],
                table_category=TableCategory.CTE_REFERENCE if is_cte else TableCategory.PHYSICAL,
            )
        )

    logger.debug("Unrecognized FROM item rendered as placeholder: %s", source)
    return graph.add(
        FlowNode(
            id=ctx.next_id("table"),
            kind=FlowNodeKind.TABLE,
            label=source_label(source)[:40],
            description="Unrecognized source",
            table_category=TableCategory.UNKNOWN,
        )
    )


def emit_join(
    ctx: WalkContext,
    join: Join,
    graph: FlowGraph,
    left_id: str | None,
    right_id: str,
) -> str:
    """Emit a join node fed by the running output and the joined table."""
    label = source_label(join.source)
    if join.implicit:
        join_id = graph.add(
            FlowNode(
                id=ctx.next_id("join"),
                kind=FlowNodeKind.JOIN,
                label="CROSS JOIN",
                description=f"Implicit join with {label}",
                details=[label],
            )
        )
        ctx.connect(graph, left_id, join_id, clause_type="join")
        ctx.connect(graph, right_id, join_id, clause_type="on")
        return join_id

    ctx.stats.joins += 1
    if join.condition is not None:
        condition = expr_sql(join.condition)
    elif join.using:
        condition = f"USING ({', '.join(join.using)})"
    else:
        condition = ""
    join_id = graph.add(
        FlowNode(
            id=ctx.next_id("join"),
            kind=FlowNodeKind.JOIN,
            label=join.kind,
            description=f"Join with {label}",
            details=[d for d in (condition, label) if d],
        )
    )
    ctx.connect(graph, left_id, join_id, clause_type="join", sql_clause=condition or None)
    ctx.connect(graph, right_id, join_id, clause_type="on", sql_clause=condition or None)
    return join_id


# ---------------------------------------------------------------------------
# CTEs and nested containers
# ---------------------------------------------------------------------------


def emit_ctes(
    ctx: WalkContext, ctes: tuple[CteDefinition, ...], graph: FlowGraph
) -> dict[str, str]:
    """Emit one container node per CTE; return lower-cased name → node id."""
    cte_ids: dict[str, str] = {}
    for cte in ctes:
        ctx.stats.ctes += 1
        cte_id = ctx.next_id("cte")
        children = build_mini_flow(ctx, cte.query, frozenset(cte_ids))
        prefix = "WITH RECURSIVE" if cte.recursive else "WITH"
        graph.add(
            FlowNode(
                id=cte_id,
                kind=FlowNodeKind.CTE,
                label=f"{prefix} {cte.name}",
                description="Recursive Common Table Expression"
                if cte.recursive
                else "Common Table Expression",
                details=[f"Columns: {', '.join(cte.columns)}"] if cte.columns else [],
                children=children.nodes or None,
                child_edges=children.edges or None,
                expanded=False,
                width=220 if children.nodes else 200,
                height=80 + 35 * len(children.nodes) if children.nodes else 60,
            )
        )
        cte_ids[cte.name.lower()] = cte_id
    return cte_ids


def _wire_ctes(
    ctx: WalkContext, graph: FlowGraph, cte_ids: dict[str, str], table_ids: list[str]
) -> None:
    """Connect each CTE to the table nodes that read it.

    A CTE no table reads is connected to the first table so it is not left
    floating.
    """
    if not cte_ids:
        return
    nodes = {n.id: n for n in graph.nodes if n.id in table_ids}
    for name, cte_id in cte_ids.items():
        readers = [
            table_id
            for table_id in table_ids
            if table_id in nodes
            and nodes[table_id].table_category == TableCategory.CTE_REFERENCE
            and nodes[table_id].label.lower() == name
        ]
        if not readers and table_ids:
            readers = [table_ids[0]]
        for reader in readers:
            ctx.connect(graph, cte_id, reader, clause_type="cte")


def build_mini_flow(
    ctx: WalkContext, query: QueryStatement, scope: frozenset[str] = frozenset()
) -> FlowGraph:
    """Build the miniature sub-graph shown inside a CTE or derived table.

    Only table, join, filter, aggregate and sort nodes appear.  Derived
    tables nested inside are shown as a single table node and not expanded
    further.
    """
    children = FlowGraph()
    for block in select_blocks(query):
        previous_id: str | None = None
        items = [(block.source, None)] if block.source is not None else []
        items.extend((j.source, j) for j in block.joins)

        for source, join in items:
            label = source_label(source)
            if isinstance(source, SubquerySource):
                ctx.stats.subqueries += 1
                node = FlowNode(
                    id=ctx.next_id("child_table"),
                    kind=FlowNodeKind.TABLE,
                    label=label,
                    description="Nested derived table",
                    table_category=TableCategory.DERIVED,
                    width=100,
                    height=32,
                    depth=1,
                )
            elif join is not None and not join.implicit:
                if isinstance(source, TableSource):
                    ctx.track_table(source.display_name)
                node = FlowNode(
                    id=ctx.next_id("child_join"),
                    kind=FlowNodeKind.JOIN,
                    label=f"{join.kind} {label}",
                    description="Join",
                    width=120,
                    height=32,
                    depth=1,
                )
            else:
                if isinstance(source, TableSource):
                    ctx.track_table(source.display_name)
                is_cte = isinstance(source, TableSource) and source.name.lower() in scope
                node = FlowNode(
                    id=ctx.next_id("child_table"),
                    kind=FlowNodeKind.TABLE,
                    label=label,
                    description="Table",
                    table_category=TableCategory.CTE_REFERENCE
                    if is_cte
                    else TableCategory.PHYSICAL,
                    width=100,
                    height=32,
                    depth=1,
                )
            children.add(node)
            _connect_child(ctx, children, previous_id, node.id)
            previous_id = node.id

        for expr in (block.where, *(item.expr for item in block.items)):
            ctx.stats.subqueries += len(find_subqueries(expr, ctx.max_expression_depth))

        if block.where is not None:
            previous_id = _add_child(
                ctx, children, previous_id, "child_where", FlowNodeKind.FILTER, "WHERE", "Filter", 80
            )
        if block.group_by:
            previous_id = _add_child(
                ctx,
                children,
                previous_id,
                "child_group",
                FlowNodeKind.AGGREGATE,
                "GROUP BY",
                "Aggregate",
                90,
            )
        if block.order_by:
            _add_child(
                ctx, children, previous_id, "child_sort", FlowNodeKind.SORT, "ORDER BY", "Sort", 90
            )
    return children


def _add_child(
    ctx: WalkContext,
    children: FlowGraph,
    previous_id: str | None,
    prefix: str,
    kind: FlowNodeKind,
    label: str,
    description: str,
    width: int,
) -> str:
    node_id = children.add(
        FlowNode(
            id=ctx.next_id(prefix),
            kind=kind,
            label=label,
            description=description,
            width=width,
            height=32,
            depth=1,
        )
    )
    _connect_child(ctx, children, previous_id, node_id)
    return node_id


def _connect_child(
    ctx: WalkContext, children: FlowGraph, source: str | None, target: str
) -> None:
    if source is None:
        return
    children.edges.append(FlowEdge(id=ctx.next_id("ce"), source=source, target=target))


# ---------------------------------------------------------------------------
# Clause helpers
# ---------------------------------------------------------------------------


def _emit_order_and_limit(
    ctx: WalkContext,
    order_by: tuple[OrderItem, ...],
    limit: str | None,
    graph: FlowGraph,
    previous_id: str | None,
) -> str | None:
    if order_by:
        sort_columns = ", ".join(
            f"{expr_sql(o.expr)} {'DESC' if o.descending else 'ASC'}" for o in order_by
        )
        sort_id = graph.add(
            FlowNode(
                id=ctx.next_id("sort"),
                kind=FlowNodeKind.SORT,
                label="ORDER BY",
                description="Sort results",
                details=[sort_columns],
            )
        )
        ctx.connect(graph, previous_id, sort_id)
        previous_id = sort_id

    if limit is not None:
        ctx.has_limit = True
        limit_id = graph.add(
            FlowNode(
                id=ctx.next_id("limit"),
                kind=FlowNodeKind.LIMIT,
                label="LIMIT",
                description="Limit rows",
                details=[f"{limit} rows"],
                width=120,
            )
        )
        ctx.connect(graph, previous_id, limit_id)
        previous_id = limit_id
    return previous_id


def _emit_subquery_sources(
    ctx: WalkContext,
    stmt: SelectStatement,
    graph: FlowGraph,
    scope: frozenset[str],
    select_id: str,
) -> None:
    """Add table nodes for tables read only by expression subqueries."""
    seen = {n.label.lower() for n in graph.nodes if n.kind == FlowNodeKind.TABLE}
    for expr in (stmt.where, stmt.having, *(item.expr for item in stmt.items)):
        for sub in find_subqueries(expr, ctx.max_expression_depth):
            for table in query_tables(sub.query, scope):
                key = table.lower()
                if key in seen:
                    continue
                seen.add(key)
                if key not in ctx.table_usage:
                    ctx.stats.tables += 1
                ctx.track_table(table)
                table_id = graph.add(
                    FlowNode(
                        id=ctx.next_id("table"),
                        kind=FlowNodeKind.TABLE,
                        label=table,
                        description="Scalar subquery source",
                        table_category=TableCategory.PHYSICAL,
                    )
                )
                ctx.connect(
                    graph, table_id, select_id, clause_type="flow", sql_clause="Subquery source"
                )


def _aggregate_details(
    ctx: WalkContext, items: tuple[SelectItem, ...]
) -> list[AggregateFunctionDetail]:
    details: list[AggregateFunctionDetail] = []
    for item in items:
        for func in find_aggregates(item.expr, ctx.max_expression_depth):
            ctx.track_function(func.name, FunctionCategory.AGGREGATE)
            source_column = next(
                (
                    ref.sql_text
                    for arg in func.args
                    for ref in walk_expr(arg, ctx.max_expression_depth)
                    if isinstance(ref, ColumnExpr)
                ),
                None,
            )
            details.append(
                AggregateFunctionDetail(
                    name=func.name,
                    expression=func.sql_text,
                    alias=item.alias if func is item.expr else None,
                    source_column=source_column,
                    distinct=func.distinct,
                )
            )
    return details


def _window_details(
    ctx: WalkContext, items: tuple[SelectItem, ...]
) -> list[WindowFunctionDetail]:
    details: list[WindowFunctionDetail] = []
    for item in items:
        for func in find_windows(item.expr, ctx.max_expression_depth):
            ctx.track_function(func.name, FunctionCategory.WINDOW)
            spec = func.over
            details.append(
                WindowFunctionDetail(
                    name=func.name,
                    alias=item.alias if func is item.expr else None,
                    partition_by=list(spec.partition_by) if spec else [],
                    order_by=list(spec.order_by) if spec else [],
                    frame=spec.frame if spec else None,
                )
            )
    return details


def _case_details(ctx: WalkContext, items: tuple[SelectItem, ...]) -> list[CaseDetail]:
    details: list[CaseDetail] = []
    for item in items:
        for case in find_cases(item.expr, ctx.max_expression_depth):
            details.append(
                CaseDetail(
                    alias=item.alias if case is item.expr else None,
                    branches=[
                        CaseBranchDetail(when=expr_sql(b.condition), then=expr_sql(b.result))
                        for b in case.branches
                    ],
                    else_value=expr_sql(case.default) if case.default is not None else None,
                )
            )
    return details


def _track_scalar_functions(ctx: WalkContext, stmt: SelectStatement) -> None:
    for expr in (stmt.where, stmt.having, *(item.expr for item in stmt.items)):
        for func in find_functions(expr, ctx.max_expression_depth):
            if not func.aggregate and not func.is_window:
                ctx.track_function(func.name, FunctionCategory.SCALAR)


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


__all__ = [
    "build_mini_flow",
    "build_query_flow",
    "build_select_flow",
    "emit_ctes",
    "emit_join",
    "emit_source",
]
