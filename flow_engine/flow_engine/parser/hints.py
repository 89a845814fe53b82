"""Heuristic optimization hints.

Hints are evaluated once per statement after the walk has finished.  Each
check is independent, so any combination may fire for one statement.
"""

from __future__ import annotations

from collections import Counter

from flow_engine.models.flow import (
    AccessMode,
    FlowNode,
    FlowNodeKind,
    HintKind,
    HintSeverity,
    OptimizationHint,
    TableCategory,
)
from flow_engine.parser.expressions import referenced_names, select_blocks
from flow_engine.parser.walk_context import WalkContext
from flow_engine.sql_toolkit import (
    CreateStatement,
    CteDefinition,
    DeleteStatement,
    InsertStatement,
    SelectStatement,
    SetOperation,
    Statement,
    UpdateStatement,
    statement_kind,
)

MAX_JOINS = 5
MAX_SUBQUERIES = 3


def generate_hints(
    ctx: WalkContext, statement: Statement, nodes: list[FlowNode]
) -> list[OptimizationHint]:
    """Return the hints for one walked statement."""
    stats = ctx.stats
    kind = statement_kind(statement)
    hints: list[OptimizationHint] = []

    if ctx.has_select_star:
        hints.append(
            OptimizationHint(
                kind=HintKind.WARNING,
                message="SELECT * detected",
                suggestion="Specify only needed columns to reduce data transfer and improve performance",
                severity=HintSeverity.MEDIUM,
                node_id=_first_id(nodes, FlowNodeKind.SELECT),
            )
        )

    if kind == "select" and not ctx.has_limit and stats.tables > 0:
        hints.append(
            OptimizationHint(
                kind=HintKind.INFO,
                message="No LIMIT clause",
                suggestion="Consider adding LIMIT to prevent fetching large result sets",
                severity=HintSeverity.LOW,
                node_id=_first_id(nodes, FlowNodeKind.RESULT),
            )
        )

    if isinstance(statement, (UpdateStatement, DeleteStatement)) and statement.where is None:
        hints.append(
            OptimizationHint(
                kind=HintKind.ERROR,
                message=f"{kind.upper()} without WHERE clause",
                suggestion="This will affect ALL rows in the table. Add a WHERE clause to limit scope",
                severity=HintSeverity.HIGH,
                node_id=_first_id(nodes, FlowNodeKind.RESULT),
                category="safety",
            )
        )

    if stats.joins > MAX_JOINS:
        hints.append(
            OptimizationHint(
                kind=HintKind.WARNING,
                message=f"High number of JOINs ({stats.joins})",
                suggestion="Consider breaking into smaller queries or using CTEs for clarity",
                severity=HintSeverity.MEDIUM,
            )
        )

    if stats.subqueries > MAX_SUBQUERIES:
        hints.append(
            OptimizationHint(
                kind=HintKind.WARNING,
                message=f"Multiple subqueries detected ({stats.subqueries})",
                suggestion="Consider using CTEs (WITH clause) for better readability",
                severity=HintSeverity.MEDIUM,
                category="readability",
            )
        )

    # Only read-side tables count; write targets are excluded.
    if stats.tables - ctx.write_targets > 1 and stats.joins == 0 and stats.conditions == 0:
        hints.append(
            OptimizationHint(
                kind=HintKind.ERROR,
                message="Possible Cartesian product",
                suggestion="Multiple tables without JOIN conditions will produce all row combinations",
                severity=HintSeverity.HIGH,
                node_id=_first_id(nodes, FlowNodeKind.JOIN),
            )
        )

    hints.extend(_unused_cte_hints(statement, nodes))
    hints.extend(_repeated_scan_hints(nodes))
    return hints


def _unused_cte_hints(statement: Statement, nodes: list[FlowNode]) -> list[OptimizationHint]:
    query = statement if isinstance(statement, (SelectStatement, SetOperation)) else None
    if isinstance(statement, (InsertStatement, CreateStatement)):
        query = statement.query
    if query is None:
        return []

    ctes: dict[str, CteDefinition] = {}
    for owner in (query, *select_blocks(query)):
        for cte in owner.ctes:
            ctes.setdefault(cte.name.lower(), cte)
    if not ctes:
        return []

    referenced = referenced_names(query)
    cte_nodes = {n.label.split()[-1].lower(): n.id for n in nodes if n.kind == FlowNodeKind.CTE}
    return [
        OptimizationHint(
            kind=HintKind.WARNING,
            message=f"Unused CTE: \"{cte.name}\"",
            suggestion="Remove this CTE as it is not used anywhere in the query",
            severity=HintSeverity.MEDIUM,
            node_id=cte_nodes.get(name),
            category="quality",
        )
        for name, cte in ctes.items()
        if name not in referenced
    ]


def _repeated_scan_hints(nodes: list[FlowNode]) -> list[OptimizationHint]:
    scans: Counter[str] = Counter()
    for node in _all_nodes(nodes):
        if (
            node.kind == FlowNodeKind.TABLE
            and node.table_category == TableCategory.PHYSICAL
            and node.access_mode != AccessMode.WRITE
        ):
            scans[node.label.lower()] += 1
    return [
        OptimizationHint(
            kind=HintKind.WARNING,
            message=f"Table \"{table}\" scanned {count} times",
            suggestion="Consider using a CTE or subquery to scan the table once",
            severity=HintSeverity.MEDIUM,
            category="performance",
        )
        for table, count in scans.items()
        if count > 1
    ]


def _all_nodes(nodes: list[FlowNode]) -> list[FlowNode]:
    """Top-level nodes followed by the nested children of containers."""
    found: list[FlowNode] = []
    pending = list(nodes)
    while pending:
        node = pending.pop(0)
        found.append(node)
        pending.extend(node.children or ())
    return found


def _first_id(nodes: list[FlowNode], kind: FlowNodeKind) -> str | None:
    return next((n.id for n in nodes if n.kind == kind), None)
