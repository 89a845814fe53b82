"""Column-level lineage for the output columns of a query.

For every SELECT-list item the base columns it reads are collected by
walking the expression (operators, function arguments, CASE branches and
casts), resolving table aliases through the FROM clause.  Only the FROM
items of the output block are in scope: ``*`` expands to one source per
FROM item, and an unqualified column belongs to the sole FROM item when
there is exactly one.
"""

from __future__ import annotations

import logging

from flow_engine.models.flow import (
    AccessMode,
    ColumnLineage,
    ColumnSource,
    FlowNode,
    FlowNodeKind,
)
from flow_engine.parser.expressions import source_label, walk_expr
from flow_engine.sql_toolkit import (
    ColumnExpr,
    CreateStatement,
    FunctionSource,
    InsertStatement,
    SelectStatement,
    SetOperation,
    StarExpr,
    Statement,
    SubquerySource,
    TableSource,
)

logger = logging.getLogger(__name__)


def output_block(statement: Statement) -> SelectStatement | None:
    """Return the SELECT block whose items name the statement's output."""
    query = statement
    if isinstance(statement, (InsertStatement, CreateStatement)):
        query = statement.query
    if isinstance(query, SetOperation):
        return query.leftmost
    if isinstance(query, SelectStatement):
        return query
    return None


def alias_map(block: SelectStatement) -> dict[str, str]:
    """Map lower-cased alias (and bare name) → table label for the FROM clause."""
    aliases: dict[str, str] = {}
    for source in block.from_sources:
        if isinstance(source, TableSource):
            aliases[source.name.lower()] = source.display_name
            aliases[source.display_name.lower()] = source.display_name
            if source.alias:
                aliases[source.alias.lower()] = source.display_name
        elif isinstance(source, SubquerySource) and source.alias:
            aliases[source.alias.lower()] = source.alias
        elif isinstance(source, FunctionSource):
            label = source.alias or source.name
            aliases[label.lower()] = label
    return aliases


def scope_nodes(block: SelectStatement, nodes: list[FlowNode]) -> list[FlowNode]:
    """Return the flow nodes of the FROM items of *block*, in FROM order.

    Tables that only an expression subquery or another set-operation branch
    reads are not in scope.
    """
    candidates = [
        n
        for n in nodes
        if n.kind in (FlowNodeKind.TABLE, FlowNodeKind.SUBQUERY)
        and n.access_mode != AccessMode.WRITE
    ]
    taken: set[str] = set()
    scope: list[FlowNode] = []
    for source in block.from_sources:
        label = source_label(source).lower()
        for node in candidates:
            if node.id not in taken and node.label.lower() in (label, label[:40]):
                taken.add(node.id)
                scope.append(node)
                break
    return scope


def extract_column_lineage(
    statement: Statement, nodes: list[FlowNode], max_depth: int = 12
) -> list[ColumnLineage]:
    """Return one :class:`ColumnLineage` per output column of *statement*.

    Statements without a SELECT (plain UPDATE, DELETE, DDL) have none.
    """
    block = output_block(statement)
    if block is None:
        return []

    aliases = alias_map(block)
    table_nodes = scope_nodes(block, nodes)
    by_label = {n.label.lower(): n for n in table_nodes}

    lineage: list[ColumnLineage] = []
    for item in block.items:
        if isinstance(item.expr, StarExpr):
            lineage.append(_star_lineage(item.expr, aliases, table_nodes, by_label))
            continue

        sources: list[ColumnSource] = []
        seen: set[tuple[str, str]] = set()
        for expr in walk_expr(item.expr, max_depth):
            if not isinstance(expr, ColumnExpr):
                continue
            source = _resolve(expr, aliases, table_nodes, by_label)
            if source is None:
                continue
            key = (source.table.lower(), source.column.lower())
            if key not in seen:
                seen.add(key)
                sources.append(source)
        lineage.append(ColumnLineage(output_column=item.output_name, sources=sources))
    return lineage


def _resolve(
    column: ColumnExpr,
    aliases: dict[str, str],
    table_nodes: list[FlowNode],
    by_label: dict[str, FlowNode],
) -> ColumnSource | None:
    if column.table:
        table = aliases.get(column.table.lower(), column.table)
        node = by_label.get(table.lower()) or by_label.get(column.table.lower())
        return ColumnSource(table=table, column=column.name, node_id=node.id if node else "")
    # An unqualified column is attributable only when one table is in scope.
    if len(table_nodes) == 1:
        node = table_nodes[0]
        return ColumnSource(table=node.label, column=column.name, node_id=node.id)
    return None


def _star_lineage(
    star: StarExpr,
    aliases: dict[str, str],
    table_nodes: list[FlowNode],
    by_label: dict[str, FlowNode],
) -> ColumnLineage:
    if star.table:
        table = aliases.get(star.table.lower(), star.table)
        node = by_label.get(table.lower())
        return ColumnLineage(
            output_column=f"{star.table}.*",
            sources=[ColumnSource(table=table, column="*", node_id=node.id if node else "")],
        )
    return ColumnLineage(
        output_column="*",
        sources=[ColumnSource(table=n.label, column="*", node_id=n.id) for n in table_nodes],
    )
