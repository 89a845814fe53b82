"""Per-statement walk state.

A :class:`WalkContext` is created for every analysed statement and threaded
through the recursive walk.  It owns the node-id counter, the running
:class:`QueryStats`, the usage maps and the flags the hint pass reads.
Nothing here is shared between statements, so statements can be analysed
concurrently.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from flow_engine.models.flow import (
    FlowEdge,
    FlowNode,
    FunctionCategory,
    QueryStats,
)
from flow_engine.sql_toolkit import Dialect


@dataclass
class FlowGraph:
    """Node and edge lists being built for one scope (statement or container)."""

    nodes: list[FlowNode] = field(default_factory=list)
    edges: list[FlowEdge] = field(default_factory=list)

    def add(self, node: FlowNode) -> str:
        self.nodes.append(node)
        return node.id


@dataclass
class WalkContext:
    """Mutable state for a single statement walk."""

    dialect: Dialect
    sql: str = ""
    max_expression_depth: int = 12
    max_details: int = 10

    stats: QueryStats = field(default_factory=QueryStats)
    table_usage: Counter[str] = field(default_factory=Counter)
    function_usage: dict[str, FunctionCategory] = field(default_factory=dict)
    has_select_star: bool = False
    has_limit: bool = False
    write_targets: int = 0
    walk_errors: list[str] = field(default_factory=list)
    _counter: int = 0

    def next_id(self, prefix: str) -> str:
        """Return ``f"{prefix}_{n}"`` with *n* unique within the statement."""
        node_id = f"{prefix}_{self._counter}"
        self._counter += 1
        return node_id

    def connect(
        self,
        graph: FlowGraph,
        source: str | None,
        target: str,
        *,
        clause_type: str | None = None,
        sql_clause: str | None = None,
        label: str | None = None,
    ) -> None:
        """Append an edge ``source -> target``; a missing source is a no-op."""
        if source is None or source == target:
            return
        graph.edges.append(
            FlowEdge(
                id=self.next_id("e"),
                source=source,
                target=target,
                label=label,
                clause_type=clause_type,
                sql_clause=sql_clause,
            )
        )

    def track_table(self, name: str) -> None:
        self.table_usage[name.lower()] += 1

    def track_function(self, name: str, category: FunctionCategory) -> None:
        # A function seen as aggregate or window keeps that category.
        key = name.upper()
        if self.function_usage.get(key) in (None, FunctionCategory.SCALAR):
            self.function_usage[key] = category

    def bounded(self, details: list[str]) -> list[str]:
        return details[: self.max_details]
