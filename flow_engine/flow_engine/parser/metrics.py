"""Complexity scoring and graph-shape metrics for one statement."""

from __future__ import annotations

import logging
import math

import networkx as nx

from flow_engine.models.flow import Complexity, FlowEdge, FlowNode, QueryStats
from flow_engine.parser.expressions import select_blocks
from flow_engine.sql_toolkit import (
    CreateStatement,
    InsertStatement,
    QueryStatement,
    SelectStatement,
    SetOperation,
    Statement,
)

logger = logging.getLogger(__name__)

# Weight of each counter in the complexity score.
COMPLEXITY_WEIGHTS: dict[str, float] = {
    "tables": 1,
    "joins": 3,
    "subqueries": 5,
    "ctes": 4,
    "aggregations": 2,
    "window_functions": 4,
    "unions": 3,
    "conditions": 0.5,
}

# Upper bounds (exclusive) of each category, checked in order.
_THRESHOLDS: tuple[tuple[float, Complexity], ...] = (
    (5, Complexity.SIMPLE),
    (15, Complexity.MODERATE),
    (30, Complexity.COMPLEX),
)


def raw_complexity_score(stats: QueryStats) -> float:
    """Return the unrounded weighted sum of the construct counters."""
    return sum(getattr(stats, name) * weight for name, weight in COMPLEXITY_WEIGHTS.items())


def classify_score(score: float) -> Complexity:
    for upper, category in _THRESHOLDS:
        if score < upper:
            return category
    return Complexity.VERY_COMPLEX


def round_half_up(value: float) -> int:
    """Round halves upwards (``2.5 -> 3``) rather than to even."""
    return int(math.floor(value + 0.5))


def apply_complexity(stats: QueryStats) -> None:
    """Set ``complexity_score`` and ``complexity`` on *stats* in place.

    The category is derived from the unrounded score.
    """
    score = raw_complexity_score(stats)
    stats.complexity_score = round_half_up(score)
    stats.complexity = classify_score(score)


# ---------------------------------------------------------------------------
# Graph-shape metrics
# ---------------------------------------------------------------------------


def cte_depth(statement: Statement) -> int:
    """Return how deeply WITH clauses nest inside one another.

    A statement with a flat WITH list has depth 1; a CTE whose body has its
    own WITH adds one level.
    """
    query: QueryStatement | None
    if isinstance(statement, (SelectStatement, SetOperation)):
        query = statement
    elif isinstance(statement, (InsertStatement, CreateStatement)):
        query = statement.query
    else:
        query = None
    return _query_cte_depth(query) if query is not None else 0


def _query_cte_depth(query: QueryStatement) -> int:
    ctes = list(query.ctes)
    if isinstance(query, SetOperation):
        for block in select_blocks(query):
            ctes.extend(block.ctes)
    if not ctes:
        return 0
    return 1 + max(_query_cte_depth(cte.query) for cte in ctes)


def to_digraph(nodes: list[FlowNode], edges: list[FlowEdge]) -> nx.DiGraph:
    """Return a NetworkX view of a statement flow graph."""
    graph = nx.DiGraph()
    graph.add_nodes_from(n.id for n in nodes)
    graph.add_edges_from(
        (e.source, e.target) for e in edges if e.source in graph and e.target in graph
    )
    return graph


def max_fan_out(graph: nx.DiGraph) -> int:
    """Return the largest number of distinct successors of any node."""
    return max((degree for _, degree in graph.out_degree()), default=0)


def critical_path_length(graph: nx.DiGraph) -> int:
    """Return the node count of the longest source-to-sink chain."""
    if graph.number_of_nodes() == 0:
        return 0
    if nx.is_directed_acyclic_graph(graph):
        return len(nx.dag_longest_path(graph))
    # Cycles only arise from malformed input; fall back to the condensation.
    logger.debug("Flow graph has a cycle; measuring its condensation")
    return len(nx.dag_longest_path(nx.condensation(graph)))


def apply_graph_metrics(
    stats: QueryStats,
    statement: Statement,
    nodes: list[FlowNode],
    edges: list[FlowEdge],
) -> None:
    """Fill the graph-shape fields of *stats* in place."""
    graph = to_digraph(nodes, edges)
    stats.max_cte_depth = cte_depth(statement)
    stats.max_fan_out = max_fan_out(graph)
    stats.critical_path_length = critical_path_length(graph)


def merge_stats(all_stats: list[QueryStats]) -> QueryStats:
    """Sum per-statement counters into one record.

    ``complexity_score`` is the sum of the statement scores, but the batch
    ``complexity`` category comes from their average.  Graph-shape fields
    take the maximum.
    """
    total = QueryStats()
    for stats in all_stats:
        for name in COMPLEXITY_WEIGHTS:
            setattr(total, name, getattr(total, name) + getattr(stats, name))
        total.max_cte_depth = max(total.max_cte_depth, stats.max_cte_depth)
        total.max_fan_out = max(total.max_fan_out, stats.max_fan_out)
        total.critical_path_length = max(total.critical_path_length, stats.critical_path_length)
    if all_stats:
        total.complexity_score = sum(s.complexity_score for s in all_stats)
        total.complexity = classify_score(total.complexity_score / len(all_stats))
    return total
