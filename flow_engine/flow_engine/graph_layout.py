"""Layout seam between flow graphs and a 2-D layout engine.

The engine sees only node sizes and the edge list; positions come back as
``{node_id: (x, y)}``.  :func:`apply_layout` keeps only ids that belong to
the flow graph, so coordinates are never invented for a node the engine
did not place.

:class:`RankLayout` is a small layered engine on top of NetworkX for
callers that have no external layout engine.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Protocol, runtime_checkable

import networkx as nx
from pydantic import BaseModel, Field

from flow_engine.models.flow import ParseResult

logger = logging.getLogger(__name__)

Position = tuple[float, float]


class RankDirection(str, Enum):
    TOP_BOTTOM = "TB"
    LEFT_RIGHT = "LR"


class LayoutNode(BaseModel):
    id: str
    width: float
    height: float


class LayoutEdge(BaseModel):
    source: str
    target: str


class LayoutRequest(BaseModel):
    """Everything a layout engine needs about one flow graph."""

    nodes: list[LayoutNode] = Field(default_factory=list)
    edges: list[LayoutEdge] = Field(default_factory=list)
    rank_direction: RankDirection = RankDirection.TOP_BOTTOM
    node_spacing: float = Field(default=50.0, ge=0)
    rank_spacing: float = Field(default=60.0, ge=0)

    @classmethod
    def from_parse_result(
        cls,
        result: ParseResult,
        rank_direction: RankDirection = RankDirection.TOP_BOTTOM,
        node_spacing: float = 50.0,
        rank_spacing: float = 60.0,
    ) -> LayoutRequest:
        return cls(
            nodes=[LayoutNode(id=n.id, width=n.width, height=n.height) for n in result.nodes],
            edges=[LayoutEdge(source=e.source, target=e.target) for e in result.edges],
            rank_direction=rank_direction,
            node_spacing=node_spacing,
            rank_spacing=rank_spacing,
        )


@runtime_checkable
class LayoutEngine(Protocol):
    """Anything that can place the nodes of a :class:`LayoutRequest`."""

    def layout(self, request: LayoutRequest) -> Mapping[str, Position]: ...


def apply_layout(
    result: ParseResult,
    engine: LayoutEngine,
    request: LayoutRequest | None = None,
) -> dict[str, Position]:
    """Lay out *result* with *engine*.

    Returns
    -------
    dict
        Node id → ``(x, y)`` for every flow node the engine returned a
        position for.  Ids the engine made up are dropped.
    """
    request = request or LayoutRequest.from_parse_result(result)
    placed = engine.layout(request)
    known = {n.id for n in result.nodes}
    positions = {
        node_id: (float(x), float(y)) for node_id, (x, y) in placed.items() if node_id in known
    }
    missing = len(known) - len(positions)
    if missing:
        logger.debug("Layout engine left %d node(s) unplaced", missing)
    return positions


class RankLayout:
    """Layered layout: each node sits one rank below its furthest predecessor.

    Cycles are collapsed with :func:`networkx.condensation` before ranking,
    so every node of a cycle shares a rank.
    """

    def layout(self, request: LayoutRequest) -> dict[str, Position]:
        graph = nx.DiGraph()
        sizes = {n.id: n for n in request.nodes}
        graph.add_nodes_from(sizes)
        graph.add_edges_from(
            (e.source, e.target) for e in request.edges if e.source in sizes and e.target in sizes
        )
        ranks = _ranks(graph)

        by_rank: dict[int, list[str]] = {}
        for node in request.nodes:
            by_rank.setdefault(ranks[node.id], []).append(node.id)

        positions: dict[str, Position] = {}
        along = 0.0
        for rank in sorted(by_rank):
            members = [sizes[i] for i in by_rank[rank]]
            if request.rank_direction == RankDirection.TOP_BOTTOM:
                depth = max(m.height for m in members)
                across = 0.0
                for member in members:
                    positions[member.id] = (across, along)
                    across += member.width + request.node_spacing
            else:
                depth = max(m.width for m in members)
                across = 0.0
                for member in members:
                    positions[member.id] = (along, across)
                    across += member.height + request.node_spacing
            along += depth + request.rank_spacing
        return positions


def _ranks(graph: nx.DiGraph) -> dict[str, int]:
    condensed = nx.condensation(graph)
    component_rank: dict[int, int] = {}
    for component in nx.topological_sort(condensed):
        preds = list(condensed.predecessors(component))
        component_rank[component] = max((component_rank[p] + 1 for p in preds), default=0)
    mapping = condensed.graph["mapping"]
    return {node: component_rank[mapping[node]] for node in graph.nodes}
