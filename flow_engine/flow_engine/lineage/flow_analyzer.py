"""Upstream/downstream traversal over a :class:`LineageGraph`.

All traversals are breadth-first with an explicit visited set, so they
terminate on cyclic graphs (recursive views, circular definitions) and never
return the seed node.  ``contains`` edges between a table and its columns
are not data flow and are skipped unless asked for.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable

import networkx as nx

from flow_engine.lineage.graph import LineageGraph
from flow_engine.models.lineage import (
    FlowDirection,
    FlowResult,
    LineageEdge,
    LineageNode,
    LineageNodeKind,
    LineagePath,
)

logger = logging.getLogger(__name__)

_OBJECT_KINDS = frozenset({LineageNodeKind.TABLE, LineageNodeKind.VIEW, LineageNodeKind.CTE})


class FlowAnalyzer:
    """Read-only traversal queries over one graph snapshot."""

    def __init__(self, graph: LineageGraph) -> None:
        self.graph = graph

    def get_upstream(
        self,
        node_id: str,
        max_depth: int = -1,
        *,
        exclude_external: bool = False,
        filter_kinds: Iterable[LineageNodeKind] | None = None,
        include_containment: bool = False,
    ) -> FlowResult:
        """Return every node that feeds *node_id*.

        Parameters
        ----------
        node_id:
            Seed node; never part of the result.
        max_depth:
            Maximum hops from the seed; ``-1`` means unbounded.
        exclude_external:
            Neither return nor traverse through ``external`` nodes.  An
            external seed yields an empty result.
        filter_kinds:
            Only report nodes of these kinds.  Other nodes are still
            traversed.
        include_containment:
            Follow table → column ``contains`` edges as well.
        """
        return self._traverse(
            node_id,
            FlowDirection.UPSTREAM,
            max_depth,
            exclude_external=exclude_external,
            filter_kinds=filter_kinds,
            include_containment=include_containment,
        )

    def get_downstream(
        self,
        node_id: str,
        max_depth: int = -1,
        *,
        exclude_external: bool = False,
        filter_kinds: Iterable[LineageNodeKind] | None = None,
        include_containment: bool = False,
    ) -> FlowResult:
        """Return every node fed by *node_id*.  Options as :meth:`get_upstream`."""
        return self._traverse(
            node_id,
            FlowDirection.DOWNSTREAM,
            max_depth,
            exclude_external=exclude_external,
            filter_kinds=filter_kinds,
            include_containment=include_containment,
        )

    def _traverse(
        self,
        seed_id: str,
        direction: FlowDirection,
        max_depth: int,
        *,
        exclude_external: bool,
        filter_kinds: Iterable[LineageNodeKind] | None,
        include_containment: bool,
    ) -> FlowResult:
        result = FlowResult(direction=direction, seed_id=seed_id)
        seed = self.graph.get_node(seed_id)
        if seed is None:
            logger.debug("Traversal seed %s not in graph", seed_id)
            return result
        if exclude_external and seed.kind == LineageNodeKind.EXTERNAL:
            return result

        wanted = frozenset(filter_kinds) if filter_kinds is not None else None
        upstream = direction == FlowDirection.UPSTREAM
        visited = {seed_id}
        queue: deque[tuple[str, int]] = deque([(seed_id, 0)])

        while queue:
            current, depth = queue.popleft()
            if max_depth != -1 and depth >= max_depth:
                continue
            edges = self.graph.get_incoming(current) if upstream else self.graph.get_outgoing(current)
            for edge in edges:
                if edge.is_containment and not include_containment:
                    continue
                neighbour_id = edge.source_id if upstream else edge.target_id
                neighbour = self.graph.get_node(neighbour_id)
                if neighbour is None:
                    continue
                if exclude_external and neighbour.kind == LineageNodeKind.EXTERNAL:
                    continue
                result.edges.append(edge)
                result.paths.append(_edge_path(self.graph, edge, depth + 1))
                if neighbour_id in visited:
                    continue
                visited.add(neighbour_id)
                result.node_depths[neighbour_id] = depth + 1
                if wanted is None or neighbour.kind in wanted:
                    result.nodes.append(neighbour)
                queue.append((neighbour_id, depth + 1))

        result.depth = max(result.node_depths.values(), default=0)
        return result

    # -- whole-graph queries -------------------------------------------------

    def get_path_between(
        self, source_id: str, target_id: str, max_length: int | None = None
    ) -> list[LineagePath]:
        """Return every simple data-flow path from *source_id* to *target_id*."""
        if source_id not in self.graph or target_id not in self.graph or source_id == target_id:
            return []
        digraph = self.graph.to_networkx(include_containment=False)
        paths: list[LineagePath] = []
        for node_ids in nx.all_simple_paths(digraph, source_id, target_id, cutoff=max_length):
            edges = [digraph.edges[u, v]["edge"] for u, v in zip(node_ids, node_ids[1:])]
            nodes = [digraph.nodes[n]["node"] for n in node_ids]
            paths.append(LineagePath(nodes=nodes, edges=edges, depth=len(edges)))
        return paths

    def find_root_sources(self) -> list[LineageNode]:
        """Tables and views nothing flows into, excluding external nodes."""
        return [
            n
            for n in self.graph.nodes
            if n.kind in _OBJECT_KINDS and not self._data_edges(self.graph.get_incoming(n.id))
        ]

    def find_terminal_nodes(self) -> list[LineageNode]:
        """Tables and views that feed nothing, excluding external nodes."""
        return [
            n
            for n in self.graph.nodes
            if n.kind in _OBJECT_KINDS and not self._data_edges(self.graph.get_outgoing(n.id))
        ]

    def detect_cycles(self) -> list[list[str]]:
        """Return every elementary cycle of the data-flow edges.

        Each cycle starts and ends with the same id.  Containment edges are
        ignored, so a table and its columns never form a cycle.
        """
        flow = self.graph.to_networkx(include_containment=False)
        cycles = [[*cycle, cycle[0]] for cycle in nx.simple_cycles(flow)]
        if cycles:
            logger.debug("Lineage graph contains %d cycle(s)", len(cycles))
        return cycles

    @staticmethod
    def _data_edges(edges: list[LineageEdge]) -> list[LineageEdge]:
        return [e for e in edges if not e.is_containment]


def _edge_path(graph: LineageGraph, edge: LineageEdge, depth: int) -> LineagePath:
    nodes = [n for n in (graph.get_node(edge.source_id), graph.get_node(edge.target_id)) if n]
    return LineagePath(nodes=nodes, edges=[edge], depth=depth)
