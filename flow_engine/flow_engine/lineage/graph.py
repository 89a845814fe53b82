"""In-memory workspace lineage graph.

Nodes and edges are stored by id with incoming/outgoing adjacency lists, so
traversals are id lookups with explicit visited sets.  The graph is
populated only by :class:`~flow_engine.lineage.builder.LineageBuilder`;
everything else here is a read-only query.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import networkx as nx

from flow_engine.models.lineage import (
    FlowResult,
    GraphStats,
    LineageEdge,
    LineageNode,
    LineageNodeKind,
    object_node_id,
)
from flow_engine.models.workspace import qualified_key, split_qualified_key

if TYPE_CHECKING:
    from flow_engine.lineage.flow_analyzer import FlowAnalyzer

logger = logging.getLogger(__name__)

# Lookup order for a user-supplied object name.
_OBJECT_KINDS = (LineageNodeKind.TABLE, LineageNodeKind.VIEW, LineageNodeKind.EXTERNAL)


class LineageGraph:
    """Table, view, column and external nodes joined by data-flow edges."""

    def __init__(self) -> None:
        self._nodes: dict[str, LineageNode] = {}
        self._edges: dict[str, LineageEdge] = {}
        self._outgoing: dict[str, list[str]] = {}
        self._incoming: dict[str, list[str]] = {}
        self.skipped_files: list[str] = []
        self._analyzer: FlowAnalyzer | None = None

    # -- mutation (builder only) ---------------------------------------------

    def clear(self) -> None:
        self._nodes.clear()
        self._edges.clear()
        self._outgoing.clear()
        self._incoming.clear()
        self.skipped_files = []

    def add_node(self, node: LineageNode) -> LineageNode:
        """Insert *node* unless its id exists; return the stored node."""
        existing = self._nodes.get(node.id)
        if existing is not None:
            return existing
        self._nodes[node.id] = node
        self._outgoing.setdefault(node.id, [])
        self._incoming.setdefault(node.id, [])
        return node

    def add_edge(self, edge: LineageEdge) -> bool:
        """Insert *edge*; return ``False`` for self-loops, duplicates or unknown endpoints."""
        if edge.source_id == edge.target_id:
            return False
        if edge.id in self._edges:
            return False
        if edge.source_id not in self._nodes or edge.target_id not in self._nodes:
            logger.debug("Edge %s skipped: endpoint missing", edge.id)
            return False
        self._edges[edge.id] = edge
        self._outgoing[edge.source_id].append(edge.id)
        self._incoming[edge.target_id].append(edge.id)
        return True

    # -- lookups -------------------------------------------------------------

    @property
    def nodes(self) -> list[LineageNode]:
        return list(self._nodes.values())

    @property
    def edges(self) -> list[LineageEdge]:
        return list(self._edges.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: str) -> LineageNode | None:
        return self._nodes.get(node_id)

    def get_edge(self, edge_id: str) -> LineageEdge | None:
        return self._edges.get(edge_id)

    def get_incoming(self, node_id: str) -> list[LineageEdge]:
        return [self._edges[e] for e in self._incoming.get(node_id, ())]

    def get_outgoing(self, node_id: str) -> list[LineageEdge]:
        return [self._edges[e] for e in self._outgoing.get(node_id, ())]

    def nodes_of_kind(self, *kinds: LineageNodeKind) -> list[LineageNode]:
        return [n for n in self._nodes.values() if n.kind in kinds]

    def columns_of(self, table_id: str) -> list[LineageNode]:
        return [n for n in self._nodes.values() if n.parent_id == table_id]

    def find_object(self, name: str, schema: str | None = None) -> LineageNode | None:
        """Resolve a table, view or external node from a user-supplied name.

        Tries the qualified key under each object kind, then the bare name
        when a schema was given, then the single object whose bare name
        matches.
        """
        key = qualified_key(name, schema)
        keys = [key]
        table_schema, bare = split_qualified_key(key)
        if table_schema is not None:
            keys.append(bare)
        for candidate in keys:
            for kind in _OBJECT_KINDS:
                node = self._nodes.get(object_node_id(kind, candidate))
                if node is not None:
                    return node
        if table_schema is None:
            matches = [
                n
                for n in self._nodes.values()
                if n.kind in _OBJECT_KINDS
                and split_qualified_key(n.metadata.get("qualified_key", ""))[1] == bare
            ]
            if len(matches) == 1:
                return matches[0]
        return None

    def search(
        self, query: str, kinds: Iterable[LineageNodeKind] | None = None
    ) -> list[LineageNode]:
        """Return nodes whose name contains *query*, case-insensitively."""
        needle = query.strip().lower()
        wanted = set(kinds) if kinds is not None else None
        return [
            n
            for n in self._nodes.values()
            if needle in n.name.lower() and (wanted is None or n.kind in wanted)
        ]

    # -- traversal -----------------------------------------------------------

    @property
    def analyzer(self) -> FlowAnalyzer:
        if self._analyzer is None:
            from flow_engine.lineage.flow_analyzer import FlowAnalyzer

            self._analyzer = FlowAnalyzer(self)
        return self._analyzer

    def get_upstream(self, node_id: str, max_depth: int = -1, **options: Any) -> FlowResult:
        """Nodes feeding *node_id*; see :meth:`FlowAnalyzer.get_upstream`."""
        return self.analyzer.get_upstream(node_id, max_depth, **options)

    def get_downstream(self, node_id: str, max_depth: int = -1, **options: Any) -> FlowResult:
        """Nodes fed by *node_id*; see :meth:`FlowAnalyzer.get_downstream`."""
        return self.analyzer.get_downstream(node_id, max_depth, **options)

    # -- export --------------------------------------------------------------

    def stats(self) -> GraphStats:
        by_kind = Counter(n.kind.value for n in self._nodes.values())
        return GraphStats(
            nodes=len(self._nodes),
            edges=len(self._edges),
            by_kind=dict(sorted(by_kind.items())),
            skipped_files=len(self.skipped_files),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.model_dump(mode="json") for n in self._nodes.values()],
            "edges": [e.model_dump(mode="json") for e in self._edges.values()],
            "stats": self.stats().model_dump(mode="json"),
        }

    def to_networkx(self, *, include_containment: bool = True) -> nx.DiGraph:
        """Return a NetworkX copy; node data is under ``"node"``, edge data under ``"edge"``."""
        graph = nx.DiGraph()
        for node in self._nodes.values():
            graph.add_node(node.id, node=node)
        for edge in self._edges.values():
            if include_containment or not edge.is_containment:
                graph.add_edge(edge.source_id, edge.target_id, edge=edge)
        return graph
