"""Unit tests for flow_engine.lineage.graph."""

from __future__ import annotations

from flow_engine.lineage.graph import LineageGraph
from flow_engine.models.lineage import LineageEdge, LineageNode, LineageNodeKind


def _node(kind, key, name=None):
    return LineageNode(
        id=f"{kind.value}:{key}", kind=kind, name=name or key, metadata={"qualified_key": key}
    )


def _edge(source, target, **metadata):
    return LineageEdge(id=f"{source}->{target}", source_id=source, target_id=target,
                       metadata=metadata)


class TestMutation:
    def test_add_node_keeps_first(self):
        graph = LineageGraph()
        first = graph.add_node(_node(LineageNodeKind.TABLE, "a", "A"))
        again = graph.add_node(_node(LineageNodeKind.TABLE, "a", "other"))
        assert again is first
        assert len(graph) == 1
        assert "table:a" in graph

    def test_add_edge_rejections(self):
        graph = LineageGraph()
        graph.add_node(_node(LineageNodeKind.TABLE, "a"))
        graph.add_node(_node(LineageNodeKind.TABLE, "b"))
        assert graph.add_edge(_edge("table:a", "table:b")) is True
        assert graph.add_edge(_edge("table:a", "table:b")) is False
        assert graph.add_edge(_edge("table:a", "table:a")) is False
        assert graph.add_edge(_edge("table:a", "table:missing")) is False
        assert [e.id for e in graph.get_outgoing("table:a")] == ["table:a->table:b"]
        assert [e.id for e in graph.get_incoming("table:b")] == ["table:a->table:b"]

    def test_clear(self):
        graph = LineageGraph()
        graph.add_node(_node(LineageNodeKind.TABLE, "a"))
        graph.skipped_files.append("x.sql")
        graph.clear()
        assert len(graph) == 0
        assert graph.skipped_files == []


class TestLookups:
    def _graph(self):
        graph = LineageGraph()
        graph.add_node(_node(LineageNodeKind.TABLE, "sales.orders", "sales.orders"))
        graph.add_node(_node(LineageNodeKind.VIEW, "recent"))
        graph.add_node(_node(LineageNodeKind.EXTERNAL, "raw"))
        graph.add_node(_node(LineageNodeKind.TABLE, "customers"))
        graph.add_node(
            LineageNode(
                id="column:customers.id",
                kind=LineageNodeKind.COLUMN,
                name="id",
                parent_id="table:customers",
            )
        )
        return graph

    def test_find_object_by_key(self):
        graph = self._graph()
        assert graph.find_object("recent").id == "view:recent"
        assert graph.find_object("RAW").id == "external:raw"
        assert graph.find_object("sales.orders").id == "table:sales.orders"
        assert graph.find_object("orders", schema="sales").id == "table:sales.orders"

    def test_find_object_by_bare_name(self):
        assert self._graph().find_object("orders").id == "table:sales.orders"

    def test_schema_falls_back_to_bare_node(self):
        assert self._graph().find_object("dbo.customers").id == "table:customers"

    def test_find_object_missing(self):
        assert self._graph().find_object("nope") is None

    def test_ambiguous_bare_name(self):
        graph = self._graph()
        graph.add_node(_node(LineageNodeKind.TABLE, "archive.orders", "archive.orders"))
        assert graph.find_object("orders") is None

    def test_columns_and_kinds(self):
        graph = self._graph()
        assert [c.id for c in graph.columns_of("table:customers")] == ["column:customers.id"]
        assert len(graph.nodes_of_kind(LineageNodeKind.TABLE, LineageNodeKind.VIEW)) == 3

    def test_search(self):
        graph = self._graph()
        assert {n.id for n in graph.search("ORD")} == {"table:sales.orders"}
        assert graph.search("i", kinds=[LineageNodeKind.COLUMN])[0].id == "column:customers.id"


class TestExport:
    def test_stats_and_dict(self):
        graph = LineageGraph()
        graph.add_node(_node(LineageNodeKind.TABLE, "a"))
        graph.add_node(_node(LineageNodeKind.VIEW, "b"))
        graph.add_edge(_edge("table:a", "view:b"))
        stats = graph.stats()
        assert (stats.nodes, stats.edges) == (2, 1)
        assert stats.by_kind == {"table": 1, "view": 1}
        data = graph.to_dict()
        assert data["edges"][0]["kind"] == "direct"
        assert data["stats"]["nodes"] == 2

    def test_to_networkx(self):
        graph = LineageGraph()
        graph.add_node(_node(LineageNodeKind.TABLE, "a"))
        graph.add_node(LineageNode(id="column:a.x", kind=LineageNodeKind.COLUMN, name="x",
                                   parent_id="table:a"))
        graph.add_edge(_edge("table:a", "column:a.x", relationship="contains"))
        assert graph.to_networkx().number_of_edges() == 1
        digraph = graph.to_networkx(include_containment=False)
        assert digraph.number_of_edges() == 0
        assert digraph.nodes["table:a"]["node"].name == "a"
