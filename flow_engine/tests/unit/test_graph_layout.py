"""Unit tests for flow_engine.graph_layout."""

from __future__ import annotations

from flow_engine.graph_layout import (
    LayoutEdge,
    LayoutEngine,
    LayoutNode,
    LayoutRequest,
    RankDirection,
    RankLayout,
    apply_layout,
)
from flow_engine.parser.flow_builder import analyze_statement


def _chain_request(direction=RankDirection.TOP_BOTTOM):
    ids = ["a", "b", "c", "d"]
    return LayoutRequest(
        nodes=[LayoutNode(id=i, width=140, height=60) for i in ids],
        edges=[LayoutEdge(source=s, target=t) for s, t in zip(ids, ids[1:])],
        rank_direction=direction,
    )


class TestRankLayout:
    def test_top_bottom_chain(self):
        positions = RankLayout().layout(_chain_request())
        assert [positions[i] for i in "abcd"] == [(0, 0), (0, 120), (0, 240), (0, 360)]

    def test_left_right_chain(self):
        positions = RankLayout().layout(_chain_request(RankDirection.LEFT_RIGHT))
        assert [positions[i] for i in "abcd"] == [(0, 0), (200, 0), (400, 0), (600, 0)]

    def test_siblings_share_a_rank(self):
        request = LayoutRequest(
            nodes=[
                LayoutNode(id="t1", width=140, height=60),
                LayoutNode(id="t2", width=140, height=60),
                LayoutNode(id="j", width=140, height=60),
            ],
            edges=[LayoutEdge(source="t1", target="j"), LayoutEdge(source="t2", target="j")],
        )
        positions = RankLayout().layout(request)
        assert positions["t1"] == (0, 0)
        assert positions["t2"] == (190, 0)
        assert positions["j"] == (0, 120)

    def test_rank_follows_longest_path(self):
        request = LayoutRequest(
            nodes=[LayoutNode(id=i, width=100, height=40) for i in "abc"],
            edges=[
                LayoutEdge(source="a", target="b"),
                LayoutEdge(source="b", target="c"),
                LayoutEdge(source="a", target="c"),
            ],
        )
        positions = RankLayout().layout(request)
        assert positions["c"][1] == 200

    def test_cycle_members_share_a_rank(self):
        request = LayoutRequest(
            nodes=[LayoutNode(id=i, width=100, height=40) for i in "xy"],
            edges=[LayoutEdge(source="x", target="y"), LayoutEdge(source="y", target="x")],
        )
        positions = RankLayout().layout(request)
        assert positions["x"][1] == positions["y"][1] == 0

    def test_is_a_layout_engine(self):
        assert isinstance(RankLayout(), LayoutEngine)


class _Scripted:
    def layout(self, request):
        return {"ghost": (1, 1), request.nodes[0].id: (3, 4)}


class TestApplyLayout:
    def test_unknown_ids_dropped_and_coordinates_floated(self):
        result = analyze_statement("SELECT id FROM users")
        positions = apply_layout(result, _Scripted())
        first = result.nodes[0].id
        assert positions == {first: (3.0, 4.0)}
        assert isinstance(positions[first][0], float)

    def test_every_node_placed_by_rank_layout(self):
        result = analyze_statement("SELECT id FROM users WHERE active = 1")
        positions = apply_layout(result, RankLayout())
        assert set(positions) == {n.id for n in result.nodes}

    def test_request_from_parse_result(self):
        result = analyze_statement("SELECT id FROM users WHERE active = 1")
        request = LayoutRequest.from_parse_result(result, RankDirection.LEFT_RIGHT)
        assert [n.id for n in request.nodes] == [n.id for n in result.nodes]
        assert len(request.edges) == len(result.edges)
        assert request.rank_direction == RankDirection.LEFT_RIGHT
