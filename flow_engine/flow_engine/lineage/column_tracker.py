"""Column-level lineage queries."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from flow_engine.lineage.graph import LineageGraph
from flow_engine.models.lineage import FlowResult, LineageNode, LineagePath, column_node_id
from flow_engine.models.workspace import qualified_key

logger = logging.getLogger(__name__)


class ColumnLineageResult(BaseModel):
    """Upstream and downstream lineage of one column."""

    table: str
    column: str
    column_id: str | None = Field(
        default=None, description="Lineage node id; None when the column has no node."
    )
    upstream: LineagePath = Field(default_factory=LineagePath)
    downstream: LineagePath = Field(default_factory=LineagePath)

    @property
    def found(self) -> bool:
        return self.column_id is not None


class ColumnLineageTracker:
    """Follows column-flow edges from a single column node in both directions."""

    def __init__(self, graph: LineageGraph) -> None:
        self.graph = graph

    def resolve_column(self, table: str, column: str, schema: str | None = None) -> str | None:
        table_node = self.graph.find_object(table, schema)
        key = None
        if table_node is not None:
            key = table_node.metadata.get("qualified_key")
        key = key or qualified_key(table, schema)
        column_id = column_node_id(key, column)
        return column_id if column_id in self.graph else None

    def get_full_column_lineage(
        self, table: str, column: str, schema: str | None = None, max_depth: int = -1
    ) -> ColumnLineageResult:
        """Return the upstream and downstream paths of ``table.column``.

        Both paths are empty, not an error, when the column has no node.
        """
        column_id = self.resolve_column(table, column, schema)
        result = ColumnLineageResult(table=table, column=column, column_id=column_id)
        if column_id is None:
            logger.debug("Column %s.%s not in lineage graph", table, column)
            return result
        result.upstream = _as_path(self.graph.get_upstream(column_id, max_depth))
        result.downstream = _as_path(self.graph.get_downstream(column_id, max_depth))
        return result

    def get_column_sources(
        self, table: str, column: str, schema: str | None = None
    ) -> list[LineageNode]:
        """Columns that flow into ``table.column``, nearest first."""
        return self.get_full_column_lineage(table, column, schema).upstream.nodes

    def get_column_consumers(
        self, table: str, column: str, schema: str | None = None
    ) -> list[LineageNode]:
        """Columns that ``table.column`` flows into, nearest first."""
        return self.get_full_column_lineage(table, column, schema).downstream.nodes


def _as_path(flow: FlowResult) -> LineagePath:
    return LineagePath(nodes=list(flow.nodes), edges=list(flow.edges), depth=flow.depth)
