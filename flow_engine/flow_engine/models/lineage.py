"""Workspace lineage graph models.

Node ids are deterministic: ``f"{kind}:{qualified_key}"`` for tables, views
and external objects and ``f"column:{table_key}.{column}"`` for columns, so
repeated definitions of the same object collapse to one node.  Edge ids are
``f"{source_id}->{target_id}"``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from flow_engine.models.workspace import ColumnDefinition


class LineageNodeKind(str, Enum):
    TABLE = "table"
    VIEW = "view"
    COLUMN = "column"
    CTE = "cte"
    EXTERNAL = "external"


class LineageEdgeKind(str, Enum):
    DIRECT = "direct"
    JOIN = "join"


# ---------------------------------------------------------------------------
# Id helpers
# ---------------------------------------------------------------------------


def object_node_id(kind: LineageNodeKind, key: str) -> str:
    """Return the id of a table, view, cte or external node."""
    return f"{kind.value}:{key}"


def column_node_id(table_key: str, column: str) -> str:
    return f"column:{table_key}.{column.lower()}"


def edge_id(source_id: str, target_id: str) -> str:
    return f"{source_id}->{target_id}"


# ---------------------------------------------------------------------------
# Nodes and edges
# ---------------------------------------------------------------------------


class LineageNode(BaseModel):
    """A table, view, column or external object in the workspace graph."""

    id: str = Field(..., description="Deterministic id derived from kind and key.")
    kind: LineageNodeKind
    name: str
    file_path: str | None = None
    line_number: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    parent_id: str | None = Field(default=None, description="Owning table of a column.")
    column_info: ColumnDefinition | None = None


class LineageEdge(BaseModel):
    """Directed data-flow edge ``source_id -> target_id``."""

    id: str
    source_id: str
    target_id: str
    kind: LineageEdgeKind = LineageEdgeKind.DIRECT
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_containment(self) -> bool:
        """True for the table → column ``contains`` edges."""
        return self.metadata.get("relationship") == "contains"


# ---------------------------------------------------------------------------
# Traversal results
# ---------------------------------------------------------------------------


class LineagePath(BaseModel):
    """An ordered chain of nodes and the edges joining them."""

    nodes: list[LineageNode] = Field(default_factory=list)
    edges: list[LineageEdge] = Field(default_factory=list)
    depth: int = 0


class FlowDirection(str, Enum):
    UPSTREAM = "upstream"
    DOWNSTREAM = "downstream"


class FlowResult(BaseModel):
    """Nodes reached by an upstream or downstream traversal.

    ``nodes`` is in discovery order and never contains the seed.
    ``node_depths`` maps each reached node id to its hop distance from the
    seed; ``depth`` is the greatest hop distance reached.
    """

    direction: FlowDirection
    seed_id: str
    nodes: list[LineageNode] = Field(default_factory=list)
    edges: list[LineageEdge] = Field(default_factory=list)
    paths: list[LineagePath] = Field(default_factory=list)
    depth: int = 0
    node_depths: dict[str, int] = Field(default_factory=dict)

    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]


class GraphStats(BaseModel):
    nodes: int = 0
    edges: int = 0
    by_kind: dict[str, int] = Field(default_factory=dict)
    skipped_files: int = 0
