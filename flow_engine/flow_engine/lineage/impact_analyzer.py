"""Change-impact reports for tables and columns of the lineage graph.

Answers "what breaks if I modify, rename or drop this?" using the
downstream traversal of :class:`~flow_engine.lineage.flow_analyzer.FlowAnalyzer`:

1. **Direct impacts** are dependents one hop away from the target.
2. **Transitive impacts** are everything further downstream.
3. **Severity** is derived from the number of impacts and escalated for
   multi-file or transitive spread, renames and drops.

All analysis is read-only.  External nodes are neither reported nor
traversed through.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel, Field

from flow_engine.lineage.graph import LineageGraph
from flow_engine.models.lineage import LineageNode, LineageNodeKind, column_node_id
from flow_engine.models.workspace import qualified_key

logger = logging.getLogger(__name__)

# Total-impact thresholds for the base report severity.
CRITICAL_THRESHOLD = 20
HIGH_THRESHOLD = 10
MEDIUM_THRESHOLD = 3

# Impact count against which per-node severity is normalised.
_NODE_SEVERITY_SCALE = 10


# ---------------------------------------------------------------------------
# Enums and models
# ---------------------------------------------------------------------------


class ChangeKind(str, Enum):
    """Kind of proposed change."""

    MODIFY = "modify"
    RENAME = "rename"
    DROP = "drop"


class ImpactSeverity(str, Enum):
    """Ordered severity levels, lowest first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def escalate(self, steps: int = 1) -> ImpactSeverity:
        """Return the level *steps* above this one, capped at ``CRITICAL``."""
        order = list(ImpactSeverity)
        return order[min(order.index(self) + steps, len(order) - 1)]


class TargetKind(str, Enum):
    TABLE = "table"
    COLUMN = "column"


class ImpactItem(BaseModel):
    """One node affected by a proposed change."""

    node: LineageNode = Field(..., description="The affected lineage node.")
    depth: int = Field(..., description="Hops downstream from the changed object.")
    reason: str = Field(..., description="Why this node is affected.")
    severity: ImpactSeverity = Field(
        default=ImpactSeverity.LOW,
        description="Severity for this node alone; never CRITICAL.",
    )
    file_path: str | None = Field(default=None, description="File the node is defined in.")
    line_number: int | None = None

    @property
    def is_direct(self) -> bool:
        return self.depth == 1


class ImpactSummary(BaseModel):
    """Affected counts by kind."""

    total_affected: int = 0
    tables_affected: int = 0
    views_affected: int = 0
    columns_affected: int = 0
    files_affected: int = 0
    files: list[str] = Field(default_factory=list, description="Affected files, sorted.")


class ImpactReport(BaseModel):
    """Complete impact report for one proposed change."""

    change_type: ChangeKind
    target_kind: TargetKind
    target: str = Field(..., description="Table name, or column name for column changes.")
    table: str = Field(..., description="Table the target belongs to (or is).")
    target_id: str | None = Field(
        default=None, description="Lineage node id of the target; None when not found."
    )
    found: bool = True
    severity: ImpactSeverity = ImpactSeverity.LOW
    summary: ImpactSummary = Field(default_factory=ImpactSummary)
    direct_impacts: list[ImpactItem] = Field(
        default_factory=list, description="Dependents one hop downstream."
    )
    transitive_impacts: list[ImpactItem] = Field(
        default_factory=list, description="Dependents two or more hops downstream."
    )
    suggestions: list[str] = Field(default_factory=list)

    @property
    def all_impacts(self) -> list[ImpactItem]:
        return [*self.direct_impacts, *self.transitive_impacts]


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------


class ImpactAnalyzer:
    """Builds :class:`ImpactReport` objects against one graph snapshot."""

    def __init__(self, graph: LineageGraph) -> None:
        self.graph = graph

    def analyze_table_change(
        self,
        table: str,
        change: ChangeKind | str = ChangeKind.MODIFY,
        schema: str | None = None,
    ) -> ImpactReport:
        """Report every dependent of *table* for the proposed *change*."""
        change = ChangeKind(change)
        node = self.graph.find_object(table, schema)
        if node is None or node.kind == LineageNodeKind.EXTERNAL:
            return _not_found(TargetKind.TABLE, table, table, change)

        items = self._impacts(node.id, f"Depends on table '{table}'")
        return self._report(TargetKind.TABLE, table, table, node.id, change, items)

    def analyze_column_change(
        self,
        table: str,
        column: str,
        change: ChangeKind | str = ChangeKind.MODIFY,
        schema: str | None = None,
    ) -> ImpactReport:
        """Report every dependent of ``table.column``.

        When the column has no node of its own, the dependents of its table
        are reported instead, since they may read the column.
        """
        change = ChangeKind(change)
        table_node = self.graph.find_object(table, schema)
        if table_node is None or table_node.kind == LineageNodeKind.EXTERNAL:
            return _not_found(TargetKind.COLUMN, column, table, change)

        key = table_node.metadata.get("qualified_key") or qualified_key(table, schema)
        column_id = column_node_id(key, column)
        if column_id in self.graph:
            items = self._impacts(column_id, f"Uses column '{column}'")
            return self._report(TargetKind.COLUMN, column, table, column_id, change, items)

        logger.debug("No node for column %s.%s; using table dependents", table, column)
        items = self._impacts(table_node.id, f"Depends on table '{table}' which owns '{column}'")
        return self._report(TargetKind.COLUMN, column, table, table_node.id, change, items)

    def analyze_rename(self, table: str, column: str | None = None) -> ImpactReport:
        if column is None:
            return self.analyze_table_change(table, ChangeKind.RENAME)
        return self.analyze_column_change(table, column, ChangeKind.RENAME)

    def analyze_drop(self, table: str, column: str | None = None) -> ImpactReport:
        if column is None:
            return self.analyze_table_change(table, ChangeKind.DROP)
        return self.analyze_column_change(table, column, ChangeKind.DROP)

    # -- internals ------------------------------------------------------------

    def _impacts(self, seed_id: str, reason: str) -> list[ImpactItem]:
        downstream = self.graph.get_downstream(seed_id, exclude_external=True)
        total = len(downstream.nodes)
        items: list[ImpactItem] = []
        for node in downstream.nodes:
            file_path, line_number = self._location(node)
            items.append(
                ImpactItem(
                    node=node,
                    depth=downstream.node_depths[node.id],
                    reason=reason,
                    severity=node_severity(node, total),
                    file_path=file_path,
                    line_number=line_number,
                )
            )
        return items

    def _location(self, node: LineageNode) -> tuple[str | None, int | None]:
        """Find a file for *node*: its own, its table's, or an incoming edge's."""
        if node.file_path:
            return node.file_path, node.line_number
        if node.parent_id:
            parent = self.graph.get_node(node.parent_id)
            if parent is not None and parent.file_path:
                return parent.file_path, parent.line_number
        for edge in self.graph.get_incoming(node.id):
            if edge.metadata.get("file"):
                return edge.metadata["file"], None
        return None, None

    def _report(
        self,
        target_kind: TargetKind,
        target: str,
        table: str,
        target_id: str,
        change: ChangeKind,
        items: list[ImpactItem],
    ) -> ImpactReport:
        direct = [i for i in items if i.is_direct]
        transitive = [i for i in items if not i.is_direct]
        summary = summarize(items)
        severity = report_severity(summary, change, has_transitive=bool(transitive))
        logger.debug(
            "Impact of %s on %s: %d direct, %d transitive, severity %s",
            change.value,
            target_id,
            len(direct),
            len(transitive),
            severity.value,
        )
        return ImpactReport(
            change_type=change,
            target_kind=target_kind,
            target=target,
            table=table,
            target_id=target_id,
            severity=severity,
            summary=summary,
            direct_impacts=direct,
            transitive_impacts=transitive,
            suggestions=suggestions(target, target_kind, change, severity),
        )


# ---------------------------------------------------------------------------
# Severity and wording
# ---------------------------------------------------------------------------


def base_severity(total: int) -> ImpactSeverity:
    if total >= CRITICAL_THRESHOLD:
        return ImpactSeverity.CRITICAL
    if total >= HIGH_THRESHOLD:
        return ImpactSeverity.HIGH
    if total >= MEDIUM_THRESHOLD:
        return ImpactSeverity.MEDIUM
    return ImpactSeverity.LOW


def report_severity(
    summary: ImpactSummary, change: ChangeKind, *, has_transitive: bool
) -> ImpactSeverity:
    """Overall severity of a change.

    The base level comes from the total impact count.  Impacts spanning
    more than one file, transitive impacts, or a rename raise it one level;
    a drop raises it one further level.  A change with no impacts stays
    ``LOW``.
    """
    if summary.total_affected == 0:
        return ImpactSeverity.LOW
    steps = 0
    if summary.files_affected > 1 or has_transitive or change == ChangeKind.RENAME:
        steps += 1
    if change == ChangeKind.DROP:
        steps += 1
    return base_severity(summary.total_affected).escalate(steps)


def node_severity(node: LineageNode, total: int) -> ImpactSeverity:
    """Severity of one impacted node given how many nodes are impacted in all."""
    ratio = total / _NODE_SEVERITY_SCALE
    if node.kind in (LineageNodeKind.VIEW, LineageNodeKind.CTE):
        return ImpactSeverity.HIGH if ratio > 0.5 else ImpactSeverity.MEDIUM
    if ratio > 1:
        return ImpactSeverity.HIGH
    if ratio > 0.3:
        return ImpactSeverity.MEDIUM
    return ImpactSeverity.LOW


def summarize(items: list[ImpactItem]) -> ImpactSummary:
    files = sorted({i.file_path for i in items if i.file_path})
    return ImpactSummary(
        total_affected=len(items),
        tables_affected=sum(1 for i in items if i.node.kind == LineageNodeKind.TABLE),
        views_affected=sum(1 for i in items if i.node.kind == LineageNodeKind.VIEW),
        columns_affected=sum(1 for i in items if i.node.kind == LineageNodeKind.COLUMN),
        files_affected=len(files),
        files=files,
    )


def suggestions(
    name: str, target_kind: TargetKind, change: ChangeKind, severity: ImpactSeverity
) -> list[str]:
    kind = target_kind.value
    result: list[str] = []
    if change == ChangeKind.DROP:
        result.append(
            f"Consider marking {kind} '{name}' as deprecated instead of dropping immediately"
        )
        audience = "users" if severity == ImpactSeverity.CRITICAL else "affected teams"
        result.append(f"Notify all {audience} about this change")
    if change == ChangeKind.RENAME:
        result.append(f"Update all references to {kind} '{name}' before renaming")
        result.append("Consider creating a synonym or alias for backward compatibility")
    if severity in (ImpactSeverity.HIGH, ImpactSeverity.CRITICAL):
        result.append("High impact: Schedule this change during a maintenance window")
        result.append("Create a rollback plan in case of issues")
    if target_kind == TargetKind.COLUMN:
        result.append("Verify all queries using this column handle the change correctly")
    return result


def _not_found(
    target_kind: TargetKind, target: str, table: str, change: ChangeKind
) -> ImpactReport:
    missing = table if target_kind == TargetKind.COLUMN else target
    return ImpactReport(
        change_type=change,
        target_kind=target_kind,
        target=target,
        table=table,
        found=False,
        suggestions=[
            f"table '{missing}' not found in lineage graph",
            "It may be an external table or not indexed yet",
        ],
    )
