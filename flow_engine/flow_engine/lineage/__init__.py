"""Workspace lineage graph, traversal and change-impact analysis.

The graph is rebuilt wholesale from a workspace index and is read-only
afterwards; every analyzer here queries one graph snapshot.
"""

from __future__ import annotations

from flow_engine.lineage.builder import LineageBuilder
from flow_engine.lineage.column_tracker import ColumnLineageResult, ColumnLineageTracker
from flow_engine.lineage.flow_analyzer import FlowAnalyzer
from flow_engine.lineage.graph import LineageGraph
from flow_engine.lineage.impact_analyzer import (
    ChangeKind,
    ImpactAnalyzer,
    ImpactItem,
    ImpactReport,
    ImpactSeverity,
    ImpactSummary,
    TargetKind,
)

__all__ = [
    "ChangeKind",
    "ColumnLineageResult",
    "ColumnLineageTracker",
    "FlowAnalyzer",
    "ImpactAnalyzer",
    "ImpactItem",
    "ImpactReport",
    "ImpactSeverity",
    "ImpactSummary",
    "LineageBuilder",
    "LineageGraph",
    "TargetKind",
]
