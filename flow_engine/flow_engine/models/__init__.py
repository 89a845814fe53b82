"""Domain models for the sqlflow engine."""

from flow_engine.models.flow import (
    AccessMode,
    AggregateFunctionDetail,
    BatchResult,
    CaseBranchDetail,
    CaseDetail,
    ColumnLineage,
    ColumnSource,
    Complexity,
    FlowEdge,
    FlowNode,
    FlowNodeKind,
    FunctionCategory,
    HintKind,
    HintSeverity,
    OptimizationHint,
    ParseResult,
    QueryStats,
    StatementRange,
    TableCategory,
    ValidationDetails,
    ValidationIssue,
    ValidationKind,
    WindowFunctionDetail,
)
from flow_engine.models.lineage import (
    FlowDirection,
    FlowResult,
    GraphStats,
    LineageEdge,
    LineageEdgeKind,
    LineageNode,
    LineageNodeKind,
    LineagePath,
)
from flow_engine.models.workspace import (
    ColumnDefinition,
    ColumnFlow,
    FileAnalysis,
    ReferenceKind,
    SchemaDefinition,
    SchemaObjectKind,
    TableReference,
    WorkspaceIndex,
    qualified_key,
)

__all__ = [
    "AccessMode",
    "AggregateFunctionDetail",
    "BatchResult",
    "CaseBranchDetail",
    "CaseDetail",
    "ColumnDefinition",
    "ColumnFlow",
    "ColumnLineage",
    "ColumnSource",
    "Complexity",
    "FileAnalysis",
    "FlowDirection",
    "FlowEdge",
    "FlowNode",
    "FlowNodeKind",
    "FlowResult",
    "FunctionCategory",
    "GraphStats",
    "HintKind",
    "HintSeverity",
    "LineageEdge",
    "LineageEdgeKind",
    "LineageNode",
    "LineageNodeKind",
    "LineagePath",
    "OptimizationHint",
    "ParseResult",
    "QueryStats",
    "ReferenceKind",
    "SchemaDefinition",
    "SchemaObjectKind",
    "StatementRange",
    "TableCategory",
    "TableReference",
    "ValidationDetails",
    "ValidationIssue",
    "ValidationKind",
    "WindowFunctionDetail",
    "WorkspaceIndex",
    "qualified_key",
]
