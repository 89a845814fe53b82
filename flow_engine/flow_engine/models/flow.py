"""Flow graph models for single-statement analysis.

A :class:`ParseResult` is produced fresh for every analysed statement and is
never mutated once returned.  Field names are the serialized wire format
consumed by renderers and exporters, so they stay stable.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator

# Upper bound on ``FlowNode.details`` entries.
MAX_NODE_DETAILS = 10


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class FlowNodeKind(str, Enum):
    """What a flow node represents within a query."""

    TABLE = "table"
    FILTER = "filter"
    JOIN = "join"
    AGGREGATE = "aggregate"
    SORT = "sort"
    LIMIT = "limit"
    SELECT = "select"
    RESULT = "result"
    CTE = "cte"
    UNION = "union"
    SUBQUERY = "subquery"
    WINDOW = "window"
    CASE = "case"


class TableCategory(str, Enum):
    """Where the rows of a table node come from."""

    PHYSICAL = "physical"
    DERIVED = "derived"
    CTE_REFERENCE = "cte_reference"
    TABLE_FUNCTION = "table_function"
    UNKNOWN = "unknown"


class AccessMode(str, Enum):
    READ = "read"
    WRITE = "write"


class Complexity(str, Enum):
    SIMPLE = "Simple"
    MODERATE = "Moderate"
    COMPLEX = "Complex"
    VERY_COMPLEX = "Very Complex"


class HintKind(str, Enum):
    WARNING = "warning"
    INFO = "info"
    ERROR = "error"


class HintSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FunctionCategory(str, Enum):
    AGGREGATE = "aggregate"
    WINDOW = "window"
    SCALAR = "scalar"
    TVF = "tvf"


# ---------------------------------------------------------------------------
# Node payloads
# ---------------------------------------------------------------------------


class WindowFunctionDetail(BaseModel):
    """One window function call in the SELECT list."""

    name: str
    alias: str | None = None
    partition_by: list[str] = Field(default_factory=list)
    order_by: list[str] = Field(default_factory=list)
    frame: str | None = None


class AggregateFunctionDetail(BaseModel):
    """One aggregate function call in the SELECT list."""

    name: str
    expression: str
    alias: str | None = None
    source_column: str | None = None
    distinct: bool = False


class CaseBranchDetail(BaseModel):
    when: str
    then: str


class CaseDetail(BaseModel):
    """One CASE expression in the SELECT list."""

    alias: str | None = None
    branches: list[CaseBranchDetail] = Field(default_factory=list)
    else_value: str | None = None


# ---------------------------------------------------------------------------
# Nodes and edges
# ---------------------------------------------------------------------------


class FlowEdge(BaseModel):
    """Directed edge between two nodes of the same statement graph."""

    id: str = Field(..., description="Unique within the statement.")
    source: str = Field(..., description="Id of the upstream node.")
    target: str = Field(..., description="Id of the downstream node.")
    label: str | None = Field(default=None, description="Optional display label.")
    clause_type: str | None = Field(
        default=None,
        description="Clause that produced the edge (join, on, where, flow, ...).",
    )
    sql_clause: str | None = Field(default=None, description="SQL text behind the edge.")


class FlowNode(BaseModel):
    """One visual and semantic unit of a single query."""

    id: str = Field(..., description="Unique within the statement.")
    kind: FlowNodeKind
    label: str
    description: str | None = None
    details: list[str] = Field(
        default_factory=list,
        description=f"Short human-readable facts, at most {MAX_NODE_DETAILS}.",
    )
    source_line: int | None = Field(default=None, description="1-indexed first line.")
    end_line: int | None = Field(default=None, description="1-indexed last line.")
    width: int = 140
    height: int = 60

    table_category: TableCategory | None = None
    access_mode: AccessMode | None = None
    window_details: list[WindowFunctionDetail] | None = None
    aggregate_details: list[AggregateFunctionDetail] | None = None
    case_details: list[CaseDetail] | None = None
    columns: list[str] | None = Field(
        default=None, description="Output column names of a select node."
    )

    children: list[FlowNode] | None = Field(
        default=None, description="Internal nodes of a CTE or subquery."
    )
    child_edges: list[FlowEdge] | None = None
    expanded: bool | None = None
    depth: int = 0

    @field_validator("details")
    @classmethod
    def bound_details(cls, v: list[str]) -> list[str]:
        return v[:MAX_NODE_DETAILS]


# ---------------------------------------------------------------------------
# Stats, hints, lineage
# ---------------------------------------------------------------------------


class QueryStats(BaseModel):
    """Construct counters for one statement (or a batch) plus derived scores."""

    tables: int = 0
    joins: int = 0
    subqueries: int = 0
    ctes: int = 0
    aggregations: int = 0
    window_functions: int = 0
    unions: int = 0
    conditions: int = 0
    complexity_score: int = 0
    complexity: Complexity = Complexity.SIMPLE

    max_cte_depth: int = Field(default=0, description="Deepest CTE-in-CTE nesting.")
    max_fan_out: int = Field(default=0, description="Largest out-degree of any node.")
    critical_path_length: int = Field(
        default=0, description="Nodes on the longest source-to-result chain."
    )


class OptimizationHint(BaseModel):
    """Advisory finding about a statement.  Never blocks graph construction."""

    kind: HintKind
    message: str
    suggestion: str | None = None
    severity: HintSeverity | None = None
    node_id: str | None = None
    category: str = "performance"


class ColumnSource(BaseModel):
    table: str
    column: str
    node_id: str


class ColumnLineage(BaseModel):
    """Base columns feeding one output column."""

    output_column: str
    sources: list[ColumnSource] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class ParseResult(BaseModel):
    """Everything derived from one statement.

    When the parser rejected the statement ``error`` is set and the graph,
    stats and derived data are empty.
    """

    sql: str = ""
    dialect: str = ""
    statement_kind: str = "unknown"
    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)
    stats: QueryStats = Field(default_factory=QueryStats)
    hints: list[OptimizationHint] = Field(default_factory=list)
    column_lineage: list[ColumnLineage] = Field(default_factory=list)
    table_usage_counts: dict[str, int] = Field(default_factory=dict)
    function_usage: dict[str, FunctionCategory] = Field(default_factory=dict)
    error: str | None = Field(default=None, description="Parser error message, if any.")
    error_line: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def node(self, node_id: str) -> FlowNode | None:
        """Return the top-level node with *node_id*, if present."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def nodes_of_kind(self, kind: FlowNodeKind) -> list[FlowNode]:
        return [n for n in self.nodes if n.kind == kind]


class ValidationKind(str, Enum):
    EMPTY_INPUT = "empty_input"
    SIZE_LIMIT = "size_limit"
    QUERY_COUNT_LIMIT = "query_count_limit"


class ValidationDetails(BaseModel):
    actual: int
    limit: int
    unit: str


class ValidationIssue(BaseModel):
    """A pre-flight check that rejected the input before parsing."""

    kind: ValidationKind
    message: str
    details: ValidationDetails | None = None


class StatementRange(BaseModel):
    """Inclusive, 1-indexed line range of a statement in the batch text."""

    start_line: int
    end_line: int


class BatchResult(BaseModel):
    """Per-statement results of a multi-statement text, in order."""

    statements: list[ParseResult] = Field(default_factory=list)
    total_stats: QueryStats = Field(default_factory=QueryStats)
    statement_ranges: list[StatementRange] = Field(default_factory=list)
    validation_error: ValidationIssue | None = Field(
        default=None, description="Set when pre-flight checks rejected the input."
    )

    @property
    def successful_count(self) -> int:
        return sum(1 for s in self.statements if s.ok)

    @property
    def error_count(self) -> int:
        return sum(1 for s in self.statements if not s.ok)
