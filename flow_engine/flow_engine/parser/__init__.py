"""SQL statement analysis: flow graphs, stats, hints and batching."""

from flow_engine.parser.batch import locate_statements, process_batch
from flow_engine.parser.flow_builder import analyze_statement, build_flow
from flow_engine.parser.metrics import apply_complexity, classify_score, merge_stats
from flow_engine.parser.splitter import count_statements, split_statements
from flow_engine.parser.validation import (
    SqlValidationError,
    ValidationLimits,
    assert_sql_valid,
    validate_sql,
)

__all__ = [
    "SqlValidationError",
    "ValidationLimits",
    "analyze_statement",
    "apply_complexity",
    "assert_sql_valid",
    "build_flow",
    "classify_score",
    "count_statements",
    "locate_statements",
    "merge_stats",
    "process_batch",
    "split_statements",
    "validate_sql",
]
