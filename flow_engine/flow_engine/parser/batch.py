"""Multi-statement processing.

The text is validated, split on top-level semicolons and every statement is
analysed on its own.  A statement that fails to parse yields an error
result in its slot; it never aborts the batch.
"""

from __future__ import annotations

import logging

from flow_engine.models.flow import BatchResult, ParseResult, StatementRange
from flow_engine.parser.flow_builder import analyze_statement
from flow_engine.parser.line_numbers import shift_lines
from flow_engine.parser.metrics import merge_stats
from flow_engine.parser.splitter import split_statements
from flow_engine.parser.validation import ValidationLimits, validate_sql
from flow_engine.sql_toolkit import Dialect
from flow_engine.telemetry.profiling import profile_operation

logger = logging.getLogger(__name__)

# Length of the first-line prefix used to find a statement in the source.
_PREFIX_LENGTH = 30


def locate_statements(sql: str, statements: list[str]) -> list[StatementRange]:
    """Estimate the 1-indexed line range of each statement within *sql*.

    The search for each statement starts where the previous one began and
    stops at the first line containing a prefix of the statement's first
    line.
    """
    lines = sql.split("\n")
    ranges: list[StatementRange] = []
    current_line = 1
    for stmt in statements:
        start_line = current_line
        first_line = stmt.strip().split("\n")[0]
        prefix = first_line[:_PREFIX_LENGTH]
        for index in range(current_line - 1, len(lines)):
            if prefix in lines[index]:
                start_line = index + 1
                break
        line_count = len(stmt.split("\n"))
        ranges.append(StatementRange(start_line=start_line, end_line=start_line + line_count - 1))
        current_line = start_line + line_count
    return ranges


@profile_operation("batch.process")
def process_batch(
    sql: str,
    dialect: Dialect = Dialect.MYSQL,
    *,
    limits: ValidationLimits | None = None,
    max_expression_depth: int = 12,
    max_details: int = 10,
) -> BatchResult:
    """Analyse every statement of *sql*.

    Returns
    -------
    BatchResult
        One :class:`ParseResult` per statement with node lines shifted to
        document positions, the line range of each statement and the merged
        stats.  When pre-flight validation fails, ``validation_error`` is set
        and no statement is analysed.
    """
    issue = validate_sql(sql, limits)
    if issue is not None:
        logger.info("Batch rejected (%s): %s", issue.kind.value, issue.message)
        return BatchResult(validation_error=issue)

    statements = split_statements(sql)
    ranges = locate_statements(sql, statements)
    results: list[ParseResult] = []

    for stmt, line_range in zip(statements, ranges):
        result = analyze_statement(
            stmt,
            dialect,
            max_expression_depth=max_expression_depth,
            max_details=max_details,
        )
        offset = line_range.start_line - 1
        shift_lines(result.nodes, offset)
        if result.error_line is not None:
            result.error_line += offset
        results.append(result)

    failed = sum(1 for r in results if not r.ok)
    if failed:
        logger.debug("Batch: %d of %d statement(s) failed to parse", failed, len(results))

    return BatchResult(
        statements=results,
        total_stats=merge_stats([r.stats for r in results if r.ok]),
        statement_ranges=ranges,
    )
