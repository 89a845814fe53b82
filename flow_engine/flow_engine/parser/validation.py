"""Pre-flight checks applied to SQL text before it is parsed."""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

from flow_engine.models.flow import ValidationDetails, ValidationIssue, ValidationKind

DEFAULT_MAX_SQL_SIZE_BYTES = 100 * 1024
DEFAULT_MAX_QUERY_COUNT = 50

_STRINGS = re.compile(r"'[^']*'|\"[^\"]*\"")
_BLOCK_COMMENTS = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENTS = re.compile(r"--[^\n]*")


class ValidationLimits(BaseModel):
    """Thresholds for :func:`validate_sql`."""

    max_sql_size_bytes: int = Field(default=DEFAULT_MAX_SQL_SIZE_BYTES, gt=0)
    max_query_count: int = Field(default=DEFAULT_MAX_QUERY_COUNT, gt=0)


class SqlValidationError(Exception):
    """Raised by :func:`assert_sql_valid` when a pre-flight check fails."""

    def __init__(self, issue: ValidationIssue) -> None:
        super().__init__(issue.message)
        self.issue = issue

    @property
    def kind(self) -> ValidationKind:
        return self.issue.kind


def format_bytes(size: int) -> str:
    """Return *size* as ``"512 bytes"``, ``"100.0KB"`` or ``"1.5MB"``."""
    if size < 1024:
        return f"{size} bytes"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}KB"
    return f"{size / (1024 * 1024):.1f}MB"


def estimate_statement_count(sql: str) -> int:
    """Cheaply estimate the number of statements by counting semicolons.

    Used before splitting so that oversized batches are rejected without a
    full scan.
    """
    cleaned = _STRINGS.sub("", sql)
    cleaned = _BLOCK_COMMENTS.sub("", cleaned)
    cleaned = _LINE_COMMENTS.sub("", cleaned).strip()
    if not cleaned:
        return 0
    semicolons = cleaned.count(";")
    if semicolons == 0:
        return 1
    return semicolons if cleaned.endswith(";") else semicolons + 1


def validate_sql(sql: str, limits: ValidationLimits | None = None) -> ValidationIssue | None:
    """Return the first failed check for *sql*, or ``None`` if it passes.

    Checks run in order: empty input, size in UTF-8 bytes, then the
    estimated statement count.
    """
    limits = limits or ValidationLimits()

    if not sql or not sql.strip():
        return ValidationIssue(
            kind=ValidationKind.EMPTY_INPUT,
            message="No SQL provided",
            details=ValidationDetails(actual=0, limit=1, unit="characters"),
        )

    size = len(sql.encode("utf-8"))
    if size > limits.max_sql_size_bytes:
        return ValidationIssue(
            kind=ValidationKind.SIZE_LIMIT,
            message=(
                "SQL input exceeds maximum size limit of "
                f"{format_bytes(limits.max_sql_size_bytes)}"
            ),
            details=ValidationDetails(
                actual=size, limit=limits.max_sql_size_bytes, unit="bytes"
            ),
        )

    count = estimate_statement_count(sql)
    if count > limits.max_query_count:
        return ValidationIssue(
            kind=ValidationKind.QUERY_COUNT_LIMIT,
            message=(
                f"SQL contains approximately {count} statements, "
                f"exceeding the limit of {limits.max_query_count}"
            ),
            details=ValidationDetails(
                actual=count, limit=limits.max_query_count, unit="statements"
            ),
        )
    return None


def assert_sql_valid(sql: str, limits: ValidationLimits | None = None) -> None:
    """Raise :class:`SqlValidationError` if *sql* fails a pre-flight check."""
    issue = validate_sql(sql, limits)
    if issue is not None:
        raise SqlValidationError(issue)
