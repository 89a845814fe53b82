"""Structural contracts a parser backend has to meet.

The flow builder and the workspace extractor only ever see a
:class:`SqlToolkit`; any object with a conforming ``parser`` attribute can be
registered as the backend.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ._types import Dialect, ParsedStatement


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


@runtime_checkable
class SqlParser(Protocol):
    """Parse SQL strings into the toolkit statement model."""

    def parse_statement(
        self,
        sql: str,
        dialect: Dialect = Dialect.MYSQL,
        *,
        max_depth: int = 100,
    ) -> ParsedStatement:
        """Parse a single SQL statement.

        Args:
            sql: The SQL string to parse.  Only the first statement is used.
            dialect: Source dialect.
            max_depth: Expression nesting beyond this depth is collapsed
                into an unknown expression instead of being converted.

        Returns:
            ``ParsedStatement`` wrapping the converted statement.

        Raises:
            SqlParseError: If the SQL is empty or cannot be parsed.
        """
        ...


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


@runtime_checkable
class SqlToolkit(Protocol):
    """Composite of all SQL capabilities the engine consumes."""

    @property
    def parser(self) -> SqlParser: ...
