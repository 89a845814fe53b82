"""Workspace index models: what each SQL file defines and references.

The index is the only input of the lineage builder.  Object identity is the
*qualified key*: a lower-cased ``schema.name`` (or bare ``name``) with quoting
removed, so ``"Sales"."Orders"``, ``sales.orders`` and ``[sales].[orders]``
collapse to one object.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_QUOTE_CHARS = "\"`[]"


def normalize_identifier(identifier: str) -> str:
    """Strip identifier quoting and lower-case the result."""
    return identifier.strip().strip(_QUOTE_CHARS).lower()


def qualified_key(name: str, schema: str | None = None) -> str:
    """Return the case-insensitive identity key for a table or view.

    A dotted *name* with no explicit *schema* keeps only its last two parts,
    so ``db.sales.orders`` and ``sales.orders`` share a key.
    """
    parts = [normalize_identifier(p) for p in name.split(".") if p.strip()]
    if schema:
        parts = [normalize_identifier(schema), *parts[-1:]]
    return ".".join(parts[-2:])


def split_qualified_key(key: str) -> tuple[str | None, str]:
    """Split a qualified key into ``(schema, name)``."""
    if "." in key:
        schema, name = key.rsplit(".", 1)
        return schema, name
    return None, key


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SchemaObjectKind(str, Enum):
    TABLE = "table"
    VIEW = "view"


class ReferenceKind(str, Enum):
    """How a statement uses a referenced table."""

    SELECT = "select"
    JOIN = "join"
    SUBQUERY = "subquery"
    CTE = "cte"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    MERGE = "merge"

    @property
    def is_input(self) -> bool:
        return self in _INPUT_KINDS

    @property
    def is_output(self) -> bool:
        return self in _OUTPUT_KINDS


_INPUT_KINDS = frozenset({ReferenceKind.SELECT, ReferenceKind.JOIN, ReferenceKind.SUBQUERY})
_OUTPUT_KINDS = frozenset(
    {ReferenceKind.INSERT, ReferenceKind.UPDATE, ReferenceKind.DELETE, ReferenceKind.MERGE}
)


# ---------------------------------------------------------------------------
# Definitions and references
# ---------------------------------------------------------------------------


class ColumnDefinition(BaseModel):
    name: str
    data_type: str = ""
    nullable: bool = True
    primary_key: bool = False


class SchemaDefinition(BaseModel):
    """A ``CREATE TABLE`` / ``CREATE VIEW`` found in a file."""

    name: str = Field(..., description="Object name as written, without schema.")
    schema_name: str | None = Field(default=None, description="Schema, if qualified.")
    kind: SchemaObjectKind = SchemaObjectKind.TABLE
    columns: list[ColumnDefinition] = Field(default_factory=list)
    file_path: str = ""
    line_number: int = 1
    sql: str | None = Field(default=None, description="Text of the defining statement.")
    statement_index: int = Field(
        default=0, description="Index of the defining statement within its file."
    )

    @property
    def qualified_key(self) -> str:
        return qualified_key(self.name, self.schema_name)

    @property
    def display_name(self) -> str:
        return f"{self.schema_name}.{self.name}" if self.schema_name else self.name


class TableReference(BaseModel):
    """A table used by a statement."""

    table_name: str
    schema_name: str | None = None
    reference_kind: ReferenceKind
    file_path: str = ""
    line_number: int = 1
    statement_index: int = 0
    alias: str | None = None
    context: str = Field(default="", description="Clause keyword, e.g. FROM or INSERT INTO.")

    @property
    def qualified_key(self) -> str:
        return qualified_key(self.table_name, self.schema_name)


class ColumnFlow(BaseModel):
    """One output column of a write/DDL statement and a base column feeding it."""

    source_table: str
    source_column: str
    target_table: str
    target_column: str
    statement_index: int = 0
    expression: str | None = None


class FileAnalysis(BaseModel):
    """Everything extracted from one file."""

    file_path: str
    definitions: list[SchemaDefinition] = Field(default_factory=list)
    references: list[TableReference] = Field(default_factory=list)
    column_flows: list[ColumnFlow] = Field(default_factory=list)
    statement_count: int = 0
    content_hash: str = ""
    parse_errors: list[str] = Field(default_factory=list)

    def statement_indexes(self) -> list[int]:
        """Return every statement index that defines or references something."""
        indexes = {d.statement_index for d in self.definitions}
        indexes.update(r.statement_index for r in self.references)
        return sorted(indexes)


class WorkspaceIndex(BaseModel):
    """File path → :class:`FileAnalysis` for every analysed file."""

    files: dict[str, FileAnalysis] = Field(default_factory=dict)

    def add(self, analysis: FileAnalysis) -> None:
        self.files[analysis.file_path] = analysis

    def remove(self, file_path: str) -> bool:
        return self.files.pop(file_path, None) is not None

    @property
    def definition_map(self) -> dict[str, list[SchemaDefinition]]:
        """Qualified key → every definition of that object, in file order."""
        result: dict[str, list[SchemaDefinition]] = {}
        for analysis in self.files.values():
            for definition in analysis.definitions:
                result.setdefault(definition.qualified_key, []).append(definition)
        return result

    @property
    def reference_map(self) -> dict[str, list[TableReference]]:
        """Qualified key → every reference to that object, in file order."""
        result: dict[str, list[TableReference]] = {}
        for analysis in self.files.values():
            for reference in analysis.references:
                result.setdefault(reference.qualified_key, []).append(reference)
        return result
