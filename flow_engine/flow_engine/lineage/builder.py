"""Workspace lineage graph construction.

:meth:`LineageBuilder.build_from_index` clears the target graph and
rebuilds it from a :class:`~flow_engine.models.workspace.WorkspaceIndex`:

1. one table or view node per distinct qualified definition (the first
   definition wins);
2. optionally one column node per declared column, with a ``contains``
   edge from its table;
3. for every statement of every file, an edge from each table it reads to
   each table it writes;
4. optionally column-to-column edges for the column flows of INSERT and
   CREATE ... AS SELECT statements.

Edges never cross statements: two unrelated statements in one file do not
link each other's tables.  Tables written anywhere in the workspace are
created before any read is resolved, so a written table is never mistaken
for an external one.  A failure while processing one file is logged, the
path is recorded in ``LineageGraph.skipped_files`` and the rest of the
workspace still builds.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field

from flow_engine.lineage.graph import LineageGraph
from flow_engine.models.lineage import (
    LineageEdge,
    LineageEdgeKind,
    LineageNode,
    LineageNodeKind,
    column_node_id,
    edge_id,
    object_node_id,
)
from flow_engine.models.workspace import (
    ColumnDefinition,
    FileAnalysis,
    ReferenceKind,
    SchemaDefinition,
    SchemaObjectKind,
    TableReference,
    WorkspaceIndex,
    qualified_key,
    split_qualified_key,
)
from flow_engine.telemetry.profiling import profile_operation

logger = logging.getLogger(__name__)

# A CREATE TABLE only writes data when it is populated from a query.
_AS_QUERY = re.compile(r"\bAS\s*(\(|SELECT\b|WITH\b)", re.IGNORECASE)


@dataclass
class _StatementPlan:
    """Reads and writes of one statement, keyed by qualified key."""

    file_path: str
    statement_index: int
    inputs: dict[str, str] = field(default_factory=dict)
    outputs: dict[str, str] = field(default_factory=dict)
    join_inputs: set[str] = field(default_factory=set)


class LineageBuilder:
    """Builds a :class:`LineageGraph` from a workspace index.

    Parameters
    ----------
    include_external:
        Create ``external`` nodes for referenced objects with no definition.
        When ``False`` such references produce no edges.
    include_columns:
        Create column nodes, ``contains`` edges and column-flow edges.
    """

    def __init__(self, *, include_external: bool = True, include_columns: bool = True) -> None:
        self.include_external = include_external
        self.include_columns = include_columns
        self._by_key: dict[str, str] = {}
        self._by_name: dict[str, list[str]] = defaultdict(list)

    @profile_operation("lineage.build")
    def build_from_index(
        self, index: WorkspaceIndex, graph: LineageGraph | None = None
    ) -> LineageGraph:
        """Clear *graph* (or a new graph) and populate it from *index*."""
        graph = graph if graph is not None else LineageGraph()
        graph.clear()
        self._by_key.clear()
        self._by_name.clear()

        definitions = self._add_definitions(graph, index)
        if self.include_columns:
            for definition in definitions:
                self._add_columns(graph, definition)

        plans_by_file: dict[str, list[_StatementPlan]] = {}
        for path, analysis in index.files.items():
            try:
                plans_by_file[path] = self._plan_file(analysis)
            except Exception:
                logger.warning("Skipping %s: malformed index entry", path, exc_info=True)
                graph.skipped_files.append(path)

        # Every written table exists before any read is resolved, so the
        # node kind of a table never depends on the order files are indexed.
        for path in plans_by_file:
            for reference in index.files[path].references:
                if reference.reference_kind.is_output:
                    self._resolve(
                        graph, reference.qualified_key, _display(reference), written_by=path
                    )

        for path, plans in plans_by_file.items():
            try:
                for plan in plans:
                    self._add_statement_edges(graph, plan)
                if self.include_columns:
                    self._add_column_flows(graph, index.files[path])
            except Exception:
                logger.warning("Skipping %s: lineage edges could not be built", path, exc_info=True)
                graph.skipped_files.append(path)

        stats = graph.stats()
        logger.info(
            "Lineage graph rebuilt: %d nodes, %d edges (%d file(s) skipped)",
            stats.nodes,
            stats.edges,
            stats.skipped_files,
        )
        return graph

    # -- pass 1 and 2: definitions -------------------------------------------

    def _add_definitions(
        self, graph: LineageGraph, index: WorkspaceIndex
    ) -> list[SchemaDefinition]:
        """Create one node per distinct definition; return the winning definitions."""
        winners: list[SchemaDefinition] = []
        for analysis in index.files.values():
            for definition in analysis.definitions:
                key = definition.qualified_key
                if key in self._by_key:
                    logger.debug(
                        "Duplicate definition of %s in %s ignored", key, definition.file_path
                    )
                    continue
                kind = (
                    LineageNodeKind.VIEW
                    if definition.kind == SchemaObjectKind.VIEW
                    else LineageNodeKind.TABLE
                )
                node = graph.add_node(
                    LineageNode(
                        id=object_node_id(kind, key),
                        kind=kind,
                        name=definition.display_name,
                        file_path=definition.file_path,
                        line_number=definition.line_number,
                        metadata={
                            "qualified_key": key,
                            "schema": definition.schema_name,
                            "column_count": len(definition.columns),
                        },
                    )
                )
                self._register(key, node.id)
                winners.append(definition)
        return winners

    def _add_columns(self, graph: LineageGraph, definition: SchemaDefinition) -> None:
        table_id = self._by_key.get(definition.qualified_key)
        if table_id is None:
            return
        for column in definition.columns:
            self._column_node(graph, table_id, definition.qualified_key, column.name, column)

    def _column_node(
        self,
        graph: LineageGraph,
        table_id: str,
        table_key: str,
        column: str,
        info: ColumnDefinition | None = None,
    ) -> str:
        table = graph.get_node(table_id)
        node = graph.add_node(
            LineageNode(
                id=column_node_id(table_key, column),
                kind=LineageNodeKind.COLUMN,
                name=column,
                file_path=table.file_path if table else None,
                line_number=table.line_number if table else None,
                metadata={"table": table.name if table else table_key},
                parent_id=table_id,
                column_info=info,
            )
        )
        graph.add_edge(
            LineageEdge(
                id=edge_id(table_id, node.id),
                source_id=table_id,
                target_id=node.id,
                metadata={"relationship": "contains"},
            )
        )
        return node.id

    # -- pass 3: statement edges ---------------------------------------------

    def _plan_file(self, analysis: FileAnalysis) -> list[_StatementPlan]:
        """Partition one file's references into per-statement inputs and outputs."""
        by_statement: dict[int, list[TableReference]] = defaultdict(list)
        for reference in analysis.references:
            by_statement[reference.statement_index].append(reference)
        definitions_by_statement: dict[int, list[SchemaDefinition]] = defaultdict(list)
        for definition in analysis.definitions:
            definitions_by_statement[definition.statement_index].append(definition)

        plans: list[_StatementPlan] = []
        for statement_index in sorted(set(by_statement) | set(definitions_by_statement)):
            plan = _StatementPlan(analysis.file_path, statement_index)
            for reference in by_statement.get(statement_index, []):
                key = reference.qualified_key
                if reference.reference_kind.is_input:
                    plan.inputs.setdefault(key, _display(reference))
                    if reference.reference_kind == ReferenceKind.JOIN:
                        plan.join_inputs.add(key)
                elif reference.reference_kind.is_output:
                    plan.outputs.setdefault(key, _display(reference))

            if plan.inputs:
                for definition in definitions_by_statement.get(statement_index, []):
                    if _writes_rows(definition):
                        plan.outputs.setdefault(definition.qualified_key, definition.display_name)

            # A table both read and written in one statement stays an output only.
            for key in set(plan.inputs) & set(plan.outputs):
                del plan.inputs[key]
                plan.join_inputs.discard(key)
            if plan.inputs and plan.outputs:
                plans.append(plan)
        return plans

    def _add_statement_edges(self, graph: LineageGraph, plan: _StatementPlan) -> None:
        for out_key, out_name in plan.outputs.items():
            target_id = self._resolve(graph, out_key, out_name, written_by=plan.file_path)
            if target_id is None:
                continue
            for in_key, in_name in plan.inputs.items():
                source_id = self._resolve(graph, in_key, in_name)
                if source_id is None:
                    continue
                graph.add_edge(
                    LineageEdge(
                        id=edge_id(source_id, target_id),
                        source_id=source_id,
                        target_id=target_id,
                        kind=LineageEdgeKind.JOIN
                        if in_key in plan.join_inputs
                        else LineageEdgeKind.DIRECT,
                        metadata={
                            "file": plan.file_path,
                            "statement_index": plan.statement_index,
                            "inputs": len(plan.inputs),
                            "outputs": len(plan.outputs),
                        },
                    )
                )

    # -- pass 4: column flows ------------------------------------------------

    def _add_column_flows(self, graph: LineageGraph, analysis: FileAnalysis) -> None:
        for flow in analysis.column_flows:
            source_key = qualified_key(flow.source_table)
            target_key = qualified_key(flow.target_table)
            source_table = self._lookup(source_key)
            target_table = self._lookup(target_key)
            if source_table is None or target_table is None or source_table == target_table:
                continue
            source_id = self._column_node(
                graph, source_table, self._key_of(graph, source_table), flow.source_column
            )
            target_id = self._column_node(
                graph, target_table, self._key_of(graph, target_table), flow.target_column
            )
            graph.add_edge(
                LineageEdge(
                    id=edge_id(source_id, target_id),
                    source_id=source_id,
                    target_id=target_id,
                    metadata={
                        "relationship": "column_flow",
                        "file": analysis.file_path,
                        "statement_index": flow.statement_index,
                        "expression": flow.expression,
                    },
                )
            )

    # -- resolution ----------------------------------------------------------

    def _register(self, key: str, node_id: str) -> None:
        self._by_key[key] = node_id
        _, name = split_qualified_key(key)
        self._by_name[name].append(key)

    def _lookup(self, key: str) -> str | None:
        """Return the node id for *key* without creating anything.

        ``schema.table`` falls back to a bare ``table`` node, and a bare
        ``table`` falls back to the single qualified definition with that
        name.
        """
        node_id = self._by_key.get(key)
        if node_id is not None:
            return node_id
        schema, name = split_qualified_key(key)
        if schema is not None:
            return self._by_key.get(name)
        candidates = self._by_name.get(name, [])
        if len(candidates) == 1:
            return self._by_key[candidates[0]]
        return None

    def _resolve(
        self,
        graph: LineageGraph,
        key: str,
        display_name: str,
        *,
        written_by: str | None = None,
    ) -> str | None:
        """Return the node for *key*, creating it when no definition exists.

        An undefined table that a statement writes is a workspace table and
        gets an inferred ``table`` node; an undefined table that is only read
        becomes an ``external`` node when externals are enabled.
        """
        node_id = self._lookup(key)
        if node_id is not None:
            return node_id
        if written_by is not None:
            node = graph.add_node(
                LineageNode(
                    id=object_node_id(LineageNodeKind.TABLE, key),
                    kind=LineageNodeKind.TABLE,
                    name=display_name,
                    file_path=written_by,
                    metadata={"qualified_key": key, "inferred": True},
                )
            )
            self._register(key, node.id)
            return node.id
        if not self.include_external:
            return None
        node = graph.add_node(
            LineageNode(
                id=object_node_id(LineageNodeKind.EXTERNAL, key),
                kind=LineageNodeKind.EXTERNAL,
                name=display_name,
                metadata={"qualified_key": key, "external": True},
            )
        )
        self._register(key, node.id)
        return node.id

    @staticmethod
    def _key_of(graph: LineageGraph, node_id: str) -> str:
        node = graph.get_node(node_id)
        if node is not None and "qualified_key" in node.metadata:
            return node.metadata["qualified_key"]
        return node_id.split(":", 1)[-1]


def _display(reference: TableReference) -> str:
    if reference.schema_name:
        return f"{reference.schema_name}.{reference.table_name}"
    return reference.table_name


def _writes_rows(definition: SchemaDefinition) -> bool:
    """True when a definition is populated from a query (view or CTAS)."""
    if definition.kind == SchemaObjectKind.VIEW:
        return True
    return bool(definition.sql and _AS_QUERY.search(definition.sql))
