"""Per-workspace lineage session.

A :class:`LineageSession` owns the workspace index and the current lineage
graph.  File updates only touch the index; :meth:`LineageSession.rebuild`
builds a fresh graph from a snapshot of the index and swaps it in as one
step, so readers always see exactly one completed rebuild.

Concurrent :meth:`~LineageSession.rebuild` calls are coalesced: the first
caller builds, every caller arriving while that build is in flight waits
for and receives the same graph.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from concurrent.futures import Future

from flow_engine.config import Settings, load_settings
from flow_engine.lineage.builder import LineageBuilder
from flow_engine.lineage.column_tracker import ColumnLineageResult, ColumnLineageTracker
from flow_engine.lineage.graph import LineageGraph
from flow_engine.lineage.impact_analyzer import ChangeKind, ImpactAnalyzer, ImpactReport
from flow_engine.models.lineage import FlowResult, GraphStats, LineageNode, LineageNodeKind
from flow_engine.models.workspace import WorkspaceIndex
from flow_engine.sql_toolkit import Dialect
from flow_engine.telemetry.profiling import profiled
from flow_engine.workspace.extractor import content_hash, extract_file

logger = logging.getLogger(__name__)


class LineageSession:
    """Workspace index plus the lineage graph built from it.

    Parameters
    ----------
    settings:
        Supplies the dialect and the lineage options.  Loaded from the
        environment when omitted.
    dialect:
        Overrides ``settings.default_dialect``.
    """

    def __init__(self, settings: Settings | None = None, *, dialect: Dialect | None = None) -> None:
        self.settings = settings or load_settings()
        self.dialect = dialect or self.settings.default_dialect
        self.index = WorkspaceIndex()
        self._graph = LineageGraph()
        self._lock = threading.Lock()
        self._inflight: Future[LineageGraph] | None = None
        self._generation = 0
        self._built_generation = 0

    # -- index maintenance ----------------------------------------------------

    def update_file(self, file_path: str, sql: str) -> bool:
        """Re-extract *file_path* if its content changed.

        Returns
        -------
        bool
            ``True`` when the index changed.
        """
        digest = content_hash(sql)
        with self._lock:
            current = self.index.files.get(file_path)
            if current is not None and current.content_hash == digest:
                return False
        analysis = extract_file(file_path, sql, self.dialect)
        with self._lock:
            self.index.add(analysis)
            self._generation += 1
        if analysis.parse_errors:
            logger.debug(
                "%s: %d statement(s) could not be parsed", file_path, len(analysis.parse_errors)
            )
        return True

    def update_files(self, files: Mapping[str, str]) -> int:
        """Update every file of *files*; return how many changed."""
        return sum(1 for path, sql in files.items() if self.update_file(path, sql))

    def remove_file(self, file_path: str) -> bool:
        with self._lock:
            removed = self.index.remove(file_path)
            if removed:
                self._generation += 1
        return removed

    @property
    def is_stale(self) -> bool:
        """True when the index changed after the current graph was built."""
        with self._lock:
            return self._generation != self._built_generation

    # -- rebuild --------------------------------------------------------------

    def rebuild(self) -> LineageGraph:
        """Rebuild the graph from the index, sharing any build already in flight."""
        with self._lock:
            future = self._inflight
            owner = future is None
            if owner:
                future = Future()
                self._inflight = future
                snapshot = WorkspaceIndex(files=dict(self.index.files))
                generation = self._generation
        if not owner:
            logger.debug("Rebuild already in flight; waiting for it")
            return future.result()

        builder = LineageBuilder(
            include_external=self.settings.include_external,
            include_columns=self.settings.include_columns,
        )
        try:
            with profiled("session.rebuild", files=len(snapshot.files)) as meta:
                graph = builder.build_from_index(snapshot)
                meta["nodes"] = len(graph)
        except Exception as exc:
            with self._lock:
                self._inflight = None
            future.set_exception(exc)
            raise

        with self._lock:
            self._graph = graph
            self._built_generation = generation
            self._inflight = None
        future.set_result(graph)
        return graph

    analyze_workspace = rebuild

    # -- reads against the current snapshot -----------------------------------

    @property
    def graph(self) -> LineageGraph:
        with self._lock:
            return self._graph

    def stats(self) -> GraphStats:
        return self.graph.stats()

    def get_node(self, node_id: str) -> LineageNode | None:
        return self.graph.get_node(node_id)

    def search(self, query: str, kinds: list[LineageNodeKind] | None = None) -> list[LineageNode]:
        return self.graph.search(query, kinds)

    def get_upstream(self, node_id: str, max_depth: int = -1, **options: object) -> FlowResult:
        return self.graph.get_upstream(node_id, max_depth, **options)

    def get_downstream(self, node_id: str, max_depth: int = -1, **options: object) -> FlowResult:
        return self.graph.get_downstream(node_id, max_depth, **options)

    def analyze_impact(
        self,
        table: str,
        column: str | None = None,
        change: ChangeKind | str = ChangeKind.MODIFY,
    ) -> ImpactReport:
        analyzer = ImpactAnalyzer(self.graph)
        if column is None:
            return analyzer.analyze_table_change(table, change)
        return analyzer.analyze_column_change(table, column, change)

    def column_lineage(self, table: str, column: str, max_depth: int = -1) -> ColumnLineageResult:
        return ColumnLineageTracker(self.graph).get_full_column_lineage(
            table, column, max_depth=max_depth
        )
