"""Workspace indexing: per-file extraction and the lineage session."""

from __future__ import annotations

from flow_engine.workspace.extractor import build_workspace_index, column_flows, extract_file
from flow_engine.workspace.session import LineageSession

__all__ = [
    "LineageSession",
    "build_workspace_index",
    "column_flows",
    "extract_file",
]
