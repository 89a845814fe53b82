"""sqlflow CLI application -- Typer-based developer interface.

Provides commands for per-statement flow analysis of a SQL file, and for
lineage traversal and change-impact analysis across a directory of SQL
files.  Human-readable output goes to *stderr* via Rich; ``--json`` writes
machine-readable results to *stdout* so that pipelines can compose
cleanly.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from cli.display import (
    display_batch,
    display_column_lineage,
    display_graph_stats,
    display_impact,
    display_lineage,
)
from flow_engine.config import Settings, load_settings
from flow_engine.lineage import ChangeKind
from flow_engine.logging_setup import configure_logging
from flow_engine.parser import process_batch
from flow_engine.sql_toolkit import Dialect
from flow_engine.workspace import LineageSession

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="sqlflow",
    help="sqlflow - SQL flow graphs, workspace lineage and change impact",
    no_args_is_help=True,
)
console = Console(stderr=True)

# Mutable global options populated by the Typer callback.
_json_output: bool = False
_settings: Settings | None = None

_SQL_SUFFIXES = (".sql",)


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging.",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _settings  # noqa: PLW0603
    _json_output = json_mode
    try:
        _settings = load_settings(debug=True) if verbose else load_settings()
    except ValueError as exc:
        console.print(f"[red]Invalid configuration: {exc}[/red]")
        raise typer.Exit(code=3) from exc
    configure_logging(_settings)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_settings() -> Settings:
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def _write_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, default=str) + "\n")


def _resolve_dialect(name: str | None) -> Dialect:
    if name is None:
        return _get_settings().default_dialect
    try:
        return Dialect.from_name(name)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=3) from exc


def _load_sql_files(directory: Path) -> dict[str, str]:
    """Return relative path → SQL text for every ``.sql`` file under *directory*."""
    files: dict[str, str] = {}
    for path in sorted(directory.rglob("*")):
        if path.is_file() and path.suffix.lower() in _SQL_SUFFIXES:
            try:
                files[path.relative_to(directory).as_posix()] = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                console.print(f"[yellow]Skipping {path}: {exc}[/yellow]")
    return files


def _open_session(directory: Path, dialect: str | None) -> LineageSession:
    files = _load_sql_files(directory)
    if not files:
        console.print(f"[yellow]No SQL files found in {directory}.[/yellow]")
        raise typer.Exit(code=0)
    session = LineageSession(_get_settings(), dialect=_resolve_dialect(dialect))
    session.update_files(files)
    session.rebuild()
    if not _json_output:
        display_graph_stats(console, session.stats())
    return session


# ---------------------------------------------------------------------------
# analyze
# ---------------------------------------------------------------------------


@app.command()
def analyze(
    sql_file: Path = typer.Argument(
        ...,
        help="Path to a SQL file with one or more statements.",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    dialect: str | None = typer.Option(
        None,
        "--dialect",
        "-d",
        help="SQL dialect (mysql, postgresql, snowflake, ...).",
    ),
) -> None:
    """Build the flow graph, stats and hints of every statement in a file.

    Exits with code 1 when any statement fails to parse and code 3 when the
    file is rejected before parsing (empty, too large, too many statements).
    """
    settings = _get_settings()
    sql = sql_file.read_text(encoding="utf-8")
    batch = process_batch(
        sql,
        _resolve_dialect(dialect),
        limits=settings.validation_limits(),
        max_expression_depth=settings.max_expression_depth,
        max_details=settings.max_details,
    )

    if batch.validation_error is not None:
        if _json_output:
            _write_json(batch.model_dump(mode="json"))
        else:
            console.print(f"[red]{batch.validation_error.message}[/red]")
        raise typer.Exit(code=3)

    if _json_output:
        _write_json(batch.model_dump(mode="json"))
    else:
        display_batch(console, sql_file.name, batch)

    if batch.error_count:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# lineage
# ---------------------------------------------------------------------------


@app.command()
def lineage(
    directory: Path = typer.Argument(
        ...,
        help="Directory containing SQL files.",
        exists=True,
        file_okay=False,
        resolve_path=True,
    ),
    node: str = typer.Option(
        ...,
        "--node",
        "-n",
        help="Lineage node id (e.g. table:orders) or a table/view name.",
    ),
    column: str | None = typer.Option(
        None,
        "--column",
        "-c",
        help="Trace this column of --node instead of the table itself.",
    ),
    depth: int = typer.Option(
        -1,
        "--depth",
        help="Maximum traversal depth; -1 is unbounded.",
        min=-1,
    ),
    exclude_external: bool = typer.Option(
        False,
        "--exclude-external",
        help="Neither show nor traverse through external tables.",
    ),
    dialect: str | None = typer.Option(None, "--dialect", "-d", help="SQL dialect."),
) -> None:
    """Display upstream and downstream lineage for a table, view or column."""
    session = _open_session(directory, dialect)

    if column is not None:
        result = session.column_lineage(node, column, max_depth=depth)
        if _json_output:
            _write_json(result.model_dump(mode="json"))
        else:
            display_column_lineage(console, result)
        return

    target = session.get_node(node) or session.graph.find_object(node)
    if target is None:
        console.print(f"[red]Node '{node}' not found in lineage graph.[/red]")
        matches = session.search(node)[:10]
        if matches:
            console.print(f"[dim]Similar: {', '.join(m.id for m in matches)}[/dim]")
        raise typer.Exit(code=3)

    upstream = session.get_upstream(target.id, depth, exclude_external=exclude_external)
    downstream = session.get_downstream(target.id, depth, exclude_external=exclude_external)

    if _json_output:
        _write_json(
            {
                "node": target.model_dump(mode="json"),
                "upstream": upstream.model_dump(mode="json"),
                "downstream": downstream.model_dump(mode="json"),
            }
        )
    else:
        display_lineage(console, target, upstream, downstream)


# ---------------------------------------------------------------------------
# impact
# ---------------------------------------------------------------------------


@app.command()
def impact(
    directory: Path = typer.Argument(
        ...,
        help="Directory containing SQL files.",
        exists=True,
        file_okay=False,
        resolve_path=True,
    ),
    table: str = typer.Option(..., "--table", "-t", help="Table or view being changed."),
    column: str | None = typer.Option(
        None,
        "--column",
        "-c",
        help="Column being changed.  Without it the whole table is analysed.",
    ),
    change: ChangeKind = typer.Option(
        ChangeKind.MODIFY,
        "--change",
        help="Kind of change: modify, rename or drop.",
        case_sensitive=False,
    ),
    dialect: str | None = typer.Option(None, "--dialect", "-d", help="SQL dialect."),
) -> None:
    """Report what a modify, rename or drop of a table or column would affect.

    Exits with code 3 when the table is not in the lineage graph.
    """
    session = _open_session(directory, dialect)
    report = session.analyze_impact(table, column, change)

    if _json_output:
        _write_json(report.model_dump(mode="json"))
    else:
        display_impact(console, report)

    if not report.found:
        raise typer.Exit(code=3)
