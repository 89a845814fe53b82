"""Rich output formatting for the sqlflow CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

if TYPE_CHECKING:
    from flow_engine.lineage import ColumnLineageResult, ImpactReport
    from flow_engine.models.flow import BatchResult, ParseResult, StatementRange
    from flow_engine.models.lineage import FlowResult, GraphStats, LineageNode


# ---------------------------------------------------------------------------
# Colour mapping
# ---------------------------------------------------------------------------

_HINT_COLOURS: dict[str, str] = {
    "error": "red",
    "warning": "yellow",
    "info": "cyan",
}

_SEVERITY_COLOURS: dict[str, str] = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "green",
}

_COMPLEXITY_COLOURS: dict[str, str] = {
    "Simple": "green",
    "Moderate": "cyan",
    "Complex": "yellow",
    "Very Complex": "red",
}


_STAT_COLUMNS = (
    "Tables",
    "Joins",
    "Subqueries",
    "CTEs",
    "Aggregations",
    "Windows",
    "Unions",
    "Conditions",
)


def _coloured(value: str, colours: dict[str, str]) -> str:
    colour = colours.get(value, "white")
    return f"[{colour}]{value}[/{colour}]"


# ---------------------------------------------------------------------------
# Statement analysis
# ---------------------------------------------------------------------------


def display_batch(console: Console, source: str, batch: BatchResult) -> None:
    """Render every statement of a batch followed by the merged stats.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    source:
        File name shown in the header.
    batch:
        The analysed batch.
    """
    console.print(
        Panel(
            f"[bold]Statements:[/bold] {len(batch.statements)}  "
            f"[green]{batch.successful_count} ok[/green]  "
            f"[red]{batch.error_count} failed[/red]",
            title=source,
            border_style="blue",
        )
    )
    for index, (result, line_range) in enumerate(
        zip(batch.statements, batch.statement_ranges), start=1
    ):
        display_statement(console, index, result, line_range)

    if batch.successful_count > 1:
        stats = batch.total_stats
        console.print(
            f"[bold]Total:[/bold] {stats.tables} table(s), {stats.joins} join(s), "
            f"score {stats.complexity_score} "
            f"({_coloured(stats.complexity.value, _COMPLEXITY_COLOURS)})"
        )


def display_statement(
    console: Console, index: int, result: ParseResult, line_range: StatementRange
) -> None:
    """Render the node/edge counts, stats and hints of one statement."""
    location = f"lines {line_range.start_line}-{line_range.end_line}"
    if not result.ok:
        line = f" (line {result.error_line})" if result.error_line else ""
        console.print(f"\n[bold]#{index}[/bold] [dim]{location}[/dim]  [red]parse error{line}:[/red]")
        console.print(f"  {result.error}")
        return

    stats = result.stats
    console.print(
        f"\n[bold]#{index}[/bold] [dim]{location}[/dim]  "
        f"{result.statement_kind.upper()}  "
        f"{len(result.nodes)} node(s), {len(result.edges)} edge(s)  "
        f"{_coloured(stats.complexity.value, _COMPLEXITY_COLOURS)} ({stats.complexity_score})"
    )

    table = Table(show_header=True, pad_edge=True, expand=False)
    for name in _STAT_COLUMNS:
        table.add_column(name, justify="right")
    table.add_row(
        str(stats.tables),
        str(stats.joins),
        str(stats.subqueries),
        str(stats.ctes),
        str(stats.aggregations),
        str(stats.window_functions),
        str(stats.unions),
        str(stats.conditions),
    )
    console.print(table)

    for hint in result.hints:
        severity = f" [dim]({hint.severity.value})[/dim]" if hint.severity else ""
        console.print(f"  {_coloured(hint.kind.value, _HINT_COLOURS)}{severity} {hint.message}")
        if hint.suggestion:
            console.print(f"    [dim]→ {hint.suggestion}[/dim]")


# ---------------------------------------------------------------------------
# Lineage
# ---------------------------------------------------------------------------


def _node_label(node: LineageNode) -> str:
    location = f" [dim]{node.file_path}[/dim]" if node.file_path else ""
    return f"{node.name} [dim]({node.kind.value})[/dim]{location}"


def display_lineage(
    console: Console,
    node: LineageNode,
    upstream: FlowResult,
    downstream: FlowResult,
) -> None:
    """Render a lineage tree showing upstream and downstream nodes.

    Parameters
    ----------
    console:
        Rich console to write to.
    node:
        The focal node.
    upstream, downstream:
        Traversal results from the focal node.
    """
    tree = Tree(f"[bold yellow]{node.name}[/bold yellow] [dim]{node.id}[/dim]", guide_style="dim")

    if upstream.nodes:
        branch = tree.add("[bold blue]upstream[/bold blue]")
        for item in upstream.nodes:
            depth = upstream.node_depths.get(item.id, 0)
            branch.add(f"[blue]{_node_label(item)}[/blue] [dim]depth {depth}[/dim]")
    else:
        tree.add("[dim]no upstream dependencies[/dim]")

    if downstream.nodes:
        branch = tree.add("[bold green]downstream[/bold green]")
        for item in downstream.nodes:
            depth = downstream.node_depths.get(item.id, 0)
            branch.add(f"[green]{_node_label(item)}[/green] [dim]depth {depth}[/dim]")
    else:
        tree.add("[dim]no downstream dependents[/dim]")

    console.print(Panel(tree, title="Lineage", border_style="yellow"))
    console.print(
        f"[bold]{len(upstream.nodes)}[/bold] upstream, "
        f"[bold]{len(downstream.nodes)}[/bold] downstream"
    )


def display_column_lineage(console: Console, result: ColumnLineageResult) -> None:
    """Render the upstream and downstream columns of one column."""
    title = f"{result.table}.{result.column}"
    if not result.found:
        console.print(f"[yellow]Column {title} has no lineage node.[/yellow]")
        return

    tree = Tree(f"[bold yellow]{title}[/bold yellow]", guide_style="dim")
    for label, path, colour in (
        ("upstream", result.upstream, "blue"),
        ("downstream", result.downstream, "green"),
    ):
        if path.nodes:
            branch = tree.add(f"[bold {colour}]{label}[/bold {colour}]")
            for node in path.nodes:
                table = node.metadata.get("table", "")
                branch.add(f"[{colour}]{table}.{node.name}[/{colour}]")
        else:
            tree.add(f"[dim]no {label} columns[/dim]")
    console.print(Panel(tree, title="Column Lineage", border_style="yellow"))


def display_graph_stats(console: Console, stats: GraphStats) -> None:
    kinds = ", ".join(f"{count} {kind}" for kind, count in stats.by_kind.items()) or "empty"
    console.print(f"[dim]Lineage graph: {stats.nodes} node(s), {stats.edges} edge(s) ({kinds})[/dim]")
    if stats.skipped_files:
        console.print(f"[yellow]{stats.skipped_files} file(s) skipped[/yellow]")


# ---------------------------------------------------------------------------
# Impact report
# ---------------------------------------------------------------------------


def display_impact(console: Console, report: ImpactReport) -> None:
    """Render an impact report: header, affected nodes and suggestions."""
    target = (
        f"{report.table}.{report.target}" if report.target_kind.value == "column" else report.target
    )
    summary = report.summary
    header = [
        f"[bold]Change:[/bold]   {report.change_type.value} {report.target_kind.value} {target}",
        f"[bold]Severity:[/bold] {_coloured(report.severity.value, _SEVERITY_COLOURS)}",
        f"[bold]Affected:[/bold] {summary.total_affected} "
        f"({summary.tables_affected} table(s), {summary.views_affected} view(s), "
        f"{summary.columns_affected} column(s)) across {summary.files_affected} file(s)",
    ]
    console.print(Panel("\n".join(header), title="Impact Analysis", border_style="magenta"))

    impacts = report.all_impacts
    if impacts:
        table = Table(show_lines=False, pad_edge=True, expand=False)
        table.add_column("Node", style="bold")
        table.add_column("Kind")
        table.add_column("Impact")
        table.add_column("Severity")
        table.add_column("File")
        table.add_column("Reason")
        for item in impacts:
            table.add_row(
                item.node.name,
                item.node.kind.value,
                "direct" if item.is_direct else f"transitive ({item.depth})",
                _coloured(item.severity.value, _SEVERITY_COLOURS),
                item.file_path or "-",
                item.reason,
            )
        console.print(table)
    elif report.found:
        console.print("[green]No dependents found.[/green]")

    for suggestion in report.suggestions:
        console.print(f"  [dim]→[/dim] {suggestion}")
