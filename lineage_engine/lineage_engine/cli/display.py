"""Rich rendering helpers for the lineage CLI."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from lineage_engine.models.lineage import JobResult, JobState

_STATE_STYLE: dict[JobState, str] = {
    JobState.COMMITTED: "green",
    JobState.ABORTED: "red",
}


def display_job_results(console: Console, results: list[JobResult]) -> None:
    """Render one summary row per job, then every skipped item."""
    table = Table(title="Lineage Jobs", show_lines=False)
    table.add_column("Job", style="bold")
    table.add_column("ETL name")
    table.add_column("State")
    table.add_column("Nodes", justify="right")
    table.add_column("Edges", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Error")

    for result in results:
        style = _STATE_STYLE.get(result.state, "yellow")
        written = result.written
        edges = written.containment_edges + written.depends_on_edges + written.maps_to_edges
        table.add_row(
            result.job_id,
            result.etl_name,
            f"[{style}]{result.state.value}[/{style}]",
            str(written.nodes),
            str(edges),
            str(result.skipped_count),
            f"{result.error_type}: {result.error_message}" if result.error_type else "",
        )
    console.print(table)

    skipped = [(r.etl_name, item) for r in results for item in r.skipped]
    if not skipped:
        return

    detail = Table(title="Skipped Items", show_lines=False)
    detail.add_column("ETL name")
    detail.add_column("Reason", style="yellow")
    detail.add_column("Datasource")
    detail.add_column("Table")
    detail.add_column("Column")
    detail.add_column("Detail", style="dim")
    for etl_name, item in skipped:
        detail.add_row(
            etl_name,
            item.reason.value,
            item.datasource_id or "-",
            item.table_name or "-",
            item.column_name or "-",
            item.detail,
        )
    console.print(detail)


def display_lineage(
    console: Console,
    node_id: str,
    kind: str,
    upstream: list[str],
    downstream: list[str],
) -> None:
    """Render a lineage tree showing upstream and downstream ids."""
    tree = Tree(f"[bold yellow]{kind} {node_id}[/bold yellow]", guide_style="dim")

    if upstream:
        upstream_branch = tree.add("[bold blue]upstream[/bold blue]")
        for name in upstream:
            upstream_branch.add(f"[blue]{name}[/blue]")
    else:
        tree.add("[dim]no upstream lineage[/dim]")

    if downstream:
        downstream_branch = tree.add("[bold green]downstream[/bold green]")
        for name in downstream:
            downstream_branch.add(f"[green]{name}[/green]")
    else:
        tree.add("[dim]no downstream lineage[/dim]")

    console.print(Panel(tree, title="Lineage", border_style="yellow"))
    console.print(f"[bold]{len(upstream)}[/bold] upstream, [bold]{len(downstream)}[/bold] downstream")
