"""Lineage engine CLI -- Typer-based interface.

Provides commands to create the graph schema, ingest ETL job files and
traverse lineage.  Human-readable output goes to *stderr* via Rich;
``--json`` writes machine-readable results to stdout.
"""

from __future__ import annotations

import asyncio
import json
import sys
from enum import Enum
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from lineage_engine.cli.display import display_job_results, display_lineage
from lineage_engine.config import Settings, load_settings
from lineage_engine.logging_setup import configure_logging

app = typer.Typer(
    name="lineage-engine",
    help="Build and query table/column lineage graphs from ETL job scripts.",
    no_args_is_help=True,
)
console = Console(stderr=True)

# Mutable global options populated by the Typer callback.
_json_output: bool = False


class NodeKind(str, Enum):
    TABLE = "table"
    COLUMN = "column"


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
) -> None:
    """Global options applied to every command."""
    global _json_output  # noqa: PLW0603
    _json_output = json_mode


def _settings(database_url: str | None) -> Settings:
    overrides: dict[str, Any] = {}
    if database_url is not None:
        overrides["database_url"] = database_url
    settings = load_settings(**overrides)
    configure_logging(settings)
    return settings


def _emit_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, default=str) + "\n")


# ---------------------------------------------------------------------------
# init-db
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db(
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="Graph store URL (defaults to LINEAGE_DATABASE_URL).",
    ),
) -> None:
    """Create the lineage graph tables (idempotent)."""
    from lineage_engine.state.database import create_schema, engine_from_settings

    settings = _settings(database_url)

    async def _init() -> None:
        engine = engine_from_settings(settings)
        try:
            await create_schema(engine)
        finally:
            await engine.dispose()

    asyncio.run(_init())
    if _json_output:
        _emit_json({"status": "ok", "database_url": settings.database_url})
    else:
        console.print("[green]Lineage graph schema ready.[/green]")


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------


@app.command()
def ingest(
    job_files: list[Path] = typer.Argument(
        ...,
        help="ETL job documents (JSON or YAML).",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    catalog: Path = typer.Option(
        ...,
        "--catalog",
        "-c",
        help="Metadata catalog (JSON or YAML) used to resolve tables and columns.",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="Graph store URL (defaults to LINEAGE_DATABASE_URL).",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Per-job deadline in seconds.",
        min=0.001,
    ),
) -> None:
    """Build lineage for one or more ETL jobs and persist it."""
    from lineage_engine.errors import LineageError, MalformedScript
    from lineage_engine.lookup import InMemoryMetadataLookup, RetryingMetadataLookup
    from lineage_engine.models.lineage import JobResult, JobState
    from lineage_engine.orchestrator import LineageOrchestrator
    from lineage_engine.parser import load_job_file
    from lineage_engine.resolver import build_result_table_index, table_keys
    from lineage_engine.state.database import create_schema, engine_from_settings, get_session_factory

    settings = _settings(database_url)
    if settings.is_sqlite():
        # SQLite allows a single writer at a time.
        settings = settings.model_copy(update={"max_concurrent_jobs": 1})

    try:
        lookup = RetryingMetadataLookup.from_settings(InMemoryMetadataLookup.from_file(catalog), settings)
    except LineageError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=3) from exc

    async def _ingest() -> list[JobResult]:
        engine = engine_from_settings(settings)
        try:
            await create_schema(engine)
            orchestrator = LineageOrchestrator(lookup, get_session_factory(engine), settings=settings)
            results: list[JobResult] = []
            jobs = []
            for path in job_files:
                try:
                    jobs.append(load_job_file(path))
                except MalformedScript as exc:
                    results.append(
                        JobResult(
                            job_id=path.stem,
                            etl_name=path.name,
                            state=JobState.ABORTED,
                            transitions=[JobState.INIT, JobState.ABORTED],
                            error_type=type(exc).__name__,
                            error_message=str(exc),
                        )
                    )
            keys = [key for job in jobs for key in table_keys(job.nodes, build_result_table_index(job.nodes))]
            unfetched = await lookup.prefetch_tables(keys)
            if unfetched:
                console.print(f"[yellow]{len(unfetched)} table lookup(s) failed during prefetch; retrying per job[/yellow]")
            results.extend(await orchestrator.run_many(jobs, timeout=timeout))
            return results
        finally:
            await engine.dispose()

    results = asyncio.run(_ingest())

    if _json_output:
        _emit_json([r.model_dump(mode="json") | {"success": r.success} for r in results])
    else:
        display_job_results(console, results)

    if any(not r.success for r in results):
        raise typer.Exit(code=3)


# ---------------------------------------------------------------------------
# lineage
# ---------------------------------------------------------------------------


@app.command()
def lineage(
    node_id: str = typer.Argument(..., help="Table or column identifier from the metadata store."),
    kind: NodeKind = typer.Option(NodeKind.TABLE, "--kind", "-k", help="Identifier kind."),
    depth: int | None = typer.Option(
        None,
        "--depth",
        help="Maximum traversal depth (default: full transitive closure).",
        min=1,
    ),
    etl_name: str | None = typer.Option(None, "--etl-name", help="Only follow edges produced by this job."),
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="Graph store URL (defaults to LINEAGE_DATABASE_URL).",
    ),
) -> None:
    """Display upstream and downstream lineage for a table or column."""
    from lineage_engine.graph import LineageQuery
    from lineage_engine.models.identifiers import ColumnId, TableId
    from lineage_engine.state.database import create_schema, engine_from_settings, get_session

    settings = _settings(database_url)

    async def _query() -> tuple[list[str], list[str]]:
        engine = engine_from_settings(settings)
        try:
            await create_schema(engine)
            async with get_session(engine) as session:
                query = LineageQuery(session)
                if kind == NodeKind.TABLE:
                    table_id = TableId(node_id)
                    up = await query.upstream_tables(table_id, max_depth=depth, etl_name=etl_name)
                    down = await query.downstream_tables(table_id, max_depth=depth, etl_name=etl_name)
                else:
                    column_id = ColumnId(node_id)
                    up = await query.upstream_columns(column_id, max_depth=depth, etl_name=etl_name)
                    down = await query.downstream_columns(column_id, max_depth=depth, etl_name=etl_name)
                return sorted(i.value for i in up), sorted(i.value for i in down)
        finally:
            await engine.dispose()

    upstream, downstream = asyncio.run(_query())

    if _json_output:
        _emit_json({"id": node_id, "kind": kind.value, "upstream": upstream, "downstream": downstream})
    else:
        display_lineage(console, node_id, kind.value, upstream, downstream)
