"""Sequence decoding, resolution and graph writes for ETL jobs.

A job moves through::

    Init -> Decoded -> Pass1Complete -> Pass2Complete -> Writing -> Committed
                                                                 \\-> Aborted

Only decode failures, transaction failures and an expired deadline abort a
job.  Unresolved tables/columns and individual write failures are recorded
as skipped items and the job still commits.  An aborted job leaves nothing
behind in the graph: all writes share one transaction which is rolled back.

Collaborators are injected: the metadata lookup, a session factory that
hands out one session (one transaction) per job, and a writer factory.
Jobs share no in-memory state, so independent jobs can run concurrently
on the same orchestrator.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lineage_engine.config import Settings
from lineage_engine.errors import JobTimeout, MalformedScript, TransactionFailure, WriteFailure
from lineage_engine.graph.writer import GraphWriter
from lineage_engine.lookup.base import MetadataLookup
from lineage_engine.models.graph import EdgeType
from lineage_engine.models.identifiers import ColumnId, ExternalId
from lineage_engine.models.job import ETLJobDefinition
from lineage_engine.models.lineage import (
    JobResult,
    JobState,
    ResolvedFieldMapping,
    ResolvedNode,
    ResolvedTable,
    SkippedItem,
    SkipReason,
    WriteCounts,
)
from lineage_engine.parser.script_decoder import decode_job
from lineage_engine.resolver.mapping_resolver import resolve_mappings
from lineage_engine.resolver.result_table_index import build_result_table_index
from lineage_engine.telemetry.profiling import ProfileCollector, profile_operation

logger = logging.getLogger(__name__)

JobInput = ETLJobDefinition | Mapping[str, Any] | str | bytes
WriterFactory = Callable[[AsyncSession], GraphWriter]


@dataclass
class _WriteState:
    """Bookkeeping for the writing phase of one job."""

    etl_name: str
    counts: WriteCounts
    skipped: list[SkippedItem]
    written: set[ExternalId] = field(default_factory=set)
    failed: set[ExternalId] = field(default_factory=set)
    containment: set[tuple[ExternalId, ExternalId]] = field(default_factory=set)


class LineageOrchestrator:
    """Build and persist the lineage graph for ETL jobs.

    Parameters
    ----------
    lookup:
        Metadata collaborator resolving names to identifiers.
    session_factory:
        Factory returning a fresh :class:`AsyncSession` per job.
    writer_factory:
        Builds the :class:`GraphWriter` bound to a job's session.
    settings:
        Supplies the default job deadline and concurrency bound.
    """

    def __init__(
        self,
        lookup: MetadataLookup,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        writer_factory: WriterFactory = GraphWriter,
        settings: Settings | None = None,
    ) -> None:
        self._lookup = lookup
        self._session_factory = session_factory
        self._writer_factory = writer_factory
        self._settings = settings or Settings()

    # -- Public API ----------------------------------------------------------

    @profile_operation("orchestrator.run")
    async def run(self, job: JobInput, *, timeout: float | None = None) -> JobResult:
        """Process one job end to end and report its outcome.

        Parameters
        ----------
        job:
            A decoded :class:`ETLJobDefinition` or a raw job document.
        timeout:
            Deadline in seconds; defaults to ``settings.job_timeout_seconds``.
            When it expires the job transaction is rolled back and the
            result reports :class:`JobTimeout`.

        Returns
        -------
        JobResult
            ``Committed`` (possibly with skipped items) or ``Aborted`` with
            the fatal cause in ``error_type``/``error_message``.  Errors this
            method does not anticipate (a misbehaving collaborator, a driver
            timeout) abort only this job and are logged with a traceback.
        """
        started = time.perf_counter()
        if timeout is None:
            timeout = self._settings.job_timeout_seconds

        try:
            definition = job if isinstance(job, ETLJobDefinition) else decode_job(job)
        except MalformedScript as exc:
            job_id, etl_name = _identify_raw(job)
            result = JobResult(job_id=job_id, etl_name=etl_name)
            return self._abort(result, exc, started)

        result = JobResult(job_id=definition.job_id, etl_name=definition.etl_name)
        result.advance(JobState.DECODED)

        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                await self._execute(definition, result)
        except TimeoutError as exc:
            if timeout is not None and deadline.expired():
                return self._abort(result, JobTimeout(definition.etl_name, timeout), started)
            return self._abort(result, exc, started, unexpected=True)
        except TransactionFailure as exc:
            return self._abort(result, exc, started)
        except Exception as exc:
            # The job transaction is already rolled back; sibling jobs carry on.
            return self._abort(result, exc, started, unexpected=True)

        result.duration_ms = round((time.perf_counter() - started) * 1000, 3)
        logger.info(
            "Job '%s' committed: %d node(s), %d edge(s) written, %d item(s) skipped",
            definition.etl_name,
            result.written.nodes,
            result.written.containment_edges + result.written.depends_on_edges + result.written.maps_to_edges,
            result.skipped_count,
            extra={"job": _summary(result)},
        )
        return result

    async def run_script(
        self,
        job_id: str,
        etl_name: str,
        raw: str | bytes | Mapping[str, Any] | Sequence[Any],
        *,
        timeout: float | None = None,
    ) -> JobResult:
        """Run a job given its identity and an undecoded transform script."""
        document: dict[str, Any] = {"id": job_id, "etlName": etl_name}
        if isinstance(raw, (str, bytes)):
            document["script"] = raw
        elif isinstance(raw, Mapping) and "nodes" in raw:
            document["nodes"] = raw["nodes"]
        else:
            document["nodes"] = raw
        return await self.run(document, timeout=timeout)

    async def run_many(self, jobs: Iterable[JobInput], *, timeout: float | None = None) -> list[JobResult]:
        """Run independent jobs concurrently, each in its own transaction.

        At most ``settings.max_concurrent_jobs`` jobs are in flight.  Results
        are returned in input order.
        """
        semaphore = asyncio.Semaphore(self._settings.max_concurrent_jobs)

        async def _bounded(job: JobInput) -> JobResult:
            async with semaphore:
                return await self.run(job, timeout=timeout)

        results = list(await asyncio.gather(*(_bounded(j) for j in jobs)))
        if logger.isEnabledFor(logging.DEBUG):
            for stats in ProfileCollector.get_instance().all_stats():
                logger.debug("profile %(operation)s: %(count)d call(s), mean %(mean_ms).3f ms", stats)
        return results

    # -- Phases --------------------------------------------------------------

    async def _execute(self, job: ETLJobDefinition, result: JobResult) -> None:
        index = build_result_table_index(job.nodes)
        result.advance(JobState.PASS1_COMPLETE)

        resolved = await resolve_mappings(job.nodes, index, self._lookup, job.etl_name)
        for node in resolved:
            result.skipped.extend(node.skipped)
        result.advance(JobState.PASS2_COMPLETE)

        async with self._session_factory() as session:
            writer = self._writer_factory(session)
            state = _WriteState(etl_name=job.etl_name, counts=result.written, skipped=result.skipped)
            try:
                result.advance(JobState.WRITING)
                for node in resolved:
                    await self._write_node(writer, node, state)
                try:
                    await session.commit()
                except SQLAlchemyError as exc:
                    raise TransactionFailure(f"Commit failed for job '{job.etl_name}': {exc}") from exc
            except BaseException:
                await _rollback(session, job.etl_name)
                raise

        result.advance(JobState.COMMITTED)

    async def _write_node(self, writer: GraphWriter, node: ResolvedNode, state: _WriteState) -> None:
        target = node.target_table
        if target is None:
            return

        for table in (target, *node.source_tables):
            await self._write_table(writer, table, state)

        for source in node.source_tables:
            if not self._endpoints_written(state, source.table_id, target.table_id, EdgeType.DEPENDS_ON):
                continue
            if await self._attempt(
                state,
                lambda source=source: writer.merge_depends_on(source.table_id, target.table_id, state.etl_name),
                table=target,
            ):
                state.counts.depends_on_edges += 1

        for mapping in node.mappings:
            await self._write_mapping(writer, mapping, state)

    async def _write_table(self, writer: GraphWriter, table: ResolvedTable, state: _WriteState) -> None:
        database_id = table.database_id
        if database_id not in state.written and database_id not in state.failed:
            await self._write_node_once(state, database_id, lambda: writer.merge_database_node(database_id), table)
        if table.table_id not in state.written and table.table_id not in state.failed:
            await self._write_node_once(
                state,
                table.table_id,
                lambda: writer.merge_table_node(table.table_id, table.datasource_id, table.table_name),
                table,
            )
        await self._write_containment(writer, state, database_id, table.table_id, EdgeType.BELONGS_TO, table)

    async def _write_mapping(self, writer: GraphWriter, mapping: ResolvedFieldMapping, state: _WriteState) -> None:
        columns: tuple[tuple[ResolvedTable, ColumnId, str], ...] = (
            (mapping.target_table, mapping.target_column_id, mapping.target_column_full_name),
            (mapping.source_table, mapping.source_column_id, mapping.source_column_full_name),
        )
        for table, column_id, full_name in columns:
            if column_id not in state.written and column_id not in state.failed:
                await self._write_node_once(
                    state,
                    column_id,
                    lambda column_id=column_id, full_name=full_name: writer.merge_column_node(column_id, full_name),
                    table,
                    column_name=full_name,
                )
            await self._write_containment(writer, state, table.table_id, column_id, EdgeType.HAS_COLUMN, table)

        if not self._endpoints_written(state, mapping.source_column_id, mapping.target_column_id, EdgeType.MAPS_TO):
            return
        if await self._attempt(
            state,
            lambda: writer.merge_maps_to(
                mapping.source_column_id,
                mapping.target_column_id,
                state.etl_name,
                mapping.transform_function,
            ),
            table=mapping.target_table,
            column_name=mapping.target_column_full_name,
        ):
            state.counts.maps_to_edges += 1

    # -- Write helpers -------------------------------------------------------

    async def _write_node_once(
        self,
        state: _WriteState,
        node_id: ExternalId,
        op: Callable[[], Any],
        table: ResolvedTable,
        *,
        column_name: str | None = None,
    ) -> None:
        try:
            created = await op()
        except WriteFailure as exc:
            state.failed.add(node_id)
            state.skipped.append(_write_skip(state.etl_name, exc, table, column_name))
            return
        state.written.add(node_id)
        if created:
            state.counts.nodes += 1

    async def _write_containment(
        self,
        writer: GraphWriter,
        state: _WriteState,
        parent: ExternalId,
        child: ExternalId,
        kind: EdgeType,
        table: ResolvedTable,
    ) -> None:
        key = (parent, child)
        if key in state.containment or not self._endpoints_written(state, parent, child, kind):
            return
        state.containment.add(key)
        if await self._attempt(state, lambda: writer.merge_containment_edge(parent, child, kind), table=table):
            state.counts.containment_edges += 1

    async def _attempt(
        self,
        state: _WriteState,
        op: Callable[[], Any],
        *,
        table: ResolvedTable,
        column_name: str | None = None,
    ) -> bool:
        """Run one edge merge; a :class:`WriteFailure` is recorded and swallowed."""
        try:
            return bool(await op())
        except WriteFailure as exc:
            state.skipped.append(_write_skip(state.etl_name, exc, table, column_name))
            return False

    @staticmethod
    def _endpoints_written(state: _WriteState, source: ExternalId, target: ExternalId, kind: EdgeType) -> bool:
        if source in state.written and target in state.written:
            return True
        logger.warning(
            "Skipping %s %s -> %s in '%s': endpoint node was not written",
            kind.value,
            source,
            target,
            state.etl_name,
        )
        return False

    # -- Outcome -------------------------------------------------------------

    @staticmethod
    def _abort(result: JobResult, exc: Exception, started: float, *, unexpected: bool = False) -> JobResult:
        result.advance(JobState.ABORTED)
        result.written = WriteCounts()
        result.error_type = type(exc).__name__
        result.error_message = str(exc)
        result.duration_ms = round((time.perf_counter() - started) * 1000, 3)
        logger.error(
            "Job '%s' aborted (%s): %s",
            result.etl_name,
            result.error_type,
            result.error_message,
            exc_info=exc if unexpected else None,
            extra={"job": _summary(result)},
        )
        return result


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_skip(etl_name: str, exc: WriteFailure, table: ResolvedTable, column_name: str | None) -> SkippedItem:
    logger.error("Write failed in '%s': %s", etl_name, exc)
    return SkippedItem(
        reason=SkipReason.WRITE_FAILURE,
        etl_name=etl_name,
        datasource_id=table.datasource_id,
        table_name=table.table_name,
        column_name=column_name,
        detail=str(exc),
    )


async def _rollback(session: AsyncSession, etl_name: str) -> None:
    try:
        await session.rollback()
    except SQLAlchemyError:
        logger.exception("Rollback failed for job '%s'; discarding connection", etl_name)


def _identify_raw(job: Any) -> tuple[str, str]:
    """Best-effort job id and name for a document that failed to decode."""
    if isinstance(job, Mapping):
        return str(job.get("id", "unknown")), str(job.get("etlName", job.get("etl_name", "unknown")))
    return "unknown", "unknown"


def _summary(result: JobResult) -> dict[str, Any]:
    return {
        "job_id": result.job_id,
        "etl_name": result.etl_name,
        "state": result.state.value,
        "written": result.written.model_dump(),
        "skipped": {reason.value: count for reason, count in result.skipped_by_reason().items()},
        "error_type": result.error_type,
    }
