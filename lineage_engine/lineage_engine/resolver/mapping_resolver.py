"""Second pass: resolve field mappings to metadata-store identifiers.

For every field-mapping node the resolver:

1. resolves the node's own (target) table;
2. for each entry, fills in the source datasource from the result-table
   index when the entry omits it, and defaults ``sourceField`` to
   ``targetField``;
3. builds ``table.field`` full names for both sides and reduces them to
   bare column names;
4. resolves the target column, then the source table and source column.

Each entry yields either a :class:`ResolvedFieldMapping` or a
:class:`SkippedItem`.  A failed entry never affects its siblings, its node
or the job.  Lookups are memoised for the duration of a single call so a
table referenced by many entries is resolved once per job.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field

from lineage_engine.errors import LineageError, MetadataLookupError, UnresolvedColumn, UnresolvedTable
from lineage_engine.lookup.base import MetadataLookup
from lineage_engine.models.identifiers import ColumnId, TableId, expect_id
from lineage_engine.models.job import FieldMappingEntry, FieldMappingNode, LineageNode
from lineage_engine.models.lineage import (
    ResolvedFieldMapping,
    ResolvedNode,
    ResolvedTable,
    SkippedItem,
    SkipReason,
)
from lineage_engine.parser.field_name import column_ref
from lineage_engine.resolver.result_table_index import ResultTableIndex
from lineage_engine.telemetry.profiling import profile_operation

logger = logging.getLogger(__name__)

EntryOutcome = ResolvedFieldMapping | SkippedItem

# Errors a lookup may raise for one key without compromising the job.
_COLLABORATOR_ERRORS: tuple[type[Exception], ...] = (MetadataLookupError, OSError, TimeoutError)


class _LookupFailed(Exception):
    """Internal marker carrying the collaborator error for a memoised key."""

    def __init__(self, cause: Exception) -> None:
        self.cause = cause
        super().__init__(str(cause))


@dataclass
class _JobLookups:
    """Per-job memo over a :class:`MetadataLookup`.  Never shared between jobs."""

    lookup: MetadataLookup
    tables: dict[tuple[str, str], TableId | _LookupFailed | None] = field(default_factory=dict)
    columns: dict[tuple[TableId, str], ColumnId | _LookupFailed | None] = field(default_factory=dict)

    async def _memo(self, cache: dict, key: tuple, fetch: Callable[[], Awaitable[object]]) -> object:
        if key not in cache:
            try:
                cache[key] = await fetch()
            except _COLLABORATOR_ERRORS as exc:
                cache[key] = _LookupFailed(exc)
        value = cache[key]
        if isinstance(value, _LookupFailed):
            raise value
        return value

    async def table(self, datasource_id: str, table_name: str) -> ResolvedTable | None:
        table_id = await self._memo(
            self.tables,
            (datasource_id, table_name),
            lambda: self.lookup.resolve_table(datasource_id, table_name),
        )
        if table_id is None:
            return None
        return ResolvedTable(
            table_id=expect_id(TableId, table_id),  # type: ignore[arg-type]
            datasource_id=datasource_id,
            table_name=table_name,
        )

    async def column(self, table: ResolvedTable, column_name: str) -> ColumnId | None:
        column_id = await self._memo(
            self.columns,
            (table.table_id, column_name),
            lambda: self.lookup.resolve_column(table.table_id, column_name),
        )
        if column_id is None:
            return None
        return expect_id(ColumnId, column_id)  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Entry resolution
# ---------------------------------------------------------------------------

_SKIP_REASONS: dict[type[LineageError], SkipReason] = {
    UnresolvedTable: SkipReason.UNRESOLVED_TABLE,
    UnresolvedColumn: SkipReason.UNRESOLVED_COLUMN,
    MetadataLookupError: SkipReason.LOOKUP_ERROR,
}


def _skip(
    error: LineageError,
    etl_name: str,
    *,
    datasource_id: str | None,
    table_name: str,
    column_name: str | None = None,
) -> SkippedItem:
    """Record *error* against one entry instead of raising it."""
    reason = _SKIP_REASONS[type(error)]
    logger.warning(
        "Skipping mapping in '%s': %s (datasource=%s table=%s column=%s) %s",
        etl_name,
        reason.value,
        datasource_id,
        table_name,
        column_name,
        error,
    )
    return SkippedItem(
        reason=reason,
        etl_name=etl_name,
        datasource_id=datasource_id,
        table_name=table_name,
        column_name=column_name,
        detail=str(error),
    )


def source_datasource_for(entry: FieldMappingEntry, index: ResultTableIndex) -> str | None:
    """Return the entry's source datasource, backfilled from *index* only when absent."""
    if entry.source_datasource_id is not None:
        return entry.source_datasource_id
    descriptor = index.get(entry.source_table_name)
    return descriptor.datasource_id if descriptor is not None else None


def table_keys(nodes: Iterable[LineageNode], index: ResultTableIndex) -> list[tuple[str, str]]:
    """Every ``(datasource_id, table_name)`` the second pass will look up, in order."""
    keys: dict[tuple[str, str], None] = {}
    for node in nodes:
        if not isinstance(node, FieldMappingNode):
            continue
        keys[(node.datasource_id, node.table_name)] = None
        for entry in node.field_mapping:
            source_ds = source_datasource_for(entry, index)
            if source_ds is not None:
                keys[(source_ds, entry.source_table_name)] = None
    return list(keys)


async def _resolve_entry(
    entry: FieldMappingEntry,
    target_table: ResolvedTable,
    index: ResultTableIndex,
    lookups: _JobLookups,
    etl_name: str,
    source_tables: dict[TableId, ResolvedTable],
) -> EntryOutcome:
    source_ds = source_datasource_for(entry, index)
    target_ref = column_ref(target_table.table_name, entry.target_field)
    source_ref = column_ref(entry.source_table_name, entry.effective_source_field)

    if source_ds is None:
        return _skip(
            UnresolvedTable(None, entry.source_table_name),
            etl_name,
            datasource_id=None,
            table_name=entry.source_table_name,
            column_name=source_ref.bare_name,
        )

    # Target column first, then the source side.  A resolved source table
    # keeps its DEPENDS_ON whatever happens to the columns.
    target_column_id: ColumnId | _LookupFailed | None
    try:
        target_column_id = await lookups.column(target_table, target_ref.bare_name)
    except _LookupFailed as exc:
        target_column_id = exc

    try:
        source_table = await lookups.table(source_ds, entry.source_table_name)
    except _LookupFailed as exc:
        return _skip(
            MetadataLookupError(f"source table lookup failed: {exc.cause}"),
            etl_name,
            datasource_id=source_ds,
            table_name=entry.source_table_name,
            column_name=source_ref.bare_name,
        )
    if source_table is None:
        return _skip(
            UnresolvedTable(source_ds, entry.source_table_name),
            etl_name,
            datasource_id=source_ds,
            table_name=entry.source_table_name,
        )
    source_tables.setdefault(source_table.table_id, source_table)

    if isinstance(target_column_id, _LookupFailed):
        return _skip(
            MetadataLookupError(f"target column lookup failed: {target_column_id.cause}"),
            etl_name,
            datasource_id=target_table.datasource_id,
            table_name=target_table.table_name,
            column_name=target_ref.bare_name,
        )
    if target_column_id is None:
        return _skip(
            UnresolvedColumn(target_table.table_name, target_ref.bare_name),
            etl_name,
            datasource_id=target_table.datasource_id,
            table_name=target_table.table_name,
            column_name=target_ref.bare_name,
        )

    try:
        source_column_id = await lookups.column(source_table, source_ref.bare_name)
    except _LookupFailed as exc:
        source_column_id = None
        failure: LineageError = MetadataLookupError(f"source column lookup failed: {exc.cause}")
    else:
        failure = UnresolvedColumn(entry.source_table_name, source_ref.bare_name)
    if source_column_id is None:
        return _skip(
            failure,
            etl_name,
            datasource_id=source_ds,
            table_name=entry.source_table_name,
            column_name=source_ref.bare_name,
        )

    return ResolvedFieldMapping(
        source_table=source_table,
        source_column_id=source_column_id,
        source_column_full_name=source_ref.qualified_name,
        target_table=target_table,
        target_column_id=target_column_id,
        target_column_full_name=target_ref.qualified_name,
        transform_function=entry.transform_function,
    )


# ---------------------------------------------------------------------------
# Node resolution
# ---------------------------------------------------------------------------


async def _resolve_node(
    node: FieldMappingNode,
    index: ResultTableIndex,
    lookups: _JobLookups,
    etl_name: str,
) -> ResolvedNode:
    failure: LineageError
    try:
        target_table = await lookups.table(node.datasource_id, node.table_name)
        failure = UnresolvedTable(node.datasource_id, node.table_name)
    except _LookupFailed as exc:
        target_table = None
        failure = MetadataLookupError(f"target table lookup failed: {exc.cause}")

    if target_table is None:
        skipped = tuple(
            _skip(
                failure,
                etl_name,
                datasource_id=node.datasource_id,
                table_name=node.table_name,
                column_name=entry.target_field,
            )
            for entry in node.field_mapping
        )
        return ResolvedNode(node=node, target_table=None, source_tables=(), mappings=(), skipped=skipped)

    source_tables: dict[TableId, ResolvedTable] = {}
    mappings: list[ResolvedFieldMapping] = []
    skipped_items: list[SkippedItem] = []
    for entry in node.field_mapping:
        outcome = await _resolve_entry(entry, target_table, index, lookups, etl_name, source_tables)
        if isinstance(outcome, SkippedItem):
            skipped_items.append(outcome)
        else:
            mappings.append(outcome)

    return ResolvedNode(
        node=node,
        target_table=target_table,
        source_tables=tuple(source_tables.values()),
        mappings=tuple(mappings),
        skipped=tuple(skipped_items),
    )


@profile_operation("resolver.resolve_mappings")
async def resolve_mappings(
    nodes: Iterable[LineageNode],
    index: ResultTableIndex,
    lookup: MetadataLookup,
    etl_name: str,
) -> tuple[ResolvedNode, ...]:
    """Resolve every field-mapping node of a job, in script order.

    Parameters
    ----------
    nodes:
        Decoded script nodes; result-table nodes are ignored here.
    index:
        The result-table index built by the first pass.
    lookup:
        Metadata collaborator used to turn names into identifiers.
    etl_name:
        Job name, used for diagnostics on skipped entries.
    """
    lookups = _JobLookups(lookup)
    resolved: list[ResolvedNode] = []
    for node in nodes:
        if isinstance(node, FieldMappingNode):
            resolved.append(await _resolve_node(node, index, lookups, etl_name))
    return tuple(resolved)
