"""Idempotent creation of lineage graph nodes and edges.

Every primitive is a merge: writing the same identity twice leaves the
graph as it was after the first write.  The only property ever replaced
on re-ingestion is ``transformFunction`` on ``MAPS_TO`` (last write wins).

All primitives run inside the caller's job transaction and never commit.
Each statement is wrapped in a SAVEPOINT: a failing statement is rolled
back alone and surfaces as :class:`~lineage_engine.errors.WriteFailure`,
leaving the job transaction usable.  Failures of the transaction itself
(savepoint handling, invalidated connections) surface as
:class:`~lineage_engine.errors.TransactionFailure`.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lineage_engine.errors import TransactionFailure, WriteFailure
from lineage_engine.models.graph import CONTAINMENT_EDGES, EDGE_ENDPOINTS, EdgeType, NodeLabel
from lineage_engine.models.identifiers import ColumnId, DatabaseId, ExternalId, TableId, expect_id
from lineage_engine.state.repository import GraphRepository

logger = logging.getLogger(__name__)

_ID_KINDS: dict[NodeLabel, type[ExternalId]] = {
    NodeLabel.DATABASE: DatabaseId,
    NodeLabel.TABLE: TableId,
    NodeLabel.COLUMN: ColumnId,
}


class GraphWriter:
    """Merge primitives bound to one job transaction.

    Parameters
    ----------
    session:
        The job's session.  The writer never commits it.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._repo = GraphRepository(session)
        self._session = session

    async def _guarded(self, target: str, op: Callable[[], Awaitable[bool]]) -> bool:
        try:
            savepoint = await self._session.begin_nested()
        except SQLAlchemyError as exc:
            raise TransactionFailure(f"Cannot open savepoint for {target}: {exc}") from exc

        try:
            created = await op()
        except SQLAlchemyError as exc:
            if isinstance(exc, DBAPIError) and exc.connection_invalidated:
                raise TransactionFailure(f"Connection lost while writing {target}: {exc}") from exc
            try:
                await savepoint.rollback()
            except SQLAlchemyError as rollback_exc:
                raise TransactionFailure(f"Cannot roll back savepoint for {target}: {rollback_exc}") from exc
            raise WriteFailure(target, exc) from exc

        try:
            await savepoint.commit()
        except SQLAlchemyError as exc:
            raise TransactionFailure(f"Cannot release savepoint for {target}: {exc}") from exc
        return created

    # -- Nodes ---------------------------------------------------------------

    async def merge_database_node(self, database_id: DatabaseId) -> bool:
        expect_id(DatabaseId, database_id)
        return await self._guarded(
            f"Database({database_id})",
            lambda: self._repo.merge_node(NodeLabel.DATABASE, database_id.value),
        )

    async def merge_table_node(self, table_id: TableId, datasource_id: str, name: str) -> bool:
        expect_id(TableId, table_id)
        return await self._guarded(
            f"Table({table_id} {name})",
            lambda: self._repo.merge_node(
                NodeLabel.TABLE,
                table_id.value,
                datasource_id=datasource_id,
                name=name,
            ),
        )

    async def merge_column_node(self, column_id: ColumnId, full_name: str) -> bool:
        expect_id(ColumnId, column_id)
        return await self._guarded(
            f"Column({column_id} {full_name})",
            lambda: self._repo.merge_node(NodeLabel.COLUMN, column_id.value, full_name=full_name),
        )

    # -- Edges ---------------------------------------------------------------

    async def merge_containment_edge(self, parent: ExternalId, child: ExternalId, kind: EdgeType) -> bool:
        """Merge a ``BELONGS_TO`` (Database→Table) or ``HAS_COLUMN`` (Table→Column) edge."""
        if kind not in CONTAINMENT_EDGES:
            raise ValueError(f"{kind.value} is not a containment edge")
        parent_label, child_label = EDGE_ENDPOINTS[kind]
        expect_id(_ID_KINDS[parent_label], parent)
        expect_id(_ID_KINDS[child_label], child)
        return await self._guarded(
            f"{kind.value}({parent} -> {child})",
            lambda: self._repo.merge_edge(kind, parent.value, child.value),
        )

    async def merge_depends_on(
        self,
        source_table: TableId | None,
        target_table: TableId | None,
        etl_name: str,
    ) -> bool:
        """Merge a table-level lineage edge; a no-op when either table is absent."""
        if source_table is None or target_table is None:
            return False
        expect_id(TableId, source_table)
        expect_id(TableId, target_table)
        return await self._guarded(
            f"DEPENDS_ON({source_table} -> {target_table} etl={etl_name})",
            lambda: self._repo.merge_edge(
                EdgeType.DEPENDS_ON,
                source_table.value,
                target_table.value,
                etl_name=etl_name,
            ),
        )

    async def merge_maps_to(
        self,
        source_column: ColumnId | None,
        target_column: ColumnId | None,
        etl_name: str,
        transform_function: str | None = None,
    ) -> bool:
        """Merge a column-level lineage edge; a no-op when either column is absent.

        ``transform_function`` replaces whatever an earlier run stored for
        the same ``(source, target, etl_name)``.
        """
        if source_column is None or target_column is None:
            return False
        expect_id(ColumnId, source_column)
        expect_id(ColumnId, target_column)
        return await self._guarded(
            f"MAPS_TO({source_column} -> {target_column} etl={etl_name})",
            lambda: self._repo.merge_edge(
                EdgeType.MAPS_TO,
                source_column.value,
                target_column.value,
                etl_name=etl_name,
                transform_function=transform_function,
                overwrite_transform=True,
            ),
        )
