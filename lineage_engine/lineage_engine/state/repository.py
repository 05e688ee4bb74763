"""Repository providing merge and read access to the lineage graph store.

The repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  It never commits; the caller
owns the transaction (one per job).
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lineage_engine.models.graph import EDGE_ENDPOINTS, NO_ETL_NAME, EdgeType, NodeLabel
from lineage_engine.state.tables import LineageEdgeTable, LineageNodeTable

logger = logging.getLogger(__name__)

_EDGE_KEY: list[str] = ["edge_type", "source_id", "target_id", "etl_name"]
_NODE_KEY: list[str] = ["label", "external_id"]


def _dialect_name(session: AsyncSession) -> str:
    bind = session.get_bind()
    return str(getattr(getattr(bind, "dialect", None), "name", ""))


def _insert(session: AsyncSession, table: Any, values: dict[str, Any]) -> Any:
    if "postgresql" in _dialect_name(session):
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        return _pg_insert(table).values(**values)

    from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

    return _sqlite_insert(table).values(**values)


async def _dialect_upsert(
    session: AsyncSession,
    table: Any,
    values: dict[str, Any],
    index_elements: list[str],
    update_columns: list[str],
) -> Any:
    """Dialect-aware upsert: ``INSERT … ON CONFLICT DO UPDATE``.

    Parameters
    ----------
    session:
        The active async session.
    table:
        The SQLAlchemy table class to upsert into.
    values:
        Column-value mapping for the row to insert.
    index_elements:
        Column names forming the unique constraint for conflict detection.
    update_columns:
        Column names to overwrite when a conflict occurs.
    """
    stmt = _insert(session, table, values)
    stmt = stmt.on_conflict_do_update(
        index_elements=index_elements,
        set_={col: getattr(stmt.excluded, col) for col in update_columns},
    )
    return await session.execute(stmt)


async def _dialect_upsert_nothing(
    session: AsyncSession,
    table: Any,
    values: dict[str, Any],
    index_elements: list[str],
) -> Any:
    """Dialect-aware insert with ``ON CONFLICT DO NOTHING``."""
    stmt = _insert(session, table, values)
    stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
    return await session.execute(stmt)


class GraphRepository:
    """Merge primitives and read helpers for ``lineage_nodes``/``lineage_edges``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    # -- Writes --------------------------------------------------------------

    async def merge_node(
        self,
        label: NodeLabel,
        external_id: str,
        *,
        datasource_id: str | None = None,
        name: str | None = None,
        full_name: str | None = None,
    ) -> bool:
        """Insert a node unless one with the same ``(label, external_id)`` exists.

        Returns ``True`` when a new row was created.
        """
        result = await _dialect_upsert_nothing(
            self._session,
            LineageNodeTable,
            {
                "label": label.value,
                "external_id": external_id,
                "datasource_id": datasource_id,
                "name": name,
                "full_name": full_name,
            },
            index_elements=_NODE_KEY,
        )
        return bool(result.rowcount)

    async def merge_edge(
        self,
        edge_type: EdgeType,
        source_id: str,
        target_id: str,
        *,
        etl_name: str = NO_ETL_NAME,
        transform_function: str | None = None,
        overwrite_transform: bool = False,
    ) -> bool:
        """Insert or update an edge keyed by ``(type, source, target, etl_name)``.

        With *overwrite_transform* an existing edge gets its
        ``transform_function`` replaced (last write wins); otherwise an
        existing edge is left untouched.  Returns ``True`` when a row was
        inserted or updated.
        """
        source_label, target_label = EDGE_ENDPOINTS[edge_type]
        values = {
            "edge_type": edge_type.value,
            "source_label": source_label.value,
            "source_id": source_id,
            "target_label": target_label.value,
            "target_id": target_id,
            "name": edge_type.value,
            "etl_name": etl_name,
            "transform_function": transform_function,
        }
        if overwrite_transform:
            result = await _dialect_upsert(
                self._session,
                LineageEdgeTable,
                values,
                index_elements=_EDGE_KEY,
                update_columns=["transform_function"],
            )
        else:
            result = await _dialect_upsert_nothing(self._session, LineageEdgeTable, values, index_elements=_EDGE_KEY)
        return bool(result.rowcount)

    # -- Reads ---------------------------------------------------------------

    async def get_node(self, label: NodeLabel, external_id: str) -> LineageNodeTable | None:
        stmt = select(LineageNodeTable).where(
            LineageNodeTable.label == label.value,
            LineageNodeTable.external_id == external_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_nodes(self, label: NodeLabel | None = None) -> list[LineageNodeTable]:
        stmt = select(LineageNodeTable).order_by(LineageNodeTable.label, LineageNodeTable.external_id)
        if label is not None:
            stmt = stmt.where(LineageNodeTable.label == label.value)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_edges(
        self,
        edge_type: EdgeType | None = None,
        *,
        etl_name: str | None = None,
    ) -> list[LineageEdgeTable]:
        stmt = select(LineageEdgeTable).order_by(
            LineageEdgeTable.edge_type,
            LineageEdgeTable.source_id,
            LineageEdgeTable.target_id,
            LineageEdgeTable.etl_name,
        )
        if edge_type is not None:
            stmt = stmt.where(LineageEdgeTable.edge_type == edge_type.value)
        if etl_name is not None:
            stmt = stmt.where(LineageEdgeTable.etl_name == etl_name)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def snapshot(self) -> tuple[frozenset[tuple[Any, ...]], frozenset[tuple[Any, ...]]]:
        """Return the node and edge sets by identity and properties (timestamps excluded)."""
        nodes = frozenset(
            (n.label, n.external_id, n.datasource_id, n.name, n.full_name) for n in await self.list_nodes()
        )
        edges = frozenset(
            (e.edge_type, e.source_id, e.target_id, e.name, e.etl_name, e.transform_function)
            for e in await self.list_edges()
        )
        return nodes, edges

    async def count_nodes(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(LineageNodeTable))
        return int(result.scalar_one())

    async def count_edges(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(LineageEdgeTable))
        return int(result.scalar_one())
