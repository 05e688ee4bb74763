"""Read-only lineage traversal over the persisted graph.

Edges of one lineage type (``DEPENDS_ON`` or ``MAPS_TO``) are loaded into
a :class:`networkx.DiGraph` whose edges point from source to target, so
"upstream" follows predecessors and "downstream" follows successors.
Parallel edges from different jobs collapse into one graph edge whose
``etl_names`` attribute lists every producing job.
"""

from __future__ import annotations

import logging
from collections import deque

import networkx as nx
from sqlalchemy.ext.asyncio import AsyncSession

from lineage_engine.models.graph import EdgeType
from lineage_engine.models.identifiers import ColumnId, ExternalId, TableId
from lineage_engine.state.repository import GraphRepository
from lineage_engine.state.tables import LineageEdgeTable

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Traversal helpers
# ---------------------------------------------------------------------------


def _walk(graph: nx.DiGraph, start: str, *, forward: bool, max_depth: int | None) -> set[str]:
    """Breadth-first closure from *start*, excluding *start* itself.

    ``max_depth=1`` returns direct neighbours only; ``None`` is unbounded.
    Cycles terminate naturally because visited nodes are never re-queued.
    """
    if start not in graph:
        return set()

    step = graph.successors if forward else graph.predecessors
    visited: set[str] = set()
    queue: deque[tuple[str, int]] = deque((n, 1) for n in step(start))

    while queue:
        current, depth = queue.popleft()
        if current in visited or current == start:
            continue
        visited.add(current)
        if max_depth is not None and depth >= max_depth:
            continue
        queue.extend((n, depth + 1) for n in step(current))

    return visited


def build_lineage_graph(edges: list[LineageEdgeTable]) -> nx.DiGraph:
    """Build a directed graph from persisted lineage edges."""
    graph = nx.DiGraph()
    for edge in edges:
        if graph.has_edge(edge.source_id, edge.target_id):
            graph[edge.source_id][edge.target_id]["etl_names"].append(edge.etl_name)
            continue
        graph.add_edge(
            edge.source_id,
            edge.target_id,
            etl_names=[edge.etl_name],
            transform_function=edge.transform_function,
        )
    return graph


# ---------------------------------------------------------------------------
# Query surface
# ---------------------------------------------------------------------------


class LineageQuery:
    """Traverse ``DEPENDS_ON``/``MAPS_TO`` edges keyed by table or column id.

    Parameters
    ----------
    session:
        A session used only for reads.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._repo = GraphRepository(session)

    async def load(self, edge_type: EdgeType, *, etl_name: str | None = None) -> nx.DiGraph:
        if edge_type not in (EdgeType.DEPENDS_ON, EdgeType.MAPS_TO):
            raise ValueError(f"{edge_type.value} is not a lineage edge type")
        edges = await self._repo.list_edges(edge_type, etl_name=etl_name)
        return build_lineage_graph(edges)

    async def _closure(
        self,
        edge_type: EdgeType,
        start: ExternalId,
        kind: type[ExternalId],
        *,
        forward: bool,
        transitive: bool,
        max_depth: int | None,
        etl_name: str | None,
    ) -> set[ExternalId]:
        if max_depth is not None and max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        graph = await self.load(edge_type, etl_name=etl_name)
        depth = 1 if not transitive else max_depth
        return {kind(n) for n in _walk(graph, start.value, forward=forward, max_depth=depth)}

    async def upstream_tables(
        self,
        table_id: TableId,
        *,
        transitive: bool = True,
        max_depth: int | None = None,
        etl_name: str | None = None,
    ) -> set[TableId]:
        """Tables whose data flows into *table_id*."""
        return await self._closure(  # type: ignore[return-value]
            EdgeType.DEPENDS_ON,
            table_id,
            TableId,
            forward=False,
            transitive=transitive,
            max_depth=max_depth,
            etl_name=etl_name,
        )

    async def downstream_tables(
        self,
        table_id: TableId,
        *,
        transitive: bool = True,
        max_depth: int | None = None,
        etl_name: str | None = None,
    ) -> set[TableId]:
        """Tables fed, directly or transitively, by *table_id*."""
        return await self._closure(  # type: ignore[return-value]
            EdgeType.DEPENDS_ON,
            table_id,
            TableId,
            forward=True,
            transitive=transitive,
            max_depth=max_depth,
            etl_name=etl_name,
        )

    async def upstream_columns(
        self,
        column_id: ColumnId,
        *,
        transitive: bool = True,
        max_depth: int | None = None,
        etl_name: str | None = None,
    ) -> set[ColumnId]:
        """Columns whose data flows into *column_id*."""
        return await self._closure(  # type: ignore[return-value]
            EdgeType.MAPS_TO,
            column_id,
            ColumnId,
            forward=False,
            transitive=transitive,
            max_depth=max_depth,
            etl_name=etl_name,
        )

    async def downstream_columns(
        self,
        column_id: ColumnId,
        *,
        transitive: bool = True,
        max_depth: int | None = None,
        etl_name: str | None = None,
    ) -> set[ColumnId]:
        """Columns fed, directly or transitively, by *column_id*."""
        return await self._closure(  # type: ignore[return-value]
            EdgeType.MAPS_TO,
            column_id,
            ColumnId,
            forward=True,
            transitive=transitive,
            max_depth=max_depth,
            etl_name=etl_name,
        )

    async def edges_for_job(self, etl_name: str) -> list[LineageEdgeTable]:
        """Every lineage edge produced by the job named *etl_name*."""
        edges = await self._repo.list_edges(etl_name=etl_name)
        return [e for e in edges if e.edge_type in (EdgeType.DEPENDS_ON.value, EdgeType.MAPS_TO.value)]
