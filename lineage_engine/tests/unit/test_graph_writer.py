"""Unit tests for lineage_engine.graph.writer and the graph repository.

These tests use a temp-file SQLite database via aiosqlite with foreign
keys enabled, so an edge to a missing node fails like it would on
PostgreSQL.
"""

from __future__ import annotations

import pytest
from lineage_engine.errors import WriteFailure
from lineage_engine.graph.writer import GraphWriter
from lineage_engine.models.graph import EdgeType, NodeLabel
from lineage_engine.models.identifiers import ColumnId, DatabaseId, TableId
from lineage_engine.state.repository import GraphRepository

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _seed_columns(writer: GraphWriter) -> tuple[ColumnId, ColumnId]:
    src, tgt = ColumnId("c-src"), ColumnId("c-tgt")
    await writer.merge_column_node(src, "orders.amount")
    await writer.merge_column_node(tgt, "orders_daily.amount")
    return src, tgt


# ---------------------------------------------------------------------------
# Node merges
# ---------------------------------------------------------------------------


class TestNodeMerge:
    @pytest.mark.asyncio
    async def test_first_merge_creates_node(self, session):
        writer = GraphWriter(session)
        assert await writer.merge_database_node(DatabaseId("1")) is True
        node = await GraphRepository(session).get_node(NodeLabel.DATABASE, "1")
        assert node is not None

    @pytest.mark.asyncio
    async def test_repeat_merge_is_noop(self, session):
        writer = GraphWriter(session)
        await writer.merge_table_node(TableId("t-1"), "1", "orders")
        before = await GraphRepository(session).snapshot()
        assert await writer.merge_table_node(TableId("t-1"), "1", "orders") is False
        assert await GraphRepository(session).snapshot() == before

    @pytest.mark.asyncio
    async def test_merge_never_updates_properties(self, session):
        writer = GraphWriter(session)
        await writer.merge_table_node(TableId("t-1"), "1", "orders")
        await writer.merge_table_node(TableId("t-1"), "1", "renamed")
        node = await GraphRepository(session).get_node(NodeLabel.TABLE, "t-1")
        assert node is not None
        assert node.name == "orders"
        assert node.datasource_id == "1"

    @pytest.mark.asyncio
    async def test_same_raw_id_different_labels_are_distinct(self, session):
        writer = GraphWriter(session)
        await writer.merge_table_node(TableId("42"), "1", "orders")
        await writer.merge_column_node(ColumnId("42"), "orders.id")
        assert await GraphRepository(session).count_nodes() == 2

    @pytest.mark.asyncio
    async def test_column_stores_full_name(self, session):
        writer = GraphWriter(session)
        await writer.merge_column_node(ColumnId("c-1"), "orders.amount")
        node = await GraphRepository(session).get_node(NodeLabel.COLUMN, "c-1")
        assert node is not None
        assert node.full_name == "orders.amount"

    @pytest.mark.asyncio
    async def test_wrong_identifier_kind_rejected(self, session):
        writer = GraphWriter(session)
        with pytest.raises(TypeError):
            await writer.merge_table_node(ColumnId("c-1"), "1", "orders")  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Edge merges
# ---------------------------------------------------------------------------


class TestEdgeMerge:
    @pytest.mark.asyncio
    async def test_containment_edges(self, session):
        writer = GraphWriter(session)
        await writer.merge_database_node(DatabaseId("1"))
        await writer.merge_table_node(TableId("t-1"), "1", "orders")
        await writer.merge_column_node(ColumnId("c-1"), "orders.id")
        assert await writer.merge_containment_edge(DatabaseId("1"), TableId("t-1"), EdgeType.BELONGS_TO)
        assert await writer.merge_containment_edge(TableId("t-1"), ColumnId("c-1"), EdgeType.HAS_COLUMN)
        assert not await writer.merge_containment_edge(TableId("t-1"), ColumnId("c-1"), EdgeType.HAS_COLUMN)
        assert await GraphRepository(session).count_edges() == 2

    @pytest.mark.asyncio
    async def test_containment_rejects_lineage_kind(self, session):
        writer = GraphWriter(session)
        with pytest.raises(ValueError, match="containment"):
            await writer.merge_containment_edge(TableId("a"), TableId("b"), EdgeType.DEPENDS_ON)

    @pytest.mark.asyncio
    async def test_containment_rejects_wrong_endpoint_kinds(self, session):
        writer = GraphWriter(session)
        with pytest.raises(TypeError):
            await writer.merge_containment_edge(TableId("t-1"), TableId("t-2"), EdgeType.BELONGS_TO)

    @pytest.mark.asyncio
    async def test_depends_on_unique_per_job(self, session):
        writer = GraphWriter(session)
        await writer.merge_table_node(TableId("t-src"), "1", "orders")
        await writer.merge_table_node(TableId("t-tgt"), "2", "orders_daily")
        assert await writer.merge_depends_on(TableId("t-src"), TableId("t-tgt"), "job_a")
        assert not await writer.merge_depends_on(TableId("t-src"), TableId("t-tgt"), "job_a")
        assert await writer.merge_depends_on(TableId("t-src"), TableId("t-tgt"), "job_b")
        edges = await GraphRepository(session).list_edges(EdgeType.DEPENDS_ON)
        assert sorted(e.etl_name for e in edges) == ["job_a", "job_b"]

    @pytest.mark.asyncio
    async def test_depends_on_with_absent_endpoint_is_noop(self, session):
        writer = GraphWriter(session)
        assert await writer.merge_depends_on(None, TableId("t-tgt"), "job") is False
        assert await writer.merge_depends_on(TableId("t-src"), None, "job") is False
        assert await GraphRepository(session).count_edges() == 0

    @pytest.mark.asyncio
    async def test_maps_to_with_absent_endpoint_is_noop(self, session):
        writer = GraphWriter(session)
        assert await writer.merge_maps_to(None, ColumnId("c"), "job") is False
        assert await GraphRepository(session).count_edges() == 0

    @pytest.mark.asyncio
    async def test_maps_to_transform_last_write_wins(self, session):
        writer = GraphWriter(session)
        src, tgt = await _seed_columns(writer)
        await writer.merge_maps_to(src, tgt, "job", "SUM(amount)")
        await writer.merge_maps_to(src, tgt, "job", "AVG(amount)")
        (edge,) = await GraphRepository(session).list_edges(EdgeType.MAPS_TO)
        assert edge.transform_function == "AVG(amount)"
        assert edge.etl_name == "job"
        assert edge.name == "MAPS_TO"

    @pytest.mark.asyncio
    async def test_maps_to_same_transform_twice_is_stable(self, session):
        writer = GraphWriter(session)
        src, tgt = await _seed_columns(writer)
        await writer.merge_maps_to(src, tgt, "job", "SUM(amount)")
        before = await GraphRepository(session).snapshot()
        await writer.merge_maps_to(src, tgt, "job", "SUM(amount)")
        assert await GraphRepository(session).snapshot() == before


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestWriteFailure:
    @pytest.mark.asyncio
    async def test_edge_to_missing_node_raises_write_failure(self, session):
        writer = GraphWriter(session)
        with pytest.raises(WriteFailure):
            await writer.merge_depends_on(TableId("ghost-a"), TableId("ghost-b"), "job")

    @pytest.mark.asyncio
    async def test_transaction_usable_after_write_failure(self, session):
        writer = GraphWriter(session)
        await writer.merge_table_node(TableId("t-1"), "1", "orders")
        with pytest.raises(WriteFailure):
            await writer.merge_depends_on(TableId("t-1"), TableId("ghost"), "job")
        assert await writer.merge_table_node(TableId("t-2"), "1", "customers") is True
        await session.commit()
        assert await GraphRepository(session).count_nodes() == 2
        assert await GraphRepository(session).count_edges() == 0
