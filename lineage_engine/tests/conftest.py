"""Shared fixtures for lineage engine tests.

Every test that touches the graph store gets its own temp-file SQLite
database so savepoint and foreign-key behaviour matches what the CLI
sees in local mode.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from lineage_engine.config import Settings
from lineage_engine.lookup.base import InMemoryMetadataLookup
from lineage_engine.orchestrator import LineageOrchestrator
from lineage_engine.state.database import create_schema
from lineage_engine.state.repository import GraphRepository
from lineage_engine.state.sqlite_adapter import get_local_engine
from lineage_engine.telemetry.profiling import ProfileCollector
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# ---------------------------------------------------------------------------
# Catalog and job documents
# ---------------------------------------------------------------------------

CATALOG: dict[str, Any] = {
    "tables": [
        {
            "id": "t-orders",
            "datasourceId": "1",
            "tableName": "orders",
            "columns": [
                {"id": "c-orders-id", "name": "id"},
                {"id": "c-orders-amount", "name": "amount"},
                {"id": "c-orders-customer", "name": "customer_id"},
            ],
        },
        {
            "id": "t-customers",
            "datasourceId": "1",
            "tableName": "customers",
            "columns": [
                {"id": "c-customers-id", "name": "id"},
                {"id": "c-customers-name", "name": "name"},
            ],
        },
        {
            "id": "t-daily",
            "datasourceId": "2",
            "tableName": "orders_daily",
            "columns": [
                {"id": "c-daily-order-id", "name": "order_id"},
                {"id": "c-daily-amount", "name": "amount"},
                {"id": "c-daily-customer-name", "name": "customer_name"},
            ],
        },
        {
            "id": "t-report",
            "datasourceId": "3",
            "tableName": "revenue_report",
            "columns": [
                {"id": "c-report-amount", "name": "total_amount"},
            ],
        },
    ]
}

ORDERS_DAILY_JOB: dict[str, Any] = {
    "id": "job-1",
    "etlName": "orders_daily_etl",
    "nodes": [
        {"datasourceId": 1, "tableName": "orders"},
        {"datasourceId": 1, "tableName": "customers"},
        {
            "datasourceId": 2,
            "tableName": "orders_daily",
            "fieldMapping": [
                {
                    "targetField": "order_id",
                    "sourceField": "id",
                    "sourceTableName": "orders",
                    "transformFunction": "CAST(id AS BIGINT)",
                },
                {"targetField": "amount", "sourceTableName": "orders"},
                {"targetField": "customer_name", "sourceField": "name", "sourceTableName": "customers"},
            ],
        },
    ],
}

REVENUE_REPORT_JOB: dict[str, Any] = {
    "id": "job-2",
    "etlName": "revenue_report_etl",
    "nodes": [
        {"datasourceId": 2, "tableName": "orders_daily"},
        {
            "datasourceId": 3,
            "tableName": "revenue_report",
            "fieldMapping": [
                {"targetField": "total_amount", "sourceField": "amount", "sourceTableName": "orders_daily"},
            ],
        },
    ],
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_profiler():
    ProfileCollector.reset()
    yield
    ProfileCollector.reset()


@pytest.fixture
def catalog() -> dict[str, Any]:
    return copy.deepcopy(CATALOG)


@pytest.fixture
def lookup(catalog: dict[str, Any]) -> InMemoryMetadataLookup:
    return InMemoryMetadataLookup.from_dict(catalog)


@pytest_asyncio.fixture
async def engine(tmp_path: Path):
    """A fresh SQLite graph store with the schema created."""
    eng = get_local_engine(tmp_path / "graph.db")
    await create_schema(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]):
    async with session_factory() as sess:
        yield sess


@pytest.fixture
def settings() -> Settings:
    return Settings(max_concurrent_jobs=1)


@pytest.fixture
def orchestrator(
    lookup: InMemoryMetadataLookup,
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> LineageOrchestrator:
    return LineageOrchestrator(lookup, session_factory, settings=settings)


@pytest.fixture
def orders_job() -> dict[str, Any]:
    return copy.deepcopy(ORDERS_DAILY_JOB)


@pytest.fixture
def report_job() -> dict[str, Any]:
    return copy.deepcopy(REVENUE_REPORT_JOB)


@pytest.fixture
def read_graph(session_factory: async_sessionmaker[AsyncSession]):
    """Return a coroutine function snapshotting the committed graph."""

    async def _read():
        async with session_factory() as sess:
            return await GraphRepository(sess).snapshot()

    return _read
