"""Engines and sessions for the lineage graph store.

The graph store lives in PostgreSQL in shared deployments and in a local
SQLite file otherwise.  The URL scheme picks the backend:

  - ``postgresql+asyncpg://...``      pooled engine, server-side timeouts
  - ``sqlite+aiosqlite:///graph.db``  single-file engine, see
    :mod:`lineage_engine.state.sqlite_adapter`

Callers own transactions.  One ingestion job maps to one session and one
outer transaction; :func:`get_session` is the plain commit-or-rollback
wrapper for everything that is not a job (schema setup, read queries).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from lineage_engine.config import Settings

logger = logging.getLogger(__name__)

# Server-side limits for PostgreSQL connections, in milliseconds.
_PG_SERVER_SETTINGS = {
    "application_name": "lineage-engine",
    "statement_timeout": "30000",
    "lock_timeout": "10000",
}


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Create the async engine for *database_url*.

    Pool sizing only applies to PostgreSQL; SQLite engines use a single
    file and the adapter's own pool.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        from lineage_engine.state.sqlite_adapter import get_local_engine

        return get_local_engine(url.database or ":memory:")

    engine = create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        connect_args={"server_settings": dict(_PG_SERVER_SETTINGS)},
    )
    logger.info(
        "Graph store engine for %s (pool_size=%d, max_overflow=%d)",
        url.render_as_string(hide_password=True),
        pool_size,
        max_overflow,
    )
    return engine


def engine_from_settings(settings: Settings) -> AsyncEngine:
    return get_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to *engine*."""
    # Objects stay readable after commit; job results reference them.
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create the node and edge tables if they do not exist yet."""
    from lineage_engine.state.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Graph store schema ready (%s)", ", ".join(sorted(Base.metadata.tables)))


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session that commits on exit and rolls back on error."""
    async with get_session_factory(engine)() as session:
        try:
            yield session
        except BaseException:
            await session.rollback()
            raise
        await session.commit()
