"""Graph store persistence: ORM tables, engines and the merge repository."""

from lineage_engine.state.database import (
    create_schema,
    engine_from_settings,
    get_engine,
    get_session,
    get_session_factory,
)
from lineage_engine.state.repository import GraphRepository
from lineage_engine.state.sqlite_adapter import get_local_engine
from lineage_engine.state.tables import Base, LineageEdgeTable, LineageNodeTable

__all__ = [
    "Base",
    "GraphRepository",
    "LineageEdgeTable",
    "LineageNodeTable",
    "create_schema",
    "engine_from_settings",
    "get_engine",
    "get_local_engine",
    "get_session",
    "get_session_factory",
]
