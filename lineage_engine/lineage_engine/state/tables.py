"""SQLAlchemy 2.0 ORM table definitions for the lineage graph store.

The graph is stored as two tables: ``lineage_nodes`` keyed by
``(label, external_id)`` and ``lineage_edges`` keyed by
``(edge_type, source_id, target_id, etl_name)``.  Identifiers are the
metadata system's own; the store never generates node identities.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKeyConstraint,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from lineage_engine.models.graph import EdgeType, NodeLabel


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


def _in_list(column: str, values: type[NodeLabel] | type[EdgeType]) -> str:
    return f"{column} IN ({','.join(repr(v.value) for v in values)})"


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all lineage tables."""


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class LineageNodeTable(Base):
    """Database, Table and Column nodes."""

    __tablename__ = "lineage_nodes"

    label: Mapped[str] = mapped_column(String(16), nullable=False)
    external_id: Mapped[str] = mapped_column(String(128), nullable=False)
    datasource_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("label", "external_id"),
        CheckConstraint(_in_list("label", NodeLabel), name="ck_lineage_nodes_label"),
    )


# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------


class LineageEdgeTable(Base):
    """Containment (BELONGS_TO, HAS_COLUMN) and lineage (DEPENDS_ON, MAPS_TO) edges."""

    __tablename__ = "lineage_edges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    edge_type: Mapped[str] = mapped_column(String(16), nullable=False)
    source_label: Mapped[str] = mapped_column(String(16), nullable=False)
    source_id: Mapped[str] = mapped_column(String(128), nullable=False)
    target_label: Mapped[str] = mapped_column(String(16), nullable=False)
    target_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(16), nullable=False)
    etl_name: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    transform_function: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "edge_type",
            "source_id",
            "target_id",
            "etl_name",
            name="uq_lineage_edges_key",
        ),
        ForeignKeyConstraint(
            ["source_label", "source_id"],
            ["lineage_nodes.label", "lineage_nodes.external_id"],
            name="fk_lineage_edges_source",
        ),
        ForeignKeyConstraint(
            ["target_label", "target_id"],
            ["lineage_nodes.label", "lineage_nodes.external_id"],
            name="fk_lineage_edges_target",
        ),
        CheckConstraint(_in_list("edge_type", EdgeType), name="ck_lineage_edges_type"),
        Index("ix_lineage_edges_source", "edge_type", "source_id"),
        Index("ix_lineage_edges_target", "edge_type", "target_id"),
        Index("ix_lineage_edges_etl_name", "etl_name"),
    )
