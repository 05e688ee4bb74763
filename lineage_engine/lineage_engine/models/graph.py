"""Property-graph vocabulary: node labels and edge types."""

from __future__ import annotations

from enum import Enum


class NodeLabel(str, Enum):
    DATABASE = "Database"
    TABLE = "Table"
    COLUMN = "Column"


class EdgeType(str, Enum):
    BELONGS_TO = "BELONGS_TO"  # Database -> Table
    HAS_COLUMN = "HAS_COLUMN"  # Table -> Column
    DEPENDS_ON = "DEPENDS_ON"  # Table -> Table
    MAPS_TO = "MAPS_TO"  # Column -> Column


CONTAINMENT_EDGES: frozenset[EdgeType] = frozenset({EdgeType.BELONGS_TO, EdgeType.HAS_COLUMN})
LINEAGE_EDGES: frozenset[EdgeType] = frozenset({EdgeType.DEPENDS_ON, EdgeType.MAPS_TO})

# (source label, target label) required by each edge type.
EDGE_ENDPOINTS: dict[EdgeType, tuple[NodeLabel, NodeLabel]] = {
    EdgeType.BELONGS_TO: (NodeLabel.DATABASE, NodeLabel.TABLE),
    EdgeType.HAS_COLUMN: (NodeLabel.TABLE, NodeLabel.COLUMN),
    EdgeType.DEPENDS_ON: (NodeLabel.TABLE, NodeLabel.TABLE),
    EdgeType.MAPS_TO: (NodeLabel.COLUMN, NodeLabel.COLUMN),
}

# Containment edges are not produced by a job; they carry an empty etl_name
# so the (type, source, target, etl_name) key stays NOT NULL and unique.
NO_ETL_NAME = ""
