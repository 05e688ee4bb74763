"""Graph writing and read-only lineage traversal."""

from lineage_engine.graph.query import LineageQuery, build_lineage_graph
from lineage_engine.graph.writer import GraphWriter

__all__ = [
    "GraphWriter",
    "LineageQuery",
    "build_lineage_graph",
]
