"""Lineage graph construction engine.

Turns ETL job transform scripts into a persisted property graph of
databases, tables and columns linked by ``DEPENDS_ON`` and ``MAPS_TO``
lineage edges.
"""

from lineage_engine.errors import (
    JobTimeout,
    LineageError,
    MalformedScript,
    MetadataLookupError,
    TransactionFailure,
    UnresolvedColumn,
    UnresolvedTable,
    WriteFailure,
)
from lineage_engine.orchestrator import LineageOrchestrator

__version__ = "0.1.0"

__all__ = [
    "JobTimeout",
    "LineageError",
    "LineageOrchestrator",
    "MalformedScript",
    "MetadataLookupError",
    "TransactionFailure",
    "UnresolvedColumn",
    "UnresolvedTable",
    "WriteFailure",
]
