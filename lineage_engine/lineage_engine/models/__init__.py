"""Domain models for the lineage engine."""

from lineage_engine.models.identifiers import ColumnId, DatabaseId, ExternalId, TableId
from lineage_engine.models.job import (
    ETLJobDefinition,
    FieldMappingEntry,
    FieldMappingNode,
    LineageNode,
    ResultTableNode,
)
from lineage_engine.models.lineage import (
    ColumnRef,
    JobResult,
    JobState,
    ResolvedFieldMapping,
    ResolvedNode,
    ResolvedTable,
    SkippedItem,
    SkipReason,
    WriteCounts,
)

__all__ = [
    "ColumnId",
    "ColumnRef",
    "DatabaseId",
    "ETLJobDefinition",
    "ExternalId",
    "FieldMappingEntry",
    "FieldMappingNode",
    "JobResult",
    "JobState",
    "LineageNode",
    "ResolvedFieldMapping",
    "ResolvedNode",
    "ResolvedTable",
    "ResultTableNode",
    "SkipReason",
    "SkippedItem",
    "TableId",
    "WriteCounts",
]
