"""Intermediate and result types produced while building lineage for a job.

Resolver outputs are frozen dataclasses so the passes compose without
shared mutable state.  Job-level reporting types are pydantic models so
they serialise cleanly for the CLI and for structured logs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field

from lineage_engine.models.identifiers import ColumnId, DatabaseId, TableId
from lineage_engine.models.job import FieldMappingNode

# ---------------------------------------------------------------------------
# Column references
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ColumnRef:
    """A column as written in the script and its bare name."""

    qualified_name: str
    bare_name: str


# ---------------------------------------------------------------------------
# Resolver outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResolvedTable:
    """A table confirmed to exist in the metadata store."""

    table_id: TableId
    datasource_id: str
    table_name: str

    @property
    def database_id(self) -> DatabaseId:
        return DatabaseId(self.datasource_id)


@dataclass(frozen=True)
class ResolvedFieldMapping:
    """A column-to-column mapping whose two endpoints both exist."""

    source_table: ResolvedTable
    source_column_id: ColumnId
    source_column_full_name: str
    target_table: ResolvedTable
    target_column_id: ColumnId
    target_column_full_name: str
    transform_function: str | None = None


class SkipReason(str, Enum):
    """Why a single entry, node or edge was left out of the graph."""

    UNRESOLVED_TABLE = "UNRESOLVED_TABLE"
    UNRESOLVED_COLUMN = "UNRESOLVED_COLUMN"
    LOOKUP_ERROR = "LOOKUP_ERROR"
    WRITE_FAILURE = "WRITE_FAILURE"


class SkippedItem(BaseModel):
    """An entry-local or edge-local failure recorded in the job summary."""

    model_config = {"frozen": True}

    reason: SkipReason
    etl_name: str
    datasource_id: str | None = None
    table_name: str | None = None
    column_name: str | None = None
    detail: str = ""


@dataclass(frozen=True)
class ResolvedNode:
    """Pass-two result for one field-mapping node.

    ``target_table`` is ``None`` when the node's own table did not resolve;
    in that case ``mappings`` is always empty.  ``source_tables`` holds every
    distinct source table that resolved, whether or not any of its columns
    did, so table-level lineage is kept independent of column resolution.
    """

    node: FieldMappingNode
    target_table: ResolvedTable | None
    source_tables: tuple[ResolvedTable, ...]
    mappings: tuple[ResolvedFieldMapping, ...]
    skipped: tuple[SkippedItem, ...]


# ---------------------------------------------------------------------------
# Job reporting
# ---------------------------------------------------------------------------


class JobState(str, Enum):
    """Lifecycle states of a single lineage job."""

    INIT = "Init"
    DECODED = "Decoded"
    PASS1_COMPLETE = "Pass1Complete"
    PASS2_COMPLETE = "Pass2Complete"
    WRITING = "Writing"
    COMMITTED = "Committed"
    ABORTED = "Aborted"


class WriteCounts(BaseModel):
    """Merge calls issued per graph element kind."""

    nodes: int = 0
    containment_edges: int = 0
    depends_on_edges: int = 0
    maps_to_edges: int = 0


class JobResult(BaseModel):
    """Outcome of one orchestrated job."""

    job_id: str
    etl_name: str
    state: JobState = JobState.INIT
    transitions: list[JobState] = Field(default_factory=lambda: [JobState.INIT])
    written: WriteCounts = Field(default_factory=WriteCounts)
    skipped: list[SkippedItem] = Field(default_factory=list)
    error_type: str | None = None
    error_message: str | None = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.state == JobState.COMMITTED

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def advance(self, state: JobState) -> None:
        self.state = state
        self.transitions.append(state)

    def skipped_by_reason(self) -> dict[SkipReason, int]:
        counts: dict[SkipReason, int] = {}
        for item in self.skipped:
            counts[item.reason] = counts.get(item.reason, 0) + 1
        return counts
