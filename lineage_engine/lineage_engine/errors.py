"""Error taxonomy for lineage graph construction.

Two families exist:

* **Job-fatal** -- :class:`MalformedScript`, :class:`TransactionFailure`
  and :class:`JobTimeout`.  The job transaction is rolled back and the
  job reports failure with the specific cause.
* **Local** -- :class:`UnresolvedTable`, :class:`UnresolvedColumn`,
  :class:`MetadataLookupError` and :class:`WriteFailure`.  These only
  ever skip a single mapping, node or edge and never escalate.
"""

from __future__ import annotations


class LineageError(Exception):
    """Base class for every error raised by the lineage engine."""


# ---------------------------------------------------------------------------
# Job-fatal
# ---------------------------------------------------------------------------


class MalformedScript(LineageError):
    """Raised when a transform script cannot be decoded into lineage nodes.

    Attributes
    ----------
    reason:
        Human-readable description of the decode failure.
    details:
        Optional structured validation errors (one dict per problem).
    """

    def __init__(self, reason: str, details: list[dict[str, object]] | None = None) -> None:
        self.reason = reason
        self.details = details or []
        super().__init__(reason)


class TransactionFailure(LineageError):
    """Raised when the job transaction itself cannot proceed or commit."""


class JobTimeout(LineageError):
    """Raised when a job exceeds its caller-supplied deadline."""

    def __init__(self, etl_name: str, timeout: float) -> None:
        self.etl_name = etl_name
        self.timeout = timeout
        super().__init__(f"Job '{etl_name}' exceeded its deadline of {timeout:.3f}s")


# ---------------------------------------------------------------------------
# Entry / edge local
# ---------------------------------------------------------------------------


class UnresolvedTable(LineageError):
    """A table could not be found in the metadata store."""

    def __init__(self, datasource_id: str | None, table_name: str) -> None:
        self.datasource_id = datasource_id
        self.table_name = table_name
        super().__init__(f"Table not found: datasource={datasource_id} table={table_name}")


class UnresolvedColumn(LineageError):
    """A column could not be found in the metadata store."""

    def __init__(self, table_name: str, column_name: str) -> None:
        self.table_name = table_name
        self.column_name = column_name
        super().__init__(f"Column not found: {table_name}.{column_name}")


class MetadataLookupError(LineageError):
    """Raised by a metadata lookup collaborator on infrastructure failure."""


class WriteFailure(LineageError):
    """A single node or edge could not be persisted.

    The writer has already rolled back the savepoint guarding the failed
    statement, so the surrounding job transaction remains usable.
    """

    def __init__(self, target: str, cause: BaseException | None = None) -> None:
        self.target = target
        self.cause = cause
        message = f"Failed to write {target}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
