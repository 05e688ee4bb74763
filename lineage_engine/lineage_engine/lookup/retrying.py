"""Batched, retried access to a metadata lookup.

:class:`RetryingMetadataLookup` decorates any :class:`MetadataLookup`
with the retrieval contract of the metadata service: every call is
retried up to ``max_retries`` times with a fixed backoff, and
``prefetch_*`` fans requests out in batches of ``batch_size``.  A failed
item inside a batch does not fail the batch; it is simply left
unresolved so a later direct call may try again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import TypeVar

from lineage_engine.config import Settings
from lineage_engine.lookup.base import MetadataLookup
from lineage_engine.lookup.retry import RetryConfig, retry_lookup
from lineage_engine.models.identifiers import ColumnId, TableId

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class RetryingMetadataLookup:
    """A :class:`MetadataLookup` adding retry, batching and a prefetch cache.

    Parameters
    ----------
    inner:
        The lookup that actually talks to the metadata store.
    batch_size:
        Number of concurrent requests per prefetch batch.
    retry:
        Retry policy applied to every call against *inner*.
    """

    def __init__(
        self,
        inner: MetadataLookup,
        *,
        batch_size: int = 5,
        retry: RetryConfig | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._inner = inner
        self._batch_size = batch_size
        self._retry = retry or RetryConfig()
        self._tables: dict[tuple[str, str], TableId | None] = {}
        self._columns: dict[tuple[TableId, str], ColumnId | None] = {}

    @classmethod
    def from_settings(cls, inner: MetadataLookup, settings: Settings) -> RetryingMetadataLookup:
        return cls(
            inner,
            batch_size=settings.lookup_batch_size,
            retry=RetryConfig.from_settings(settings),
        )

    # -- MetadataLookup ------------------------------------------------------

    async def resolve_table(self, datasource_id: str, table_name: str) -> TableId | None:
        key = (datasource_id, table_name)
        if key not in self._tables:
            self._tables[key] = await self._call(
                f"resolve_table {datasource_id}.{table_name}",
                lambda: self._inner.resolve_table(datasource_id, table_name),
            )
        return self._tables[key]

    async def resolve_column(self, table_id: TableId, column_name: str) -> ColumnId | None:
        key = (table_id, column_name)
        if key not in self._columns:
            self._columns[key] = await self._call(
                f"resolve_column {table_id}.{column_name}",
                lambda: self._inner.resolve_column(table_id, column_name),
            )
        return self._columns[key]

    # -- Prefetch ------------------------------------------------------------

    async def prefetch_tables(self, keys: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
        """Resolve many ``(datasource_id, table_name)`` keys in batches.

        Returns the keys that could not be fetched because of errors.
        """
        return await self._prefetch(
            keys,
            self._tables,
            lambda key: self._inner.resolve_table(key[0], key[1]),
        )

    async def prefetch_columns(self, keys: Iterable[tuple[TableId, str]]) -> list[tuple[TableId, str]]:
        """Resolve many ``(table_id, column_name)`` keys in batches.

        Returns the keys that could not be fetched because of errors.
        """
        return await self._prefetch(
            keys,
            self._columns,
            lambda key: self._inner.resolve_column(key[0], key[1]),
        )

    # -- Internals -----------------------------------------------------------

    async def _call(self, operation: str, fn: Callable[[], Awaitable[V]]) -> V:
        return await retry_lookup(operation, fn, self._retry)

    async def _prefetch(
        self,
        keys: Iterable[K],
        cache: dict[K, V],
        fetch: Callable[[K], Awaitable[V]],
    ) -> list[K]:
        pending = list(dict.fromkeys(k for k in keys if k not in cache))
        failed: list[K] = []

        for start in range(0, len(pending), self._batch_size):
            batch: Sequence[K] = pending[start : start + self._batch_size]
            results = await asyncio.gather(
                *(self._call(f"prefetch {key}", lambda key=key: fetch(key)) for key in batch),
                return_exceptions=True,
            )
            for key, result in zip(batch, results, strict=True):
                if isinstance(result, Exception):
                    logger.warning("Metadata prefetch failed for %s: %s", key, result)
                    failed.append(key)
                    continue
                if isinstance(result, BaseException):
                    raise result
                cache[key] = result

        logger.debug(
            "Prefetched %d/%d metadata key(s) in batches of %d",
            len(pending) - len(failed),
            len(pending),
            self._batch_size,
        )
        return failed
