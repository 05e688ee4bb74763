"""Metadata lookup contract and a catalog-backed implementation.

The lineage core turns qualified names into stable identifiers through a
:class:`MetadataLookup`.  Implementations must be safe to call repeatedly
and concurrently across jobs.  "Not found" is reported by returning
``None``; infrastructure problems are raised as
:class:`~lineage_engine.errors.MetadataLookupError`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from lineage_engine.errors import MetadataLookupError
from lineage_engine.models.identifiers import ColumnId, TableId

logger = logging.getLogger(__name__)


@runtime_checkable
class MetadataLookup(Protocol):
    """Resolve tables and columns to metadata-store identifiers."""

    async def resolve_table(self, datasource_id: str, table_name: str) -> TableId | None: ...

    async def resolve_column(self, table_id: TableId, column_name: str) -> ColumnId | None: ...


# ---------------------------------------------------------------------------
# Catalog schema
# ---------------------------------------------------------------------------


def _as_str(v: Any) -> Any:
    return str(v) if isinstance(v, int) and not isinstance(v, bool) else v


class CatalogColumn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v: Any) -> Any:
        return _as_str(v)


class CatalogTable(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    datasource_id: str = Field(alias="datasourceId")
    table_name: str = Field(alias="tableName")
    columns: list[CatalogColumn] = Field(default_factory=list)

    @field_validator("id", "datasource_id", mode="before")
    @classmethod
    def _ids_as_str(cls, v: Any) -> Any:
        return _as_str(v)


class Catalog(BaseModel):
    """Serialized form of a metadata catalog (JSON or YAML)."""

    tables: list[CatalogTable] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# In-memory lookup
# ---------------------------------------------------------------------------


class InMemoryMetadataLookup:
    """A :class:`MetadataLookup` over an in-memory catalog.

    Tables are keyed by ``(datasource_id, table_name)`` and columns by
    ``(table_id, column_name)``.  The indices are built once and never
    mutated afterwards, so a single instance can serve concurrent jobs.
    """

    def __init__(self, tables: Iterable[CatalogTable] = ()) -> None:
        self._tables: dict[tuple[str, str], TableId] = {}
        self._columns: dict[tuple[TableId, str], ColumnId] = {}
        for table in tables:
            table_id = TableId(table.id)
            self._tables[(table.datasource_id, table.table_name)] = table_id
            for column in table.columns:
                self._columns[(table_id, column.name)] = ColumnId(column.id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InMemoryMetadataLookup:
        try:
            catalog = Catalog.model_validate(data)
        except ValidationError as exc:
            raise MetadataLookupError(f"Invalid metadata catalog: {exc}") from exc
        return cls(catalog.tables)

    @classmethod
    def from_file(cls, path: Path) -> InMemoryMetadataLookup:
        """Load a catalog from a ``.json``, ``.yaml`` or ``.yml`` file."""
        try:
            text = path.read_text(encoding="utf-8")
            if path.suffix.lower() in {".yaml", ".yml"}:
                data = yaml.safe_load(text) or {}
            else:
                data = json.loads(text)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
            raise MetadataLookupError(f"Cannot load metadata catalog {path}: {exc}") from exc
        lookup = cls.from_dict(data)
        logger.info("Loaded metadata catalog %s (%d tables)", path, len(lookup._tables))
        return lookup

    async def resolve_table(self, datasource_id: str, table_name: str) -> TableId | None:
        return self._tables.get((datasource_id, table_name))

    async def resolve_column(self, table_id: TableId, column_name: str) -> ColumnId | None:
        return self._columns.get((table_id, column_name))
