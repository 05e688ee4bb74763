"""ETL job definition schema.

A job document carries an ``etlName`` and a ``nodes`` array.  Each node
names a table by ``datasourceId`` + ``tableName``; nodes that also carry
a non-empty ``fieldMapping`` describe how the table's columns are fed.
All models accept the camelCase keys used on the wire as well as their
snake_case attribute names.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, field_validator


def _coerce_id(v: Any) -> Any:
    """Identifiers arrive as either numbers or strings."""
    if isinstance(v, bool):
        return v
    if isinstance(v, int):
        return str(v)
    if isinstance(v, str):
        return v.strip()
    return v


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class FieldMappingEntry(_WireModel):
    """One target column fed by one source column."""

    target_field: str = Field(alias="targetField", min_length=1)
    source_field: str | None = Field(default=None, alias="sourceField")
    source_table_name: str = Field(alias="sourceTableName", min_length=1)
    source_datasource_id: str | None = Field(default=None, alias="sourceDatasourceId")
    transform_function: str | None = Field(default=None, alias="transformFunction")

    @field_validator("source_datasource_id", mode="before")
    @classmethod
    def _normalise_datasource(cls, v: Any) -> Any:
        v = _coerce_id(v)
        return v or None

    @field_validator("source_field", "transform_function", mode="before")
    @classmethod
    def _blank_is_absent(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def effective_source_field(self) -> str:
        """The source column, defaulting to the target column when omitted."""
        return self.source_field if self.source_field is not None else self.target_field


class ResultTableNode(_WireModel):
    """A table referenced by the script without any field mapping."""

    datasource_id: str = Field(alias="datasourceId", min_length=1)
    table_name: str = Field(alias="tableName", min_length=1)

    @field_validator("datasource_id", mode="before")
    @classmethod
    def _coerce_datasource(cls, v: Any) -> Any:
        return _coerce_id(v)


class FieldMappingNode(_WireModel):
    """A target table together with the mappings that populate its columns."""

    datasource_id: str = Field(alias="datasourceId", min_length=1)
    table_name: str = Field(alias="tableName", min_length=1)
    field_mapping: tuple[FieldMappingEntry, ...] = Field(alias="fieldMapping", min_length=1)

    @field_validator("datasource_id", mode="before")
    @classmethod
    def _coerce_datasource(cls, v: Any) -> Any:
        return _coerce_id(v)


def _node_kind(v: Any) -> str:
    """Pick the node variant: a missing, null or empty ``fieldMapping`` means a result table."""
    if isinstance(v, FieldMappingNode):
        return "mapping"
    if isinstance(v, ResultTableNode):
        return "result"
    if isinstance(v, dict):
        mapping = v.get("fieldMapping", v.get("field_mapping"))
        return "mapping" if mapping else "result"
    return "result"


LineageNode = Annotated[
    Annotated[ResultTableNode, Tag("result")] | Annotated[FieldMappingNode, Tag("mapping")],
    Discriminator(_node_kind),
]


class ETLJobDefinition(_WireModel):
    """An ETL job and its decoded transform script.  Immutable once read."""

    job_id: str = Field(alias="id", min_length=1)
    etl_name: str = Field(alias="etlName", min_length=1)
    nodes: tuple[LineageNode, ...] = ()

    @field_validator("job_id", mode="before")
    @classmethod
    def _coerce_job_id(cls, v: Any) -> Any:
        return _coerce_id(v)

    @field_validator("etl_name", mode="before")
    @classmethod
    def _strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @property
    def mapping_nodes(self) -> tuple[FieldMappingNode, ...]:
        return tuple(n for n in self.nodes if isinstance(n, FieldMappingNode))

    @property
    def result_table_nodes(self) -> tuple[ResultTableNode, ...]:
        return tuple(n for n in self.nodes if isinstance(n, ResultTableNode))
