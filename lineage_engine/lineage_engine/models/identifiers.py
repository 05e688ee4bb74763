"""Typed external identifiers shared between the metadata store and the graph.

The graph never mints identifiers for databases, tables or columns; it
mirrors the identifier space of the metadata system.  Each kind gets its
own wrapper so a table id cannot be passed where a column id is expected.
Two ids of different kinds never compare equal even when their raw values
match.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class ExternalId:
    """An identifier issued by the metadata system."""

    value: str

    label: ClassVar[str] = ""

    def __post_init__(self) -> None:
        raw = self.value
        if isinstance(raw, bool) or not isinstance(raw, (str, int)):
            raise TypeError(f"{type(self).__name__} expects a str or int, got {type(raw).__name__}")
        text = str(raw).strip()
        if not text:
            raise ValueError(f"{type(self).__name__} must not be empty")
        object.__setattr__(self, "value", text)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DatabaseId(ExternalId):
    label: ClassVar[str] = "Database"


@dataclass(frozen=True)
class TableId(ExternalId):
    label: ClassVar[str] = "Table"


@dataclass(frozen=True)
class ColumnId(ExternalId):
    label: ClassVar[str] = "Column"


def expect_id(kind: type[ExternalId], value: object) -> ExternalId:
    """Validate that *value* is an identifier of exactly *kind*.

    Raises
    ------
    TypeError
        If *value* belongs to a different identifier space.
    """
    if type(value) is not kind:
        raise TypeError(f"Expected {kind.__name__}, got {type(value).__name__}: {value!r}")
    return value  # type: ignore[return-value]
