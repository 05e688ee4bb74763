"""Reduce qualified column references to bare column names."""

from __future__ import annotations

from lineage_engine.models.lineage import ColumnRef

SEPARATOR = "."


def normalize_field_name(name: str) -> str:
    """Return the bare column name of a qualified or bare column reference.

    Only the segment after the *last* separator is kept, so multi-level
    qualification such as ``db.alias_of_join.id`` reduces to ``id``.  A
    string without a separator, an empty string, or one that ends with the
    separator is returned unchanged.

    >>> normalize_field_name("service_relation_client_side.id")
    'id'
    >>> normalize_field_name("simple_column")
    'simple_column'
    >>> normalize_field_name("a.")
    'a.'
    """
    idx = name.rfind(SEPARATOR)
    if idx == -1 or idx == len(name) - 1:
        return name
    return name[idx + 1 :]


def qualify(table_name: str, field: str) -> str:
    """Join a table (or alias) and a field into a qualified column name."""
    return f"{table_name}{SEPARATOR}{field}"


def column_ref(table_name: str, field: str) -> ColumnRef:
    """Build a :class:`ColumnRef` for *field* on *table_name*."""
    qualified = qualify(table_name, field)
    return ColumnRef(qualified_name=qualified, bare_name=normalize_field_name(qualified))
