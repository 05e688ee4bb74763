"""Two-pass resolution of lineage nodes."""

from lineage_engine.resolver.mapping_resolver import (
    EntryOutcome,
    resolve_mappings,
    source_datasource_for,
    table_keys,
)
from lineage_engine.resolver.result_table_index import (
    ResultTableDescriptor,
    ResultTableIndex,
    build_result_table_index,
)

__all__ = [
    "EntryOutcome",
    "ResultTableDescriptor",
    "ResultTableIndex",
    "build_result_table_index",
    "resolve_mappings",
    "source_datasource_for",
    "table_keys",
]
