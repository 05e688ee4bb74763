"""Metadata lookup collaborators."""

from lineage_engine.lookup.base import Catalog, CatalogColumn, CatalogTable, InMemoryMetadataLookup, MetadataLookup
from lineage_engine.lookup.retry import RETRYABLE_LOOKUP_ERRORS, RetryConfig, retry_lookup
from lineage_engine.lookup.retrying import RetryingMetadataLookup

__all__ = [
    "Catalog",
    "CatalogColumn",
    "CatalogTable",
    "InMemoryMetadataLookup",
    "MetadataLookup",
    "RetryConfig",
    "RetryingMetadataLookup",
    "RETRYABLE_LOOKUP_ERRORS",
    "retry_lookup",
]
