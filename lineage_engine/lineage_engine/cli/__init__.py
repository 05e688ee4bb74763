"""Command-line interface for the lineage engine."""
