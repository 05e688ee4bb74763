"""Timing instrumentation for lineage operations."""

from lineage_engine.telemetry.profiling import ProfileCollector, ProfileResult, profile_operation

__all__ = ["ProfileCollector", "ProfileResult", "profile_operation"]
