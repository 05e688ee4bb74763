"""Job orchestration: decode, resolve, write, commit."""

from lineage_engine.orchestrator.lineage_orchestrator import JobInput, LineageOrchestrator, WriterFactory

__all__ = ["JobInput", "LineageOrchestrator", "WriterFactory"]
