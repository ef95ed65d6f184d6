"""Orchestrator layer for coordinating services and repositories."""

from .accounting_orchestrator import PIPELINES, AccountingOrchestrator, OrchestratorConfig

__all__ = [
    "PIPELINES",
    "AccountingOrchestrator",
    "OrchestratorConfig",
]
