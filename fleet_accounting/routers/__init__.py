"""HTTP routers for the Mutation Gateway."""

from .accounting_router import get_orchestrator, router

__all__ = ["get_orchestrator", "router"]
