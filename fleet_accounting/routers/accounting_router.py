"""
Accounting Router
Mutation hooks and read endpoints for the fleet cost & mileage engine.

The gateway writes the primary entity first, then calls the matching hook
here so derived figures are recomputed. Errors are translated by
fleet_accounting.errors.register_exception_handlers.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from fleet_accounting.models import LoadStatus
from fleet_accounting.orchestrators import AccountingOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounting", tags=["Fleet Accounting"])

_orchestrator: Optional[AccountingOrchestrator] = None


def get_orchestrator() -> AccountingOrchestrator:
    """Lazily built orchestrator; override with app.dependency_overrides in tests."""
    global _orchestrator
    if _orchestrator is None:
        from fleet_accounting.config_helper import create_orchestrator

        _orchestrator = create_orchestrator()
    return _orchestrator


class LoadStatusUpdate(BaseModel):
    status: LoadStatus


# ═══════════════════════════════════════════════════════════════════════════════
# MUTATION HOOKS
# ═══════════════════════════════════════════════════════════════════════════════


@router.post("/trucks/{truck_id}/recompute")
def truck_mutated(truck_id: str, orchestrator: AccountingOrchestrator = Depends(get_orchestrator)):
    return orchestrator.on_truck_mutated(truck_id).to_dict()


@router.post("/loads/{load_id}/mutated")
def load_mutated(
    load_id: str,
    previous_truck_id: Optional[str] = Query(None, description="Truck the load was assigned to before"),
    orchestrator: AccountingOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.on_load_mutated(load_id, previous_truck_id=previous_truck_id).to_dict()


@router.patch("/loads/{load_id}/status")
def update_load_status(
    load_id: str,
    body: LoadStatusUpdate,
    orchestrator: AccountingOrchestrator = Depends(get_orchestrator),
):
    """Change a load's status. Delivery resolves deadhead for the next queued load."""
    logger.info(f"Load {load_id} -> {body.status.value}")
    return orchestrator.update_load_status(load_id, body.status).to_dict()


@router.post("/fuel-purchases/{purchase_id}/mutated")
def fuel_purchase_mutated(
    purchase_id: str,
    truck_id: Optional[str] = Query(None, description="Owning truck of a deleted or moved purchase"),
    orchestrator: AccountingOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.on_fuel_purchase_mutated(purchase_id, truck_id=truck_id).to_dict()


@router.post("/cost-breakdowns/{breakdown_id}/edited")
def cost_breakdown_edited(
    breakdown_id: str, orchestrator: AccountingOrchestrator = Depends(get_orchestrator)
):
    return orchestrator.on_cost_breakdown_edited(breakdown_id).to_dict()


# ═══════════════════════════════════════════════════════════════════════════════
# QUERIES
# ═══════════════════════════════════════════════════════════════════════════════


@router.get("/trucks/{truck_id}/cost-summary")
def truck_cost_summary(truck_id: str, orchestrator: AccountingOrchestrator = Depends(get_orchestrator)):
    return orchestrator.get_truck_cost_summary(truck_id).to_dict()


@router.get("/loads/{load_id}/profitability")
def load_profitability(load_id: str, orchestrator: AccountingOrchestrator = Depends(get_orchestrator)):
    return orchestrator.get_load_profitability(load_id).to_dict()


@router.get("/fleet/profitability")
def fleet_profitability(
    owner_id: Optional[str] = Query(None),
    orchestrator: AccountingOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.get_fleet_profitability(owner_id).to_dict()


@router.get("/status")
def engine_status(orchestrator: AccountingOrchestrator = Depends(get_orchestrator)):
    """Distance resolver circuit state and dead-letter queue size."""
    return orchestrator.get_status()
