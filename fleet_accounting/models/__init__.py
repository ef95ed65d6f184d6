"""Dataclass models for accounting entities and results."""

from .accounting_models import (
    FIXED_COST_FIELDS,
    VARIABLE_COST_FIELDS,
    CostBreakdown,
    CostTotals,
    FleetProfitability,
    FuelAttribution,
    FuelPurchase,
    FuelType,
    Load,
    LoadProfitability,
    LoadStatus,
    Mutation,
    MutationKind,
    PipelineResult,
    Truck,
    TruckCostSummary,
    WeekWindow,
    entity_to_dict,
)

__all__ = [
    "FIXED_COST_FIELDS",
    "VARIABLE_COST_FIELDS",
    "CostBreakdown",
    "CostTotals",
    "FleetProfitability",
    "FuelAttribution",
    "FuelPurchase",
    "FuelType",
    "Load",
    "LoadProfitability",
    "LoadStatus",
    "Mutation",
    "MutationKind",
    "PipelineResult",
    "Truck",
    "TruckCostSummary",
    "WeekWindow",
    "entity_to_dict",
]
