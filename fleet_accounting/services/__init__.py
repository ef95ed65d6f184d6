"""Service layer - the accounting calculators and their collaborators."""

from .cost_breakdown_calculator import STANDARD_WEEKLY_MILES, CostBreakdownCalculator
from .deadhead_resolver import DeadheadOutcome, DeadheadResolver
from .distance_resolver import (
    DistanceResolver,
    HttpDistanceResolver,
    TableDistanceResolver,
)
from .fuel_attribution_engine import FuelAttributionEngine
from .mileage_aggregator import MileageAggregator
from .profitability_calculator import ProfitabilityCalculator
from .truck_locks import MySQLTruckLocks, TruckLockRegistry
from .week_window import active_week

__all__ = [
    "STANDARD_WEEKLY_MILES",
    "CostBreakdownCalculator",
    "DeadheadOutcome",
    "DeadheadResolver",
    "DistanceResolver",
    "HttpDistanceResolver",
    "TableDistanceResolver",
    "FuelAttributionEngine",
    "MileageAggregator",
    "ProfitabilityCalculator",
    "MySQLTruckLocks",
    "TruckLockRegistry",
    "active_week",
]
