"""
Accounting Data Models
======================

Entities (Truck, Load, FuelPurchase, CostBreakdown), the enums that
constrain them, and the value objects the calculators return.

Derived fields on entities (Truck.total_miles, Truck.cost_per_mile,
Load.deadhead_miles, CostBreakdown totals...) are written only by the
accounting orchestrator.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from fleet_accounting.errors import InvalidStatusTransition


# ══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════════════


class LoadStatus(str, Enum):
    """Load lifecycle. Transitions only move forward."""

    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"

    @classmethod
    def validate_transition(cls, current: "LoadStatus", requested: "LoadStatus") -> None:
        """Raise InvalidStatusTransition unless current -> requested is allowed."""
        current = cls(current)
        requested = cls(requested)
        order = [cls.PENDING, cls.IN_TRANSIT, cls.DELIVERED]
        if current == cls.DELIVERED:
            # no un-delivering and no re-delivery
            raise InvalidStatusTransition(current.value, requested.value)
        if order.index(requested) < order.index(current):
            raise InvalidStatusTransition(current.value, requested.value)


class FuelType(str, Enum):
    DIESEL = "diesel"
    DEF = "def"


class MutationKind(str, Enum):
    """Which recomputation pipeline a mutation triggers"""

    TRUCK_CHANGED = "truck_changed"
    LOAD_DELIVERED = "load_delivered"
    LOAD_REASSIGNED = "load_reassigned"  # load create/update/delete
    FUEL_PURCHASE_CHANGED = "fuel_purchase_changed"  # create/update/delete/attach/detach
    BREAKDOWN_EDITED = "breakdown_edited"


# ══════════════════════════════════════════════════════════════════════════════
# ENTITIES
# ══════════════════════════════════════════════════════════════════════════════


@dataclass
class Truck:
    id: str
    owner_id: Optional[str] = None
    name: str = ""
    # Weekly cost caches of the latest CostBreakdown
    fixed_costs: float = 0.0
    variable_costs: float = 0.0
    # Derived
    total_miles: float = 0.0
    cost_per_mile: float = 0.0
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Load:
    id: str
    truck_id: Optional[str] = None
    owner_id: Optional[str] = None
    status: LoadStatus = LoadStatus.PENDING

    # Revenue
    pay: float = 0.0
    miles: float = 0.0  # revenue miles, static after creation

    # Route
    origin_city: Optional[str] = None
    origin_state: Optional[str] = None
    destination_city: Optional[str] = None
    destination_state: Optional[str] = None
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None

    # Deadhead (filled by DeadheadResolver)
    deadhead_from_city: Optional[str] = None
    deadhead_from_state: Optional[str] = None
    deadhead_miles: float = 0.0
    total_miles_with_deadhead: Optional[float] = None

    # Derived profitability
    rate_per_mile: float = 0.0
    profit: float = 0.0
    is_profitable: bool = False
    actual_fuel_cost: float = 0.0
    actual_gallons: float = 0.0
    actual_cost_per_mile: float = 0.0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.status = LoadStatus(self.status)

    @property
    def operational_miles(self) -> float:
        """Revenue + deadhead miles, preferring the denormalized total."""
        if self.total_miles_with_deadhead is not None:
            return self.total_miles_with_deadhead
        return (self.miles or 0.0) + (self.deadhead_miles or 0.0)

    @property
    def sort_date(self) -> datetime:
        return self.pickup_date or self.created_at or datetime.max


@dataclass
class FuelPurchase:
    id: str
    truck_id: str
    load_id: Optional[str] = None  # None = unattached
    gallons: float = 0.0
    total_cost: float = 0.0
    purchase_date: Optional[datetime] = None
    fuel_type: FuelType = FuelType.DIESEL
    price_per_gallon: Optional[float] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.fuel_type = FuelType(self.fuel_type)

    @property
    def is_attached(self) -> bool:
        return self.load_id is not None


FIXED_COST_FIELDS = (
    "truck_payment",
    "trailer_payment",
    "elog_subscription",
    "liability_insurance",
    "physical_insurance",
    "cargo_insurance",
    "trailer_interchange",
    "bobtail_insurance",
    "non_trucking_liability",
    "base_plate_deduction",
    "company_phone",
)

VARIABLE_COST_FIELDS = (
    "driver_pay",
    "fuel",
    "def_fluid",
    "maintenance",
    "ifta_taxes",
    "tolls",
    "dwell_time",
    "reefer_fuel",
    "truck_parking",
)


@dataclass
class CostBreakdown:
    """One weekly cost ledger row per (truck_id, week_starting)."""

    id: str
    truck_id: str
    week_starting: datetime
    week_ending: Optional[datetime] = None

    # Fixed (weekly)
    truck_payment: float = 0.0
    trailer_payment: float = 0.0
    elog_subscription: float = 0.0
    liability_insurance: float = 0.0
    physical_insurance: float = 0.0
    cargo_insurance: float = 0.0
    trailer_interchange: float = 0.0
    bobtail_insurance: float = 0.0
    non_trucking_liability: float = 0.0
    base_plate_deduction: float = 0.0
    company_phone: float = 0.0

    # Variable (weekly)
    driver_pay: float = 0.0
    fuel: float = 0.0
    def_fluid: float = 0.0
    maintenance: float = 0.0
    ifta_taxes: float = 0.0
    tolls: float = 0.0
    dwell_time: float = 0.0
    reefer_fuel: float = 0.0
    truck_parking: float = 0.0

    # Fuel efficiency
    gallons_used: float = 0.0
    avg_fuel_price: float = 0.0
    miles_per_gallon: float = 0.0

    # Derived totals
    total_fixed_costs: float = 0.0
    total_variable_costs: float = 0.0
    total_weekly_costs: float = 0.0
    cost_per_mile: float = 0.0

    # Mile basis
    miles_this_week: float = 0.0
    total_miles_with_deadhead: float = 0.0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def line_items(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in FIXED_COST_FIELDS + VARIABLE_COST_FIELDS}

    @property
    def mile_basis(self) -> float:
        return self.total_miles_with_deadhead or self.miles_this_week or 0.0


def entity_to_dict(entity: Any) -> Dict[str, Any]:
    """Flatten an entity dataclass into JSON-friendly values."""
    result = {}
    for f in fields(entity):
        value = getattr(entity, f.name)
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        result[f.name] = value
    return result


# ══════════════════════════════════════════════════════════════════════════════
# VALUE OBJECTS
# ══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class WeekWindow:
    """Sunday 00:00:00 through Saturday 23:59:59.999999"""

    start: datetime
    end: datetime

    def contains(self, moment: Optional[datetime]) -> bool:
        return moment is not None and self.start <= moment <= self.end


@dataclass
class CostTotals:
    fixed_total: float
    variable_total: float
    weekly_total: float
    cost_per_mile: float  # full precision
    cost_per_mile_display: float  # rounded; this is what gets stored
    mile_basis: float
    used_standard_basis: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fixed_total": round(self.fixed_total, 2),
            "variable_total": round(self.variable_total, 2),
            "weekly_total": round(self.weekly_total, 2),
            "cost_per_mile": self.cost_per_mile_display,
            "mile_basis": self.mile_basis,
            "used_standard_basis": self.used_standard_basis,
        }


@dataclass
class FuelAttribution:
    """Result of a weekly fuel recomputation for one truck"""

    truck_id: str
    week: WeekWindow
    total_fuel_cost: float = 0.0
    total_gallons: float = 0.0
    avg_fuel_price: float = 0.0
    diesel_cost: float = 0.0
    def_cost: float = 0.0
    revenue_miles: float = 0.0
    deadhead_miles: float = 0.0
    total_miles_with_deadhead: float = 0.0
    miles_per_gallon: float = 0.0
    attached_purchases: int = 0
    breakdown_id: Optional[str] = None


@dataclass
class LoadProfitability:
    load_id: str
    truck_id: Optional[str]
    revenue: float
    miles: float
    rate_per_mile: float
    truck_cost_per_mile: float
    fuel_cost_per_mile: float
    total_cost_per_mile: float
    net_profit: float
    profit_per_mile: float

    @property
    def is_profitable(self) -> bool:
        return self.net_profit > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "load_id": self.load_id,
            "truck_id": self.truck_id,
            "revenue": round(self.revenue, 2),
            "miles": self.miles,
            "rate_per_mile": round(self.rate_per_mile, 3),
            "truck_cost_per_mile": self.truck_cost_per_mile,
            "fuel_cost_per_mile": round(self.fuel_cost_per_mile, 3),
            "total_cost_per_mile": round(self.total_cost_per_mile, 3),
            "net_profit": round(self.net_profit, 2),
            "profit_per_mile": round(self.profit_per_mile, 3),
            "is_profitable": self.is_profitable,
        }


@dataclass
class FleetProfitability:
    owner_id: Optional[str]
    truck_count: int
    load_count: int
    total_revenue: float
    revenue_miles: float
    deadhead_miles: float
    total_operational_miles: float
    total_operating_cost: float
    gross_profit: float
    profit_margin: float
    profit_per_mile: float
    profit_per_load: float
    deadhead_percentage: float
    avg_revenue_per_mile: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "truck_count": self.truck_count,
            "load_count": self.load_count,
            "revenue": {
                "total_revenue": round(self.total_revenue, 2),
                "revenue_miles": self.revenue_miles,
                "deadhead_miles": self.deadhead_miles,
                "total_operational_miles": self.total_operational_miles,
                "avg_revenue_per_mile": round(self.avg_revenue_per_mile, 3),
                "deadhead_percentage": round(self.deadhead_percentage, 1),
            },
            "profitability": {
                "total_operating_cost": round(self.total_operating_cost, 2),
                "gross_profit": round(self.gross_profit, 2),
                "profit_margin": round(self.profit_margin, 2),
                "profit_per_mile": round(self.profit_per_mile, 3),
                "profit_per_load": round(self.profit_per_load, 2),
            },
        }


@dataclass
class TruckCostSummary:
    truck_id: str
    fixed_costs: float
    variable_costs: float
    weekly_total: float
    cost_per_mile: float
    total_miles: float
    week_starting: Optional[datetime] = None
    fuel: float = 0.0
    gallons_used: float = 0.0
    avg_fuel_price: float = 0.0
    miles_per_gallon: float = 0.0
    miles_this_week: float = 0.0
    total_miles_with_deadhead: float = 0.0
    deadhead_miles_this_week: float = 0.0
    diesel_cost: float = 0.0
    def_cost: float = 0.0

    @property
    def deadhead_percentage(self) -> float:
        if self.total_miles_with_deadhead <= 0:
            return 0.0
        return self.deadhead_miles_this_week / self.total_miles_with_deadhead * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "truck_id": self.truck_id,
            "week_starting": self.week_starting.isoformat() if self.week_starting else None,
            "costs": {
                "fixed_costs": round(self.fixed_costs, 2),
                "variable_costs": round(self.variable_costs, 2),
                "weekly_total": round(self.weekly_total, 2),
                "cost_per_mile": self.cost_per_mile,
            },
            "fuel": {
                "fuel_cost": round(self.fuel, 2),
                "diesel_cost": round(self.diesel_cost, 2),
                "def_cost": round(self.def_cost, 2),
                "gallons_used": round(self.gallons_used, 1),
                "avg_fuel_price": round(self.avg_fuel_price, 4),
                "miles_per_gallon": round(self.miles_per_gallon, 2),
            },
            "miles": {
                "total_miles": self.total_miles,
                "miles_this_week": self.miles_this_week,
                "total_miles_with_deadhead": self.total_miles_with_deadhead,
                "deadhead_percentage": round(self.deadhead_percentage, 1),
            },
        }


@dataclass
class Mutation:
    """A change reported by the mutation gateway."""

    kind: MutationKind
    entity_id: str
    previous_truck_id: Optional[str] = None
    truck_id: Optional[str] = None  # owning truck of an already-deleted purchase


@dataclass
class PipelineResult:
    mutation: Mutation
    truck_ids: List[str] = field(default_factory=list)
    stages: List[str] = field(default_factory=list)
    deadhead_load_id: Optional[str] = None
    soft_failures: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.mutation.kind.value,
            "entity_id": self.mutation.entity_id,
            "truck_ids": self.truck_ids,
            "stages": self.stages,
            "deadhead_load_id": self.deadhead_load_id,
            "soft_failures": self.soft_failures,
        }
