"""
Fuel Attribution Engine - weekly fuel cost, gallons and MPG per truck

Only fuel purchases attached to a load count. Unattached purchases are
recorded but stay out of cost-per-mile and MPG until the driver ties them
to a trip.

    total_fuel_cost = Σ attached total_cost
    total_gallons   = Σ attached gallons
    avg_fuel_price  = total_fuel_cost / total_gallons           (0 without gallons)
    miles           = Σ (miles + deadhead) of loads in the active week
    mpg             = miles / total_gallons                     (0 unless both > 0)

The result is written into the active week's CostBreakdown row, which is
then re-totalled by the CostBreakdownCalculator.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from fleet_accounting.errors import InvariantViolation, NotFoundError
from fleet_accounting.models import (
    FIXED_COST_FIELDS,
    VARIABLE_COST_FIELDS,
    CostBreakdown,
    FuelAttribution,
    FuelPurchase,
    FuelType,
    Load,
    Truck,
    WeekWindow,
)
from fleet_accounting.repositories import AccountingRepository
from fleet_accounting.services.cost_breakdown_calculator import CostBreakdownCalculator
from fleet_accounting.services.week_window import active_week

logger = logging.getLogger(__name__)


def attached_purchases(purchases: List[FuelPurchase]) -> List[FuelPurchase]:
    attached = [p for p in purchases if p.is_attached]
    for p in attached:
        if (p.gallons or 0) < 0 or (p.total_cost or 0) < 0:
            raise InvariantViolation(
                f"Fuel purchase {p.id} has negative gallons or cost",
                field="gallons" if (p.gallons or 0) < 0 else "total_cost",
                value=min(p.gallons or 0, p.total_cost or 0),
            )
    return attached


def loads_in_week(loads: List[Load], week: WeekWindow) -> List[Load]:
    return [l for l in loads if week.contains(l.created_at) or week.contains(l.delivery_date)]


class FuelAttributionEngine:
    def __init__(
        self,
        repository: AccountingRepository,
        calculator: Optional[CostBreakdownCalculator] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository
        self.calculator = calculator or CostBreakdownCalculator()
        self.clock = clock

    def summarize(self, truck_id: str, week: Optional[WeekWindow] = None) -> FuelAttribution:
        """Weekly fuel figures for a truck without writing anything."""
        week = week or active_week(self.clock())
        purchases = attached_purchases(self.repository.list_fuel_purchases(truck_id=truck_id))
        weekly_loads = loads_in_week(self.repository.list_loads(truck_id=truck_id), week)

        total_cost = sum(p.total_cost or 0.0 for p in purchases)
        total_gallons = sum(p.gallons or 0.0 for p in purchases)
        revenue_miles = sum(l.miles or 0.0 for l in weekly_loads)
        deadhead_miles = sum(l.deadhead_miles or 0.0 for l in weekly_loads)
        total_miles = revenue_miles + deadhead_miles

        return FuelAttribution(
            truck_id=truck_id,
            week=week,
            total_fuel_cost=total_cost,
            total_gallons=total_gallons,
            avg_fuel_price=total_cost / total_gallons if total_gallons > 0 else 0.0,
            diesel_cost=sum(p.total_cost or 0.0 for p in purchases if p.fuel_type == FuelType.DIESEL),
            def_cost=sum(p.total_cost or 0.0 for p in purchases if p.fuel_type == FuelType.DEF),
            revenue_miles=revenue_miles,
            deadhead_miles=deadhead_miles,
            total_miles_with_deadhead=total_miles,
            miles_per_gallon=(
                total_miles / total_gallons if total_gallons > 0 and total_miles > 0 else 0.0
            ),
            attached_purchases=len(purchases),
        )

    def _new_breakdown(self, truck: Truck, week: WeekWindow) -> CostBreakdown:
        """
        Fresh row for the week.

        Recurring line items carry over from the previous week. A truck with no
        rows yet starts from its registered weekly totals, booked as truck
        payment and driver pay so the fuel line stays for attached purchases.
        """
        row = CostBreakdown(
            id="", truck_id=truck.id, week_starting=week.start, week_ending=week.end
        )
        previous = self.repository.get_latest_cost_breakdown(truck.id)
        if previous is None:
            setattr(row, FIXED_COST_FIELDS[0], truck.fixed_costs or 0.0)
            setattr(row, VARIABLE_COST_FIELDS[0], truck.variable_costs or 0.0)
        elif previous.week_starting < week.start:
            for name in FIXED_COST_FIELDS + VARIABLE_COST_FIELDS:
                setattr(row, name, getattr(previous, name))
        return row

    def recompute_weekly(self, truck_id: str) -> FuelAttribution:
        truck = self.repository.get_truck(truck_id)
        if truck is None:
            raise NotFoundError("Truck", truck_id)

        attribution = self.summarize(truck_id)
        week = attribution.week

        breakdown = self.repository.get_cost_breakdown_by_week(truck_id, week.start)
        creating = breakdown is None
        if creating:
            if attribution.total_fuel_cost <= 0:
                logger.debug(f"Truck {truck_id}: no attached fuel and no row for {week.start:%Y-%m-%d}")
                return attribution
            breakdown = self._new_breakdown(truck, week)

        breakdown.fuel = attribution.total_fuel_cost
        breakdown.gallons_used = attribution.total_gallons
        breakdown.avg_fuel_price = attribution.avg_fuel_price
        breakdown.miles_per_gallon = attribution.miles_per_gallon
        breakdown.miles_this_week = attribution.revenue_miles
        breakdown.total_miles_with_deadhead = attribution.total_miles_with_deadhead
        self.calculator.apply(breakdown, has_operational_data=(truck.total_miles or 0) > 0)

        if creating:
            breakdown = self.repository.create_cost_breakdown(breakdown)
        else:
            breakdown = self.repository.update_cost_breakdown(breakdown)
        attribution.breakdown_id = breakdown.id

        logger.info(
            f"⛽ Truck {truck_id}: {attribution.attached_purchases} attached purchases, "
            f"${attribution.total_fuel_cost:.2f} / {attribution.total_gallons:.1f} gal, "
            f"{attribution.total_miles_with_deadhead:.0f} mi -> "
            f"{attribution.miles_per_gallon:.2f} MPG"
        )
        return attribution
