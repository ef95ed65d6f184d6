"""
Profitability Calculator - per-load and fleet-wide profit

Per load:
    total_cpm       = truck.cost_per_mile + fuel_cost_per_mile
    net_profit      = pay - total_cpm * miles
    profit_per_mile = net_profit / miles                    (0 without miles)

Fleet:
    gross_profit  = Σ revenue - Σ (truck.cost_per_mile * operational miles)
    profit_margin = gross_profit / revenue * 100            (0 without revenue)

truck.cost_per_mile is the stored 2-decimal value, so profit always
reconciles with the cost-per-mile shown on the truck and its breakdown.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from fleet_accounting.models import (
    FleetProfitability,
    FuelPurchase,
    Load,
    LoadProfitability,
    Truck,
)

logger = logging.getLogger(__name__)


def load_fuel_totals(load: Load, purchases: Iterable[FuelPurchase]):
    """(cost, gallons) of the purchases attached to this load."""
    attached = [p for p in purchases if p.load_id == load.id]
    return (
        sum(p.total_cost or 0.0 for p in attached),
        sum(p.gallons or 0.0 for p in attached),
    )


def fuel_cost_per_mile(fuel_cost: float, miles: float) -> float:
    return fuel_cost / miles if miles and miles > 0 else 0.0


class ProfitabilityCalculator:
    def for_load(
        self, load: Load, truck: Optional[Truck], fuel_cost_per_mile: float = 0.0
    ) -> LoadProfitability:
        truck_cpm = truck.cost_per_mile if truck is not None else 0.0
        total_cpm = truck_cpm + fuel_cost_per_mile
        miles = load.miles or 0.0
        pay = load.pay or 0.0
        net_profit = pay - total_cpm * miles

        return LoadProfitability(
            load_id=load.id,
            truck_id=load.truck_id,
            revenue=pay,
            miles=miles,
            rate_per_mile=pay / miles if miles > 0 else 0.0,
            truck_cost_per_mile=truck_cpm,
            fuel_cost_per_mile=fuel_cost_per_mile,
            total_cost_per_mile=total_cpm,
            net_profit=net_profit,
            profit_per_mile=net_profit / miles if miles > 0 else 0.0,
        )

    def apply_to_load(
        self, load: Load, truck: Optional[Truck], purchases: Iterable[FuelPurchase]
    ) -> LoadProfitability:
        """Refresh a load's derived money fields in place."""
        fuel_cost, gallons = load_fuel_totals(load, purchases)
        result = self.for_load(load, truck, fuel_cost_per_mile(fuel_cost, load.miles))
        load.actual_fuel_cost = fuel_cost
        load.actual_gallons = gallons
        load.actual_cost_per_mile = round(result.total_cost_per_mile, 3)
        load.rate_per_mile = result.rate_per_mile
        load.profit = result.net_profit
        load.is_profitable = result.is_profitable
        return result

    def fleet(
        self,
        trucks: List[Truck],
        loads: List[Load],
        owner_id: Optional[str] = None,
    ) -> FleetProfitability:
        cpm_by_truck: Dict[str, float] = {t.id: t.cost_per_mile for t in trucks}
        miles_by_truck: Dict[Optional[str], float] = defaultdict(float)

        total_revenue = revenue_miles = deadhead_miles = 0.0
        for load in loads:
            total_revenue += load.pay or 0.0
            revenue_miles += load.miles or 0.0
            deadhead_miles += load.deadhead_miles or 0.0
            miles_by_truck[load.truck_id] += load.operational_miles

        total_miles = revenue_miles + deadhead_miles
        # unassigned loads and unknown trucks carry no truck cost
        operating_cost = sum(
            cpm_by_truck.get(truck_id, 0.0) * miles
            for truck_id, miles in miles_by_truck.items()
            if truck_id is not None
        )
        gross_profit = total_revenue - operating_cost

        report = FleetProfitability(
            owner_id=owner_id,
            truck_count=len(trucks),
            load_count=len(loads),
            total_revenue=total_revenue,
            revenue_miles=revenue_miles,
            deadhead_miles=deadhead_miles,
            total_operational_miles=total_miles,
            total_operating_cost=operating_cost,
            gross_profit=gross_profit,
            profit_margin=gross_profit / total_revenue * 100 if total_revenue > 0 else 0.0,
            profit_per_mile=gross_profit / total_miles if total_miles > 0 else 0.0,
            profit_per_load=gross_profit / len(loads) if loads else 0.0,
            deadhead_percentage=deadhead_miles / total_miles * 100 if total_miles > 0 else 0.0,
            avg_revenue_per_mile=total_revenue / total_miles if total_miles > 0 else 0.0,
        )
        logger.debug(
            f"Fleet {owner_id or '*'}: {len(loads)} loads, revenue ${total_revenue:.2f}, "
            f"gross ${gross_profit:.2f} ({report.profit_margin:.1f}%)"
        )
        return report
