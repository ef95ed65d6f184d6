"""
Cost Breakdown Calculator
=========================

Weekly fixed/variable totals and cost-per-mile for one CostBreakdown row.

    fixed_total    = Σ fixed line items (payments, insurance, elog, plates, phone)
    variable_total = Σ variable line items (driver pay, fuel, DEF, maintenance, ...)
    weekly_total   = fixed_total + variable_total
    cost_per_mile  = weekly_total / mile_basis

When the week has no miles the standard weekly basis (3000 by default) is
used, but only for trucks that already have operational mileage. A truck
with no recorded miles at all costs 0/mile: "no data" renders as 0.
"""

import logging
from typing import Dict, Mapping, Optional

from fleet_accounting.errors import InvariantViolation
from fleet_accounting.models import (
    FIXED_COST_FIELDS,
    VARIABLE_COST_FIELDS,
    CostBreakdown,
    CostTotals,
)

logger = logging.getLogger(__name__)

STANDARD_WEEKLY_MILES = 3000.0


class CostBreakdownCalculator:
    """Pure calculator; holds configuration only."""

    def __init__(
        self,
        standard_weekly_miles: float = STANDARD_WEEKLY_MILES,
        display_decimals: int = 2,
    ):
        self.standard_weekly_miles = standard_weekly_miles
        self.display_decimals = display_decimals

    @staticmethod
    def _sum(line_items: Mapping[str, Optional[float]], names) -> float:
        total = 0.0
        for name in names:
            value = line_items.get(name) or 0.0
            if value < 0:
                raise InvariantViolation(
                    f"Cost line item '{name}' cannot be negative", field=name, value=value
                )
            total += value
        return total

    def compute(
        self,
        line_items: Mapping[str, Optional[float]],
        mile_basis: float,
        has_operational_data: bool = True,
    ) -> CostTotals:
        """
        Compute weekly totals and cost-per-mile.

        Args:
            line_items: line item name -> weekly amount (missing/None = 0)
            mile_basis: miles this week (revenue + deadhead)
            has_operational_data: False for a truck with no recorded miles;
                disables the standard weekly fallback

        Returns:
            CostTotals with full-precision and display cost_per_mile
        """
        if mile_basis is not None and mile_basis < 0:
            raise InvariantViolation("Mile basis cannot be negative", "mile_basis", mile_basis)

        fixed_total = self._sum(line_items, FIXED_COST_FIELDS)
        variable_total = self._sum(line_items, VARIABLE_COST_FIELDS)
        weekly_total = fixed_total + variable_total
        basis = mile_basis or 0.0

        used_standard = False
        if basis > 0:
            cost_per_mile = weekly_total / basis
        elif has_operational_data and weekly_total > 0:
            cost_per_mile = weekly_total / self.standard_weekly_miles
            basis = self.standard_weekly_miles
            used_standard = True
        else:
            cost_per_mile = 0.0

        return CostTotals(
            fixed_total=fixed_total,
            variable_total=variable_total,
            weekly_total=weekly_total,
            cost_per_mile=cost_per_mile,
            cost_per_mile_display=round(cost_per_mile, self.display_decimals),
            mile_basis=basis,
            used_standard_basis=used_standard,
        )

    def compute_for_totals(
        self, fixed_costs: float, variable_costs: float, mile_basis: float,
        has_operational_data: bool = True,
    ) -> CostTotals:
        """Same as compute() for a truck that only has registered weekly totals."""
        if fixed_costs < 0 or variable_costs < 0:
            raise InvariantViolation(
                "Registered weekly costs cannot be negative",
                field="fixed_costs" if fixed_costs < 0 else "variable_costs",
                value=min(fixed_costs, variable_costs),
            )
        items: Dict[str, float] = {
            FIXED_COST_FIELDS[0]: fixed_costs,
            VARIABLE_COST_FIELDS[0]: variable_costs,
        }
        return self.compute(items, mile_basis, has_operational_data)

    def apply(
        self, breakdown: CostBreakdown, has_operational_data: bool = True
    ) -> CostTotals:
        """Recompute the derived totals of a breakdown row in place."""
        totals = self.compute(
            breakdown.line_items(), breakdown.mile_basis, has_operational_data
        )
        breakdown.total_fixed_costs = totals.fixed_total
        breakdown.total_variable_costs = totals.variable_total
        breakdown.total_weekly_costs = totals.weekly_total
        breakdown.cost_per_mile = totals.cost_per_mile_display
        logger.debug(
            f"Breakdown {breakdown.id} for {breakdown.truck_id}: "
            f"${totals.weekly_total:.2f}/wk over {totals.mile_basis:.0f} mi "
            f"= ${totals.cost_per_mile_display}/mi"
        )
        return totals
