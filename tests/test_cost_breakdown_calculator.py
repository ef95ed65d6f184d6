"""
Tests for Cost Breakdown Calculator

Run with: pytest tests/test_cost_breakdown_calculator.py -v
"""

import pytest

from fleet_accounting.errors import InvariantViolation
from fleet_accounting.models import CostBreakdown
from fleet_accounting.services import STANDARD_WEEKLY_MILES, CostBreakdownCalculator
from tests.fixtures.accounting_fixtures import WEEK_START


@pytest.fixture
def calculator():
    return CostBreakdownCalculator()


class TestTotals:
    """Fixed, variable and weekly totals"""

    def test_sums_fixed_and_variable_items(self, calculator):
        totals = calculator.compute(
            {
                "truck_payment": 600.0,
                "liability_insurance": 250.0,
                "company_phone": 50.0,
                "driver_pay": 1200.0,
                "fuel": 800.0,
                "tolls": 40.0,
            },
            mile_basis=2000.0,
        )
        assert totals.fixed_total == 900.0
        assert totals.variable_total == 2040.0
        assert totals.weekly_total == 2940.0

    def test_missing_and_none_items_count_as_zero(self, calculator):
        totals = calculator.compute({"truck_payment": None, "fuel": 100.0}, mile_basis=100.0)
        assert totals.weekly_total == 100.0

    def test_unknown_keys_are_ignored(self, calculator):
        totals = calculator.compute({"fuel": 100.0, "coffee": 9999.0}, mile_basis=100.0)
        assert totals.weekly_total == 100.0

    def test_negative_line_item_raises(self, calculator):
        with pytest.raises(InvariantViolation) as exc:
            calculator.compute({"maintenance": -1.0}, mile_basis=100.0)
        assert exc.value.details["field"] == "maintenance"


class TestCostPerMile:
    """Mile basis selection"""

    def test_uses_weekly_miles(self, calculator):
        totals = calculator.compute({"truck_payment": 1000.0, "driver_pay": 500.0}, 500.0)
        assert totals.cost_per_mile == 3.0
        assert totals.mile_basis == 500.0
        assert not totals.used_standard_basis

    def test_display_value_is_rounded(self, calculator):
        totals = calculator.compute({"truck_payment": 1000.0}, 3.0)
        assert totals.cost_per_mile == pytest.approx(333.3333, rel=1e-4)
        assert totals.cost_per_mile_display == 333.33

    def test_standard_basis_when_week_has_no_miles(self, calculator):
        totals = calculator.compute(
            {"truck_payment": 1000.0, "driver_pay": 500.0}, 0.0, has_operational_data=True
        )
        assert totals.cost_per_mile == 0.5
        assert totals.mile_basis == STANDARD_WEEKLY_MILES
        assert totals.used_standard_basis

    def test_zero_state_truck_costs_nothing_per_mile(self, calculator):
        """No recorded miles at all: 0, not 1500/3000"""
        totals = calculator.compute(
            {"truck_payment": 1000.0, "driver_pay": 500.0}, 0.0, has_operational_data=False
        )
        assert totals.cost_per_mile == 0.0
        assert totals.weekly_total == 1500.0
        assert not totals.used_standard_basis

    def test_no_costs_no_fallback(self, calculator):
        totals = calculator.compute({}, 0.0)
        assert totals.cost_per_mile == 0.0
        assert not totals.used_standard_basis

    def test_custom_standard_basis(self):
        calculator = CostBreakdownCalculator(standard_weekly_miles=2500.0)
        assert calculator.compute({"fuel": 1000.0}, 0.0).cost_per_mile == 0.4

    def test_negative_basis_raises(self, calculator):
        with pytest.raises(InvariantViolation):
            calculator.compute({"fuel": 10.0}, -5.0)


class TestRegisteredTotals:
    def test_compute_for_totals(self, calculator):
        totals = calculator.compute_for_totals(1000.0, 500.0, 1000.0)
        assert totals.fixed_total == 1000.0
        assert totals.variable_total == 500.0
        assert totals.cost_per_mile_display == 1.5

    def test_negative_registered_totals_raise(self, calculator):
        with pytest.raises(InvariantViolation):
            calculator.compute_for_totals(-1.0, 500.0, 1000.0)


class TestApply:
    """Writing totals back onto a breakdown row"""

    def test_apply_sets_derived_fields(self, calculator):
        row = CostBreakdown(
            id="B1",
            truck_id="T1",
            week_starting=WEEK_START,
            truck_payment=700.0,
            driver_pay=800.0,
            fuel=350.0,
            miles_this_week=500.0,
            total_miles_with_deadhead=925.0,
        )
        calculator.apply(row)
        assert row.total_fixed_costs == 700.0
        assert row.total_variable_costs == 1150.0
        assert row.total_weekly_costs == 1850.0
        # deadhead-inclusive miles are the basis
        assert row.cost_per_mile == 2.0

    def test_apply_falls_back_to_revenue_miles(self, calculator):
        row = CostBreakdown(
            id="B1", truck_id="T1", week_starting=WEEK_START, fuel=300.0, miles_this_week=600.0
        )
        calculator.apply(row)
        assert row.cost_per_mile == 0.5

    def test_apply_stores_display_precision(self, calculator):
        row = CostBreakdown(
            id="B1", truck_id="T1", week_starting=WEEK_START, fuel=100.0, miles_this_week=3.0
        )
        totals = calculator.apply(row)
        assert row.cost_per_mile == totals.cost_per_mile_display == 33.33
