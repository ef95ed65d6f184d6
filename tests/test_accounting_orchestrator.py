"""
Tests for the Accounting Orchestrator
End-to-end pipelines over the in-memory repository.

Run with: pytest tests/test_accounting_orchestrator.py -v
"""

from contextlib import contextmanager

import pytest

from fleet_accounting.errors import (
    ConcurrentRecomputation,
    InvalidStatusTransition,
    InvariantViolation,
    NotFoundError,
)
from fleet_accounting.models import LoadStatus, MutationKind
from fleet_accounting.orchestrators import PIPELINES, AccountingOrchestrator, OrchestratorConfig
from tests.fixtures.accounting_fixtures import (
    DALLAS_TO_CHICAGO,
    LAST_WEEK,
    WEEK_START,
    StubDistanceResolver,
)


class FlakyLocks:
    """Lock provider that reports contention for the first `busy` attempts."""

    def __init__(self, busy=1):
        self.busy = busy
        self.attempts = 0

    @contextmanager
    def hold(self, truck_ids):
        self.attempts += 1
        if self.attempts <= self.busy:
            raise ConcurrentRecomputation(",".join(truck_ids))
        yield sorted(truck_ids)


def assert_reconciled(repository, truck_id):
    loads = repository.list_loads(truck_id=truck_id)
    expected = sum(l.miles + l.deadhead_miles for l in loads)
    assert repository.get_truck(truck_id).total_miles == pytest.approx(expected)


class TestDeliveryScenario:
    """Truck with $1000 fixed / $500 variable, first load to Dallas, next pickup in Chicago"""

    def test_full_lifecycle(self, orchestrator, repository, make_truck, dallas_load, chicago_load):
        make_truck("T1", fixed_costs=1000.0, variable_costs=500.0)
        repository.delete_load("L1")
        repository.delete_load("L2")

        # no miles yet: zero-state, not 1500/3000
        orchestrator.on_truck_mutated("T1")
        truck = repository.get_truck("T1")
        assert truck.cost_per_mile == 0.0
        assert truck.total_miles == 0.0

        repository.create_load(dallas_load)
        orchestrator.on_load_mutated("L1")
        truck = repository.get_truck("T1")
        assert truck.total_miles == 500.0
        assert truck.cost_per_mile == 3.0
        assert repository.get_load("L1").profit == pytest.approx(1200.0 - 3.0 * 500.0)

        repository.create_load(chicago_load)
        orchestrator.on_load_mutated("L2")
        assert repository.get_truck("T1").total_miles == 1100.0

        result = orchestrator.update_load_status("L1", LoadStatus.DELIVERED)

        assert result.stages == list(PIPELINES[MutationKind.LOAD_DELIVERED])
        assert result.deadhead_load_id == "L2"
        assert result.soft_failures == []
        next_load = repository.get_load("L2")
        assert next_load.deadhead_miles == DALLAS_TO_CHICAGO
        assert next_load.deadhead_from_city == "Dallas"
        truck = repository.get_truck("T1")
        assert truck.total_miles == 500.0 + 600.0 + DALLAS_TO_CHICAGO
        assert truck.cost_per_mile == round(1500.0 / truck.total_miles, 2)
        assert repository.get_load("L1").delivery_date is not None
        assert_reconciled(repository, "T1")

    def test_fuel_purchase_sets_mpg_and_price(self, orchestrator, repository, make_truck, dallas_load, make_purchase):
        make_truck("T1")
        orchestrator.on_load_mutated("L1")
        make_purchase("F1", load_id="L1", gallons=100.0, total_cost=350.0)

        orchestrator.on_fuel_purchase_mutated("F1")

        row = repository.get_latest_cost_breakdown("T1")
        assert row.miles_per_gallon == 5.0
        assert row.avg_fuel_price == 3.5
        load = repository.get_load("L1")
        assert load.actual_fuel_cost == 350.0
        assert load.actual_gallons == 100.0


class TestMileageReconciliation:
    def test_reassign_moves_miles(self, orchestrator, repository, make_truck, dallas_load):
        make_truck("T1")
        make_truck("T2")
        orchestrator.on_load_mutated("L1")

        load = repository.get_load("L1")
        load.truck_id = "T2"
        repository.update_load(load)
        result = orchestrator.on_load_mutated("L1", previous_truck_id="T1")

        assert result.truck_ids == ["T1", "T2"]
        assert repository.get_truck("T1").total_miles == 0.0
        assert repository.get_truck("T2").total_miles == 500.0

    def test_delete_removes_miles(self, orchestrator, repository, make_truck, dallas_load):
        make_truck("T1")
        orchestrator.on_load_mutated("L1")

        repository.delete_load("L1")
        orchestrator.on_load_mutated("L1", previous_truck_id="T1")

        assert repository.get_truck("T1").total_miles == 0.0

    def test_deleted_load_without_hint_is_not_found(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.on_load_mutated("gone")

    def test_stale_total_is_normalized(self, orchestrator, repository, make_truck, dallas_load):
        make_truck("T1")
        load = repository.get_load("L1")
        load.deadhead_miles = 40.0
        repository.update_load(load)

        orchestrator.on_truck_mutated("T1")

        assert repository.get_load("L1").total_miles_with_deadhead == 540.0
        assert repository.get_truck("T1").total_miles == 540.0

    def test_unassigned_load_profit_refreshed(self, orchestrator, repository, make_load):
        make_load("L9", truck_id=None, miles=100.0, pay=250.0)
        result = orchestrator.on_load_mutated("L9")
        assert result.truck_ids == []
        load = repository.get_load("L9")
        assert load.rate_per_mile == 2.5
        assert load.profit == 250.0


class TestCostPerMile:
    def test_truck_matches_latest_breakdown(self, orchestrator, repository, make_truck, dallas_load, make_breakdown):
        make_truck("T1")
        orchestrator.on_load_mutated("L1")
        make_breakdown("B1", truck_payment=700.0, driver_pay=800.0, total_miles_with_deadhead=500.0)

        orchestrator.on_cost_breakdown_edited("B1")

        row = repository.get_cost_breakdown("B1")
        truck = repository.get_truck("T1")
        assert row.cost_per_mile == 3.0
        assert truck.cost_per_mile == row.cost_per_mile
        assert truck.fixed_costs == 700.0
        assert truck.variable_costs == 800.0

    def test_standard_basis_for_idle_week(self, orchestrator, repository, make_truck, make_load):
        make_truck("T1", fixed_costs=1000.0, variable_costs=500.0)
        make_load("OLD", truck_id="T1", miles=500.0, created_at=LAST_WEEK)

        orchestrator.on_load_mutated("OLD")

        assert repository.get_truck("T1").cost_per_mile == 0.5

    def test_zero_state_with_breakdown(self, orchestrator, repository, make_truck, make_breakdown):
        make_truck("T1")
        make_breakdown("B1", truck_payment=1000.0, driver_pay=500.0)

        orchestrator.on_cost_breakdown_edited("B1")

        assert repository.get_cost_breakdown("B1").cost_per_mile == 0.0
        assert repository.get_truck("T1").cost_per_mile == 0.0

    def test_editing_older_week_keeps_latest_cpm(self, orchestrator, repository, make_truck, dallas_load, make_breakdown):
        make_truck("T1")
        orchestrator.on_load_mutated("L1")
        make_breakdown("NEW", truck_payment=1000.0, total_miles_with_deadhead=500.0)
        make_breakdown("OLD", week_starting=LAST_WEEK, truck_payment=9000.0, miles_this_week=1000.0)

        orchestrator.on_cost_breakdown_edited("OLD")

        assert repository.get_cost_breakdown("OLD").cost_per_mile == 9.0
        assert repository.get_truck("T1").cost_per_mile == 2.0

    def test_negative_line_item_rejected(self, orchestrator, make_truck, make_breakdown):
        make_truck("T1")
        make_breakdown("B1", maintenance=-50.0)
        with pytest.raises(InvariantViolation):
            orchestrator.on_cost_breakdown_edited("B1")


class TestFuelAttachment:
    """Attach/detach must be symmetric"""

    def test_attach_detach_round_trip(self, orchestrator, repository, make_truck, dallas_load, make_purchase, make_breakdown):
        make_truck("T1")
        make_breakdown("OLD", week_starting=LAST_WEEK, truck_payment=700.0)
        orchestrator.on_load_mutated("L1")
        make_purchase("F1", load_id=None, gallons=100.0, total_cost=350.0)

        orchestrator.on_fuel_purchase_mutated("F1")
        assert repository.get_cost_breakdown_by_week("T1", WEEK_START) is None

        def set_load(load_id):
            purchase = repository.get_fuel_purchase("F1")
            purchase.load_id = load_id
            repository.update_fuel_purchase(purchase)
            orchestrator.on_fuel_purchase_mutated("F1")
            row = repository.get_cost_breakdown_by_week("T1", WEEK_START)
            return (
                row.fuel,
                row.cost_per_mile,
                repository.get_truck("T1").cost_per_mile,
                repository.get_load("L1").profit,
            )

        attached = set_load("L1")
        detached = set_load(None)
        reattached = set_load("L1")

        assert attached == reattached
        assert attached[0] == 350.0
        assert detached[0] == 0.0
        assert attached[1] == 2.1
        assert detached[1] == 1.4

    def test_first_row_keeps_registered_costs(self, orchestrator, repository, make_truck, dallas_load, make_purchase):
        """A truck with no breakdown rows yet starts its first week from registered totals"""
        make_truck("T1", fixed_costs=1000.0, variable_costs=500.0)
        orchestrator.on_load_mutated("L1")

        def cache():
            truck = repository.get_truck("T1")
            return truck.fixed_costs, truck.variable_costs, truck.cost_per_mile

        before = cache()
        make_purchase("F1", load_id="L1", gallons=100.0, total_cost=350.0)
        orchestrator.on_fuel_purchase_mutated("F1")
        attached = cache()

        purchase = repository.get_fuel_purchase("F1")
        purchase.load_id = None
        repository.update_fuel_purchase(purchase)
        orchestrator.on_fuel_purchase_mutated("F1")
        detached = cache()

        assert before == (1000.0, 500.0, 3.0)
        assert attached == (1000.0, 850.0, 3.7)
        assert detached == before
        row = repository.get_cost_breakdown_by_week("T1", WEEK_START)
        assert row.truck_payment == 1000.0
        assert row.driver_pay == 500.0
        assert row.fuel == 0.0

    def test_deleted_purchase_uses_truck_hint(self, orchestrator, repository, make_truck, dallas_load, make_purchase):
        make_truck("T1")
        orchestrator.on_load_mutated("L1")
        make_purchase("F1", load_id="L1", gallons=100.0, total_cost=350.0)
        orchestrator.on_fuel_purchase_mutated("F1")

        repository.delete_fuel_purchase("F1")
        orchestrator.on_fuel_purchase_mutated("F1", truck_id="T1")

        assert repository.get_latest_cost_breakdown("T1").fuel == 0.0
        assert repository.get_load("L1").actual_fuel_cost == 0.0

    def test_unknown_purchase_without_hint(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.on_fuel_purchase_mutated("nope")


class TestStatusChanges:
    def test_cannot_undeliver(self, orchestrator, repository, make_truck, dallas_load):
        make_truck("T1")
        orchestrator.update_load_status("L1", LoadStatus.DELIVERED)
        with pytest.raises(InvalidStatusTransition):
            orchestrator.update_load_status("L1", LoadStatus.IN_TRANSIT)

    def test_non_delivery_status_runs_no_pipeline(self, orchestrator, repository, make_truck, chicago_load):
        make_truck("T1")
        result = orchestrator.update_load_status("L2", LoadStatus.IN_TRANSIT)
        assert result.stages == []
        assert repository.get_load("L2").status == LoadStatus.IN_TRANSIT

    def test_delivered_hook_requires_delivered_load(self, orchestrator, make_truck, dallas_load):
        make_truck("T1")
        with pytest.raises(InvariantViolation):
            orchestrator.on_load_delivered("L1")

    def test_failed_lookup_is_soft(self, repository, clock, dead_letters, make_truck, dallas_load, chicago_load):
        orchestrator = AccountingOrchestrator(
            repository,
            distance_resolver=StubDistanceResolver(error="service down"),
            clock=clock,
            dead_letters=dead_letters,
            sleep=lambda s: None,
        )
        make_truck("T1")

        result = orchestrator.update_load_status("L1", LoadStatus.DELIVERED)

        assert result.stages == list(PIPELINES[MutationKind.LOAD_DELIVERED])
        assert result.soft_failures
        assert repository.get_load("L2").deadhead_miles == 0.0
        assert repository.get_truck("T1").total_miles == 1100.0
        assert orchestrator.get_status()["dead_letters"]["size"] == 1


class TestTransactions:
    def test_invariant_violation_rolls_back(self, orchestrator, repository, make_truck, dallas_load, monkeypatch):
        make_truck("T1")

        def broken(truck_ids):
            raise InvariantViolation("forced")

        monkeypatch.setattr(orchestrator, "_check_invariants", broken)
        with pytest.raises(InvariantViolation):
            orchestrator.on_load_mutated("L1")

        truck = repository.get_truck("T1")
        assert truck.total_miles == 0.0
        assert repository.get_load("L1").rate_per_mile == 0.0

    def test_contention_is_retried(self, repository, clock, make_truck):
        make_truck("T1")
        locks = FlakyLocks(busy=2)
        orchestrator = AccountingOrchestrator(repository, clock=clock, locks=locks, sleep=lambda s: None)

        result = orchestrator.on_truck_mutated("T1")

        assert locks.attempts == 3
        assert result.truck_ids == ["T1"]

    def test_contention_gives_up(self, repository, clock, make_truck):
        make_truck("T1")
        sleeps = []
        orchestrator = AccountingOrchestrator(
            repository,
            clock=clock,
            config=OrchestratorConfig(max_pipeline_retries=2),
            locks=FlakyLocks(busy=10),
            sleep=sleeps.append,
        )

        with pytest.raises(ConcurrentRecomputation):
            orchestrator.on_truck_mutated("T1")
        assert len(sleeps) == 2

    def test_missing_truck(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.on_truck_mutated("nope")


class TestQueries:
    def test_truck_cost_summary(self, orchestrator, repository, make_truck, dallas_load, make_purchase):
        make_truck("T1")
        orchestrator.on_load_mutated("L1")
        make_purchase("F1", load_id="L1", gallons=100.0, total_cost=350.0)
        orchestrator.on_fuel_purchase_mutated("F1")

        summary = orchestrator.get_truck_cost_summary("T1")

        assert summary.week_starting == WEEK_START
        assert summary.fuel == 350.0
        assert summary.miles_per_gallon == 5.0
        assert summary.cost_per_mile == 0.7
        assert summary.deadhead_percentage == 0.0
        assert summary.to_dict()["fuel"]["diesel_cost"] == 350.0

    def test_summary_without_breakdown(self, orchestrator, make_truck):
        make_truck("T1", fixed_costs=100.0, variable_costs=50.0)
        summary = orchestrator.get_truck_cost_summary("T1")
        assert summary.week_starting == WEEK_START
        assert summary.weekly_total == 150.0

    def test_load_profitability(self, orchestrator, make_truck, dallas_load):
        make_truck("T1", fixed_costs=1000.0, variable_costs=500.0)
        orchestrator.on_load_mutated("L1")

        result = orchestrator.get_load_profitability("L1")

        assert result.truck_cost_per_mile == 3.0
        assert result.net_profit == pytest.approx(-300.0)
        assert not result.is_profitable

    def test_fleet_profitability(self, orchestrator, make_truck, dallas_load):
        make_truck("T1", fixed_costs=1000.0, variable_costs=500.0)
        orchestrator.on_load_mutated("L1")

        report = orchestrator.get_fleet_profitability("owner-1")

        assert report.total_revenue == 1200.0
        assert report.total_operating_cost == 1500.0
        assert report.gross_profit == -300.0

    def test_status(self, orchestrator):
        status = orchestrator.get_status()
        assert status["distance_resolver"]["state"] == "CLOSED"
        assert status["dead_letters"]["size"] == 0
