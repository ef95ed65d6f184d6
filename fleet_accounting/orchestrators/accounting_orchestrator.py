"""
Accounting Orchestrator
=======================

Entry point for every Truck/Load/FuelPurchase/CostBreakdown mutation. Each
mutation kind maps to a fixed list of stages:

    TRUCK_CHANGED          mileage -> truck_cache -> load_profitability
    LOAD_DELIVERED         deadhead -> mileage -> fuel_attribution -> truck_cache -> load_profitability
    LOAD_REASSIGNED        mileage -> fuel_attribution -> truck_cache -> load_profitability
    FUEL_PURCHASE_CHANGED  fuel_attribution -> truck_cache -> load_profitability
    BREAKDOWN_EDITED       breakdown_totals -> truck_cache -> load_profitability

A pipeline holds the locks of every truck it touches and runs inside one
repository transaction. An InvariantViolation rolls the whole pipeline back.
Lock contention (ConcurrentRecomputation) is retried with backoff.

The truck cost caches (fixed_costs, variable_costs, cost_per_mile,
total_miles) are written only from here, through
AccountingRepository.update_truck_cache.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from fleet_accounting.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    DeadLetterQueue,
    RetryConfig,
    retry_with_backoff,
)
from fleet_accounting.errors import (
    ConcurrentRecomputation,
    InvariantViolation,
    NotFoundError,
)
from fleet_accounting.models import (
    FleetProfitability,
    LoadProfitability,
    LoadStatus,
    Mutation,
    MutationKind,
    PipelineResult,
    TruckCostSummary,
)
from fleet_accounting.repositories import AccountingRepository
from fleet_accounting.services.cost_breakdown_calculator import CostBreakdownCalculator
from fleet_accounting.services.deadhead_resolver import BREAKER_EXCLUDED, DeadheadResolver
from fleet_accounting.services.distance_resolver import TableDistanceResolver
from fleet_accounting.services.fuel_attribution_engine import FuelAttributionEngine
from fleet_accounting.services.mileage_aggregator import MileageAggregator
from fleet_accounting.services.profitability_calculator import (
    ProfitabilityCalculator,
    fuel_cost_per_mile,
    load_fuel_totals,
)
from fleet_accounting.services.truck_locks import TruckLockRegistry
from fleet_accounting.services.week_window import active_week

logger = logging.getLogger(__name__)

PIPELINES: Dict[MutationKind, Tuple[str, ...]] = {
    MutationKind.TRUCK_CHANGED: ("mileage", "truck_cache", "load_profitability"),
    MutationKind.LOAD_DELIVERED: (
        "deadhead",
        "mileage",
        "fuel_attribution",
        "truck_cache",
        "load_profitability",
    ),
    MutationKind.LOAD_REASSIGNED: (
        "mileage",
        "fuel_attribution",
        "truck_cache",
        "load_profitability",
    ),
    MutationKind.FUEL_PURCHASE_CHANGED: (
        "fuel_attribution",
        "truck_cache",
        "load_profitability",
    ),
    MutationKind.BREAKDOWN_EDITED: ("breakdown_totals", "truck_cache", "load_profitability"),
}

_TOLERANCE = 1e-6


@dataclass
class OrchestratorConfig:
    """Configuration for AccountingOrchestrator."""

    standard_weekly_miles: float = 3000.0
    display_decimals: int = 2
    lock_timeout_seconds: float = 10.0
    max_pipeline_retries: int = 3
    retry_base_delay_seconds: float = 0.1
    breaker_failure_threshold: int = 5
    breaker_reset_seconds: float = 60.0


class AccountingOrchestrator:
    """
    Sequences the accounting calculators for each mutation and exposes the
    read-side query surface.

    Services:
    - MileageAggregator: lifetime truck miles
    - DeadheadResolver: empty miles to the next queued load
    - FuelAttributionEngine: weekly fuel, gallons, MPG
    - CostBreakdownCalculator: weekly totals and cost-per-mile
    - ProfitabilityCalculator: per-load and fleet profit
    """

    def __init__(
        self,
        repository: AccountingRepository,
        distance_resolver=None,
        config: Optional[OrchestratorConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
        locks=None,
        dead_letters: Optional[DeadLetterQueue] = None,
        breaker: Optional[CircuitBreaker] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize AccountingOrchestrator with dependencies.

        Args:
            repository: data access for the four accounting tables
            distance_resolver: city-to-city miles (built-in route table if None)
            config: OrchestratorConfig (defaults if None)
            clock: returns "now"; drives the active week
            locks: per-truck lock provider with hold(truck_ids)
            dead_letters: queue for failed deadhead lookups
            breaker: circuit breaker around the distance resolver
            sleep: used between pipeline retries
        """
        self.config = config or OrchestratorConfig()
        self.repository = repository
        self.clock = clock
        self.locks = locks or TruckLockRegistry(self.config.lock_timeout_seconds)
        self.dead_letters = dead_letters or DeadLetterQueue()
        self.breaker = breaker or CircuitBreaker(
            "distance_resolver",
            CircuitBreakerConfig(
                failure_threshold=self.config.breaker_failure_threshold,
                timeout_seconds=self.config.breaker_reset_seconds,
                excluded_exceptions=BREAKER_EXCLUDED,
            ),
            clock=clock,
        )

        self.calculator = CostBreakdownCalculator(
            standard_weekly_miles=self.config.standard_weekly_miles,
            display_decimals=self.config.display_decimals,
        )
        self.mileage = MileageAggregator(repository)
        self.deadhead = DeadheadResolver(
            repository,
            distance_resolver or TableDistanceResolver(),
            breaker=self.breaker,
            dead_letters=self.dead_letters,
        )
        self.fuel = FuelAttributionEngine(repository, self.calculator, clock)
        self.profitability = ProfitabilityCalculator()

        self._retry_config = RetryConfig(
            max_retries=self.config.max_pipeline_retries,
            base_delay_seconds=self.config.retry_base_delay_seconds,
            retry_on=(ConcurrentRecomputation,),
        )
        self._sleep = sleep
        logger.info("✅ AccountingOrchestrator initialized")

    # ══════════════════════════════════════════════════════════════════════
    # MUTATION ENTRY POINTS
    # ══════════════════════════════════════════════════════════════════════

    def on_truck_mutated(self, truck_id: str) -> PipelineResult:
        return self.dispatch(Mutation(MutationKind.TRUCK_CHANGED, truck_id))

    def on_load_mutated(self, load_id: str, previous_truck_id: Optional[str] = None) -> PipelineResult:
        """Load created, updated, deleted or moved between trucks."""
        return self.dispatch(
            Mutation(MutationKind.LOAD_REASSIGNED, load_id, previous_truck_id=previous_truck_id)
        )

    def on_load_delivered(self, load_id: str) -> PipelineResult:
        return self.dispatch(Mutation(MutationKind.LOAD_DELIVERED, load_id))

    def on_fuel_purchase_mutated(self, purchase_id: str, truck_id: Optional[str] = None) -> PipelineResult:
        """Purchase created, updated, deleted, attached or detached.

        truck_id names the owning truck when the purchase has already been
        deleted, or the previous owner when it moved between trucks.
        """
        return self.dispatch(
            Mutation(MutationKind.FUEL_PURCHASE_CHANGED, purchase_id, truck_id=truck_id)
        )

    def on_cost_breakdown_edited(self, breakdown_id: str) -> PipelineResult:
        return self.dispatch(Mutation(MutationKind.BREAKDOWN_EDITED, breakdown_id))

    def update_load_status(self, load_id: str, status: LoadStatus) -> PipelineResult:
        """Validate and persist a status change; delivery triggers the delivery pipeline."""
        load = self.repository.get_load(load_id)
        if load is None:
            raise NotFoundError("Load", load_id)
        status = LoadStatus(status)
        LoadStatus.validate_transition(load.status, status)

        load.status = status
        if status == LoadStatus.DELIVERED and load.delivery_date is None:
            load.delivery_date = self.clock()
        self.repository.update_load(load)

        if status == LoadStatus.DELIVERED:
            return self.on_load_delivered(load_id)
        return PipelineResult(
            mutation=Mutation(MutationKind.LOAD_REASSIGNED, load_id),
            truck_ids=[load.truck_id] if load.truck_id else [],
        )

    def dispatch(self, mutation: Mutation) -> PipelineResult:
        run = retry_with_backoff(self._retry_config, sleep=self._sleep)(self._run_pipeline)
        return run(mutation)

    # ══════════════════════════════════════════════════════════════════════
    # PIPELINE
    # ══════════════════════════════════════════════════════════════════════

    def _affected_trucks(self, mutation: Mutation) -> List[str]:
        kind, entity_id = mutation.kind, mutation.entity_id
        ids: List[Optional[str]] = []

        if kind == MutationKind.TRUCK_CHANGED:
            if self.repository.get_truck(entity_id) is None:
                raise NotFoundError("Truck", entity_id)
            ids = [entity_id]
        elif kind == MutationKind.LOAD_DELIVERED:
            load = self.repository.get_load(entity_id)
            if load is None:
                raise NotFoundError("Load", entity_id)
            if load.status != LoadStatus.DELIVERED:
                raise InvariantViolation(
                    f"Load {entity_id} is not delivered", field="status", value=load.status.value
                )
            ids = [load.truck_id]
        elif kind == MutationKind.LOAD_REASSIGNED:
            load = self.repository.get_load(entity_id)
            if load is None and not mutation.previous_truck_id:
                raise NotFoundError("Load", entity_id)
            ids = [load.truck_id if load else None, mutation.previous_truck_id]
        elif kind == MutationKind.FUEL_PURCHASE_CHANGED:
            purchase = self.repository.get_fuel_purchase(entity_id)
            if purchase is None and not mutation.truck_id:
                raise NotFoundError("FuelPurchase", entity_id)
            ids = [purchase.truck_id if purchase else None, mutation.truck_id]
        elif kind == MutationKind.BREAKDOWN_EDITED:
            breakdown = self.repository.get_cost_breakdown(entity_id)
            if breakdown is None:
                raise NotFoundError("CostBreakdown", entity_id)
            ids = [breakdown.truck_id]

        return sorted({t for t in ids if t})

    def _run_pipeline(self, mutation: Mutation) -> PipelineResult:
        truck_ids = self._affected_trucks(mutation)
        logger.info(
            f"▶️ {mutation.kind.value} {mutation.entity_id} (trucks: {', '.join(truck_ids) or '-'})"
        )

        with self.locks.hold(truck_ids):
            # the assignment may have moved while we waited for the locks
            if self._affected_trucks(mutation) != truck_ids:
                raise ConcurrentRecomputation(",".join(truck_ids) or mutation.entity_id)

            result = PipelineResult(mutation=mutation, truck_ids=truck_ids)
            with self.repository.transaction():
                try:
                    for stage in PIPELINES[mutation.kind]:
                        logger.debug(f"  stage {stage} for {mutation.entity_id}")
                        getattr(self, f"_stage_{stage}")(mutation, truck_ids, result)
                        result.stages.append(stage)
                    self._check_invariants(truck_ids)
                except InvariantViolation as e:
                    logger.error(
                        f"❌ {mutation.kind.value} {mutation.entity_id} rolled back: {e.message}"
                    )
                    raise

        logger.info(
            f"✅ {mutation.kind.value} {mutation.entity_id}: {len(result.stages)} stages"
            + (f", soft failures: {result.soft_failures}" if result.soft_failures else "")
        )
        return result

    def _stage_deadhead(self, mutation, truck_ids, result: PipelineResult):
        outcome = self.deadhead.on_load_delivered(mutation.entity_id)
        if outcome.applied:
            result.deadhead_load_id = outcome.next_load_id
        if outcome.error:
            result.soft_failures.append(f"deadhead_lookup: {outcome.error}")

    def _stage_mileage(self, mutation, truck_ids, result):
        for truck_id in truck_ids:
            for load in self.repository.list_loads(truck_id=truck_id):
                expected = (load.miles or 0.0) + (load.deadhead_miles or 0.0)
                if load.total_miles_with_deadhead is None or abs(
                    load.total_miles_with_deadhead - expected
                ) > _TOLERANCE:
                    load.total_miles_with_deadhead = expected
                    self.repository.update_load(load)
            self.mileage.recompute(truck_id)

    def _stage_fuel_attribution(self, mutation, truck_ids, result):
        for truck_id in truck_ids:
            self.fuel.recompute_weekly(truck_id)

    def _stage_breakdown_totals(self, mutation, truck_ids, result):
        breakdown = self.repository.get_cost_breakdown(mutation.entity_id)
        truck = self.repository.get_truck(breakdown.truck_id)
        if truck is None:
            raise NotFoundError("Truck", breakdown.truck_id)
        self.calculator.apply(breakdown, has_operational_data=(truck.total_miles or 0) > 0)
        self.repository.update_cost_breakdown(breakdown)

    def _stage_truck_cache(self, mutation, truck_ids, result):
        for truck_id in truck_ids:
            self._sync_truck_cache(truck_id)

    def _stage_load_profitability(self, mutation, truck_ids, result):
        for truck_id in truck_ids:
            truck = self.repository.get_truck(truck_id)
            for load in self.repository.list_loads(truck_id=truck_id):
                self._refresh_load(load, truck)

        if mutation.kind in (MutationKind.LOAD_DELIVERED, MutationKind.LOAD_REASSIGNED):
            load = self.repository.get_load(mutation.entity_id)
            if load is not None and not load.truck_id:
                self._refresh_load(load, None)

    def _refresh_load(self, load, truck) -> LoadProfitability:
        purchases = self.repository.list_fuel_purchases(load_id=load.id)
        before = (
            load.actual_fuel_cost,
            load.actual_gallons,
            load.actual_cost_per_mile,
            load.rate_per_mile,
            load.profit,
            load.is_profitable,
        )
        result = self.profitability.apply_to_load(load, truck, purchases)
        after = (
            load.actual_fuel_cost,
            load.actual_gallons,
            load.actual_cost_per_mile,
            load.rate_per_mile,
            load.profit,
            load.is_profitable,
        )
        if after != before:
            self.repository.update_load(load)
        return result

    def _sync_truck_cache(self, truck_id: str) -> None:
        """Write the truck's cost caches from its latest breakdown (or registered totals)."""
        truck = self.repository.get_truck(truck_id)
        if truck is None:
            raise NotFoundError("Truck", truck_id)
        has_operational_data = (truck.total_miles or 0) > 0

        latest = self.repository.get_latest_cost_breakdown(truck_id)
        if latest is not None:
            before = (latest.total_fixed_costs, latest.total_variable_costs, latest.cost_per_mile)
            self.calculator.apply(latest, has_operational_data)
            if (latest.total_fixed_costs, latest.total_variable_costs, latest.cost_per_mile) != before:
                self.repository.update_cost_breakdown(latest)
            fixed, variable, cpm = (
                latest.total_fixed_costs,
                latest.total_variable_costs,
                latest.cost_per_mile,
            )
        else:
            weekly = self.fuel.summarize(truck_id)
            totals = self.calculator.compute_for_totals(
                truck.fixed_costs or 0.0,
                truck.variable_costs or 0.0,
                weekly.total_miles_with_deadhead,
                has_operational_data,
            )
            fixed, variable, cpm = (
                totals.fixed_total,
                totals.variable_total,
                totals.cost_per_mile_display,
            )

        self.repository.update_truck_cache(
            truck_id, fixed_costs=fixed, variable_costs=variable, cost_per_mile=cpm
        )
        logger.debug(f"Truck {truck_id} cache: fixed ${fixed:.2f} variable ${variable:.2f} cpm ${cpm}")

    def _check_invariants(self, truck_ids: List[str]) -> None:
        for truck_id in truck_ids:
            truck = self.repository.get_truck(truck_id)
            loads = self.repository.list_loads(truck_id=truck_id)

            for load in loads:
                if (load.miles or 0) < 0 or (load.deadhead_miles or 0) < 0:
                    raise InvariantViolation(
                        f"Load {load.id} has negative miles", field="miles", value=load.miles
                    )

            expected = sum((l.miles or 0.0) + (l.deadhead_miles or 0.0) for l in loads)
            if truck.total_miles < 0 or abs(truck.total_miles - expected) > _TOLERANCE:
                raise InvariantViolation(
                    f"Truck {truck_id} total_miles {truck.total_miles} != {expected}",
                    field="total_miles",
                    value=truck.total_miles,
                )
            if truck.cost_per_mile < 0 or truck.fixed_costs < 0 or truck.variable_costs < 0:
                raise InvariantViolation(
                    f"Truck {truck_id} has negative cost figures",
                    field="cost_per_mile",
                    value=truck.cost_per_mile,
                )

            latest = self.repository.get_latest_cost_breakdown(truck_id)
            if latest is not None and latest.cost_per_mile != truck.cost_per_mile:
                raise InvariantViolation(
                    f"Truck {truck_id} cost_per_mile {truck.cost_per_mile} "
                    f"!= breakdown {latest.cost_per_mile}",
                    field="cost_per_mile",
                    value=truck.cost_per_mile,
                )

    # ══════════════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════════════

    def get_truck_cost_summary(self, truck_id: str) -> TruckCostSummary:
        truck = self.repository.get_truck(truck_id)
        if truck is None:
            raise NotFoundError("Truck", truck_id)

        weekly = self.fuel.summarize(truck_id)
        latest = self.repository.get_latest_cost_breakdown(truck_id)
        summary = TruckCostSummary(
            truck_id=truck_id,
            fixed_costs=truck.fixed_costs,
            variable_costs=truck.variable_costs,
            weekly_total=(truck.fixed_costs or 0.0) + (truck.variable_costs or 0.0),
            cost_per_mile=truck.cost_per_mile,
            total_miles=truck.total_miles,
            miles_this_week=weekly.revenue_miles,
            total_miles_with_deadhead=weekly.total_miles_with_deadhead,
            deadhead_miles_this_week=weekly.deadhead_miles,
            diesel_cost=weekly.diesel_cost,
            def_cost=weekly.def_cost,
        )
        if latest is not None:
            summary.week_starting = latest.week_starting
            summary.fuel = latest.fuel
            summary.gallons_used = latest.gallons_used
            summary.avg_fuel_price = latest.avg_fuel_price
            summary.miles_per_gallon = latest.miles_per_gallon
            summary.miles_this_week = latest.miles_this_week
            summary.total_miles_with_deadhead = latest.total_miles_with_deadhead
            summary.deadhead_miles_this_week = max(
                (latest.total_miles_with_deadhead or 0.0) - (latest.miles_this_week or 0.0), 0.0
            )
        else:
            summary.week_starting = active_week(self.clock()).start
        return summary

    def get_load_profitability(self, load_id: str) -> LoadProfitability:
        load = self.repository.get_load(load_id)
        if load is None:
            raise NotFoundError("Load", load_id)
        truck = self.repository.get_truck(load.truck_id) if load.truck_id else None
        fuel_cost, _ = load_fuel_totals(load, self.repository.list_fuel_purchases(load_id=load_id))
        return self.profitability.for_load(load, truck, fuel_cost_per_mile(fuel_cost, load.miles))

    def get_fleet_profitability(self, owner_id: Optional[str] = None) -> FleetProfitability:
        trucks = self.repository.list_trucks(owner_id=owner_id)
        loads = self.repository.list_loads(owner_id=owner_id)
        return self.profitability.fleet(trucks, loads, owner_id=owner_id)

    def get_status(self) -> Dict:
        return {
            "distance_resolver": self.breaker.get_status(),
            "dead_letters": self.dead_letters.get_stats(),
        }
