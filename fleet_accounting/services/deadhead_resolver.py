"""
Deadhead Resolver - empty miles between a delivery and the next pickup

On delivery of a load, the truck's next not-yet-dispatched load (status not
delivered, deadhead_miles == 0) gets its deadhead origin and miles filled in
from the distance between the delivered load's destination and its origin.

deadhead_miles == 0 doubles as the "not yet resolved" marker, so a load is
never charged deadhead twice. Lookup failures are soft: the load keeps 0 and
is picked up again on the truck's next delivery. Each failure is parked in
the dead-letter queue until a later lookup for the truck succeeds.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from fleet_accounting.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpenError,
    DeadLetterQueue,
)
from fleet_accounting.errors import ExternalLookupFailure, NotFoundError, UnknownLocation
from fleet_accounting.models import Load, LoadStatus
from fleet_accounting.repositories import AccountingRepository

logger = logging.getLogger(__name__)

DEADHEAD_OPERATION = "deadhead_lookup"

# Data errors for one load; they do not count against the shared breaker
BREAKER_EXCLUDED = (UnknownLocation,)


@dataclass
class DeadheadOutcome:
    delivered_load_id: str
    next_load_id: Optional[str] = None
    deadhead_miles: float = 0.0
    applied: bool = False
    error: Optional[str] = None  # soft failure message, if any


class DeadheadResolver:
    def __init__(
        self,
        repository: AccountingRepository,
        distance_resolver,
        breaker: Optional[CircuitBreaker] = None,
        dead_letters: Optional[DeadLetterQueue] = None,
    ):
        self.repository = repository
        self.distance_resolver = distance_resolver
        self.breaker = breaker or CircuitBreaker(
            "distance_resolver", CircuitBreakerConfig(excluded_exceptions=BREAKER_EXCLUDED)
        )
        self.dead_letters = dead_letters or DeadLetterQueue()

    @staticmethod
    def find_next_load(candidates: List[Load], delivered_load_id: str) -> Optional[Load]:
        """Earliest pickup (falling back to creation time) among unresolved, undelivered loads."""
        pool = [
            load
            for load in candidates
            if load.id != delivered_load_id
            and load.status != LoadStatus.DELIVERED
            and not load.deadhead_miles
        ]
        if not pool:
            return None
        return min(pool, key=lambda load: load.sort_date)

    def _lookup(self, origin_city, origin_state, dest_city, dest_state) -> float:
        """Distance lookup through the circuit breaker; the resolver bounds its own I/O."""
        try:
            return float(
                self.breaker.execute(
                    self.distance_resolver.resolve_miles,
                    origin_city,
                    origin_state,
                    dest_city,
                    dest_state,
                )
            )
        except CircuitBreakerOpenError as e:
            raise ExternalLookupFailure("distance_resolver", str(e)) from e

    def on_load_delivered(self, load_id: str) -> DeadheadOutcome:
        delivered = self.repository.get_load(load_id)
        if delivered is None:
            raise NotFoundError("Load", load_id)

        outcome = DeadheadOutcome(delivered_load_id=load_id)
        if not delivered.truck_id or not delivered.destination_city or not delivered.destination_state:
            logger.debug(f"Load {load_id}: no truck or destination, deadhead skipped")
            return outcome

        truck_id = delivered.truck_id
        next_load = self.find_next_load(self.repository.list_loads(truck_id=truck_id), load_id)
        if next_load is None:
            logger.debug(f"Truck {truck_id}: no queued load after {load_id}")
            return outcome
        outcome.next_load_id = next_load.id
        if not next_load.origin_city or not next_load.origin_state:
            logger.debug(f"Load {next_load.id}: no pickup city, deadhead skipped")
            return outcome

        try:
            miles = self._lookup(
                delivered.destination_city,
                delivered.destination_state,
                next_load.origin_city,
                next_load.origin_state,
            )
        except ExternalLookupFailure as e:
            outcome.error = e.message
            logger.warning(
                f"⚠️ Deadhead lookup failed for truck {truck_id} "
                f"({delivered.destination_city}, {delivered.destination_state} -> "
                f"{next_load.origin_city}, {next_load.origin_state}): {e.message}"
            )
            self.dead_letters.add(
                truck_id,
                DEADHEAD_OPERATION,
                e.message,
                data={"delivered_load_id": load_id, "next_load_id": next_load.id},
            )
            return outcome

        self.dead_letters.remove(truck_id, DEADHEAD_OPERATION)
        outcome.deadhead_miles = miles
        if miles <= 0:
            logger.debug(f"Load {next_load.id}: zero deadhead (same pickup city)")
            return outcome

        next_load.deadhead_from_city = delivered.destination_city
        next_load.deadhead_from_state = delivered.destination_state
        next_load.deadhead_miles = miles
        next_load.total_miles_with_deadhead = (next_load.miles or 0.0) + miles
        self.repository.update_load(next_load)
        outcome.applied = True
        logger.info(
            f"🚚 Load {next_load.id}: {miles:.0f} deadhead mi from "
            f"{delivered.destination_city}, {delivered.destination_state}"
        )
        return outcome
