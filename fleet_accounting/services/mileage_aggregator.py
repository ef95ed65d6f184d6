"""
Mileage Aggregator - lifetime truck miles from its loads

truck.total_miles = Σ over every load assigned to the truck (any status)
of revenue miles + deadhead miles.
"""

import logging

from fleet_accounting.errors import InvariantViolation, NotFoundError
from fleet_accounting.repositories import AccountingRepository

logger = logging.getLogger(__name__)


class MileageAggregator:
    def __init__(self, repository: AccountingRepository):
        self.repository = repository

    def recompute(self, truck_id: str) -> float:
        """Recompute and persist Truck.total_miles; returns the new total."""
        if self.repository.get_truck(truck_id) is None:
            raise NotFoundError("Truck", truck_id)

        total = 0.0
        loads = self.repository.list_loads(truck_id=truck_id)
        for load in loads:
            if (load.miles or 0) < 0 or (load.deadhead_miles or 0) < 0:
                raise InvariantViolation(
                    f"Load {load.id} has negative miles",
                    field="miles",
                    value=min(load.miles or 0, load.deadhead_miles or 0),
                )
            total += load.operational_miles

        self.repository.update_truck_cache(truck_id, total_miles=total)
        logger.debug(f"Truck {truck_id}: {len(loads)} loads, {total:.0f} total miles")
        return total
