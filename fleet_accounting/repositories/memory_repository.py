"""
In-memory Accounting Repository

Dict-backed storage used by tests and single-process deployments. Entities
are copied on the way in and out so callers never share mutable state with
the store. transaction() keeps a per-thread journal of before-images and
restores only the rows the failed transaction touched.
"""

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from fleet_accounting.errors import NotFoundError
from fleet_accounting.models import CostBreakdown, FuelPurchase, Load, Truck
from fleet_accounting.repositories.base import AccountingRepository

logger = logging.getLogger(__name__)

_MISSING = object()


class InMemoryAccountingRepository(AccountingRepository):
    def __init__(self, clock=datetime.now):
        self._clock = clock
        self._tables: Dict[str, Dict[str, object]] = {
            "trucks": {},
            "loads": {},
            "fuel_purchases": {},
            "cost_breakdowns": {},
        }
        self._lock = threading.RLock()
        self._local = threading.local()

    # ------------------------------------------------------------------
    # storage primitives
    # ------------------------------------------------------------------

    def _journal(self) -> Optional[Dict[Tuple[str, str], object]]:
        stack = getattr(self._local, "journals", None)
        return stack[-1] if stack else None

    def _get(self, table: str, key: str):
        with self._lock:
            row = self._tables[table].get(key)
            return copy.deepcopy(row) if row is not None else None

    def _put(self, table: str, key: str, row) -> None:
        with self._lock:
            journal = self._journal()
            if journal is not None and (table, key) not in journal:
                journal[(table, key)] = copy.deepcopy(
                    self._tables[table].get(key, _MISSING)
                )
            self._tables[table][key] = copy.deepcopy(row)

    def _remove(self, table: str, key: str) -> bool:
        with self._lock:
            if key not in self._tables[table]:
                return False
            journal = self._journal()
            if journal is not None and (table, key) not in journal:
                journal[(table, key)] = copy.deepcopy(self._tables[table][key])
            del self._tables[table][key]
            return True

    def _scan(self, table: str, predicate) -> List:
        with self._lock:
            return [copy.deepcopy(r) for r in self._tables[table].values() if predicate(r)]

    def _stamp(self, entity, creating: bool):
        now = self._clock()
        if not entity.id:
            entity.id = str(uuid.uuid4())
        if creating and entity.created_at is None:
            entity.created_at = now
        if hasattr(entity, "updated_at"):
            entity.updated_at = now
        return entity

    @contextmanager
    def transaction(self) -> Iterator["InMemoryAccountingRepository"]:
        stack = getattr(self._local, "journals", None)
        if stack is None:
            stack = self._local.journals = []
        journal: Dict[Tuple[str, str], object] = {}
        stack.append(journal)
        try:
            yield self
        except BaseException:
            stack.pop()
            with self._lock:
                for (table, key), before in journal.items():
                    if before is _MISSING:
                        self._tables[table].pop(key, None)
                    else:
                        self._tables[table][key] = before
            logger.info(f"Rolled back {len(journal)} row(s)")
            raise
        else:
            stack.pop()
            outer = stack[-1] if stack else None
            if outer is not None:
                # nested: the outer transaction keeps the oldest before-image
                for entry, before in journal.items():
                    outer.setdefault(entry, before)

    # ------------------------------------------------------------------
    # trucks
    # ------------------------------------------------------------------

    def get_truck(self, truck_id: str) -> Optional[Truck]:
        return self._get("trucks", truck_id)

    def list_trucks(self, owner_id: Optional[str] = None) -> List[Truck]:
        return self._scan("trucks", lambda t: owner_id is None or t.owner_id == owner_id)

    def create_truck(self, truck: Truck) -> Truck:
        self._stamp(truck, creating=True)
        self._put("trucks", truck.id, truck)
        return copy.deepcopy(truck)

    def update_truck(self, truck: Truck) -> Truck:
        stored = self.get_truck(truck.id)
        if stored is None:
            raise NotFoundError("Truck", truck.id)
        truck = copy.deepcopy(truck)
        truck.total_miles = stored.total_miles
        truck.cost_per_mile = stored.cost_per_mile
        truck.created_at = stored.created_at
        self._stamp(truck, creating=False)
        self._put("trucks", truck.id, truck)
        return copy.deepcopy(truck)

    def update_truck_cache(
        self,
        truck_id: str,
        *,
        fixed_costs: Optional[float] = None,
        variable_costs: Optional[float] = None,
        cost_per_mile: Optional[float] = None,
        total_miles: Optional[float] = None,
    ) -> Truck:
        truck = self.get_truck(truck_id)
        if truck is None:
            raise NotFoundError("Truck", truck_id)
        if fixed_costs is not None:
            truck.fixed_costs = fixed_costs
        if variable_costs is not None:
            truck.variable_costs = variable_costs
        if cost_per_mile is not None:
            truck.cost_per_mile = cost_per_mile
        if total_miles is not None:
            truck.total_miles = total_miles
        self._stamp(truck, creating=False)
        self._put("trucks", truck.id, truck)
        return truck

    # ------------------------------------------------------------------
    # loads
    # ------------------------------------------------------------------

    def get_load(self, load_id: str) -> Optional[Load]:
        return self._get("loads", load_id)

    def list_loads(
        self, truck_id: Optional[str] = None, owner_id: Optional[str] = None
    ) -> List[Load]:
        loads = self._scan(
            "loads",
            lambda l: (truck_id is None or l.truck_id == truck_id)
            and (owner_id is None or l.owner_id == owner_id),
        )
        return sorted(loads, key=lambda l: l.created_at or datetime.min)

    def create_load(self, load: Load) -> Load:
        self._stamp(load, creating=True)
        if load.total_miles_with_deadhead is None:
            load.total_miles_with_deadhead = (load.miles or 0) + (load.deadhead_miles or 0)
        self._put("loads", load.id, load)
        return copy.deepcopy(load)

    def update_load(self, load: Load) -> Load:
        if self.get_load(load.id) is None:
            raise NotFoundError("Load", load.id)
        load = copy.deepcopy(load)
        self._stamp(load, creating=False)
        self._put("loads", load.id, load)
        return copy.deepcopy(load)

    def delete_load(self, load_id: str) -> bool:
        return self._remove("loads", load_id)

    # ------------------------------------------------------------------
    # fuel purchases
    # ------------------------------------------------------------------

    def get_fuel_purchase(self, purchase_id: str) -> Optional[FuelPurchase]:
        return self._get("fuel_purchases", purchase_id)

    def list_fuel_purchases(
        self, truck_id: Optional[str] = None, load_id: Optional[str] = None
    ) -> List[FuelPurchase]:
        return self._scan(
            "fuel_purchases",
            lambda p: (truck_id is None or p.truck_id == truck_id)
            and (load_id is None or p.load_id == load_id),
        )

    def create_fuel_purchase(self, purchase: FuelPurchase) -> FuelPurchase:
        if not purchase.id:
            purchase.id = str(uuid.uuid4())
        if purchase.created_at is None:
            purchase.created_at = self._clock()
        self._put("fuel_purchases", purchase.id, purchase)
        return copy.deepcopy(purchase)

    def update_fuel_purchase(self, purchase: FuelPurchase) -> FuelPurchase:
        if self.get_fuel_purchase(purchase.id) is None:
            raise NotFoundError("FuelPurchase", purchase.id)
        self._put("fuel_purchases", purchase.id, purchase)
        return copy.deepcopy(purchase)

    def delete_fuel_purchase(self, purchase_id: str) -> bool:
        return self._remove("fuel_purchases", purchase_id)

    # ------------------------------------------------------------------
    # cost breakdowns
    # ------------------------------------------------------------------

    def get_cost_breakdown(self, breakdown_id: str) -> Optional[CostBreakdown]:
        return self._get("cost_breakdowns", breakdown_id)

    def list_cost_breakdowns(self, truck_id: str) -> List[CostBreakdown]:
        rows = self._scan("cost_breakdowns", lambda b: b.truck_id == truck_id)
        return sorted(rows, key=lambda b: b.week_starting)

    def get_cost_breakdown_by_week(
        self, truck_id: str, week_starting: datetime
    ) -> Optional[CostBreakdown]:
        for row in self.list_cost_breakdowns(truck_id):
            if row.week_starting.date() == week_starting.date():
                return row
        return None

    def create_cost_breakdown(self, breakdown: CostBreakdown) -> CostBreakdown:
        self._stamp(breakdown, creating=True)
        self._put("cost_breakdowns", breakdown.id, breakdown)
        return copy.deepcopy(breakdown)

    def update_cost_breakdown(self, breakdown: CostBreakdown) -> CostBreakdown:
        if self.get_cost_breakdown(breakdown.id) is None:
            raise NotFoundError("CostBreakdown", breakdown.id)
        breakdown = copy.deepcopy(breakdown)
        self._stamp(breakdown, creating=False)
        self._put("cost_breakdowns", breakdown.id, breakdown)
        return copy.deepcopy(breakdown)
