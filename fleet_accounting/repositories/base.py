"""
Accounting Repository interface

CRUD + "all rows for truck" scans over the four accounting tables, plus a
transaction boundary. The orchestrator writes derived truck caches through
update_truck_cache only; update_truck never touches total_miles or
cost_per_mile.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from fleet_accounting.models import CostBreakdown, FuelPurchase, Load, Truck


class AccountingRepository(ABC):
    # Trucks
    @abstractmethod
    def get_truck(self, truck_id: str) -> Optional[Truck]: ...

    @abstractmethod
    def list_trucks(self, owner_id: Optional[str] = None) -> List[Truck]: ...

    @abstractmethod
    def create_truck(self, truck: Truck) -> Truck: ...

    @abstractmethod
    def update_truck(self, truck: Truck) -> Truck: ...

    @abstractmethod
    def update_truck_cache(
        self,
        truck_id: str,
        *,
        fixed_costs: Optional[float] = None,
        variable_costs: Optional[float] = None,
        cost_per_mile: Optional[float] = None,
        total_miles: Optional[float] = None,
    ) -> Truck: ...

    # Loads
    @abstractmethod
    def get_load(self, load_id: str) -> Optional[Load]: ...

    @abstractmethod
    def list_loads(
        self, truck_id: Optional[str] = None, owner_id: Optional[str] = None
    ) -> List[Load]: ...

    @abstractmethod
    def create_load(self, load: Load) -> Load: ...

    @abstractmethod
    def update_load(self, load: Load) -> Load: ...

    @abstractmethod
    def delete_load(self, load_id: str) -> bool: ...

    # Fuel purchases
    @abstractmethod
    def get_fuel_purchase(self, purchase_id: str) -> Optional[FuelPurchase]: ...

    @abstractmethod
    def list_fuel_purchases(
        self, truck_id: Optional[str] = None, load_id: Optional[str] = None
    ) -> List[FuelPurchase]: ...

    @abstractmethod
    def create_fuel_purchase(self, purchase: FuelPurchase) -> FuelPurchase: ...

    @abstractmethod
    def update_fuel_purchase(self, purchase: FuelPurchase) -> FuelPurchase: ...

    @abstractmethod
    def delete_fuel_purchase(self, purchase_id: str) -> bool: ...

    # Cost breakdowns
    @abstractmethod
    def get_cost_breakdown(self, breakdown_id: str) -> Optional[CostBreakdown]: ...

    @abstractmethod
    def list_cost_breakdowns(self, truck_id: str) -> List[CostBreakdown]:
        """All rows for the truck, oldest week first."""

    @abstractmethod
    def get_cost_breakdown_by_week(
        self, truck_id: str, week_starting: datetime
    ) -> Optional[CostBreakdown]: ...

    @abstractmethod
    def create_cost_breakdown(self, breakdown: CostBreakdown) -> CostBreakdown: ...

    @abstractmethod
    def update_cost_breakdown(self, breakdown: CostBreakdown) -> CostBreakdown: ...

    def get_latest_cost_breakdown(self, truck_id: str) -> Optional[CostBreakdown]:
        rows = self.list_cost_breakdowns(truck_id)
        return rows[-1] if rows else None

    @contextmanager
    def transaction(self) -> Iterator["AccountingRepository"]:
        """Group writes; the default implementation has no rollback."""
        yield self
