"""
MySQL Accounting Repository - Database access for the accounting tables

Tables: trucks, loads, fuel_purchases, truck_cost_breakdowns
(see migrations/001_create_accounting_tables.py). Column names match the
model dataclass fields one to one.

Outside a transaction every call opens its own connection. Inside
transaction() the calls of the current thread share one connection and
commit or roll back together.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import fields
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Type

import pymysql
from pymysql import cursors

from fleet_accounting.errors import DatabaseError, NotFoundError
from fleet_accounting.models import CostBreakdown, FuelPurchase, Load, Truck
from fleet_accounting.repositories.base import AccountingRepository

logger = logging.getLogger(__name__)

TABLES = {
    Truck: "trucks",
    Load: "loads",
    FuelPurchase: "fuel_purchases",
    CostBreakdown: "truck_cost_breakdowns",
}

_BOOL_COLUMNS = {"is_active", "is_profitable"}


def _to_db(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def _row_to_entity(model: Type, row: Optional[Dict[str, Any]]):
    if row is None:
        return None
    names = {f.name for f in fields(model)}
    data = {k: v for k, v in row.items() if k in names}
    for key in _BOOL_COLUMNS & data.keys():
        data[key] = bool(data[key])
    for key, value in data.items():
        # DECIMAL columns come back as decimal.Decimal
        if isinstance(value, Decimal):
            data[key] = float(value)
    return model(**data)


class MySQLAccountingRepository(AccountingRepository):
    """Repository for accounting data access operations."""

    def __init__(self, db_config: Dict[str, Any], clock=datetime.now):
        self.db_config = db_config
        self._clock = clock
        self._local = threading.local()
        logger.info(
            f"MySQLAccountingRepository initialized for DB: {db_config.get('database')}"
        )

    def _get_connection(self):
        """Get database connection."""
        try:
            return pymysql.connect(**self.db_config, cursorclass=cursors.DictCursor)
        except pymysql.MySQLError as e:
            logger.error(f"❌ MySQL connection failed: {e}")
            raise DatabaseError(f"MySQL connection failed: {e}") from e

    # ------------------------------------------------------------------
    # query helpers
    # ------------------------------------------------------------------

    def _run(self, sql: str, params: Sequence = (), fetch: Optional[str] = None):
        active = getattr(self._local, "conn", None)
        conn = active or self._get_connection()
        try:
            with conn.cursor() as cursor:
                affected = cursor.execute(sql, tuple(params))
                if fetch == "one":
                    return cursor.fetchone()
                if fetch == "all":
                    return cursor.fetchall()
            if active is None:
                conn.commit()
            return affected
        except pymysql.MySQLError as e:
            logger.error(f"❌ Query failed: {e}")
            raise DatabaseError(str(e)) from e
        finally:
            if active is None:
                conn.close()

    def _fetch_one(self, model: Type, where: str, params: Sequence):
        row = self._run(
            f"SELECT * FROM {TABLES[model]} WHERE {where} LIMIT 1", params, fetch="one"
        )
        return _row_to_entity(model, row)

    def _fetch_all(self, model: Type, where: str, params: Sequence, order_by: str):
        rows = self._run(
            f"SELECT * FROM {TABLES[model]} WHERE {where} ORDER BY {order_by}",
            params,
            fetch="all",
        )
        return [_row_to_entity(model, r) for r in rows or []]

    def _insert(self, entity) -> None:
        columns = [f.name for f in fields(entity)]
        placeholders = ", ".join(["%s"] * len(columns))
        self._run(
            f"INSERT INTO {TABLES[type(entity)]} ({', '.join(columns)}) VALUES ({placeholders})",
            [_to_db(getattr(entity, c)) for c in columns],
        )

    def _update(self, entity, exclude: Sequence[str] = ("id", "created_at")) -> int:
        columns = [f.name for f in fields(entity) if f.name not in exclude]
        assignments = ", ".join(f"{c} = %s" for c in columns)
        return self._run(
            f"UPDATE {TABLES[type(entity)]} SET {assignments} WHERE id = %s",
            [_to_db(getattr(entity, c)) for c in columns] + [entity.id],
        )

    def _delete(self, model: Type, entity_id: str) -> bool:
        return bool(self._run(f"DELETE FROM {TABLES[model]} WHERE id = %s", (entity_id,)))

    @contextmanager
    def transaction(self) -> Iterator["MySQLAccountingRepository"]:
        if getattr(self._local, "conn", None) is not None:
            # nested: join the outer transaction
            yield self
            return

        conn = self._get_connection()
        self._local.conn = conn
        try:
            conn.begin()
            yield self
            conn.commit()
        except BaseException:
            conn.rollback()
            logger.warning("↩️ Transaction rolled back")
            raise
        finally:
            self._local.conn = None
            conn.close()

    # ------------------------------------------------------------------
    # trucks
    # ------------------------------------------------------------------

    def get_truck(self, truck_id: str) -> Optional[Truck]:
        return self._fetch_one(Truck, "id = %s", (truck_id,))

    def list_trucks(self, owner_id: Optional[str] = None) -> List[Truck]:
        if owner_id is None:
            return self._fetch_all(Truck, "1 = 1", (), "id")
        return self._fetch_all(Truck, "owner_id = %s", (owner_id,), "id")

    def create_truck(self, truck: Truck) -> Truck:
        now = self._clock()
        truck.id = truck.id or str(uuid.uuid4())
        truck.created_at = truck.created_at or now
        truck.updated_at = now
        self._insert(truck)
        return truck

    def update_truck(self, truck: Truck) -> Truck:
        truck.updated_at = self._clock()
        affected = self._update(
            truck, exclude=("id", "created_at", "total_miles", "cost_per_mile")
        )
        if not affected and self.get_truck(truck.id) is None:
            raise NotFoundError("Truck", truck.id)
        return self.get_truck(truck.id)

    def update_truck_cache(
        self,
        truck_id: str,
        *,
        fixed_costs: Optional[float] = None,
        variable_costs: Optional[float] = None,
        cost_per_mile: Optional[float] = None,
        total_miles: Optional[float] = None,
    ) -> Truck:
        values = {
            "fixed_costs": fixed_costs,
            "variable_costs": variable_costs,
            "cost_per_mile": cost_per_mile,
            "total_miles": total_miles,
        }
        values = {k: v for k, v in values.items() if v is not None}
        values["updated_at"] = self._clock()
        assignments = ", ".join(f"{k} = %s" for k in values)
        self._run(
            f"UPDATE trucks SET {assignments} WHERE id = %s",
            list(values.values()) + [truck_id],
        )
        truck = self.get_truck(truck_id)
        if truck is None:
            raise NotFoundError("Truck", truck_id)
        return truck

    # ------------------------------------------------------------------
    # loads
    # ------------------------------------------------------------------

    def get_load(self, load_id: str) -> Optional[Load]:
        return self._fetch_one(Load, "id = %s", (load_id,))

    def list_loads(
        self, truck_id: Optional[str] = None, owner_id: Optional[str] = None
    ) -> List[Load]:
        clauses, params = [], []
        if truck_id is not None:
            clauses.append("truck_id = %s")
            params.append(truck_id)
        if owner_id is not None:
            clauses.append("owner_id = %s")
            params.append(owner_id)
        where = " AND ".join(clauses) or "1 = 1"
        return self._fetch_all(Load, where, params, "created_at")

    def create_load(self, load: Load) -> Load:
        now = self._clock()
        load.id = load.id or str(uuid.uuid4())
        load.created_at = load.created_at or now
        load.updated_at = now
        if load.total_miles_with_deadhead is None:
            load.total_miles_with_deadhead = (load.miles or 0) + (load.deadhead_miles or 0)
        self._insert(load)
        return load

    def update_load(self, load: Load) -> Load:
        load.updated_at = self._clock()
        if not self._update(load) and self.get_load(load.id) is None:
            raise NotFoundError("Load", load.id)
        return load

    def delete_load(self, load_id: str) -> bool:
        return self._delete(Load, load_id)

    # ------------------------------------------------------------------
    # fuel purchases
    # ------------------------------------------------------------------

    def get_fuel_purchase(self, purchase_id: str) -> Optional[FuelPurchase]:
        return self._fetch_one(FuelPurchase, "id = %s", (purchase_id,))

    def list_fuel_purchases(
        self, truck_id: Optional[str] = None, load_id: Optional[str] = None
    ) -> List[FuelPurchase]:
        clauses, params = [], []
        if truck_id is not None:
            clauses.append("truck_id = %s")
            params.append(truck_id)
        if load_id is not None:
            clauses.append("load_id = %s")
            params.append(load_id)
        where = " AND ".join(clauses) or "1 = 1"
        return self._fetch_all(FuelPurchase, where, params, "purchase_date")

    def create_fuel_purchase(self, purchase: FuelPurchase) -> FuelPurchase:
        purchase.id = purchase.id or str(uuid.uuid4())
        purchase.created_at = purchase.created_at or self._clock()
        self._insert(purchase)
        return purchase

    def update_fuel_purchase(self, purchase: FuelPurchase) -> FuelPurchase:
        if not self._update(purchase) and self.get_fuel_purchase(purchase.id) is None:
            raise NotFoundError("FuelPurchase", purchase.id)
        return purchase

    def delete_fuel_purchase(self, purchase_id: str) -> bool:
        return self._delete(FuelPurchase, purchase_id)

    # ------------------------------------------------------------------
    # cost breakdowns
    # ------------------------------------------------------------------

    def get_cost_breakdown(self, breakdown_id: str) -> Optional[CostBreakdown]:
        return self._fetch_one(CostBreakdown, "id = %s", (breakdown_id,))

    def list_cost_breakdowns(self, truck_id: str) -> List[CostBreakdown]:
        return self._fetch_all(CostBreakdown, "truck_id = %s", (truck_id,), "week_starting")

    def get_cost_breakdown_by_week(
        self, truck_id: str, week_starting: datetime
    ) -> Optional[CostBreakdown]:
        return self._fetch_one(
            CostBreakdown,
            "truck_id = %s AND DATE(week_starting) = %s",
            (truck_id, week_starting.date()),
        )

    def get_latest_cost_breakdown(self, truck_id: str) -> Optional[CostBreakdown]:
        row = self._run(
            "SELECT * FROM truck_cost_breakdowns WHERE truck_id = %s "
            "ORDER BY week_starting DESC LIMIT 1",
            (truck_id,),
            fetch="one",
        )
        return _row_to_entity(CostBreakdown, row)

    def create_cost_breakdown(self, breakdown: CostBreakdown) -> CostBreakdown:
        now = self._clock()
        breakdown.id = breakdown.id or str(uuid.uuid4())
        breakdown.created_at = breakdown.created_at or now
        breakdown.updated_at = now
        self._insert(breakdown)
        return breakdown

    def update_cost_breakdown(self, breakdown: CostBreakdown) -> CostBreakdown:
        breakdown.updated_at = self._clock()
        if not self._update(breakdown) and self.get_cost_breakdown(breakdown.id) is None:
            raise NotFoundError("CostBreakdown", breakdown.id)
        return breakdown
