"""
Per-truck recomputation locks

At most one recomputation pipeline runs per truck at a time. Pipelines that
touch several trucks (a load moved between trucks) take the locks in sorted
order so two such pipelines cannot deadlock. A lock that is not acquired
within the timeout raises ConcurrentRecomputation; the orchestrator retries.

TruckLockRegistry serializes within one process. MySQLTruckLocks uses
GET_LOCK/RELEASE_LOCK so several API workers sharing one database are
serialized as well.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List

import pymysql

from fleet_accounting.errors import ConcurrentRecomputation, DatabaseError

logger = logging.getLogger(__name__)


def _ordered(truck_ids: Iterable[str]) -> List[str]:
    return sorted({t for t in truck_ids if t})


class TruckLockRegistry:
    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, truck_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(truck_id)
            if lock is None:
                lock = self._locks[truck_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, truck_ids: Iterable[str]) -> Iterator[List[str]]:
        ordered = _ordered(truck_ids)
        acquired: List[threading.RLock] = []
        try:
            for truck_id in ordered:
                lock = self._lock_for(truck_id)
                if not lock.acquire(timeout=self.timeout_seconds):
                    logger.warning(f"🔒 Truck {truck_id} busy after {self.timeout_seconds}s")
                    raise ConcurrentRecomputation(truck_id)
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()


class MySQLTruckLocks:
    """Named MySQL advisory locks, one per truck, held on a dedicated connection."""

    def __init__(self, db_config: Dict[str, Any], timeout_seconds: float = 10.0, prefix: str = "truck_recompute"):
        self.db_config = db_config
        self.timeout_seconds = timeout_seconds
        self.prefix = prefix

    def _get_connection(self):
        try:
            return pymysql.connect(**self.db_config)
        except pymysql.MySQLError as e:
            raise DatabaseError(f"MySQL connection failed: {e}") from e

    @contextmanager
    def hold(self, truck_ids: Iterable[str]) -> Iterator[List[str]]:
        ordered = _ordered(truck_ids)
        conn = self._get_connection()
        acquired: List[str] = []
        try:
            with conn.cursor() as cursor:
                for truck_id in ordered:
                    name = f"{self.prefix}:{truck_id}"
                    cursor.execute("SELECT GET_LOCK(%s, %s)", (name, int(self.timeout_seconds)))
                    row = cursor.fetchone()
                    if not row or row[0] != 1:
                        raise ConcurrentRecomputation(truck_id)
                    acquired.append(name)
            yield ordered
        finally:
            try:
                with conn.cursor() as cursor:
                    for name in reversed(acquired):
                        cursor.execute("SELECT RELEASE_LOCK(%s)", (name,))
            finally:
                conn.close()
