"""
Tests for per-truck recomputation locks

Run with: pytest tests/test_truck_locks.py -v
"""

import threading
from unittest.mock import call, patch

import pytest

from fleet_accounting.errors import ConcurrentRecomputation
from fleet_accounting.services import MySQLTruckLocks, TruckLockRegistry


class TestTruckLockRegistry:
    def test_hold_returns_sorted_unique_ids(self):
        locks = TruckLockRegistry()
        with locks.hold(["T2", "T1", None, "T2"]) as ordered:
            assert ordered == ["T1", "T2"]

    def test_reentrant_in_same_thread(self):
        locks = TruckLockRegistry(timeout_seconds=0.05)
        with locks.hold(["T1"]):
            with locks.hold(["T1"]):
                pass

    def test_busy_truck_times_out(self):
        locks = TruckLockRegistry(timeout_seconds=0.05)
        held = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold(["T1"]):
                held.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            held.wait(5)
            with pytest.raises(ConcurrentRecomputation) as exc:
                with locks.hold(["T0", "T1"]):
                    pass
            assert exc.value.truck_id == "T1"
            # T0 was released when T1 failed
            with locks.hold(["T0"]):
                pass
        finally:
            release.set()
            thread.join()

    def test_other_trucks_not_blocked(self):
        locks = TruckLockRegistry(timeout_seconds=0.05)
        held = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold(["T1"]):
                held.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        try:
            held.wait(5)
            with locks.hold(["T2"]) as ordered:
                assert ordered == ["T2"]
        finally:
            release.set()
            thread.join()


class TestMySQLTruckLocks:
    """Named locks through GET_LOCK/RELEASE_LOCK"""

    @pytest.fixture
    def connect(self, mock_db_connection):
        with patch(
            "fleet_accounting.services.truck_locks.pymysql.connect",
            return_value=mock_db_connection,
        ) as connect:
            yield connect

    def test_acquires_in_order_and_releases(self, connect, db_config, mock_cursor, mock_db_connection):
        mock_cursor.fetchone.return_value = (1,)
        locks = MySQLTruckLocks(db_config, timeout_seconds=3)

        with locks.hold(["T2", "T1"]) as ordered:
            assert ordered == ["T1", "T2"]

        assert mock_cursor.execute.call_args_list == [
            call("SELECT GET_LOCK(%s, %s)", ("truck_recompute:T1", 3)),
            call("SELECT GET_LOCK(%s, %s)", ("truck_recompute:T2", 3)),
            call("SELECT RELEASE_LOCK(%s)", ("truck_recompute:T2",)),
            call("SELECT RELEASE_LOCK(%s)", ("truck_recompute:T1",)),
        ]
        mock_db_connection.close.assert_called_once()

    def test_lock_timeout_raises(self, connect, db_config, mock_cursor, mock_db_connection):
        mock_cursor.fetchone.return_value = (0,)
        locks = MySQLTruckLocks(db_config, timeout_seconds=1)

        with pytest.raises(ConcurrentRecomputation):
            with locks.hold(["T1"]):
                pass

        release_calls = [c for c in mock_cursor.execute.call_args_list if "RELEASE_LOCK" in c[0][0]]
        assert release_calls == []
        mock_db_connection.close.assert_called_once()
