"""
Tests for the in-memory repository

Run with: pytest tests/test_memory_repository.py -v
"""

import pytest

from fleet_accounting.errors import NotFoundError
from fleet_accounting.models import Load, Truck
from tests.fixtures.accounting_fixtures import LAST_WEEK, NOW, WEEK_START


class TestCrud:
    def test_create_assigns_id_and_timestamps(self, repository):
        truck = repository.create_truck(Truck(id=""))
        assert truck.id
        assert truck.created_at == NOW
        assert truck.updated_at == NOW

    def test_reads_are_copies(self, repository, make_truck):
        make_truck("T1")
        truck = repository.get_truck("T1")
        truck.name = "changed"
        assert repository.get_truck("T1").name == "Truck T1"

    def test_create_load_defaults_total_with_deadhead(self, repository):
        load = repository.create_load(Load(id="L1", miles=500.0, deadhead_miles=25.0))
        assert load.total_miles_with_deadhead == 525.0

    def test_update_missing_raises(self, repository):
        with pytest.raises(NotFoundError):
            repository.update_load(Load(id="nope"))

    def test_update_truck_keeps_derived_fields(self, repository, make_truck):
        make_truck("T1")
        repository.update_truck_cache("T1", total_miles=900.0, cost_per_mile=1.25)

        truck = repository.get_truck("T1")
        truck.name = "Renamed"
        truck.total_miles = 1.0
        truck.cost_per_mile = 99.0
        repository.update_truck(truck)

        stored = repository.get_truck("T1")
        assert stored.name == "Renamed"
        assert stored.total_miles == 900.0
        assert stored.cost_per_mile == 1.25

    def test_list_filters(self, repository, make_truck, make_load):
        make_truck("T1", owner_id="a")
        make_truck("T2", owner_id="b")
        make_load("L1", truck_id="T1", owner_id="a")
        make_load("L2", truck_id="T2", owner_id="b")
        assert [t.id for t in repository.list_trucks(owner_id="a")] == ["T1"]
        assert [l.id for l in repository.list_loads(owner_id="b")] == ["L2"]
        assert len(repository.list_loads()) == 2

    def test_delete(self, repository, make_load):
        make_load("L1")
        assert repository.delete_load("L1")
        assert not repository.delete_load("L1")


class TestCostBreakdowns:
    def test_latest_and_by_week(self, repository, make_breakdown):
        make_breakdown("NEW", week_starting=WEEK_START)
        make_breakdown("OLD", week_starting=LAST_WEEK)

        assert [b.id for b in repository.list_cost_breakdowns("T1")] == ["OLD", "NEW"]
        assert repository.get_latest_cost_breakdown("T1").id == "NEW"
        assert repository.get_cost_breakdown_by_week("T1", WEEK_START.replace(hour=5)).id == "NEW"
        assert repository.get_latest_cost_breakdown("T2") is None


class TestTransactions:
    """Rollback restores only the rows the transaction touched"""

    def test_rollback_restores_update_create_and_delete(self, repository, make_truck, make_load):
        make_truck("T1")
        make_load("L1", miles=100.0)

        with pytest.raises(RuntimeError):
            with repository.transaction():
                repository.update_truck_cache("T1", total_miles=500.0)
                repository.create_load(Load(id="L2"))
                repository.delete_load("L1")
                raise RuntimeError("boom")

        assert repository.get_truck("T1").total_miles == 0.0
        assert repository.get_load("L2") is None
        assert repository.get_load("L1").miles == 100.0

    def test_commit_keeps_writes(self, repository, make_truck):
        make_truck("T1")
        with repository.transaction():
            repository.update_truck_cache("T1", total_miles=500.0)
        assert repository.get_truck("T1").total_miles == 500.0

    def test_nested_commit_rolled_back_by_outer(self, repository, make_truck):
        make_truck("T1")
        with pytest.raises(RuntimeError):
            with repository.transaction():
                with repository.transaction():
                    repository.update_truck_cache("T1", total_miles=500.0)
                repository.update_truck_cache("T1", total_miles=600.0)
                raise RuntimeError("boom")
        assert repository.get_truck("T1").total_miles == 0.0
