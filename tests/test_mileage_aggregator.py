"""
Tests for Mileage Aggregator

Run with: pytest tests/test_mileage_aggregator.py -v
"""

import pytest

from fleet_accounting.errors import InvariantViolation, NotFoundError
from fleet_accounting.models import LoadStatus
from fleet_accounting.services import MileageAggregator


@pytest.fixture
def aggregator(repository):
    return MileageAggregator(repository)


class TestMileageAggregator:
    def test_sums_revenue_and_deadhead_across_statuses(self, aggregator, repository, make_truck, make_load):
        make_truck("T1")
        make_load("L1", truck_id="T1", miles=500.0, status=LoadStatus.DELIVERED)
        make_load("L2", truck_id="T1", miles=600.0, deadhead_miles=200.0, status=LoadStatus.IN_TRANSIT)
        make_load("L3", truck_id="T1", miles=100.0)

        assert aggregator.recompute("T1") == 1400.0
        assert repository.get_truck("T1").total_miles == 1400.0

    def test_other_trucks_and_unassigned_loads_excluded(self, aggregator, repository, make_truck, make_load):
        make_truck("T1")
        make_truck("T2")
        make_load("L1", truck_id="T1", miles=500.0)
        make_load("L2", truck_id="T2", miles=600.0)
        make_load("L3", truck_id=None, miles=700.0)

        assert aggregator.recompute("T1") == 500.0

    def test_truck_without_loads_is_zero(self, aggregator, repository, make_truck):
        make_truck("T1", total_miles=999.0)
        assert aggregator.recompute("T1") == 0.0
        assert repository.get_truck("T1").total_miles == 0.0

    def test_recompute_is_idempotent(self, aggregator, make_truck, make_load):
        make_truck("T1")
        make_load("L1", truck_id="T1", miles=500.0, deadhead_miles=50.0)
        assert aggregator.recompute("T1") == aggregator.recompute("T1") == 550.0

    def test_missing_truck_raises(self, aggregator):
        with pytest.raises(NotFoundError):
            aggregator.recompute("nope")

    def test_negative_miles_raise(self, aggregator, make_truck, make_load):
        make_truck("T1")
        make_load("L1", truck_id="T1", miles=-10.0)
        with pytest.raises(InvariantViolation):
            aggregator.recompute("T1")
