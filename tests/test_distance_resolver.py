"""
Tests for the distance resolvers

Run with: pytest tests/test_distance_resolver.py -v
"""

from unittest.mock import MagicMock

import pytest
import requests

from fleet_accounting.errors import ExternalLookupFailure, UnknownLocation
from fleet_accounting.services import HttpDistanceResolver, TableDistanceResolver
from fleet_accounting.services.distance_resolver import haversine_miles, routing_factor


@pytest.fixture
def resolver():
    return TableDistanceResolver()


class TestTableDistanceResolver:
    def test_known_route(self, resolver):
        assert resolver.resolve_miles("Memphis", "TN", "Atlanta", "GA") == 371.0

    def test_known_route_reverse_direction(self, resolver):
        assert resolver.resolve_miles("Atlanta", "GA", "Memphis", "TN") == 371.0

    def test_input_is_normalized(self, resolver):
        assert resolver.resolve_miles("  memphis ", "tn", "ATLANTA", "ga") == 371.0

    def test_same_city_is_zero(self, resolver):
        assert resolver.resolve_miles("Dallas", "TX", "dallas", "tx") == 0.0

    def test_haversine_estimate(self, resolver):
        """Dallas -> Chicago is ~930 road miles"""
        miles = resolver.resolve_miles("Dallas", "TX", "Chicago", "IL")
        assert 880 <= miles <= 980
        assert miles == resolver.resolve_miles("Chicago", "IL", "Dallas", "TX")

    def test_unknown_city_raises(self, resolver):
        with pytest.raises(UnknownLocation) as exc:
            resolver.resolve_miles("Nowhere", "ZZ", "Dallas", "TX")
        assert "Nowhere,ZZ" in exc.value.message
        assert exc.value.location == "Nowhere,ZZ"
        assert exc.value.status_code == 502

    def test_missing_city_raises(self, resolver):
        with pytest.raises(UnknownLocation):
            resolver.resolve_miles(None, "TX", "Dallas", "TX")

    def test_custom_tables(self):
        resolver = TableDistanceResolver(known_routes={("A,XX", "B,XX"): 42}, city_coordinates={})
        assert resolver.resolve_miles("a", "xx", "b", "xx") == 42.0


class TestGeometry:
    def test_haversine_zero(self):
        assert haversine_miles(35.0, -90.0, 35.0, -90.0) == 0.0

    def test_haversine_one_degree_latitude(self):
        assert haversine_miles(35.0, -90.0, 36.0, -90.0) == pytest.approx(69.1, abs=0.1)

    def test_routing_factor_short_haul(self):
        assert routing_factor(100, "GA", "AL") == 1.35

    def test_routing_factor_flat_interstate(self):
        assert routing_factor(800, "TX", "IL") == pytest.approx(1.16)

    def test_routing_factor_terrain_and_urban(self):
        assert routing_factor(1200, "PA", "NY") == pytest.approx(1.22)


class TestHttpDistanceResolver:
    """HTTP resolver against a mocked requests session"""

    @staticmethod
    def _session(status=200, payload=None, exc=None):
        session = MagicMock()
        if exc is not None:
            session.get.side_effect = exc
        else:
            response = MagicMock(status_code=status, text="boom")
            response.json.return_value = payload
            session.get.return_value = response
        return session

    def test_success(self):
        session = self._session(payload={"miles": 931})
        resolver = HttpDistanceResolver("http://distance.local/", timeout=2.0, session=session)

        assert resolver.resolve_miles("Dallas", "TX", "Chicago", "IL") == 931.0
        session.get.assert_called_once_with(
            "http://distance.local/distance",
            params={
                "origin_city": "Dallas",
                "origin_state": "TX",
                "dest_city": "Chicago",
                "dest_state": "IL",
            },
            timeout=2.0,
        )

    def test_timeout(self):
        resolver = HttpDistanceResolver("http://x", session=self._session(exc=requests.Timeout()))
        with pytest.raises(ExternalLookupFailure) as exc:
            resolver.resolve_miles("Dallas", "TX", "Chicago", "IL")
        assert "timeout" in exc.value.message

    def test_connection_error(self):
        session = self._session(exc=requests.ConnectionError("refused"))
        with pytest.raises(ExternalLookupFailure):
            HttpDistanceResolver("http://x", session=session).resolve_miles("A", "TX", "B", "TX")

    def test_http_error_status(self):
        resolver = HttpDistanceResolver("http://x", session=self._session(status=500))
        with pytest.raises(ExternalLookupFailure) as exc:
            resolver.resolve_miles("Dallas", "TX", "Chicago", "IL")
        assert "HTTP 500" in exc.value.message

    def test_not_found_is_unknown_location(self):
        resolver = HttpDistanceResolver("http://x", session=self._session(status=404))
        with pytest.raises(UnknownLocation) as exc:
            resolver.resolve_miles("Smallville", "KS", "Chicago", "IL")
        assert exc.value.location == "Smallville,KS -> Chicago,IL"

    def test_malformed_payload(self):
        resolver = HttpDistanceResolver("http://x", session=self._session(payload={}))
        with pytest.raises(ExternalLookupFailure):
            resolver.resolve_miles("Dallas", "TX", "Chicago", "IL")

    def test_negative_distance(self):
        resolver = HttpDistanceResolver("http://x", session=self._session(payload={"miles": -4}))
        with pytest.raises(ExternalLookupFailure):
            resolver.resolve_miles("Dallas", "TX", "Chicago", "IL")
