"""
Distance Resolvers - city-to-city road mileage

Two implementations of the DistanceResolver protocol:
- TableDistanceResolver: known trucking routes, then haversine over a table of
  freight-hub city coordinates times a routing factor (in-process, no I/O)
- HttpDistanceResolver: GET {base_url}/distance on an external mileage service

Both raise ExternalLookupFailure on any error. A city the table has no data
for raises the UnknownLocation subclass, which is a data problem rather than
a service fault. Callers decide whether either is fatal.
"""

import logging
import math
from typing import Dict, Optional, Protocol, Tuple

import requests

from fleet_accounting.errors import ExternalLookupFailure, UnknownLocation

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3959.0


class DistanceResolver(Protocol):
    def resolve_miles(
        self, origin_city: str, origin_state: str, dest_city: str, dest_state: str
    ) -> float: ...


# ═══════════════════════════════════════════════════════════════════════════════
# ROUTE TABLES
# ═══════════════════════════════════════════════════════════════════════════════

# Actual highway mileage for common lanes; looked up in both directions
KNOWN_ROUTES: Dict[Tuple[str, str], int] = {
    ("Byhalia,MS", "Rosenberg,TX"): 682,
    ("Memphis,TN", "Rosenberg,TX"): 720,
    ("Jackson,MS", "Houston,TX"): 352,
    ("Memphis,TN", "Atlanta,GA"): 371,
    ("Chicago,IL", "Memphis,TN"): 341,
    ("Louisville,KY", "Memphis,TN"): 305,
}

# (city, state) -> (lat, lng)
CITY_COORDINATES: Dict[Tuple[str, str], Tuple[float, float]] = {
    # Tennessee
    ("Memphis", "TN"): (35.1495, -90.0490),
    ("Nashville", "TN"): (36.1627, -86.7816),
    ("Knoxville", "TN"): (35.9606, -83.9207),
    ("Chattanooga", "TN"): (35.0456, -85.2672),
    # Mississippi
    ("Byhalia", "MS"): (34.8373, -89.6850),
    ("Jackson", "MS"): (32.2988, -90.1848),
    ("Gulfport", "MS"): (30.3674, -89.0928),
    ("Biloxi", "MS"): (30.3960, -88.8853),
    ("Hattiesburg", "MS"): (31.3271, -89.2903),
    ("Meridian", "MS"): (32.3643, -88.7034),
    ("Tupelo", "MS"): (34.2576, -88.7034),
    # Georgia
    ("Atlanta", "GA"): (33.7490, -84.3880),
    ("Savannah", "GA"): (32.0835, -81.0998),
    ("Augusta", "GA"): (33.4734, -82.0105),
    ("Columbus", "GA"): (32.4609, -84.9877),
    ("Macon", "GA"): (32.8407, -83.6324),
    # Pennsylvania
    ("Pittsburgh", "PA"): (40.4406, -79.9959),
    ("Philadelphia", "PA"): (39.9526, -75.1652),
    ("Harrisburg", "PA"): (40.2732, -76.8839),
    ("Allentown", "PA"): (40.6084, -75.4902),
    # Ohio
    ("Euclid", "OH"): (41.5931, -81.5265),
    ("Cleveland", "OH"): (41.4993, -81.6944),
    ("Columbus", "OH"): (39.9612, -82.9988),
    ("Cincinnati", "OH"): (39.1031, -84.5120),
    ("Toledo", "OH"): (41.6528, -83.5379),
    ("Akron", "OH"): (41.0814, -81.5190),
    # Freight hubs
    ("Chicago", "IL"): (41.8781, -87.6298),
    ("Indianapolis", "IN"): (39.7684, -86.1581),
    ("Louisville", "KY"): (38.2527, -85.7585),
    ("Birmingham", "AL"): (33.5207, -86.8025),
    ("New Orleans", "LA"): (29.9511, -90.0715),
    ("Kansas City", "MO"): (39.0997, -94.5786),
    # Texas
    ("Houston", "TX"): (29.7604, -95.3698),
    ("Dallas", "TX"): (32.7767, -96.7970),
    ("Rosenberg", "TX"): (29.5575, -95.8088),
    ("Baytown", "TX"): (29.7355, -94.9774),
    # Florida
    ("Hudson", "FL"): (28.3642, -82.6890),
    ("Tampa", "FL"): (27.9506, -82.4572),
    ("Lakeland", "FL"): (28.0395, -81.9498),
    ("Orlando", "FL"): (28.5383, -81.3792),
    ("Jacksonville", "FL"): (30.3322, -81.6557),
    ("Miami", "FL"): (25.7617, -80.1918),
    # North Carolina
    ("Charlotte", "NC"): (35.2271, -80.8431),
    ("Raleigh", "NC"): (35.7796, -78.6382),
    ("Greensboro", "NC"): (36.0726, -79.7920),
    ("Fayetteville", "NC"): (35.0527, -78.8784),
    ("Wilmington", "NC"): (34.2257, -77.9447),
    ("Asheville", "NC"): (35.5951, -82.5515),
}

MOUNTAINOUS_STATES = {"CO", "MT", "WY", "UT", "NV", "WV", "PA", "VA", "NC", "TN", "KY"}
DENSE_URBAN_STATES = {"NY", "NJ", "CT", "MA", "RI", "MD", "DE", "CA"}
FLAT_INTERSTATE_STATES = {"TX", "OK", "KS", "NE", "IA", "IL", "IN", "OH"}


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in miles."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def routing_factor(straight_line_miles: float, origin_state: str, dest_state: str) -> float:
    """
    Road-miles multiplier over the straight-line distance.

    Longer hauls run on interstates and are more direct; terrain, urban
    congestion and a few known corridors add to the factor. Never below 1.10.
    """
    if straight_line_miles > 1000:
        factor = 1.15
    elif straight_line_miles > 600:
        factor = 1.18
    elif straight_line_miles > 400:
        factor = 1.22
    elif straight_line_miles > 200:
        factor = 1.26
    else:
        factor = 1.35

    states = {origin_state, dest_state}
    if states & MOUNTAINOUS_STATES:
        factor += 0.04
    if states & DENSE_URBAN_STATES:
        factor += 0.03
    if origin_state in FLAT_INTERSTATE_STATES and dest_state in FLAT_INTERSTATE_STATES:
        factor -= 0.02
    if states == {"MS", "TX"}:
        factor += 0.02  # routing around the Mississippi River

    return max(factor, 1.10)


def _normalize(city: Optional[str], state: Optional[str]) -> Tuple[str, str]:
    return (city or "").strip().title(), (state or "").strip().upper()


class TableDistanceResolver:
    """In-process resolver over KNOWN_ROUTES and CITY_COORDINATES."""

    service_name = "route_table"

    def __init__(
        self,
        known_routes: Optional[Dict[Tuple[str, str], int]] = None,
        city_coordinates: Optional[Dict[Tuple[str, str], Tuple[float, float]]] = None,
    ):
        self.known_routes = dict(KNOWN_ROUTES if known_routes is None else known_routes)
        self.city_coordinates = dict(
            CITY_COORDINATES if city_coordinates is None else city_coordinates
        )

    def resolve_miles(
        self, origin_city: str, origin_state: str, dest_city: str, dest_state: str
    ) -> float:
        origin = _normalize(origin_city, origin_state)
        dest = _normalize(dest_city, dest_state)
        if not origin[0] or not dest[0]:
            raise UnknownLocation(
                self.service_name,
                ",".join(origin if not origin[0] else dest),
                "origin and destination city required",
            )
        if origin == dest:
            return 0.0

        key_a, key_b = ",".join(origin), ",".join(dest)
        known = self.known_routes.get((key_a, key_b)) or self.known_routes.get((key_b, key_a))
        if known:
            logger.debug(f"Known route {key_a} -> {key_b}: {known} mi")
            return float(known)

        origin_coords = self.city_coordinates.get(origin)
        dest_coords = self.city_coordinates.get(dest)
        if origin_coords is None or dest_coords is None:
            missing = key_a if origin_coords is None else key_b
            raise UnknownLocation(self.service_name, missing)

        straight = haversine_miles(*origin_coords, *dest_coords)
        factor = routing_factor(straight, origin[1], dest[1])
        miles = round(straight * factor)
        logger.debug(
            f"{key_a} -> {key_b}: {straight:.1f} mi straight x {factor:.2f} = {miles} mi"
        )
        return float(miles)


class HttpDistanceResolver:
    """
    Resolver backed by an HTTP mileage service.

    GET {base_url}/distance?origin_city=..&origin_state=..&dest_city=..&dest_state=..
    -> {"miles": 931}

    A 404 means the service does not know one of the cities.
    """

    service_name = "distance_service"

    def __init__(self, base_url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def resolve_miles(
        self, origin_city: str, origin_state: str, dest_city: str, dest_state: str
    ) -> float:
        params = {
            "origin_city": origin_city,
            "origin_state": origin_state,
            "dest_city": dest_city,
            "dest_state": dest_state,
        }
        try:
            response = self.session.get(
                f"{self.base_url}/distance", params=params, timeout=self.timeout
            )
        except requests.Timeout as e:
            raise ExternalLookupFailure(self.service_name, f"timeout after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ExternalLookupFailure(self.service_name, str(e)) from e

        if response.status_code == 404:
            raise UnknownLocation(
                self.service_name,
                f"{origin_city},{origin_state} -> {dest_city},{dest_state}",
                f"no route for {origin_city}, {origin_state} -> {dest_city}, {dest_state}",
            )
        if response.status_code != 200:
            raise ExternalLookupFailure(
                self.service_name, f"HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            miles = float(response.json()["miles"])
        except (ValueError, KeyError, TypeError) as e:
            raise ExternalLookupFailure(self.service_name, f"malformed response: {e}") from e

        if miles < 0:
            raise ExternalLookupFailure(self.service_name, f"negative distance {miles}")
        return miles
