#!/usr/bin/env python3
"""
Buprenorphine Pharmacy Locator — Geographic Distance Filtering and Ranking

Great-circle distance between pharmacy locations using the Haversine
formula, a bounding-box pre-filter, and helpers that restrict a collection
to a radius or rank it by proximity.

Three radii serve three different purposes and are kept separate:
    DISPLAY_RADIUS_MILES        — pharmacies shown on the map/list
    REPORT_POOL_RADIUS_MILES    — reports and local entries fetched for a search
    SEARCH_PROVIDER_RADIUS_KM   — viewbox handed to the map search provider

No external geo-libraries required — pure math with stdlib.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Iterable, TypeVar


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EARTH_RADIUS_MILES = 3959.0
KM_PER_MILE = 1.609344

DISPLAY_RADIUS_MILES = 15.0
REPORT_POOL_RADIUS_MILES = 50.0
SEARCH_PROVIDER_RADIUS_KM = 30.0
SEARCH_PROVIDER_RADIUS_MILES = SEARCH_PROVIDER_RADIUS_KM / KM_PER_MILE

T = TypeVar("T")


@dataclass(frozen=True)
class LatLon:
    """A WGS84 coordinate pair."""
    latitude: float
    longitude: float

    def is_valid(self) -> bool:
        """Check whether the coordinates are on the globe."""
        return (
            -90.0 <= self.latitude <= 90.0
            and -180.0 <= self.longitude <= 180.0
        )


# ---------------------------------------------------------------------------
# Core distance calculation
# ---------------------------------------------------------------------------


def distance_miles(coord_a: LatLon, coord_b: LatLon) -> float:
    """
    Compute the great-circle distance in miles between two WGS84 points
    using the Haversine formula.
    """
    lat1 = math.radians(coord_a.latitude)
    lat2 = math.radians(coord_b.latitude)
    dlat = math.radians(coord_b.latitude - coord_a.latitude)
    dlon = math.radians(coord_b.longitude - coord_a.longitude)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_MILES * c


def bounding_box(
    origin: LatLon,
    radius_miles: float,
) -> tuple[float, float, float, float]:
    """
    Return a lat/lon bounding box that encloses a circle of the given radius
    around the origin.

    Returns (min_lat, max_lat, min_lon, max_lon) in degrees.

    Used to build store filter formulas and provider viewboxes before the
    exact Haversine check.
    """
    lat_delta = radius_miles / EARTH_RADIUS_MILES * (180.0 / math.pi)
    cos_lat = math.cos(math.radians(origin.latitude))
    lon_delta = lat_delta / cos_lat if cos_lat > 1e-9 else 180.0

    return (
        origin.latitude - lat_delta,
        origin.latitude + lat_delta,
        origin.longitude - lon_delta,
        origin.longitude + lon_delta,
    )


# ---------------------------------------------------------------------------
# Coordinate access
# ---------------------------------------------------------------------------


def coords_of(item: Any) -> LatLon | None:
    """
    Default coordinate accessor: reads ``latitude``/``longitude`` from an
    object attribute or mapping key.  Returns None when either is missing.
    """
    if isinstance(item, dict):
        lat, lon = item.get("latitude"), item.get("longitude")
    else:
        lat = getattr(item, "latitude", None)
        lon = getattr(item, "longitude", None)
    if lat is None or lon is None:
        return None
    return LatLon(float(lat), float(lon))


# ---------------------------------------------------------------------------
# Filtering and ranking
# ---------------------------------------------------------------------------


def filter_within_radius(
    origin: LatLon,
    items: Iterable[T],
    radius_miles: float,
    *,
    coords: Callable[[T], LatLon | None] = coords_of,
) -> list[T]:
    """
    Keep the items within ``radius_miles`` of the origin, nearest first.

    Items without coordinates are dropped.  Equal distances keep their
    input order.
    """
    min_lat, max_lat, min_lon, max_lon = bounding_box(origin, radius_miles)

    nearby: list[tuple[float, T]] = []
    for item in items:
        point = coords(item)
        if point is None:
            continue
        # Bounding-box pre-filter
        if not (min_lat <= point.latitude <= max_lat and min_lon <= point.longitude <= max_lon):
            continue
        dist = distance_miles(origin, point)
        if dist <= radius_miles:
            nearby.append((dist, item))

    nearby.sort(key=lambda pair: pair[0])
    return [item for _, item in nearby]


def rank_by_distance(
    origin: LatLon,
    items: Iterable[T],
    *,
    coords: Callable[[T], LatLon | None] = coords_of,
) -> list[T]:
    """Sort items by ascending distance from the origin; items without coordinates go last."""

    def _key(item: T) -> float:
        point = coords(item)
        return distance_miles(origin, point) if point is not None else math.inf

    return sorted(items, key=_key)
