"""
Buprenorphine Pharmacy Locator — Map Search and Geocoding Providers

Adapters over the public Nominatim API:

    NominatimSearchProvider   — the authoritative pharmacy search stream
    NominatimAddressGeocoder  — address validation for manual entries

Searches are bounded to a viewbox derived from the provider radius
(30 km), filtered to pharmacies, de-duplicated on a ~100 m grid and ranked
by distance.  HTTP and network failures raise ``SearchProviderError``; the
search service decides how to degrade.
"""

from __future__ import annotations

import logging
import math
import os
import re
from typing import Any

import requests

from agent_03_resolution.algorithms.geo_distance import (
    SEARCH_PROVIDER_RADIUS_MILES,
    LatLon,
    bounding_box,
    filter_within_radius,
)
from agent_03_resolution.algorithms.records import SOURCE_AUTHORITATIVE, PharmacyCandidate

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

NOMINATIM_CONFIG = {
    "url": os.environ.get("BPL_NOMINATIM_URL", "https://nominatim.openstreetmap.org"),
    "user_agent": os.environ.get(
        "BPL_USER_AGENT", "BupeLocator/1.0 (https://bupe.opioidpolicy.org)"
    ),
    "timeout": float(os.environ.get("BPL_NOMINATIM_TIMEOUT", "5")),
    "country_codes": os.environ.get("BPL_COUNTRY_CODES", "us"),
}

MAX_PROVIDER_RESULTS = 15
MAX_NAME_LENGTH = 50

PHARMACY_KEYWORDS = (
    "pharmacy", "drug store", "drugstore", "apothecary", "chemist",
    "cvs", "walgreens", "rite aid", "duane reade", "medicine shoppe",
    "healthmart", "genoa", "capsule", "walmart", "target", "kroger",
    "safeway", "albertsons", "vons", "publix", "wegmans", "h-e-b", "heb",
    "hy-vee", "meijer", "giant eagle", "food lion", "fred meyer",
    "costco", "sam's club", "shoprite", "winn-dixie", "harris teeter",
)

_DIGIT = re.compile(r"\d")
_WHITESPACE = re.compile(r"\s+")


class SearchProviderError(RuntimeError):
    """Raised when the map search provider cannot be reached or answers badly."""


# ---------------------------------------------------------------------------
# Result helpers
# ---------------------------------------------------------------------------


def looks_like_address(query: str) -> bool:
    """A query with a digit and either a space or >10 chars is searched as-is."""
    return bool(_DIGIT.search(query)) and (" " in query or len(query) > 10)


def build_search_query(query: str) -> str:
    if looks_like_address(query):
        return query
    return f"{query} pharmacy OR {query}"


def is_pharmacy(result: dict[str, Any]) -> bool:
    """OSM amenity=pharmacy, or any name field mentioning a pharmacy keyword."""
    if result.get("class") == "amenity" and result.get("type") == "pharmacy":
        return True

    address = result.get("address") or {}
    extratags = result.get("extratags") or {}
    names = [
        result.get("display_name"),
        address.get("name"),
        address.get("shop"),
        address.get("amenity"),
        extratags.get("brand"),
        extratags.get("operator"),
    ]
    lowered = [n.lower() for n in names if n]
    return any(keyword in name for name in lowered for keyword in PHARMACY_KEYWORDS)


def result_name(result: dict[str, Any]) -> str:
    address = result.get("address") or {}
    extratags = result.get("extratags") or {}
    name = (
        address.get("name")
        or address.get("shop")
        or address.get("amenity")
        or extratags.get("brand")
        or (result.get("display_name") or "").split(",")[0]
    )
    name = _WHITESPACE.sub(" ", name).strip()
    if len(name) > MAX_NAME_LENGTH:
        name = name[:MAX_NAME_LENGTH] + "..."
    return name


def format_address(result: dict[str, Any]) -> str:
    """'<number> <road>, <city>, <state>, <postcode>' or the display name."""
    address = result.get("address") or {}
    street = f"{address.get('house_number', '')} {address.get('road', '')}".strip()
    city = address.get("city") or address.get("town") or address.get("village") or ""
    city_state_zip = ", ".join(
        part for part in (city, address.get("state", ""), address.get("postcode", "")) if part
    )
    if street and city_state_zip:
        return f"{street}, {city_state_zip}"
    return street or city_state_zip or result.get("display_name", "")


def _grid_key(result: dict[str, Any]) -> tuple[int, int]:
    return (
        math.floor(float(result["lat"]) * 1000),
        math.floor(float(result["lon"]) * 1000),
    )


def dedupe_by_grid(results: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Keep the first result in each ~100 m grid cell."""
    seen: set[tuple[int, int]] = set()
    unique = []
    for result in results:
        key = _grid_key(result)
        if key in seen:
            continue
        seen.add(key)
        unique.append(result)
    return unique


def to_candidate(result: dict[str, Any]) -> PharmacyCandidate:
    extratags = result.get("extratags") or {}
    return PharmacyCandidate(
        name=result_name(result),
        full_address=format_address(result),
        source_id=f"osm_{result.get('osm_type', 'node')}_{result.get('osm_id', '')}",
        source=SOURCE_AUTHORITATIVE,
        phone_number=extratags.get("phone") or extratags.get("contact:phone"),
        latitude=float(result["lat"]),
        longitude=float(result["lon"]),
    )


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class _NominatimClient:
    def __init__(self, config: dict[str, Any] | None = None,
                 session: requests.Session | None = None):
        self.config = dict(config or NOMINATIM_CONFIG)
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": self.config["user_agent"],
            "Accept": "application/json",
        })

    def _get(self, path: str, params: dict[str, Any]) -> Any:
        try:
            resp = self.session.get(f"{self.config['url']}/{path}", params=params,
                                    timeout=self.config["timeout"])
            resp.raise_for_status()
            return resp.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise SearchProviderError(f"Nominatim {path} failed: {e}") from e


class NominatimSearchProvider(_NominatimClient):
    """Authoritative pharmacy search around an origin."""

    radius_miles = SEARCH_PROVIDER_RADIUS_MILES

    def search(self, query: str, origin: LatLon) -> list[PharmacyCandidate]:
        min_lat, max_lat, min_lon, max_lon = bounding_box(origin, self.radius_miles)
        params = {
            "format": "json",
            "q": build_search_query(query),
            "addressdetails": 1,
            "extratags": 1,
            "limit": 20,
            "bounded": 1,
            "viewbox": f"{min_lon},{max_lat},{max_lon},{min_lat}",
            "countrycodes": self.config["country_codes"],
        }
        raw = self._get("search", params)
        if not isinstance(raw, list):
            raise SearchProviderError("Nominatim search returned an unexpected payload")

        usable = [r for r in raw if r.get("lat") and r.get("lon") and is_pharmacy(r)]
        candidates = [to_candidate(r) for r in dedupe_by_grid(usable)]
        nearby = filter_within_radius(origin, candidates, self.radius_miles)
        logger.debug("Nominatim: %d raw, %d pharmacies in range", len(raw), len(nearby))
        return nearby[:MAX_PROVIDER_RESULTS]


class NominatimAddressGeocoder(_NominatimClient):
    """Validates a free-text address for the manual-entry path."""

    def validate(self, address: str) -> dict[str, Any]:
        if not address or not address.strip():
            return {"valid": False, "coordinates": None, "normalized_address": None}

        raw = self._get("search", {
            "format": "json",
            "q": address.strip(),
            "addressdetails": 1,
            "limit": 1,
            "countrycodes": self.config["country_codes"],
        })
        if not raw:
            return {"valid": False, "coordinates": None, "normalized_address": None}

        top = raw[0]
        return {
            "valid": True,
            "coordinates": LatLon(float(top["lat"]), float(top["lon"])),
            "normalized_address": format_address(top),
        }
