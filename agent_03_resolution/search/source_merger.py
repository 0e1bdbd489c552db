#!/usr/bin/env python3
"""
Buprenorphine Pharmacy Locator — Multi-Source Search Merger

Combines two candidate streams into one ranked suggestion list for the
report form:

    authoritative — map search provider results (already distance-filtered)
    local         — pharmacies already in the report store, either reported
                    (live) or approved manual entries

Local candidates are deduplicated against the growing merged list with
``is_same_location``; survivors are placed by source priority
(authoritative > manual > reported).  The list is sorted, truncated to
``max_results``, and a synthetic "add a pharmacy not listed" action entry
is always appended last.

Upstream failures never reach the caller: if either stream fails the other
stream is used alone.

Dependencies:
    pip install pyyaml rapidfuzz
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Protocol, Sequence

import yaml

from ..algorithms.geo_distance import LatLon, distance_miles
from ..algorithms.location_match import is_same_location
from ..algorithms.records import (
    SOURCE_ACTION,
    SOURCE_AUTHORITATIVE,
    SOURCE_MANUAL,
    SOURCE_REPORTED,
    LocalEntry,
    PharmacyCandidate,
)
from .cache import NullCache, TTLCache, coordinate_cache_key
from .circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Defaults (overridden by merge_rules.yaml at runtime)
# ---------------------------------------------------------------------------

DEFAULT_RULES_PATH = Path(__file__).resolve().parent.parent / "config" / "merge_rules.yaml"

_DEFAULT_SOURCE_PRIORITY = {
    SOURCE_AUTHORITATIVE: 0,
    SOURCE_MANUAL: 1,
    SOURCE_REPORTED: 2,
    SOURCE_ACTION: 3,
}

_DEFAULT_ACTION = {
    "name": "+ Add a pharmacy not listed",
    "source_id": "manual_entry",
}

_UNSAFE_QUERY_CHARS = re.compile(r"[^\w\s\-(),.]")


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class MapSearchProvider(Protocol):
    def search(self, query: str, origin: LatLon) -> list[PharmacyCandidate]: ...


class LocalEntryStore(Protocol):
    def query_local_entries(self, origin: LatLon, radius_miles: float) -> list[LocalEntry]: ...


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class MergerConfig:
    """Tunable merge parameters, loaded from merge_rules.yaml."""

    max_results: int = 5
    source_priority: dict[str, int] = field(
        default_factory=lambda: dict(_DEFAULT_SOURCE_PRIORITY)
    )
    local_radius_miles: float = 50.0
    provider_radius_km: float = 30.0
    min_query_length: int = 2
    max_query_length: int = 100
    cache_ttl_seconds: float = 300
    cache_max_entries: int = 1000
    cache_precision: int = 2
    breaker_threshold: int = 3
    breaker_reset_seconds: float = 60
    action_name: str = _DEFAULT_ACTION["name"]
    action_source_id: str = _DEFAULT_ACTION["source_id"]

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "MergerConfig":
        """Load configuration from a YAML file (the packaged rules by default)."""
        with open(path or DEFAULT_RULES_PATH, "r") as f:
            raw = yaml.safe_load(f) or {}

        results = raw.get("results", {})
        radii = raw.get("radii", {})
        query = raw.get("query", {})
        cache = raw.get("cache", {})
        breaker = raw.get("circuit_breaker", {})
        action = raw.get("action_entry", {})

        defaults = cls()
        return cls(
            max_results=results.get("max_results", defaults.max_results),
            source_priority={
                **_DEFAULT_SOURCE_PRIORITY,
                **raw.get("source_priority", {}),
            },
            local_radius_miles=radii.get("local_pool_miles", defaults.local_radius_miles),
            provider_radius_km=radii.get("provider_km", defaults.provider_radius_km),
            min_query_length=query.get("min_length", defaults.min_query_length),
            max_query_length=query.get("max_length", defaults.max_query_length),
            cache_ttl_seconds=cache.get("ttl_seconds", defaults.cache_ttl_seconds),
            cache_max_entries=cache.get("max_entries", defaults.cache_max_entries),
            cache_precision=cache.get("coordinate_precision", defaults.cache_precision),
            breaker_threshold=breaker.get("threshold", defaults.breaker_threshold),
            breaker_reset_seconds=breaker.get(
                "reset_timeout_seconds", defaults.breaker_reset_seconds
            ),
            action_name=action.get("name", defaults.action_name),
            action_source_id=action.get("source_id", defaults.action_source_id),
        )

    def action_entry(self) -> PharmacyCandidate:
        return PharmacyCandidate(
            name=self.action_name,
            full_address="",
            source_id=self.action_source_id,
            source=SOURCE_ACTION,
        )


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


def sanitize_query(query: str | None, max_length: int = 100) -> str:
    """Drop characters outside word/space/``-(),.`` and cap the length."""
    if not query:
        return ""
    return _UNSAFE_QUERY_CHARS.sub("", query)[:max_length]


def matches_query(entry: LocalEntry, query: str) -> bool:
    """Every whitespace-separated term must occur in name + address + city."""
    haystack = f"{entry.name} {entry.full_address} {entry.city}".lower()
    return all(term in haystack for term in query.lower().split())


def _with_distance(candidate: PharmacyCandidate, origin: LatLon | None) -> PharmacyCandidate:
    if (
        candidate.distance_miles is not None
        or origin is None
        or candidate.latitude is None
        or candidate.longitude is None
    ):
        return candidate
    return replace(
        candidate,
        distance_miles=distance_miles(origin, LatLon(candidate.latitude, candidate.longitude)),
    )


# ---------------------------------------------------------------------------
# Pure merge
# ---------------------------------------------------------------------------


def merge_candidates(
    query: str,
    origin: LatLon | None,
    authoritative: Sequence[PharmacyCandidate],
    local: Sequence[LocalEntry],
    *,
    config: MergerConfig | None = None,
) -> list[PharmacyCandidate]:
    """
    Merge the two candidate streams into the final suggestion list.

    Deterministic given both streams; never longer than
    ``config.max_results + 1`` and always ending with the action entry.
    """
    config = config or MergerConfig()

    merged: list[PharmacyCandidate] = [
        _with_distance(replace(c, source=SOURCE_AUTHORITATIVE), origin)
        for c in authoritative
    ]

    added = skipped = 0
    for entry in local:
        if entry.is_pending_review:
            continue
        if not matches_query(entry, query):
            continue

        source = SOURCE_MANUAL if entry.is_manual else SOURCE_REPORTED
        candidate = _with_distance(replace(entry, source=source), origin)

        if any(is_same_location(existing, candidate) for existing in merged):
            skipped += 1
            continue

        if source == SOURCE_MANUAL:
            first_reported = next(
                (i for i, c in enumerate(merged) if c.source == SOURCE_REPORTED),
                len(merged),
            )
            merged.insert(first_reported, candidate)
        else:
            merged.append(candidate)
        added += 1

    logger.debug("Merged %d local candidates (%d duplicates skipped)", added, skipped)

    wanted = query.strip().lower()
    fallback_rank = max(config.source_priority.values(), default=0) + 1

    def _sort_key(c: PharmacyCandidate) -> tuple[int, int, float]:
        exact = 0 if wanted and c.name.strip().lower() == wanted else 1
        rank = config.source_priority.get(c.source, fallback_rank)
        dist = c.distance_miles if c.distance_miles is not None else math.inf
        return exact, rank, dist

    merged.sort(key=_sort_key)
    results = merged[: config.max_results]
    results.append(config.action_entry())
    return results


# ---------------------------------------------------------------------------
# Search service
# ---------------------------------------------------------------------------


class SourceMerger:
    """
    Fetches both candidate streams for a query and merges them.

    The local stream is cached per rounded origin; the authoritative
    stream goes through a circuit breaker.
    """

    def __init__(
        self,
        map_search: MapSearchProvider | None,
        local_entries: LocalEntryStore | None,
        *,
        cache: TTLCache | None = None,
        config: MergerConfig | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.config = config or MergerConfig()
        self.map_search = map_search
        self.local_entries = local_entries
        self.cache = cache if cache is not None else NullCache()
        self.breaker = breaker or CircuitBreaker(
            name="map_search",
            threshold=self.config.breaker_threshold,
            reset_timeout=self.config.breaker_reset_seconds,
        )

    def search(self, query: str | None, origin: LatLon) -> list[PharmacyCandidate]:
        """Return merged suggestions; never raises for upstream failure."""
        cleaned = sanitize_query(query, self.config.max_query_length).strip()
        if len(cleaned) < self.config.min_query_length:
            return [self.config.action_entry()]

        authoritative = self._fetch_authoritative(cleaned, origin)
        local = self._fetch_local(origin)

        results = merge_candidates(cleaned, origin, authoritative, local, config=self.config)
        logger.info(
            "Search returned %d suggestions (%d authoritative, %d local)",
            len(results) - 1, len(authoritative), len(local),
        )
        return results

    def _fetch_authoritative(self, query: str, origin: LatLon) -> list[PharmacyCandidate]:
        if self.map_search is None:
            return []
        return self.breaker.call(
            lambda: list(self.map_search.search(query, origin)),
            fallback=list,
        )

    def _fetch_local(self, origin: LatLon) -> list[LocalEntry]:
        if self.local_entries is None:
            return []

        key = coordinate_cache_key(
            "local", origin.latitude, origin.longitude, self.config.cache_precision
        )
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            entries = list(
                self.local_entries.query_local_entries(origin, self.config.local_radius_miles)
            )
        except Exception as e:
            logger.warning("Local entry lookup failed, continuing without it: %s", e)
            return []

        self.cache.set(key, entries)
        return entries

    def invalidate_local(self, origin: LatLon) -> None:
        """Drop the cached local stream around ``origin`` (after a new report)."""
        self.cache.invalidate(
            coordinate_cache_key(
                "local", origin.latitude, origin.longitude, self.config.cache_precision
            )
        )
