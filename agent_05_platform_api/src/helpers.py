"""Shared helpers and search-service state for the Buprenorphine Pharmacy Locator API."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from fastapi import HTTPException

from agent_03_resolution.algorithms.geo_distance import LatLon
from agent_03_resolution.search.cache import MemoryTTLCache
from agent_03_resolution.search.source_merger import (
    DEFAULT_RULES_PATH,
    MergerConfig,
    SourceMerger,
)

from . import store
from .providers import NominatimAddressGeocoder, NominatimSearchProvider

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Path constants
# ---------------------------------------------------------------------------

ROOT = Path(__file__).resolve().parent.parent.parent
MERGE_RULES_PATH = Path(os.environ.get("BPL_MERGE_RULES", str(DEFAULT_RULES_PATH)))

# ---------------------------------------------------------------------------
# Search service state (populated by init_search)
# ---------------------------------------------------------------------------

_MERGER: SourceMerger | None = None
_GEOCODER: NominatimAddressGeocoder | None = None


def init_search(rules_path: str | Path | None = None) -> SourceMerger:
    """Build the SourceMerger over Nominatim and the active report store."""
    global _MERGER, _GEOCODER  # noqa: PLW0603

    path = Path(rules_path or MERGE_RULES_PATH)
    if path.exists():
        config = MergerConfig.from_yaml(path)
        logger.info("Loaded merge rules from %s", path)
    else:
        logger.warning("Merge rules not found at %s, using defaults", path)
        config = MergerConfig()

    _MERGER = SourceMerger(
        NominatimSearchProvider(),
        store.get_store(),
        cache=MemoryTTLCache(config.cache_ttl_seconds, config.cache_max_entries),
        config=config,
    )
    _GEOCODER = NominatimAddressGeocoder()
    return _MERGER


def get_merger() -> SourceMerger:
    if _MERGER is None:
        raise HTTPException(status_code=503, detail="Search service not initialized")
    return _MERGER


def current_merger() -> SourceMerger | None:
    """The search service if initialized; never raises."""
    return _MERGER


def get_geocoder() -> NominatimAddressGeocoder:
    if _GEOCODER is None:
        raise HTTPException(status_code=503, detail="Geocoder not initialized")
    return _GEOCODER


def invalidate_search_cache(origin: LatLon) -> None:
    """Forget cached local entries near a new report so it shows up in search."""
    if _MERGER is not None:
        _MERGER.invalidate_local(origin)


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def parse_origin(lat: str | None, lon: str | None) -> LatLon:
    """Validate query coordinates; 400 when missing, non-numeric or off the globe."""
    if not lat or not lon:
        raise HTTPException(status_code=400, detail="lat and lon are required")
    try:
        origin = LatLon(float(lat), float(lon))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid coordinates")
    if not origin.is_valid():
        raise HTTPException(status_code=400, detail="Invalid coordinates")
    return origin


def get_report_store() -> store.ReportStore:
    try:
        return store.get_store()
    except store.StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso(dt) -> str | None:
    """Convert a datetime to ISO string."""
    if dt is None:
        return None
    if isinstance(dt, datetime):
        return dt.isoformat()
    return str(dt)
