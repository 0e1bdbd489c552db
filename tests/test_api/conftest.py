"""Shared fixtures for the API test suite.

All tests run against the JSON fallback store seeded with SAMPLE_REPORTS.
The map search provider and the address geocoder are replaced by fakes, and
helpers.utcnow() is pinned to the shared NOW so ages and windows are stable.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from starlette.testclient import TestClient

from agent_03_resolution.algorithms.geo_distance import LatLon
from agent_03_resolution.algorithms.records import PharmacyCandidate
from agent_03_resolution.search.cache import MemoryTTLCache
from agent_03_resolution.search.source_merger import MergerConfig, SourceMerger
from agent_05_platform_api.src.store import JsonReportStore

# ---------------------------------------------------------------------------
# Sample report records (mirrors the store record shape)
# ---------------------------------------------------------------------------

SAMPLE_REPORTS: list[dict] = [
    {
        "pharmacy_id": "demo_cvs_001",
        "pharmacy_name": "CVS Pharmacy #1234",
        "report_type": "success",
        "submission_time": "2026-10-10T09:45:00Z",
        "latitude": 39.8383,
        "longitude": -98.5695,
        "street_address": "123 Main Street",
        "city": "Smith Center",
        "state": "KS",
        "zip_code": "66952",
        "phone_number": "+1 785-555-0100",
        "standardized_notes": ["Best to call ahead"],
        "formulation": ["Suboxone (film)"],
    },
    {
        "pharmacy_id": "demo_cvs_001",
        "pharmacy_name": "CVS Pharmacy #1234",
        "report_type": "denial",
        "submission_time": "2026-09-15T10:00:00Z",
        "latitude": 39.8383,
        "longitude": -98.5695,
        "street_address": "123 Main Street",
        "city": "Smith Center",
        "state": "KS",
        "zip_code": "66952",
        "standardized_notes": ["Long wait times"],
        "formulation": ["Suboxone (film)"],
    },
    {
        "pharmacy_id": "demo_walgreens_001",
        "pharmacy_name": "Walgreens #5678",
        "report_type": "denial",
        "submission_time": "2026-10-07T18:10:00Z",
        "latitude": 39.8183,
        "longitude": -98.5895,
        "street_address": "456 Oak Avenue",
        "city": "Smith Center",
        "state": "KS",
        "zip_code": "66952",
        "standardized_notes": [
            "Will order, but not in stock",
            "Only fills for existing patients",
        ],
        "formulation": ["Zubsolv (tablet)"],
    },
    {
        "pharmacy_id": "demo_community_001",
        "pharmacy_name": "Community Pharmacy",
        "report_type": "success",
        "submission_time": "2026-10-11T12:00:00Z",
        "latitude": 39.8283,
        "longitude": -98.5595,
        "street_address": "789 Elm Street",
        "city": "Smith Center",
        "state": "KS",
        "zip_code": "66953",
        "standardized_notes": ["Helpful staff"],
        "manual_entry": True,
        "live_manual_entry": True,
    },
    {
        "pharmacy_id": "demo_manual_002",
        "pharmacy_name": "Prairie Drug",
        "report_type": "success",
        "submission_time": "2026-10-13T08:00:00Z",
        "latitude": 39.8350,
        "longitude": -98.5750,
        "street_address": "12 Prairie Road",
        "city": "Smith Center",
        "state": "KS",
        "zip_code": "66953",
        "manual_entry": True,
        "live_manual_entry": False,
    },
    {
        "pharmacy_id": "denver_001",
        "pharmacy_name": "King Soopers Pharmacy",
        "report_type": "success",
        "submission_time": "2026-09-20T15:00:00Z",
        "latitude": 39.7392,
        "longitude": -104.9903,
        "street_address": "1155 E 9th Ave",
        "city": "Denver",
        "state": "CO",
        "zip_code": "80202",
    },
]

DEMO_ORIGIN = {"lat": "39.8283", "lon": "-98.5795"}


@pytest.fixture()
def origin():
    """Query params for the demo origin (geographic centre of the contiguous US)."""
    return dict(DEMO_ORIGIN)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeMapSearch:
    """Stands in for NominatimSearchProvider; canned candidates matched on any query term."""

    def __init__(self, results=(), error: Exception | None = None):
        self.results = list(results)
        self.error = error
        self.calls: list[tuple[str, LatLon]] = []

    def search(self, query, origin):
        self.calls.append((query, origin))
        if self.error is not None:
            raise self.error
        terms = query.lower().split()
        return [r for r in self.results if any(t in r.name.lower() for t in terms)]


def _noop_rate_limit(client_key, limit):
    """Always allow; disables rate limiting in tests."""
    return True, limit, limit - 1, 60


# ---------------------------------------------------------------------------
# App fixture: seeds the JSON fallback store and the search service
# ---------------------------------------------------------------------------


@pytest.fixture()
def report_store():
    return JsonReportStore(SAMPLE_REPORTS)


@pytest.fixture()
def map_search():
    return FakeMapSearch([
        PharmacyCandidate(
            name="CVS Pharmacy",
            full_address="123 Main St, Smith Center, Kansas, 66952",
            source_id="osm_node_1001",
            latitude=39.8383,
            longitude=-98.5695,
        ),
    ])


@pytest.fixture()
def geocoder():
    fake = MagicMock()
    fake.validate.return_value = {
        "valid": True,
        "coordinates": LatLon(39.8400, -98.5800),
        "normalized_address": "40 Cedar Street, Smith Center, Kansas, 66952",
    }
    return fake


@pytest.fixture()
def app(report_store, map_search, geocoder, now):
    """FastAPI app in JSON fallback mode with fake upstreams."""
    with (
        patch("agent_05_platform_api.src.rate_limiter.check_rate_limit", side_effect=_noop_rate_limit),
        patch("agent_05_platform_api.src.helpers.utcnow", return_value=now),
    ):
        from agent_05_platform_api.src.app import app as _app
        from agent_05_platform_api.src import helpers, store

        store.set_store(report_store)
        helpers._MERGER = SourceMerger(
            map_search, report_store, cache=MemoryTTLCache(), config=MergerConfig()
        )
        helpers._GEOCODER = geocoder

        # Set server_started_at on app.state (normally done in startup event)
        _app.state.server_started_at = datetime(2026, 10, 14, 0, 0, 0, tzinfo=timezone.utc)

        yield _app

        # Cleanup
        store.set_store(None)
        helpers._MERGER = None
        helpers._GEOCODER = None


@pytest.fixture()
def client(app):
    return TestClient(app, raise_server_exceptions=False)
