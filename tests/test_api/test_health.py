"""Tests for the health check endpoint."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import requests

from agent_05_platform_api.src import store
from agent_05_platform_api.src.store import AirtableReportStore, StoreError


def _airtable_store():
    session = MagicMock()
    page = MagicMock()
    page.json.return_value = {"records": [{"fields": {"pharmacy_id": "demo_cvs_001"}}]}
    page.raise_for_status.return_value = None
    session.get.return_value = page
    config = {
        "api_url": "https://airtable.test/v0",
        "token": "key123",
        "base_id": "app123",
        "table": "Reports",
        "timeout": 5,
    }
    return AirtableReportStore(config, session=session), session


class TestHealth:
    def test_health_returns_200(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200

    def test_json_fallback_is_degraded(self, client):
        data = client.get("/api/health").json()
        assert data["status"] == "degraded"
        assert data["mode"] == "json_fallback"
        assert data["report_count"] == 6
        assert data["version"] == "1.0.0"

    def test_started_at_and_uptime(self, client):
        data = client.get("/api/health").json()
        assert data["started_at"] == "2026-10-14T00:00:00+00:00"
        assert isinstance(data["uptime_seconds"], int)

    def test_checks(self, client):
        checks = client.get("/api/health").json()["checks"]
        assert checks["store"] == {"status": "up"}
        assert checks["search"]["status"] == "up"
        assert checks["search"]["circuit"] == "closed"
        assert checks["search"]["cache_entries"] == 0

    def test_search_not_initialized(self, client):
        from agent_05_platform_api.src import helpers

        helpers._MERGER = None
        assert helpers.current_merger() is None
        checks = client.get("/api/health").json()["checks"]
        assert checks["search"] == {"status": "down", "circuit": None, "cache_entries": 0}

    def test_store_failure_still_answers(self, client, report_store):
        with patch.object(report_store, "health_count", side_effect=StoreError("down")):
            resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["report_count"] is None
        assert resp.json()["checks"]["store"]["status"] == "down"


class TestHealthAirtable:
    def test_single_page_read(self, client):
        airtable, session = _airtable_store()
        store.set_store(airtable)
        with patch.object(AirtableReportStore, "_load_records") as load_records:
            data = client.get("/api/health").json()
        load_records.assert_not_called()
        session.get.assert_called_once()
        assert session.get.call_args.kwargs["params"] == {"pageSize": 1}
        assert data["status"] == "healthy"
        assert data["mode"] == "airtable"
        assert data["report_count"] is None

    def test_repeated_checks_never_page_the_table(self, client):
        airtable, session = _airtable_store()
        store.set_store(airtable)
        for _ in range(5):
            client.get("/api/health")
        assert session.get.call_count == 5
        assert all("offset" not in c.kwargs["params"] for c in session.get.call_args_list)

    def test_unreachable_airtable_is_degraded(self, client):
        airtable, session = _airtable_store()
        session.get.side_effect = requests.exceptions.ConnectionError("down")
        store.set_store(airtable)
        data = client.get("/api/health").json()
        assert data["status"] == "degraded"
        assert data["checks"]["store"]["status"] == "down"
