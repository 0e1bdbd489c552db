"""Tests for report submission and manual pharmacy entry."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from agent_05_platform_api.src.providers import SearchProviderError
from agent_05_platform_api.src.store import StoreError


@pytest.fixture()
def report_body():
    return {
        "pharmacy_id": "osm_node_2002",
        "pharmacy_name": "Cedar Pharmacy",
        "report_type": "success",
        "latitude": 39.8283,
        "longitude": -98.5795,
        "street_address": "40 Cedar Street",
        "city": "Smith Center",
        "state": "KS",
        "zip_code": "66952",
        "standardized_notes": ["Helpful staff"],
        "formulations": ["Suboxone (film)"],
        "notes": "Filled same day",
    }


@pytest.fixture()
def manual_body():
    return {
        "pharmacy_name": "Cedar Street Drug",
        "street_address": "40 Cedar Street",
        "city": "Smith Center",
        "state": "KS",
        "zip_code": "66952",
        "report_type": "denial",
        "standardized_notes": ["Won't accept cash"],
    }


# ---------------------------------------------------------------------------
# POST /api/submit-report
# ---------------------------------------------------------------------------


class TestSubmitReport:
    def test_created(self, client, report_body, report_store):
        resp = client.post("/api/submit-report", json=report_body)
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "ok"
        assert data["report"]["pharmacy_id"] == "osm_node_2002"
        assert data["report"]["submission_time"] == "2026-10-14T12:00:00+00:00"
        assert data["report"]["notes"] == "Filled same day"
        assert data["report"]["manual_entry"] is False
        assert report_store.count() == 7

    def test_explicit_submission_time(self, client, report_body):
        report_body["submission_time"] = "2026-10-01T08:00:00Z"
        data = client.post("/api/submit-report", json=report_body).json()
        assert data["report"]["submission_time"] == "2026-10-01T08:00:00+00:00"

    def test_report_counts_toward_aggregate(self, client, origin, report_body):
        report_body.update(pharmacy_id="demo_walgreens_001", pharmacy_name="Walgreens #5678",
                           latitude=39.8183, longitude=-98.5895)
        client.post("/api/submit-report", json=report_body)
        rows = client.get("/api/pharmacies/aggregated", params=origin).json()["data"]
        walgreens = next(r for r in rows if r["id"] == "demo_walgreens_001")
        assert walgreens["successCount"] == 1
        assert walgreens["standardizedNotes"][0].startswith("Back in stock")

    def test_new_report_visible_in_search(self, client, origin, report_body):
        params = {**origin, "query": "cedar"}
        before = client.get("/api/pharmacy-search-hybrid", params=params).json()
        assert before["count"] == 0

        client.post("/api/submit-report", json=report_body)

        after = client.get("/api/pharmacy-search-hybrid", params=params).json()
        assert [s["source_id"] for s in after["suggestions"]] == ["osm_node_2002", "manual_entry"]

    @pytest.mark.parametrize("change", [
        {"report_type": "maybe"},
        {"latitude": 100},
        {"longitude": -200},
        {"pharmacy_id": ""},
        {"standardized_notes": ["Not a real option"]},
        {"formulations": ["Aspirin"]},
    ])
    def test_invalid_body(self, client, report_body, change):
        report_body.update(change)
        assert client.post("/api/submit-report", json=report_body).status_code == 422

    def test_missing_field(self, client, report_body):
        del report_body["pharmacy_name"]
        assert client.post("/api/submit-report", json=report_body).status_code == 422

    def test_store_failure(self, client, report_body, report_store):
        with patch.object(report_store, "append", side_effect=StoreError("down")):
            resp = client.post("/api/submit-report", json=report_body)
        assert resp.status_code == 502


# ---------------------------------------------------------------------------
# POST /api/manual-pharmacy
# ---------------------------------------------------------------------------


class TestManualPharmacy:
    def test_pending_review(self, client, manual_body, geocoder):
        resp = client.post("/api/manual-pharmacy", json=manual_body)
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "pending_review"
        assert data["pharmacy_id"].startswith("manual_")
        assert len(data["pharmacy_id"]) == len("manual_") + 12
        assert data["normalized_address"] == "40 Cedar Street, Smith Center, Kansas, 66952"
        geocoder.validate.assert_called_once_with("40 Cedar Street, Smith Center, KS 66952")

    def test_stored_as_unapproved_manual_entry(self, client, manual_body, report_store):
        pharmacy_id = client.post("/api/manual-pharmacy", json=manual_body).json()["pharmacy_id"]
        record = next(r for r in report_store._load_records() if r["pharmacy_id"] == pharmacy_id)
        assert record["manual_entry"] is True
        assert record["live_manual_entry"] is False
        assert record["report_type"] == "denial"
        assert record["latitude"] == 39.84

    def test_hidden_from_search_until_approved(self, client, origin, manual_body):
        client.post("/api/manual-pharmacy", json=manual_body)
        data = client.get(
            "/api/pharmacy-search-hybrid", params={**origin, "query": "cedar"}
        ).json()
        assert data["count"] == 0

    def test_unverified_address(self, client, manual_body, geocoder, report_store):
        geocoder.validate.return_value = {
            "valid": False, "coordinates": None, "normalized_address": None,
        }
        resp = client.post("/api/manual-pharmacy", json=manual_body)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Address could not be verified"
        assert report_store.count() == 6

    def test_geocoder_unavailable(self, client, manual_body, geocoder):
        geocoder.validate.side_effect = SearchProviderError("timeout")
        assert client.post("/api/manual-pharmacy", json=manual_body).status_code == 502

    @pytest.mark.parametrize("change", [
        {"zip_code": "123"},
        {"state": "K"},
        {"pharmacy_name": "X"},
        {"report_type": "unknown"},
    ])
    def test_invalid_body(self, client, manual_body, change):
        manual_body.update(change)
        assert client.post("/api/manual-pharmacy", json=manual_body).status_code == 422
