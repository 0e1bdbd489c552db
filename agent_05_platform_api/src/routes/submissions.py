"""Report submission and manual pharmacy entry endpoints."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, HTTPException

from agent_03_resolution.algorithms.geo_distance import LatLon
from agent_03_resolution.algorithms.records import Report, parse_timestamp

from .. import helpers
from ..models import ManualPharmacySubmission, ReportSubmission
from ..providers import SearchProviderError
from ..store import StoreError

logger = logging.getLogger(__name__)

router = APIRouter()


def _append(report: Report, **flags: bool) -> dict[str, Any]:
    try:
        record = helpers.get_report_store().append(report, **flags)
    except StoreError as e:
        logger.warning("Report append failed for %s: %s", report.pharmacy_id, e)
        raise HTTPException(status_code=502, detail="Report store unavailable")
    if report.latitude is not None and report.longitude is not None:
        helpers.invalidate_search_cache(LatLon(report.latitude, report.longitude))
    return record


@router.post("/api/submit-report", status_code=201)
def submit_report(body: ReportSubmission) -> dict[str, Any]:
    """Store one anonymous access report."""
    submitted_at = (
        parse_timestamp(body.submission_time) if body.submission_time else helpers.utcnow()
    )
    report = Report(
        pharmacy_id=body.pharmacy_id,
        pharmacy_name=body.pharmacy_name,
        report_type=body.report_type,
        submission_time=submitted_at,
        latitude=body.latitude,
        longitude=body.longitude,
        street_address=body.street_address,
        city=body.city,
        state=body.state,
        zip_code=body.zip_code,
        phone_number=body.phone_number,
        standardized_notes=tuple(body.standardized_notes),
        free_text_notes=body.notes,
        formulations=tuple(body.formulations),
    )
    record = _append(report)
    return {"status": "ok", "report": record}


@router.post("/api/manual-pharmacy", status_code=201)
def submit_manual_pharmacy(body: ManualPharmacySubmission) -> dict[str, Any]:
    """
    Add a pharmacy the search could not find.

    The address must geocode; the entry stays out of search results until
    a reviewer marks it live.
    """
    try:
        result = helpers.get_geocoder().validate(body.full_address)
    except SearchProviderError as e:
        logger.warning("Address validation unavailable: %s", e)
        raise HTTPException(status_code=502, detail="Address validation unavailable")

    if not result["valid"]:
        raise HTTPException(status_code=400, detail="Address could not be verified")

    coords: LatLon = result["coordinates"]
    pharmacy_id = f"manual_{uuid.uuid4().hex[:12]}"
    report = Report(
        pharmacy_id=pharmacy_id,
        pharmacy_name=body.pharmacy_name.strip(),
        report_type=body.report_type,
        submission_time=helpers.utcnow(),
        latitude=coords.latitude,
        longitude=coords.longitude,
        street_address=body.street_address.strip(),
        city=body.city.strip(),
        state=body.state.strip(),
        zip_code=body.zip_code.strip(),
        phone_number=body.phone_number,
        standardized_notes=tuple(body.standardized_notes),
        free_text_notes=body.notes,
        formulations=tuple(body.formulations),
    )
    _append(report, manual_entry=True, live_manual_entry=False)

    return {
        "status": "pending_review",
        "pharmacy_id": pharmacy_id,
        "normalized_address": result["normalized_address"],
    }
