"""Pharmacy read endpoints (raw nearby reports, aggregated map view)."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from agent_03_resolution.algorithms.geo_distance import (
    DISPLAY_RADIUS_MILES,
    REPORT_POOL_RADIUS_MILES,
    LatLon,
    distance_miles,
    rank_by_distance,
)
from agent_03_resolution.algorithms.records import AggregatedPharmacy
from agent_03_resolution.algorithms.report_aggregator import aggregate

from .. import helpers
from ..store import StoreError

logger = logging.getLogger(__name__)

router = APIRouter()


def _pharmacy_coords(pharmacy: AggregatedPharmacy) -> LatLon | None:
    lat, lon = pharmacy.coords
    if lat is None or lon is None:
        return None
    return LatLon(lat, lon)


@router.get("/api/pharmacies")
def nearby_reports(
    lat: str | None = Query(None, description="Latitude"),
    lon: str | None = Query(None, description="Longitude"),
) -> dict[str, Any]:
    """Raw reports within the report-pool radius, nearest first."""
    origin = helpers.parse_origin(lat, lon)

    try:
        reports = helpers.get_report_store().query_nearby(origin, REPORT_POOL_RADIUS_MILES)
    except StoreError as e:
        logger.warning("Nearby report query failed: %s", e)
        raise HTTPException(status_code=502, detail="Report store unavailable")

    data = []
    for report in reports:
        row = report.to_record()
        row["distance_miles"] = round(
            distance_miles(origin, LatLon(report.latitude, report.longitude)), 2
        )
        data.append(row)

    return {
        "meta": {"total": len(data), "radius_miles": REPORT_POOL_RADIUS_MILES},
        "data": data,
    }


@router.get("/api/pharmacies/aggregated")
def aggregated_pharmacies(
    lat: str | None = Query(None, description="Latitude"),
    lon: str | None = Query(None, description="Longitude"),
    days: int | None = Query(None, ge=1, le=3650, description="Only reports from the last N days"),
) -> dict[str, Any]:
    """One entry per pharmacy within the display radius, rolled up from its reports."""
    origin = helpers.parse_origin(lat, lon)
    now = helpers.utcnow()

    try:
        reports = helpers.get_report_store().query_nearby(origin, DISPLAY_RADIUS_MILES)
    except StoreError as e:
        logger.warning("Aggregated report query failed: %s", e)
        raise HTTPException(status_code=502, detail="Report store unavailable")

    if days is not None:
        cutoff = now - timedelta(days=days)
        reports = [r for r in reports if r.submission_time > cutoff]

    pharmacies = rank_by_distance(
        origin, aggregate(reports, now).values(), coords=_pharmacy_coords
    )

    data = []
    for pharmacy in pharmacies:
        row = pharmacy.to_dict()
        point = _pharmacy_coords(pharmacy)
        row["distanceMiles"] = round(distance_miles(origin, point), 2) if point else None
        data.append(row)

    return {
        "meta": {
            "total": len(data),
            "report_count": len(reports),
            "radius_miles": DISPLAY_RADIUS_MILES,
            "generated_at": helpers.iso(now),
        },
        "data": data,
    }
