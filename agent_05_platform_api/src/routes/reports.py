"""Dashboard summary and landing-page counter endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from agent_03_resolution.algorithms.report_summary import (
    previous_month_range,
    report_stats,
    summarize_reports,
)

from .. import helpers
from ..store import StoreError

logger = logging.getLogger(__name__)

router = APIRouter()

TIMEFRAMES = ("all", "past-month")


@router.get("/api/reports")
def dashboard_reports(
    timeframe: str = Query("all", description="'all' or 'past-month'"),
) -> dict[str, Any]:
    """Report totals by state, formulation and barrier for the dashboard."""
    if timeframe not in TIMEFRAMES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid timeframe. Must be one of: {', '.join(TIMEFRAMES)}",
        )

    report_store = helpers.get_report_store()
    start = end = None
    try:
        if timeframe == "past-month":
            start, end = previous_month_range(helpers.utcnow())
            reports = report_store.query_by_timeframe(start, end)
        else:
            reports = report_store.query_all()
    except StoreError as e:
        logger.warning("Dashboard report query failed: %s", e)
        raise HTTPException(status_code=502, detail="Report store unavailable")

    return {
        "timeframe": timeframe,
        "range": {"start": helpers.iso(start), "end": helpers.iso(end)},
        **summarize_reports(reports),
    }


@router.get("/api/stats")
def stats(
    zip_code: str | None = Query(None, description="Count reports for this ZIP code"),
) -> dict[str, int]:
    try:
        reports = helpers.get_report_store().query_all()
    except StoreError as e:
        logger.warning("Stats query failed: %s", e)
        raise HTTPException(status_code=502, detail="Report store unavailable")
    return report_stats(reports, helpers.utcnow(), zip_code)
