"""Health check endpoint."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from .. import helpers, store

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/health")
def health(request: Request):
    """Health check: store mode, report count, version and uptime. Always open.

    In Airtable mode the store is checked with a one-record read and
    ``report_count`` is null; the JSON fallback reports its full count.
    """
    mode = "airtable" if store.is_available() else "json_fallback"
    count: int | None = None
    store_ok = False

    try:
        count = helpers.get_report_store().health_count()
        store_ok = True
    except Exception as e:
        logger.warning("Health check could not count reports: %s", e)

    server_started_at = request.app.state.server_started_at
    uptime_seconds = round((datetime.now(timezone.utc) - server_started_at).total_seconds())

    merger = helpers.current_merger()
    return {
        "status": "healthy" if store_ok and mode == "airtable" else "degraded",
        "mode": mode,
        "report_count": count,
        "version": request.app.version,
        "started_at": helpers.iso(server_started_at),
        "uptime_seconds": uptime_seconds,
        "checks": {
            "store": {"status": "up" if store_ok else "down"},
            "search": {
                "status": "up" if merger is not None else "down",
                "circuit": merger.breaker.state if merger is not None else None,
                "cache_entries": len(merger.cache) if merger is not None else 0,
            },
        },
    }
