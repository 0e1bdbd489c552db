"""Hybrid pharmacy search for the report form."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from .. import helpers

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/pharmacy-search-hybrid")
def pharmacy_search_hybrid(
    query: str | None = Query(None, description="Pharmacy name or address fragment"),
    lat: str | None = Query(None, description="Latitude"),
    lon: str | None = Query(None, description="Longitude"),
) -> dict[str, Any]:
    """
    Merged suggestions from the map provider and the report store.

    Always 200; the last suggestion is the "add a pharmacy not listed" entry.
    """
    merger = helpers.get_merger()

    try:
        origin = helpers.parse_origin(lat, lon)
    except HTTPException:
        return {"suggestions": [merger.config.action_entry().to_dict()], "count": 0}

    suggestions = merger.search(query, origin)
    return {
        "suggestions": [s.to_dict() for s in suggestions],
        "count": len(suggestions) - 1,
    }
