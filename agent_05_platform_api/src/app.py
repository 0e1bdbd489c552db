#!/usr/bin/env python3
"""
Buprenorphine Pharmacy Locator — API

Dual-mode FastAPI server:
  • Airtable mode — reads and appends reports in the Airtable table
  • JSON fallback — serves reports from JSON files when Airtable is not
    configured or unreachable (demo and local development)

Usage:
    uvicorn agent_05_platform_api.src.app:app --reload --port 8000
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import helpers, store
from .rate_limiter import rate_limit_middleware
from .routes import health, pharmacies, reports, search, submissions

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Buprenorphine Pharmacy Locator",
    version="1.0.0",
    description="Pharmacy search, access reports and aggregated availability",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.middleware("http")(rate_limit_middleware)

app.include_router(health.router)
app.include_router(pharmacies.router)
app.include_router(search.router)
app.include_router(reports.router)
app.include_router(submissions.router)

app.state.server_started_at = datetime.now(timezone.utc)


@app.on_event("startup")
async def startup():
    app.state.server_started_at = datetime.now(timezone.utc)
    report_store = store.init_store()
    if store.is_available():
        logger.info("Running in AIRTABLE mode")
    else:
        logger.info("Running in JSON FALLBACK mode (%d reports)", report_store.count())
    helpers.init_search()


@app.on_event("shutdown")
async def shutdown():
    store.close_store()
