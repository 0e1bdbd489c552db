"""
Buprenorphine Pharmacy Locator — Report Store

Reports live in an Airtable table; this module is the only code that talks
to it.  Configuration comes from environment variables.

When Airtable is not configured or unreachable, the app falls back to
serving reports from JSON files (``BPL_DATA_DIR``, the bundled
sample-data by default).  The fallback accepts appends in memory so the
submission routes keep working in demo mode.

Records that lack the fields the aggregation core needs are skipped here,
with a warning, and never reach it.

Usage:
    from . import store

    store.init_store()
    reports = store.get_store().query_nearby(LatLon(39.83, -98.58), 50)
"""

from __future__ import annotations

import glob
import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

import requests

from agent_03_resolution.algorithms.geo_distance import (
    LatLon,
    bounding_box,
    coords_of,
    filter_within_radius,
)
from agent_03_resolution.algorithms.records import (
    SOURCE_MANUAL,
    SOURCE_REPORTED,
    LocalEntry,
    MalformedReportError,
    Report,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration (env vars with local-dev defaults)
# ---------------------------------------------------------------------------

ROOT = Path(__file__).resolve().parent.parent.parent

AIRTABLE_CONFIG = {
    "api_url": os.environ.get("BPL_AIRTABLE_URL", "https://api.airtable.com/v0"),
    "token": os.environ.get("BPL_AIRTABLE_TOKEN", ""),
    "base_id": os.environ.get("BPL_AIRTABLE_BASE_ID", ""),
    "table": os.environ.get("BPL_AIRTABLE_TABLE", "Reports"),
    "timeout": float(os.environ.get("BPL_AIRTABLE_TIMEOUT", "10")),
}

DATA_DIR = Path(os.environ.get("BPL_DATA_DIR", str(ROOT / "sample-data")))

PAGE_SIZE = 100

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class StoreError(RuntimeError):
    """Raised when the report store cannot be read or written."""


# ---------------------------------------------------------------------------
# Record conversion
# ---------------------------------------------------------------------------


def records_to_reports(records: Iterable[dict[str, Any]]) -> list[Report]:
    """Convert raw store records to Reports, skipping malformed ones."""
    reports: list[Report] = []
    skipped = 0
    for record in records:
        try:
            reports.append(Report.from_record(record))
        except MalformedReportError as e:
            skipped += 1
            logger.warning("Skipping malformed report record: %s", e)
    if skipped:
        logger.info("Skipped %d malformed record(s) out of %d", skipped, skipped + len(reports))
    return reports


def _join_address(record: dict[str, Any]) -> str:
    street = record.get("street_address") or ""
    city = record.get("city") or ""
    state = record.get("state") or ""
    zip_code = record.get("zip_code") or ""
    return f"{street}, {city}, {state} {zip_code}".lstrip(", ").strip()


def _submitted_at(record: dict[str, Any]) -> datetime:
    try:
        return parse_timestamp(record.get("submission_time"))
    except MalformedReportError:
        return _EPOCH


def records_to_local_entries(records: Iterable[dict[str, Any]]) -> list[LocalEntry]:
    """
    Collapse report records into one LocalEntry per pharmacy id.

    The most recent submission supplies the entry's details.  Manual entries
    count as approved only once ``live_manual_entry`` is set.
    """
    latest: dict[str, dict[str, Any]] = {}
    for record in records:
        pharmacy_id = record.get("pharmacy_id")
        if not pharmacy_id or coords_of(record) is None:
            continue
        current = latest.get(pharmacy_id)
        if current is None or _submitted_at(record) > _submitted_at(current):
            latest[pharmacy_id] = record

    entries: list[LocalEntry] = []
    for pharmacy_id, record in latest.items():
        is_manual = bool(record.get("manual_entry"))
        is_approved = bool(record.get("live_manual_entry")) if is_manual else True
        entries.append(
            LocalEntry(
                name=record.get("pharmacy_name") or "",
                full_address=_join_address(record),
                source_id=str(pharmacy_id),
                source=SOURCE_MANUAL if is_manual else SOURCE_REPORTED,
                phone_number=record.get("phone_number") or None,
                latitude=float(record["latitude"]),
                longitude=float(record["longitude"]),
                is_manual=is_manual,
                is_approved=is_approved,
                street_address=record.get("street_address") or "",
                city=record.get("city") or "",
                state=record.get("state") or "",
                zip_code=record.get("zip_code") or "",
            )
        )
    return entries


# ---------------------------------------------------------------------------
# Store interface
# ---------------------------------------------------------------------------


class ReportStore:
    """
    Shared query logic.  Subclasses supply ``_load_records`` (optionally
    narrowed by a bounding box) and ``_append_record``.
    """

    mode = "unknown"

    def _load_records(
        self, box: tuple[float, float, float, float] | None = None
    ) -> list[dict[str, Any]]:
        raise NotImplementedError

    def _append_record(self, record: dict[str, Any]) -> None:
        raise NotImplementedError

    def query_all(self) -> list[Report]:
        return records_to_reports(self._load_records())

    def query_nearby(self, origin: LatLon, radius_miles: float) -> list[Report]:
        """All reports within ``radius_miles`` of the origin, nearest first."""
        records = self._load_records(bounding_box(origin, radius_miles))
        return filter_within_radius(origin, records_to_reports(records), radius_miles)

    def query_by_timeframe(self, start: datetime, end: datetime) -> list[Report]:
        """Reports submitted in [start, end)."""
        return [r for r in self.query_all() if start <= r.submission_time < end]

    def query_local_entries(self, origin: LatLon, radius_miles: float) -> list[LocalEntry]:
        records = self._load_records(bounding_box(origin, radius_miles))
        entries = records_to_local_entries(records)
        return filter_within_radius(origin, entries, radius_miles)

    def append(
        self,
        report: Report,
        *,
        manual_entry: bool = False,
        live_manual_entry: bool = False,
    ) -> dict[str, Any]:
        """Persist a new report.  Reports are never updated in place."""
        record = report.to_record()
        record["manual_entry"] = manual_entry
        record["live_manual_entry"] = live_manual_entry
        self._append_record(record)
        logger.info(
            "Stored %s report for pharmacy %s%s",
            report.report_type,
            report.pharmacy_id,
            " (manual entry, pending review)" if manual_entry and not live_manual_entry else "",
        )
        return record

    def count(self) -> int:
        return len(self._load_records())

    def health_count(self) -> int | None:
        """Report count for the health check; None where counting means a full table read."""
        return self.count()

    def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# JSON fallback
# ---------------------------------------------------------------------------


class JsonReportStore(ReportStore):
    """In-memory reports loaded from ``*.json`` files in a directory."""

    mode = "json_fallback"

    def __init__(self, records: Iterable[dict[str, Any]] = ()):
        self._lock = threading.Lock()
        self._records: list[dict[str, Any]] = [dict(r) for r in records]

    @classmethod
    def from_directory(cls, data_dir: str | Path = DATA_DIR) -> "JsonReportStore":
        records: list[dict[str, Any]] = []
        for fpath in sorted(glob.glob(str(Path(data_dir) / "*reports*.json"))):
            with open(fpath, "r", encoding="utf-8") as f:
                batch = json.load(f)
            if isinstance(batch, list):
                records.extend(batch)
            logger.info("Loaded %d records from %s",
                        len(batch) if isinstance(batch, list) else 0, fpath)
        logger.info("Total JSON report records loaded: %d", len(records))
        return cls(records)

    def _load_records(
        self, box: tuple[float, float, float, float] | None = None
    ) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._records]

    def _append_record(self, record: dict[str, Any]) -> None:
        with self._lock:
            self._records.append(dict(record))


# ---------------------------------------------------------------------------
# Airtable
# ---------------------------------------------------------------------------


class AirtableReportStore(ReportStore):
    """Reports table in Airtable, read with filter formulas and paginated."""

    mode = "airtable"

    def __init__(self, config: dict[str, Any] | None = None,
                 session: requests.Session | None = None):
        self.config = dict(config or AIRTABLE_CONFIG)
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {self.config['token']}",
            "Content-Type": "application/json",
        })

    @property
    def table_url(self) -> str:
        return f"{self.config['api_url']}/{self.config['base_id']}/{self.config['table']}"

    @staticmethod
    def box_formula(box: tuple[float, float, float, float]) -> str:
        min_lat, max_lat, min_lon, max_lon = box
        return (
            "AND("
            "NOT({latitude} = ''), NOT({longitude} = ''), "
            f"{{latitude}} >= {min_lat:.6f}, {{latitude}} <= {max_lat:.6f}, "
            f"{{longitude}} >= {min_lon:.6f}, {{longitude}} <= {max_lon:.6f}"
            ")"
        )

    def _load_records(
        self, box: tuple[float, float, float, float] | None = None
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"pageSize": PAGE_SIZE}
        if box is not None:
            params["filterByFormula"] = self.box_formula(box)

        records: list[dict[str, Any]] = []
        while True:
            try:
                resp = self.session.get(self.table_url, params=params,
                                        timeout=self.config["timeout"])
                resp.raise_for_status()
                data = resp.json()
            except (requests.exceptions.RequestException, ValueError) as e:
                raise StoreError(f"Airtable read failed: {e}") from e

            records.extend(r.get("fields", {}) for r in data.get("records", []))
            offset = data.get("offset")
            if not offset:
                break
            params["offset"] = offset

        logger.debug("Airtable returned %d records", len(records))
        return records

    def _append_record(self, record: dict[str, Any]) -> None:
        fields = {k: v for k, v in record.items() if v not in (None, "", [])}
        try:
            resp = self.session.post(
                self.table_url,
                json={"records": [{"fields": fields}], "typecast": True},
                timeout=self.config["timeout"],
            )
            resp.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise StoreError(f"Airtable write failed: {e}") from e

    def ping(self) -> int:
        """Fetch one page to confirm credentials; returns the page's record count."""
        try:
            resp = self.session.get(self.table_url, params={"pageSize": 1},
                                    timeout=self.config["timeout"])
            resp.raise_for_status()
            return len(resp.json().get("records", []))
        except (requests.exceptions.RequestException, ValueError) as e:
            raise StoreError(f"Airtable unreachable: {e}") from e

    def health_count(self) -> int | None:
        self.ping()
        return None

    def close(self) -> None:
        self.session.close()


# ---------------------------------------------------------------------------
# Store lifecycle
# ---------------------------------------------------------------------------

_store: ReportStore | None = None


def init_store(data_dir: str | Path | None = None) -> ReportStore:
    """
    Choose the report store.

    Airtable when a token and base id are configured and the table answers;
    otherwise the JSON fallback.  Never raises for an unreachable Airtable.
    """
    global _store  # noqa: PLW0603

    if AIRTABLE_CONFIG["token"] and AIRTABLE_CONFIG["base_id"]:
        candidate = AirtableReportStore(AIRTABLE_CONFIG)
        try:
            candidate.ping()
            logger.info("Airtable store initialized (base %s, table %s)",
                        AIRTABLE_CONFIG["base_id"], AIRTABLE_CONFIG["table"])
            _store = candidate
            return _store
        except StoreError as e:
            logger.warning("Airtable unavailable, falling back to JSON: %s", e)
            candidate.close()

    _store = JsonReportStore.from_directory(data_dir or DATA_DIR)
    return _store


def get_store() -> ReportStore:
    if _store is None:
        raise StoreError("Report store not initialized")
    return _store


def set_store(store: ReportStore | None) -> None:
    """Install a store directly (tests, scripts)."""
    global _store  # noqa: PLW0603
    _store = store


def close_store() -> None:
    """Release the store. Called at app shutdown."""
    global _store  # noqa: PLW0603
    if _store is not None:
        _store.close()
        _store = None
        logger.info("Report store closed.")


def is_available() -> bool:
    """True when the live Airtable store is active (not the JSON fallback)."""
    return isinstance(_store, AirtableReportStore)
