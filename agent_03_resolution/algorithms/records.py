#!/usr/bin/env python3
"""
Buprenorphine Pharmacy Locator — Core Records

Plain dataclasses shared by the matching, merging and aggregation modules:

    PharmacyCandidate  — one search result from one source, pre-resolution
    LocalEntry         — a candidate from the project's own store, with review flags
    Report             — one immutable, anonymous access report
    AggregatedPharmacy — the derived per-pharmacy view rebuilt from reports

Reports enter the core only through ``Report.from_record``, which rejects
records missing the fields aggregation depends on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Mapping


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

SourceKind = Literal["authoritative", "manual", "reported", "action"]
ReportType = Literal["success", "denial"]
Trend = Literal["up", "down", "neutral"]

SOURCE_AUTHORITATIVE = "authoritative"
SOURCE_MANUAL = "manual"
SOURCE_REPORTED = "reported"
SOURCE_ACTION = "action"

REPORT_SUCCESS = "success"
REPORT_DENIAL = "denial"
REPORT_TYPES = (REPORT_SUCCESS, REPORT_DENIAL)

TREND_UP = "up"
TREND_DOWN = "down"
TREND_NEUTRAL = "neutral"


class MalformedReportError(ValueError):
    """Raised when a report lacks a field the aggregation core depends on."""


# ---------------------------------------------------------------------------
# Timestamp parsing
# ---------------------------------------------------------------------------


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 timestamp into a timezone-aware UTC datetime.

    Accepts datetime instances and strings (a trailing ``Z`` is allowed).
    Naive values are treated as UTC.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as e:
            raise MalformedReportError(f"Invalid timestamp: {value!r}") from e
    else:
        raise MalformedReportError(f"Invalid timestamp: {value!r}")

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _as_tuple(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def _as_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Search candidates
# ---------------------------------------------------------------------------


@dataclass
class PharmacyCandidate:
    """
    A pharmacy suggestion from a single search source.

    ``source_id`` is only unique within its source; cross-source identity
    is decided by ``location_match.is_same_location``.
    """

    name: str
    full_address: str
    source_id: str
    source: SourceKind = SOURCE_AUTHORITATIVE
    distance_miles: float | None = None
    phone_number: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "full_address": self.full_address,
            "source_id": self.source_id,
            "source": self.source,
            "distance_miles": (
                round(self.distance_miles, 2) if self.distance_miles is not None else None
            ),
            "phone_number": self.phone_number,
        }


@dataclass
class LocalEntry(PharmacyCandidate):
    """A previously reported or manually entered pharmacy from the report store."""

    is_manual: bool = False
    is_approved: bool = True
    street_address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""

    @property
    def is_pending_review(self) -> bool:
        """Manual entries stay hidden until a reviewer approves them."""
        return self.is_manual and not self.is_approved


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Report:
    """One anonymous access report. Never edited; corrections arrive as new reports."""

    pharmacy_id: str
    pharmacy_name: str
    report_type: ReportType
    submission_time: datetime
    latitude: float | None = None
    longitude: float | None = None
    street_address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    phone_number: str | None = None
    standardized_notes: tuple[str, ...] = ()
    free_text_notes: str | None = None
    formulations: tuple[str, ...] = ()

    @property
    def full_address(self) -> str:
        return f"{self.street_address}, {self.city}, {self.state} {self.zip_code}"

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Report":
        """
        Build a Report from a store record (snake_case store field names).

        Raises MalformedReportError when pharmacy_id, report_type or
        submission_time is missing or invalid.
        """
        pharmacy_id = record.get("pharmacy_id")
        if not pharmacy_id:
            raise MalformedReportError("Report is missing pharmacy_id")

        report_type = record.get("report_type")
        if report_type not in REPORT_TYPES:
            raise MalformedReportError(
                f"Report {pharmacy_id} has invalid report_type: {report_type!r}"
            )

        submission_time = record.get("submission_time")
        if not submission_time:
            raise MalformedReportError(f"Report {pharmacy_id} is missing submission_time")

        return cls(
            pharmacy_id=str(pharmacy_id),
            pharmacy_name=record.get("pharmacy_name") or "",
            report_type=report_type,
            submission_time=parse_timestamp(submission_time),
            latitude=_as_float(record.get("latitude")),
            longitude=_as_float(record.get("longitude")),
            street_address=record.get("street_address") or "",
            city=record.get("city") or "",
            state=record.get("state") or "",
            zip_code=record.get("zip_code") or "",
            phone_number=record.get("phone_number") or None,
            standardized_notes=_as_tuple(record.get("standardized_notes")),
            free_text_notes=record.get("notes") or None,
            formulations=_as_tuple(record.get("formulation") or record.get("formulations")),
        )

    def to_record(self) -> dict[str, Any]:
        """Inverse of from_record, in store field names."""
        return {
            "pharmacy_id": self.pharmacy_id,
            "pharmacy_name": self.pharmacy_name,
            "report_type": self.report_type,
            "submission_time": self.submission_time.isoformat(),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "street_address": self.street_address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "phone_number": self.phone_number,
            "standardized_notes": list(self.standardized_notes),
            "notes": self.free_text_notes,
            "formulation": list(self.formulations),
        }


# ---------------------------------------------------------------------------
# Aggregated view
# ---------------------------------------------------------------------------


@dataclass
class AggregatedPharmacy:
    """Per-pharmacy roll-up, recomputed in full from the report history."""

    id: str
    name: str
    coords: tuple[float | None, float | None]
    full_address: str
    last_updated: datetime
    phone_number: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    success_count: int = 0
    denial_count: int = 0
    status: ReportType = REPORT_DENIAL
    standardized_notes: list[str] = field(default_factory=list)
    trend: Trend = TREND_NEUTRAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "coords": [self.coords[0], self.coords[1]],
            "fullAddress": self.full_address,
            "phoneNumber": self.phone_number,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "successCount": self.success_count,
            "denialCount": self.denial_count,
            "status": self.status,
            "lastUpdated": self.last_updated.isoformat(),
            "standardizedNotes": list(self.standardized_notes),
            "trend": self.trend,
        }
