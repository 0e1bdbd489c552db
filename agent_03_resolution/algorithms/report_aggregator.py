#!/usr/bin/env python3
"""
Buprenorphine Pharmacy Locator — Report Aggregation

Folds a flat list of time-stamped access reports into one
AggregatedPharmacy per pharmacy id:

    - success/denial counts and status (ties favour denial)
    - lastUpdated = latest *success* report, first-seen report as fallback
    - 7-day trend (strictly newer than now - 7 days)
    - compacted note list: a synthesized stock-status note first, then each
      distinct note once, newest occurrence wins

``aggregate`` is a pure function of ``(reports, now)``: it is recomputed in
full on every call and never patched incrementally.

Usage:
    from agent_03_resolution.algorithms.report_aggregator import aggregate

    pharmacies = aggregate(reports, now=datetime.now(timezone.utc))
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable

from .records import (
    REPORT_SUCCESS,
    REPORT_TYPES,
    TREND_DOWN,
    TREND_NEUTRAL,
    TREND_UP,
    AggregatedPharmacy,
    MalformedReportError,
    Report,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TREND_WINDOW = timedelta(days=7)

STOCK_OUT_NOTE = "Will order, but not in stock"

TIME_SENSITIVE_NOTES = frozenset({"Long wait times", "Best to call ahead"})

_SECONDS_PER_DAY = 86400


# ---------------------------------------------------------------------------
# Age phrasing
# ---------------------------------------------------------------------------


def days_since(timestamp: datetime, now: datetime) -> int:
    """Whole days elapsed between ``timestamp`` and ``now`` (floor, never negative)."""
    return max(0, int((now - timestamp).total_seconds() // _SECONDS_PER_DAY))


def _plural_days(days: int) -> str:
    return "1 day" if days == 1 else f"{days} days"


def _out_of_stock_phrase(days: int) -> str:
    if days == 0:
        return "today"
    if days == 1:
        return "yesterday"
    if days <= 7:
        return f"{days} days ago"
    weeks = days // 7
    return "1 week ago" if weeks == 1 else f"{weeks} weeks ago"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate(reports: Iterable[Report]) -> list[Report]:
    """Reject the whole batch on the first malformed report."""
    validated: list[Report] = []
    for index, report in enumerate(reports):
        if not isinstance(report, Report):
            raise MalformedReportError(
                f"Item {index} is {type(report).__name__}, expected Report"
            )
        if report.report_type not in REPORT_TYPES:
            raise MalformedReportError(
                f"Report {report.pharmacy_id} has invalid report_type: {report.report_type!r}"
            )
        if (
            not isinstance(report.submission_time, datetime)
            or report.submission_time.tzinfo is None
        ):
            raise MalformedReportError(
                f"Report {report.pharmacy_id} has no timezone-aware submission_time"
            )
        validated.append(report)
    return validated


# ---------------------------------------------------------------------------
# Note compaction
# ---------------------------------------------------------------------------


def _stock_note(newest_first: list[Report], now: datetime) -> str | None:
    """
    Synthesize the single stock-status note for a group.

    The most recent report carrying STOCK_OUT_NOTE marks the stock-out; a
    success strictly newer than it means the pharmacy is back in stock.
    """
    stock_out = next(
        (r for r in newest_first if STOCK_OUT_NOTE in r.standardized_notes),
        None,
    )
    if stock_out is None:
        return None

    stock_in = next(
        (
            r for r in newest_first
            if r.report_type == REPORT_SUCCESS
            and r.submission_time > stock_out.submission_time
        ),
        None,
    )

    out_days = days_since(stock_out.submission_time, now)
    if stock_in is not None:
        in_days = days_since(stock_in.submission_time, now)
        return (
            f"Back in stock {_plural_days(in_days)} ago "
            f"(previously out {_plural_days(out_days)} ago)"
        )
    return f"Out of stock (reported {_out_of_stock_phrase(out_days)})"


def compact_notes(group: list[Report], now: datetime) -> list[str]:
    """
    Build the display note list for one pharmacy.

    The stock note (if any) comes first; every other distinct note follows
    once, in the order it is first met scanning newest-first.
    """
    # sorted() is stable, so same-timestamp reports keep input order
    newest_first = sorted(group, key=lambda r: r.submission_time, reverse=True)

    notes: list[str] = []
    stock = _stock_note(newest_first, now)
    if stock is not None:
        notes.append(stock)

    seen: set[str] = set()
    for report in newest_first:
        for note in report.standardized_notes:
            if note == STOCK_OUT_NOTE or note in seen:
                continue
            seen.add(note)
            age = days_since(report.submission_time, now)
            if note in TIME_SENSITIVE_NOTES and age > 0:
                notes.append(f"{note} ({_plural_days(age)} ago)")
            else:
                notes.append(note)
    return notes


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def _trend(group: list[Report], now: datetime) -> str:
    window_start = now - TREND_WINDOW
    recent = [r for r in group if r.submission_time > window_start]
    recent_successes = sum(1 for r in recent if r.report_type == REPORT_SUCCESS)
    recent_denials = len(recent) - recent_successes

    if recent_successes > recent_denials:
        return TREND_UP
    if recent_denials > recent_successes:
        return TREND_DOWN
    return TREND_NEUTRAL


def _build(group: list[Report], now: datetime) -> AggregatedPharmacy:
    first = group[0]
    successes = [r for r in group if r.report_type == REPORT_SUCCESS]
    success_count = len(successes)
    denial_count = len(group) - success_count

    last_updated = (
        max(r.submission_time for r in successes) if successes else first.submission_time
    )

    return AggregatedPharmacy(
        id=first.pharmacy_id,
        name=first.pharmacy_name,
        coords=(first.latitude, first.longitude),
        full_address=first.full_address,
        phone_number=first.phone_number,
        city=first.city or None,
        state=first.state or None,
        zip=first.zip_code or None,
        success_count=success_count,
        denial_count=denial_count,
        status="success" if success_count > denial_count else "denial",
        last_updated=last_updated,
        standardized_notes=compact_notes(group, now),
        trend=_trend(group, now),
    )


def aggregate(reports: Iterable[Report], now: datetime) -> dict[str, AggregatedPharmacy]:
    """
    Fold reports into one AggregatedPharmacy per pharmacy id.

    Parameters
    ----------
    reports : iterable of Report
        Any order.  Display metadata comes from the first report seen for
        each id.
    now : datetime
        Timezone-aware reference time for trend windows and note ages.

    Returns
    -------
    dict mapping pharmacy id → AggregatedPharmacy, in first-seen order.

    Raises
    ------
    MalformedReportError
        If any item is not a well-formed Report.  No partial output is
        produced.
    """
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")

    groups: dict[str, list[Report]] = {}
    for report in _validate(reports):
        groups.setdefault(report.pharmacy_id, []).append(report)

    result = {pharmacy_id: _build(group, now) for pharmacy_id, group in groups.items()}
    logger.debug("Aggregated %d reports into %d pharmacies",
                 sum(len(g) for g in groups.values()), len(result))
    return result
