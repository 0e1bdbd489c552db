#!/usr/bin/env python3
"""
Buprenorphine Pharmacy Locator — Dashboard Summaries

Aggregate counts over a slice of reports for the public dashboard and the
landing-page counters.  Uses the same Report records as the map
aggregation, with a different input slice (all time, or the previous
calendar month).
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable

from .records import REPORT_DENIAL, REPORT_SUCCESS, Report


# ---------------------------------------------------------------------------
# Known form options
# ---------------------------------------------------------------------------

STANDARDIZED_NOTE_OPTIONS = (
    "Will order, but not in stock",
    "Partial fill (did not fill the full prescription)",
    "Best to call ahead",
    "Only fills for existing patients",
    'Only fills from prescribers "close-by"',
    "Only fill from certain prescribers",
    'Only fills for patients "close-by"',
    "Long wait times",
    "Won't accept cash",
    "Helpful staff",
    "Unhelpful staff",
    "Permanently closed",
)

FORMULATION_OPTIONS = (
    "Suboxone (film)",
    "Buprenorphine/Naloxone (film; generic)",
    "Buprenorphine/Naloxone (tablet; generic)",
    "Buprenorphine (tablet; mono product; generic)",
    "Zubsolv (tablet)",
    "Sublocade shot (fills prescription)",
    "Sublocade shot (gives shot)",
    "Brixadi shot (fills prescription)",
    "Brixadi shot (gives shot)",
)

UNKNOWN_STATE = "Unknown"

WEEK = timedelta(days=7)


# ---------------------------------------------------------------------------
# Time ranges
# ---------------------------------------------------------------------------


def previous_month_range(now: datetime) -> tuple[datetime, datetime]:
    """
    Return [start, end) of the most recently completed calendar month.

    For any day in March this is (1 Feb 00:00, 1 Mar 00:00) in now's timezone.
    """
    this_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if this_month.month == 1:
        start = this_month.replace(year=this_month.year - 1, month=12)
    else:
        start = this_month.replace(month=this_month.month - 1)
    return start, this_month


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


def summarize_reports(reports: Iterable[Report]) -> dict[str, Any]:
    """
    Summarise reports for the dashboard.

    Returns
    -------
    dict with keys:
        - total, success, denied : int
        - by_state : {state: {"success", "denied", "last_updated"}}
        - formulations : [{"name", "success", "denied"}] in option order
        - barriers : [{"note", "count"}] from denial reports, most common first
    """
    reports = list(reports)

    by_state: dict[str, dict[str, Any]] = {}
    formulation_counts = {name: {"name": name, "success": 0, "denied": 0}
                          for name in FORMULATION_OPTIONS}
    barrier_counts = {note: 0 for note in STANDARDIZED_NOTE_OPTIONS}

    for report in reports:
        outcome = "success" if report.report_type == REPORT_SUCCESS else "denied"

        state = by_state.setdefault(
            report.state or UNKNOWN_STATE,
            {"success": 0, "denied": 0, "last_updated": None},
        )
        state[outcome] += 1
        if state["last_updated"] is None or report.submission_time > state["last_updated"]:
            state["last_updated"] = report.submission_time

        for name in report.formulations:
            if name in formulation_counts:
                formulation_counts[name][outcome] += 1

        if report.report_type == REPORT_DENIAL:
            for note in report.standardized_notes:
                if note in barrier_counts:
                    barrier_counts[note] += 1

    # Stable sort keeps option order among equal counts
    barriers = sorted(
        ({"note": note, "count": count} for note, count in barrier_counts.items()),
        key=lambda b: b["count"],
        reverse=True,
    )

    success = sum(1 for r in reports if r.report_type == REPORT_SUCCESS)
    return {
        "total": len(reports),
        "success": success,
        "denied": len(reports) - success,
        "by_state": {
            name: {**counts, "last_updated": (
                counts["last_updated"].isoformat() if counts["last_updated"] else None
            )}
            for name, counts in by_state.items()
        },
        "formulations": list(formulation_counts.values()),
        "barriers": barriers,
    }


def report_stats(
    reports: Iterable[Report],
    now: datetime,
    zip_code: str | None = None,
) -> dict[str, int]:
    """Landing-page counters: total, last 7 days, and (optionally) one ZIP code."""
    week_start = now - WEEK
    total = weekly = zip_count = 0
    for report in reports:
        total += 1
        if report.submission_time > week_start:
            weekly += 1
        if zip_code and report.zip_code == zip_code:
            zip_count += 1
    return {"totalCount": total, "weeklyCount": weekly, "zipCodeCount": zip_count}
