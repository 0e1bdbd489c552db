"""Shared fixtures — a fixed clock and a Report factory."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from agent_03_resolution.algorithms.records import Report

NOW = datetime(2026, 10, 14, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def now():
    return NOW


@pytest.fixture()
def make_report(now):
    """
    Build a Report relative to ``now``.

    ``ago`` is a timedelta (or a number of days) before now; ``at`` overrides it.
    """

    def _make(
        pharmacy_id: str = "ph-001",
        report_type: str = "success",
        ago=timedelta(hours=1),
        at: datetime | None = None,
        notes: tuple[str, ...] = (),
        **fields,
    ) -> Report:
        if not isinstance(ago, timedelta):
            ago = timedelta(days=ago)
        fields.setdefault("pharmacy_name", f"Pharmacy {pharmacy_id}")
        fields.setdefault("latitude", 39.8283)
        fields.setdefault("longitude", -98.5795)
        return Report(
            pharmacy_id=pharmacy_id,
            report_type=report_type,
            submission_time=at if at is not None else now - ago,
            standardized_notes=tuple(notes),
            **fields,
        )

    return _make
