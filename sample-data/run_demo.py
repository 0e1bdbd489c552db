#!/usr/bin/env python3
"""
Buprenorphine Pharmacy Locator — End-to-End Demo

Runs both pipelines on the bundled sample reports, offline:
  1. Aggregate: reports → one rolled-up entry per pharmacy
  2. Search: merge canned map results with the local entries
  3. Dashboard: totals, barriers and formulations

Usage:
    python sample-data/run_demo.py
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from agent_03_resolution.algorithms.geo_distance import (  # noqa: E402
    DISPLAY_RADIUS_MILES,
    LatLon,
    rank_by_distance,
)
from agent_03_resolution.algorithms.records import PharmacyCandidate  # noqa: E402
from agent_03_resolution.algorithms.report_aggregator import aggregate  # noqa: E402
from agent_03_resolution.algorithms.report_summary import summarize_reports  # noqa: E402
from agent_03_resolution.search.source_merger import MergerConfig, merge_candidates  # noqa: E402
from agent_05_platform_api.src.store import JsonReportStore  # noqa: E402

DEMO_ORIGIN = LatLon(39.8283, -98.5795)
DEMO_NOW = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)

# What the map provider might return for "cvs"
CANNED_MAP_RESULTS = [
    PharmacyCandidate(
        name="CVS Pharmacy",
        full_address="123 Main St, Demo City, Demo, 00000",
        source_id="osm_node_1001",
        latitude=39.8383,
        longitude=-98.5695,
    ),
    PharmacyCandidate(
        name="CVS Pharmacy",
        full_address="900 Market Street, Demo City, Demo, 00000",
        source_id="osm_node_1002",
        latitude=39.8500,
        longitude=-98.6000,
    ),
]


def step_aggregate(store: JsonReportStore) -> None:
    print("=" * 65)
    print("STEP 1: AGGREGATION")
    print("=" * 65)

    reports = store.query_nearby(DEMO_ORIGIN, DISPLAY_RADIUS_MILES)
    pharmacies = rank_by_distance(
        DEMO_ORIGIN,
        aggregate(reports, DEMO_NOW).values(),
        coords=lambda p: LatLon(*p.coords),
    )
    print(f"  Reports    : {len(reports)}")
    print(f"  Pharmacies : {len(pharmacies)}")
    print()
    for p in pharmacies:
        print(f"  {p.status.upper():8s} {p.name}  "
              f"({p.success_count} success / {p.denial_count} denial, trend {p.trend})")
        for note in p.standardized_notes:
            print(f"           - {note}")
    print()


def step_search(store: JsonReportStore, query: str = "cvs") -> None:
    print("=" * 65)
    print(f'STEP 2: SEARCH "{query}"')
    print("=" * 65)

    config = MergerConfig.from_yaml()
    local = store.query_local_entries(DEMO_ORIGIN, config.local_radius_miles)
    results = merge_candidates(query, DEMO_ORIGIN, CANNED_MAP_RESULTS, local, config=config)

    for c in results:
        dist = f"{c.distance_miles:.1f} mi" if c.distance_miles is not None else "-"
        print(f"  [{c.source:13s}] {c.name:35s} {dist:>8s}  {c.full_address}")
    print()


def step_dashboard(store: JsonReportStore) -> None:
    print("=" * 65)
    print("STEP 3: DASHBOARD")
    print("=" * 65)

    summary = summarize_reports(store.query_all())
    print(f"  Total {summary['total']}: {summary['success']} success, {summary['denied']} denied")
    print("  Top barriers:")
    for barrier in summary["barriers"][:3]:
        if barrier["count"]:
            print(f"    {barrier['count']}  {barrier['note']}")
    print("=" * 65)


def main():
    data_dir = ROOT / "sample-data"
    if not (data_dir / "sample_reports.json").exists():
        print(f"Sample data not found: {data_dir / 'sample_reports.json'}")
        sys.exit(1)

    print()
    print("  Buprenorphine Pharmacy Locator — End-to-End Demo")
    print()

    store = JsonReportStore.from_directory(data_dir)
    step_aggregate(store)
    step_search(store)
    step_dashboard(store)


if __name__ == "__main__":
    main()
