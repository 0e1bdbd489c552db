"""Buprenorphine Pharmacy Locator — Resolution and Aggregation Algorithms."""

from .records import (
    AggregatedPharmacy,
    LocalEntry,
    MalformedReportError,
    PharmacyCandidate,
    Report,
)
from .geo_distance import (
    LatLon,
    distance_miles,
    filter_within_radius,
    rank_by_distance,
)
from .location_match import (
    address_overlap_similarity,
    compare_locations,
    is_same_location,
    names_match,
    normalize_text,
)
from .report_aggregator import aggregate
from .report_summary import (
    previous_month_range,
    report_stats,
    summarize_reports,
)

__all__ = [
    "AggregatedPharmacy",
    "LocalEntry",
    "MalformedReportError",
    "PharmacyCandidate",
    "Report",
    "LatLon",
    "distance_miles",
    "filter_within_radius",
    "rank_by_distance",
    "address_overlap_similarity",
    "compare_locations",
    "is_same_location",
    "names_match",
    "normalize_text",
    "aggregate",
    "previous_month_range",
    "report_stats",
    "summarize_reports",
]
