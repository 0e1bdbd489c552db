"""Tests for agent_03_resolution — dashboard summaries."""

from datetime import datetime, timedelta, timezone

from agent_03_resolution.algorithms.report_summary import (
    STANDARDIZED_NOTE_OPTIONS,
    previous_month_range,
    report_stats,
    summarize_reports,
)


# ---- previous_month_range ---------------------------------------------------


class TestPreviousMonthRange:
    def test_mid_month(self, now):
        start, end = previous_month_range(now)
        assert start == datetime(2026, 9, 1, tzinfo=timezone.utc)
        assert end == datetime(2026, 10, 1, tzinfo=timezone.utc)

    def test_january_wraps_year(self):
        start, end = previous_month_range(datetime(2026, 1, 5, 8, 30, tzinfo=timezone.utc))
        assert start == datetime(2025, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2026, 1, 1, tzinfo=timezone.utc)


# ---- summarize_reports ------------------------------------------------------


class TestSummarizeReports:
    def test_totals(self, make_report):
        reports = [
            make_report("a", "success"),
            make_report("b", "denial"),
            make_report("c", "denial"),
        ]
        summary = summarize_reports(reports)
        assert summary["total"] == 3
        assert summary["success"] == 1
        assert summary["denied"] == 2

    def test_by_state(self, make_report):
        newest = make_report("a", "success", ago=1, state="KS")
        reports = [
            make_report("b", "denial", ago=4, state="KS"),
            newest,
            make_report("c", "success", ago=2, state="CO"),
            make_report("d", "denial", ago=2),
        ]
        by_state = summarize_reports(reports)["by_state"]
        assert by_state["KS"] == {
            "success": 1,
            "denied": 1,
            "last_updated": newest.submission_time.isoformat(),
        }
        assert by_state["CO"]["success"] == 1
        assert by_state["Unknown"]["denied"] == 1

    def test_barriers_only_from_denials(self, make_report):
        reports = [
            make_report("a", "denial", notes=("Long wait times",)),
            make_report("b", "denial", notes=("Long wait times", "Won't accept cash")),
            make_report("c", "success", notes=("Won't accept cash", "Won't accept cash")),
        ]
        barriers = summarize_reports(reports)["barriers"]
        assert barriers[0] == {"note": "Long wait times", "count": 2}
        assert barriers[1] == {"note": "Won't accept cash", "count": 1}

    def test_barrier_ties_keep_option_order(self):
        barriers = summarize_reports([])["barriers"]
        assert [b["note"] for b in barriers] == list(STANDARDIZED_NOTE_OPTIONS)

    def test_unknown_notes_ignored(self, make_report):
        reports = [make_report("a", "denial", notes=("Something else",))]
        assert all(b["count"] == 0 for b in summarize_reports(reports)["barriers"])

    def test_formulations(self, make_report):
        reports = [
            make_report("a", "success", formulations=("Suboxone (film)",)),
            make_report("b", "denial", formulations=("Suboxone (film)", "Zubsolv (tablet)")),
        ]
        by_name = {f["name"]: f for f in summarize_reports(reports)["formulations"]}
        assert by_name["Suboxone (film)"] == {"name": "Suboxone (film)", "success": 1, "denied": 1}
        assert by_name["Zubsolv (tablet)"]["denied"] == 1
        assert by_name["Brixadi shot (gives shot)"]["success"] == 0


# ---- report_stats -----------------------------------------------------------


class TestReportStats:
    def test_counts(self, now, make_report):
        reports = [
            make_report("a", ago=1, zip_code="66952"),
            make_report("b", ago=timedelta(days=7), zip_code="66952"),
            make_report("c", ago=20, zip_code="80202"),
        ]
        stats = report_stats(reports, now, zip_code="66952")
        assert stats == {"totalCount": 3, "weeklyCount": 1, "zipCodeCount": 2}

    def test_no_zip(self, now, make_report):
        stats = report_stats([make_report(zip_code="66952")], now)
        assert stats["zipCodeCount"] == 0
