"""
Tests for the per-tab dashboard section builders.

Run: python -m pytest test_dashboard_sections.py -v
"""

import pytest

from dashboard_sections import (
    PLACEHOLDER_SECTIONS,
    build_commercial_process,
    build_external_rft,
    build_internal_rft,
    build_overview,
    build_placeholder,
    build_process_metrics,
    empty_commercial_process,
    empty_external_rft,
    empty_internal_rft,
    empty_overview,
    empty_process_metrics,
)


# =====================================================================
# Empty / untagged input
# =====================================================================

class TestEmptyInput:

    @pytest.mark.parametrize("builder,empty", [
        (build_overview, empty_overview),
        (build_internal_rft, empty_internal_rft),
        (build_external_rft, empty_external_rft),
        (build_process_metrics, empty_process_metrics),
        (build_commercial_process, empty_commercial_process),
    ])
    def test_empty_records_give_empty_shape(self, builder, empty):
        assert builder([]) == empty()

    def test_untagged_records_excluded_from_rft_views(self, make_record):
        recs = [
            make_record(batchId=f"U-{i}", assembly_start="2024-01-0%d" % (i + 1), hasErrors=i == 0)
            for i in range(3)
        ]
        assert build_internal_rft(recs)["recordCount"] == 0
        assert build_external_rft(recs)["recordCount"] == 0
        assert build_overview(recs)["totalRecords"] == 3


# =====================================================================
# Overview
# =====================================================================

class TestOverview:

    def test_headline_numbers(self, sample_records):
        ov = build_overview(sample_records)
        assert ov["totalRecords"] == 6
        assert ov["totalLots"] == 6
        assert abs(ov["overallRFTRate"] - 33.333) < 0.01
        assert ov["rftPerformance"] == [{"name": "Pass", "value": 2}, {"name": "Fail", "value": 4}]

    def test_top_issues(self, sample_records):
        top = build_overview(sample_records)["topIssues"]
        assert [(t["name"], t["count"]) for t in top] == [
            ("Production Record", 2), ("Delivery", 2), ("QC Checklist", 1),
        ]

    def test_monthly_metrics(self, sample_records):
        monthly = build_overview(sample_records)["monthlyMetrics"]
        assert [m["month"] for m in monthly] == ["2024-01", "2024-02", "2024-03"]
        assert [m["recordCount"] for m in monthly] == [1, 2, 3]
        assert monthly[0]["displayMonth"] == "01"

    def test_issue_distribution(self, sample_records):
        dist = {d["name"]: d["value"] for d in build_overview(sample_records)["issueDistribution"]}
        assert dist == {"Form Errors": 2, "Customer Issues": 3, "Process Delays": 0}

    def test_no_improvement_summary_under_twelve_months(self, sample_records):
        assert "improvementSummary" not in build_overview(sample_records)

    def _year(self, make_record, months):
        recs = []
        for i in range(months):
            month = f"2023-{i + 1:02d}-10"
            recent = i >= months - 6
            recs.append(make_record(batchId=f"A{i}", assembly_start=month, source="Internal",
                                    hasErrors=False, cycleTime=5 if recent else 10))
            recs.append(make_record(batchId=f"B{i}", assembly_start=month, source="Internal",
                                    hasErrors=not recent, cycleTime=5 if recent else 10))
        return recs

    def test_improvement_summary_with_twelve_months(self, make_record):
        summary = build_overview(self._year(make_record, 12))["improvementSummary"]
        assert summary["recentRFT"] == 100.0
        assert summary["previousRFT"] == 50.0
        assert abs(summary["rftChange"] - 100.0) < 0.001
        assert summary["recentAvgCycleTime"] == 5.0
        assert summary["previousAvgCycleTime"] == 10.0
        assert abs(summary["cycleTimeChange"] + 50.0) < 0.001

    def test_eleven_months_is_not_enough(self, make_record):
        assert "improvementSummary" not in build_overview(self._year(make_record, 11))


# =====================================================================
# Internal RFT
# =====================================================================

class TestInternalRft:

    def test_two_of_three_passing(self, internal_trio):
        section = build_internal_rft(internal_trio)
        assert section["recordCount"] == 3
        assert abs(section["internalRFT"] - 66.7) < 0.1
        assert section["summary"] == {
            "totalRecords": 3, "passingRecords": 2, "failingRecords": 1, "rftRate": 66.7,
        }

    def test_process_source_counts_as_internal(self, sample_records):
        assert build_internal_rft(sample_records)["recordCount"] == 3

    def test_error_pareto(self, sample_records):
        pareto = build_internal_rft(sample_records)["errorPareto"]
        assert [p["name"] for p in pareto] == ["Production Record", "QC Checklist"]
        assert pareto[-1]["cumulativePercentage"] == 100.0

    def test_form_errors(self, sample_records):
        forms = build_internal_rft(sample_records)["formErrors"]
        assert forms[0]["name"] == "Production Record"
        assert forms[0]["errors"] == 2
        assert forms[0]["trend"] in ("up", "down", "flat")

    def test_problematic_lots(self, sample_records):
        lots = build_internal_rft(sample_records)["problematicLots"]
        assert [lot["batchId"] for lot in lots] == ["B-101"]
        assert lots[0]["errorCount"] == 2

    def test_process_comparison(self, sample_records):
        assembly = build_internal_rft(sample_records)["processComparison"]["assembly"]
        assert assembly["recordCount"] == 3
        assert abs(assembly["avgCycleTime"] - 5 / 3) < 0.001

    def test_monthly_series(self, internal_trio):
        monthly = build_internal_rft(internal_trio)["monthlyRFT"]
        assert [(m["month"], m["rftRate"]) for m in monthly] == [("2024-01", 100.0), ("2024-02", 0.0)]


# =====================================================================
# External RFT
# =====================================================================

class TestExternalRft:

    def test_counts_and_rates(self, sample_records):
        section = build_external_rft(sample_records)
        assert section["recordCount"] == 3
        assert abs(section["externalRFT"] - 33.333) < 0.01
        assert abs(section["internalRFT"] - 33.333) < 0.01

    def test_complaint_summary(self, sample_records):
        summary = build_external_rft(sample_records)["summary"]
        assert summary["totalComplaints"] == 3
        assert summary["resolvedComplaints"] == 2
        assert summary["pendingComplaints"] == 1
        assert summary["resolutionRate"] == 66.7
        assert summary["openRate"] == 33.3

    def test_open_rate_without_statuses(self, make_record):
        recs = [
            make_record(batchId="C-1", assembly_start="2024-01-01", source="External", errorTypes="Quality"),
            make_record(batchId="C-2", assembly_start="2024-01-02", source="External", hasErrors=False),
        ]
        assert build_external_rft(recs)["summary"]["openRate"] == 50.0

    def test_issue_pareto(self, sample_records):
        pareto = build_external_rft(sample_records)["issuePareto"]
        assert [(p["name"], p["value"]) for p in pareto] == [("Delivery", 2)]
        assert pareto[-1]["cumulativePercentage"] == 100.0

    def test_customer_comments(self, sample_records):
        comments = build_external_rft(sample_records)["customerComments"]
        assert comments == [{"name": "Delivery", "count": 2, "sentiment": "negative", "sentimentScore": -1.0}]

    def test_monthly_comparison_covers_both_sides(self, sample_records):
        months = [m["month"] for m in build_external_rft(sample_records)["monthlyComparison"]]
        assert months == ["2024-01", "2024-02", "2024-03"]

    def test_impact_analysis_shape(self, sample_records):
        impact = build_external_rft(sample_records)["impactAnalysis"]
        assert set(impact) == {"correlation", "lagTime", "observations"}
        assert 0 <= impact["lagTime"] <= 3
        assert len(impact["observations"]) == 1


# =====================================================================
# Process metrics
# =====================================================================

class TestProcessMetrics:

    def test_only_records_with_review_dates(self, sample_records):
        assert build_process_metrics(sample_records)["recordCount"] == 3

    def test_nn_review_time(self, sample_records):
        stats = build_process_metrics(sample_records)["timeMetricsStats"]["nnReviewTime"]
        assert abs(stats["mean"] - 7 / 3) < 0.001
        assert stats["max"] == 4.0

    def test_negative_gaps_discarded(self, make_record):
        recs = [make_record(batchId="B-1", assembly_start="2024-01-01",
                            date_pci_l_a_br_review_date="2024-01-10",
                            date_nn_l_a_br_review_date="2024-01-05")]
        section = build_process_metrics(recs)
        assert section["timeMetricsStats"]["nnReviewTime"]["mean"] == 0.0
        assert section["waitingTimes"] == []

    def test_mixed_offset_and_date_only_review_dates(self, make_record):
        recs = [
            make_record(batchId="B-1", assembly_start="2024-01-08",
                        date_pci_l_a_br_review_date="2024-01-10T08:00:00Z",
                        date_nn_l_a_br_review_date="2024-01-12"),
            make_record(batchId="B-2", assembly_start="2024-01-08",
                        date_pci_l_a_br_review_date="2024-01-10",
                        date_nn_l_a_br_review_date="2024-01-11T12:00:00+00:00"),
        ]
        section = build_process_metrics(recs)
        assert section["recordCount"] == 2
        stats = section["timeMetricsStats"]["nnReviewTime"]
        assert abs(stats["mean"] - (40 / 24 + 1.5) / 2) < 0.001

    def test_cycle_time_breakdown(self, sample_records):
        steps = {s["step"]: s["time"] for s in build_process_metrics(sample_records)["cycleTimeBreakdown"]}
        assert set(steps) == {"Assembly", "PCI Review", "Packaging"}
        assert abs(steps["PCI Review"] - 7 / 3) < 0.001

    def test_waiting_times(self, sample_records):
        waits = build_process_metrics(sample_records)["waitingTimes"]
        assert [(w["from"], w["to"]) for w in waits] == [("PCI L/A BR Review", "NN L/A BR Review")]

    def test_total_cycle_time(self, sample_records):
        total = build_process_metrics(sample_records)["totalCycleTime"]
        assert total["minimum"] == 17.0
        assert total["maximum"] == 18.0
        assert abs(total["average"] - 53 / 3) < 0.001


# =====================================================================
# Commercial process and placeholders
# =====================================================================

class TestCommercialProcess:

    def _lots(self, make_record):
        return [
            make_record(batchId="L-1", stage="Assembly", status="Completed", duration=2, deviation="No"),
            make_record(batchId="L-2", stage="Assembly", status="In Progress", duration=4, deviation="Yes"),
            make_record(batchId="L-3", stage="Packaging", status="On Hold", duration=6),
            make_record(batchId="L-4", stage="Packaging", status="Completed", duration=2),
        ]

    def test_summary(self, make_record):
        summary = build_commercial_process(self._lots(make_record))["summary"]
        assert summary == {
            "totalLots": 4, "completedLots": 2, "inProgressLots": 1, "onHoldLots": 1,
            "completionRate": 50.0,
        }

    def test_process_flow(self, make_record):
        flow = {f["name"]: f for f in build_commercial_process(self._lots(make_record))["processFlow"]}
        assert flow["Assembly"]["count"] == 2
        assert flow["Assembly"]["avgDuration"] == 3.0
        assert flow["Assembly"]["deviationRate"] == 50.0
        assert flow["Packaging"]["deviationRate"] == 0.0

    def test_on_hold_counts_as_process_delay(self, make_record):
        dist = {d["name"]: d["value"] for d in build_overview(self._lots(make_record))["issueDistribution"]}
        assert dist["Process Delays"] == 1


class TestPlaceholders:

    @pytest.mark.parametrize("name", ["deviations", "g7Performance"])
    def test_shape(self, name):
        section = build_placeholder(name)
        assert set(section) == {"info", "plannedFunctionality", "expectedDataSources"}
        assert section["plannedFunctionality"]

    def test_returns_copies(self):
        build_placeholder("deviations")["plannedFunctionality"].append("x")
        assert "x" not in PLACEHOLDER_SECTIONS["deviations"]["plannedFunctionality"]
