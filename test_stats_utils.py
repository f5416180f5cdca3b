"""
Unit tests for the generic statistics helpers.

Run: python -m pytest test_stats_utils.py -v
"""

from datetime import datetime

import pytest

from stats_utils import (
    days_between,
    group_by,
    is_placeholder,
    month_bucket,
    month_key,
    parse_date,
    moving_average,
    pareto_rank,
    pearson,
    percentage_change,
    safe_mean,
    statistics,
)


# =====================================================================
# statistics
# =====================================================================

class TestStatistics:

    def test_empty_is_all_zero(self):
        assert statistics([]) == {
            "min": 0.0, "max": 0.0, "mean": 0.0, "median": 0.0, "standardDeviation": 0.0,
        }

    def test_odd_length_median(self):
        stats = statistics([3, 1, 2])
        assert stats["median"] == 2.0
        assert stats["min"] == 1.0
        assert stats["max"] == 3.0
        assert abs(stats["mean"] - 2.0) < 0.001

    def test_even_length_median_averages_middle_pair(self):
        assert statistics([4, 1, 3, 2])["median"] == 2.5

    def test_population_standard_deviation(self):
        stats = statistics([2, 4, 4, 4, 5, 5, 7, 9])
        assert abs(stats["standardDeviation"] - 2.0) < 0.001

    def test_caller_order_untouched(self):
        values = [5, 1, 3]
        statistics(values)
        assert values == [5, 1, 3]

    def test_non_numeric_entries_ignored(self):
        stats = statistics([1, None, float("nan"), 3])
        assert stats["mean"] == 2.0

    @pytest.mark.parametrize("values", [[7], [1, 100], [0.5, 2.5, 9.0, 3.3], [-4, 0, 4, 12, 12]])
    def test_ordering_invariants(self, values):
        stats = statistics(values)
        assert stats["min"] <= stats["median"] <= stats["max"]
        assert stats["min"] <= stats["mean"] <= stats["max"]


class TestSafeMean:

    def test_empty(self):
        assert safe_mean([]) == 0.0

    def test_skips_none(self):
        assert safe_mean([None, 2, 4]) == 3.0


# =====================================================================
# percentage_change / moving_average
# =====================================================================

class TestPercentageChange:

    def test_increase(self):
        assert abs(percentage_change(110, 100) - 10.0) < 0.001

    def test_zero_previous_is_zero(self):
        assert percentage_change(5, 0) == 0.0

    def test_negative_previous_uses_magnitude(self):
        assert abs(percentage_change(50, -100) - 150.0) < 0.001


class TestMovingAverage:

    def test_leading_positions_are_none(self):
        assert moving_average([1, 2, 3, 4], 3) == [None, None, 2.0, 3.0]


# =====================================================================
# pareto_rank
# =====================================================================

class TestParetoRank:

    ITEMS = [
        {"name": "a", "value": 1},
        {"name": "b", "value": 3},
        {"name": "c", "value": 1},
    ]

    def test_sorted_descending(self):
        ranked = pareto_rank(self.ITEMS)
        assert ranked[0]["name"] == "b"
        assert [r["value"] for r in ranked] == [3, 1, 1]

    def test_percentages(self):
        ranked = pareto_rank(self.ITEMS)
        assert [r["percentage"] for r in ranked] == [60.0, 20.0, 20.0]
        assert [r["cumulative"] for r in ranked] == [3, 4, 5]

    def test_cumulative_non_decreasing_and_ends_at_100(self):
        ranked = pareto_rank([{"name": str(i), "value": v} for i, v in enumerate([7, 3, 11, 2, 5])])
        cum = [r["cumulativePercentage"] for r in ranked]
        assert cum == sorted(cum)
        assert abs(cum[-1] - 100.0) < 0.1

    def test_zero_total(self):
        ranked = pareto_rank([{"name": "x", "value": 0}])
        assert ranked[0]["percentage"] == 0.0
        assert ranked[0]["cumulativePercentage"] == 0.0

    def test_empty(self):
        assert pareto_rank([]) == []


# =====================================================================
# month_key / month_bucket
# =====================================================================

class TestMonthBucket:

    def _records(self, months):
        return [{"batchId": f"B{i}", "assembly_start": f"{m}-15"} for i, m in enumerate(months)]

    def test_month_key_formats(self):
        assert month_key("2024-03-15") == "2024-03"
        assert month_key("2024-03-15T08:30:00") == "2024-03"
        assert month_key(datetime(2023, 11, 2)) == "2023-11"
        assert month_key("not a date") is None
        assert month_key(None) is None

    def test_keeps_latest_limit_months(self):
        months = [f"2023-{m:02d}" for m in range(1, 13)] + ["2024-01", "2024-02"]
        buckets = month_bucket(self._records(months), "assembly_start", 12)
        assert len(buckets) == 12
        assert list(buckets) == sorted(months)[-12:]

    def test_never_more_than_limit(self):
        months = ["2024-01", "2024-02", "2024-03", "2024-04"]
        assert len(month_bucket(self._records(months), "assembly_start", 2)) == 2

    def test_records_without_date_excluded(self):
        recs = self._records(["2024-01"]) + [{"batchId": "X", "assembly_start": None}]
        buckets = month_bucket(recs, "assembly_start", 12)
        assert sum(len(v) for v in buckets.values()) == 1

    def test_groups_same_month(self):
        buckets = month_bucket(self._records(["2024-05", "2024-05", "2024-06"]))
        assert len(buckets["2024-05"]) == 2


# =====================================================================
# Dates, grouping, correlation
# =====================================================================

class TestDaysBetween:

    def test_positive(self):
        assert days_between("2024-01-01", "2024-01-03") == 2.0

    def test_negative_discarded(self):
        assert days_between("2024-01-03", "2024-01-01") is None

    def test_unreadable(self):
        assert days_between("2024-01-01", "soon") is None
        assert days_between(None, "2024-01-01") is None

    def test_mixed_offset_and_date_only(self):
        # 08:00 UTC on the 10th to midnight on the 12th
        assert abs(days_between("2024-01-10T08:00:00Z", "2024-01-12") - 40 / 24) < 0.001

    def test_offset_timestamps_become_naive_utc(self):
        ts = parse_date("2024-01-10T10:00:00+02:00")
        assert ts.tzinfo is None
        assert ts == datetime(2024, 1, 10, 8, 0)


class TestGroupBy:

    def test_preserves_insertion_order(self):
        items = [{"k": "a", "n": 1}, {"k": "b", "n": 2}, {"k": "a", "n": 3}]
        groups = group_by(items, "k")
        assert [i["n"] for i in groups["a"]] == [1, 3]
        assert list(groups) == ["a", "b"]


class TestPearson:

    def test_identical_series(self):
        assert abs(pearson([1, 2, 3, 5], [1, 2, 3, 5]) - 1.0) < 1e-9

    def test_inverse_series(self):
        assert abs(pearson([1, 2, 3], [3, 2, 1]) + 1.0) < 1e-9

    def test_constant_series_is_zero(self):
        assert pearson([2, 2, 2], [1, 2, 3]) == 0.0

    def test_too_short(self):
        assert pearson([1], [1]) == 0.0


class TestPlaceholder:

    @pytest.mark.parametrize("val", [None, "", "  ", "N/A", "unknown", "Unknown", float("nan")])
    def test_placeholders(self, val):
        assert is_placeholder(val)

    @pytest.mark.parametrize("val", ["B-1", 0, "n/a batch"])
    def test_real_values(self, val):
        assert not is_placeholder(val)
