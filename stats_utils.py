"""
Statistical helpers for the RFT dashboard engine
=================================================
Generic numeric and grouping utilities with no quality-domain knowledge:
summary statistics, percentage change, moving average, Pareto ranking,
month bucketing, grouping, Pearson correlation and date arithmetic.

Every helper returns a neutral value (0, [] or {}) on empty input instead
of raising, so section builders never have to branch on "no data".
"""

import math
import re
from datetime import date, datetime

import numpy as np
import pandas as pd

ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
PLACEHOLDER_VALUES = {"", "n/a", "unknown"}

_ZERO_STATS = {"min": 0.0, "max": 0.0, "mean": 0.0, "median": 0.0, "standardDeviation": 0.0}


def is_number(val):
    """True for real numbers that are not NaN/inf (bools excluded)."""
    if isinstance(val, bool) or val is None:
        return False
    if isinstance(val, (int, float, np.integer, np.floating)):
        return math.isfinite(float(val))
    return False


def numeric_values(values):
    """Keep only usable numbers, as floats, in input order."""
    return [float(v) for v in values if is_number(v)]


def is_placeholder(val):
    """Empty, None, NaN, "N/A" or "unknown" (case-insensitive)."""
    if val is None or val is pd.NaT:
        return True
    if isinstance(val, float) and math.isnan(val):
        return True
    if isinstance(val, str):
        return val.strip().lower() in PLACEHOLDER_VALUES
    return False


# ---------------------------------------------------------------------------
# Summary statistics
# ---------------------------------------------------------------------------
def statistics(values):
    """Return {min, max, mean, median, standardDeviation} for a sequence.

    Empty input gives the all-zero result. The median is taken from a sorted
    copy, so the caller's order is untouched. Standard deviation is the
    population form (ddof=0).
    """
    data = numeric_values(values)
    if not data:
        return dict(_ZERO_STATS)
    arr = np.sort(np.asarray(data, dtype=float))
    n = len(arr)
    mid = n // 2
    median = (arr[mid - 1] + arr[mid]) / 2.0 if n % 2 == 0 else arr[mid]
    return {
        "min": float(arr[0]),
        "max": float(arr[-1]),
        "mean": float(arr.mean()),
        "median": float(median),
        "standardDeviation": float(arr.std(ddof=0)),
    }


def safe_mean(values):
    """Mean of the usable numbers in values; 0.0 when there are none."""
    data = numeric_values(values)
    return float(np.mean(data)) if data else 0.0


def percentage_change(current, previous):
    """(current - previous) / |previous| * 100.

    Returns 0 when previous is 0. That is an approximation (the change from
    zero is undefined), kept because the dashboard shows it as "no change".
    """
    if not previous:
        return 0.0
    return (current - previous) / abs(previous) * 100.0


def moving_average(values, period=3):
    """Trailing moving average; positions before the first full window are None."""
    out = []
    for i in range(len(values)):
        if i < period - 1:
            out.append(None)
        else:
            window = values[i - period + 1:i + 1]
            out.append(sum(window) / period)
    return out


# ---------------------------------------------------------------------------
# Pareto (80/20) ranking
# ---------------------------------------------------------------------------
def pareto_rank(items):
    """Rank {name, value} items descending and annotate cumulative share.

    Adds percentage, cumulative and cumulativePercentage (one decimal). The
    last cumulativePercentage is 100.0 whenever the total is positive.
    """
    ranked = sorted(items, key=lambda it: it["value"], reverse=True)
    total = sum(it["value"] for it in ranked)
    out = []
    cumulative = 0
    for it in ranked:
        cumulative += it["value"]
        pct = it["value"] / total * 100.0 if total else 0.0
        cum_pct = cumulative / total * 100.0 if total else 0.0
        out.append({
            "name": it["name"],
            "value": it["value"],
            "percentage": round(pct, 1),
            "cumulative": cumulative,
            "cumulativePercentage": round(cum_pct, 1),
        })
    return out


# ---------------------------------------------------------------------------
# Dates and month buckets
# ---------------------------------------------------------------------------
def parse_date(value):
    """Parse a date-like value to a pandas Timestamp, or None."""
    if is_placeholder(value):
        return None
    if isinstance(value, pd.Timestamp):
        ts = value
    elif isinstance(value, (datetime, date)):
        ts = pd.Timestamp(value)
    else:
        ts = pd.to_datetime(str(value).strip(), errors="coerce")
    if pd.isna(ts):
        return None
    # All timestamps are naive UTC
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def month_key(value):
    """YYYY-MM for a date-like value, or None when it cannot be read."""
    if isinstance(value, str) and ISO_DATE_PREFIX.match(value.strip()):
        return value.strip()[:7]
    ts = parse_date(value)
    if ts is None:
        return None
    return ts.strftime("%Y-%m")


def month_bucket(records, date_field="assembly_start", limit=12):
    """Group records by YYYY-MM of date_field, keeping the latest `limit` months.

    Keys are zero-padded, so lexicographic order is chronological. Records
    without a readable date are left out of the buckets.
    """
    groups = {}
    for rec in records:
        key = month_key(rec.get(date_field))
        if key is None:
            continue
        groups.setdefault(key, []).append(rec)
    keep = sorted(groups)[-limit:] if limit and limit > 0 else []
    return {k: groups[k] for k in keep}


def days_between(start, end):
    """Days from start to end as a float; None if unreadable, NaN or negative."""
    s = parse_date(start)
    e = parse_date(end)
    if s is None or e is None:
        return None
    days = (e - s).total_seconds() / 86400.0
    if math.isnan(days) or days < 0:
        return None
    return days


def group_by(items, field):
    """Group dict items by item[field]; order inside each group is kept."""
    groups = {}
    for item in items:
        groups.setdefault(item.get(field), []).append(item)
    return groups


# ---------------------------------------------------------------------------
# Correlation
# ---------------------------------------------------------------------------
def pearson(xs, ys):
    """Pearson correlation of two equal-length sequences; 0 when undefined."""
    if len(xs) != len(ys) or len(xs) < 2:
        return 0.0
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    dx = x - x.mean()
    dy = y - y.mean()
    denom = math.sqrt(float((dx * dx).sum()) * float((dy * dy).sum()))
    if denom == 0:
        return 0.0
    return float((dx * dy).sum()) / denom
