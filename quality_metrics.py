"""
Quality metric calculators
==========================
Right-first-time rate, cycle time, error-type ranking, feedback sentiment,
internal/external lag correlation and mean + 2 sigma outlier detection.
All inputs are canonical records from record_normalization.
"""

from collections import Counter

from stats_utils import days_between, is_number, parse_date, pearson, safe_mean, statistics

INTERNAL_SOURCES = {"Internal", "Process"}
EXTERNAL_SOURCES = {"External"}

# ---------------------------------------------------------------------------
# Process stages: pre-computed duration field, else the timestamp pair
# ---------------------------------------------------------------------------
PROCESS_STAGES = [
    {"name": "Assembly", "field": "assembly_cycle_time",
     "start": "assembly_start", "end": "assembly_finish"},
    {"name": "PCI Review", "field": "pci_wip_review_cycle_time",
     "start": "date_pci_l_a_br_review_date", "end": "date_nn_l_a_br_review_date"},
    {"name": "NN Review", "field": "nn_wip_review_cycle_time",
     "start": "date_nn_l_a_br_review_date", "end": "packaging_start"},
    {"name": "Packaging", "field": None,
     "start": "packaging_start", "end": "packaging_finish"},
]

# ---------------------------------------------------------------------------
# Sentiment keyword sets (bag-of-words match)
# ---------------------------------------------------------------------------
POSITIVE_WORDS = ["good", "great", "excellent", "satisfied", "happy", "resolved", "thank"]
NEGATIVE_WORDS = ["bad", "poor", "disappointed", "issue", "problem", "delay", "fail"]

OUTLIER_SIGMA = 2.0


def internal_records(records):
    return [r for r in records if r.get("source") in INTERNAL_SOURCES]


def external_records(records):
    return [r for r in records if r.get("source") in EXTERNAL_SOURCES]


def untagged_records(records):
    """Records that count toward neither the internal nor the external view."""
    tagged = INTERNAL_SOURCES | EXTERNAL_SOURCES
    return [r for r in records if r.get("source") not in tagged]


# ---------------------------------------------------------------------------
# RFT and cycle time
# ---------------------------------------------------------------------------
def rft_rate(records):
    """Percent of records without errors; 0 for an empty list."""
    if not records:
        return 0.0
    passing = sum(1 for r in records if not r.get("hasErrors"))
    return passing / len(records) * 100.0


def cycle_time_of(record):
    """Overall cycle time in days: cycleTime, else total_cycle_time_days."""
    for field in ("cycleTime", "total_cycle_time_days"):
        val = record.get(field)
        if is_number(val) and val:
            return float(val)
    return None


def average_cycle_time(records):
    return safe_mean([cycle_time_of(r) for r in records])


def stage_duration(record, stage):
    """Days spent in a process stage, or None.

    A non-negative pre-computed value wins; otherwise the stage's timestamp
    pair is used, and negative differences are discarded.
    """
    field = stage.get("field")
    if field:
        val = record.get(field)
        if is_number(val) and val >= 0:
            return float(val)
    return days_between(record.get(stage["start"]), record.get(stage["end"]))


def stage_durations(records, stage):
    """[{batchId, duration}] for every record with a usable stage duration."""
    out = []
    for rec in records:
        duration = stage_duration(rec, stage)
        if duration is not None:
            out.append({"batchId": rec.get("batchId"), "duration": duration})
    return out


# ---------------------------------------------------------------------------
# Error-type ranking
# ---------------------------------------------------------------------------
def count_error_types(records):
    """Occurrences of each error type across records flagged with errors."""
    counts = Counter()
    for rec in records:
        if not rec.get("hasErrors"):
            continue
        for etype in rec.get("errorTypes") or []:
            counts[etype] += 1
    return counts


def rank_error_types(records, top_n=3):
    """Top-N error types as {name, count, percentage} sorted by count."""
    counts = count_error_types(records)
    total = sum(counts.values())
    if not total:
        return []
    # Counter.most_common keeps first-seen order among equal counts.
    ranked = counts.most_common()
    return [
        {"name": name, "count": count, "percentage": count / total * 100.0}
        for name, count in ranked[:top_n]
    ]


def determine_trend(records, date_field="assembly_start"):
    """'up', 'down' or 'flat' for how often an issue shows up over time.

    Splits the dated records at the midpoint of their date span and compares
    the counts: more than 20% more in the later half is 'up', more than 20%
    fewer is 'down'.
    """
    dates = [d for d in (parse_date(r.get(date_field)) for r in records) if d is not None]
    if len(dates) < 2:
        return "flat"
    lo, hi = min(dates), max(dates)
    if lo == hi:
        return "flat"
    mid = lo + (hi - lo) / 2
    earlier = sum(1 for d in dates if d < mid)
    later = len(dates) - earlier
    if later > earlier * 1.2:
        return "up"
    if later < earlier * 0.8:
        return "down"
    return "flat"


# ---------------------------------------------------------------------------
# Sentiment
# ---------------------------------------------------------------------------
def classify_sentiment(text):
    """positive / negative / neutral from fixed keyword sets.

    Only positive words -> positive, only negative -> negative, both or
    neither -> neutral.
    """
    if not text or not isinstance(text, str):
        return "neutral"
    lower = text.lower()
    positive = any(w in lower for w in POSITIVE_WORDS)
    negative = any(w in lower for w in NEGATIVE_WORDS)
    if positive and not negative:
        return "positive"
    if negative and not positive:
        return "negative"
    return "neutral"


def feedback_text(record):
    return record.get("feedback") or record.get("comments")


def group_sentiment(records):
    """Sentiment label and score for a group of feedback records.

    Score is (positives - negatives) / classified feedback, in [-1, 1].
    """
    labels = [classify_sentiment(feedback_text(r)) for r in records if feedback_text(r)]
    pos = labels.count("positive")
    neg = labels.count("negative")
    if pos > neg * 1.5:
        label = "positive"
    elif neg > pos:
        label = "negative"
    else:
        label = "neutral"
    score = (pos - neg) / len(labels) if labels else 0.0
    return label, round(score, 2)


# ---------------------------------------------------------------------------
# Lag correlation between internal and external monthly RFT
# ---------------------------------------------------------------------------
def lag_correlation(internal_series, external_series, max_lag=3, min_pairs=3):
    """Find the lag (in periods) where internal best predicts external.

    Pairs internal[i - lag] with external[i] for every lag in 0..max_lag,
    skipping points where either value is 0 (no records that month). A lag
    needs at least min_pairs pairs. The first lag with a strictly larger
    |r| wins; with no qualifying lag the result is {0, 0}.
    """
    best_r = 0.0
    best_lag = 0
    n = min(len(internal_series), len(external_series))
    for lag in range(max_lag + 1):
        xs, ys = [], []
        for i in range(lag, n):
            internal = internal_series[i - lag]
            external = external_series[i]
            if internal > 0 and external > 0:
                xs.append(internal)
                ys.append(external)
        if len(xs) < min_pairs:
            continue
        r = pearson(xs, ys)
        if abs(r) > abs(best_r):
            best_r = r
            best_lag = lag
    return {"correlation": best_r, "lagTime": best_lag}


def correlation_observation(correlation, lag, subject="internal and external RFT"):
    """One-line reading of a correlation for the dashboard."""
    if correlation > 0.7:
        return f"Strong positive correlation ({correlation:.2f}) between {subject} with a {lag} month lag."
    if correlation > 0.4:
        return f"Moderate correlation ({correlation:.2f}) between {subject} with a {lag} month lag."
    if correlation > 0:
        return f"Weak correlation ({correlation:.2f}) between {subject} with a {lag} month lag."
    return f"No positive correlation found between {subject}."


# ---------------------------------------------------------------------------
# Bottlenecks: mean + 2 sigma outliers per stage
# ---------------------------------------------------------------------------
def outlier_threshold(values, sigma=OUTLIER_SIGMA):
    stats = statistics(values)
    return stats["mean"] + sigma * stats["standardDeviation"]


def detect_outliers(durations, stage, sigma=OUTLIER_SIGMA, threshold=None):
    """Flag durations at or above mean + sigma*std (inclusive).

    durations is a list of {batchId, duration}. Pass threshold to reuse a
    limit computed elsewhere. Each outlier carries the threshold so the
    dashboard can show how far over it was.
    """
    if not durations:
        return []
    if threshold is None:
        threshold = outlier_threshold([d["duration"] for d in durations], sigma)
    return [
        {
            "batchId": d.get("batchId"),
            "stage": stage,
            "duration": d["duration"],
            "threshold": threshold,
        }
        for d in durations
        if d["duration"] >= threshold
    ]


def stage_summary(stage, durations):
    """Per-stage duration statistics in the shape the bottleneck view uses."""
    stats = statistics([d["duration"] for d in durations])
    return {
        "name": stage,
        "count": len(durations),
        "avgDuration": stats["mean"],
        "medianDuration": stats["median"],
        "minDuration": stats["min"],
        "maxDuration": stats["max"],
        "stdDev": stats["standardDeviation"],
    }
