"""
Insight and recommendation engine
=================================
Cross-section heuristics for the Insights tab:

  * cycle time vs error correlation
  * bottleneck stages and mean + 2 sigma duration outliers
  * months with unusually high error rates, recurring error types
  * rule-based recommendations and root causes
  * a naive next-quarter RFT projection and cycle-time scenarios

Root causes and predictions are read off the other dashboard sections
rather than re-scanning the records, so the insight tab always agrees with
what the other tabs show.
"""

import pandas as pd

from log_config import get_logger
from pipeline_config import PipelineConfig
from quality_metrics import (
    OUTLIER_SIGMA,
    PROCESS_STAGES,
    correlation_observation,
    cycle_time_of,
    detect_outliers,
    stage_durations,
    stage_summary,
)
from stats_utils import group_by, month_key, pearson

logger = get_logger(__name__)

MIN_CORRELATION_POINTS = 10
SEASONAL_FACTOR = 1.2
RECURRING_MIN_OCCURRENCES = 3
NEGATIVE_SENTIMENT_CUTOFF = -0.2

# ---------------------------------------------------------------------------
# Recommendation lookup tables (key -> text, generic fallback per table)
# ---------------------------------------------------------------------------
FORM_RECOMMENDATIONS = {
    "Production Record": "Standardize production record format and implement digital templates",
    "Batch Release": "Implement electronic batch release system with built-in validation",
    "QC Checklist": "Redesign QC checklist with clear acceptance criteria",
    "Material Transfer": "Introduce barcode scanning for material transfer documentation",
    "Process Deviation": "Develop structured process deviation documentation workflow",
}
DEFAULT_FORM_RECOMMENDATION = "Standardize documentation and implement quality checks"

CUSTOMER_ISSUE_RECOMMENDATIONS = {
    "Documentation": "Implement structured document review process with customer requirements focus",
    "Quality": "Establish customer-specific quality acceptance criteria",
    "Delivery": "Implement real-time shipment tracking and communication system",
    "Packaging": "Review packaging specifications with customer input",
    "Other": "Create systematic customer feedback collection and response process",
}
DEFAULT_CUSTOMER_ISSUE_RECOMMENDATION = "Develop customer-centric improvement program"

PROCESS_RECOMMENDATIONS = {
    "Bulk Receipt": "Implement automated material receipt and verification system",
    "Assembly": "Apply SMED techniques to reduce setup times",
    "PCI Review": "Implement electronic review system with automated checks",
    "NN Review": "Establish parallel review workflow with real-time collaboration",
    "Packaging": "Implement one-piece flow and visual management",
    "Final Review": "Develop streamlined review checklist with critical focus areas",
    "Release": "Implement automated release notification system",
}
DEFAULT_PROCESS_RECOMMENDATION = "Apply lean methodologies to reduce process time"


def recommendation_for(table, key, default):
    """Look up recommendation text for key, falling back to default."""
    return table.get(key, default)


def empty_insights():
    return {
        "correlations": {},
        "bottleneckAnalysis": {"stages": [], "bottleneck": "", "outliers": []},
        "patternAnalysis": {"seasonalTrends": [], "recurringIssues": []},
        "recommendations": [],
        "rootCauses": [],
        "predictions": {"rft": [], "cycle": []},
    }


# ---------------------------------------------------------------------------
# Record-level analyses
# ---------------------------------------------------------------------------
def cycle_time_error_correlation(records):
    """Pearson r of cycle time vs the 0/1 error flag; None below the point minimum."""
    points = [(cycle_time_of(r), 1.0 if r.get("hasErrors") else 0.0) for r in records]
    points = [(ct, err) for ct, err in points if ct is not None]
    if len(points) <= MIN_CORRELATION_POINTS:
        return None
    return pearson([p[0] for p in points], [p[1] for p in points])


def bottleneck_analysis(records, sigma=OUTLIER_SIGMA):
    """Per-stage duration summary, the slowest stage and all outliers."""
    stages = []
    outliers = []
    for stage in PROCESS_STAGES:
        durations = stage_durations(records, stage)
        if not durations:
            continue
        stages.append(stage_summary(stage["name"], durations))
        outliers.extend(detect_outliers(durations, stage["name"], sigma))

    stages.sort(key=lambda s: s["avgDuration"], reverse=True)
    outliers.sort(key=lambda o: o["duration"], reverse=True)
    return {
        "stages": stages,
        "bottleneck": stages[0]["name"] if stages else "",
        "outliers": outliers,
    }


def _months(records, date_field="assembly_start"):
    groups = {}
    for rec in records:
        key = month_key(rec.get(date_field))
        if key is not None:
            groups.setdefault(key, []).append(rec)
    return groups


def seasonal_trends(records, factor=SEASONAL_FACTOR):
    """Months whose error rate is more than factor x the average monthly error rate."""
    all_months = _months(records)
    error_months = _months([r for r in records if r.get("hasErrors")])
    rates = {
        month: len(errs) / len(all_months[month])
        for month, errs in error_months.items()
        if all_months.get(month)
    }
    if not rates:
        return []
    avg_rate = sum(rates.values()) / len(rates)
    high = [
        {"month": month, "errorRate": rate * 100.0, "isHigh": True}
        for month, rate in rates.items()
        if rate > avg_rate * factor
    ]
    return sorted(high, key=lambda m: m["errorRate"], reverse=True)


def recurring_issues(records, min_occurrences=RECURRING_MIN_OCCURRENCES):
    """Error types seen at least min_occurrences times, with the batches involved."""
    occurrences = []
    for rec in records:
        if not rec.get("hasErrors"):
            continue
        for etype in rec.get("errorTypes") or []:
            occurrences.append({"type": etype, "batchId": rec.get("batchId"), "date": rec.get("assembly_start")})

    issues = []
    for etype, occ in group_by(occurrences, "type").items():
        if len(occ) < min_occurrences:
            continue
        dates = sorted(o["date"] for o in occ if o["date"])
        issues.append({
            "type": etype,
            "occurrences": len(occ),
            "batches": [o["batchId"] for o in occ],
            "firstSeen": dates[0] if dates else None,
            "lastSeen": dates[-1] if dates else None,
        })
    return sorted(issues, key=lambda i: i["occurrences"], reverse=True)


def build_recommendations(bottlenecks, correlation, seasonal, recurring):
    recs = []
    if bottlenecks["bottleneck"]:
        avg = bottlenecks["stages"][0]["avgDuration"]
        recs.append({
            "area": "Process Optimization",
            "recommendation": (
                f"Focus on optimizing the {bottlenecks['bottleneck']} stage which has the "
                f"longest average duration ({avg:.1f} days)."
            ),
        })
    if correlation is not None and abs(correlation) > 0.4:
        if correlation > 0:
            direction = "positive"
            advice = "Consider reviewing quality control for longer cycle time batches."
        else:
            direction = "negative"
            advice = ("Faster processing may be associated with more errors, suggesting a need "
                      "for balancing speed and quality.")
        recs.append({
            "area": "Quality Improvement",
            "recommendation": (
                f"There is a {direction} correlation ({correlation:.2f}) between cycle time "
                f"and error rate. {advice}"
            ),
        })
    if recurring:
        top = recurring[0]
        recs.append({
            "area": "Error Reduction",
            "recommendation": (
                f'Prioritize addressing "{top["type"]}" errors which have occurred '
                f'{top["occurrences"]} times across multiple batches.'
            ),
        })
    if seasonal:
        months = ", ".join(m["month"] for m in seasonal[:2])
        recs.append({
            "area": "Resource Planning",
            "recommendation": (
                f"Consider additional quality checks during {months} which show higher "
                f"than average error rates."
            ),
        })
    return recs


# ---------------------------------------------------------------------------
# Root causes, read off the other sections
# ---------------------------------------------------------------------------
def _trend_label(trend):
    return {"up": "Increasing", "down": "Decreasing"}.get(trend, "Stable")


def root_causes(internal_rft=None, external_rft=None, process_metrics=None):
    """Top error forms, worst customer issues, slowest stage and longest wait."""
    causes = []

    for form in ((internal_rft or {}).get("formErrors") or [])[:3]:
        causes.append({
            "category": "Documentation",
            "issue": f"{form['name']} Errors",
            "count": form["errors"],
            "impact": _trend_label(form.get("trend")),
            "recommendation": recommendation_for(
                FORM_RECOMMENDATIONS, form["name"], DEFAULT_FORM_RECOMMENDATION),
        })

    comments = (external_rft or {}).get("customerComments") or []
    negative = sorted(
        (c for c in comments if c.get("sentimentScore", 0) < NEGATIVE_SENTIMENT_CUTOFF),
        key=lambda c: c["sentimentScore"],
    )
    for comment in negative[:2]:
        causes.append({
            "category": "Customer Feedback",
            "issue": f"{comment['name']} Issues",
            "count": comment["count"],
            "impact": "High",
            "recommendation": recommendation_for(
                CUSTOMER_ISSUE_RECOMMENDATIONS, comment["name"], DEFAULT_CUSTOMER_ISSUE_RECOMMENDATION),
        })

    process_metrics = process_metrics or {}
    breakdown = process_metrics.get("cycleTimeBreakdown") or []
    if breakdown:
        slowest = max(breakdown, key=lambda s: s["time"])
        causes.append({
            "category": "Process",
            "issue": f"{slowest['step']} Duration",
            "count": round(slowest["time"]),
            "impact": "High",
            "recommendation": recommendation_for(
                PROCESS_RECOMMENDATIONS, slowest["step"], DEFAULT_PROCESS_RECOMMENDATION),
        })

    waits = process_metrics.get("waitingTimes") or []
    if waits:
        longest = max(waits, key=lambda w: w["time"])
        causes.append({
            "category": "Process",
            "issue": f"Waiting Time: {longest['from']} -> {longest['to']}",
            "count": round(longest["time"]),
            "impact": "Medium",
            "recommendation": f"Implement pull system between {longest['from']} and {longest['to']} steps",
        })

    return causes


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------
def forecast_rft(monthly_rates, periods=3, jitter=0.0, rng=None):
    """Project the next `periods` monthly RFT rates.

    Linear extrapolation of the average month-over-month change across the
    trailing three months. With jitter > 0 each point is nudged by a uniform
    draw from [-jitter, jitter] using rng (a random.Random). Results are
    clamped to [0, 100] and rounded to one decimal.
    """
    if len(monthly_rates) < 2:
        return []
    window = list(monthly_rates[-3:])
    trend = (window[-1] - window[0]) / (len(window) - 1)
    last = monthly_rates[-1]

    out = []
    for i in range(periods):
        value = last + trend * (i + 1)
        if jitter:
            if rng is None:
                raise ValueError("forecast jitter needs a random source")
            value += jitter * (rng.random() * 2 - 1)
        out.append(round(min(100.0, max(0.0, value)), 1))
    return out


def _next_months(last_month, periods):
    start = pd.Period(last_month, freq="M")
    return [str(start + i) for i in range(1, periods + 1)]


def cycle_time_scenarios(process_metrics):
    """Current / Optimized / Target process and waiting time in days.

    Optimized trims process time by 10% and waiting time by 30%. Target is
    a 30% cut of the current total with process time at 80% of today's.
    """
    breakdown = (process_metrics or {}).get("cycleTimeBreakdown") or []
    if not breakdown:
        return []
    process_time = sum(s["time"] for s in breakdown)
    waits = (process_metrics or {}).get("waitingTimes") or []
    waiting_time = sum(w["time"] for w in waits) if waits else process_time * 0.3

    target_total = ((process_metrics.get("totalCycleTime") or {}).get("target")
                    or (process_time + waiting_time) * 0.7)
    target_process = process_time * 0.8

    def scenario(name, proc, wait, total=None):
        return {
            "scenario": name,
            "processTime": round(proc, 1),
            "waitingTime": round(wait, 1),
            "totalTime": round(proc + wait if total is None else total, 1),
        }

    return [
        scenario("Current", process_time, waiting_time),
        scenario("Optimized", process_time * 0.9, waiting_time * 0.7),
        scenario("Target", target_process, target_total - target_process, target_total),
    ]


def build_predictions(overview, process_metrics, config):
    monthly = (overview or {}).get("monthlyMetrics") or []
    rates = [m["rftRate"] for m in monthly]
    rng = config.make_rng() if config.forecast_jitter else None
    values = forecast_rft(rates, config.forecast_periods, config.forecast_jitter, rng)
    rft = []
    if values:
        months = _next_months(monthly[-1]["month"], len(values))
        rft = [{"month": m, "predicted": v, "actual": None} for m, v in zip(months, values)]
    return {"rft": rft, "cycle": cycle_time_scenarios(process_metrics)}


# ---------------------------------------------------------------------------
# Section builder
# ---------------------------------------------------------------------------
def build_insights(records, prior_sections=None, config=None):
    """Insights section from the records plus the already-built sections.

    prior_sections may hold overview, internalRFT, externalRFT and
    processMetrics; anything missing simply contributes nothing.
    """
    cfg = config if config is not None else PipelineConfig()
    prior = prior_sections or {}
    if not records:
        logger.warning("No records available for Insights section")
        return empty_insights()

    correlation = cycle_time_error_correlation(records)
    correlations = {}
    if correlation is not None:
        correlations["cycleTimeErrorRate"] = correlation
        correlations["observation"] = correlation_observation(
            correlation, 0, subject="cycle time and error rate")

    bottlenecks = bottleneck_analysis(records)
    seasonal = seasonal_trends(records)
    recurring = recurring_issues(records)

    return {
        "correlations": correlations,
        "bottleneckAnalysis": bottlenecks,
        "patternAnalysis": {"seasonalTrends": seasonal, "recurringIssues": recurring},
        "recommendations": build_recommendations(bottlenecks, correlation, seasonal, recurring),
        "rootCauses": root_causes(
            prior.get("internalRFT"), prior.get("externalRFT"), prior.get("processMetrics")),
        "predictions": build_predictions(prior.get("overview"), prior.get("processMetrics"), cfg),
    }
