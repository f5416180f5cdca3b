"""
Dashboard section builders
==========================
One builder per dashboard tab. Each takes the shared list of canonical
records and returns a self-contained, JSON-ready dict:

  Overview            -> build_overview
  Internal RFT        -> build_internal_rft
  External RFT        -> build_external_rft
  Process Metrics     -> build_process_metrics
  Commercial Process  -> build_commercial_process
  Deviations / G7     -> build_placeholder

Builders never mutate the records and never depend on each other's output,
so they can run in any order. With nothing to work on they return the
matching empty_* shape, which the dashboard shows as "no data".
"""

from log_config import get_logger
from pipeline_config import PipelineConfig
from quality_metrics import (
    PROCESS_STAGES,
    average_cycle_time,
    correlation_observation,
    cycle_time_of,
    determine_trend,
    external_records,
    group_sentiment,
    internal_records,
    lag_correlation,
    rank_error_types,
    rft_rate,
    stage_durations,
)
from record_normalization import PRIMARY_DATE_FIELD
from stats_utils import (
    days_between,
    group_by,
    is_number,
    month_bucket,
    moving_average,
    pareto_rank,
    percentage_change,
    safe_mean,
    statistics,
)

logger = get_logger(__name__)

IMPROVEMENT_WINDOW = 6  # months per side of the recent-vs-previous comparison

REVIEW_DATE_FIELDS = [
    "date_pci_l_a_br_review_date",
    "date_nn_l_a_br_review_date",
    "date_pci_pack_review_date",
    "date_nn_pack_review_date",
]

# Sequential steps of the review/release flow, in process order.
FLOW_STEPS = [
    ("PCI L/A BR Review", "date_pci_l_a_br_review_date"),
    ("NN L/A BR Review", "date_nn_l_a_br_review_date"),
    ("PCI Packaging Review", "date_pci_pack_review_date"),
    ("NN Packaging Review", "date_nn_pack_review_date"),
    ("Release", "release"),
]

RESOLVED_STATUSES = {"closed", "resolved"}
PENDING_STATUSES = {"open", "pending"}

PLACEHOLDER_SECTIONS = {
    "deviations": {
        "info": "This tab is a placeholder for future implementation of Deviations/Events tracking.",
        "plannedFunctionality": [
            "Event timeline visualization",
            "Deviation severity tracking",
            "CAPA management integration",
            "Compliance impact assessment",
        ],
        "expectedDataSources": [
            "Deviation management system",
            "Quality event database",
            "Regulatory submission records",
        ],
    },
    "g7Performance": {
        "info": "This tab is a placeholder for future implementation of G7 Performance Qualifications tracking.",
        "plannedFunctionality": [
            "Qualification status tracking",
            "Performance trending",
            "Validation lifecycle management",
            "Equipment efficiency metrics",
        ],
        "expectedDataSources": [
            "Equipment qualification records",
            "Engineering maintenance system",
            "Performance qualification protocols",
        ],
    },
}


def _config(config):
    return config if config is not None else PipelineConfig()


def _status(record):
    return (record.get("status") or "").strip().lower()


def _rate(part, whole):
    return part / whole * 100.0 if whole else 0.0


def _lot_key(record):
    return record.get("lot") or record.get("batchId")


# =========================================================================
# Overview
# =========================================================================

def empty_overview():
    return {
        "totalRecords": 0,
        "totalLots": 0,
        "overallRFTRate": 0.0,
        "avgCycleTime": 0.0,
        "monthlyMetrics": [],
        "topIssues": [],
        "rftPerformance": [{"name": "Pass", "value": 0}, {"name": "Fail", "value": 0}],
        "issueDistribution": [],
    }


def _improvement_summary(monthly_groups):
    """Recent 6 months vs the 6 before; None with under 12 months of history."""
    months = sorted(monthly_groups)
    if len(months) < IMPROVEMENT_WINDOW * 2:
        return None
    recent = [r for m in months[-IMPROVEMENT_WINDOW:] for r in monthly_groups[m]]
    previous = [r for m in months[-IMPROVEMENT_WINDOW * 2:-IMPROVEMENT_WINDOW] for r in monthly_groups[m]]
    recent_rft = rft_rate(recent)
    previous_rft = rft_rate(previous)
    recent_ct = average_cycle_time(recent)
    previous_ct = average_cycle_time(previous)
    return {
        "recentRFT": recent_rft,
        "previousRFT": previous_rft,
        "rftChange": percentage_change(recent_rft, previous_rft),
        "recentAvgCycleTime": recent_ct,
        "previousAvgCycleTime": previous_ct,
        "cycleTimeChange": percentage_change(recent_ct, previous_ct),
    }


def build_overview(records, config=None):
    cfg = _config(config)
    if not records:
        return empty_overview()

    monthly_groups = month_bucket(records, PRIMARY_DATE_FIELD, cfg.month_window)
    monthly_metrics = [
        {
            "month": month,
            "displayMonth": month.split("-")[1],
            "rftRate": rft_rate(month_records),
            "avgCycleTime": average_cycle_time(month_records),
            "recordCount": len(month_records),
        }
        for month, month_records in monthly_groups.items()
    ]

    passing = sum(1 for r in records if not r.get("hasErrors"))
    internal = internal_records(records)
    external = external_records(records)
    on_hold = sum(1 for r in records if r.get("stage") and _status(r) == "on hold")

    section = {
        "totalRecords": len(records),
        "totalLots": len({_lot_key(r) for r in records if _lot_key(r)}),
        "overallRFTRate": rft_rate(records),
        "avgCycleTime": average_cycle_time(records),
        "monthlyMetrics": monthly_metrics,
        "topIssues": rank_error_types(records, cfg.top_issue_count),
        "rftPerformance": [
            {"name": "Pass", "value": passing},
            {"name": "Fail", "value": len(records) - passing},
        ],
        "issueDistribution": [
            {"name": "Form Errors", "value": sum(1 for r in internal if r.get("hasErrors"))},
            {"name": "Customer Issues", "value": len(external)},
            {"name": "Process Delays", "value": on_hold},
        ],
    }
    improvement = _improvement_summary(monthly_groups)
    if improvement is not None:
        section["improvementSummary"] = improvement
    return section


# =========================================================================
# Internal RFT
# =========================================================================

def empty_internal_rft():
    return {
        "recordCount": 0,
        "internalRFT": 0.0,
        "summary": {"totalRecords": 0, "passingRecords": 0, "failingRecords": 0, "rftRate": 0.0},
        "monthlyRFT": [],
        "errorPareto": [],
        "formErrors": [],
        "processComparison": {
            "assembly": {"recordCount": 0, "rftRate": 0.0, "avgCycleTime": 0.0},
            "packaging": {"recordCount": 0, "rftRate": 0.0, "avgCycleTime": 0.0},
        },
        "problematicLots": [],
    }


def _form_errors(records):
    """Every error type with its count and occurrence trend, most frequent first."""
    by_type = {}
    for rec in records:
        if not rec.get("hasErrors"):
            continue
        for etype in rec.get("errorTypes") or []:
            by_type.setdefault(etype, []).append(rec)
    rows = [
        {"name": name, "errors": len(recs), "trend": determine_trend(recs, PRIMARY_DATE_FIELD)}
        for name, recs in by_type.items()
    ]
    return sorted(rows, key=lambda r: r["errors"], reverse=True)


def _stage_comparison(records, stage_name):
    stage = next(s for s in PROCESS_STAGES if s["name"] == stage_name)
    in_stage = [r for r in records if r.get(stage["start"]) and r.get(stage["end"])]
    durations = [d["duration"] for d in stage_durations(in_stage, stage)]
    return {
        "recordCount": len(in_stage),
        "rftRate": rft_rate(in_stage),
        "avgCycleTime": safe_mean(durations),
    }


def build_internal_rft(records, config=None):
    cfg = _config(config)
    internal = internal_records(records or [])
    if not internal:
        logger.warning("No internal records found for Internal RFT section")
        return empty_internal_rft()

    passing = sum(1 for r in internal if not r.get("hasErrors"))
    monthly_groups = month_bucket(internal, PRIMARY_DATE_FIELD, cfg.month_window)
    top_errors = rank_error_types(internal, 10)

    monthly_rft = [
        {"month": month, "rftRate": rft_rate(recs), "recordCount": len(recs)}
        for month, recs in monthly_groups.items()
    ]
    # 3-month trailing average for the trend line
    smoothed = moving_average([m["rftRate"] for m in monthly_rft], 3)
    for row, avg in zip(monthly_rft, smoothed):
        row["movingAverage"] = avg

    problematic = sorted(
        (r for r in internal if r.get("hasErrors") and r.get("errorCount", 0) > 1),
        key=lambda r: r.get("errorCount", 0),
        reverse=True,
    )[:5]

    return {
        "recordCount": len(internal),
        "internalRFT": rft_rate(internal),
        "summary": {
            "totalRecords": len(internal),
            "passingRecords": passing,
            "failingRecords": len(internal) - passing,
            "rftRate": round(rft_rate(internal), 1),
        },
        "monthlyRFT": monthly_rft,
        "errorPareto": pareto_rank([{"name": e["name"], "value": e["count"]} for e in top_errors]),
        "formErrors": _form_errors(internal),
        "processComparison": {
            "assembly": _stage_comparison(internal, "Assembly"),
            "packaging": _stage_comparison(internal, "Packaging"),
        },
        "problematicLots": [
            {
                "batchId": r.get("batchId"),
                "errorCount": r.get("errorCount", 0),
                "date": r.get(PRIMARY_DATE_FIELD),
                "errorTypes": list(r.get("errorTypes") or []),
            }
            for r in problematic
        ],
    }


# =========================================================================
# External RFT
# =========================================================================

def empty_external_rft():
    return {
        "recordCount": 0,
        "externalRFT": 0.0,
        "internalRFT": 0.0,
        "summary": {
            "totalComplaints": 0,
            "resolvedComplaints": 0,
            "pendingComplaints": 0,
            "resolutionRate": 0.0,
            "openRate": 0.0,
        },
        "monthlyComparison": [],
        "topIssues": [],
        "issuePareto": [],
        "customerComments": [],
        "impactAnalysis": {"correlation": 0.0, "lagTime": 0, "observations": []},
    }


def _complaint_summary(external):
    """Resolution counts; open rate falls back to the error share when no status is recorded."""
    resolved = sum(1 for r in external if _status(r) in RESOLVED_STATUSES)
    pending = sum(1 for r in external if _status(r) in PENDING_STATUSES)
    resolution_rate = _rate(resolved, len(external))
    if any(_status(r) for r in external):
        open_rate = 100.0 - resolution_rate
    else:
        open_rate = 100.0 - rft_rate(external)
    return {
        "totalComplaints": len(external),
        "resolvedComplaints": resolved,
        "pendingComplaints": pending,
        "resolutionRate": round(resolution_rate, 1),
        "openRate": round(open_rate, 1),
    }


def _customer_comments(external):
    """Complaint groups by primary issue type with their feedback sentiment."""
    groups = {}
    for rec in external:
        types = rec.get("errorTypes") or []
        if types:
            groups.setdefault(types[0], []).append(rec)
    rows = []
    for name, recs in groups.items():
        label, score = group_sentiment(recs)
        rows.append({"name": name, "count": len(recs), "sentiment": label, "sentimentScore": score})
    return sorted(rows, key=lambda r: r["count"], reverse=True)


def build_external_rft(records, config=None):
    cfg = _config(config)
    external = external_records(records or [])
    if not external:
        logger.warning("No external records found for External RFT section")
        return empty_external_rft()

    internal = internal_records(records)
    ext_months = month_bucket(external, PRIMARY_DATE_FIELD, cfg.month_window)
    int_months = month_bucket(internal, PRIMARY_DATE_FIELD, cfg.month_window)

    monthly_comparison = []
    for month in sorted(set(ext_months) | set(int_months)):
        ext = ext_months.get(month, [])
        intl = int_months.get(month, [])
        monthly_comparison.append({
            "month": month,
            "externalRFT": rft_rate(ext),
            "internalRFT": rft_rate(intl),
            "externalCount": len(ext),
            "internalCount": len(intl),
        })

    lag = lag_correlation(
        [m["internalRFT"] for m in monthly_comparison],
        [m["externalRFT"] for m in monthly_comparison],
        max_lag=cfg.max_lag,
    )

    return {
        "recordCount": len(external),
        "externalRFT": rft_rate(external),
        "internalRFT": rft_rate(internal),
        "summary": _complaint_summary(external),
        "monthlyComparison": monthly_comparison,
        "topIssues": rank_error_types(external, 5),
        "issuePareto": pareto_rank([{"name": e["name"], "value": e["count"]}
                                    for e in rank_error_types(external, 10)]),
        "customerComments": _customer_comments(external),
        "impactAnalysis": {
            "correlation": lag["correlation"],
            "lagTime": lag["lagTime"],
            "observations": [correlation_observation(lag["correlation"], lag["lagTime"])],
        },
    }


# =========================================================================
# Process Metrics
# =========================================================================

def empty_process_metrics():
    return {
        "recordCount": 0,
        "processFlowMetrics": [],
        "timeMetricsStats": {
            "nnReviewTime": statistics([]),
            "pciCorrectionTime": statistics([]),
            "nnAlignmentTime": statistics([]),
        },
        "monthlyProcessMetrics": [],
        "cycleTimeBreakdown": [],
        "waitingTimes": [],
        "totalCycleTime": {"average": 0.0, "minimum": 0.0, "maximum": 0.0},
    }


def _time_metrics(records):
    """NN review time (from the two L/A BR review dates) plus the two WIP review cycle times."""
    metrics = {"nnReviewTime": [], "pciCorrectionTime": [], "nnAlignmentTime": []}
    for rec in records:
        nn_review = days_between(rec.get("date_pci_l_a_br_review_date"), rec.get("date_nn_l_a_br_review_date"))
        if nn_review is not None:
            metrics["nnReviewTime"].append(nn_review)
        pci = rec.get("pci_wip_review_cycle_time")
        if is_number(pci) and pci:
            metrics["pciCorrectionTime"].append(float(pci))
        nn = rec.get("nn_wip_review_cycle_time")
        if is_number(nn) and nn:
            metrics["nnAlignmentTime"].append(float(nn))
    return metrics


def _waiting_times(records):
    """Average days between consecutive flow steps, skipping negative gaps."""
    out = []
    for (from_name, from_field), (to_name, to_field) in zip(FLOW_STEPS, FLOW_STEPS[1:]):
        gaps = [days_between(r.get(from_field), r.get(to_field)) for r in records]
        gaps = [g for g in gaps if g is not None]
        if gaps:
            out.append({"from": from_name, "to": to_name, "time": safe_mean(gaps), "count": len(gaps)})
    return out


def build_process_metrics(records, config=None):
    cfg = _config(config)
    process = [r for r in records or [] if any(r.get(f) for f in REVIEW_DATE_FIELDS)]
    if not process:
        logger.warning("No records with review dates found for Process Metrics section")
        return empty_process_metrics()

    flow_metrics = [
        {
            "batchId": rec.get("batchId"),
            "steps": [{"name": name, "date": rec[field]} for name, field in FLOW_STEPS if rec.get(field)],
        }
        for rec in process
    ]

    time_metrics = _time_metrics(process)
    monthly = []
    for month, recs in month_bucket(process, PRIMARY_DATE_FIELD, cfg.month_window).items():
        m = _time_metrics(recs)
        monthly.append({
            "month": month,
            "nnReviewTime": safe_mean(m["nnReviewTime"]),
            "pciCorrectionTime": safe_mean(m["pciCorrectionTime"]),
            "nnAlignmentTime": safe_mean(m["nnAlignmentTime"]),
            "totalProcessTime": average_cycle_time(recs),
            "recordCount": len(recs),
        })

    breakdown = []
    for stage in PROCESS_STAGES:
        durations = stage_durations(process, stage)
        if durations:
            breakdown.append({
                "step": stage["name"],
                "time": safe_mean([d["duration"] for d in durations]),
                "count": len(durations),
            })

    totals = statistics([cycle_time_of(r) for r in process])
    return {
        "recordCount": len(process),
        "processFlowMetrics": flow_metrics,
        "timeMetricsStats": {name: statistics(vals) for name, vals in time_metrics.items()},
        "monthlyProcessMetrics": monthly,
        "cycleTimeBreakdown": breakdown,
        "waitingTimes": _waiting_times(process),
        "totalCycleTime": {"average": totals["mean"], "minimum": totals["min"], "maximum": totals["max"]},
    }


# =========================================================================
# Commercial Process
# =========================================================================

def empty_commercial_process():
    return {
        "recordCount": 0,
        "summary": {
            "totalLots": 0,
            "completedLots": 0,
            "inProgressLots": 0,
            "onHoldLots": 0,
            "completionRate": 0.0,
        },
        "processFlow": [],
    }


def build_commercial_process(records, config=None):
    """Stage-tracked lots: completion status and per-stage duration/deviation rates."""
    staged = [r for r in records or [] if r.get("stage")]
    if not staged:
        logger.warning("No stage-tracked records found for Commercial Process section")
        return empty_commercial_process()

    completed = sum(1 for r in staged if _status(r) == "completed")
    flow = []
    for stage, recs in group_by(staged, "stage").items():
        deviations = sum(1 for r in recs if r.get("deviation"))
        flow.append({
            "name": stage,
            "count": len(recs),
            "avgDuration": round(safe_mean([r.get("duration") for r in recs]), 1),
            "deviationRate": round(_rate(deviations, len(recs)), 1),
        })

    return {
        "recordCount": len(staged),
        "summary": {
            "totalLots": len(staged),
            "completedLots": completed,
            "inProgressLots": sum(1 for r in staged if _status(r) == "in progress"),
            "onHoldLots": sum(1 for r in staged if _status(r) == "on hold"),
            "completionRate": round(_rate(completed, len(staged)), 1),
        },
        "processFlow": flow,
    }


# =========================================================================
# Placeholder tabs
# =========================================================================

def build_placeholder(name):
    """Static description of a tab that has no data feed yet."""
    section = PLACEHOLDER_SECTIONS[name]
    return {
        "info": section["info"],
        "plannedFunctionality": list(section["plannedFunctionality"]),
        "expectedDataSources": list(section["expectedDataSources"]),
    }
