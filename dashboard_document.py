"""
Dashboard document assembly
===========================
Runs every section builder over the shared record list, adds the blended
overall RFT and run metadata, and writes the finished JSON document.

assemble_document() is a pure function of its arguments: it never touches
the filesystem and never raises because of bad data. A section that blows
up is logged and replaced by its empty shape, so the dashboard always has
something it can render. Only write_document() does I/O.
"""

import json
import os
import tempfile
from datetime import datetime, timezone

from dashboard_sections import (
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
from insight_engine import build_insights, empty_insights
from log_config import get_logger
from pipeline_config import PipelineConfig
from quality_metrics import untagged_records

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Overall RFT blend (business policy weights)
# ---------------------------------------------------------------------------
INTERNAL_WEIGHT = 0.4
EXTERNAL_WEIGHT = 0.3
COMMERCIAL_WEIGHT = 0.3


def blended_rft(internal_rft, external_open_rate, commercial_completion):
    """0.4 x internal RFT + 0.3 x (100 - external open rate) + 0.3 x commercial completion."""
    return (
        INTERNAL_WEIGHT * internal_rft
        + EXTERNAL_WEIGHT * (100.0 - external_open_rate)
        + COMMERCIAL_WEIGHT * commercial_completion
    )


def run_section(name, builder, default, *args, **kwargs):
    """Call builder; on any exception log it and return default() instead."""
    try:
        return builder(*args, **kwargs)
    except Exception:
        logger.error(f"Section {name} failed, using empty section", exc_info=True,
                     extra={"section": name})
        return default()


def _lot_count(records):
    return len({r.get("lot") or r.get("batchId") for r in records if r.get("lot") or r.get("batchId")})


def assemble_document(records, sources=None, config=None, now=None):
    """Build the full dashboard document.

    records: canonical records (see record_normalization).
    sources: manifest entries [{name, records}] for dataSourceInfo.files.
    now: generation time; defaults to the current UTC time.
    """
    cfg = config if config is not None else PipelineConfig()
    records = list(records or [])
    now = now or datetime.now(timezone.utc)

    if not records:
        logger.warning("No input records; writing an empty dashboard document")
    untagged = untagged_records(records)
    if untagged:
        logger.warning(
            f"{len(untagged)} records have no recognizable source tag and are left out "
            f"of the internal/external views",
            extra={"untagged_records": len(untagged)},
        )

    overview = run_section("overview", build_overview, empty_overview, records, cfg)
    internal = run_section("internalRFT", build_internal_rft, empty_internal_rft, records, cfg)
    external = run_section("externalRFT", build_external_rft, empty_external_rft, records, cfg)
    process = run_section("processMetrics", build_process_metrics, empty_process_metrics, records, cfg)
    commercial = run_section("commercialProcess", build_commercial_process, empty_commercial_process,
                             records, cfg)
    prior = {
        "overview": overview,
        "internalRFT": internal,
        "externalRFT": external,
        "processMetrics": process,
    }
    insights = run_section("insights", build_insights, empty_insights, records, prior, cfg)

    # With no complaints on file the external term contributes nothing
    open_rate = 100.0
    if external.get("recordCount", 0):
        open_rate = external.get("summary", {}).get("openRate", 0.0)
    overall = blended_rft(
        internal.get("internalRFT", 0.0),
        open_rate,
        commercial.get("summary", {}).get("completionRate", 0.0),
    )
    overview["stats"] = {
        "totalRecords": len(records),
        "totalLots": _lot_count(records),
        "overallRFTRate": round(overall, 1),
    }

    return {
        "overview": overview,
        "internalRFT": internal,
        "externalRFT": external,
        "processMetrics": process,
        "commercialProcess": commercial,
        "insights": insights,
        "deviations": build_placeholder("deviations"),
        "g7Performance": build_placeholder("g7Performance"),
        "lastUpdated": now.isoformat(),
        "dataVersion": cfg.data_version,
        "dataSourceInfo": {
            "files": [{"name": s["name"], "records": s["records"]} for s in sources or []],
        },
    }


def write_document(document, path):
    """Write document as JSON to path, replacing any previous file atomically.

    The JSON goes to a temp file in the same directory first; an error
    leaves the old file untouched and is re-raised.
    """
    out_dir = os.path.dirname(os.path.abspath(path))
    os.makedirs(out_dir, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".complete-data-", suffix=".json", dir=out_dir)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    logger.info(f"Wrote dashboard document to {path}", extra={"output_path": path})
    return path
