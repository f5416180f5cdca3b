"""
Record normalization for batch/lot quality records
===================================================
Maps raw rows from either ingestion path onto one canonical record shape:

  * batch-tracking exports  (batchId, assembly_start, date_nn_l_a_br_review_date, ...)
  * RFT / complaint / process workbooks  (ID, Date, Lot, Status, ErrorType, ...)

Records are never dropped here. Anything missing or malformed is noted in
the record's ``warnings`` list and the aggregations downstream tolerate the
gaps.
"""

import math
import re
from datetime import date, datetime, timedelta

import pandas as pd

from log_config import get_logger
from stats_utils import ISO_DATE_PREFIX, is_number, is_placeholder

logger = get_logger(__name__)

EXCEL_EPOCH = datetime(1899, 12, 30)
# Serial day numbers that plausibly came out of an Excel date cell (1954-2119).
_EXCEL_SERIAL_RANGE = (20000, 80000)

# ---------------------------------------------------------------------------
# Header aliases: normalized header -> canonical record key
# ---------------------------------------------------------------------------
FIELD_ALIASES = {
    # Identity
    "batchid": "batchId",
    "batch": "batchId",
    "batchno": "batchId",
    "batchnumber": "batchId",
    "id": "batchId",
    "recordid": "batchId",
    "lot": "lot",
    "lotno": "lot",
    "lotnumber": "lot",
    "source": "source",
    "recordsource": "source",
    # Lifecycle timestamps
    "assemblystart": "assembly_start",
    "date": "assembly_start",
    "recorddate": "assembly_start",
    "assemblyfinish": "assembly_finish",
    "assemblyend": "assembly_finish",
    "packagingstart": "packaging_start",
    "packstart": "packaging_start",
    "packagingfinish": "packaging_finish",
    "packagingend": "packaging_finish",
    "packfinish": "packaging_finish",
    "datepcilabrreviewdate": "date_pci_l_a_br_review_date",
    "pcilabrreview": "date_pci_l_a_br_review_date",
    "datennlabrreviewdate": "date_nn_l_a_br_review_date",
    "nnlabrreview": "date_nn_l_a_br_review_date",
    "datepcipackreviewdate": "date_pci_pack_review_date",
    "pcipackreview": "date_pci_pack_review_date",
    "datennpackreviewdate": "date_nn_pack_review_date",
    "nnpackreview": "date_nn_pack_review_date",
    "release": "release",
    "releasedate": "release",
    "shipment": "shipment",
    "shipmentdate": "shipment",
    "shipdate": "shipment",
    # Errors
    "haserrors": "hasErrors",
    "haserror": "hasErrors",
    "errorflag": "hasErrors",
    "errorcount": "errorCount",
    "numerrors": "errorCount",
    "errortypes": "errorTypes",
    "errortype": "errorTypes",
    "issuetype": "errorTypes",
    "issuetypes": "errorTypes",
    # Cycle times (days)
    "cycletime": "cycleTime",
    "totalcycletimedays": "total_cycle_time_days",
    "totalcycletime": "total_cycle_time_days",
    "assemblycycletime": "assembly_cycle_time",
    "pciwipreviewcycletime": "pci_wip_review_cycle_time",
    "nnwipreviewcycletime": "nn_wip_review_cycle_time",
    # Workbook columns
    "status": "status",
    "product": "product",
    "productname": "product",
    "department": "department",
    "dept": "department",
    "customer": "customer",
    "severity": "severity",
    "impact": "impact",
    "stage": "stage",
    "processstage": "stage",
    "duration": "duration",
    "durationdays": "duration",
    "deviation": "deviation",
    "feedback": "feedback",
    "customerfeedback": "feedback",
    "comments": "comments",
    "comment": "comments",
    "timetoresolution": "timeToResolution",
    "resolutiontime": "timeToResolution",
}

DATE_FIELDS = [
    "assembly_start", "assembly_finish",
    "packaging_start", "packaging_finish",
    "date_pci_l_a_br_review_date", "date_nn_l_a_br_review_date",
    "date_pci_pack_review_date", "date_nn_pack_review_date",
    "release", "shipment",
]

NUMERIC_FIELDS = [
    "cycleTime", "total_cycle_time_days", "assembly_cycle_time",
    "pci_wip_review_cycle_time", "nn_wip_review_cycle_time",
    "duration", "timeToResolution",
]

TEXT_FIELDS = [
    "batchId", "lot", "status", "product", "department", "customer",
    "severity", "impact", "stage", "feedback", "comments",
]

REQUIRED_FIELDS = ["batchId", "assembly_start"]
PRIMARY_DATE_FIELD = "assembly_start"

SOURCE_TAGS = {"internal": "Internal", "process": "Process", "external": "External"}
FAILING_STATUSES = {"failed", "fail", "rejected"}

_TRUE_STRINGS = {"yes", "y", "true", "t", "1", "x"}
_FALSE_STRINGS = {"no", "n", "false", "f", "0", ""}


def normalize_col(name):
    """Normalize a header for alias matching: lower-case, alphanumerics only."""
    return re.sub(r"[^a-z0-9]+", "", str(name).lower().strip())


def canonical_key(name):
    """Canonical record key for a raw header, or None when it is not aliased."""
    return FIELD_ALIASES.get(normalize_col(name))


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------
def parse_error_types(value):
    """Canonical error-type list from a list/tuple or a comma-joined string."""
    if value is None:
        return []
    if isinstance(value, float) and math.isnan(value):
        return []
    if isinstance(value, (list, tuple, set)):
        tokens = [str(v) for v in value if v is not None and not (isinstance(v, float) and math.isnan(v))]
    else:
        tokens = str(value).split(",")
    return [t.strip() for t in tokens if t.strip()]


def coerce_date(value, field, warnings):
    """Return an ISO date string (or the original string) for a date cell."""
    if is_placeholder(value):
        return None
    if isinstance(value, pd.Timestamp):
        if pd.isna(value):
            return None
        return _format_timestamp(value)
    if isinstance(value, (datetime, date)):
        return _format_timestamp(pd.Timestamp(value))
    if is_number(value):
        lo, hi = _EXCEL_SERIAL_RANGE
        if lo <= float(value) <= hi:
            return _format_timestamp(pd.Timestamp(EXCEL_EPOCH + timedelta(days=float(value))))
        warnings.append(f"Unreadable {field} value: {value}")
        return str(value)
    text = str(value).strip()
    return text or None


def _format_timestamp(ts):
    if ts.hour == 0 and ts.minute == 0 and ts.second == 0:
        return ts.strftime("%Y-%m-%d")
    return ts.strftime("%Y-%m-%dT%H:%M:%S")


def coerce_number(value, field, warnings):
    """Float for numbers and numeric strings; None (with a warning) otherwise."""
    if is_placeholder(value):
        return None
    if isinstance(value, bool):
        return float(value)
    if is_number(value):
        return float(value)
    try:
        num = float(str(value).strip())
    except ValueError:
        warnings.append(f"Non-numeric {field} value: {value}")
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


def coerce_flag(value):
    """True/False for yes/no style cells; None when the cell says nothing."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if is_number(value):
        return float(value) != 0
    if isinstance(value, float):
        return None
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return None


def coerce_source(value, warnings):
    if is_placeholder(value):
        return None
    tag = SOURCE_TAGS.get(str(value).strip().lower())
    if tag is None:
        warnings.append(f"Unrecognized source tag: {value}")
    return tag


def _coerce_text(value):
    if is_placeholder(value) and not isinstance(value, str):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text if text else None


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def validate_record(record):
    """Human-readable warnings for missing required fields and bad dates."""
    warnings = []
    for field in REQUIRED_FIELDS:
        if is_placeholder(record.get(field)):
            warnings.append(f"Missing or invalid required field: {field}")
    for field in DATE_FIELDS:
        val = record.get(field)
        if isinstance(val, str) and val and not ISO_DATE_PREFIX.match(val):
            warnings.append(f"Invalid {field} date format: {val}")
    return warnings


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------
def _alias_row(raw):
    """Rename raw keys to canonical keys; first non-empty value wins."""
    out = {}
    for key, val in raw.items():
        if key == "warnings":
            continue
        target = canonical_key(key) or key
        if target in out and not is_placeholder(out[target]):
            continue
        out[target] = val
    return out


def normalize_record(raw, default_source=None):
    """Build a canonical record from one raw row.

    default_source tags rows that carry no source column of their own (for
    example every row of the external complaints workbook).
    """
    warnings = []
    rec = _alias_row(raw)

    for field in DATE_FIELDS:
        if field in rec:
            rec[field] = coerce_date(rec[field], field, warnings)
    for field in NUMERIC_FIELDS:
        if field in rec:
            rec[field] = coerce_number(rec[field], field, warnings)
    for field in TEXT_FIELDS:
        if field in rec:
            rec[field] = _coerce_text(rec[field])

    if "source" in rec and not is_placeholder(rec["source"]):
        rec["source"] = coerce_source(rec["source"], warnings)
    else:
        rec["source"] = default_source

    rec["errorTypes"] = parse_error_types(rec.get("errorTypes"))
    rec["deviation"] = bool(coerce_flag(rec.get("deviation")))

    count = coerce_number(rec.get("errorCount"), "errorCount", warnings)
    flag = coerce_flag(rec.get("hasErrors"))
    if flag is None:
        status = (rec.get("status") or "").strip().lower()
        flag = (
            status in FAILING_STATUSES
            or bool(rec["errorTypes"])
            or (count is not None and count > 0)
            or rec["deviation"]
        )
    rec["hasErrors"] = bool(flag)
    if count is None:
        count = len(rec["errorTypes"]) if rec["errorTypes"] else int(rec["hasErrors"])
    rec["errorCount"] = int(count)

    rec["warnings"] = warnings + validate_record(rec)
    return rec


def normalize_records(rows, default_source=None):
    """Normalize a list of raw dicts (or a DataFrame) into canonical records."""
    if isinstance(rows, pd.DataFrame):
        rows = rows.to_dict(orient="records")
    records = [normalize_record(row, default_source) for row in rows or []]
    flagged = sum(1 for r in records if r["warnings"])
    if flagged:
        logger.warning(
            f"{flagged} of {len(records)} records have data warnings",
            extra={"flagged_records": flagged, "total_records": len(records)},
        )
    return records
