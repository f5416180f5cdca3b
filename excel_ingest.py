"""
Source file ingestion
=====================
Reads the monthly quality workbooks (or JSON record dumps) into canonical
records and a per-file manifest.

  Internal RFT.xlsx        -> source "Internal" unless a row says otherwise
  External RFT.xlsx        -> source "External"
  Commercial Process.xlsx  -> source "Process"

A missing file is reported and contributes zero records. A file that
exists but cannot be read raises: the caller decides what a failed run
means.
"""

from __future__ import annotations

import json
import os
import zipfile
from dataclasses import dataclass, field

import pandas as pd

from log_config import get_logger
from pipeline_config import SourceFile
from record_normalization import normalize_records

logger = get_logger(__name__)

JSON_EXTENSIONS = {".json"}


@dataclass
class IngestMeta:
    files_read: list[str] = field(default_factory=list)
    files_missing: list[str] = field(default_factory=list)
    info_messages: list[str] = field(default_factory=list)
    warning_messages: list[str] = field(default_factory=list)
    flagged_records: int = 0

    def to_record(self) -> dict:
        return {
            "files_read": list(self.files_read),
            "files_missing": list(self.files_missing),
            "flagged_records": self.flagged_records,
            "warning_count": len(self.warning_messages),
        }


def read_sheet_records(path: str, sheet_name=0) -> list[dict]:
    """Rows of one worksheet as dicts; blank rows are dropped.

    Raises ValueError when the file is not a readable .xlsx workbook.
    """
    try:
        df = pd.read_excel(path, sheet_name=sheet_name, engine="openpyxl")
    except zipfile.BadZipFile as e:
        raise ValueError(f"{path}: not a readable workbook ({e})") from e
    df = df.dropna(how="all")
    df.columns = [str(c).strip() for c in df.columns]
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


def read_json_records(path: str) -> list[dict]:
    """Records from a JSON list, or from {"records": [...]}."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("records", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of records")
    return [row for row in data if isinstance(row, dict)]


def read_source_rows(path: str) -> list[dict]:
    ext = os.path.splitext(path)[1].lower()
    if ext in JSON_EXTENSIONS:
        return read_json_records(path)
    return read_sheet_records(path)


def load_sources(sources: list[SourceFile]) -> tuple[list[dict], list[dict], IngestMeta]:
    """Read and normalize every source file.

    Returns (records, manifest, meta) where manifest is [{name, records}]
    in input order, including missing files with a count of 0.
    """
    records: list[dict] = []
    manifest: list[dict] = []
    meta = IngestMeta()

    for src in sources:
        if not os.path.exists(src.path):
            msg = f"Source file not found: {src.path}"
            print(f"Warning: {msg}")
            logger.warning(msg, extra={"source_file": src.name})
            meta.files_missing.append(src.name)
            meta.warning_messages.append(msg)
            manifest.append({"name": src.name, "records": 0})
            continue

        print(f"Reading {src.name}")
        rows = read_source_rows(src.path)
        file_records = normalize_records(rows, default_source=src.source)
        flagged = sum(1 for r in file_records if r["warnings"])
        print(f"  {len(file_records)} records ({flagged} with data warnings)")

        records.extend(file_records)
        manifest.append({"name": src.name, "records": len(file_records)})
        meta.files_read.append(src.name)
        meta.flagged_records += flagged
        meta.info_messages.append(f"Loaded {len(file_records)} records from {src.name}")
        logger.info(
            f"Loaded {len(file_records)} records from {src.name}",
            extra={"source_file": src.name, "records": len(file_records), "flagged_records": flagged},
        )

    return records, manifest, meta
