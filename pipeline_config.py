"""Run configuration for the RFT dashboard preprocessor."""

from __future__ import annotations

import os
import random
from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Defaults: the three workbooks the quality team exports each month
# ---------------------------------------------------------------------------
DATA_VERSION = "1.0.0"
DEFAULT_OUTPUT = os.path.join("public", "data", "complete-data.json")

DEFAULT_SOURCE_FILES = [
    ("Internal RFT.xlsx", "Internal"),
    ("External RFT.xlsx", "External"),
    ("Commercial Process.xlsx", "Process"),
]


@dataclass
class SourceFile:
    """One input file and the source tag its rows get when they carry none."""

    path: str
    source: str | None = None

    @property
    def name(self) -> str:
        return os.path.basename(self.path)


@dataclass
class PipelineConfig:
    sources: list[SourceFile] = field(default_factory=list)
    output_path: str = DEFAULT_OUTPUT
    data_version: str = DATA_VERSION
    month_window: int = 12
    top_issue_count: int = 3
    max_lag: int = 3
    forecast_periods: int = 3
    # Forecast jitter is off unless asked for; see insight_engine.forecast_rft.
    forecast_jitter: float = 0.0
    random_seed: int | None = None

    def make_rng(self) -> random.Random:
        return random.Random(self.random_seed)


def default_sources(base_dir: str | None = None) -> list[SourceFile]:
    """Standard workbook set, resolved against base_dir (default: cwd)."""
    base = base_dir or os.getcwd()
    return [SourceFile(os.path.join(base, name), tag) for name, tag in DEFAULT_SOURCE_FILES]
