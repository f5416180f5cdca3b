"""
RFT dashboard preprocessor
==========================
Reads the quality workbooks, builds the dashboard document and writes it
to public/data/complete-data.json (or -o PATH).

Usage:
    python preprocess.py
    python preprocess.py --internal data/Internal.xlsx --external data/External.xlsx
    python preprocess.py --input records.json -o out/complete-data.json
"""

from __future__ import annotations

import argparse
import os
import sys

from dashboard_document import assemble_document, write_document
from excel_ingest import load_sources
from log_config import LOG_LEVELS, setup_logger
from pipeline_config import DEFAULT_OUTPUT, PipelineConfig, SourceFile, default_sources

# Filename hints for --input files that carry no tag of their own.
_NAME_HINTS = [("external", "External"), ("internal", "Internal"),
               ("commercial", "Process"), ("process", "Process")]


def guess_source(path: str) -> str | None:
    name = os.path.basename(path).lower()
    for hint, tag in _NAME_HINTS:
        if hint in name:
            return tag
    return None


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Build the RFT dashboard JSON from quality workbooks")
    p.add_argument("--input", nargs="+", metavar="FILE",
                   help="Workbook or JSON record files to read instead of the default set")
    p.add_argument("--internal", help="Internal RFT workbook (default: 'Internal RFT.xlsx')")
    p.add_argument("--external", help="External RFT workbook (default: 'External RFT.xlsx')")
    p.add_argument("--commercial", help="Commercial process workbook (default: 'Commercial Process.xlsx')")
    p.add_argument("-o", "--output", default=DEFAULT_OUTPUT, help="Output JSON path")
    p.add_argument("--forecast-jitter", type=float, default=0.0,
                   help="Random +/- spread added to the RFT forecast (default: 0, deterministic)")
    p.add_argument("--seed", type=int, help="Random seed for the forecast jitter")
    p.add_argument("--log-level", choices=sorted(LOG_LEVELS), help="Log level (default: LOG_LEVEL env or INFO)")
    return p


def build_config(args: argparse.Namespace) -> PipelineConfig:
    if args.input:
        sources = [SourceFile(os.path.abspath(p), guess_source(p)) for p in args.input]
    else:
        sources = default_sources()
        overrides = {"Internal": args.internal, "External": args.external, "Process": args.commercial}
        sources = [
            SourceFile(os.path.abspath(overrides[s.source]), s.source) if overrides.get(s.source) else s
            for s in sources
        ]
    return PipelineConfig(
        sources=sources,
        output_path=args.output,
        forecast_jitter=args.forecast_jitter,
        random_seed=args.seed,
    )


def _print_summary(document: dict, output_path: str) -> None:
    stats = document["overview"].get("stats", {})
    internal = document["internalRFT"]
    external = document["externalRFT"]
    insights = document["insights"]

    print("\n" + "=" * 60)
    print("QUICK SUMMARY")
    print("=" * 60)
    for f in document["dataSourceInfo"]["files"]:
        print(f"  {f['name']}: {f['records']} records")
    print(f"  Total records: {stats.get('totalRecords', 0)}")
    print(f"  Total lots: {stats.get('totalLots', 0)}")
    print(f"  Overall RFT (blended): {stats.get('overallRFTRate', 0.0):.1f}%")
    print(f"  Internal RFT: {internal['internalRFT']:.1f}% ({internal['recordCount']} records)")
    print(f"  External RFT: {external['externalRFT']:.1f}% ({external['recordCount']} records)")

    top = document["overview"].get("topIssues", [])
    if top:
        print("\nTOP ISSUES:")
        for issue in top:
            print(f"  {issue['name']}: {issue['count']} ({issue['percentage']:.1f}%)")

    bottleneck = insights["bottleneckAnalysis"]["bottleneck"]
    if bottleneck:
        print(f"\nBOTTLENECK: {bottleneck}")
    for rec in insights["recommendations"]:
        print(f"  [{rec['area']}] {rec['recommendation']}")

    print(f"\nDashboard data: {output_path}")


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logger(level=args.log_level)
    config = build_config(args)

    try:
        records, manifest, meta = load_sources(config.sources)
    except (OSError, ValueError) as e:
        print(f"Error: could not read source data: {e}")
        return 1

    if not meta.files_read:
        print("Warning: no source files found, writing an empty dashboard")

    document = assemble_document(records, manifest, config)

    try:
        write_document(document, config.output_path)
    except OSError as e:
        print(f"Error: could not write {config.output_path}: {e}")
        return 1

    _print_summary(document, config.output_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
