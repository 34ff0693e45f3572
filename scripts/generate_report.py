#!/usr/bin/env python3
"""
Generate the benchmark report for a results store.

Prints the console tables, and optionally writes Markdown, HTML (plotly
charts), CSV metrics, and refreshes the DuckDB registry.

Usage:
    python scripts/generate_report.py
    python scripts/generate_report.py --in nightly.jsonl --md --html
    python scripts/generate_report.py --html docs/bench.html --hide-fail
    python scripts/generate_report.py --csv --registry
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from src.benchmark import report, store

ROOT = Path(__file__).resolve().parents[1]
RESULTS_DIR = ROOT / "results"

log = logging.getLogger("generate_report")


def _default_source() -> Path:
    """Newest store in results/, else results/results.jsonl."""
    files = store.list_result_files(RESULTS_DIR)
    if files:
        return files[0]
    return RESULTS_DIR / store.DEFAULT_STORE_NAME


def _output_path(opt: str, source: Path, suffix: str) -> Path:
    """Explicit path as given; bare flag → results/<store stem><suffix>."""
    if opt:
        return Path(opt)
    return RESULTS_DIR / f"{source.stem}{suffix}"


def main() -> int:
    parser = argparse.ArgumentParser(description="Render the XLSX benchmark report.")
    parser.add_argument("--in", dest="source", default="",
                        help="Results store (file name in results/ or a path; default: newest)")
    parser.add_argument("--md", nargs="?", const="", default=None, metavar="PATH",
                        help="Write a Markdown report (default: results/<store>.md)")
    parser.add_argument("--html", nargs="?", const="", default=None, metavar="PATH",
                        help="Write an HTML report with charts (default: results/<store>.html)")
    parser.add_argument("--csv", action="store_true",
                        help="Write metrics.csv and summary.csv to results/exports/")
    parser.add_argument("--registry", action="store_true",
                        help="Ingest stores into results/registry.duckdb and export views")
    parser.add_argument("--hide-missing", action="store_true",
                        help="Drop rows where every library is missing")
    parser.add_argument("--hide-fail", action="store_true",
                        help="Drop rows where every library is missing or failed")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )

    try:
        source = (
            store.resolve_results_path(args.source, RESULTS_DIR)
            if args.source else _default_source()
        )
    except ValueError as e:
        log.error(str(e))
        return 1

    try:
        records = report.run(
            source,
            md_path=_output_path(args.md, source, ".md") if args.md is not None else None,
            csv_dir=RESULTS_DIR / "exports" if args.csv else None,
            hide_missing=args.hide_missing,
            hide_fail=args.hide_fail,
        )
    except FileNotFoundError as e:
        log.error(str(e))
        return 1

    if args.html is not None and records:
        from src.benchmark.html_report import generate_html_report

        out = generate_html_report(
            source, _output_path(args.html, source, ".html"),
            hide_missing=args.hide_missing, hide_fail=args.hide_fail,
        )
        print(f"HTML report: {out}")

    if args.registry:
        from src.benchmark import db

        con = db.get_connection()
        try:
            db.ingest_all(RESULTS_DIR, con=con)
            db.export_csv(con=con)
            db.export_parquet(con=con)
        finally:
            con.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
