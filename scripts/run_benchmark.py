#!/usr/bin/env python3
"""
CLI: Run the XLSX write/read benchmark matrix.

Examples
--------
# Default cases, all backends, results/results.jsonl
python scripts/run_benchmark.py

# Custom cases into a named store
python scripts/run_benchmark.py --cases 1000x10,5000x100 --out nightly.jsonl

# openpyxl in streaming (write_only / read_only) mode
python scripts/run_benchmark.py --cache-mode streaming

# Kill any trial running longer than two minutes, then print the report
python scripts/run_benchmark.py --timeout 120 --report
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from src.backends.openpyxl_backend import CACHE_MODES
from src.benchmark import orchestrator, report, store


def main():
    parser = argparse.ArgumentParser(description="Run the XLSX library benchmark matrix.")
    parser.add_argument("--cases", default="",
                        help="Comma-separated ROWSxCOLS list, e.g. 1000x10,2000x50 "
                             "(default: built-in case list)")
    parser.add_argument("--out", default=store.DEFAULT_STORE_NAME,
                        help="Results store file name inside results/ "
                             f"(default: {store.DEFAULT_STORE_NAME})")
    parser.add_argument("--cache-mode", choices=list(CACHE_MODES), default="",
                        help="Cache mode for cache-aware backends (openpyxl)")
    parser.add_argument("--python", default=sys.executable,
                        help="Interpreter used to spawn trial processes")
    parser.add_argument("--timeout", type=float, default=None,
                        help="Per-trial watchdog in seconds (default: none)")
    parser.add_argument("--report", action="store_true",
                        help="Print the report for the store after the run")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )
    log = logging.getLogger("run_benchmark")

    cases = orchestrator.parse_cases(args.cases)
    if args.cases and not cases:
        log.warning("No valid cases in --cases; using the default case list.")

    try:
        store_path = store.resolve_results_path(
            store.normalize_store_name(args.out), store.results_dir()
        )
    except ValueError as e:
        parser.error(str(e))
    orchestrator.log_environment()
    log.info(f"Store: {store_path}")

    summary = orchestrator.run_matrix(
        cases,
        store_path,
        cache_mode=args.cache_mode,
        invoke=orchestrator.default_invoker(args.python, args.timeout),
    )

    if args.report:
        report.run(store_path)

    print(
        f"\n{summary['ok']} ok · {summary['failed']} failed · "
        f"{summary['skipped']} skipped → {summary['store']}"
    )


if __name__ == "__main__":
    main()
