"""
Result aggregation and reporting.

Reads a JSON-lines results store and produces:
  - console tables  (WRITE, then READ per origin writer)
  - a Markdown report (results/report.md by default)
  - a flat metrics table (pandas) for CSV export and the overall summary
  - chart series consumed by src/benchmark/html_report.py

Every table cell is one of:
  —      the (case, library) combination never ran
  FAIL   it ran and failed
  "<ms> ms / <MB> MB · <cells/s> · <rows/s> · <% of baseline>"

Run directly:
    python -m src.benchmark.report results/results.jsonl
    python scripts/generate_report.py --md --html
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import numpy as np
import pandas as pd

from src.backends import registry
from src.benchmark import store
from src.benchmark.records import ResultRecord

log = logging.getLogger(__name__)

PLACEHOLDER = "—"
FAIL = "FAIL"

ByCase = dict[str, dict[str, ResultRecord]]


# ---------------------------------------------------------------------------
# Ordering + grouping
# ---------------------------------------------------------------------------

def natural_key(value: str) -> tuple:
    """
    Sort key comparing digit runs numerically.

    "2000x50" < "10000x10" (rows first, then cols), where a plain string sort
    would put "10000x10" first.
    """
    parts = re.split(r"(\d+)", str(value))
    # re.split with a capture group alternates text / digits, so odd
    # positions are always digit runs and tuples stay type-aligned.
    return tuple(int(p) if i % 2 else p.lower() for i, p in enumerate(parts))


def natural_sorted(keys) -> list[str]:
    return sorted(keys, key=natural_key)


def split_by_mode(records: list[ResultRecord]) -> tuple[list[ResultRecord], list[ResultRecord]]:
    """(write_records, read_records); any other mode is dropped."""
    writes = [r for r in records if r.mode == "write"]
    reads = [r for r in records if r.mode == "read"]
    return writes, reads


def _sorted_by_case(by_case: ByCase) -> ByCase:
    return {k: by_case[k] for k in natural_sorted(by_case)}


def group_write(records: list[ResultRecord]) -> ByCase:
    """case → library → record. A later record replaces an earlier one."""
    by_case: ByCase = {}
    for r in records:
        by_case.setdefault(r.case, {})[r.library] = r
    return _sorted_by_case(by_case)


def group_read(records: list[ResultRecord]) -> dict[str, ByCase]:
    """origin writer → case → library → record."""
    by_writer: dict[str, ByCase] = {}
    for r in records:
        writer = r.origin_writer or "unknown"
        by_writer.setdefault(writer, {}).setdefault(r.case, {})[r.library] = r
    return {w: _sorted_by_case(by_writer[w]) for w in natural_sorted(by_writer)}


def library_order(by_case: ByCase, preferred: list[str]) -> list[str]:
    """Preferred libraries first, then any others seen in the data."""
    seen = {lib for libs in by_case.values() for lib in libs}
    extra = natural_sorted(seen - set(preferred))
    return list(preferred) + extra


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------

def workload(rec: ResultRecord) -> tuple[int, int]:
    """(rows_total, cells_total) the trial actually processed."""
    rows_total = rec.row_count + 1 if rec.row_count > 0 else 0   # header + data
    cols = rec.col_count
    if rec.mode == "read":
        if rec.read_row_count and rec.read_row_count > 0:
            rows_total = rec.read_row_count
        if rec.read_cell_count and rec.read_cell_count > 0:
            return rows_total, rec.read_cell_count
    cells_total = rows_total * cols if rows_total > 0 and cols > 0 else 0
    return rows_total, cells_total


def _per_second(rec: ResultRecord, amount: int) -> float | None:
    if not rec.ok or rec.elapsed_ms <= 0 or amount <= 0:
        return None
    return amount / (rec.elapsed_ms / 1000.0)


def cells_per_second(rec: ResultRecord | None) -> float | None:
    if rec is None:
        return None
    return _per_second(rec, workload(rec)[1])


def rows_per_second(rec: ResultRecord | None) -> float | None:
    if rec is None:
        return None
    return _per_second(rec, workload(rec)[0])


def relative_speed(rec: ResultRecord | None, baseline: ResultRecord | None) -> float | None:
    """cells/s of ``rec`` divided by cells/s of the baseline for the same case."""
    speed = cells_per_second(rec)
    base = cells_per_second(baseline)
    if speed is None or base is None or base <= 0:
        return None
    return speed / base


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def format_number(value: float) -> str:
    if value >= 100:
        return f"{value:.0f}"
    if value >= 10:
        return f"{value:.1f}"
    return f"{value:.2f}"


def format_rate(value: float) -> str:
    if value >= 1_000_000_000:
        return format_number(value / 1_000_000_000) + "G"
    if value >= 1_000_000:
        return format_number(value / 1_000_000) + "M"
    if value >= 1_000:
        return format_number(value / 1_000) + "k"
    return format_number(value)


@dataclass
class Cell:
    text: str
    css: str   # ok | fail | muted


def metric_cell(rec: ResultRecord | None, baseline: ResultRecord | None = None) -> Cell:
    if rec is None:
        return Cell(PLACEHOLDER, "muted")
    if not rec.ok:
        return Cell(FAIL, "fail")

    text = f"{rec.elapsed_ms} ms / {rec.peak_memory_mb:.1f} MB"
    cps = cells_per_second(rec)
    if cps is not None:
        text += f" · {format_rate(cps)} cells/s"
        rps = rows_per_second(rec)
        if rps is not None:
            text += f" · {format_rate(rps)} rows/s"
        rel = relative_speed(rec, baseline)
        if rel is not None:
            text += f" · {rel * 100:.0f}%"
    return Cell(text, "ok")


def table_rows(
    by_case: ByCase,
    lib_order: list[str],
    baseline_lib: str,
    hide_missing: bool = False,
    hide_fail: bool = False,
) -> list[tuple[str, list[Cell]]]:
    """One (case, cells) row per case, in lib_order column order."""
    out = []
    for case, libs in by_case.items():
        baseline = libs.get(baseline_lib)
        cells = [metric_cell(libs.get(lib), baseline) for lib in lib_order]
        texts = [c.text for c in cells]
        if hide_missing and all(t == PLACEHOLDER for t in texts):
            continue
        if hide_fail and all(t in (PLACEHOLDER, FAIL) for t in texts):
            continue
        out.append((case, cells))
    return out


def column_titles(lib_order: list[str], baseline_lib: str) -> list[str]:
    return [f"{lib} (baseline)" if lib == baseline_lib else lib for lib in lib_order]


# ---------------------------------------------------------------------------
# Console / Markdown tables
# ---------------------------------------------------------------------------

def render_console_table(
    by_case: ByCase,
    lib_order: list[str],
    baseline_lib: str,
    hide_missing: bool = False,
    hide_fail: bool = False,
) -> str:
    rows = table_rows(by_case, lib_order, baseline_lib, hide_missing, hide_fail)
    header = ["CASE"] + [t.upper() for t in column_titles(lib_order, baseline_lib)]
    body = [[case] + [c.text for c in cells] for case, cells in rows]

    widths = [
        max([len(header[i])] + [len(r[i]) for r in body]) + 2
        for i in range(len(header))
    ]
    widths[0] = max(widths[0], 12)

    def fmt(values: list[str]) -> str:
        return "".join(v.ljust(w) for v, w in zip(values, widths)).rstrip()

    lines = [fmt(header), "-" * sum(widths)]
    lines += [fmt(r) for r in body]
    return "\n".join(lines) + "\n"


def _md_escape(value: str) -> str:
    return value.replace("|", "\\|")


def render_markdown_table(
    by_case: ByCase,
    lib_order: list[str],
    baseline_lib: str,
    hide_missing: bool = False,
    hide_fail: bool = False,
) -> str:
    titles = column_titles(lib_order, baseline_lib)
    lines = [
        "| case | " + " | ".join(_md_escape(t) for t in titles) + " |",
        "|---|" + "---|" * len(titles),
    ]
    for case, cells in table_rows(by_case, lib_order, baseline_lib, hide_missing, hide_fail):
        lines.append(
            f"| {_md_escape(case)} | " + " | ".join(_md_escape(c.text) for c in cells) + " |"
        )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Flat metrics table + overall summary
# ---------------------------------------------------------------------------

def _group_views(records: list[ResultRecord]) -> list[tuple[str, str | None, ByCase, str]]:
    """(mode, origin_writer, by_case, baseline_lib) for every table in the report."""
    writes, reads = split_by_mode(records)
    views = []
    if writes:
        views.append(("write", None, group_write(writes), registry.WRITE_BASELINE))
    for writer, by_case in group_read(reads).items():
        views.append(("read", writer, by_case, registry.READ_BASELINE))
    return views


def records_frame(records: list[ResultRecord]) -> pd.DataFrame:
    """One row per (mode, origin writer, case, library) with derived metrics."""
    rows = []
    for mode, writer, by_case, baseline_lib in _group_views(records):
        for case, libs in by_case.items():
            baseline = libs.get(baseline_lib)
            for lib, rec in libs.items():
                rows_total, cells_total = workload(rec)
                rows.append({
                    "mode": mode,
                    "origin_writer": writer,
                    "case": case,
                    "library": lib,
                    "row_count": rec.row_count,
                    "col_count": rec.col_count,
                    "ok": rec.ok,
                    "elapsed_ms": rec.elapsed_ms,
                    "peak_memory_mb": rec.peak_memory_mb,
                    "rows_total": rows_total,
                    "cells_total": cells_total,
                    "cells_per_sec": cells_per_second(rec),
                    "rows_per_sec": rows_per_second(rec),
                    "relative_speed": relative_speed(rec, baseline),
                    "error_kind": rec.error_kind,
                    "timestamp": rec.timestamp,
                })
    columns = [
        "mode", "origin_writer", "case", "library", "row_count", "col_count", "ok",
        "elapsed_ms", "peak_memory_mb", "rows_total", "cells_total",
        "cells_per_sec", "rows_per_sec", "relative_speed", "error_kind", "timestamp",
    ]
    df = pd.DataFrame(rows, columns=columns)
    for col in ("cells_per_sec", "rows_per_sec", "relative_speed"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def _geomean(values: pd.Series) -> float:
    clean = values.dropna().astype(float)
    clean = clean[clean > 0]
    if clean.empty:
        return np.nan
    return float(np.exp(np.mean(np.log(clean.to_numpy()))))


def overall_summary(df: pd.DataFrame) -> pd.DataFrame:
    """
    Per (mode, origin writer, library): trial counts, median cells/s and the
    geometric mean of relative speed across cases.
    """
    if df.empty:
        return pd.DataFrame(columns=[
            "mode", "origin_writer", "library", "trials", "failed",
            "median_cells_per_sec", "geomean_relative_speed",
        ])
    keyed = df.assign(origin_writer=df["origin_writer"].fillna("-"))
    grouped = keyed.groupby(["mode", "origin_writer", "library"], sort=False)
    out = grouped.agg(
        trials=("ok", "size"),
        failed=("ok", lambda s: int((~s.astype(bool)).sum())),
        median_cells_per_sec=("cells_per_sec", "median"),
    )
    out["geomean_relative_speed"] = grouped["relative_speed"].apply(_geomean)
    return out.reset_index()


# ---------------------------------------------------------------------------
# Chart series (HTML report)
# ---------------------------------------------------------------------------

def chart_series(by_case: ByCase, lib_order: list[str], baseline_lib: str) -> dict:
    """
    Per-metric line series: one list per library, one point per case.

    Missing or failed trials are None so the chart leaves a gap.
    """
    labels = list(by_case)
    series: dict[str, dict[str, list]] = {
        "elapsed_ms": {}, "peak_memory_mb": {}, "cells_per_sec": {}, "relative_speed": {},
    }
    for lib in lib_order:
        time_s, mem_s, cps_s, rel_s = [], [], [], []
        for case in labels:
            rec = by_case[case].get(lib)
            ok = rec is not None and rec.ok
            time_s.append((rec.elapsed_ms or None) if ok else None)
            mem_s.append((rec.peak_memory_mb or None) if ok else None)
            cps_s.append(cells_per_second(rec) if ok else None)
            rel_s.append(relative_speed(rec, by_case[case].get(baseline_lib)) if ok else None)
        series["elapsed_ms"][lib] = time_s
        series["peak_memory_mb"][lib] = mem_s
        series["cells_per_sec"][lib] = cps_s
        series["relative_speed"][lib] = rel_s
    return {"labels": labels, "series": series}


# ---------------------------------------------------------------------------
# Human-readable report
# ---------------------------------------------------------------------------

def print_summary(records: list[ResultRecord], source: Path | str,
                  hide_missing: bool = False, hide_fail: bool = False) -> None:
    """Print the console report to stdout."""
    print(f"Results file: {source}\n")
    writes, reads = split_by_mode(records)

    if writes:
        print("=== WRITE BENCH ===\n")
        by_case = group_write(writes)
        libs = library_order(by_case, registry.WRITE_LIBS)
        print(render_console_table(by_case, libs, registry.WRITE_BASELINE, hide_missing, hide_fail))

    if reads:
        print("\n=== READ BENCH ===\n")
        for writer, by_case in group_read(reads).items():
            print(f"--- Files created by: {writer} ---\n")
            libs = library_order(by_case, registry.READ_LIBS)
            print(render_console_table(by_case, libs, registry.READ_BASELINE, hide_missing, hide_fail))

    summary = overall_summary(records_frame(records))
    if not summary.empty:
        print("\n=== OVERALL (geometric mean of relative speed across cases) ===\n")
        print(summary.to_string(index=False, float_format=lambda v: f"{v:,.2f}"))
    print()


def render_markdown_report(records: list[ResultRecord], source: Path | str,
                           hide_missing: bool = False, hide_fail: bool = False) -> str:
    writes, reads = split_by_mode(records)
    md = [
        "# XLSX Benchmark Report",
        "",
        f"- Source: `{Path(source).name}`",
        f"- Generated: `{datetime.now(timezone.utc).isoformat(timespec='seconds')}`",
        "",
    ]
    if writes:
        by_case = group_write(writes)
        md += [
            "## Write benchmark",
            "",
            render_markdown_table(by_case, library_order(by_case, registry.WRITE_LIBS),
                                  registry.WRITE_BASELINE, hide_missing, hide_fail),
            "",
        ]
    if reads:
        md += ["## Read benchmark", ""]
        for writer, by_case in group_read(reads).items():
            md += [
                f"### Reading files created by `{writer}`",
                "",
                render_markdown_table(by_case, library_order(by_case, registry.READ_LIBS),
                                      registry.READ_BASELINE, hide_missing, hide_fail),
                "",
            ]
    md += [
        "---",
        "Cell format: `time_ms / peak_mem_mb · cells/s · rows/s · % of baseline`",
        "",
    ]
    return "\n".join(md)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def run(source: Path, md_path: Path | None = None, csv_dir: Path | None = None,
        hide_missing: bool = False, hide_fail: bool = False) -> list[ResultRecord]:
    """Load a store, print the report, optionally write Markdown and CSV."""
    if not source.is_file():
        raise FileNotFoundError(f"Results file not found: {source}")

    records = store.read_records(source)
    if not records:
        print(f"No results found in {source}")
        return records

    print_summary(records, source, hide_missing, hide_fail)

    if md_path is not None:
        md_path.parent.mkdir(parents=True, exist_ok=True)
        md_path.write_text(
            render_markdown_report(records, source, hide_missing, hide_fail), encoding="utf-8"
        )
        log.info(f"Markdown saved to: {md_path}")

    if csv_dir is not None:
        csv_dir.mkdir(parents=True, exist_ok=True)
        df = records_frame(records)
        df.to_csv(csv_dir / "metrics.csv", index=False)
        overall_summary(df).to_csv(csv_dir / "summary.csv", index=False)
        log.info(f"metrics.csv / summary.csv written to {csv_dir} ({len(df)} rows)")

    return records


if __name__ == "__main__":
    import sys

    logging.basicConfig(level=logging.INFO)
    run(store.resolve_results_path(sys.argv[1] if len(sys.argv) > 1 else None))
