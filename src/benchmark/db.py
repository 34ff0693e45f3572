"""
DuckDB Result Registry.

Provides an incremental, queryable index of one or more JSON-lines results
stores. The stores remain the immutable source of truth; this registry is a
derived artefact that can be rebuilt at any time by deleting the file and
calling ingest_all().

Design
------
- ``results/registry.duckdb``  — DuckDB file, built from results/*.jsonl
- ``results/exports/``         — publish-ready Parquet + CSV exports

Deduplication
-------------
Rows are keyed by (store, line_no). Stores are append-only, so re-ingesting a
store only inserts lines past the highest line number already seen. The
``v_latest`` view keeps the most recent record per
(store, mode, library, case, origin_writer), which is what the report tables
show when a store holds several runs.

Usage
-----
    from src.benchmark.db import get_connection, ingest_all, export_parquet

    con = get_connection()
    n   = ingest_all(con=con)          # incremental: skips already-ingested lines
    export_parquet(con=con)
    export_csv(con=con)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from src.benchmark import store

log = logging.getLogger(__name__)

ROOT        = Path(__file__).resolve().parents[2]
RESULTS_DIR = ROOT / "results"
DB_PATH     = RESULTS_DIR / "registry.duckdb"
EXPORTS_DIR = RESULTS_DIR / "exports"


# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_DDL_RECORDS = """
CREATE TABLE IF NOT EXISTS records (
    store            VARCHAR NOT NULL,
    line_no          INTEGER NOT NULL,
    ingested_at      TIMESTAMP,
    -- identity
    timestamp        VARCHAR,
    mode             VARCHAR,
    library          VARCHAR,
    row_count        BIGINT,
    col_count        BIGINT,
    case_key         VARCHAR,
    origin_writer    VARCHAR,
    cache_mode       VARCHAR,
    -- outcome
    ok               BOOLEAN,
    elapsed_ms       BIGINT,
    peak_memory_mb   DOUBLE,
    start_memory_mb  DOUBLE,
    read_row_count   BIGINT,
    read_cell_count  BIGINT,
    error_kind       VARCHAR,
    error_message    VARCHAR,
    PRIMARY KEY (store, line_no)
)
"""

_DDL_V_LATEST = """
CREATE OR REPLACE VIEW v_latest AS
    SELECT * FROM records
    QUALIFY ROW_NUMBER() OVER (
        PARTITION BY store, mode, library, case_key, COALESCE(origin_writer, '')
        ORDER BY line_no DESC
    ) = 1
"""

_DDL_V_THROUGHPUT = """
CREATE OR REPLACE VIEW v_throughput AS
    SELECT *,
           CASE WHEN ok AND elapsed_ms > 0
                THEN cells_total / (elapsed_ms / 1000.0)
           END AS cells_per_sec
    FROM (
        SELECT *,
               CASE WHEN mode = 'read' AND read_cell_count > 0 THEN read_cell_count
                    ELSE (row_count + 1) * col_count
               END AS cells_total
        FROM v_latest
    )
"""


# ---------------------------------------------------------------------------
# Connection + schema bootstrap
# ---------------------------------------------------------------------------

def get_connection(path: Path = DB_PATH):
    """Open the registry DB, apply schema if new, return DuckDB connection."""
    import duckdb

    path.parent.mkdir(parents=True, exist_ok=True)
    con = duckdb.connect(str(path))
    _ensure_schema(con)
    return con


def _ensure_schema(con) -> None:
    """Create tables and views if they do not exist yet."""
    con.execute(_DDL_RECORDS)
    con.execute(_DDL_V_LATEST)
    con.execute(_DDL_V_THROUGHPUT)


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

def ingest_store(path: Path, con=None) -> int:
    """
    Insert the lines of one store not yet present in the registry.

    Returns the number of newly inserted records.
    """
    _own_con = con is None
    if _own_con:
        con = get_connection()

    try:
        key = str(path.resolve())
        last = con.execute(
            "SELECT COALESCE(MAX(line_no), 0) FROM records WHERE store = ?", [key]
        ).fetchone()[0]
        ingested_at = datetime.now(timezone.utc).replace(tzinfo=None)

        rows = []
        for line_no, rec in store.iter_records(path):
            if line_no <= last:
                continue
            rows.append([
                key, line_no, ingested_at,
                rec.timestamp, rec.mode, rec.library,
                rec.row_count, rec.col_count, rec.case,
                rec.origin_writer, rec.cache_mode,
                rec.ok, rec.elapsed_ms, rec.peak_memory_mb, rec.start_memory_mb,
                rec.read_row_count, rec.read_cell_count,
                rec.error_kind, rec.error_message,
            ])
        if rows:
            con.executemany(
                "INSERT INTO records VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
            log.debug(f"  Ingested {len(rows)} record(s) from {path.name}")
        return len(rows)
    finally:
        if _own_con:
            con.close()


def ingest_all(results_dir: Path = RESULTS_DIR, con=None) -> int:
    """
    Scan results/*.jsonl and ingest any lines not already in the registry.

    Returns the count of newly ingested records.
    """
    _own_con = con is None
    if _own_con:
        con = get_connection()

    try:
        new_count = 0
        for path in sorted(results_dir.glob(f"*{store.STORE_SUFFIX}")):
            try:
                new_count += ingest_store(path, con=con)
            except OSError as e:
                log.warning(f"Skipping {path.name}: {e}")

        if new_count:
            log.info(f"Ingested {new_count} new record(s) into registry.")
        else:
            log.debug("Registry up to date — no new records to ingest.")
        return new_count
    finally:
        if _own_con:
            con.close()


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

_EXPORT_QUERIES = [
    ("latest", "SELECT * FROM v_latest ORDER BY store, mode, origin_writer, row_count, col_count, library"),
    ("throughput", "SELECT * FROM v_throughput ORDER BY store, mode, origin_writer, row_count, col_count, library"),
]


def export_parquet(con=None, exports_dir: Path = EXPORTS_DIR) -> dict[str, Path]:
    """
    Export v_latest and v_throughput to Parquet files in results/exports/.

    Returns a dict of {name: path} for the files written.
    """
    exports_dir.mkdir(parents=True, exist_ok=True)

    _own_con = con is None
    if _own_con:
        con = get_connection()

    out: dict[str, Path] = {}
    try:
        for name, query in _EXPORT_QUERIES:
            p = exports_dir / f"{name}.parquet"
            con.execute(f"COPY ({query}) TO '{p.as_posix()}' (FORMAT PARQUET)")
            log.info(f"Exported {p}")
            out[name] = p
        return out
    finally:
        if _own_con:
            con.close()


def export_csv(con=None, exports_dir: Path = EXPORTS_DIR) -> dict[str, Path]:
    """
    Export v_latest and v_throughput to CSV files in results/exports/.

    Also writes a throughput pivot (comparison.csv): one row per
    (store, mode, origin_writer, library), one column per case.
    Returns a dict of {name: path}.
    """
    exports_dir.mkdir(parents=True, exist_ok=True)

    _own_con = con is None
    if _own_con:
        con = get_connection()

    out: dict[str, Path] = {}
    try:
        for name, query in _EXPORT_QUERIES:
            df = con.execute(query).df()
            p = exports_dir / f"{name}.csv"
            df.to_csv(p, index=False)
            log.info(f"Exported {p} ({len(df)} rows)")
            out[name] = p

        tp = con.execute("SELECT * FROM v_throughput WHERE cells_per_sec IS NOT NULL").df()
        if not tp.empty:
            pivot = tp.assign(origin_writer=tp["origin_writer"].fillna("-")).pivot_table(
                index=["store", "mode", "origin_writer", "library"],
                columns="case_key",
                values="cells_per_sec",
                aggfunc="median",
            )
            p = exports_dir / "comparison.csv"
            pivot.to_csv(p)
            log.info(f"Exported {p}")
            out["comparison"] = p

        return out
    finally:
        if _own_con:
            con.close()
