"""
Results store — append-only JSON-lines log of ResultRecords.

Each line is a self-contained JSON object, so a run interrupted after K trials
leaves K valid lines, several runs can share one file, and the file can be
tailed while a benchmark is in progress.

Layout
------
    results/<name>.jsonl   — one store per benchmark campaign
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Iterator

from src.benchmark.records import ResultRecord

log = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parents[2]
RESULTS_DIR = ROOT / "results"

STORE_SUFFIX = ".jsonl"
DEFAULT_STORE_NAME = "results.jsonl"

_SAFE_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")


# ---------------------------------------------------------------------------
# Append / read
# ---------------------------------------------------------------------------

def append_record(path: Path, record: ResultRecord | str) -> None:
    """Append one record (or an already-serialised JSON line) to the store."""
    line = record if isinstance(record, str) else record.to_json()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(line.rstrip() + "\n")
        f.flush()


def iter_records(path: Path) -> Iterator[tuple[int, ResultRecord]]:
    """
    Yield (line_no, record) for every valid line of a store.

    Blank lines are ignored; malformed lines (invalid JSON, non-objects,
    wrong field types) are skipped and counted, never fatal.
    """
    skipped = 0
    with open(path, encoding="utf-8", errors="replace") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                rec = ResultRecord.from_json(line)
            except (json.JSONDecodeError, TypeError, ValueError) as e:
                skipped += 1
                log.debug(f"{path.name}:{line_no} skipped: {e}")
                continue
            yield line_no, rec
    if skipped:
        log.warning(f"{path.name}: skipped {skipped} malformed line(s)")


def read_records(path: Path) -> list[ResultRecord]:
    """Every valid record of a store, in file order."""
    return [rec for _, rec in iter_records(path)]


# ---------------------------------------------------------------------------
# Store naming
# ---------------------------------------------------------------------------

def results_dir(path: Path = RESULTS_DIR) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def normalize_store_name(name: str | None) -> str:
    """Bare file name with a .jsonl suffix; empty input gives the default."""
    name = (name or "").strip()
    if not name:
        return DEFAULT_STORE_NAME
    name = Path(name).name
    if not name.lower().endswith(STORE_SUFFIX):
        name += STORE_SUFFIX
    return name


def resolve_results_path(opt: str | None, base_dir: Path = RESULTS_DIR,
                         default: str = DEFAULT_STORE_NAME) -> Path:
    """
    Resolve a user-supplied store reference.

    Absolute paths and paths with a directory component are used as given;
    a bare file name is looked up inside ``base_dir`` and must be a safe store
    name (see sanitize_results_name), else ValueError.
    """
    opt = (opt or "").strip() or default
    p = Path(opt)
    if p.is_absolute() or "/" in opt or "\\" in opt:
        return p
    name = sanitize_results_name(opt)
    if not name:
        raise ValueError(
            f"Invalid results file name {opt!r} "
            f"(allowed: letters, digits, '.', '_', '-' and a {STORE_SUFFIX} suffix)"
        )
    return base_dir / name


def sanitize_results_name(name: str | None) -> str:
    """Return ``name`` if it is a safe store file name, else ""."""
    name = (name or "").strip()
    if not name or not _SAFE_NAME_RE.match(name):
        return ""
    if not name.lower().endswith(STORE_SUFFIX):
        return ""
    return name


def list_result_files(base_dir: Path = RESULTS_DIR) -> list[Path]:
    """All stores in ``base_dir``, newest first (mtime, then size)."""
    if not base_dir.is_dir():
        return []
    files = [p for p in base_dir.glob(f"*{STORE_SUFFIX}") if p.is_file()]
    return sorted(
        files,
        key=lambda p: (p.stat().st_mtime, p.stat().st_size),
        reverse=True,
    )
