"""
Benchmark orchestrator — drives the case × library matrix.

Phases
------
1. WRITE: for every case, every write library writes a fresh temp file. The
   reference writer's output path is remembered per case.
2. READ:  for every case, every read library reads the reference writer's
   file. Cases whose reference file is missing are skipped with a notice;
   no record is fabricated for them.

Every trial runs in its own child process (see src/benchmark/runner.py) and
its record is appended to the results store the moment it arrives, so an
interrupted campaign leaves a valid partial store.

Usage:
    from src.benchmark.orchestrator import run_matrix
    summary = run_matrix([(1000, 10)], store_path)
"""

from __future__ import annotations

import hashlib
import logging
import random
import re
import subprocess
import sys
import time
from functools import partial
from pathlib import Path
from typing import Callable

from tqdm import tqdm

from src.backends import registry
from src.benchmark import store
from src.benchmark.errors import RUNNER_ERROR_KIND
from src.benchmark.records import ResultRecord, case_key
from src.benchmark.runner import TrialRequest, capture_hardware, capture_software

log = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parents[2]
TMP_DIR = ROOT / "tmp"
RUNNER_MODULE = "src.benchmark.runner"

DEFAULT_CASES: list[tuple[int, int]] = [
    (1000, 10),
    (2000, 50),
    (2000, 100),
    (5000, 20),
    (5000, 100),
]

TrialInvoker = Callable[[TrialRequest], ResultRecord]

_CASE_RE = re.compile(r"^(\d+)x(\d+)$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def parse_cases(raw: str | None) -> list[tuple[int, int]]:
    """Parse "1000x10, 2000x50" into [(1000, 10), (2000, 50)]; bad tokens are dropped."""
    cases: list[tuple[int, int]] = []
    for token in re.split(r"\s*,\s*", (raw or "").strip()):
        m = _CASE_RE.match(token.strip())
        if not m:
            if token.strip():
                log.warning(f"Ignoring invalid case token: {token!r}")
            continue
        rows, cols = int(m.group(1)), int(m.group(2))
        if rows > 0 and cols > 0:
            cases.append((rows, cols))
    return cases


def make_tmp_name(prefix: str) -> str:
    salt = f"{prefix}|{time.time()}|{random.getrandbits(63)}"
    return f"{prefix}_{hashlib.sha1(salt.encode()).hexdigest()[:12]}"


def log_environment() -> None:
    hw = capture_hardware()
    sw = capture_software()
    log.info(
        f"Host: {hw['cpu_model']} | {hw['cpu_logical_cores']} logical cores | {hw['ram_gb']} GB RAM"
    )
    log.info(f"Python {sw['python_version']} on {sw['os']}")
    versions = ", ".join(
        f"{k.removesuffix('_version')}={v}"
        for k, v in sw.items()
        if k.endswith("_version") and k not in ("python_version", "psutil_version")
    )
    log.info(f"Backends: {versions}")


# ---------------------------------------------------------------------------
# Child-process trial invocation
# ---------------------------------------------------------------------------

def _runner_failure(req: TrialRequest, message: str, raw: str) -> ResultRecord:
    rec = req.skeleton()
    rec.ok = False
    rec.error_kind = RUNNER_ERROR_KIND
    rec.error_message = message
    rec.raw = raw
    return rec


def spawn_trial(
    req: TrialRequest,
    python: str = sys.executable,
    timeout: float | None = None,
    cwd: Path = ROOT,
) -> ResultRecord:
    """
    Run one trial in a fresh interpreter and return its record.

    The runner prints a single JSON line and exits 0. Anything else (cannot
    start, non-zero exit, no output, unparseable output, watchdog expiry)
    yields a synthetic RunnerError record carrying the raw process output.
    """
    cmd = [python, "-m", RUNNER_MODULE, *req.to_argv()]
    log.debug(f"spawn: {' '.join(cmd)}")
    try:
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        out = e.stdout or ""
        if isinstance(out, bytes):
            out = out.decode("utf-8", "replace")
        return _runner_failure(req, f"Runner timed out after {timeout}s", out.strip())
    except OSError as e:
        return _runner_failure(req, f"Runner failed to start: {e}", "")

    stdout = proc.stdout.strip()
    lines = [ln for ln in stdout.splitlines() if ln.strip()]
    if proc.returncode != 0 or not lines:
        return _runner_failure(
            req,
            f"Runner failed. Exit code: {proc.returncode}",
            stdout or proc.stderr.strip(),
        )
    try:
        return ResultRecord.from_json(lines[-1])
    except (ValueError, TypeError) as e:
        return _runner_failure(req, f"Runner output unparseable: {e}", stdout)


# ---------------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------------

def _report(pbar: tqdm, rec: ResultRecord, label: str) -> None:
    status = "[OK]  " if rec.ok else "[FAIL]"
    pbar.write(f"{status} {label}")
    if not rec.ok:
        pbar.write(f"       {rec.error_kind}: {rec.error_message or 'Unknown error'}")


def run_matrix(
    cases: list[tuple[int, int]] | None,
    store_path: Path,
    *,
    write_libs: list[str] | None = None,
    read_libs: list[str] | None = None,
    reference_writer: str = registry.REFERENCE_WRITER,
    cache_mode: str = "",
    tmp_dir: Path = TMP_DIR,
    invoke: TrialInvoker | None = None,
    show_progress: bool = True,
) -> dict:
    """
    Run every write trial, then every read trial, appending records as they arrive.

    Parameters
    ----------
    cases            : (rows, cols) pairs; DEFAULT_CASES when empty
    store_path       : JSON-lines results store (appended to)
    write_libs       : write backends in column order (default: registry order)
    read_libs        : read backends in column order (default: registry order)
    reference_writer : write backend whose files feed the read phase
    cache_mode       : passed to cache-aware backends only
    invoke           : trial invoker; defaults to spawn_trial (one process per trial)

    Returns
    -------
    Summary dict: {"ok": n, "failed": n, "skipped": n, "store": path}
    """
    cases = list(cases or DEFAULT_CASES)
    write_libs = list(registry.WRITE_LIBS if write_libs is None else write_libs)
    read_libs = list(registry.READ_LIBS if read_libs is None else read_libs)
    invoke = invoke or spawn_trial
    tmp_dir.mkdir(parents=True, exist_ok=True)

    summary = {"ok": 0, "failed": 0, "skipped": 0, "store": str(store_path)}
    written_by_case: dict[str, Path] = {}

    def _cache_for(lib: str) -> str:
        return cache_mode if lib in registry.CACHE_AWARE else ""

    def _record(rec: ResultRecord) -> None:
        store.append_record(store_path, rec)
        summary["ok" if rec.ok else "failed"] += 1

    total = len(cases) * (len(write_libs) + len(read_libs))
    with tqdm(total=total, unit="trial", disable=not show_progress, file=sys.stderr) as pbar:
        # -- WRITE phase ------------------------------------------------------
        for rows, cols in cases:
            key = case_key(rows, cols)
            pbar.write(f"== CASE {key} ==")
            for lib in write_libs:
                out_path = tmp_dir / f"{make_tmp_name(f'bench_{lib}_{key}')}.xlsx"
                req = TrialRequest(
                    mode="write", library=lib, rows=rows, cols=cols,
                    output_path=str(out_path), cache_mode=_cache_for(lib),
                )
                rec = invoke(req)
                _record(rec)
                if rec.ok and lib == reference_writer:
                    written_by_case[key] = Path(rec.output_path or out_path)
                _report(pbar, rec, f"write {lib} {key} ({rec.elapsed_ms} ms)")
                pbar.update(1)

        # -- READ phase -------------------------------------------------------
        pbar.write(f"== READ BENCH (reading files created by {reference_writer}) ==")
        for rows, cols in cases:
            key = case_key(rows, cols)
            in_path = written_by_case.get(key)
            if in_path is None or not in_path.is_file():
                pbar.write(f"[SKIP] read {key} (no input file from {reference_writer})")
                log.info(f"Skipping read trials for {key}: no file from {reference_writer}")
                summary["skipped"] += len(read_libs)
                pbar.update(len(read_libs))
                continue
            for lib in read_libs:
                req = TrialRequest(
                    mode="read", library=lib, rows=rows, cols=cols,
                    input_path=str(in_path), origin_writer=reference_writer,
                    cache_mode=_cache_for(lib),
                )
                rec = invoke(req)
                _record(rec)
                _report(pbar, rec, f"read {lib} {key} ({rec.elapsed_ms} ms)")
                pbar.update(1)

    log.info(
        f"Done: {summary['ok']} ok, {summary['failed']} failed, "
        f"{summary['skipped']} skipped → {store_path}"
    )
    return summary


def default_invoker(python: str | None = None, timeout: float | None = None) -> TrialInvoker:
    return partial(spawn_trial, python=python or sys.executable, timeout=timeout)
