"""
Trial runner — executes exactly one benchmark trial in its own process.

A trial is one (mode, library, case) combination. The runner:
  - validates its inputs before any backend code is touched
  - dispatches to one adapter from the closed backend registry
  - times validation + adapter call (process start-up is excluded)
  - samples process RSS in a background thread for the peak-memory figure
  - prints exactly ONE JSON line (the ResultRecord) to stdout and exits 0,
    whatever happened inside the trial

Failures are data: the orchestrator reads ``ok`` from the record, never the
exit status, so one broken library cannot stop a benchmark campaign.

Usage:
    python -m src.benchmark.runner --mode=write --lib=xlsxwriter --rows=1000 --cols=10 --out=tmp/a.xlsx
    python -m src.benchmark.runner --mode=read --lib=calamine --rows=1000 --cols=10 --in=tmp/a.xlsx --writer=xlsxwriter
"""

from __future__ import annotations

import argparse
import contextlib
import logging
import os
import platform
import sys
import threading
import time
from dataclasses import dataclass
from importlib import metadata
from pathlib import Path

import psutil

from src.backends import registry
from src.backends.base import ReadCounts
from src.benchmark.errors import BackendError, BenchmarkError, ValidationError
from src.benchmark.records import MODES, ResultRecord

log = logging.getLogger(__name__)

TELEMETRY_INTERVAL_SEC = 0.025  # RSS sampling interval (25 ms)
_MB = 1_048_576


# ---------------------------------------------------------------------------
# Hardware / software introspection
# ---------------------------------------------------------------------------

def capture_hardware() -> dict:
    freq = psutil.cpu_freq()
    return {
        "cpu_model": platform.processor() or _read_cpuinfo_model(),
        "cpu_logical_cores": psutil.cpu_count(logical=True),
        "cpu_physical_cores": psutil.cpu_count(logical=False),
        "cpu_freq_mhz_max": round(freq.max, 0) if freq else None,
        "ram_gb": round(psutil.virtual_memory().total / 1e9, 1),
    }


def _read_cpuinfo_model() -> str:
    try:
        with open("/proc/cpuinfo") as f:
            for line in f:
                if line.startswith("model name"):
                    return line.split(":")[1].strip()
    except OSError:
        pass
    return platform.machine()


def capture_software() -> dict:
    sw: dict = {
        "os": f"{platform.system()} {platform.release()}",
        "python_version": platform.python_version(),
        "psutil_version": psutil.__version__,
    }
    for module, dist in registry.DISTRIBUTIONS.items():
        try:
            sw[f"{module}_version"] = metadata.version(dist)
        except metadata.PackageNotFoundError:
            sw[f"{module}_version"] = None
    return sw


# ---------------------------------------------------------------------------
# Telemetry collector
# ---------------------------------------------------------------------------

class TelemetryCollector:
    """
    Tracks peak resident memory of the current process.

    A background thread samples RSS at a fixed interval; start() and stop()
    each take one extra sample so very short trials still report a value.
    On POSIX, stop() also folds in the kernel's lifetime RSS high-water
    mark (getrusage), so spikes shorter than the interval are not lost.
    Each trial owns a fresh process, so the peak covers only that trial
    plus interpreter start-up.

    Usage:
        tc = TelemetryCollector()
        tc.start()
        # ... run workload ...
        tc.stop()
        tc.peak_mb
    """

    def __init__(self, interval_sec: float = TELEMETRY_INTERVAL_SEC):
        self._interval = interval_sec
        self._proc = psutil.Process(os.getpid())
        self._rss_samples: list[int] = []   # bytes
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.start_mb: float = 0.0

    def _sample(self) -> int | None:
        try:
            info = self._proc.memory_info()
        except psutil.Error:
            return None
        self._rss_samples.append(info.rss)
        # Windows reports the true peak working set directly
        peak = getattr(info, "peak_wset", None)
        if peak:
            self._rss_samples.append(peak)
        return info.rss

    def _sample_lifetime_peak(self) -> None:
        if sys.platform == "win32":
            return
        import resource

        peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        # ru_maxrss is bytes on macOS, kilobytes elsewhere
        self._rss_samples.append(peak if sys.platform == "darwin" else peak * 1024)

    def _sample_loop(self) -> None:
        while not self._stop_event.wait(self._interval):
            self._sample()

    def start(self) -> None:
        rss = self._sample()
        self.start_mb = round(rss / _MB, 3) if rss else 0.0
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._sample_loop, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._sample()
        self._sample_lifetime_peak()
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2.0)

    @property
    def peak_mb(self) -> float:
        if not self._rss_samples:
            return 0.0
        return round(max(self._rss_samples) / _MB, 3)


# ---------------------------------------------------------------------------
# Trial request
# ---------------------------------------------------------------------------

@dataclass
class TrialRequest:
    """Parameters of one trial, as passed on the runner command line."""

    mode: str
    library: str
    rows: int | str
    cols: int | str
    output_path: str = ""
    input_path: str = ""
    origin_writer: str = ""
    cache_mode: str = ""

    def to_argv(self) -> list[str]:
        argv = [
            f"--mode={self.mode}",
            f"--lib={self.library}",
            f"--rows={self.rows}",
            f"--cols={self.cols}",
        ]
        if self.mode == "write":
            argv.append(f"--out={self.output_path}")
        else:
            argv.append(f"--in={self.input_path}")
            argv.append(f"--writer={self.origin_writer}")
        if self.cache_mode:
            argv.append(f"--cache-mode={self.cache_mode}")
        return argv

    def skeleton(self) -> ResultRecord:
        """A record carrying only this request's identity fields."""
        rec = ResultRecord(
            mode=self.mode,
            library=self.library,
            row_count=_to_int(self.rows),
            col_count=_to_int(self.cols),
        )
        if self.mode == "write":
            rec.output_path = self.output_path
        elif self.mode == "read":
            rec.input_path = self.input_path
            rec.origin_writer = self.origin_writer
        if self.library in registry.CACHE_AWARE:
            rec.cache_mode = self.cache_mode or "none"
        return rec


def _to_int(value: int | str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        return 0


# ---------------------------------------------------------------------------
# Validation + dispatch
# ---------------------------------------------------------------------------

def validate(req: TrialRequest) -> None:
    if req.mode not in MODES:
        raise ValidationError(f"Invalid --mode {req.mode!r} (expected write|read)")
    if not req.library:
        raise ValidationError("Missing --lib")
    if _to_int(req.rows) <= 0 or _to_int(req.cols) <= 0:
        raise ValidationError("Invalid --rows/--cols (must be integers > 0)")

    if req.mode == "write":
        if not req.output_path:
            raise ValidationError("Missing --out for write mode")
        out_dir = Path(req.output_path).parent
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ValidationError(f"Cannot create output directory {out_dir}: {e}") from e
    else:
        if not req.input_path or not Path(req.input_path).is_file():
            raise ValidationError("Missing or not found --in for read mode")


def _dispatch(req: TrialRequest, rec: ResultRecord) -> None:
    rows, cols = _to_int(req.rows), _to_int(req.cols)
    cache_mode = req.cache_mode or None

    if req.mode == "write":
        write = registry.get_writer(req.library)
        _call_adapter(write, Path(req.output_path), rows, cols, cache_mode)
    else:
        read = registry.get_reader(req.library)
        counts = _call_adapter(_read_counts, read, Path(req.input_path), cache_mode)
        rec.read_row_count = counts.rows
        rec.read_cell_count = counts.cells


def _read_counts(read, path: Path, cache_mode: str | None) -> ReadCounts:
    rows, cells = read(path, cache_mode)
    return ReadCounts(int(rows), int(cells))


def _call_adapter(fn, *args):
    """Run an adapter, folding any library exception into BackendError."""
    try:
        return fn(*args)
    except BenchmarkError:
        raise
    except Exception as e:
        message = str(e) or type(e).__name__
        raise BackendError(message, cause=type(e).__name__) from e


# ---------------------------------------------------------------------------
# Core run function
# ---------------------------------------------------------------------------

def run_trial(req: TrialRequest) -> ResultRecord:
    """Execute one trial and return its record. Never raises for trial failures."""
    rec = req.skeleton()

    tc = TelemetryCollector()
    tc.start()
    start = time.perf_counter()
    try:
        validate(req)
        # keep stdout clean for the single result line
        with contextlib.redirect_stdout(sys.stderr):
            _dispatch(req, rec)
        rec.ok = True
    except BenchmarkError as e:
        rec.ok = False
        rec.error_message = str(e)
        rec.error_kind = e.kind
        rec.error_cause = getattr(e, "cause", None)
        rec.read_row_count = None
        rec.read_cell_count = None
        log.debug(f"trial failed: {e.kind}: {e}")
    finally:
        rec.elapsed_ms = max(0, int(round((time.perf_counter() - start) * 1000)))
        tc.stop()

    rec.peak_memory_mb = tc.peak_mb
    rec.start_memory_mb = tc.start_mb
    return rec


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> TrialRequest:
    # Everything is parsed as a string: a bad value must become a
    # ValidationError record, not an argparse exit.
    parser = argparse.ArgumentParser(description="Run one XLSX benchmark trial.")
    parser.add_argument("--mode", default="")
    parser.add_argument("--lib", default="")
    parser.add_argument("--rows", default="0")
    parser.add_argument("--cols", default="0")
    parser.add_argument("--out", default="")
    parser.add_argument("--in", dest="inp", default="")
    parser.add_argument("--writer", default="")
    parser.add_argument("--cache-mode", default="")
    args, unknown = parser.parse_known_args(argv)
    if unknown:
        log.warning(f"Ignoring unknown arguments: {unknown}")
    return TrialRequest(
        mode=args.mode.strip(),
        library=args.lib.strip(),
        rows=args.rows,
        cols=args.cols,
        output_path=args.out.strip(),
        input_path=args.inp.strip(),
        origin_writer=args.writer.strip(),
        cache_mode=args.cache_mode.strip(),
    )


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    rec = run_trial(parse_args(argv))
    sys.stdout.write(rec.to_json() + "\n")
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
