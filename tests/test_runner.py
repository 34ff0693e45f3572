"""
Trial runner tests: validation, dispatch, failure capture and the stdout
contract. Real XLSX round trips run only when the library is installed.
"""

import json
import sys

import pytest

from src.backends import registry
from src.backends.base import ReadCounts
from src.benchmark import runner
from src.benchmark.runner import TrialRequest


def write_req(tmp_path, library="xlsxwriter", rows=20, cols=5, **kw) -> TrialRequest:
    return TrialRequest(mode="write", library=library, rows=rows, cols=cols,
                        output_path=str(tmp_path / f"{library}.xlsx"), **kw)


def read_req(path, library="calamine", rows=20, cols=5, **kw) -> TrialRequest:
    return TrialRequest(mode="read", library=library, rows=rows, cols=cols,
                        input_path=str(path), origin_writer="xlsxwriter", **kw)


@pytest.fixture
def untouchable(monkeypatch):
    """Register a backend that fails the test if it is ever called."""
    def boom(*args):
        raise AssertionError("backend must not be invoked")
    monkeypatch.setitem(registry.WRITERS, "untouchable", boom)
    monkeypatch.setitem(registry.READERS, "untouchable", boom)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class TestValidation:
    @pytest.mark.parametrize("patch", [
        {"mode": "delete"},
        {"rows": "abc"},
        {"rows": 0},
        {"cols": -3},
        {"output_path": ""},
    ])
    def test_write_rejected_before_backend(self, tmp_path, untouchable, patch):
        req = write_req(tmp_path, library="untouchable")
        for k, v in patch.items():
            setattr(req, k, v)
        rec = runner.run_trial(req)
        assert rec.ok is False
        assert rec.error_kind == "ValidationError"
        assert rec.read_row_count is None

    def test_missing_input_file(self, tmp_path, untouchable):
        rec = runner.run_trial(read_req(tmp_path / "missing.xlsx", library="untouchable"))
        assert rec.error_kind == "ValidationError"
        assert "--in" in rec.error_message

    def test_missing_library(self, tmp_path):
        rec = runner.run_trial(write_req(tmp_path, library=""))
        assert rec.error_kind == "ValidationError"


# ---------------------------------------------------------------------------
# Dispatch + failure capture
# ---------------------------------------------------------------------------

class TestDispatch:
    def test_unknown_write_library(self, tmp_path):
        rec = runner.run_trial(write_req(tmp_path, library="nosuchlib"))
        assert rec.ok is False
        assert rec.error_kind == "UnsupportedLibrary"
        assert rec.error_message == "Unknown lib for write: nosuchlib"

    def test_reader_only_library_cannot_write(self, tmp_path):
        rec = runner.run_trial(write_req(tmp_path, library="calamine"))
        assert rec.error_kind == "UnsupportedLibrary"

    def test_adapter_exception_becomes_backend_error(self, tmp_path, monkeypatch):
        def broken(path, rows, cols, cache_mode):
            raise KeyError("sheet")
        monkeypatch.setitem(registry.WRITERS, "broken", broken)
        rec = runner.run_trial(write_req(tmp_path, library="broken"))
        assert rec.ok is False
        assert rec.error_kind == "BackendError"
        assert rec.error_cause == "KeyError"
        assert "sheet" in rec.error_message
        assert rec.elapsed_ms >= 0

    def test_read_counts_recorded(self, tmp_path, monkeypatch):
        src = tmp_path / "in.xlsx"
        src.write_bytes(b"PK")
        monkeypatch.setitem(registry.READERS, "fake", lambda path, cache_mode: ReadCounts(21, 105))
        rec = runner.run_trial(read_req(src, library="fake"))
        assert rec.ok is True
        assert (rec.read_row_count, rec.read_cell_count) == (21, 105)
        assert rec.origin_writer == "xlsxwriter"
        assert rec.peak_memory_mb > 0

    def test_adapter_stdout_kept_off_stdout(self, tmp_path, monkeypatch, capsys):
        def chatty(path, rows, cols, cache_mode):
            print("progress: 100%")
        monkeypatch.setitem(registry.WRITERS, "chatty", chatty)
        rec = runner.run_trial(write_req(tmp_path, library="chatty"))
        captured = capsys.readouterr()
        assert rec.ok is True
        assert captured.out == ""
        assert "progress: 100%" in captured.err

    def test_cache_mode_echo(self, tmp_path):
        assert write_req(tmp_path, library="openpyxl").skeleton().cache_mode == "none"
        assert write_req(tmp_path, library="openpyxl",
                         cache_mode="streaming").skeleton().cache_mode == "streaming"
        assert write_req(tmp_path, library="xlsxwriter",
                         cache_mode="streaming").skeleton().cache_mode is None

    def test_unknown_cache_mode_is_validation_error(self, tmp_path):
        rec = runner.run_trial(write_req(tmp_path, library="openpyxl", cache_mode="bogus"))
        assert rec.error_kind == "ValidationError"

    @pytest.mark.parametrize("result", [None, 42, (1, 2, 3), ("many", "cells")])
    def test_bad_read_counts_become_backend_error(self, tmp_path, monkeypatch, result):
        src = tmp_path / "in.xlsx"
        src.write_bytes(b"PK")
        monkeypatch.setitem(registry.READERS, "sloppy", lambda path, cache_mode: result)
        rec = runner.run_trial(read_req(src, library="sloppy"))
        assert rec.ok is False
        assert rec.error_kind == "BackendError"
        assert rec.read_row_count is None

    def test_plain_tuple_counts_accepted(self, tmp_path, monkeypatch):
        src = tmp_path / "in.xlsx"
        src.write_bytes(b"PK")
        monkeypatch.setitem(registry.READERS, "tuple", lambda path, cache_mode: (21, 105))
        rec = runner.run_trial(read_req(src, library="tuple"))
        assert (rec.read_row_count, rec.read_cell_count) == (21, 105)

    def test_repeated_trial_is_idempotent(self, tmp_path, monkeypatch):
        def steady(path, rows, cols, cache_mode):
            path.write_bytes(b"PK")
        monkeypatch.setitem(registry.WRITERS, "steady", steady)
        req = write_req(tmp_path, library="steady")

        volatile = ("timestamp", "elapsed_ms", "peak_memory_mb", "start_memory_mb")

        def stable(rec):
            return {k: v for k, v in rec.to_dict().items() if k not in volatile}

        first, second = runner.run_trial(req), runner.run_trial(req)
        assert first.ok and second.ok
        assert stable(first) == stable(second)
        assert (first.mode, first.library, first.case) == ("write", "steady", "20x5")


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------

class TestTelemetry:
    @pytest.mark.skipif(sys.platform == "win32", reason="getrusage is POSIX only")
    def test_spike_between_samples_is_caught(self):
        # an interval far longer than the trial: only start/stop samples run
        tc = runner.TelemetryCollector(interval_sec=60)
        tc.start()
        spike = b"x" * (64 * 1_048_576)
        del spike
        tc.stop()
        assert tc.peak_mb >= tc.start_mb + 48

    def test_start_below_peak(self):
        tc = runner.TelemetryCollector()
        tc.start()
        tc.stop()
        assert 0 < tc.start_mb <= tc.peak_mb


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

class TestMain:
    def test_prints_single_json_line(self, tmp_path, capsys):
        argv = write_req(tmp_path, library="nosuchlib").to_argv()
        assert runner.main(argv) == 0
        out = capsys.readouterr().out
        assert out.count("\n") == 1
        doc = json.loads(out)
        assert doc["library"] == "nosuchlib"
        assert doc["ok"] is False

    def test_bad_numbers_are_data(self, tmp_path, capsys):
        assert runner.main(["--mode=write", "--lib=xlsxwriter", "--rows=ten", "--cols=5",
                            f"--out={tmp_path / 'x.xlsx'}"]) == 0
        doc = json.loads(capsys.readouterr().out)
        assert doc["error_kind"] == "ValidationError"
        assert doc["row_count"] == 0

    def test_argv_round_trip(self, tmp_path):
        req = read_req(tmp_path / "a.xlsx", library="openpyxl", rows="20", cols="5",
                       cache_mode="streaming")
        assert runner.parse_args(req.to_argv()) == req


# ---------------------------------------------------------------------------
# Real backends
# ---------------------------------------------------------------------------

WRITE_DEPS = {"xlsxwriter": "xlsxwriter", "openpyxl": "openpyxl", "pyexcelerate": "pyexcelerate"}
READ_DEPS = {"calamine": "python_calamine", "openpyxl": "openpyxl", "pandas": "openpyxl"}


class TestRoundTrip:
    ROWS, COLS = 20, 5

    @pytest.fixture
    def reference_file(self, tmp_path):
        pytest.importorskip("xlsxwriter")
        req = write_req(tmp_path, rows=self.ROWS, cols=self.COLS)
        rec = runner.run_trial(req)
        assert rec.ok, rec.error_message
        return req.output_path

    @pytest.mark.parametrize("library", list(WRITE_DEPS))
    @pytest.mark.parametrize("cache_mode", ["", "streaming"])
    def test_write(self, tmp_path, library, cache_mode):
        pytest.importorskip(WRITE_DEPS[library])
        req = write_req(tmp_path, library=library, rows=self.ROWS, cols=self.COLS,
                        cache_mode=cache_mode)
        rec = runner.run_trial(req)
        assert rec.ok, rec.error_message
        assert (tmp_path / f"{library}.xlsx").stat().st_size > 0

    @pytest.mark.parametrize("library", list(READ_DEPS))
    @pytest.mark.parametrize("cache_mode", ["", "streaming"])
    def test_read(self, reference_file, library, cache_mode):
        pytest.importorskip(READ_DEPS[library])
        rec = runner.run_trial(read_req(reference_file, library=library,
                                        rows=self.ROWS, cols=self.COLS, cache_mode=cache_mode))
        assert rec.ok, rec.error_message
        assert rec.read_row_count == self.ROWS + 1
        assert rec.read_cell_count == (self.ROWS + 1) * self.COLS

    def test_corrupt_file_is_backend_error(self, tmp_path):
        pytest.importorskip("python_calamine")
        bad = tmp_path / "bad.xlsx"
        bad.write_text("not a zip archive")
        rec = runner.run_trial(read_req(bad))
        assert rec.ok is False
        assert rec.error_kind == "BackendError"
