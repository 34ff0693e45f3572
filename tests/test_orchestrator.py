"""
Orchestrator tests.

The matrix loop is driven by an injected invoker, so these tests cover phase
ordering, skip handling and store appends without spawning processes.
spawn_trial itself is exercised against real child processes at the end.
"""

import sys
from pathlib import Path

import pytest

from src.benchmark import orchestrator, report, store
from src.benchmark.errors import RUNNER_ERROR_KIND
from src.benchmark.records import ResultRecord
from src.benchmark.runner import TrialRequest


class FakeInvoker:
    """
    Records every request and answers with canned results.

    Libraries in ``fail_writes`` fail their write trials; every other write
    creates the output file so the read phase can find it.
    """

    def __init__(self, fail_writes=(), read_cells=606):
        self.calls: list[TrialRequest] = []
        self.fail_writes = set(fail_writes)
        self.read_cells = read_cells

    def __call__(self, req: TrialRequest) -> ResultRecord:
        self.calls.append(req)
        rec = req.skeleton()
        rec.elapsed_ms = 50
        rec.peak_memory_mb = 10.0
        if req.mode == "write":
            if req.library in self.fail_writes:
                rec.error_kind = "BackendError"
                rec.error_message = f"{req.library} exploded"
                return rec
            Path(req.output_path).write_bytes(b"PK")
        else:
            rec.read_row_count = int(req.rows) + 1
            rec.read_cell_count = self.read_cells
        rec.ok = True
        return rec


def run(tmp_path, invoker, cases, **kw):
    kw.setdefault("write_libs", ["A", "B"])
    kw.setdefault("read_libs", ["A"])
    kw.setdefault("reference_writer", "A")
    return orchestrator.run_matrix(
        cases, tmp_path / "run.jsonl",
        tmp_dir=tmp_path / "tmp", invoke=invoker, show_progress=False, **kw,
    )


# ---------------------------------------------------------------------------
# Case parsing
# ---------------------------------------------------------------------------

class TestParseCases:
    def test_valid_tokens(self):
        assert orchestrator.parse_cases("1000x10, 2000X50") == [(1000, 10), (2000, 50)]

    def test_invalid_tokens_ignored(self):
        assert orchestrator.parse_cases("bad,0x5,100x,12x3") == [(12, 3)]

    @pytest.mark.parametrize("raw", [None, "", "  "])
    def test_empty(self, raw):
        assert orchestrator.parse_cases(raw) == []


# ---------------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------------

class TestRunMatrix:
    def test_end_to_end(self, tmp_path):
        """A writes and reads, B fails its write: one read trial against A's file."""
        invoker = FakeInvoker(fail_writes={"B"})
        summary = run(tmp_path, invoker, [(100, 5)])

        assert summary == {"ok": 2, "failed": 1, "skipped": 0, "store": str(tmp_path / "run.jsonl")}
        records = store.read_records(tmp_path / "run.jsonl")
        assert [(r.mode, r.library, r.ok) for r in records] == [
            ("write", "A", True), ("write", "B", False), ("read", "A", True),
        ]

        read_req = invoker.calls[-1]
        assert read_req.mode == "read"
        assert read_req.input_path == invoker.calls[0].output_path
        assert read_req.origin_writer == "A"

        read_rec = records[-1]
        assert report.cells_per_second(read_rec) == pytest.approx(12120)

        by_case = report.group_write(records[:2])
        table = report.render_console_table(by_case, ["A", "B"], "A")
        row = table.splitlines()[2]
        assert row.startswith("100x5")
        assert "FAIL" in row
        assert "50 ms / 10.0 MB" in row

    def test_writes_before_reads(self, tmp_path):
        invoker = FakeInvoker()
        run(tmp_path, invoker, [(10, 2), (20, 3)])
        modes = [c.mode for c in invoker.calls]
        assert modes == ["write"] * 4 + ["read"] * 2
        assert [(c.rows, c.cols) for c in invoker.calls[:4]] == [(10, 2), (10, 2), (20, 3), (20, 3)]

    def test_each_write_gets_own_tmp_file(self, tmp_path):
        invoker = FakeInvoker()
        run(tmp_path, invoker, [(10, 2)])
        paths = [c.output_path for c in invoker.calls if c.mode == "write"]
        assert len(set(paths)) == 2
        assert all(Path(p).parent == tmp_path / "tmp" for p in paths)
        assert all(Path(p).suffix == ".xlsx" for p in paths)

    def test_reads_skipped_when_reference_fails(self, tmp_path):
        invoker = FakeInvoker(fail_writes={"A"})
        summary = run(tmp_path, invoker, [(10, 2)], read_libs=["A", "C"])
        assert summary["skipped"] == 2
        assert all(c.mode == "write" for c in invoker.calls)
        assert all(r.mode == "write" for r in store.read_records(tmp_path / "run.jsonl"))

    def test_skip_is_per_case(self, tmp_path):
        class FailSecondCase(FakeInvoker):
            def __call__(self, req):
                if req.mode == "write" and int(req.rows) == 20:
                    self.fail_writes = {"A"}
                else:
                    self.fail_writes = set()
                return super().__call__(req)

        invoker = FailSecondCase()
        summary = run(tmp_path, invoker, [(10, 2), (20, 3)])
        reads = [c for c in invoker.calls if c.mode == "read"]
        assert [(c.rows, c.cols) for c in reads] == [(10, 2)]
        assert summary["skipped"] == 1

    def test_cache_mode_only_for_cache_aware(self, tmp_path):
        invoker = FakeInvoker()
        run(tmp_path, invoker, [(10, 2)],
            write_libs=["xlsxwriter", "openpyxl"], read_libs=["calamine", "openpyxl"],
            reference_writer="xlsxwriter", cache_mode="streaming")
        by_lib = {(c.mode, c.library): c.cache_mode for c in invoker.calls}
        assert by_lib == {
            ("write", "xlsxwriter"): "",
            ("write", "openpyxl"): "streaming",
            ("read", "calamine"): "",
            ("read", "openpyxl"): "streaming",
        }

    def test_default_cases(self, tmp_path):
        invoker = FakeInvoker()
        run(tmp_path, invoker, None, write_libs=["A"], read_libs=[])
        assert [(c.rows, c.cols) for c in invoker.calls] == orchestrator.DEFAULT_CASES

    def test_records_appended_as_they_arrive(self, tmp_path):
        path = tmp_path / "run.jsonl"
        seen = []

        def invoker(req):
            seen.append(len(store.read_records(path)) if path.exists() else 0)
            return FakeInvoker()(req)

        run(tmp_path, invoker, [(10, 2)])
        assert seen == [0, 1, 2]


# ---------------------------------------------------------------------------
# spawn_trial (real child processes)
# ---------------------------------------------------------------------------

class TestSpawnTrial:
    def test_unknown_library_becomes_record(self, tmp_path):
        req = TrialRequest(mode="write", library="nosuchlib", rows=10, cols=2,
                           output_path=str(tmp_path / "x.xlsx"))
        rec = orchestrator.spawn_trial(req, timeout=120)
        assert rec.ok is False
        assert rec.error_kind == "UnsupportedLibrary"
        assert rec.error_message == "Unknown lib for write: nosuchlib"
        assert rec.case == "10x2"

    def test_validation_error_in_child(self, tmp_path):
        req = TrialRequest(mode="read", library="calamine", rows=10, cols=2,
                           input_path=str(tmp_path / "missing.xlsx"), origin_writer="xlsxwriter")
        rec = orchestrator.spawn_trial(req, timeout=120)
        assert rec.error_kind == "ValidationError"
        assert rec.origin_writer == "xlsxwriter"

    def test_interpreter_missing(self, tmp_path):
        req = TrialRequest(mode="write", library="xlsxwriter", rows=10, cols=2,
                           output_path=str(tmp_path / "x.xlsx"))
        rec = orchestrator.spawn_trial(req, python=str(tmp_path / "no-python"))
        assert rec.ok is False
        assert rec.error_kind == RUNNER_ERROR_KIND
        assert rec.library == "xlsxwriter"
        assert rec.output_path == str(tmp_path / "x.xlsx")

    def test_child_crash_keeps_raw_output(self, tmp_path, monkeypatch):
        monkeypatch.setattr(orchestrator, "RUNNER_MODULE", "src.benchmark.no_such_module")
        req = TrialRequest(mode="write", library="xlsxwriter", rows=10, cols=2,
                           output_path=str(tmp_path / "x.xlsx"))
        rec = orchestrator.spawn_trial(req, python=sys.executable, timeout=120)
        assert rec.error_kind == RUNNER_ERROR_KIND
        assert "Exit code: 1" in rec.error_message
        assert "no_such_module" in rec.raw
