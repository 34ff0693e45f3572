"""
openpyxl backend (write and read).

openpyxl is the one backend whose behaviour depends on the cache mode passed
in from the command line:

    none       — full in-memory object model (Workbook(), load_workbook())
    streaming  — write_only / read_only workbooks, rows streamed to and from
                 the archive without building cell objects for the sheet

The mode is threaded in explicitly per call; nothing is configured globally.

Install
-------
    pip install openpyxl
"""

from __future__ import annotations

from pathlib import Path

from src.backends.base import ReadCounts, count_cells, require
from src.benchmark.errors import ValidationError
from src.workload import generator

CACHE_MODES = ("none", "streaming")
DEFAULT_CACHE_MODE = "none"


def normalize_cache_mode(cache_mode: str | None) -> str:
    mode = (cache_mode or "").strip().lower() or DEFAULT_CACHE_MODE
    if mode not in CACHE_MODES:
        raise ValidationError(
            f"Unknown openpyxl cache mode: {cache_mode!r} (expected one of {', '.join(CACHE_MODES)})"
        )
    return mode


def write(path: Path, rows: int, cols: int, cache_mode: str | None = None) -> None:
    mode = normalize_cache_mode(cache_mode)
    openpyxl = require("openpyxl", "openpyxl")

    if mode == "streaming":
        workbook = openpyxl.Workbook(write_only=True)
        sheet = workbook.create_sheet("Sheet1")
    else:
        workbook = openpyxl.Workbook()
        sheet = workbook.active
        sheet.title = "Sheet1"

    for values in generator.iter_rows(rows, cols):
        sheet.append(values)
    workbook.save(str(path))


def read(path: Path, cache_mode: str | None = None) -> ReadCounts:
    mode = normalize_cache_mode(cache_mode)
    openpyxl = require("openpyxl", "openpyxl")

    workbook = openpyxl.load_workbook(str(path), read_only=(mode == "streaming"))
    try:
        sheet = workbook.worksheets[0]
        rows = 0
        cells = 0
        for values in sheet.iter_rows(values_only=True):
            rows += 1
            cells += count_cells(values)
    finally:
        workbook.close()
    return ReadCounts(rows, cells)
