"""
python-calamine backend (read only).

Rust calamine parser behind a thin Python binding. Read-phase baseline.
Empty cells come back as "" and are not counted.

Install
-------
    pip install python-calamine
"""

from __future__ import annotations

from pathlib import Path

from src.backends.base import ReadCounts, count_cells, require


def read(path: Path, cache_mode: str | None = None) -> ReadCounts:
    calamine = require("python_calamine", "python-calamine")

    workbook = calamine.CalamineWorkbook.from_path(str(path))
    sheet = workbook.get_sheet_by_index(0)

    rows = 0
    cells = 0
    for values in sheet.iter_rows():
        rows += 1
        cells += count_cells(values)
    return ReadCounts(rows, cells)
