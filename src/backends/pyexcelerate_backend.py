"""
PyExcelerate backend (write only).

PyExcelerate takes the whole grid as a list of row lists and serialises it in
one pass, trading memory for speed.

Install
-------
    pip install PyExcelerate
"""

from __future__ import annotations

from pathlib import Path

from src.backends.base import require
from src.workload import generator


def write(path: Path, rows: int, cols: int, cache_mode: str | None = None) -> None:
    pyexcelerate = require("pyexcelerate", "PyExcelerate")

    workbook = pyexcelerate.Workbook()
    workbook.new_sheet("Sheet1", data=list(generator.iter_rows(rows, cols)))
    workbook.save(str(path))
