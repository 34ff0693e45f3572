"""
XlsxWriter backend (write only).

XlsxWriter is the reference writer: its output files are the input of every
read trial, and its throughput is the write-phase baseline. The workbook is
opened in ``constant_memory`` mode so rows are flushed to disk as they are
written, which is how a streaming writer is meant to be used.

Install
-------
    pip install XlsxWriter
"""

from __future__ import annotations

from pathlib import Path

from src.backends.base import require
from src.workload import generator


def write(path: Path, rows: int, cols: int, cache_mode: str | None = None) -> None:
    xlsxwriter = require("xlsxwriter", "XlsxWriter")

    workbook = xlsxwriter.Workbook(str(path), {"constant_memory": True})
    sheet = workbook.add_worksheet("Sheet1")
    for r, values in enumerate(generator.iter_rows(rows, cols)):
        sheet.write_row(r, 0, values)
    workbook.close()
