"""
pandas backend (read only).

``pandas.read_excel`` with the openpyxl engine and no header inference, so the
header row is counted as a data row like every other reader does.

Install
-------
    pip install pandas openpyxl
"""

from __future__ import annotations

from pathlib import Path

from src.backends.base import ReadCounts, require


def read(path: Path, cache_mode: str | None = None) -> ReadCounts:
    pd = require("pandas", "pandas")
    require("openpyxl", "openpyxl")

    df = pd.read_excel(path, sheet_name=0, header=None, engine="openpyxl")
    cells = int(df.notna().to_numpy().sum())
    return ReadCounts(len(df), cells)
