"""
Workload generator.

Produces the rectangular grid every backend writes: one header row followed by
N data rows of M integer columns.

The generator is fully reproducible: the value at (r, c) depends only on its
coordinates, so any row can be rebuilt independently and every backend writes
byte-for-byte comparable content.

Layout
------
    row 0      : C1, C2, ..., C<cols>
    row r >= 1 : r*1000 + 1, r*1000 + 2, ..., r*1000 + cols
"""

from __future__ import annotations

from typing import Iterator


def _check_positive(name: str, value: int) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be > 0, got {value}")


def header(cols: int) -> list[str]:
    """Column labels "C1".."C<cols>"."""
    _check_positive("cols", cols)
    return [f"C{c}" for c in range(1, cols + 1)]


def data_row(row_index: int, cols: int) -> list[int]:
    """
    Data row ``row_index`` (1-based).

    Cell (r, c) = r * 1000 + c, with both r and c 1-based.
    """
    _check_positive("row_index", row_index)
    _check_positive("cols", cols)
    base = row_index * 1000
    return [base + c for c in range(1, cols + 1)]


def iter_rows(rows: int, cols: int) -> Iterator[list]:
    """Yield the header followed by data rows 1..rows."""
    _check_positive("rows", rows)
    yield header(cols)
    for r in range(1, rows + 1):
        yield data_row(r, cols)


def cell_count(rows: int, cols: int) -> int:
    """Total cells in the grid, header included."""
    return (rows + 1) * cols
