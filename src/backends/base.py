"""
Shared pieces of the backend adapter contract.

Every adapter module exposes plain functions:

    write(path, rows, cols, cache_mode=None) -> None
    read(path, cache_mode=None)              -> ReadCounts

Adapters import their third-party library lazily, inside the function body,
so a missing optional dependency fails only the trials that need it.
"""

from __future__ import annotations

import importlib
from types import ModuleType
from typing import Iterable, NamedTuple

from src.benchmark.errors import BackendError


class ReadCounts(NamedTuple):
    rows: int
    cells: int


def require(module: str, dist: str) -> ModuleType:
    """Import ``module`` or raise BackendError naming the PyPI distribution."""
    try:
        return importlib.import_module(module)
    except ImportError as e:
        raise BackendError(
            f"{dist} not installed ({module} could not be imported: {e})",
            cause=type(e).__name__,
        ) from e


def count_cells(values: Iterable) -> int:
    """Count decoded cells in one row, touching every value."""
    n = 0
    for v in values:
        if v is not None and v != "":
            n += 1
    return n
