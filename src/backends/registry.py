"""
Backend registry — the closed set of libraries under test.

Identifiers map to adapter functions per mode. Lookup is a plain dict access;
anything not listed here is rejected with UnsupportedLibraryError.
"""

from __future__ import annotations

from typing import Callable, Literal

from src.backends import (
    calamine_backend,
    openpyxl_backend,
    pandas_backend,
    pyexcelerate_backend,
    xlsxwriter_backend,
)
from src.backends.base import ReadCounts
from src.benchmark.errors import UnsupportedLibraryError

WriteLibrary = Literal["xlsxwriter", "openpyxl", "pyexcelerate"]
ReadLibrary = Literal["calamine", "openpyxl", "pandas"]

WriteFn = Callable[..., None]
ReadFn = Callable[..., ReadCounts]

# Insertion order is the column order of every report table.
WRITERS: dict[str, WriteFn] = {
    "xlsxwriter": xlsxwriter_backend.write,
    "openpyxl": openpyxl_backend.write,
    "pyexcelerate": pyexcelerate_backend.write,
}

READERS: dict[str, ReadFn] = {
    "calamine": calamine_backend.read,
    "openpyxl": openpyxl_backend.read,
    "pandas": pandas_backend.read,
}

WRITE_LIBS: list[str] = list(WRITERS)
READ_LIBS: list[str] = list(READERS)

REFERENCE_WRITER = "xlsxwriter"   # produces the files every reader consumes
WRITE_BASELINE = "xlsxwriter"
READ_BASELINE = "calamine"

# Backends that honour --cache-mode; only these echo it into their records.
CACHE_AWARE = {"openpyxl"}

# Import name → distribution name, for environment capture.
DISTRIBUTIONS = {
    "xlsxwriter": "XlsxWriter",
    "openpyxl": "openpyxl",
    "pyexcelerate": "PyExcelerate",
    "python_calamine": "python-calamine",
    "pandas": "pandas",
}


def get_writer(library: str) -> WriteFn:
    try:
        return WRITERS[library]
    except KeyError:
        raise UnsupportedLibraryError(f"Unknown lib for write: {library}") from None


def get_reader(library: str) -> ReadFn:
    try:
        return READERS[library]
    except KeyError:
        raise UnsupportedLibraryError(f"Unknown lib for read: {library}") from None
