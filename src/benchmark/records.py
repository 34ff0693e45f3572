"""
ResultRecord — the atomic unit of the results store.

One record per (mode, library, case[, origin_writer]) trial. Records are
created once by the trial runner, serialised to a single JSON line and never
mutated afterwards.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from typing import Any, Literal

Mode = Literal["write", "read"]
MODES = ("write", "read")

# Optional text fields; a present value must be a string.
_OPTIONAL_STR = (
    "timestamp", "output_path", "input_path", "origin_writer", "cache_mode",
    "error_message", "error_kind", "error_cause", "raw",
)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def case_key(rows: Any, cols: Any) -> str:
    return f"{rows}x{cols}"


@dataclass
class ResultRecord:
    mode: str
    library: str
    row_count: int
    col_count: int
    ok: bool = False
    elapsed_ms: int = 0
    peak_memory_mb: float = 0.0
    timestamp: str = ""

    output_path: str | None = None      # write mode
    input_path: str | None = None       # read mode
    origin_writer: str | None = None    # read mode
    cache_mode: str | None = None

    start_memory_mb: float | None = None
    read_row_count: int | None = None   # read mode, ok only
    read_cell_count: int | None = None  # read mode, ok only

    error_message: str | None = None
    error_kind: str | None = None
    error_cause: str | None = None
    raw: str | None = None              # orchestrator-level failures only

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = utc_timestamp()

    @property
    def case(self) -> str:
        return case_key(self.row_count, self.col_count)

    def to_dict(self) -> dict[str, Any]:
        """Serialisable dict; ``None`` fields are omitted."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def to_json(self) -> str:
        # ensure_ascii=False keeps UTF-8 text readable; json escapes any
        # newline inside strings, so the output is always a single line.
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_dict(cls, doc: dict[str, Any]) -> "ResultRecord":
        """
        Build a record from a decoded JSON object.

        Unknown keys are ignored. Raises TypeError/ValueError when a required
        field is missing or carries a value of the wrong type.
        """
        if not isinstance(doc, dict):
            raise TypeError(f"expected a JSON object, got {type(doc).__name__}")
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in doc.items() if k in known}

        for key in ("mode", "library"):
            if not isinstance(kwargs.get(key), str):
                raise ValueError(f"field '{key}' must be a string")
        for key in _OPTIONAL_STR:
            if kwargs.get(key) is not None and not isinstance(kwargs[key], str):
                raise ValueError(f"field '{key}' must be a string")
        for key in ("row_count", "col_count"):
            kwargs[key] = _as_int(kwargs.get(key), key)
        for key in ("elapsed_ms", "read_row_count", "read_cell_count"):
            if kwargs.get(key) is not None:
                kwargs[key] = _non_negative(_as_int(kwargs[key], key), key)
        for key in ("peak_memory_mb", "start_memory_mb"):
            if kwargs.get(key) is not None:
                kwargs[key] = _non_negative(_as_float(kwargs[key], key), key)
        ok = kwargs.get("ok", False)
        if not isinstance(ok, bool):
            raise ValueError("field 'ok' must be a boolean")
        return cls(**kwargs)

    @classmethod
    def from_json(cls, line: str) -> "ResultRecord":
        return cls.from_dict(json.loads(line))


def _as_int(value: Any, name: str) -> int:
    # bool is an int subclass; a boolean dimension is a malformed record
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field '{name}' must be an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"field '{name}' must be an integer")
    return int(value)


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field '{name}' must be a number")
    return float(value)


def _non_negative(value, name: str):
    if value < 0:
        raise ValueError(f"field '{name}' must be >= 0")
    return value
