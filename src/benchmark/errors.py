"""
Failure taxonomy for benchmark trials.

Every class carries a ``kind`` that is written verbatim into the
``error_kind`` field of a failed ResultRecord.
"""

from __future__ import annotations


class BenchmarkError(RuntimeError):
    kind = "BenchmarkError"


class ValidationError(BenchmarkError):
    """Bad trial parameters, detected before any backend is touched."""

    kind = "ValidationError"


class UnsupportedLibraryError(BenchmarkError):
    """Library identifier not registered for the requested mode."""

    kind = "UnsupportedLibrary"


class BackendError(BenchmarkError):
    """Failure surfaced by a backend adapter or the library underneath it."""

    kind = "BackendError"

    def __init__(self, message: str, cause: str | None = None):
        super().__init__(message)
        self.cause = cause


# Orchestrator-level failure: the trial process itself misbehaved.
RUNNER_ERROR_KIND = "RunnerError"
