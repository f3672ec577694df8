"""
Exception types raised by the benchmark core.

Recoverable conditions (missing driver, duplicate seed rows, lost
connections) are normally converted into result data by the caller; these
types exist so that conversion can be done by ``isinstance`` rather than by
string matching.
"""

from __future__ import annotations


class CrudBenchError(Exception):
    """Base class for all CrudBench errors."""


class InvalidIndexError(CrudBenchError, ValueError):
    """An aggregate index or pool size was not a positive integer."""

    def __init__(self, index: object):
        self.index = index
        super().__init__(f"Aggregate index must be a positive integer, got {index!r}")


class ConnectionLostError(CrudBenchError):
    """A benchmarked operation failed because the backend client disconnected."""

    def __init__(self, label: str, original_message: str):
        self.label = label
        self.original_message = original_message
        super().__init__(
            f"{label} failed because connection was lost: {original_message}"
        )


class EmptyAggregateSetError(CrudBenchError):
    """No seeded aggregates exist to sample from."""

    def __init__(self, backend: str):
        self.backend = backend
        super().__init__(f"{backend} aggregate set is empty")


class DuplicateAggregateError(CrudBenchError):
    """An aggregate with the requested id already exists."""

    def __init__(self, aggregate_id: str):
        self.aggregate_id = aggregate_id
        super().__init__(f"aggregate {aggregate_id} already exists")


class ProviderUnavailableError(CrudBenchError):
    """A backend provider could not be constructed (driver missing, no DSN)."""

    def __init__(self, backend: str, reason: str):
        self.backend = backend
        self.reason = reason
        super().__init__(f"{backend} provider unavailable: {reason}")


class BenchValidationError(CrudBenchError, AssertionError):
    """One or more benchmark tasks produced invalid results."""

    def __init__(self, failures: list[str]):
        self.failures = list(failures)
        super().__init__("; ".join(self.failures) or "benchmark validation failed")
