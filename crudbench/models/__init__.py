"""
Data models for CrudBench.

This package contains Pydantic models for:
- Measurement options and per-task statistics
- Seeding, validation and suite reports
"""

from crudbench.models.bench import (
    BenchOptions,
    SampleStatistics,
    TaskResult,
)

from crudbench.models.results import (
    SeedResult,
    ValidationStatus,
    TaskValidation,
    ValidationReport,
    TierStatus,
    TierReport,
    SuiteReport,
)

__all__ = [
    # bench
    "BenchOptions",
    "SampleStatistics",
    "TaskResult",
    # results
    "SeedResult",
    "ValidationStatus",
    "TaskValidation",
    "ValidationReport",
    "TierStatus",
    "TierReport",
    "SuiteReport",
]
