"""
Benchmark result validation.

"No data" and "bad data" are distinguished: a task that never recorded a
latency sample is reported as skipped (the backend errored before any
timing), while a task that has samples and also an attached error fails.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crudbench.core.helpers import to_error_message
from crudbench.models import TaskValidation, ValidationReport, ValidationStatus

if TYPE_CHECKING:
    from crudbench.core.bench import Bench, BenchTask

logger = logging.getLogger(__name__)


def validate_task(task: "BenchTask") -> TaskValidation:
    result = task.result
    if result is None:
        return TaskValidation(
            name=task.name,
            status=ValidationStatus.FAILED,
            message="produced no benchmark stats",
        )

    sample_count = result.sample_count
    if sample_count == 0:
        logger.info(f"{task.name} did not record latency samples; treating as skipped")
        message = None
        if result.error is not None:
            message = to_error_message(result.error)
        return TaskValidation(
            name=task.name,
            status=ValidationStatus.SKIPPED,
            sample_count=0,
            message=message,
        )

    if result.error is not None:
        return TaskValidation(
            name=task.name,
            status=ValidationStatus.FAILED,
            sample_count=sample_count,
            message=f"should not surface errors: {to_error_message(result.error)}",
        )

    return TaskValidation(
        name=task.name,
        status=ValidationStatus.PASSED,
        sample_count=sample_count,
    )


def validate_bench_tasks(bench: "Bench") -> ValidationReport:
    """Validate every registered task, in registration order."""
    report = ValidationReport(
        bench_name=bench.name,
        tasks=[validate_task(task) for task in bench.tasks],
    )
    for failure in report.failures:
        logger.error(f"[{bench.name}] {failure.name} failed validation: {failure.message}")
    return report
