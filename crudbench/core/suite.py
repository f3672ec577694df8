"""
Backend suite driver.

Runs the seed-then-measure cycle for every dataset tier of one backend, in
ascending tier order:

1. ensure the tier is seeded (skip the remaining tiers on failure)
2. build the provider's operations and filter them by run mode
3. run the enabled operations, validate and summarize the results
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from crudbench.core.bench import run_benchmark
from crudbench.core.dataset import CyclicSampler, format_dataset_label
from crudbench.core.errors import EmptyAggregateSetError
from crudbench.core.helpers import to_error_message
from crudbench.core.providers.base import OperationContext, OperationProvider
from crudbench.core.run_mode import RunMode, filter_bench_operations, resolve_run_mode
from crudbench.core.seeding import ensure_dataset
from crudbench.core.summary import summarize_bench
from crudbench.core.validation import validate_bench_tasks
from crudbench.models import BenchOptions, SuiteReport, TierReport, TierStatus

logger = logging.getLogger(__name__)


def tier_label(index: int, size: int) -> str:
    return f"test{index + 1} ({format_dataset_label(size)})"


async def _close_quietly(provider: OperationProvider) -> None:
    try:
        await provider.close()
    except Exception as e:
        logger.debug(f"Ignoring error closing {provider.name}: {e}")


async def run_backend_suite(
    provider: OperationProvider,
    *,
    dataset_sizes: Optional[Iterable[int]] = None,
    run_mode: Optional[RunMode] = None,
    options: Optional[BenchOptions] = None,
    seed_concurrency: Optional[int] = None,
    list_limit: Optional[int] = None,
    events_limit: Optional[int] = None,
) -> SuiteReport:
    """
    Seed and benchmark every tier for one backend.

    Connection failures and seeding timeouts skip the backend; a failed seed
    stops further tiers. Only validation failures make the report not ok.
    Precondition violations (an empty aggregate set) propagate.
    """
    from crudbench.config import settings

    sizes = sorted(set(dataset_sizes if dataset_sizes is not None else settings.dataset_sizes))
    mode = resolve_run_mode(run_mode) if run_mode is not None else settings.run_mode
    list_limit = list_limit or settings.BENCH_LIST_LIMIT
    events_limit = events_limit or settings.BENCH_EVENTS_LIMIT
    backend = provider.name

    report = SuiteReport(backend=backend, run_mode=mode.value)

    try:
        await provider.connect()
    except Exception as e:
        reason = f"unable to connect: {to_error_message(e)}"
        logger.warning(f"Skipping {backend} benchmark – {reason}")
        await _close_quietly(provider)
        report.skipped = True
        report.reason = reason
        return report

    try:
        await provider.prepare()
        # One sampler per run; cursors carry across tiers.
        sampler = CyclicSampler()

        for index, size in enumerate(sizes):
            label = tier_label(index, size)
            seed = await ensure_dataset(provider, size, concurrency=seed_concurrency)
            if not seed.ok:
                if seed.timed_out:
                    reason = f"request timed out: {seed.reason}"
                    logger.warning(f"Skipping {backend} benchmark – {reason}")
                    report.skipped = True
                    report.reason = reason
                else:
                    logger.warning(
                        f"Skipping {backend} dataset {label} – seeding failed: {seed.reason}"
                    )
                report.tiers.append(
                    TierReport(
                        label=label,
                        dataset_size=size,
                        status=TierStatus.SEED_FAILED,
                        seed=seed,
                    )
                )
                break

            logger.info(f"{backend} dataset ready: test{index + 1} ({format_dataset_label(size)})")

            if await provider.count_seeded() == 0:
                raise EmptyAggregateSetError(backend)

            context = OperationContext.for_tier(
                size,
                list_limit=list_limit,
                events_limit=events_limit,
                sampler=sampler,
            )
            operations = filter_bench_operations(
                provider.build_operations(context),
                on_skip=lambda op: logger.info(
                    f'Skipping {op} operation in mode "{mode.value}" for {backend} benchmark'
                ),
                mode=mode,
            )
            if not operations:
                logger.info(
                    f"No operations enabled for {backend} dataset {label} "
                    f'with run mode "{mode.value}". Skipping.'
                )
                report.tiers.append(
                    TierReport(
                        label=label,
                        dataset_size=size,
                        status=TierStatus.NO_OPERATIONS,
                        seed=seed,
                    )
                )
                continue

            bench_name = f"{backend} {label}"
            bench = await run_benchmark(bench_name, operations, options)
            validation = validate_bench_tasks(bench)
            summary = summarize_bench(bench, bench_name)
            logger.info("\n%s\n", summary)

            report.tiers.append(
                TierReport(
                    label=label,
                    dataset_size=size,
                    status=TierStatus.COMPLETED,
                    seed=seed,
                    operations=[task.name for task in bench.tasks],
                    validation=validation,
                    summary=summary,
                )
            )
    finally:
        await _close_quietly(provider)

    return report
