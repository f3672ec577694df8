"""
Benchmark runner.

A small sequential measurement engine: each registered task is warmed up,
then timed for a minimum window and a minimum number of iterations. Tasks
run one at a time so they never contend with each other for the client or
the backend.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Iterable, Optional

from crudbench.core.errors import ConnectionLostError
from crudbench.core.helpers import is_connection_lost, to_error_message
from crudbench.core.run_mode import AsyncOperation, BenchOperation
from crudbench.core.statistics import summarize_samples
from crudbench.models import BenchOptions, TaskResult

logger = logging.getLogger(__name__)


async def run_operation(label: str, action: AsyncOperation) -> Any:
    """
    Await ``action``, tagging connection loss with the operation label.

    Errors mentioning "client is not connected" become ConnectionLostError;
    everything else propagates unchanged.
    """
    try:
        return await action()
    except ConnectionLostError:
        raise
    except Exception as e:
        if is_connection_lost(e):
            raise ConnectionLostError(label, to_error_message(e)) from e
        raise


class BenchTask:
    """One operation label bound to its action, owned by a single Bench."""

    def __init__(self, name: str, action: AsyncOperation):
        self.name = name
        self.action = action
        self.result: Optional[TaskResult] = None

    def __repr__(self) -> str:
        return f"BenchTask(name={self.name!r}, samples={self.sample_count})"

    @property
    def sample_count(self) -> int:
        return self.result.sample_count if self.result is not None else 0

    async def warmup(self, options: BenchOptions) -> None:
        if options.warmup_iterations <= 0 and options.warmup_time_ms <= 0:
            return
        started = time.perf_counter()
        done = 0
        while (
            done < options.warmup_iterations
            or (time.perf_counter() - started) * 1000.0 < options.warmup_time_ms
        ):
            await self.action()
            done += 1

    async def measure(self, options: BenchOptions, samples: list[float]) -> None:
        """Append per-iteration latency (ms) to ``samples``."""
        started = time.perf_counter()
        while (
            len(samples) < options.iterations
            or (time.perf_counter() - started) * 1000.0 < options.time_ms
        ):
            t0 = time.perf_counter()
            await self.action()
            samples.append((time.perf_counter() - t0) * 1000.0)

    async def run(self, options: BenchOptions) -> TaskResult:
        samples: list[float] = []
        error: Optional[BaseException] = None
        started = time.perf_counter()

        try:
            await self.warmup(options)
            started = time.perf_counter()
            await self.measure(options, samples)
        except Exception as e:
            # Samples taken before the failure are kept.
            error = e
            logger.debug("Task %s failed: %s", self.name, e)

        total_time_ms = (time.perf_counter() - started) * 1000.0
        throughput = [1000.0 / s for s in samples if s > 0]

        self.result = TaskResult(
            latency=summarize_samples(samples),
            throughput=summarize_samples(throughput),
            error=error,
            runs=len(samples),
            total_time_ms=total_time_ms,
        )
        if error is not None and options.throws:
            raise error
        return self.result


class Bench:
    """
    Sequential micro-benchmark over registered async tasks.

    Per-task errors are captured on the task result unless ``throws`` is set,
    so one failing operation does not abort the rest of the run.
    """

    def __init__(
        self,
        name: str,
        options: Optional[BenchOptions] = None,
        **overrides: Any,
    ):
        self.name = name
        base = options or BenchOptions()
        self.options = base.model_copy(update=overrides) if overrides else base
        self._tasks: dict[str, BenchTask] = {}

    @property
    def tasks(self) -> list[BenchTask]:
        return list(self._tasks.values())

    def get_task(self, name: str) -> Optional[BenchTask]:
        return self._tasks.get(name)

    def add(self, name: str, action: AsyncOperation) -> "Bench":
        if name in self._tasks:
            raise ValueError(f"Task {name!r} already registered on {self.name}")
        self._tasks[name] = BenchTask(name, action)
        return self

    async def run(self) -> list[BenchTask]:
        """Run every task in registration order and return them."""
        logger.info(f"[{self.name}] running {len(self._tasks)} task(s)")
        for task in self._tasks.values():
            result = await task.run(self.options)
            if result.error is not None:
                logger.warning(
                    f"[{self.name}] {task.name} recorded error after "
                    f"{result.runs} sample(s): {to_error_message(result.error)}"
                )
        return self.tasks


def add_bench_task(bench: Bench, label: str, action: AsyncOperation) -> None:
    """Register ``action`` wrapped so connection loss carries ``label``."""

    async def _task() -> None:
        await run_operation(label, action)

    bench.add(label, _task)


def create_bench(name: str, options: Optional[BenchOptions] = None) -> Bench:
    """Build a Bench using the configured timing unless ``options`` is given."""
    if options is None:
        from crudbench.config import settings

        options = BenchOptions(
            time_ms=settings.BENCH_TIME_MS,
            warmup_time_ms=settings.BENCH_WARMUP_TIME_MS,
            warmup_iterations=settings.BENCH_WARMUP_ITERATIONS,
            iterations=settings.BENCH_ITERATIONS,
            throws=False,
        )
    return Bench(name, options)


async def run_benchmark(
    name: str,
    operations: Iterable[BenchOperation],
    options: Optional[BenchOptions] = None,
) -> Bench:
    """Register one task per enabled operation and run them to completion."""
    bench = create_bench(name, options)
    for label, action in operations:
        add_bench_task(bench, label, action)
    await bench.run()
    return bench
