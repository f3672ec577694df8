"""
Tests for summary formatting.
"""

import math

import pytest

from crudbench.core.bench import Bench
from crudbench.models import SampleStatistics, TaskResult
from crudbench.core.summary import (
    COLUMN_GAP,
    NO_SAMPLES,
    NOT_AVAILABLE,
    format_grid,
    format_latency,
    format_rme,
    format_throughput,
    precision_for,
    summarize_bench,
)


@pytest.mark.parametrize(
    "value, expected",
    [(0.5, 2), (9.99, 2), (10, 1), (99.9, 1), (100, 0), (12345, 0)],
)
def test_precision_steps(value: float, expected: int) -> None:
    assert precision_for(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        (1, "1.00 ms"),
        (12.345, "12.3 ms"),
        (150, "150 ms"),
        (1000, "1.00 s"),
        (2500, "2.50 s"),
        (0.25, "250 µs"),
        (0.0005, "500 ns"),
    ],
)
def test_format_latency_units(value: float, expected: str) -> None:
    assert format_latency(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [
        (999, "999"),
        (12.5, "12.5"),
        (12345, "12.3k"),
        (2_500_000, "2.50M"),
        (3_000_000_000, "3.00B"),
    ],
)
def test_format_throughput_suffixes(value: float, expected: str) -> None:
    assert format_throughput(value) == expected


@pytest.mark.parametrize("value", [None, math.nan, math.inf])
def test_non_finite_values_are_not_available(value) -> None:
    assert format_latency(value) == NOT_AVAILABLE
    assert format_throughput(value) == NOT_AVAILABLE
    assert format_rme(value) == NOT_AVAILABLE


def test_format_rme() -> None:
    assert format_rme(1.2) == "1.20%"
    assert format_rme(0) == "0.00%"


def test_grid_pads_columns_and_draws_separator() -> None:
    grid = format_grid(("a", "bb"), [["xxx", "y"]])

    assert grid.split("\n") == [
        "a  " + COLUMN_GAP + "bb",
        "---" + COLUMN_GAP + "--",
        "xxx" + COLUMN_GAP + "y ",
    ]


@pytest.mark.asyncio
async def test_summary_has_row_per_task_in_order(fast_options) -> None:
    async def action() -> None:
        return None

    bench = Bench("Memory test1 (1 records)", fast_options)
    bench.add("list", action)
    bench.add("get", action)
    await bench.run()

    lines = summarize_bench(bench).split("\n")

    assert lines[0] == "Memory test1 (1 records):"
    assert lines[1].split() == ["operation", "throughput", "(ops/s)", "latency"]
    assert set(lines[2].replace(COLUMN_GAP, "")) == {"-"}
    assert lines[3].startswith("list")
    assert lines[4].startswith("get")
    assert "±" in lines[3] and "ops/s" not in lines[3]
    assert len(lines) == 5


def test_summary_marks_tasks_without_results() -> None:
    async def action() -> None:
        return None

    bench = Bench("", None)
    bench.add("get", action)

    lines = summarize_bench(bench).split("\n")

    assert lines[0] == "Bench summary:"
    assert lines[3].startswith("get")
    assert lines[3].count(NO_SAMPLES) == 2


@pytest.mark.asyncio
async def test_summary_shows_not_available_for_zero_samples(fast_options) -> None:
    async def broken() -> None:
        raise RuntimeError("unsupported")

    bench = Bench("errors", fast_options)
    bench.add("select", broken)
    await bench.run()

    row = summarize_bench(bench, "custom label").split("\n")[3]

    assert summarize_bench(bench, "custom label").startswith("custom label:")
    assert row.split() == ["select", "n/a", "±n/a", "n/a", "±n/a"]


def test_summary_golden_output() -> None:
    async def action() -> None:
        return None

    bench = Bench("Memory test1 (2 records)", None)
    bench.add("list", action)
    bench.add("get", action)
    bench.get_task("list").result = TaskResult(
        throughput=SampleStatistics(samples=[12000.0, 12690.0], mean=12345.0, rme=1.2),
        latency=SampleStatistics(samples=[0.083, 0.079], mean=0.081, rme=1.2),
        runs=2,
    )

    summary = summarize_bench(bench)

    assert summary.split("\n") == [
        "Memory test1 (2 records):",
        "operation  throughput (ops/s)   latency            ",
        "---------  -------------------  -------------------",
        "list       12.3k ±1.20%         81.0 µs ±1.20%     ",
        "get        no samples recorded  no samples recorded",
    ]
