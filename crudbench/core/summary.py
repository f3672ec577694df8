"""
Text summaries of benchmark runs.

Output is a fixed-width grid with one row per task in registration order.
The formatting is stable so summaries can be compared verbatim.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from crudbench.core.bench import Bench

NO_SAMPLES = "no samples recorded"
NOT_AVAILABLE = "n/a"
SUMMARY_HEADERS = ("operation", "throughput (ops/s)", "latency")
COLUMN_GAP = "  "

# Latency units, largest first, as (threshold in ms, divisor, suffix).
_LATENCY_UNITS = (
    (1_000.0, 1_000.0, "s"),
    (1.0, 1.0, "ms"),
    (1e-3, 1e-3, "µs"),
)
_THROUGHPUT_UNITS = (
    (1_000_000_000.0, "B"),
    (1_000_000.0, "M"),
    (1_000.0, "k"),
)


def _is_finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def precision_for(value: float) -> int:
    """Decimal places for a displayed magnitude."""
    if value >= 100:
        return 0
    if value >= 10:
        return 1
    return 2


def _fixed(value: float) -> str:
    return f"{value:.{precision_for(value)}f}"


def format_latency(value: Optional[float]) -> str:
    """Format a latency given in milliseconds."""
    if not _is_finite(value):
        return NOT_AVAILABLE
    for threshold, divisor, suffix in _LATENCY_UNITS:
        if value >= threshold:
            return f"{_fixed(value / divisor)} {suffix}"
    return f"{_fixed(value * 1_000_000.0)} ns"


def format_throughput(value: Optional[float]) -> str:
    """Format operations per second with k/M/B suffixes."""
    if not _is_finite(value):
        return NOT_AVAILABLE
    for threshold, suffix in _THROUGHPUT_UNITS:
        if value >= threshold:
            return f"{_fixed(value / threshold)}{suffix}"
    return _fixed(value)


def format_rme(value: Optional[float]) -> str:
    if not _is_finite(value):
        return NOT_AVAILABLE
    return f"{value:.2f}%"


def format_grid(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """Left-aligned grid with a dashed separator under the header."""
    all_rows = [list(headers), *[list(row) for row in rows]]
    widths = [
        max(len(row[i]) if i < len(row) else 0 for row in all_rows)
        for i in range(len(headers))
    ]

    def render(row: Sequence[str]) -> str:
        cells = [
            (row[i] if i < len(row) else "").ljust(width)
            for i, width in enumerate(widths)
        ]
        return COLUMN_GAP.join(cells)

    separator = COLUMN_GAP.join("-" * width for width in widths)
    return "\n".join([render(headers), separator, *(render(row) for row in rows)])


def summarize_bench(bench: "Bench", label: Optional[str] = None) -> str:
    rows: list[list[str]] = []
    for task in bench.tasks:
        stats = task.result
        if stats is None:
            rows.append([task.name, NO_SAMPLES, NO_SAMPLES])
            continue

        throughput = stats.throughput
        latency = stats.latency
        throughput_mean = throughput.mean if throughput is not None else math.nan
        throughput_rme = throughput.rme if throughput is not None else math.nan
        latency_mean = latency.mean if latency is not None else math.nan
        latency_rme = latency.rme if latency is not None else math.nan

        rows.append(
            [
                task.name,
                f"{format_throughput(throughput_mean)} ±{format_rme(throughput_rme)}",
                f"{format_latency(latency_mean)} ±{format_rme(latency_rme)}",
            ]
        )

    header = label or bench.name or "Bench summary"
    return "\n".join([f"{header}:", format_grid(SUMMARY_HEADERS, rows)])
