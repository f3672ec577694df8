"""
Dataset sizing helpers.

Pure functions for tier sizes, aggregate id formatting and seeded field
values, plus the per-run round-robin id sampler.
"""

from __future__ import annotations

from typing import Any

from crudbench.core.errors import InvalidIndexError

AGGREGATE_TYPE = "account"
AGGREGATE_ID_WIDTH = 16
PROJECTION_FIELDS: tuple[str, ...] = ("state.field1", "state.field2")
DEFAULT_DATASET_SIZES: tuple[int, ...] = (1_000, 10_000, 100_000, 1_000_000)

# Marker stored on every seeded aggregate and creation event.
BENCH_DATASET_MARKER = "benchDataset"


def _require_positive(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidIndexError(value)
    return value


def format_aggregate_id(index: int) -> str:
    """
    Zero-pad a 1-based index to a fixed width.

    String ordering of the result matches numeric ordering of ``index``,
    which keeps lexicographically indexed backends in seed order.
    """
    return str(_require_positive(index)).rjust(AGGREGATE_ID_WIDTH, "0")


def format_dataset_label(count: int) -> str:
    return f"{count:,} records"


def page_size_for(size: int, limit: int) -> int:
    """Clamp a page/window limit to the tier size (never below 1)."""
    return max(1, min(int(limit), int(size)))


def seed_fields(index: int) -> dict[str, Any]:
    """Deterministic state for the seeded aggregate at ``index``."""
    aggregate_id = format_aggregate_id(index)
    return {
        "field1": f"value-{aggregate_id}",
        "field2": index,
        "name": f"Account {aggregate_id}",
        "archived": False,
        BENCH_DATASET_MARKER: True,
    }


def seed_event_payload(index: int) -> dict[str, Any]:
    """Payload of the ``Created`` event paired with a seeded aggregate."""
    aggregate_id = format_aggregate_id(index)
    return {
        "field1": f"value-{aggregate_id}",
        "field2": index,
        "name": f"Account {aggregate_id}",
        "version": 1,
        BENCH_DATASET_MARKER: True,
    }


class CyclicSampler:
    """
    Round-robin id sampler, one cursor per pool size.

    Owned by a single benchmark run. Tasks run one at a time, so the cursor
    map is never advanced concurrently.
    """

    def __init__(self) -> None:
        self._cursors: dict[int, int] = {}

    def next_index(self, size: int) -> int:
        """Return the next 1-based index in ``1..size``, wrapping around."""
        size = _require_positive(size)
        cursor = self._cursors.get(size, 0)
        self._cursors[size] = (cursor + 1) % size
        return cursor + 1

    def next_aggregate_id(self, size: int) -> str:
        return format_aggregate_id(self.next_index(size))

    def cursor(self, size: int) -> int:
        """Zero-based position of the next index for ``size``."""
        return self._cursors.get(size, 0)

    def reset(self) -> None:
        self._cursors.clear()
