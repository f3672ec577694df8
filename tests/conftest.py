"""
Global pytest configuration and fixtures for CrudBench tests.

This module provides:
- Fast measurement options so bench runs finish in milliseconds
- In-memory provider fixtures
- A recording provider double for seeding tests
"""

from __future__ import annotations

import re
from typing import Callable, Optional

import pytest

from crudbench.core.dataset import format_aggregate_id
from crudbench.core.providers.base import OperationContext, OperationProvider
from crudbench.core.providers.memory import MemoryProvider
from crudbench.core.run_mode import BenchOperation
from crudbench.models import BenchOptions


@pytest.fixture
def fast_options() -> BenchOptions:
    """Zero-length windows: only the minimum iteration counts are run."""
    return BenchOptions(
        time_ms=0,
        warmup_time_ms=0,
        warmup_iterations=1,
        iterations=3,
        throws=False,
    )


@pytest.fixture
def memory_provider() -> MemoryProvider:
    return MemoryProvider()


class RecordingProvider(OperationProvider):
    """
    Provider double for seeding tests.

    ``create_hook(index)`` may raise to simulate backend errors; every call
    to ``create_seed`` is recorded whether or not it raised.
    """

    name = "Recording"

    def __init__(
        self,
        seeded: Optional[set[int]] = None,
        *,
        reported_count: Optional[int] = None,
        create_hook: Optional[Callable[[int], None]] = None,
        duplicate_pattern: Optional[str] = None,
    ):
        self.seeded: set[int] = set(seeded or ())
        self.reported_count = reported_count
        self.create_hook = create_hook
        self.create_calls: list[int] = []
        self.lookup_calls: list[int] = []
        self.writes = 0
        if duplicate_pattern is not None:
            self.duplicate_error_pattern = re.compile(duplicate_pattern, re.IGNORECASE)

    async def is_seeded(self, index: int) -> bool:
        self.lookup_calls.append(index)
        return index in self.seeded

    async def count_seeded(self) -> int:
        if self.reported_count is not None:
            return self.reported_count
        return len(self.seeded)

    async def create_seed(self, index: int) -> None:
        self.create_calls.append(index)
        if self.create_hook is not None:
            self.create_hook(index)
        if index in self.seeded:
            raise RuntimeError(f"aggregate {format_aggregate_id(index)} already exists")
        self.seeded.add(index)
        self.writes += 1

    def build_operations(self, context: OperationContext) -> list[BenchOperation]:
        return []


@pytest.fixture
def recording_provider_factory() -> Callable[..., RecordingProvider]:
    return RecordingProvider
