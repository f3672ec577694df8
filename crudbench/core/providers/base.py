"""
Base Operation Provider

Abstract interface every benchmarked backend implements: connection
lifecycle, the seeding primitives used by the seeding orchestrator, and the
nine benchmarked CRUD operations.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from crudbench.core.dataset import (
    AGGREGATE_TYPE,
    PROJECTION_FIELDS,
    CyclicSampler,
    page_size_for,
)
from crudbench.core.helpers import DUPLICATE_ERROR_RE, is_duplicate_error, is_timeout_error
from crudbench.core.run_mode import BenchOperation

logger = logging.getLogger(__name__)


@dataclass
class OperationContext:
    """Per-tier inputs used when a provider builds its operations."""

    dataset_size: int
    page_size: int
    event_window: int
    sampler: CyclicSampler = field(default_factory=CyclicSampler)
    projection_fields: tuple[str, ...] = PROJECTION_FIELDS
    aggregate_type: str = AGGREGATE_TYPE

    @classmethod
    def for_tier(
        cls,
        dataset_size: int,
        *,
        list_limit: int,
        events_limit: int,
        sampler: CyclicSampler | None = None,
    ) -> "OperationContext":
        return cls(
            dataset_size=dataset_size,
            page_size=page_size_for(dataset_size, list_limit),
            event_window=page_size_for(dataset_size, events_limit),
            sampler=sampler or CyclicSampler(),
        )

    def next_aggregate_id(self) -> str:
        """Next seeded aggregate id in round-robin order."""
        return self.sampler.next_aggregate_id(self.dataset_size)


class OperationProvider(ABC):
    """
    Abstract base class for benchmarked backends.

    Subclasses wrap one backend client. The core only calls the methods
    declared here, so backend query bodies stay out of the benchmark engine.
    """

    name: str = "backend"
    duplicate_error_pattern: re.Pattern[str] = DUPLICATE_ERROR_RE

    async def connect(self) -> None:
        """Open the client; raising here skips the whole backend."""

    async def prepare(self) -> None:
        """Create benchmark tables/collections if missing."""

    async def close(self) -> None:
        """Release the client."""

    @abstractmethod
    async def is_seeded(self, index: int) -> bool:
        """
        Whether the aggregate at ``index`` exists and carries the synthetic marker.

        Args:
            index: 1-based aggregate index

        Returns:
            bool: True if seeded
        """

    @abstractmethod
    async def count_seeded(self) -> int:
        """
        Count aggregates carrying the synthetic marker.

        Returns:
            int: Seeded aggregate count
        """

    @abstractmethod
    async def create_seed(self, index: int) -> None:
        """
        Create the aggregate at ``index`` plus its originating event.

        Must raise (with a duplicate/conflict message) when the aggregate
        already exists.
        """

    @abstractmethod
    def build_operations(self, context: OperationContext) -> list[BenchOperation]:
        """
        Build the nine ``(label, action)`` pairs for one tier.

        Returns:
            Operations in canonical order (list, get, select, events, apply,
            create, archive, restore, patch)
        """

    def is_duplicate_error(self, error: BaseException) -> bool:
        return is_duplicate_error(error, self.duplicate_error_pattern)

    def is_timeout_error(self, error: BaseException) -> bool:
        return is_timeout_error(error)
