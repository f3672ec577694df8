"""
Dataset seeding.

Guarantees a backend holds at least N synthetic aggregates (each with its
``Created`` event) before a tier is measured. Seeding is idempotent: a tier
whose boundary record already carries the synthetic marker is skipped after
a single lookup.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from crudbench.core.helpers import to_error_message
from crudbench.models import SeedResult

if TYPE_CHECKING:
    from crudbench.core.providers.base import OperationProvider

logger = logging.getLogger(__name__)

DEFAULT_SEED_CONCURRENCY = 8


@dataclass
class _SeedState:
    """Shared state for one seeding pass."""

    next_index: int
    last_index: int
    created: int = 0
    duplicates: int = 0
    error: Optional[BaseException] = None

    def claim(self) -> Optional[int]:
        # No await between the check and the increment: workers never
        # claim the same index.
        if self.error is not None or self.next_index > self.last_index:
            return None
        index = self.next_index
        self.next_index += 1
        return index


async def _seed_worker(
    worker_id: int, provider: "OperationProvider", state: _SeedState
) -> None:
    while (index := state.claim()) is not None:
        try:
            await provider.create_seed(index)
        except Exception as e:
            if provider.is_duplicate_error(e):
                state.duplicates += 1
                continue
            if state.error is None:
                state.error = e
            logger.debug("Seed worker %d stopped at index %d: %s", worker_id, index, e)
            return
        state.created += 1


def _resolve_concurrency(concurrency: Optional[int], work_count: int) -> int:
    if concurrency is None:
        from crudbench.config import settings

        concurrency = settings.BENCH_SEED_CONCURRENCY
    return max(1, min(int(concurrency), work_count))


async def ensure_dataset(
    provider: "OperationProvider",
    target_size: int,
    *,
    concurrency: Optional[int] = None,
) -> SeedResult:
    """
    Ensure ``provider`` holds at least ``target_size`` seeded aggregates.

    Args:
        provider: Backend to seed
        target_size: Tier size (positive)
        concurrency: Worker count; defaults to ``BENCH_SEED_CONCURRENCY``

    Returns:
        SeedResult: success, or failure with the first non-duplicate error.
        Callers skip the tier on failure; committed rows are not rolled back.
    """
    if isinstance(target_size, bool) or not isinstance(target_size, int) or target_size <= 0:
        raise ValueError(f"Dataset size must be a positive integer, got {target_size!r}")

    try:
        if await provider.is_seeded(target_size):
            logger.info(f"[{provider.name}] dataset of {target_size:,} already seeded")
            return SeedResult.success(target_size, already_seeded=True)
        existing = await provider.count_seeded()
    except Exception as e:
        reason = to_error_message(e)
        logger.warning(f"[{provider.name}] checking dataset of {target_size:,} failed: {reason}")
        return SeedResult.failure(target_size, reason, timed_out=provider.is_timeout_error(e))

    existing = max(0, min(int(existing or 0), target_size - 1))
    work_count = target_size - existing
    workers = _resolve_concurrency(concurrency, work_count)

    logger.info(
        f"[{provider.name}] seeding aggregates {existing + 1:,}..{target_size:,} "
        f"with {workers} worker(s)"
    )

    state = _SeedState(next_index=existing + 1, last_index=target_size)
    await asyncio.gather(
        *(_seed_worker(worker_id, provider, state) for worker_id in range(workers))
    )

    if state.error is not None:
        reason = to_error_message(state.error)
        logger.warning(f"[{provider.name}] seeding {target_size:,} failed: {reason}")
        return SeedResult.failure(
            target_size,
            reason,
            created=state.created,
            duplicates=state.duplicates,
            timed_out=provider.is_timeout_error(state.error),
        )

    logger.info(
        f"[{provider.name}] seeded {state.created:,} aggregate(s) "
        f"({state.duplicates:,} already present)"
    )
    return SeedResult.success(
        target_size, created=state.created, duplicates=state.duplicates
    )
