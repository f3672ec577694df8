"""
Unit tests for dataset seeding.

Covers idempotence, duplicate absorption, fatal-error abort and the
bounded worker pool.
"""

from __future__ import annotations

import asyncio

import pytest

from crudbench.core.providers.memory import MemoryProvider
from crudbench.core.seeding import ensure_dataset


class TestEnsureDatasetIdempotence:
    """Re-running a seeded tier performs only the boundary lookup."""

    @pytest.mark.asyncio
    async def test_second_call_performs_no_writes(self, recording_provider_factory) -> None:
        provider = recording_provider_factory()

        first = await ensure_dataset(provider, 50, concurrency=4)
        writes_after_first = provider.writes
        calls_after_first = len(provider.create_calls)

        second = await ensure_dataset(provider, 50, concurrency=4)

        assert first.ok and first.created == 50
        assert second.ok and second.already_seeded
        assert second.created == 0
        assert provider.writes == writes_after_first == 50
        assert len(provider.create_calls) == calls_after_first
        assert provider.lookup_calls == [50, 50]

    @pytest.mark.asyncio
    async def test_memory_provider_idempotent(self) -> None:
        provider = MemoryProvider()

        await ensure_dataset(provider, 20)
        await ensure_dataset(provider, 20)

        assert provider.seed_writes == 20
        assert provider.write_count == 20
        assert provider.seed_checks == 2
        assert len(provider.aggregates) == 20
        assert len(provider.events) == 20

    @pytest.mark.asyncio
    async def test_tiers_are_cumulative(self, recording_provider_factory) -> None:
        provider = recording_provider_factory()

        await ensure_dataset(provider, 1)
        result = await ensure_dataset(provider, 10, concurrency=3)

        assert result.ok
        assert result.created == 9
        assert sorted(provider.create_calls) == list(range(1, 11))


class TestEnsureDatasetRange:
    @pytest.mark.asyncio
    async def test_single_record_tier(self, recording_provider_factory) -> None:
        provider = recording_provider_factory()

        result = await ensure_dataset(provider, 1)

        assert result.ok
        assert result.created == 1
        assert provider.create_calls == [1]

    @pytest.mark.asyncio
    async def test_resumes_after_existing_count(self, recording_provider_factory) -> None:
        provider = recording_provider_factory(seeded=set(range(1, 31)))

        result = await ensure_dataset(provider, 40, concurrency=2)

        assert result.ok
        assert result.created == 10
        assert sorted(provider.create_calls) == list(range(31, 41))

    @pytest.mark.asyncio
    async def test_boundary_missing_with_large_count_still_seeds_boundary(
        self, recording_provider_factory
    ) -> None:
        provider = recording_provider_factory(reported_count=500)

        result = await ensure_dataset(provider, 100)

        assert result.ok
        assert provider.create_calls == [100]

    @pytest.mark.asyncio
    async def test_every_index_claimed_once(self, recording_provider_factory) -> None:
        provider = recording_provider_factory()

        result = await ensure_dataset(provider, 200, concurrency=8)

        assert result.ok
        assert len(provider.create_calls) == 200
        assert sorted(provider.create_calls) == list(range(1, 201))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad", [0, -5])
    async def test_rejects_non_positive_target(self, recording_provider_factory, bad) -> None:
        with pytest.raises(ValueError):
            await ensure_dataset(recording_provider_factory(), bad)


class TestEnsureDatasetErrors:
    @pytest.mark.asyncio
    async def test_duplicates_for_half_the_range_still_succeed(
        self, recording_provider_factory
    ) -> None:
        # Even indices already exist but are invisible to the count query.
        provider = recording_provider_factory(
            seeded=set(range(2, 100, 2)),
            reported_count=0,
        )

        result = await ensure_dataset(provider, 100, concurrency=5)

        assert result.ok
        assert result.duplicates == 49
        assert result.created == 51
        assert provider.writes == 51
        assert provider.seeded == set(range(1, 101))

    @pytest.mark.asyncio
    async def test_conflict_message_is_absorbed(self, recording_provider_factory) -> None:
        def hook(index: int) -> None:
            if index % 3 == 0:
                raise RuntimeError("409 Conflict: aggregate exists")

        provider = recording_provider_factory(create_hook=hook)

        result = await ensure_dataset(provider, 9, concurrency=2)

        assert result.ok
        assert result.duplicates == 3
        assert result.created == 6

    @pytest.mark.asyncio
    async def test_other_error_aborts_tier(self, recording_provider_factory) -> None:
        def hook(index: int) -> None:
            if index == 5:
                raise RuntimeError("disk full")

        provider = recording_provider_factory(create_hook=hook)

        result = await ensure_dataset(provider, 1000, concurrency=1)

        assert not result.ok
        assert result.reason == "disk full"
        assert not result.timed_out
        # Single worker: nothing after the failing index is attempted.
        assert provider.create_calls == [1, 2, 3, 4, 5]
        assert result.created == 4

    @pytest.mark.asyncio
    async def test_workers_stop_claiming_after_failure(
        self, recording_provider_factory
    ) -> None:
        def hook(index: int) -> None:
            if index == 3:
                raise RuntimeError("permission denied")

        provider = recording_provider_factory(create_hook=hook)

        result = await ensure_dataset(provider, 10_000, concurrency=4)

        assert not result.ok
        assert len(provider.create_calls) < 20

    @pytest.mark.asyncio
    async def test_timeout_is_flagged(self, recording_provider_factory) -> None:
        def hook(index: int) -> None:
            raise TimeoutError("request timed out")

        provider = recording_provider_factory(create_hook=hook)

        result = await ensure_dataset(provider, 5)

        assert not result.ok
        assert result.timed_out

    @pytest.mark.asyncio
    async def test_custom_duplicate_pattern(self, recording_provider_factory) -> None:
        def hook(index: int) -> None:
            if index == 2:
                raise RuntimeError("E11000 key collision")

        provider = recording_provider_factory(create_hook=hook, duplicate_pattern=r"E11000")

        result = await ensure_dataset(provider, 3)

        assert result.ok
        assert result.duplicates == 1

    @pytest.mark.asyncio
    async def test_is_seeded_timeout_returns_failed_result(self) -> None:
        provider = MemoryProvider(errors={"is_seeded": TimeoutError("request timed out")})

        result = await ensure_dataset(provider, 10)

        assert not result.ok
        assert result.timed_out
        assert result.reason == "request timed out"
        assert result.created == 0
        assert provider.seed_writes == 0

    @pytest.mark.asyncio
    async def test_count_seeded_error_returns_failed_result(self) -> None:
        provider = MemoryProvider(errors={"count_seeded": RuntimeError("relation does not exist")})

        result = await ensure_dataset(provider, 10)

        assert not result.ok
        assert not result.timed_out
        assert result.reason == "relation does not exist"
        assert provider.seed_writes == 0


class TestEnsureDatasetConcurrency:
    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self) -> None:
        in_flight = 0
        peak = 0

        class SlowProvider(MemoryProvider):
            async def create_seed(self, index: int) -> None:
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.001)
                in_flight -= 1
                await super().create_seed(index)

        provider = SlowProvider()
        result = await ensure_dataset(provider, 40, concurrency=3)

        assert result.ok
        assert peak == 3

    @pytest.mark.asyncio
    async def test_concurrency_clamped_to_work(self) -> None:
        in_flight = 0
        peak = 0

        class SlowProvider(MemoryProvider):
            async def create_seed(self, index: int) -> None:
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.001)
                in_flight -= 1
                await super().create_seed(index)

        result = await ensure_dataset(SlowProvider(), 2, concurrency=50)

        assert result.ok
        assert peak == 2

    @pytest.mark.asyncio
    async def test_zero_concurrency_uses_one_worker(self, recording_provider_factory) -> None:
        provider = recording_provider_factory()

        result = await ensure_dataset(provider, 5, concurrency=0)

        assert result.ok
        assert provider.create_calls == [1, 2, 3, 4, 5]
