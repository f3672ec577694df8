"""
End-to-end tests for the backend suite driver.
"""

from __future__ import annotations

import logging

import pytest

from crudbench.core.errors import EmptyAggregateSetError
from crudbench.core.providers.memory import MemoryProvider
from crudbench.core.run_mode import RunMode
from crudbench.core.suite import run_backend_suite, tier_label
from crudbench.models import TierStatus, ValidationStatus


def test_tier_label() -> None:
    assert tier_label(0, 1) == "test1 (1 records)"
    assert tier_label(2, 100_000) == "test3 (100,000 records)"


class TestWriteModeScenario:
    @pytest.mark.asyncio
    async def test_two_tiers_write_mode(self, fast_options, caplog) -> None:
        provider = MemoryProvider()

        with caplog.at_level(logging.INFO, logger="crudbench.core.suite"):
            report = await run_backend_suite(
                provider,
                dataset_sizes=[1000, 1],
                run_mode=RunMode.WRITE,
                options=fast_options,
                seed_concurrency=4,
            )

        assert report.ok
        assert not report.skipped
        assert report.run_mode == "write"
        assert [tier.dataset_size for tier in report.tiers] == [1, 1000]

        first, second = report.tiers
        assert first.label == "test1 (1 records)"
        assert first.status == TierStatus.COMPLETED
        assert first.seed.created == 1
        assert first.operations == ["apply", "create", "archive", "restore", "patch"]
        assert len(first.validation.passed) == 5
        assert first.validation.ok

        assert second.label == "test2 (1,000 records)"
        assert second.seed.created == 999
        assert second.validation.ok

        assert provider.seed_writes == 1000
        assert not provider.connected
        assert 'Skipping list operation in mode "write" for Memory benchmark' in caplog.text
        assert "Memory dataset ready: test1 (1 records)" in caplog.text
        assert report.summaries[0].startswith("Memory test1 (1 records):")

    @pytest.mark.asyncio
    async def test_rerun_reuses_seeded_tiers(self, fast_options) -> None:
        provider = MemoryProvider()
        kwargs = dict(dataset_sizes=[5], run_mode=RunMode.READ, options=fast_options)

        await run_backend_suite(provider, **kwargs)
        report = await run_backend_suite(provider, **kwargs)

        assert report.tiers[0].seed.already_seeded
        assert provider.seed_writes == 5
        assert report.tiers[0].operations == ["list", "get", "select", "events"]


class TestSuiteSkips:
    @pytest.mark.asyncio
    async def test_connect_failure_skips_backend(self, fast_options) -> None:
        class Unreachable(MemoryProvider):
            async def connect(self) -> None:
                raise OSError("connection refused")

        report = await run_backend_suite(
            Unreachable(), dataset_sizes=[1], options=fast_options
        )

        assert report.skipped
        assert report.reason == "unable to connect: connection refused"
        assert report.tiers == []
        assert report.ok

    @pytest.mark.asyncio
    async def test_seed_failure_halts_remaining_tiers(
        self, fast_options, recording_provider_factory
    ) -> None:
        def hook(index: int) -> None:
            if index == 5:
                raise RuntimeError("disk full")

        provider = recording_provider_factory(create_hook=hook)

        report = await run_backend_suite(
            provider,
            dataset_sizes=[1, 10, 100],
            options=fast_options,
            seed_concurrency=1,
        )

        assert [tier.status for tier in report.tiers] == [
            TierStatus.NO_OPERATIONS,
            TierStatus.SEED_FAILED,
        ]
        assert report.tiers[1].seed.reason == "disk full"
        assert not report.skipped
        assert max(provider.create_calls) < 100

    @pytest.mark.asyncio
    async def test_seed_timeout_skips_backend(
        self, fast_options, recording_provider_factory
    ) -> None:
        def hook(index: int) -> None:
            raise TimeoutError("ETIMEDOUT")

        report = await run_backend_suite(
            recording_provider_factory(create_hook=hook),
            dataset_sizes=[10],
            options=fast_options,
        )

        assert report.skipped
        assert report.reason.startswith("request timed out")
        assert report.tiers[0].status == TierStatus.SEED_FAILED

    @pytest.mark.asyncio
    async def test_seeded_check_timeout_skips_backend(self, fast_options) -> None:
        provider = MemoryProvider(errors={"is_seeded": TimeoutError("request timed out")})

        report = await run_backend_suite(
            provider, dataset_sizes=[10, 100], options=fast_options
        )

        assert report.skipped
        assert report.reason == "request timed out: request timed out"
        assert [tier.status for tier in report.tiers] == [TierStatus.SEED_FAILED]
        assert report.tiers[0].seed.timed_out
        assert provider.seed_writes == 0
        assert not provider.connected

    @pytest.mark.asyncio
    async def test_empty_aggregate_set_propagates(
        self, fast_options, recording_provider_factory
    ) -> None:
        provider = recording_provider_factory(seeded={1}, reported_count=0)

        with pytest.raises(EmptyAggregateSetError, match="Recording aggregate set is empty"):
            await run_backend_suite(provider, dataset_sizes=[1], options=fast_options)


class TestSuiteTaskOutcomes:
    @pytest.mark.asyncio
    async def test_connection_lost_before_samples_is_skipped(self, fast_options) -> None:
        provider = MemoryProvider(errors={"get": RuntimeError("client is not connected")})

        report = await run_backend_suite(
            provider, dataset_sizes=[3], run_mode=RunMode.READ, options=fast_options
        )

        validation = report.tiers[0].validation
        statuses = {task.name: task.status for task in validation.tasks}
        assert statuses == {
            "list": ValidationStatus.PASSED,
            "get": ValidationStatus.SKIPPED,
            "select": ValidationStatus.PASSED,
            "events": ValidationStatus.PASSED,
        }
        assert "get failed because connection was lost" in validation.skipped[0].message
        assert report.ok

    @pytest.mark.asyncio
    async def test_error_after_samples_fails_report(self, fast_options) -> None:
        class Degrading(MemoryProvider):
            patch_calls = 0

            async def _roundtrip(self, label=None) -> None:
                if label == "patch":
                    Degrading.patch_calls += 1
                    if Degrading.patch_calls > 2:
                        raise RuntimeError("deadlock detected")
                await super()._roundtrip(label)

        report = await run_backend_suite(
            Degrading(), dataset_sizes=[2], run_mode=RunMode.WRITE, options=fast_options
        )

        assert not report.ok
        failures = report.tiers[0].validation.failures
        assert [f.name for f in failures] == ["patch"]
        assert failures[0].message == "should not surface errors: deadlock detected"
