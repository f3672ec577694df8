"""
Tests for benchmark result validation.
"""

import pytest

from crudbench.core.bench import Bench, add_bench_task
from crudbench.core.errors import BenchValidationError, ConnectionLostError
from crudbench.core.validation import validate_bench_tasks, validate_task
from crudbench.models import ValidationStatus


async def _ok() -> None:
    return None


async def _broken() -> None:
    raise RuntimeError("relation does not exist")


class TestValidateTask:
    def test_task_without_result_fails(self, fast_options) -> None:
        bench = Bench("never-run", fast_options)
        bench.add("get", _ok)

        verdict = validate_task(bench.tasks[0])

        assert verdict.status == ValidationStatus.FAILED
        assert verdict.message == "produced no benchmark stats"

    @pytest.mark.asyncio
    async def test_clean_task_passes(self, fast_options) -> None:
        bench = Bench("clean", fast_options)
        bench.add("list", _ok)
        await bench.run()

        verdict = validate_task(bench.tasks[0])

        assert verdict.status == ValidationStatus.PASSED
        assert verdict.sample_count == 3
        assert verdict.message is None

    @pytest.mark.asyncio
    async def test_zero_samples_is_skipped_not_failed(self, fast_options) -> None:
        bench = Bench("unsupported", fast_options)
        bench.add("select", _broken)
        await bench.run()

        verdict = validate_task(bench.tasks[0])

        assert verdict.status == ValidationStatus.SKIPPED
        assert verdict.sample_count == 0
        assert verdict.message == "relation does not exist"

    @pytest.mark.asyncio
    async def test_samples_with_error_fail(self, fast_options) -> None:
        calls = 0

        async def degrading() -> None:
            nonlocal calls
            calls += 1
            if calls == 3:
                raise RuntimeError("connection reset")

        bench = Bench("partial", fast_options)
        bench.add("apply", degrading)
        await bench.run()

        verdict = validate_task(bench.tasks[0])

        assert verdict.status == ValidationStatus.FAILED
        assert verdict.sample_count == 1
        assert verdict.message == "should not surface errors: connection reset"


class TestValidateBench:
    @pytest.mark.asyncio
    async def test_report_keeps_registration_order(self, fast_options) -> None:
        bench = Bench("mixed", fast_options)
        bench.add("list", _ok)
        bench.add("select", _broken)
        bench.add("patch", _ok)
        await bench.run()

        report = validate_bench_tasks(bench)

        assert report.bench_name == "mixed"
        assert [t.name for t in report.tasks] == ["list", "select", "patch"]
        assert [t.name for t in report.passed] == ["list", "patch"]
        assert [t.name for t in report.skipped] == ["select"]
        assert report.failures == []
        assert report.ok
        report.raise_for_failures()

    @pytest.mark.asyncio
    async def test_connection_loss_after_samples_fails_with_label(
        self, fast_options
    ) -> None:
        calls = 0

        async def dropping() -> None:
            nonlocal calls
            calls += 1
            if calls > 2:
                raise RuntimeError("client is not connected")

        bench = Bench("dropped", fast_options)
        add_bench_task(bench, "events", dropping)
        await bench.run()

        report = validate_bench_tasks(bench)

        assert not report.ok
        failure = report.failures[0]
        assert failure.name == "events"
        assert "events failed because connection was lost" in failure.message
        assert isinstance(bench.tasks[0].result.error, ConnectionLostError)

    @pytest.mark.asyncio
    async def test_raise_for_failures(self, fast_options) -> None:
        calls = 0

        async def degrading() -> None:
            nonlocal calls
            calls += 1
            if calls > 2:
                raise RuntimeError("boom")

        bench = Bench("raise", fast_options)
        bench.add("create", degrading)
        await bench.run()

        report = validate_bench_tasks(bench)

        with pytest.raises(BenchValidationError) as excinfo:
            report.raise_for_failures()
        assert excinfo.value.failures == ["create: should not surface errors: boom"]
        assert isinstance(excinfo.value, AssertionError)
