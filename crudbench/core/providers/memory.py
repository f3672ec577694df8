"""
In-memory Operation Provider

Dict-backed aggregates and an append-only event list. Used for dry runs of
the harness and as the reference backend in tests.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from datetime import UTC, datetime
from typing import Any, Optional

from crudbench.core.dataset import (
    AGGREGATE_TYPE,
    BENCH_DATASET_MARKER,
    format_aggregate_id,
    seed_event_payload,
    seed_fields,
)
from crudbench.core.errors import DuplicateAggregateError
from crudbench.core.providers.base import OperationContext, OperationProvider
from crudbench.core.run_mode import BenchOperation

logger = logging.getLogger(__name__)


class MemoryProvider(OperationProvider):
    """
    In-process backend.

    Args:
        latency_ms: Simulated round-trip per call (0 only yields to the loop)
        errors: Optional map of operation label -> exception raised by that
            operation, for exercising failure paths. ``is_seeded`` and
            ``count_seeded`` are also accepted as labels.
    """

    name = "Memory"

    def __init__(
        self,
        latency_ms: float = 0.0,
        errors: Optional[dict[str, BaseException]] = None,
    ):
        self.latency_ms = latency_ms
        self.errors = dict(errors or {})
        self.aggregates: dict[str, dict[str, Any]] = {}
        self.events: list[dict[str, Any]] = []
        self.connected = False
        self.seed_writes = 0
        self.write_count = 0
        self.seed_checks = 0

    async def _roundtrip(self, label: Optional[str] = None) -> None:
        if self.latency_ms > 0:
            await asyncio.sleep(self.latency_ms / 1000.0)
        else:
            await asyncio.sleep(0)
        if label is not None and label in self.errors:
            raise self.errors[label]

    def _now(self) -> str:
        return datetime.now(UTC).isoformat()

    def _append_event(self, aggregate_id: str, event_type: str, payload: dict) -> None:
        self.events.append(
            {
                "aggregate_id": aggregate_id,
                "category": AGGREGATE_TYPE,
                "event_type": event_type,
                "payload": payload,
                "created_at": self._now(),
            }
        )
        self.write_count += 1

    def _require(self, aggregate_id: str) -> dict[str, Any]:
        aggregate = self.aggregates.get(aggregate_id)
        if aggregate is None:
            raise KeyError(f"aggregate {aggregate_id} not found")
        return aggregate

    async def connect(self) -> None:
        await self._roundtrip()
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    # ------------------------------------------------------------------
    # Seeding primitives
    # ------------------------------------------------------------------

    async def is_seeded(self, index: int) -> bool:
        self.seed_checks += 1
        await self._roundtrip("is_seeded")
        aggregate = self.aggregates.get(format_aggregate_id(index))
        return bool(aggregate and aggregate["state"].get(BENCH_DATASET_MARKER))

    async def count_seeded(self) -> int:
        await self._roundtrip("count_seeded")
        return sum(
            1
            for aggregate in self.aggregates.values()
            if aggregate["state"].get(BENCH_DATASET_MARKER)
        )

    async def create_seed(self, index: int) -> None:
        aggregate_id = format_aggregate_id(index)
        await self._roundtrip()
        if aggregate_id in self.aggregates:
            raise DuplicateAggregateError(aggregate_id)
        self.aggregates[aggregate_id] = {
            "category": AGGREGATE_TYPE,
            "state": seed_fields(index),
            "archived": False,
            "updated_at": self._now(),
        }
        self.seed_writes += 1
        self._append_event(aggregate_id, "Created", seed_event_payload(index))

    # ------------------------------------------------------------------
    # Benchmarked operations
    # ------------------------------------------------------------------

    def build_operations(self, context: OperationContext) -> list[BenchOperation]:
        async def list_op() -> list[str]:
            await self._roundtrip("list")
            ids = sorted(
                aggregate_id
                for aggregate_id, aggregate in self.aggregates.items()
                if not aggregate["archived"]
            )
            return ids[: context.page_size]

        async def get_op() -> dict[str, Any]:
            await self._roundtrip("get")
            return copy.deepcopy(self._require(context.next_aggregate_id())["state"])

        async def select_op() -> dict[str, Any]:
            await self._roundtrip("select")
            state = self._require(context.next_aggregate_id())["state"]
            return {
                path: state.get(path.split(".")[-1])
                for path in context.projection_fields
            }

        async def events_op() -> list[dict[str, Any]]:
            await self._roundtrip("events")
            aggregate_id = context.next_aggregate_id()
            matching = [e for e in self.events if e["aggregate_id"] == aggregate_id]
            return matching[: context.event_window]

        async def apply_op() -> None:
            await self._roundtrip("apply")
            aggregate_id = context.next_aggregate_id()
            self._require(aggregate_id)
            self._append_event(
                aggregate_id, "BenchApplied", {"marker": "apply", "at": self._now()}
            )

        async def create_op() -> None:
            await self._roundtrip("create")
            aggregate_id = f"bench-{uuid.uuid4()}"
            self.aggregates[aggregate_id] = {
                "category": AGGREGATE_TYPE,
                "state": {
                    "field1": "value-bench",
                    "field2": 0,
                    "name": "Benchmark Account",
                    "archived": False,
                },
                "archived": False,
                "updated_at": self._now(),
            }
            self.write_count += 1
            self._append_event(
                aggregate_id,
                "Created",
                {"name": "Benchmark Account", "createdAt": self._now()},
            )

        async def set_archived(label: str, archived: bool, event_type: str) -> None:
            await self._roundtrip(label)
            aggregate_id = context.next_aggregate_id()
            aggregate = self._require(aggregate_id)
            aggregate["archived"] = archived
            aggregate["state"]["archived"] = archived
            aggregate["updated_at"] = self._now()
            self.write_count += 1
            self._append_event(
                aggregate_id,
                event_type,
                {"note": f"benchmark {label}", "at": self._now()},
            )

        async def archive_op() -> None:
            await set_archived("archive", True, "Archived")

        async def restore_op() -> None:
            await set_archived("restore", False, "Restored")

        async def patch_op() -> None:
            await self._roundtrip("patch")
            aggregate_id = context.next_aggregate_id()
            aggregate = self._require(aggregate_id)
            aggregate["state"]["name"] = "New Name"
            aggregate["updated_at"] = self._now()
            self.write_count += 1
            self._append_event(
                aggregate_id, "Patched", {"name": "New Name", "at": self._now()}
            )

        return [
            ("list", list_op),
            ("get", get_op),
            ("select", select_op),
            ("events", events_op),
            ("apply", apply_op),
            ("create", create_op),
            ("archive", archive_op),
            ("restore", restore_op),
            ("patch", patch_op),
        ]
