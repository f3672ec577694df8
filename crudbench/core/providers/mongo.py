"""
MongoDB Operation Provider

Two collections:
- ``<collection>_aggregates``: one document per aggregate, ``_id`` is the
  aggregate id so duplicate seeds fail with E11000
- ``<collection>``: append-only event documents

pymongo is blocking; every call runs on a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from datetime import UTC, datetime
from types import ModuleType
from typing import Any, Callable, Optional

from crudbench.core.dataset import (
    AGGREGATE_TYPE,
    BENCH_DATASET_MARKER,
    format_aggregate_id,
    seed_event_payload,
    seed_fields,
)
from crudbench.core.helpers import is_timeout_error
from crudbench.core.providers.base import OperationContext, OperationProvider
from crudbench.core.run_mode import BenchOperation

logger = logging.getLogger(__name__)

DUPLICATE_KEY_CODE = 11000

# Marks documents written by benchmarked operations, as opposed to seeding.
BENCH_RUN_MARKER = "benchRun"

EVENT_INDEXES = (BENCH_DATASET_MARKER, BENCH_RUN_MARKER, "aggregateId")
AGGREGATE_INDEXES = ("category", BENCH_DATASET_MARKER, "aggregateId", "index")


def _now() -> datetime:
    return datetime.now(UTC)


class MongoProvider(OperationProvider):
    """
    Operation provider backed by a pymongo client.

    Args:
        uri: MongoDB connection URI
        driver: The resolved ``pymongo`` module; not needed when ``client`` is given
        client: Pre-built client (tests)
        database: Database name
        collection: Event collection name
        aggregate_collection: Aggregate collection name
            (defaults to ``<collection>_aggregates``)
    """

    name = "MongoDB"
    duplicate_error_pattern = re.compile(
        r"E11000|already exists|conflict|duplicate", re.IGNORECASE
    )

    def __init__(
        self,
        uri: Optional[str] = None,
        *,
        driver: Optional[ModuleType] = None,
        client: Any = None,
        database: str = "bench",
        collection: str = "events",
        aggregate_collection: Optional[str] = None,
        max_pool_size: int = 20,
        server_selection_timeout_ms: int = 1_000,
    ):
        if client is None and (not uri or driver is None):
            raise ValueError("A MongoDB URI and driver, or a client, are required")
        self.uri = uri
        self.driver = driver
        self.client = client
        self.database_name = database
        self.collection_name = collection
        self.aggregate_collection_name = aggregate_collection or f"{collection}_aggregates"
        self.max_pool_size = max_pool_size
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self.events: Any = None
        self.aggregates: Any = None

    async def _call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        return await asyncio.to_thread(fn, *args, **kwargs)

    async def connect(self) -> None:
        if self.client is None:
            self.client = self.driver.MongoClient(
                self.uri,
                maxPoolSize=self.max_pool_size,
                serverSelectionTimeoutMS=self.server_selection_timeout_ms,
            )
        # MongoClient connects lazily; ping forces server selection.
        await self._call(self.client.admin.command, "ping")
        database = self.client.get_database(self.database_name)
        self.events = database.get_collection(self.collection_name)
        self.aggregates = database.get_collection(self.aggregate_collection_name)

    async def prepare(self) -> None:
        for collection, fields in (
            (self.events, EVENT_INDEXES),
            (self.aggregates, AGGREGATE_INDEXES),
        ):
            for field in fields:
                try:
                    await self._call(collection.create_index, field)
                except Exception as e:
                    logger.warning(f"[{self.name}] could not create index on {field}: {e}")

        # Leftovers from earlier benchmark runs; seeded documents are kept.
        leftovers = {BENCH_RUN_MARKER: True, BENCH_DATASET_MARKER: {"$ne": True}}
        await self._call(self.events.delete_many, leftovers)
        await self._call(self.aggregates.delete_many, leftovers)

    async def close(self) -> None:
        if self.client is not None:
            await self._call(self.client.close)
            self.client = None

    def is_duplicate_error(self, error: BaseException) -> bool:
        if getattr(error, "code", None) == DUPLICATE_KEY_CODE:
            return True
        return super().is_duplicate_error(error)

    def is_timeout_error(self, error: BaseException) -> bool:
        # PyMongoError.timeout covers server selection, network and wtimeouts.
        if getattr(error, "timeout", False) is True:
            return True
        return is_timeout_error(error)

    # ------------------------------------------------------------------
    # Seeding primitives
    # ------------------------------------------------------------------

    async def is_seeded(self, index: int) -> bool:
        document = await self._call(
            self.aggregates.find_one,
            {
                "_id": format_aggregate_id(index),
                "category": AGGREGATE_TYPE,
                BENCH_DATASET_MARKER: True,
            },
            {"_id": 1},
        )
        return document is not None

    async def count_seeded(self) -> int:
        count = await self._call(
            self.aggregates.count_documents,
            {"category": AGGREGATE_TYPE, BENCH_DATASET_MARKER: True},
        )
        return int(count or 0)

    async def create_seed(self, index: int) -> None:
        aggregate_id = format_aggregate_id(index)
        now = _now()
        # Aggregate first: a duplicate _id fails before the event is written.
        await self._call(
            self.aggregates.insert_one,
            {
                "_id": aggregate_id,
                "aggregateId": aggregate_id,
                "category": AGGREGATE_TYPE,
                "state": seed_fields(index),
                "archived": False,
                "index": index,
                BENCH_DATASET_MARKER: True,
                "updatedAt": now,
            },
        )
        await self._call(
            self.events.insert_one,
            {
                "aggregateId": aggregate_id,
                "category": AGGREGATE_TYPE,
                "eventType": "Created",
                "payload": seed_event_payload(index),
                BENCH_DATASET_MARKER: True,
                "createdAt": now,
            },
        )

    # ------------------------------------------------------------------
    # Benchmarked operations
    # ------------------------------------------------------------------

    async def _record_event(
        self, aggregate_id: str, event_type: str, payload: dict[str, Any]
    ) -> None:
        await self._call(
            self.events.insert_one,
            {
                "aggregateId": aggregate_id,
                "category": AGGREGATE_TYPE,
                "eventType": event_type,
                "payload": payload,
                BENCH_RUN_MARKER: True,
                "createdAt": _now(),
            },
        )

    async def _update_aggregate(self, aggregate_id: str, changes: dict[str, Any]) -> None:
        await self._call(
            self.aggregates.update_one,
            {"_id": aggregate_id, "category": AGGREGATE_TYPE},
            {"$set": {**changes, "updatedAt": _now()}},
        )

    def build_operations(self, context: OperationContext) -> list[BenchOperation]:
        aggregates = self.aggregates
        events = self.events
        projection = {path: 1 for path in context.projection_fields}
        projection["_id"] = 0

        async def list_op() -> list[dict[str, Any]]:
            return await self._call(
                lambda: list(
                    aggregates.find(
                        {"category": AGGREGATE_TYPE, "archived": {"$ne": True}},
                        {"aggregateId": 1},
                    )
                    .sort("_id", 1)
                    .limit(context.page_size)
                )
            )

        async def get_op() -> Any:
            return await self._call(
                aggregates.find_one,
                {"_id": context.next_aggregate_id(), "category": AGGREGATE_TYPE},
            )

        async def select_op() -> Any:
            return await self._call(
                aggregates.find_one,
                {"_id": context.next_aggregate_id(), "category": AGGREGATE_TYPE},
                projection,
            )

        async def events_op() -> list[dict[str, Any]]:
            aggregate_id = context.next_aggregate_id()
            return await self._call(
                lambda: list(
                    events.find({"aggregateId": aggregate_id, "category": AGGREGATE_TYPE})
                    .sort("createdAt", 1)
                    .limit(context.event_window)
                )
            )

        async def apply_op() -> None:
            await self._record_event(
                context.next_aggregate_id(),
                "BenchApplied",
                {"marker": "apply", "at": _now()},
            )

        async def create_op() -> None:
            aggregate_id = f"bench-{uuid.uuid4()}"
            now = _now()
            await self._call(
                aggregates.insert_one,
                {
                    "_id": aggregate_id,
                    "aggregateId": aggregate_id,
                    "category": AGGREGATE_TYPE,
                    "state": {
                        "field1": "value-bench",
                        "field2": 0,
                        "name": "Benchmark Account",
                        "createdAt": now.isoformat(),
                        "archived": False,
                    },
                    "archived": False,
                    BENCH_RUN_MARKER: True,
                    "updatedAt": now,
                },
            )
            await self._record_event(
                aggregate_id,
                "Created",
                {
                    "name": "Benchmark Account",
                    "createdAt": now.isoformat(),
                    "field1": "value-bench",
                    "field2": 0,
                },
            )

        async def set_archived(label: str, archived: bool, event_type: str) -> None:
            aggregate_id = context.next_aggregate_id()
            await self._update_aggregate(
                aggregate_id, {"archived": archived, "state.archived": archived}
            )
            await self._record_event(
                aggregate_id, event_type, {"note": f"benchmark {label}", "at": _now()}
            )

        async def archive_op() -> None:
            await set_archived("archive", True, "Archived")

        async def restore_op() -> None:
            await set_archived("restore", False, "Restored")

        async def patch_op() -> None:
            aggregate_id = context.next_aggregate_id()
            await self._update_aggregate(aggregate_id, {"state.name": "New Name"})
            await self._record_event(
                aggregate_id, "Patched", {"name": "New Name", "at": _now()}
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
