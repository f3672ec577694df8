"""
Postgres Operation Provider

Benchmarks aggregate/event CRUD against two tables:
- bench_aggregates: one row per aggregate, JSONB state
- bench_events: append-only event log
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from typing import Any, Optional

from asyncpg.exceptions import UniqueViolationError

from crudbench.connectors.postgres_pool import PostgresConnectionPool
from crudbench.core.dataset import (
    AGGREGATE_TYPE,
    BENCH_DATASET_MARKER,
    format_aggregate_id,
    seed_event_payload,
    seed_fields,
)
from crudbench.core.providers.base import OperationContext, OperationProvider
from crudbench.core.run_mode import BenchOperation

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS bench_events (
        id BIGSERIAL PRIMARY KEY,
        aggregate_id TEXT NOT NULL,
        category TEXT NOT NULL,
        event_type TEXT NOT NULL,
        payload JSONB NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS bench_events_category_idx ON bench_events (category)",
    "CREATE INDEX IF NOT EXISTS bench_events_aggregate_idx ON bench_events (aggregate_id)",
    """
    CREATE TABLE IF NOT EXISTS bench_aggregates (
        aggregate_id TEXT PRIMARY KEY,
        category TEXT NOT NULL,
        state JSONB NOT NULL,
        archived BOOLEAN NOT NULL DEFAULT FALSE,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS bench_aggregates_category_idx ON bench_aggregates (category)",
)

INSERT_EVENT_SQL = (
    "INSERT INTO bench_events (aggregate_id, category, event_type, payload, created_at) "
    "VALUES ($1, $2, $3, $4::jsonb, NOW())"
)
INSERT_AGGREGATE_SQL = (
    "INSERT INTO bench_aggregates (aggregate_id, category, state, archived, updated_at) "
    "VALUES ($1, $2, $3::jsonb, FALSE, NOW())"
)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _projection_sql(fields: tuple[str, ...]) -> str:
    columns = ", ".join(
        f"state ->> '{path.split('.')[-1]}' AS \"{path}\"" for path in fields
    )
    return f"SELECT {columns} FROM bench_aggregates WHERE aggregate_id = $1"


class PostgresProvider(OperationProvider):
    """Operation provider backed by an asyncpg pool."""

    name = "Postgres"

    def __init__(
        self,
        dsn: Optional[str] = None,
        *,
        pool: Optional[PostgresConnectionPool] = None,
        min_size: int = 1,
        max_size: int = 10,
        command_timeout: float = 60.0,
    ):
        if pool is None:
            if not dsn:
                raise ValueError("A Postgres DSN or pool is required")
            pool = PostgresConnectionPool(
                dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=command_timeout,
            )
        self.pool = pool

    async def connect(self) -> None:
        await self.pool.initialize()
        if not await self.pool.is_healthy():
            raise ConnectionError("Postgres health check failed")

    async def prepare(self) -> None:
        for statement in SCHEMA_STATEMENTS:
            await self.pool.execute_query(statement)

    async def close(self) -> None:
        await self.pool.close()

    def is_duplicate_error(self, error: BaseException) -> bool:
        if isinstance(error, UniqueViolationError):
            return True
        return super().is_duplicate_error(error)

    # ------------------------------------------------------------------
    # Seeding primitives
    # ------------------------------------------------------------------

    async def is_seeded(self, index: int) -> bool:
        marker = await self.pool.fetch_val(
            "SELECT (state ->> $3)::boolean FROM bench_aggregates "
            "WHERE category = $1 AND aggregate_id = $2",
            AGGREGATE_TYPE,
            format_aggregate_id(index),
            BENCH_DATASET_MARKER,
        )
        return bool(marker)

    async def count_seeded(self) -> int:
        count = await self.pool.fetch_val(
            "SELECT COUNT(*)::int FROM bench_aggregates "
            "WHERE category = $1 AND COALESCE((state ->> $2)::boolean, FALSE)",
            AGGREGATE_TYPE,
            BENCH_DATASET_MARKER,
        )
        return int(count or 0)

    async def create_seed(self, index: int) -> None:
        aggregate_id = format_aggregate_id(index)
        async with self.pool.transaction() as conn:
            await conn.execute(
                INSERT_AGGREGATE_SQL,
                aggregate_id,
                AGGREGATE_TYPE,
                json.dumps(seed_fields(index)),
            )
            await conn.execute(
                INSERT_EVENT_SQL,
                aggregate_id,
                AGGREGATE_TYPE,
                "Created",
                json.dumps(seed_event_payload(index)),
            )

    # ------------------------------------------------------------------
    # Benchmarked operations
    # ------------------------------------------------------------------

    async def _record_event(
        self, aggregate_id: str, event_type: str, payload: dict[str, Any]
    ) -> None:
        await self.pool.execute_query(
            INSERT_EVENT_SQL,
            aggregate_id,
            AGGREGATE_TYPE,
            event_type,
            json.dumps(payload),
        )

    def build_operations(self, context: OperationContext) -> list[BenchOperation]:
        pool = self.pool
        select_sql = _projection_sql(context.projection_fields)

        async def list_op() -> None:
            await pool.fetch_all(
                "SELECT aggregate_id FROM bench_aggregates "
                "WHERE category = $1 AND archived = FALSE "
                "ORDER BY aggregate_id ASC LIMIT $2::int",
                AGGREGATE_TYPE,
                context.page_size,
            )

        async def get_op() -> None:
            await pool.fetch_one(
                "SELECT state FROM bench_aggregates WHERE aggregate_id = $1",
                context.next_aggregate_id(),
            )

        async def select_op() -> None:
            await pool.fetch_one(select_sql, context.next_aggregate_id())

        async def events_op() -> None:
            await pool.fetch_all(
                "SELECT event_type, payload FROM bench_events "
                "WHERE aggregate_id = $1 ORDER BY created_at ASC LIMIT $2::int",
                context.next_aggregate_id(),
                context.event_window,
            )

        async def apply_op() -> None:
            await self._record_event(
                context.next_aggregate_id(),
                "BenchApplied",
                {"marker": "apply", "at": _now_iso()},
            )

        async def create_op() -> None:
            aggregate_id = f"bench-{uuid.uuid4()}"
            await pool.execute_query(
                INSERT_AGGREGATE_SQL,
                aggregate_id,
                AGGREGATE_TYPE,
                json.dumps(
                    {
                        "field1": "value-bench",
                        "field2": 0,
                        "name": "Benchmark Account",
                        "archived": False,
                    }
                ),
            )
            await self._record_event(
                aggregate_id,
                "Created",
                {
                    "name": "Benchmark Account",
                    "createdAt": _now_iso(),
                    "field1": "value-bench",
                    "field2": 0,
                },
            )

        async def archive_op() -> None:
            aggregate_id = context.next_aggregate_id()
            await pool.execute_query(
                "UPDATE bench_aggregates SET archived = TRUE, "
                "state = jsonb_set(state, '{archived}', 'true'::jsonb), "
                "updated_at = NOW() WHERE aggregate_id = $1",
                aggregate_id,
            )
            await self._record_event(
                aggregate_id, "Archived", {"note": "benchmark archive", "at": _now_iso()}
            )

        async def restore_op() -> None:
            aggregate_id = context.next_aggregate_id()
            await pool.execute_query(
                "UPDATE bench_aggregates SET archived = FALSE, "
                "state = jsonb_set(state, '{archived}', 'false'::jsonb), "
                "updated_at = NOW() WHERE aggregate_id = $1",
                aggregate_id,
            )
            await self._record_event(
                aggregate_id, "Restored", {"note": "benchmark restore", "at": _now_iso()}
            )

        async def patch_op() -> None:
            aggregate_id = context.next_aggregate_id()
            await pool.execute_query(
                "UPDATE bench_aggregates "
                "SET state = jsonb_set(state, '{name}', to_jsonb('New Name'::text)), "
                "updated_at = NOW() WHERE aggregate_id = $1",
                aggregate_id,
            )
            await self._record_event(
                aggregate_id, "Patched", {"name": "New Name", "at": _now_iso()}
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
