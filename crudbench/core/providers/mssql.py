"""
MSSQL Operation Provider

Same two-table layout as the Postgres provider, with JSON state kept in
NVARCHAR(MAX) columns and read through JSON_VALUE / JSON_MODIFY:
- dbo.benchAggregates: one row per aggregate
- dbo.benchEvents: append-only event log
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from datetime import UTC, datetime
from types import ModuleType
from typing import Any, Optional

from crudbench.connectors.mssql_pool import DEFAULT_ODBC_DRIVER, MssqlConnectionPool
from crudbench.core.dataset import (
    AGGREGATE_TYPE,
    BENCH_DATASET_MARKER,
    format_aggregate_id,
    seed_event_payload,
    seed_fields,
)
from crudbench.core.helpers import is_timeout_error, to_error_message
from crudbench.core.providers.base import OperationContext, OperationProvider
from crudbench.core.run_mode import BenchOperation

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    """
    IF OBJECT_ID('dbo.benchEvents', 'U') IS NULL
    BEGIN
        CREATE TABLE dbo.benchEvents (
            id BIGINT IDENTITY(1,1) PRIMARY KEY,
            aggregate_id NVARCHAR(255) NOT NULL,
            category NVARCHAR(100) NOT NULL,
            event_type NVARCHAR(100) NOT NULL,
            payload NVARCHAR(MAX) NOT NULL,
            created_at DATETIME2 NOT NULL DEFAULT SYSUTCDATETIME()
        );
        CREATE INDEX IX_benchEvents_category ON dbo.benchEvents(category);
        CREATE INDEX IX_benchEvents_aggregate ON dbo.benchEvents(aggregate_id);
    END
    """,
    """
    IF OBJECT_ID('dbo.benchAggregates', 'U') IS NULL
    BEGIN
        CREATE TABLE dbo.benchAggregates (
            aggregate_id NVARCHAR(255) NOT NULL PRIMARY KEY,
            category NVARCHAR(100) NOT NULL,
            state NVARCHAR(MAX) NOT NULL,
            archived BIT NOT NULL DEFAULT 0,
            updated_at DATETIME2 NOT NULL DEFAULT SYSUTCDATETIME()
        );
        CREATE INDEX IX_benchAggregates_category ON dbo.benchAggregates(category);
    END
    """,
)

INSERT_EVENT_SQL = (
    "INSERT INTO dbo.benchEvents (aggregate_id, category, event_type, payload, created_at) "
    "VALUES (?, ?, ?, ?, SYSUTCDATETIME())"
)
INSERT_AGGREGATE_SQL = (
    "INSERT INTO dbo.benchAggregates (aggregate_id, category, state, archived, updated_at) "
    "VALUES (?, ?, ?, 0, SYSUTCDATETIME())"
)

# SQLSTATEs pyodbc reports for query and login timeouts.
_TIMEOUT_SQLSTATES = {"HYT00", "HYT01"}


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _projection_sql(fields: tuple[str, ...]) -> str:
    columns = ", ".join(
        f"JSON_VALUE(state, '$.{path.split('.')[-1]}') AS [{path}]" for path in fields
    )
    return (
        f"SELECT {columns} FROM dbo.benchAggregates "
        "WHERE category = ? AND aggregate_id = ?"
    )


def is_mssql_timeout_error(error: BaseException) -> bool:
    """ETIMEOUT codes, ODBC timeout SQLSTATEs or a 'timeout expired' message."""
    if is_timeout_error(error):
        return True
    args = getattr(error, "args", ())
    if args and isinstance(args[0], str) and args[0].upper() in _TIMEOUT_SQLSTATES:
        return True
    return "TIMEOUT EXPIRED" in to_error_message(error, "").upper()


class MssqlProvider(OperationProvider):
    """Operation provider backed by a pool of pyodbc connections."""

    name = "MSSQL"
    duplicate_error_pattern = re.compile(
        r"already exists|conflict|duplicate|violation of primary key", re.IGNORECASE
    )

    def __init__(
        self,
        connection_string: Optional[str] = None,
        *,
        driver: Optional[ModuleType] = None,
        pool: Optional[MssqlConnectionPool] = None,
        pool_size: int = 8,
        login_timeout: int = 15,
        query_timeout: int = 30,
        odbc_driver: str = DEFAULT_ODBC_DRIVER,
    ):
        if pool is None:
            if not connection_string or driver is None:
                raise ValueError("An MSSQL connection string and driver, or a pool, are required")
            pool = MssqlConnectionPool(
                connection_string,
                driver,
                size=pool_size,
                login_timeout=login_timeout,
                query_timeout=query_timeout,
                odbc_driver=odbc_driver,
            )
        self.pool = pool

    async def connect(self) -> None:
        await self.pool.initialize()
        if not await self.pool.is_healthy():
            raise ConnectionError("MSSQL health check failed")

    async def prepare(self) -> None:
        for statement in SCHEMA_STATEMENTS:
            await self.pool.execute_query(statement)

    async def close(self) -> None:
        await self.pool.close()

    def is_timeout_error(self, error: BaseException) -> bool:
        return is_mssql_timeout_error(error)

    # ------------------------------------------------------------------
    # Seeding primitives
    # ------------------------------------------------------------------

    async def is_seeded(self, index: int) -> bool:
        marker = await self.pool.fetch_val(
            f"SELECT JSON_VALUE(state, '$.{BENCH_DATASET_MARKER}') FROM dbo.benchAggregates "
            "WHERE category = ? AND aggregate_id = ?",
            AGGREGATE_TYPE,
            format_aggregate_id(index),
        )
        return str(marker).lower() == "true"

    async def count_seeded(self) -> int:
        count = await self.pool.fetch_val(
            "SELECT COUNT(1) FROM dbo.benchAggregates "
            f"WHERE category = ? AND JSON_VALUE(state, '$.{BENCH_DATASET_MARKER}') = 'true'",
            AGGREGATE_TYPE,
        )
        return int(count or 0)

    async def create_seed(self, index: int) -> None:
        aggregate_id = format_aggregate_id(index)
        await self.pool.run(
            [
                (
                    INSERT_AGGREGATE_SQL,
                    (aggregate_id, AGGREGATE_TYPE, json.dumps(seed_fields(index))),
                ),
                (
                    INSERT_EVENT_SQL,
                    (
                        aggregate_id,
                        AGGREGATE_TYPE,
                        "Created",
                        json.dumps(seed_event_payload(index)),
                    ),
                ),
            ]
        )

    # ------------------------------------------------------------------
    # Benchmarked operations
    # ------------------------------------------------------------------

    def _event(
        self, aggregate_id: str, event_type: str, payload: dict[str, Any]
    ) -> tuple[str, tuple]:
        return (
            INSERT_EVENT_SQL,
            (aggregate_id, AGGREGATE_TYPE, event_type, json.dumps(payload)),
        )

    def build_operations(self, context: OperationContext) -> list[BenchOperation]:
        pool = self.pool
        select_sql = _projection_sql(context.projection_fields)

        async def list_op() -> None:
            await pool.fetch_all(
                "SELECT TOP (?) aggregate_id, state FROM dbo.benchAggregates "
                "WHERE category = ? AND archived = 0 ORDER BY aggregate_id ASC",
                context.page_size,
                AGGREGATE_TYPE,
            )

        async def get_op() -> None:
            await pool.fetch_one(
                "SELECT state FROM dbo.benchAggregates WHERE category = ? AND aggregate_id = ?",
                AGGREGATE_TYPE,
                context.next_aggregate_id(),
            )

        async def select_op() -> None:
            await pool.fetch_one(select_sql, AGGREGATE_TYPE, context.next_aggregate_id())

        async def events_op() -> None:
            await pool.fetch_all(
                "SELECT TOP (?) event_type, payload FROM dbo.benchEvents "
                "WHERE category = ? AND aggregate_id = ? ORDER BY created_at ASC",
                context.event_window,
                AGGREGATE_TYPE,
                context.next_aggregate_id(),
            )

        async def apply_op() -> None:
            await pool.run(
                [
                    self._event(
                        context.next_aggregate_id(),
                        "BenchApplied",
                        {"marker": "apply", "at": _now_iso()},
                    )
                ]
            )

        async def create_op() -> None:
            aggregate_id = f"bench-{uuid.uuid4()}"
            state = {
                "field1": "value-bench",
                "field2": 0,
                "name": "Benchmark Account",
                "createdAt": _now_iso(),
                "archived": False,
            }
            await pool.run(
                [
                    (INSERT_AGGREGATE_SQL, (aggregate_id, AGGREGATE_TYPE, json.dumps(state))),
                    self._event(
                        aggregate_id,
                        "Created",
                        {"name": "Benchmark Account", "createdAt": state["createdAt"]},
                    ),
                ]
            )

        async def set_archived(label: str, archived: bool, event_type: str) -> None:
            aggregate_id = context.next_aggregate_id()
            flag = 1 if archived else 0
            await pool.run(
                [
                    (
                        "UPDATE dbo.benchAggregates SET archived = ?, "
                        "state = JSON_MODIFY(state, '$.archived', CAST(? AS BIT)), "
                        "updated_at = SYSUTCDATETIME() WHERE category = ? AND aggregate_id = ?",
                        (flag, flag, AGGREGATE_TYPE, aggregate_id),
                    ),
                    self._event(
                        aggregate_id,
                        event_type,
                        {"note": f"benchmark {label}", "at": _now_iso()},
                    ),
                ]
            )

        async def archive_op() -> None:
            await set_archived("archive", True, "Archived")

        async def restore_op() -> None:
            await set_archived("restore", False, "Restored")

        async def patch_op() -> None:
            aggregate_id = context.next_aggregate_id()
            await pool.run(
                [
                    (
                        "UPDATE dbo.benchAggregates "
                        "SET state = JSON_MODIFY(state, '$.name', ?), "
                        "updated_at = SYSUTCDATETIME() WHERE category = ? AND aggregate_id = ?",
                        ("New Name", AGGREGATE_TYPE, aggregate_id),
                    ),
                    self._event(
                        aggregate_id, "Patched", {"name": "New Name", "at": _now_iso()}
                    ),
                ]
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
