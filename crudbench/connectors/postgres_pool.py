"""
Postgres Connection Pool Manager

Manages an asyncpg connection pool for the benchmark backend, with retry on
transient connection failures.
"""

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import asyncpg
from asyncpg import Pool
from asyncpg.exceptions import (
    CannotConnectNowError,
    TooManyConnectionsError,
)

logger = logging.getLogger(__name__)

_LIBPQ_PAIR_RE = re.compile(r"(\w+)=('([^']*)'|[^\s]+)")

# Errors retried by PostgresConnectionPool.initialize().
_TRANSIENT_ERRORS = (CannotConnectNowError, TooManyConnectionsError)


def parse_libpq_dsn(dsn: str) -> Dict[str, Any]:
    """
    Parse a libpq keyword/value DSN ("host=db port=5432 dbname=bench").

    Only the keys asyncpg needs are kept. ``sslmode=require`` maps to
    ``ssl="require"``.
    """
    params: Dict[str, Any] = {}
    for match in _LIBPQ_PAIR_RE.finditer(dsn):
        key, raw_value, quoted_value = match.group(1), match.group(2), match.group(3)
        value = quoted_value if quoted_value is not None else raw_value
        if not value:
            continue
        if key == "host":
            params["host"] = value
        elif key == "port":
            try:
                params["port"] = int(value)
            except ValueError:
                logger.warning(f"Ignoring invalid port in DSN: {value!r}")
        elif key == "user":
            params["user"] = value
        elif key == "password":
            params["password"] = value
        elif key in ("dbname", "database"):
            params["database"] = value
        elif key == "sslmode" and value.lower() == "require":
            params["ssl"] = "require"
    return params


def build_connect_kwargs(dsn: str) -> Dict[str, Any]:
    """URL DSNs are passed through; keyword DSNs are parsed."""
    if "://" in dsn:
        return {"dsn": dsn}
    return parse_libpq_dsn(dsn)


class PostgresConnectionPool:
    """
    Async connection pool for Postgres with retry logic.
    """

    def __init__(
        self,
        dsn: str,
        min_size: int = 1,
        max_size: int = 10,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        command_timeout: float = 60.0,
        pool_name: str = "benchmark",
    ):
        """
        Initialize Postgres connection pool.

        Args:
            dsn: URL (postgres://...) or libpq keyword DSN
            min_size: Minimum pool size
            max_size: Maximum pool size
            max_retries: Max retry attempts for transient failures
            retry_delay: Delay between retries in seconds
            command_timeout: Command timeout in seconds
            pool_name: Descriptive name for logging
        """
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max(min_size, max_size)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.command_timeout = command_timeout
        self.pool_name = pool_name

        self._pool: Optional[Pool] = None
        self._initialized = False

        logger.info(
            f"[{pool_name}] Postgres pool configured, size={self.min_size}-{self.max_size}"
        )

    async def initialize(self):
        """Create the asyncpg pool, retrying while the server is starting up."""
        if self._initialized:
            return

        connect_kwargs = build_connect_kwargs(self.dsn)
        logger.info(f"[{self.pool_name}] Connecting to Postgres...")

        attempt = 0
        while True:
            attempt += 1
            try:
                self._pool = await asyncpg.create_pool(
                    min_size=self.min_size,
                    max_size=self.max_size,
                    command_timeout=self.command_timeout,
                    **connect_kwargs,
                )
            except _TRANSIENT_ERRORS as e:
                if attempt >= self.max_retries:
                    logger.error(
                        f"[{self.pool_name}] Postgres unavailable after {attempt} attempt(s): {e}"
                    )
                    raise
                delay = self.retry_delay * attempt
                logger.warning(
                    f"[{self.pool_name}] Postgres not ready (attempt {attempt}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                await asyncio.sleep(delay)
                continue

            self._initialized = True
            logger.info(
                f"[{self.pool_name}] Postgres pool ready (size: {self.min_size}-{self.max_size})"
            )
            return

    @asynccontextmanager
    async def get_connection(self):
        """
        Get a connection from the pool (async context manager).

        Usage:
            async with pool.get_connection() as conn:
                result = await conn.fetch("SELECT 1")
        """
        if not self._initialized:
            await self.initialize()

        if self._pool is None:
            raise RuntimeError("client is not connected")

        async with self._pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self):
        """Connection with an open transaction, committed on clean exit."""
        async with self.get_connection() as conn:
            async with conn.transaction():
                yield conn

    async def execute_query(
        self,
        query: str,
        *args,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Execute a query that doesn't return results (INSERT, UPDATE, DELETE, etc.).

        Returns:
            Status string (e.g., "INSERT 0 1")
        """
        async with self.get_connection() as conn:
            return await conn.execute(query, *args, timeout=timeout)

    async def fetch_all(
        self,
        query: str,
        *args,
        timeout: Optional[float] = None,
    ) -> List[asyncpg.Record]:
        async with self.get_connection() as conn:
            return await conn.fetch(query, *args, timeout=timeout)

    async def fetch_one(
        self,
        query: str,
        *args,
        timeout: Optional[float] = None,
    ) -> Optional[asyncpg.Record]:
        async with self.get_connection() as conn:
            return await conn.fetchrow(query, *args, timeout=timeout)

    async def fetch_val(
        self,
        query: str,
        *args,
        timeout: Optional[float] = None,
    ) -> Any:
        async with self.get_connection() as conn:
            return await conn.fetchval(query, *args, timeout=timeout)

    async def is_healthy(self) -> bool:
        """
        Check if the connection pool is healthy.

        Returns:
            bool: True if pool is healthy
        """
        if not self._initialized or self._pool is None:
            return False

        try:
            result = await self.fetch_val("SELECT 1")
            return result == 1
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False

    async def close(self):
        """Close the connection pool."""
        if self._pool is not None:
            logger.info(f"[{self.pool_name}] Closing Postgres connection pool...")
            await self._pool.close()
            self._pool = None
            self._initialized = False
            logger.info(f"[{self.pool_name}] Postgres pool closed")
