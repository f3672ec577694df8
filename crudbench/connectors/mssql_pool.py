"""
MSSQL Connection Pool Manager

Fixed-size pool of pyodbc connections. pyodbc is blocking and its
connections cannot be shared between threads, so each call checks out one
connection and runs on a worker thread via ``asyncio.to_thread``.
"""

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from types import ModuleType
from typing import Any, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

DEFAULT_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"

_PAIR_RE = re.compile(r"\s*([^=;]+?)\s*=\s*(\{[^}]*\}|[^;]*)\s*(?:;|$)")

# ADO/tedious style keys mapped to their ODBC names.
_ODBC_KEYS = {
    "server": "SERVER",
    "data source": "SERVER",
    "address": "SERVER",
    "database": "DATABASE",
    "initial catalog": "DATABASE",
    "user id": "UID",
    "user": "UID",
    "uid": "UID",
    "password": "PWD",
    "pwd": "PWD",
    "encrypt": "Encrypt",
    "trustservercertificate": "TrustServerCertificate",
    "driver": "DRIVER",
}
_BOOLEAN_KEYS = {"Encrypt", "TrustServerCertificate"}

Statement = Tuple[str, Sequence[Any]]


def parse_connection_string(raw: str) -> Dict[str, str]:
    """
    Parse ``key=value;`` pairs into ODBC keywords.

    ``User Id`` becomes ``UID``, ``Password`` becomes ``PWD`` and boolean
    flags are rendered as ``yes``/``no``. Unknown keys are kept verbatim.
    """
    params: Dict[str, str] = {}
    for match in _PAIR_RE.finditer(raw or ""):
        key, value = match.group(1).strip(), match.group(2).strip()
        if not key or not value:
            continue
        odbc_key = _ODBC_KEYS.get(key.lower(), key)
        if odbc_key in _BOOLEAN_KEYS and value.lower() in ("true", "false"):
            value = "yes" if value.lower() == "true" else "no"
        params[odbc_key] = value
    return params


def build_odbc_connection_string(raw: str, driver: str = DEFAULT_ODBC_DRIVER) -> str:
    """Normalize ``raw`` into an ODBC connection string with a DRIVER entry."""
    params = parse_connection_string(raw)
    params.setdefault("DRIVER", driver)
    if not params["DRIVER"].startswith("{"):
        params["DRIVER"] = f"{{{params['DRIVER']}}}"
    ordered = {"DRIVER": params.pop("DRIVER"), **params}
    return ";".join(f"{key}={value}" for key, value in ordered.items())


def _run_statements(conn: Any, statements: Sequence[Statement], fetch: str) -> Any:
    """Run ``statements`` in one transaction on ``conn`` (worker thread)."""
    cursor = conn.cursor()
    try:
        result: Any = None
        for query, params in statements:
            cursor.execute(query, *params)
            if fetch == "all":
                result = cursor.fetchall()
            elif fetch == "one":
                result = cursor.fetchone()
            elif fetch == "val":
                row = cursor.fetchone()
                result = row[0] if row is not None else None
            else:
                result = cursor.rowcount
        conn.commit()
        return result
    except Exception:
        conn.rollback()
        raise
    finally:
        cursor.close()


class MssqlConnectionPool:
    """
    Thread-backed connection pool for SQL Server.
    """

    def __init__(
        self,
        connection_string: str,
        driver: ModuleType,
        size: int = 8,
        login_timeout: int = 15,
        query_timeout: int = 30,
        odbc_driver: str = DEFAULT_ODBC_DRIVER,
        pool_name: str = "benchmark",
    ):
        """
        Initialize MSSQL connection pool.

        Args:
            connection_string: ADO or ODBC style connection string
            driver: The resolved ``pyodbc`` module
            size: Number of pooled connections
            login_timeout: Connect timeout in seconds
            query_timeout: Per-statement timeout in seconds (0 disables)
            odbc_driver: ODBC driver name used when the string has none
            pool_name: Descriptive name for logging
        """
        self.connection_string = build_odbc_connection_string(connection_string, odbc_driver)
        self.driver = driver
        self.size = max(1, int(size))
        self.login_timeout = login_timeout
        self.query_timeout = query_timeout
        self.pool_name = pool_name

        self._connections: List[Any] = []
        self._idle: Optional[asyncio.Queue] = None
        self._initialized = False

        logger.info(f"[{pool_name}] MSSQL pool configured, size={self.size}")

    def _open(self) -> Any:
        conn = self.driver.connect(
            self.connection_string, autocommit=False, timeout=self.login_timeout
        )
        conn.timeout = self.query_timeout
        return conn

    async def initialize(self):
        """Open every pooled connection; a failure closes the ones already open."""
        if self._initialized:
            return

        logger.info(f"[{self.pool_name}] Connecting to MSSQL...")
        idle: asyncio.Queue = asyncio.Queue()
        try:
            for _ in range(self.size):
                conn = await asyncio.to_thread(self._open)
                self._connections.append(conn)
                idle.put_nowait(conn)
        except Exception:
            await self._close_connections()
            raise

        self._idle = idle
        self._initialized = True
        logger.info(f"[{self.pool_name}] MSSQL pool ready (size: {self.size})")

    @asynccontextmanager
    async def get_connection(self):
        """Check out one connection for the duration of the block."""
        if self._idle is None:
            raise RuntimeError("client is not connected")

        conn = await self._idle.get()
        try:
            yield conn
        finally:
            self._idle.put_nowait(conn)

    async def run(self, statements: Sequence[Statement], fetch: str = "none") -> Any:
        """
        Execute ``statements`` in a single transaction.

        Args:
            statements: ``(query, params)`` pairs, ``?`` placeholders
            fetch: ``none`` (rowcount), ``one``, ``all`` or ``val``; applies to
                the last statement

        Returns:
            Result of the last statement
        """
        async with self.get_connection() as conn:
            return await asyncio.to_thread(_run_statements, conn, statements, fetch)

    async def execute_query(self, query: str, *args) -> int:
        return await self.run([(query, args)])

    async def fetch_all(self, query: str, *args) -> List[Any]:
        return await self.run([(query, args)], fetch="all")

    async def fetch_one(self, query: str, *args) -> Any:
        return await self.run([(query, args)], fetch="one")

    async def fetch_val(self, query: str, *args) -> Any:
        return await self.run([(query, args)], fetch="val")

    async def is_healthy(self) -> bool:
        if not self._initialized:
            return False

        try:
            return await self.fetch_val("SELECT 1") == 1
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False

    async def _close_connections(self) -> None:
        connections, self._connections = self._connections, []
        for conn in connections:
            try:
                await asyncio.to_thread(conn.close)
            except Exception as e:
                logger.debug(f"[{self.pool_name}] Ignoring error closing connection: {e}")

    async def close(self):
        """Close every pooled connection."""
        if self._connections:
            logger.info(f"[{self.pool_name}] Closing MSSQL connection pool...")
        await self._close_connections()
        self._idle = None
        self._initialized = False
