"""
Operation providers.

Each provider wraps one backend behind the OperationProvider interface.
``create_provider`` resolves optional drivers first, so the benchmark core
always receives a ready provider (or a ProviderUnavailableError to report as
a skip).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from crudbench.core.errors import ProviderUnavailableError
from crudbench.core.helpers import to_error_message
from crudbench.core.optional_modules import load_optional_module
from crudbench.core.providers.base import OperationContext, OperationProvider
from crudbench.core.providers.memory import MemoryProvider

if TYPE_CHECKING:
    from crudbench.config import Settings

logger = logging.getLogger(__name__)

AVAILABLE_BACKENDS = ("memory", "postgres", "mongo", "mssql")
_ALIASES = {"mongodb": "mongo", "sqlserver": "mssql"}


async def _load_driver(backend: str, module_name: str):
    driver = await load_optional_module(module_name)
    if not driver.ok:
        raise ProviderUnavailableError(
            backend,
            f"unable to load {module_name} module: {to_error_message(driver.error)}",
        )
    return driver.module


async def _create_postgres(settings: "Settings", dsn: Optional[str]) -> OperationProvider:
    dsn = dsn or settings.POSTGRES_DSN
    if not dsn:
        raise ProviderUnavailableError(
            "Postgres", "POSTGRES_DSN (or equivalent) not provided"
        )

    await _load_driver("Postgres", "asyncpg")

    from crudbench.core.providers.postgres import PostgresProvider

    return PostgresProvider(
        dsn,
        min_size=settings.POSTGRES_POOL_MIN_SIZE,
        max_size=settings.POSTGRES_POOL_MAX_SIZE,
        command_timeout=settings.POSTGRES_COMMAND_TIMEOUT,
    )


async def _create_mongo(settings: "Settings", uri: Optional[str]) -> OperationProvider:
    uri = uri or settings.MONGO_URI
    if not uri:
        raise ProviderUnavailableError("MongoDB", "MONGO_URI (or equivalent) not provided")

    driver = await _load_driver("MongoDB", "pymongo")

    from crudbench.core.providers.mongo import MongoProvider

    return MongoProvider(
        uri,
        driver=driver,
        database=settings.MONGO_DB,
        collection=settings.MONGO_COLLECTION,
        aggregate_collection=settings.MONGO_AGGREGATE_COLLECTION,
        max_pool_size=settings.MONGO_MAX_POOL_SIZE,
        server_selection_timeout_ms=settings.MONGO_SERVER_SELECTION_TIMEOUT_MS,
    )


async def _create_mssql(settings: "Settings", connection_string: Optional[str]) -> OperationProvider:
    connection_string = connection_string or settings.MSSQL_CONNECTION_STRING
    if not connection_string:
        raise ProviderUnavailableError(
            "MSSQL", "MSSQL_CONNECTION_STRING (or equivalent) not provided"
        )

    driver = await _load_driver("MSSQL", "pyodbc")

    from crudbench.core.providers.mssql import MssqlProvider

    return MssqlProvider(
        connection_string,
        driver=driver,
        pool_size=settings.MSSQL_POOL_SIZE,
        login_timeout=settings.MSSQL_LOGIN_TIMEOUT,
        query_timeout=settings.MSSQL_QUERY_TIMEOUT,
        odbc_driver=settings.MSSQL_ODBC_DRIVER,
    )


_FACTORIES = {
    "postgres": _create_postgres,
    "mongo": _create_mongo,
    "mssql": _create_mssql,
}


async def create_provider(
    backend: str,
    settings: Optional["Settings"] = None,
    *,
    dsn: Optional[str] = None,
) -> OperationProvider:
    """
    Factory for operation providers.

    Args:
        backend: One of AVAILABLE_BACKENDS (case-insensitive)
        settings: Settings to read connection options from
        dsn: Overrides the configured DSN, URI or connection string

    Raises:
        ValueError: Unknown backend name
        ProviderUnavailableError: Driver missing or not configured
    """
    if settings is None:
        from crudbench.config import settings as default_settings

        settings = default_settings

    key = str(backend or "").strip().lower()
    key = _ALIASES.get(key, key)
    if key == "memory":
        return MemoryProvider()
    factory = _FACTORIES.get(key)
    if factory is None:
        raise ValueError(
            f"Unknown backend {backend!r}; expected one of {', '.join(AVAILABLE_BACKENDS)}"
        )
    return await factory(settings, dsn)


__all__ = [
    "AVAILABLE_BACKENDS",
    "MemoryProvider",
    "OperationContext",
    "OperationProvider",
    "create_provider",
]
