"""
CrudBench configuration.

Settings are read once per process from the environment (and an optional
``.env`` file) and exposed through the module-level ``settings`` singleton.
"""

from __future__ import annotations

import logging
from functools import cached_property
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from crudbench.core.dataset import DEFAULT_DATASET_SIZES
from crudbench.core.run_mode import RunMode, resolve_run_mode
from crudbench.core.seeding import DEFAULT_SEED_CONCURRENCY

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Process-wide benchmark configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: Optional[str] = None

    # Dataset tiers and operation windows
    BENCH_DATASET_SIZES: str = ",".join(str(size) for size in DEFAULT_DATASET_SIZES)
    BENCH_LIST_LIMIT: int = Field(10, ge=1)
    BENCH_EVENTS_LIMIT: int = Field(10, ge=1)
    BENCH_MODE: str = "all"
    BENCH_BACKEND: str = "memory"

    # Seeding
    BENCH_SEED_CONCURRENCY: int = Field(DEFAULT_SEED_CONCURRENCY, ge=1)

    # Measurement engine
    BENCH_TIME_MS: float = Field(150.0, ge=0)
    BENCH_WARMUP_TIME_MS: float = Field(50.0, ge=0)
    BENCH_WARMUP_ITERATIONS: int = Field(3, ge=0)
    BENCH_ITERATIONS: int = Field(5, ge=1)

    # Postgres backend
    POSTGRES_DSN: Optional[str] = Field(
        None,
        validation_alias=AliasChoices(
            "POSTGRES_DSN",
            "EVENTDBX_PG_DSN",
            "PG_CONNECTION_STRING",
            "DATABASE_URL",
            "PGURL",
            "POSTGRES_URL",
        ),
    )
    POSTGRES_POOL_MIN_SIZE: int = Field(1, ge=1)
    POSTGRES_POOL_MAX_SIZE: int = Field(10, ge=1)
    POSTGRES_COMMAND_TIMEOUT: float = 60.0

    # MongoDB backend
    MONGO_URI: Optional[str] = Field(
        None,
        validation_alias=AliasChoices(
            "MONGO_URI",
            "EVENTDBX_MONGO_URI",
            "MONGODB_URI",
            "MONGO_URL",
            "MONGODB_URL",
        ),
    )
    MONGO_DB: str = Field(
        "bench",
        validation_alias=AliasChoices(
            "MONGO_DB", "EVENTDBX_MONGO_DB", "MONGODB_DB", "MONGODB_DATABASE"
        ),
    )
    MONGO_COLLECTION: str = Field(
        "events",
        validation_alias=AliasChoices(
            "MONGO_COLLECTION",
            "EVENTDBX_MONGO_COLLECTION",
            "MONGODB_COLLECTION",
            "MONGO_COL",
            "MONGO_COLLECTION_NAME",
        ),
    )
    MONGO_AGGREGATE_COLLECTION: Optional[str] = Field(
        None,
        validation_alias=AliasChoices(
            "MONGO_AGGREGATE_COLLECTION",
            "EVENTDBX_MONGO_AGGREGATE_COLLECTION",
            "MONGODB_AGGREGATE_COLLECTION",
        ),
    )
    MONGO_MAX_POOL_SIZE: int = Field(20, ge=1)
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = Field(1_000, ge=1)

    # MSSQL backend
    MSSQL_CONNECTION_STRING: Optional[str] = Field(
        None,
        validation_alias=AliasChoices(
            "MSSQL_CONNECTION_STRING",
            "EVENTDBX_MSSQL_CONN",
            "MSSQL_URL",
            "SQLSERVER_URL",
        ),
    )
    MSSQL_ODBC_DRIVER: str = "ODBC Driver 18 for SQL Server"
    MSSQL_POOL_SIZE: int = Field(8, ge=1)
    MSSQL_LOGIN_TIMEOUT: int = Field(15, ge=0)
    MSSQL_QUERY_TIMEOUT: int = Field(30, ge=0)

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = str(value or "INFO").strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return level

    @cached_property
    def dataset_sizes(self) -> tuple[int, ...]:
        """Configured tiers, de-duplicated and sorted ascending."""
        return parse_dataset_sizes(self.BENCH_DATASET_SIZES)

    @cached_property
    def run_mode(self) -> RunMode:
        return resolve_run_mode(self.BENCH_MODE)


def parse_dataset_sizes(raw: str | None) -> tuple[int, ...]:
    """
    Parse a comma separated tier list ("1000,10_000, 100000").

    Non-positive or unparsable entries are dropped with a warning. An empty
    result falls back to the default tiers.
    """
    sizes: set[int] = set()
    for part in str(raw or "").split(","):
        token = part.strip().replace("_", "")
        if not token:
            continue
        try:
            value = int(token)
        except ValueError:
            logger.warning("Ignoring invalid dataset size: %r", part)
            continue
        if value <= 0:
            logger.warning("Ignoring non-positive dataset size: %d", value)
            continue
        sizes.add(value)

    if not sizes:
        return tuple(DEFAULT_DATASET_SIZES)
    return tuple(sorted(sizes))


settings = Settings()
