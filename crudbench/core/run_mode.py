"""
Operation classification and run-mode filtering.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

logger = logging.getLogger(__name__)

AsyncOperation = Callable[[], Awaitable[Any]]
BenchOperation = tuple[str, AsyncOperation]


class RunMode(str, Enum):
    """Coarse filter over benchmarked operations."""

    ALL = "all"
    READ = "read"
    WRITE = "write"


DEFAULT_RUN_MODE = RunMode.ALL

READ_OPERATIONS: frozenset[str] = frozenset({"list", "get", "select", "events"})
WRITE_OPERATIONS: frozenset[str] = frozenset(
    {"apply", "create", "archive", "restore", "patch"}
)

# Canonical registration order for the nine benchmarked operations.
OPERATION_LABELS: tuple[str, ...] = (
    "list",
    "get",
    "select",
    "events",
    "apply",
    "create",
    "archive",
    "restore",
    "patch",
)

OPERATION_DETAILS: dict[str, str] = {
    "list": "aggregate listing (latest 10)",
    "get": "load aggregate snapshot",
    "select": "project selected fields",
    "events": "read event stream (latest 10)",
    "apply": "append event",
    "create": "create aggregate",
    "archive": "archive aggregate",
    "restore": "restore aggregate",
    "patch": "apply JSON patch & record event",
}


def resolve_run_mode(raw: Any) -> RunMode:
    """
    Parse a configured run mode.

    Unrecognized values fall back to ``all`` instead of failing.
    """
    if isinstance(raw, RunMode):
        return raw
    value = str(raw or "").strip().lower()
    if not value:
        return DEFAULT_RUN_MODE
    try:
        return RunMode(value)
    except ValueError:
        logger.warning(
            "Unknown benchmark run mode %r; falling back to %r",
            raw,
            DEFAULT_RUN_MODE.value,
        )
        return DEFAULT_RUN_MODE


def _configured_mode() -> RunMode:
    from crudbench.config import settings

    return settings.run_mode


def is_read_operation(label: str) -> bool:
    return label in READ_OPERATIONS


def is_write_operation(label: str) -> bool:
    return label in WRITE_OPERATIONS


def is_operation_enabled(label: str, mode: Optional[RunMode] = None) -> bool:
    """Whether ``label`` runs under ``mode`` (defaults to the configured mode)."""
    mode = resolve_run_mode(mode) if mode is not None else _configured_mode()
    if mode == RunMode.READ:
        return is_read_operation(label)
    if mode == RunMode.WRITE:
        return is_write_operation(label)
    return True


def filter_bench_operations(
    operations: Sequence[BenchOperation],
    *,
    on_skip: Optional[Callable[[str], Any]] = None,
    mode: Optional[RunMode] = None,
) -> list[BenchOperation]:
    """
    Keep the enabled ``(label, action)`` pairs, preserving input order.

    ``on_skip`` is called once per excluded label. Actions are never invoked.
    """
    mode = resolve_run_mode(mode) if mode is not None else _configured_mode()
    enabled: list[BenchOperation] = []
    for label, action in operations:
        if is_operation_enabled(label, mode):
            enabled.append((label, action))
        elif on_skip is not None:
            on_skip(label)
    return enabled
