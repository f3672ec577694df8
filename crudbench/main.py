"""
CrudBench - command line entry point.

Seeds and benchmarks one backend across the configured dataset tiers and
prints a summary table per tier.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from crudbench.config import Settings, parse_dataset_sizes, settings
from crudbench.core.errors import ProviderUnavailableError
from crudbench.core.providers import AVAILABLE_BACKENDS, create_provider
from crudbench.core.run_mode import (
    OPERATION_DETAILS,
    OPERATION_LABELS,
    RunMode,
    is_operation_enabled,
    is_read_operation,
    resolve_run_mode,
)
from crudbench.core.suite import run_backend_suite
from crudbench.core.summary import format_grid

logger = logging.getLogger(__name__)


def configure_logging(config: Settings, level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or config.LOG_LEVEL).upper()),
        format=config.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(config.LOG_FILE)
            if config.LOG_FILE
            else logging.NullHandler(),
        ],
    )
    # Quiet driver loggers.
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Benchmark CRUD operations against a database backend."
    )
    parser.add_argument(
        "--backend",
        default=settings.BENCH_BACKEND,
        choices=AVAILABLE_BACKENDS,
        help="Backend to benchmark.",
    )
    parser.add_argument(
        "--mode",
        default=None,
        help="Run mode: all, read or write (default: BENCH_MODE).",
    )
    parser.add_argument(
        "--sizes",
        default=None,
        help="Comma separated dataset tiers (default: BENCH_DATASET_SIZES).",
    )
    parser.add_argument(
        "--seed-concurrency",
        type=int,
        default=None,
        help="Concurrent seeding workers (default: BENCH_SEED_CONCURRENCY).",
    )
    parser.add_argument(
        "--dsn",
        default=None,
        help="Connection string for the selected backend "
        "(default: POSTGRES_DSN, MONGO_URI or MSSQL_CONNECTION_STRING).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL.",
    )
    parser.add_argument(
        "--list-operations",
        action="store_true",
        help="Print the benchmarked operations for the selected mode and exit.",
    )
    return parser


def format_operations(mode: RunMode) -> str:
    """Grid of the nine operations with their kind and whether ``mode`` runs them."""
    rows = [
        [
            label,
            "read" if is_read_operation(label) else "write",
            "yes" if is_operation_enabled(label, mode) else "no",
            OPERATION_DETAILS[label],
        ]
        for label in OPERATION_LABELS
    ]
    return format_grid(("operation", "kind", "enabled", "description"), rows)


async def _run(args: argparse.Namespace) -> int:
    mode: RunMode = resolve_run_mode(args.mode) if args.mode else settings.run_mode
    sizes = parse_dataset_sizes(args.sizes) if args.sizes else settings.dataset_sizes

    if args.list_operations:
        print(f"Run mode: {mode.value}")
        print(format_operations(mode))
        return 0

    try:
        provider = await create_provider(args.backend, settings, dsn=args.dsn)
    except ProviderUnavailableError as e:
        logger.warning(f"Skipping {e.backend} benchmark – {e.reason}")
        return 0

    report = await run_backend_suite(
        provider,
        dataset_sizes=sizes,
        run_mode=mode,
        seed_concurrency=args.seed_concurrency,
    )

    for summary in report.summaries:
        print(summary)
        print()

    if report.skipped:
        print(f"[crudbench] {report.backend} skipped: {report.reason}")
        return 0
    if not report.ok:
        for tier in report.tiers:
            if tier.validation is None:
                continue
            for failure in tier.validation.failures:
                print(
                    f"[crudbench] {tier.label} {failure.name}: {failure.message}",
                    file=sys.stderr,
                )
        return 1
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(settings, args.log_level)
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        print("[crudbench] interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
