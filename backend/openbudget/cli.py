"""
Command-line entry point for running sync outside the web process.

Usage:
    openbudget-sync sync 2024 --types program economic --period MONTH --limit 50
    openbudget-sync retry
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from openbudget.config import get_settings
from openbudget.core.constants import ALL_TYPES, CLASSIFICATION_TYPES, PERIODS
from openbudget.core.exceptions import SyncValidationError
from openbudget.db.session import get_sessionmaker
from openbudget.observability.logging import configure_logging
from openbudget.services.fetcher import BudgetApiClient
from openbudget.services.sync import SyncOrchestrator, SyncRequest
from openbudget.services.sync_store import SyncStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sync local-budget structure data from the OpenBudget API.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Concurrent sync workers (defaults to SYNC_MAX_CONCURRENCY).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sync_p = sub.add_parser("sync", help="Sync every budget of a year.")
    sync_p.add_argument("year", type=int)
    sync_p.add_argument(
        "--types",
        nargs="+",
        default=[ALL_TYPES],
        choices=[*CLASSIFICATION_TYPES, ALL_TYPES],
    )
    sync_p.add_argument("--period", default=get_settings().SYNC_DEFAULT_PERIOD, type=str.upper, choices=PERIODS)
    sync_p.add_argument("--limit", type=int, default=None, help="Only the first N budgets by code.")
    sync_p.add_argument("--budget-code", default=None)
    sync_p.add_argument("--region-code", default=None)

    sub.add_parser("retry", help="Re-run every unit whose last outcome is 'error'.")
    return parser


async def _run(args: argparse.Namespace) -> int:
    store = SyncStore(get_sessionmaker())
    async with BudgetApiClient() as client:
        orchestrator = SyncOrchestrator(store, client, max_concurrency=args.concurrency)
        if args.command == "retry":
            summary = await orchestrator.retry_failed()
            print(
                f"retried {summary.attempted}: {summary.succeeded} ok, "
                f"{summary.failed} failed, {summary.skipped} skipped"
            )
            return 0 if summary.failed == 0 else 1

        request = SyncRequest.build(
            year=args.year,
            types=args.types,
            period=args.period,
            limit=args.limit,
            budget_code=args.budget_code,
            region_code=args.region_code,
        )
        summary = await orchestrator.run(request)
        print(summary.message)
        return 0 if summary.failed == 0 else 1


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging()
    try:
        return asyncio.run(_run(args))
    except SyncValidationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
