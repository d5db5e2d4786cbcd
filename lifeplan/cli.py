"""
LifePlan — Command-line entry.

Runs the daily jobs once against the configured SQLite database:

    python main.py ensure --start 2024-01-01 --end 2024-01-07 [--user ID ...] [--dry-run]
    python main.py end-of-day [--user ID ...]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from lifeplan.adapters.sqlite_store import SQLiteStore
from lifeplan.core.scheduler import ensure_instances_for_users, run_end_of_day
from lifeplan.ports.planner_store import StoreError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lifeplan", description="LifePlan daily jobs")
    sub = parser.add_subparsers(dest="command", required=True)

    ensure = sub.add_parser("ensure", help="materialize instances for a date range")
    ensure.add_argument("--start", required=True, help="first day, YYYY-MM-DD")
    ensure.add_argument("--end", required=True, help="last day, YYYY-MM-DD")
    ensure.add_argument("--user", action="append", dest="user_ids", help="limit to a user (repeatable)")
    ensure.add_argument("--dry-run", action="store_true")

    eod = sub.add_parser("end-of-day", help="expire yesterday's pending instances and snapshot")
    eod.add_argument("--user", action="append", dest="user_ids", help="limit to a user (repeatable)")
    return parser


async def _run(args: argparse.Namespace) -> dict:
    store = SQLiteStore()
    if args.command == "ensure":
        return await ensure_instances_for_users(
            store, args.start, args.end, user_ids=args.user_ids, dry_run=args.dry_run,
        )
    return await run_end_of_day(store, user_ids=args.user_ids)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        result = asyncio.run(_run(args))
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2
    except StoreError as exc:
        logger.error("Job aborted: %s", exc)
        return 1
    print(json.dumps(result, indent=2))
    return 1 if result.get("errors") else 0
