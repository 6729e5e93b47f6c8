#!/usr/bin/env python3
"""Run the birthday reward job once.

Intended usage: ad-hoc operator runs or an external cron when the in-process
scheduler is disabled.

Example:
    python tooling/scripts/run_birthday_job.py --date 2026-03-14 --dry-run

Use `--dry-run` to list who would be rewarded without claiming, granting,
pushing or writing a campaign log.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Grant birthday rewards for today's birthdays")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Select eligible members without touching claims, balances, the gateway or the log.",
    )
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Run as if today were this ISO date (YYYY-MM-DD).",
    )
    return parser.parse_args()


async def _run(dry_run: bool, run_date: date | None) -> dict:
    from walletcast_api.db.session import async_session
    from walletcast_api.jobs.birthday import run_birthday_job

    return await run_birthday_job(session_factory=async_session, dry_run=dry_run, test_date=run_date)


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.dry_run, args.date))
    logger.success(
        "Birthday job run completed",
        processed=summary["processed"],
        success=summary["successCount"],
        failed=summary["failedCount"],
        already_gifted=summary["alreadyGifted"],
        dry_run=args.dry_run,
    )
    if args.dry_run:
        print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
