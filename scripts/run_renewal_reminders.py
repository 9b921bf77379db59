#!/usr/bin/env python3
"""
Run Renewal Reminders

Runs the same daily pass as the 02:00 scheduler job:
1. Mark lapsed renewals EXPIRED and email those companies
2. Send 30/7-day renewal reminders not sent yet

Usage:
    python scripts/run_renewal_reminders.py
    python scripts/run_renewal_reminders.py --date 2026-11-12
    python scripts/run_renewal_reminders.py --days 30 7 1
"""

from datetime import date

from script_utils import (
    create_base_parser,
    get_db_session,
    print_header,
    print_summary,
    run_async,
)

from app.services.renewals import run_daily_renewal_reminders


async def main(today: date = None, days: list[int] = None) -> dict:
    print_header(f"RENEWAL REMINDERS - {(today or date.today()).isoformat()}")
    async with get_db_session() as session:
        stats = await run_daily_renewal_reminders(session, today=today, thresholds=days)
    print_summary(stats)
    return stats


if __name__ == "__main__":
    parser = create_base_parser("Send renewal reminders and expire lapsed renewals")
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        help="Run as if today were this date (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--days",
        type=int,
        nargs="+",
        help="Reminder thresholds in days (default from settings)",
    )
    args = parser.parse_args()
    run_async(main(today=args.date, days=args.days))
