#!/usr/bin/env python
"""
Run the fantasy scoring engine for finished game weeks.

Scores every team, updates player fatigue and replaces the game week's
leaderboard. Safe to re-run after failures.

Usage:
    python -m scripts.process_gameweek <game_week_id>             # Process one game week
    python -m scripts.process_gameweek <game_week_id> --dry-run   # Compute and print only
    python -m scripts.process_gameweek --all-finished             # Process all unprocessed
"""

import argparse
import asyncio
import logging
import os
import sys

import asyncpg
from dotenv import load_dotenv

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import get_settings
from app.services.errors import ScoringError
from app.services.gameweek_processor import GameweekProcessor, ProcessResult, SweepResult

# Load environment
load_dotenv(".env.local")
load_dotenv(".env")

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def get_connection() -> asyncpg.Connection:
    """Get database connection from environment."""
    db_url = os.getenv("DATABASE_URL") or os.getenv("SUPABASE_DB_URL")
    if not db_url:
        raise ValueError("Set DATABASE_URL or SUPABASE_DB_URL")
    return await asyncpg.connect(db_url)


def print_result(result: ProcessResult, limit: int = 20) -> None:
    """Print a run summary and the top of the leaderboard."""
    title = "Dry Run" if result.dry_run else "Processed"
    print(f"\n{title}: game week {result.game_week_id}")
    print("-" * 50)
    print(f"Teams processed:     {result.teams_processed}")
    print(f"Leaderboard entries: {result.leaderboard_entries}")
    print(f"Fatigue updates:     {result.fatigue_updates}")
    print(f"Fatigue skipped:     {result.fatigue_skipped}")
    print(f"Refunded boosters:   {result.refunded_boosters}")
    print(f"Failures:            {result.failures}")
    print("-" * 50)

    if result.leaderboard:
        print(f"{'Rank':>4}  {'User':<24} {'Points':>8}  Booster")
        for entry in result.leaderboard[:limit]:
            booster = entry.booster_used.label or "-"
            print(f"{entry.rank:>4}  {entry.username:<24} {entry.total_points:>8.1f}  {booster}")


def print_sweep(sweep: SweepResult) -> None:
    print(f"\nFinished game weeks found: {sweep.game_weeks_found}")
    for item in sweep.results:
        line = f"  {item.status:<8} {item.game_week_id} ({item.name})"
        if item.reason:
            line += f" - {item.reason}"
        print(line)
    print(f"Success: {sweep.success_count}, Errors: {sweep.error_count}")


async def main() -> None:
    parser = argparse.ArgumentParser(description="Process fantasy game weeks")
    parser.add_argument("game_week_id", nargs="?", help="Game week to process")
    parser.add_argument(
        "--all-finished",
        action="store_true",
        help="Process every finished game week without a leaderboard",
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Compute and print without writing"
    )
    args = parser.parse_args()

    if not args.game_week_id and not args.all_finished:
        parser.error("game_week_id or --all-finished is required")
    if args.all_finished and args.dry_run:
        parser.error("--dry-run applies to a single game week")

    try:
        conn = await get_connection()
    except Exception as e:
        logger.error(f"Failed to connect to database: {e}")
        logger.error("Make sure DATABASE_URL is set correctly")
        sys.exit(1)

    settings = get_settings()
    processor = GameweekProcessor(unknown_username=settings.leaderboard_unknown_username)
    exit_code = 0
    try:
        if args.all_finished:
            sweep = await processor.process_all_finished(conn)
            print_sweep(sweep)
            exit_code = 1 if sweep.error_count else 0
        else:
            result = await processor.process(conn, args.game_week_id, dry_run=args.dry_run)
            print_result(result)
            exit_code = 1 if result.failures else 0
    except ScoringError as e:
        logger.error(str(e))
        exit_code = 1
    finally:
        await conn.close()

    sys.exit(exit_code)


if __name__ == "__main__":
    asyncio.run(main())
