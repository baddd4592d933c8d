#!/usr/bin/env python3
"""
Full rating recalculation

Replays every sport's match history from the starting rating and rewrites all
match snapshots, room member ratings and player profiles.

Usage:
    ladder-recalculate                      # all sports found in the store
    ladder-recalculate --sport pingpong     # one or more named sports
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from ladder.config import Config
from ladder.database import Database
from ladder.operations.recalculation import RatingRecalculator, RecalculationReport
from ladder.utils.elo import LocalRatingPolicy
from ladder.utils.exceptions import LadderException
from ladder.utils.logger import configure_root_logging

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Recalculate all ratings from match history")
    parser.add_argument('--sport', action='append', dest='sports',
                        help="Sport to recalculate (repeatable); default is every sport in the store")
    parser.add_argument('--database-url', default=None,
                        help="Database URL (defaults to DATABASE_URL)")
    parser.add_argument('--policy', choices=[p.value for p in LocalRatingPolicy], default=None,
                        help="Local rating policy (defaults to LOCAL_RATING_POLICY)")
    return parser.parse_args(argv)


def print_summary(reports: List[RecalculationReport]):
    print("\n" + "=" * 60)
    print("FULL RECALCULATION COMPLETE")
    print("=" * 60)
    for report in reports:
        print(report.summary())
        if report.users_skipped:
            print(f"  skipped users: {', '.join(report.users_skipped)}")
        if report.rooms_missing:
            print(f"  missing rooms: {', '.join(report.rooms_missing)}")


async def recalculate(args: argparse.Namespace) -> List[RecalculationReport]:
    database = Database(args.database_url)
    await database.initialize()
    try:
        policy = LocalRatingPolicy(args.policy) if args.policy else None
        recalculator = RatingRecalculator(database, policy=policy)
        return await recalculator.run(args.sports)
    finally:
        await database.close()


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    configure_root_logging("recalculation")

    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    try:
        reports = asyncio.run(recalculate(args))
    except LadderException as e:
        logger.error(str(e))
        print(f"\nRECALCULATION FAILED: {e.user_message}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Recalculation failed: {e}", exc_info=True)
        print(f"\nRECALCULATION FAILED: {e}")
        sys.exit(1)

    print_summary(reports)


if __name__ == "__main__":
    main()
