"""
Daemon that zeroes the current streak of users who missed a day.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from alumina.dependencies import get_db_client, local_now
from alumina.gamification import roll_over_streaks

logger = logging.getLogger(__name__)


def run_once() -> int:
    return roll_over_streaks(get_db_client(), local_now().date())


def main() -> int:
    parser = argparse.ArgumentParser(description="Alumina streak rollover daemon")
    parser.add_argument(
        "--interval-seconds",
        type=int,
        default=3600,
        help="Seconds between rollover runs",
    )
    parser.add_argument(
        "--jitter-seconds",
        type=int,
        default=120,
        help="Max random jitter added to sleep",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single rollover and exit",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    while True:
        try:
            reset = run_once()
            logger.info("Rollover complete, reset %d streaks", reset)
        except Exception as exc:
            logger.exception("Rollover failed: %s", exc)

        if args.once:
            return 0

        sleep_for = args.interval_seconds + random.uniform(0, args.jitter_seconds)
        logger.info("Sleeping for %.1fs", sleep_for)
        time.sleep(sleep_for)


if __name__ == "__main__":
    raise SystemExit(main())
