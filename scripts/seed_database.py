"""
Seed the database with the achievement catalog, demo users and recent activity.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from datetime import date, timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from alumina.catalog import find_daily_task
from alumina.db import (
    CompletedTaskRecord,
    DailyMetricRecord,
    DbClient,
    InMemoryDbClient,
    PostgresDbClient,
)
from alumina.dependencies import get_db_client, local_now
from alumina.gamification import ensure_achievement_catalog

logger = logging.getLogger(__name__)

DEMO_USERS = [
    {
        "id": "demo-user-1",
        "email": "demo@alumina.com",
        "name": "Alex Rivera",
        "profile": {
            "goals": ["longevity", "energy", "focus"],
            "experience_level": "intermediate",
            "available_time": 60,
            "health_conditions": [],
            "budget": "premium",
        },
        "stats": {
            "current_streak": 12,
            "longest_streak": 45,
            "total_points": 2500,
            "level": 3,
        },
    },
    {
        "id": "demo-user-2",
        "email": "sarah@alumina.com",
        "name": "Sarah Chen",
        "profile": {
            "goals": ["sleep", "stress", "energy"],
            "experience_level": "beginner",
            "available_time": 30,
            "health_conditions": [],
            "budget": "intermediate",
        },
        "stats": {
            "current_streak": 5,
            "longest_streak": 8,
            "total_points": 450,
            "level": 1,
        },
    },
    {
        "id": "demo-user-3",
        "email": "jordan@alumina.com",
        "name": "Jordan Taylor",
        "profile": {
            "goals": ["fitness", "longevity", "recovery"],
            "experience_level": "advanced",
            "available_time": 90,
            "health_conditions": [],
            "budget": "premium",
        },
        "stats": {
            "current_streak": 67,
            "longest_streak": 120,
            "total_points": 8900,
            "level": 7,
        },
    },
]

DEMO_TASK_IDS = ["morning-light", "cold-shower", "breathwork", "morning-supps"]


def seed_users(db: DbClient, today: date) -> int:
    for user in DEMO_USERS:
        db.create_user(user["id"], user["email"], user["name"])
        db.upsert_user_profile(user["id"], user["profile"])
        db.update_user_stats(
            user["id"], {**user["stats"], "last_activity_date": today}
        )
        logger.info(
            "Seeded %s (%s): %d pts, %d day streak",
            user["name"],
            user["email"],
            user["stats"]["total_points"],
            user["stats"]["current_streak"],
        )
    return len(DEMO_USERS)


def seed_activity(db: DbClient, user_id: str, today: date, rng: random.Random) -> None:
    """Today's morning protocols plus a week of daily metrics for one user."""
    for task_id in DEMO_TASK_IDS:
        task = find_daily_task(task_id)
        db.add_completed_task(
            CompletedTaskRecord(
                user_id=user_id,
                task_id=task.task_id,
                task_name=task.title,
                task_category=task.category,
                points_earned=10,
                date=today,
            )
        )
    for offset in range(7):
        db.add_daily_metric(
            DailyMetricRecord(
                user_id=user_id,
                date=today - timedelta(days=offset),
                energy=rng.randint(7, 9),
                sleep=rng.randint(6, 8),
                mood=rng.randint(7, 9),
                protocols_completed=rng.randint(4, 6),
                notes="Feeling great today!" if offset == 0 else None,
            )
        )
    logger.info(
        "Added %d completed tasks and 7 days of metrics for %s",
        len(DEMO_TASK_IDS),
        user_id,
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed Alumina demo data")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy URL to seed (defaults to DATABASE_URL)",
    )
    parser.add_argument(
        "--skip-activity",
        action="store_true",
        help="Only seed the catalog and demo users",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for the generated metrics",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    if args.database_url:
        db: DbClient = PostgresDbClient(args.database_url)
    else:
        db = get_db_client()
    if isinstance(db, InMemoryDbClient):
        logger.warning("No DATABASE_URL configured, seeding the in-memory store only")

    added = ensure_achievement_catalog(db)
    logger.info(
        "Achievement catalog has %d entries (%d new)",
        len(db.list_catalog_achievements()),
        added,
    )

    today = local_now().date()
    seed_users(db, today)
    if not args.skip_activity:
        seed_activity(db, DEMO_USERS[0]["id"], today, random.Random(args.seed))
    logger.info("Seeding complete")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
