import sys
import unittest
from datetime import date, datetime
from unittest.mock import patch
from zoneinfo import ZoneInfo

from alumina.config import Settings
from alumina.db import InMemoryDbClient
from alumina.dependencies import local_now
from scripts import seed_database, streak_rollover

# 23:30 in Honolulu is already the next day in UTC.
HONOLULU_LATE = datetime(2026, 7, 1, 23, 30, tzinfo=ZoneInfo("Pacific/Honolulu"))


class LocalNowTests(unittest.TestCase):
    def test_uses_configured_timezone(self):
        now = local_now(Settings(ALUMINA_TIMEZONE="Pacific/Kiritimati"))
        self.assertEqual(now.utcoffset().total_seconds(), 14 * 3600)


class SeedDatabaseTests(unittest.TestCase):
    @patch.object(sys, "argv", ["seed_database.py", "--seed", "7"])
    @patch.object(seed_database, "local_now", return_value=HONOLULU_LATE)
    def test_seeds_on_local_date(self, _local_now):
        db = InMemoryDbClient()
        with patch.object(seed_database, "get_db_client", return_value=db):
            self.assertEqual(seed_database.main(), 0)

        today = date(2026, 7, 1)
        self.assertEqual(len(db.get_completed_tasks("demo-user-1", today)), 4)
        self.assertEqual(db.get_completed_tasks("demo-user-1", date(2026, 7, 2)), [])
        self.assertEqual(db.get_user_stats("demo-user-2").last_activity_date, today)
        self.assertEqual(db.get_daily_metrics("demo-user-1", limit=1)[0].date, today)


class StreakRolloverTests(unittest.TestCase):
    @patch.object(streak_rollover, "local_now", return_value=HONOLULU_LATE)
    def test_run_once_uses_local_date(self, _local_now):
        db = InMemoryDbClient()
        db.update_user_stats(
            "kept", {"current_streak": 3, "last_activity_date": date(2026, 6, 30)}
        )
        db.update_user_stats(
            "lapsed", {"current_streak": 3, "last_activity_date": date(2026, 6, 29)}
        )
        with patch.object(streak_rollover, "get_db_client", return_value=db):
            self.assertEqual(streak_rollover.run_once(), 1)
        self.assertEqual(db.get_user_stats("kept").current_streak, 3)
        self.assertEqual(db.get_user_stats("lapsed").current_streak, 0)


if __name__ == "__main__":
    unittest.main()
