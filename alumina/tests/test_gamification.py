import unittest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

from alumina.db import InMemoryDbClient
from alumina.gamification import (
    complete_task,
    ensure_achievement_catalog,
    grant_achievement,
    level_for_points,
    next_streak,
    roll_over_streaks,
)


class StreakAndLevelTests(unittest.TestCase):
    def test_next_streak(self):
        today = date(2026, 4, 2)
        self.assertEqual(next_streak(0, None, today), 1)
        self.assertEqual(next_streak(3, today, today), 3)
        self.assertEqual(next_streak(3, date(2026, 4, 1), today), 4)
        self.assertEqual(next_streak(3, date(2026, 3, 30), today), 1)

    def test_level_for_points(self):
        self.assertEqual(level_for_points(0, 1000), 1)
        self.assertEqual(level_for_points(999, 1000), 1)
        self.assertEqual(level_for_points(1000, 1000), 2)
        self.assertEqual(level_for_points(2500, 1000), 3)
        self.assertEqual(level_for_points(500, 0), 1)


class CompleteTaskTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        ensure_achievement_catalog(self.db)
        self.db.create_user("u1", "u1@example.com", "User One")
        self.start = datetime(2026, 4, 1, 17, 0, tzinfo=timezone.utc)

    def complete(self, task_id, now):
        return complete_task(
            self.db,
            "u1",
            task_id=task_id,
            task_name=task_id.replace("-", " ").title(),
            task_category=None,
            points=10,
            now=now,
            points_per_level=1000,
        )

    def test_catalog_is_seeded_once(self):
        self.assertEqual(ensure_achievement_catalog(self.db), 0)
        self.assertEqual(len(self.db.list_catalog_achievements()), 9)

    def test_first_completion(self):
        result = self.complete("movement", self.start)
        self.assertTrue(result.created)
        self.assertEqual(result.stats.current_streak, 1)
        self.assertEqual(result.stats.total_days_active, 1)
        self.assertEqual(result.stats.total_points, 60)
        self.assertEqual([a.achievement_id for a in result.unlocked], ["first-day"])

    def test_duplicate_leaves_stats_untouched(self):
        first = self.complete("movement", self.start)
        again = self.complete("movement", self.start + timedelta(hours=1))
        self.assertFalse(again.created)
        self.assertEqual(again.task.id, first.task.id)
        self.assertEqual(again.stats.total_points, first.stats.total_points)
        self.assertEqual(again.stats.total_protocols_completed, 1)
        self.assertEqual(again.unlocked, [])

    def test_second_task_same_day_keeps_streak(self):
        self.complete("movement", self.start)
        result = self.complete("wind-down", self.start + timedelta(hours=4))
        self.assertEqual(result.stats.current_streak, 1)
        self.assertEqual(result.stats.total_days_active, 1)
        self.assertEqual(result.stats.total_protocols_completed, 2)

    def test_seven_day_streak_unlocks_week_warrior(self):
        result = None
        for day in range(7):
            result = self.complete("movement", self.start + timedelta(days=day))
        self.assertEqual(result.stats.current_streak, 7)
        self.assertEqual(result.stats.longest_streak, 7)
        self.assertEqual([a.achievement_id for a in result.unlocked], ["streak-7"])
        self.assertEqual(result.stats.total_points, 7 * 10 + 50 + 100)

    def test_ten_cold_showers_unlock_ice_warrior(self):
        morning = self.start.replace(hour=8)
        unlocked = []
        for day in range(10):
            result = self.complete("cold-shower", morning + timedelta(days=day * 2))
            unlocked.extend(a.achievement_id for a in result.unlocked)
        self.assertIn("cold-plunge-10", unlocked)
        self.assertNotIn("streak-7", unlocked)
        self.assertEqual(result.stats.current_streak, 1)

    def test_level_follows_points(self):
        self.db.update_user_stats("u1", {"total_points": 990})
        result = self.complete("movement", self.start)
        self.assertEqual(result.stats.total_points, 1050)
        self.assertEqual(result.stats.level, 2)

    def test_failed_stats_update_stores_nothing(self):
        with patch(
            "alumina.gamification.apply_completion",
            side_effect=RuntimeError("stats write failed"),
        ):
            with self.assertRaises(RuntimeError):
                self.complete("movement", self.start)
        self.assertEqual(self.db.count_completed_tasks("u1"), 0)
        self.assertEqual(self.db.get_user_stats("u1").total_points, 0)

        retry = self.complete("movement", self.start)
        self.assertTrue(retry.created)
        self.assertEqual(retry.stats.total_points, 60)


class RolloverAndGrantTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        ensure_achievement_catalog(self.db)
        for user_id in ("lapsed", "active", "idle"):
            self.db.create_user(user_id, f"{user_id}@example.com", user_id.title())

    def test_roll_over_streaks(self):
        today = date(2026, 5, 10)
        self.db.update_user_stats(
            "lapsed", {"current_streak": 3, "last_activity_date": date(2026, 5, 8)}
        )
        self.db.update_user_stats(
            "active", {"current_streak": 2, "last_activity_date": date(2026, 5, 9)}
        )
        self.db.get_user_stats("idle")

        self.assertEqual(roll_over_streaks(self.db, today), 1)
        self.assertEqual(self.db.get_user_stats("lapsed").current_streak, 0)
        self.assertEqual(self.db.get_user_stats("active").current_streak, 2)
        self.assertEqual(roll_over_streaks(self.db, today), 0)

    def test_grant_achievement(self):
        self.assertIsNone(grant_achievement(self.db, "active", "moon-landing", 1000))

        record = grant_achievement(self.db, "active", "bio-age-reverse", 1000)
        self.assertEqual(record.points_earned, 500)
        self.assertIsNone(grant_achievement(self.db, "active", "bio-age-reverse", 1000))
        self.assertEqual(self.db.get_user_stats("active").total_points, 500)

        self.db.update_user_stats("active", {"total_points": 900})
        grant_achievement(self.db, "active", "community-engage", 1000)
        stats = self.db.get_user_stats("active")
        self.assertEqual(stats.total_points, 1150)
        self.assertEqual(stats.level, 2)


if __name__ == "__main__":
    unittest.main()
