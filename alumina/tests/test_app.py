import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient
from sqlalchemy.exc import SQLAlchemyError

from alumina.app import create_app
from alumina.db import InMemoryDbClient
from alumina.dependencies import get_db_client, get_now
from alumina.gamification import ensure_achievement_catalog


class AluminaApiTests(unittest.TestCase):
    def setUp(self):
        self.app = create_app()
        self.client = TestClient(self.app)
        db = get_db_client()
        if isinstance(db, InMemoryDbClient):
            db.reset()
            ensure_achievement_catalog(db)
        self.now = datetime(2026, 3, 10, 8, 30, tzinfo=timezone.utc)
        self.app.dependency_overrides[get_now] = lambda: self.now

    def create_user(self, user_id="user-1", email="alex@example.com", name="Alex"):
        response = self.client.post(
            "/api/users", json={"id": user_id, "email": email, "name": name}
        )
        self.assertEqual(response.status_code, 200)
        return response.json()["data"]

    def complete(self, task_id, user_id="user-1", **extra):
        return self.client.post(
            f"/api/user/{user_id}/tasks/today", json={"task_id": task_id, **extra}
        )

    def test_health(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_create_and_get_user(self):
        created = self.create_user()
        self.assertEqual(created["id"], "user-1")
        self.assertFalse(created["has_completed_onboarding"])
        self.assertIsNone(created["last_login_at"])

        fetched = self.client.get("/api/user/user-1").json()["data"]
        self.assertEqual(fetched["email"], "alex@example.com")

        again = self.create_user()
        self.assertIsNotNone(again["last_login_at"])

    def test_duplicate_email_conflicts(self):
        self.create_user()
        response = self.client.post(
            "/api/users",
            json={"id": "user-2", "email": "alex@example.com", "name": "Other"},
        )
        self.assertEqual(response.status_code, 409)

    def test_invalid_email_rejected(self):
        response = self.client.post(
            "/api/users", json={"id": "user-1", "email": "nope", "name": "Alex"}
        )
        self.assertEqual(response.status_code, 422)

    def test_unknown_user_reads_as_null(self):
        response = self.client.get("/api/user/missing")
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["data"])

    def test_blank_user_id_is_bad_request(self):
        response = self.client.get("/api/user/%20/profile")
        self.assertEqual(response.status_code, 400)

    def test_update_onboarding_flag(self):
        self.create_user()
        response = self.client.patch("/api/user/user-1", json={})
        self.assertEqual(response.status_code, 400)

        response = self.client.patch(
            "/api/user/user-1", json={"has_completed_onboarding": True}
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["data"]["has_completed_onboarding"])

        response = self.client.patch(
            "/api/user/missing", json={"has_completed_onboarding": True}
        )
        self.assertEqual(response.status_code, 404)

    def test_profile_upsert_keeps_unspecified_fields(self):
        self.create_user()
        self.assertIsNone(self.client.get("/api/user/user-1/profile").json()["data"])

        response = self.client.put(
            "/api/user/user-1/profile",
            json={
                "goals": ["energy", "sleep"],
                "experience_level": "advanced",
                "available_time": 45,
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["budget"], "essential")

        self.client.put("/api/user/user-1/profile", json={"budget": "premium"})
        profile = self.client.get("/api/user/user-1/profile").json()["data"]
        self.assertEqual(profile["goals"], ["energy", "sleep"])
        self.assertEqual(profile["experience_level"], "advanced")
        self.assertEqual(profile["budget"], "premium")

    def test_profile_rejects_unknown_enum_and_user(self):
        self.create_user()
        response = self.client.put(
            "/api/user/user-1/profile", json={"experience_level": "expert"}
        )
        self.assertEqual(response.status_code, 422)
        response = self.client.put("/api/user/missing/profile", json={"goals": []})
        self.assertEqual(response.status_code, 404)

    def test_stats_lazy_init_and_partial_update(self):
        self.create_user()
        stats = self.client.get("/api/user/user-1/stats").json()["data"]
        self.assertEqual(stats["current_streak"], 0)
        self.assertEqual(stats["level"], 1)
        self.assertIsNone(stats["last_activity_date"])

        response = self.client.put("/api/user/user-1/stats", json={"total_points": 300})
        updated = response.json()["data"]
        self.assertEqual(updated["total_points"], 300)
        self.assertEqual(updated["current_streak"], 0)

        self.assertEqual(self.client.get("/api/user/missing/stats").status_code, 404)

    def test_daily_metrics_upsert_by_date(self):
        self.create_user()
        body = {"energy": 7, "sleep": 8, "mood": 6}
        first = self.client.post("/api/user/user-1/metrics", json=body)
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["data"]["date"], "2026-03-10")

        self.client.post("/api/user/user-1/metrics", json={**body, "energy": 5})
        self.client.post(
            "/api/user/user-1/metrics", json={**body, "date": "2026-03-09"}
        )

        metrics = self.client.get("/api/user/user-1/metrics").json()["data"]
        self.assertEqual([m["date"] for m in metrics], ["2026-03-10", "2026-03-09"])
        self.assertEqual(metrics[0]["energy"], 5)

        limited = self.client.get("/api/user/user-1/metrics", params={"days": 1})
        self.assertEqual(len(limited.json()["data"]), 1)

    def test_daily_metric_out_of_range(self):
        self.create_user()
        response = self.client.post(
            "/api/user/user-1/metrics", json={"energy": 11, "sleep": 8, "mood": 6}
        )
        self.assertEqual(response.status_code, 422)

    def test_complete_task_awards_points_once(self):
        self.create_user()
        response = self.complete("morning-light")
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertTrue(payload["created"])
        self.assertEqual(payload["data"]["task_name"], "Morning Light Exposure")
        self.assertEqual(payload["data"]["task_category"], "circadian")
        self.assertEqual(payload["data"]["date"], "2026-03-10")
        self.assertEqual(payload["stats"]["current_streak"], 1)
        self.assertEqual(payload["stats"]["total_points"], 60)
        self.assertEqual([a["achievement_id"] for a in payload["unlocked"]], ["first-day"])

        duplicate = self.complete("morning-light")
        self.assertEqual(duplicate.status_code, 200)
        self.assertFalse(duplicate.json()["created"])
        self.assertEqual(duplicate.json()["stats"]["total_points"], 60)
        self.assertEqual(duplicate.json()["unlocked"], [])

        today = self.client.get("/api/user/user-1/tasks/today").json()["data"]
        self.assertEqual(len(today), 1)

    def test_streak_follows_calendar_days(self):
        self.create_user()
        self.complete("movement")

        self.now += timedelta(days=1)
        stats = self.complete("movement").json()["stats"]
        self.assertEqual(stats["current_streak"], 2)
        self.assertEqual(stats["total_days_active"], 2)

        self.now += timedelta(days=2)
        stats = self.complete("movement").json()["stats"]
        self.assertEqual(stats["current_streak"], 1)
        self.assertEqual(stats["longest_streak"], 2)
        self.assertEqual(stats["last_activity_date"], "2026-03-13")

        history = self.client.get("/api/user/user-1/tasks").json()["data"]
        self.assertEqual(len(history), 3)
        on_day = self.client.get(
            "/api/user/user-1/tasks", params={"date": "2026-03-11"}
        ).json()["data"]
        self.assertEqual([t["date"] for t in on_day], ["2026-03-11"])

    def test_early_completion_unlocks_early_bird(self):
        self.create_user()
        self.now = self.now.replace(hour=6, minute=30)
        payload = self.complete("morning-light").json()
        unlocked = {a["achievement_id"] for a in payload["unlocked"]}
        self.assertEqual(unlocked, {"first-day", "early-bird"})
        self.assertEqual(payload["stats"]["total_points"], 135)

    def test_all_daily_tasks_unlock_perfectionist(self):
        self.create_user()
        catalog_tasks = self.client.get("/api/catalog/tasks").json()["data"]
        payload = None
        for task in catalog_tasks:
            payload = self.complete(task["task_id"]).json()
        self.assertEqual(
            [a["achievement_id"] for a in payload["unlocked"]], ["all-protocols"]
        )
        self.assertEqual(payload["stats"]["total_points"], 270)
        self.assertEqual(payload["stats"]["total_protocols_completed"], 7)
        self.assertEqual(payload["stats"]["total_days_active"], 1)

    def test_complete_task_validation(self):
        self.create_user()
        response = self.complete("custom-task")
        self.assertEqual(response.status_code, 400)

        response = self.complete(
            "custom-task", task_name="Sauna", task_category="heat", points_earned=25
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["data"]["points_earned"], 25)

        self.assertEqual(self.complete("movement", user_id="missing").status_code, 404)

    def test_explicit_achievement_unlock(self):
        self.create_user()
        response = self.client.post(
            "/api/user/user-1/achievements", json={"achievement_id": "community-engage"}
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["data"]["points_earned"], 250)

        again = self.client.post(
            "/api/user/user-1/achievements", json={"achievement_id": "community-engage"}
        )
        self.assertEqual(again.status_code, 200)
        stats = self.client.get("/api/user/user-1/stats").json()["data"]
        self.assertEqual(stats["total_points"], 250)

        unknown = self.client.post(
            "/api/user/user-1/achievements", json={"achievement_id": "moon-landing"}
        )
        self.assertEqual(unknown.status_code, 404)

        achievements = self.client.get("/api/user/user-1/achievements").json()["data"]
        self.assertEqual([a["achievement_id"] for a in achievements], ["community-engage"])

    def test_unlock_that_stores_nothing_is_a_conflict(self):
        self.create_user()
        with patch("alumina.routes.grant_achievement", return_value=None):
            response = self.client.post(
                "/api/user/user-1/achievements",
                json={"achievement_id": "community-engage"},
            )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json(), {"detail": "Achievement was not unlocked"})

    def test_supplement_tracking(self):
        self.create_user()
        response = self.client.post(
            "/api/user/user-1/supplements/today",
            json={"supplement_name": "Zinc", "dosage": "30mg", "time_of_day": "evening"},
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["data"]["date"], "2026-03-10")

        bad = self.client.post(
            "/api/user/user-1/supplements/today",
            json={"supplement_name": "Zinc", "time_of_day": "noon"},
        )
        self.assertEqual(bad.status_code, 422)

        doses = self.client.get("/api/user/user-1/supplements/today").json()["data"]
        self.assertEqual([d["supplement_name"] for d in doses], ["Zinc"])

    def test_protocol_timer_lifecycle(self):
        self.create_user()
        self.create_user("user-2", "sam@example.com", "Sam")
        response = self.client.post(
            "/api/user/user-1/timers",
            json={
                "protocol_id": "breathwork",
                "protocol_name": "Box Breathing",
                "duration_seconds": 300,
            },
        )
        self.assertEqual(response.status_code, 201)
        timer = response.json()["data"]
        self.assertFalse(timer["completed"])

        other = self.client.post(f"/api/user/user-2/timers/{timer['id']}/complete")
        self.assertEqual(other.status_code, 404)

        done = self.client.post(f"/api/user/user-1/timers/{timer['id']}/complete")
        self.assertEqual(done.status_code, 200)
        self.assertTrue(done.json()["data"]["completed"])
        self.assertIsNotNone(done.json()["data"]["completed_at"])

    def test_equipment_and_videos_fill_from_catalog(self):
        self.create_user()
        owned = self.client.post("/api/user/user-1/equipment", json={"equipment_id": "5"})
        self.assertEqual(owned.json()["data"]["equipment_name"], "Infrared Sauna")
        self.assertEqual(owned.json()["data"]["tier"], "premium")
        self.client.post("/api/user/user-1/equipment", json={"equipment_id": "5"})
        equipment = self.client.get("/api/user/user-1/equipment").json()["data"]
        self.assertEqual(len(equipment), 1)

        unknown = self.client.post("/api/user/user-1/equipment", json={"equipment_id": "99"})
        self.assertEqual(unknown.status_code, 400)

        watched = self.client.post("/api/user/user-1/videos", json={"video_id": "3"})
        self.assertEqual(watched.json()["data"]["video_title"], "Box Breathing for Beginners")
        self.client.post("/api/user/user-1/videos", json={"video_id": "3"})
        videos = self.client.get("/api/user/user-1/videos").json()["data"]
        self.assertEqual(len(videos), 1)
        self.assertEqual(videos[0]["category"], "breathwork")

    def test_combined_profile_roundtrip(self):
        response = self.client.post(
            "/api/profile/update",
            json={
                "user_id": "legacy-1",
                "email": "jordan@example.com",
                "name": "Jordan",
                "goals": ["sleep"],
                "budget": "premium",
            },
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["data"]["goals"], ["sleep"])
        self.assertEqual(payload["data"]["experience_level"], "beginner")

        fetched = self.client.get("/api/profile/update", params={"userId": "legacy-1"})
        self.assertEqual(fetched.json()["data"]["name"], "Jordan")
        self.assertEqual(fetched.json()["data"]["budget"], "premium")

    def test_combined_profile_errors(self):
        missing = self.client.get("/api/profile/update", params={"userId": "nobody"})
        self.assertEqual(missing.status_code, 404)
        no_id = self.client.post("/api/profile/update", json={"goals": ["sleep"]})
        self.assertEqual(no_id.status_code, 400)
        unknown = self.client.post(
            "/api/profile/update", json={"user_id": "nobody", "goals": ["sleep"]}
        )
        self.assertEqual(unknown.status_code, 404)

    def test_catalog_filters(self):
        self.assertEqual(len(self.client.get("/api/catalog/tasks").json()["data"]), 7)
        self.assertEqual(len(self.client.get("/api/catalog/protocols").json()["data"]), 6)
        advanced = self.client.get(
            "/api/catalog/protocols", params={"category": "advanced"}
        ).json()["data"]
        self.assertEqual([p["protocol_id"] for p in advanced], ["contrast-therapy"])

        premium = self.client.get(
            "/api/catalog/equipment", params={"tier": "premium"}
        ).json()["data"]
        self.assertEqual([e["equipment_id"] for e in premium], ["5", "6"])
        bad_tier = self.client.get("/api/catalog/equipment", params={"tier": "gold"})
        self.assertEqual(bad_tier.status_code, 422)

        videos = self.client.get(
            "/api/catalog/videos", params={"category": "breathwork"}
        ).json()["data"]
        self.assertEqual(len(videos), 1)
        self.assertNotIn("storage_path", videos[0])

        self.assertEqual(
            len(self.client.get("/api/catalog/supplements").json()["data"]), 11
        )
        self.assertEqual(
            len(self.client.get("/api/catalog/achievements").json()["data"]), 9
        )

    def test_video_play_url_uses_storage_client(self):
        response = self.client.get("/api/catalog/videos/2/play-url")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertIn("videos/contrast-shower-technique.mp4", payload["url"])
        self.assertEqual(payload["expires_in"], 3600)

        self.assertEqual(
            self.client.get("/api/catalog/videos/99/play-url").status_code, 404
        )

    def test_database_errors_map_to_500(self):
        broken = MagicMock()
        broken.get_user.side_effect = SQLAlchemyError("connection lost")
        self.app.dependency_overrides[get_db_client] = lambda: broken
        with self.assertLogs("alumina.app", level="ERROR"):
            response = self.client.get("/api/user/user-1")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"detail": "Internal server error"})


if __name__ == "__main__":
    unittest.main()
