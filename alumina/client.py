"""
Python client for the Alumina API plus the client-side profile and user stores.
"""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds


class ApiError(Exception):
    """Raised for any non-2xx response from the API."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class AluminaApiClient:
    """
    Thin wrapper over a `requests.Session`-compatible object.

    Any object exposing `request(method, url, params=..., json=..., timeout=...)`
    and returning responses with `status_code` and `json()` works, which
    includes FastAPI's `TestClient`.
    """

    def __init__(self, session=None, base_url: str = "", api_prefix: str = "/api"):
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.api_prefix = api_prefix

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> dict:
        url = f"{self.base_url}{self.api_prefix}{path}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        response = self.session.request(
            method, url, params=params or None, json=json, timeout=REQUEST_TIMEOUT
        )
        if not 200 <= response.status_code < 300:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            raise ApiError(response.status_code, detail)
        return response.json()

    def _data(self, method: str, path: str, **kwargs) -> Any:
        return self._request(method, path, **kwargs)["data"]

    def health(self) -> dict:
        return self._request("GET", "/health")

    # Users

    def create_user(self, user_id: str, email: str, name: str) -> dict:
        return self._data(
            "POST", "/users", json={"id": user_id, "email": email, "name": name}
        )

    def get_user(self, user_id: str) -> Optional[dict]:
        return self._data("GET", f"/user/{user_id}")

    def update_user(self, user_id: str, has_completed_onboarding: bool) -> dict:
        return self._data(
            "PATCH",
            f"/user/{user_id}",
            json={"has_completed_onboarding": has_completed_onboarding},
        )

    def get_profile(self, user_id: str) -> Optional[dict]:
        return self._data("GET", f"/user/{user_id}/profile")

    def save_profile(self, user_id: str, **fields) -> dict:
        return self._data("PUT", f"/user/{user_id}/profile", json=fields)

    def get_stats(self, user_id: str) -> dict:
        return self._data("GET", f"/user/{user_id}/stats")

    def update_stats(self, user_id: str, **changes) -> dict:
        return self._data("PUT", f"/user/{user_id}/stats", json=changes)

    # Activity

    def get_metrics(self, user_id: str, days: int = 30) -> list[dict]:
        return self._data("GET", f"/user/{user_id}/metrics", params={"days": days})

    def add_metric(
        self,
        user_id: str,
        energy: int,
        sleep: int,
        mood: int,
        notes: Optional[str] = None,
        on_date: Optional[date] = None,
        protocols_completed: int = 0,
    ) -> dict:
        body = {
            "energy": energy,
            "sleep": sleep,
            "mood": mood,
            "notes": notes,
            "protocols_completed": protocols_completed,
        }
        if on_date:
            body["date"] = on_date.isoformat()
        return self._data("POST", f"/user/{user_id}/metrics", json=body)

    def get_today_tasks(self, user_id: str) -> list[dict]:
        return self._data("GET", f"/user/{user_id}/tasks/today")

    def complete_task(
        self,
        user_id: str,
        task_id: str,
        task_name: Optional[str] = None,
        task_category: Optional[str] = None,
        points_earned: Optional[int] = None,
    ) -> dict:
        """Returns the whole completion payload: data, created, stats, unlocked."""
        body = {
            "task_id": task_id,
            "task_name": task_name,
            "task_category": task_category,
            "points_earned": points_earned,
        }
        return self._request(
            "POST",
            f"/user/{user_id}/tasks/today",
            json={k: v for k, v in body.items() if v is not None},
        )

    def get_task_history(
        self, user_id: str, on_date: Optional[date] = None
    ) -> list[dict]:
        params = {"date": on_date.isoformat() if on_date else None}
        return self._data("GET", f"/user/{user_id}/tasks", params=params)

    def get_achievements(self, user_id: str) -> list[dict]:
        return self._data("GET", f"/user/{user_id}/achievements")

    def unlock_achievement(self, user_id: str, achievement_id: str) -> dict:
        return self._data(
            "POST",
            f"/user/{user_id}/achievements",
            json={"achievement_id": achievement_id},
        )

    def get_today_supplements(self, user_id: str) -> list[dict]:
        return self._data("GET", f"/user/{user_id}/supplements/today")

    def record_supplement(
        self,
        user_id: str,
        supplement_name: str,
        dosage: Optional[str] = None,
        time_of_day: Optional[str] = None,
    ) -> dict:
        return self._data(
            "POST",
            f"/user/{user_id}/supplements/today",
            json={
                "supplement_name": supplement_name,
                "dosage": dosage,
                "time_of_day": time_of_day,
            },
        )

    def start_timer(
        self, user_id: str, protocol_id: str, protocol_name: str, duration_seconds: int
    ) -> dict:
        return self._data(
            "POST",
            f"/user/{user_id}/timers",
            json={
                "protocol_id": protocol_id,
                "protocol_name": protocol_name,
                "duration_seconds": duration_seconds,
            },
        )

    def complete_timer(self, user_id: str, timer_id: int) -> dict:
        return self._data("POST", f"/user/{user_id}/timers/{timer_id}/complete")

    def get_equipment(self, user_id: str) -> list[dict]:
        return self._data("GET", f"/user/{user_id}/equipment")

    def mark_equipment_owned(self, user_id: str, equipment_id: str) -> dict:
        return self._data(
            "POST", f"/user/{user_id}/equipment", json={"equipment_id": equipment_id}
        )

    def get_watched_videos(self, user_id: str) -> list[dict]:
        return self._data("GET", f"/user/{user_id}/videos")

    def mark_video_watched(self, user_id: str, video_id: str) -> dict:
        return self._data(
            "POST", f"/user/{user_id}/videos", json={"video_id": video_id}
        )

    # Combined profile

    def fetch_combined_profile(self, user_id: str) -> dict:
        return self._data("GET", "/profile/update", params={"userId": user_id})

    def save_combined_profile(self, user_id: str, data: dict) -> dict:
        return self._data("POST", "/profile/update", json={**data, "user_id": user_id})

    # Catalog

    def list_daily_tasks(self) -> list[dict]:
        return self._data("GET", "/catalog/tasks")

    def list_protocols(self, category: Optional[str] = None) -> list[dict]:
        return self._data("GET", "/catalog/protocols", params={"category": category})

    def list_equipment(self, tier: Optional[str] = None) -> list[dict]:
        return self._data("GET", "/catalog/equipment", params={"tier": tier})

    def list_videos(self, category: Optional[str] = None) -> list[dict]:
        return self._data("GET", "/catalog/videos", params={"category": category})

    def list_supplement_schedule(self) -> list[dict]:
        return self._data("GET", "/catalog/supplements")

    def list_achievement_catalog(self) -> list[dict]:
        return self._data("GET", "/catalog/achievements")

    def video_play_url(self, video_id: str) -> dict:
        return self._request("GET", f"/catalog/videos/{video_id}/play-url")


class ProfileState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    EDITING = "editing"
    SAVING = "saving"
    ERROR = "error"


class ProfileEvent(str, Enum):
    FETCH = "FETCH"
    EDIT = "EDIT"
    SAVE = "SAVE"
    CANCEL = "CANCEL"


class ProfileSession:
    """
    Fetch/edit/save lifecycle of the combined profile.

    `send` drives the machine one event at a time. Loading and saving call the
    API synchronously, so `send` always returns in a resting state (idle,
    editing or error). Events the current state does not accept are ignored.
    """

    def __init__(self, api: AluminaApiClient, user_id: str):
        self.api = api
        self.user_id = user_id
        self.state = ProfileState.IDLE
        self.profile: Optional[dict] = None
        self.edited_profile: Optional[dict] = None
        self.error: Optional[str] = None

    def send(self, event: ProfileEvent, data: Optional[dict] = None) -> ProfileState:
        event = ProfileEvent(event)
        if event is ProfileEvent.FETCH:
            if self.state in (ProfileState.IDLE, ProfileState.ERROR):
                self._fetch()
        elif event is ProfileEvent.EDIT:
            if self.state in (ProfileState.IDLE, ProfileState.ERROR):
                self.error = None
                self.edited_profile = {**(self.profile or {}), **(data or {})}
                self.state = ProfileState.EDITING
            elif self.state is ProfileState.EDITING:
                self.edited_profile = {**(self.edited_profile or {}), **(data or {})}
        elif event is ProfileEvent.SAVE:
            if self.state is ProfileState.EDITING:
                self._save()
        elif event is ProfileEvent.CANCEL:
            if self.state is ProfileState.EDITING:
                self.edited_profile = None
                self.error = None
                self.state = ProfileState.IDLE
        return self.state

    def _fetch(self) -> None:
        self.state = ProfileState.LOADING
        try:
            self.profile = self.api.fetch_combined_profile(self.user_id)
        except ApiError as exc:
            logger.warning("Failed to load profile for %s: %s", self.user_id, exc)
            self.error = str(exc.detail or "Failed to load profile")
            self.state = ProfileState.ERROR
            return
        self.error = None
        self.state = ProfileState.IDLE

    def _save(self) -> None:
        self.state = ProfileState.SAVING
        changes = {
            k: v
            for k, v in (self.edited_profile or {}).items()
            if k not in ("id", "created_at", "updated_at")
        }
        try:
            self.profile = self.api.save_combined_profile(self.user_id, changes)
        except ApiError as exc:
            logger.warning("Failed to save profile for %s: %s", self.user_id, exc)
            self.error = str(exc.detail or "Failed to save profile")
            self.state = ProfileState.ERROR
            return
        self.edited_profile = None
        self.error = None
        self.state = ProfileState.IDLE


class UserDataStore:
    """Client-side snapshot of the signed-in user's data."""

    def __init__(self, api: AluminaApiClient, points_per_task: int = 10):
        self.api = api
        self.points_per_task = points_per_task
        self.logout()

    def logout(self) -> None:
        self.user_id: Optional[str] = None
        self.is_authenticated = False
        self.has_completed_onboarding = False
        self.user: Optional[dict] = None
        self.current_streak = 0
        self.longest_streak = 0
        self.total_points = 0
        self.level = 1
        self.completed_tasks_today: list[str] = []

    def login(self, user_id: str) -> None:
        user = self.api.get_user(user_id)
        if not user:
            raise ApiError(404, "User not found")
        self._load(user_id, user)
        self.user_id = user_id
        self.is_authenticated = True

    def load_user_data(self) -> bool:
        """Re-sync profile, stats and today's completions from the server."""
        if not self.user_id:
            return False
        try:
            user = self.api.get_user(self.user_id)
            if not user:
                raise ApiError(404, "User not found")
            self._load(self.user_id, user)
        except (ApiError, requests.RequestException) as exc:
            logger.warning("Failed to load data for %s: %s", self.user_id, exc)
            return False
        return True

    def _load(self, user_id: str, user: dict) -> None:
        profile = self.api.get_profile(user_id) or {}
        stats = self.api.get_stats(user_id)
        tasks = self.api.get_today_tasks(user_id)

        self.has_completed_onboarding = user["has_completed_onboarding"]
        self.user = {
            "name": user["name"],
            "email": user["email"],
            "goals": profile.get("goals", []),
            "experience_level": profile.get("experience_level", "beginner"),
            "available_time": profile.get("available_time", 0),
            "health_conditions": profile.get("health_conditions", []),
            "budget": profile.get("budget", "essential"),
        }
        self._apply_stats(stats)
        self.completed_tasks_today = [t["task_id"] for t in tasks]

    def _apply_stats(self, stats: dict) -> None:
        self.current_streak = stats["current_streak"]
        self.longest_streak = stats["longest_streak"]
        self.total_points = stats["total_points"]
        self.level = stats["level"]

    def refresh_stats(self) -> None:
        if not self.user_id:
            return
        try:
            self._apply_stats(self.api.get_stats(self.user_id))
        except ApiError as exc:
            logger.warning("Failed to refresh stats for %s: %s", self.user_id, exc)

    def toggle_task(
        self, task_id: str, task_name: str, category: Optional[str] = None
    ) -> bool:
        """
        Complete a task optimistically, or un-toggle it locally.

        Returns False when the server rejected the completion and the local
        change was rolled back.
        """
        if not self.user_id:
            return False
        if task_id in self.completed_tasks_today:
            # Completions are never deleted server side.
            self.completed_tasks_today.remove(task_id)
            return True

        previous_points = self.total_points
        self.completed_tasks_today.append(task_id)
        self.total_points += self.points_per_task
        try:
            result = self.api.complete_task(
                self.user_id,
                task_id,
                task_name=task_name,
                task_category=category,
                points_earned=self.points_per_task,
            )
        except (ApiError, requests.RequestException) as exc:
            logger.warning("Task %s completion failed: %s", task_id, exc)
            self.completed_tasks_today.remove(task_id)
            self.total_points = previous_points
            self.refresh_stats()
            return False
        self._apply_stats(result["stats"])
        return True

    def complete_onboarding(self, profile: dict) -> dict:
        if not self.user_id:
            raise ApiError(400, "User ID is required")
        self.api.update_user(self.user_id, True)
        combined = self.api.save_combined_profile(self.user_id, profile)
        self.has_completed_onboarding = True
        self.user = {
            k: v for k, v in combined.items() if k not in ("id", "created_at", "updated_at")
        }
        return combined
