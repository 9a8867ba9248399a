"""
Streak, points, level and achievement rules applied when a protocol is completed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time, timedelta
from functools import partial
from typing import Optional

from alumina import catalog
from alumina.db import (
    AchievementRecord,
    CatalogAchievementRecord,
    CompletedTaskRecord,
    DbClient,
    StatsRecord,
)

logger = logging.getLogger(__name__)


@dataclass
class CompletionResult:
    task: CompletedTaskRecord
    created: bool
    stats: StatsRecord
    unlocked: list[AchievementRecord] = field(default_factory=list)


def next_streak(current: int, last_activity: Optional[date], today: date) -> int:
    """Streak value after activity on `today`."""
    if last_activity == today:
        return current
    if last_activity == today - timedelta(days=1):
        return current + 1
    return 1


def level_for_points(points: int, points_per_level: int) -> int:
    if points_per_level <= 0:
        return 1
    return 1 + max(points, 0) // points_per_level


def apply_completion(
    stats, points: int, today: date, points_per_level: int
) -> None:
    """Fold one new completion on `today` into a stats record or row."""
    stats.total_points += points
    stats.total_protocols_completed += 1
    if stats.last_activity_date is None or stats.last_activity_date < today:
        streak = next_streak(stats.current_streak, stats.last_activity_date, today)
        stats.current_streak = streak
        stats.longest_streak = max(stats.longest_streak, streak)
        stats.total_days_active += 1
        stats.last_activity_date = today
    stats.level = level_for_points(stats.total_points, points_per_level)


def _relevel(stats, points_per_level: int) -> None:
    stats.level = level_for_points(stats.total_points, points_per_level)


def ensure_achievement_catalog(db: DbClient) -> int:
    """Insert the built-in achievement definitions that are not stored yet."""
    known = {entry.achievement_id for entry in db.list_catalog_achievements()}
    added = 0
    for definition in catalog.ACHIEVEMENTS:
        if definition.achievement_id in known:
            continue
        db.save_catalog_achievement(
            CatalogAchievementRecord(
                achievement_id=definition.achievement_id,
                title=definition.title,
                description=definition.description,
                icon=definition.icon,
                points=definition.points,
                unlock_criteria=dict(definition.unlock_criteria),
            )
        )
        added += 1
    return added


class _Evaluation:
    """Lazily loaded facts shared by the criteria checks of one completion."""

    def __init__(
        self,
        db: DbClient,
        user_id: str,
        stats: StatsRecord,
        today: date,
        completed_at: Optional[dt_time],
    ):
        self.db = db
        self.user_id = user_id
        self.stats = stats
        self.today = today
        self.completed_at = completed_at
        self._today_task_ids: Optional[set[str]] = None

    def today_task_ids(self) -> set[str]:
        if self._today_task_ids is None:
            self._today_task_ids = {
                t.task_id for t in self.db.get_completed_tasks(self.user_id, self.today)
            }
        return self._today_task_ids

    def satisfied(self, criteria: Optional[dict]) -> bool:
        criteria = criteria or {}
        kind = criteria.get("type")
        if kind == "first_completion":
            return self.stats.total_protocols_completed >= 1
        if kind == "streak":
            return self.stats.current_streak >= int(criteria.get("days", 0))
        if kind == "all_protocols_one_day":
            required = {task.task_id for task in catalog.DAILY_TASKS}
            return required <= self.today_task_ids()
        if kind == "time_based":
            before = criteria.get("before")
            if not before or self.completed_at is None:
                return False
            return self.completed_at < dt_time.fromisoformat(before)
        if kind == "protocol_count":
            protocol = criteria.get("protocol")
            if not protocol:
                return False
            count = self.db.count_completed_tasks(self.user_id, protocol)
            return count >= int(criteria.get("count", 0))
        # community_interaction, bio_age_improvement: unlocked explicitly
        return False


def evaluate_achievements(
    db: DbClient,
    user_id: str,
    stats: StatsRecord,
    today: date,
    completed_at: Optional[dt_time] = None,
    points_per_level: Optional[int] = None,
) -> list[AchievementRecord]:
    """
    Unlock every catalog achievement whose criteria the user now meets. With
    `points_per_level` the level is recomputed in each unlock's transaction.
    """
    relevel = (
        partial(_relevel, points_per_level=points_per_level)
        if points_per_level
        else None
    )
    owned = {a.achievement_id for a in db.get_user_achievements(user_id)}
    evaluation = _Evaluation(db, user_id, stats, today, completed_at)
    unlocked: list[AchievementRecord] = []
    for entry in db.list_catalog_achievements():
        if entry.achievement_id in owned:
            continue
        if not evaluation.satisfied(entry.unlock_criteria):
            continue
        record = db.unlock_achievement(
            AchievementRecord(
                user_id=user_id,
                achievement_id=entry.achievement_id,
                achievement_title=entry.title,
                achievement_description=entry.description,
                points_earned=entry.points,
            ),
            relevel,
        )
        if record:
            logger.info("User %s unlocked %s", user_id, entry.achievement_id)
            unlocked.append(record)
    return unlocked


def complete_task(
    db: DbClient,
    user_id: str,
    *,
    task_id: str,
    task_name: str,
    task_category: Optional[str],
    points: int,
    now: datetime,
    points_per_level: int,
) -> CompletionResult:
    """
    Record a protocol completion and update the user's stats.

    A task counts once per user per day: completing it again returns the
    stored completion with `created=False` and leaves the stats untouched.
    The completion and its stats change commit together or not at all.
    """
    today = now.date()
    task, created, stats = db.record_completion(
        CompletedTaskRecord(
            user_id=user_id,
            task_id=task_id,
            task_name=task_name,
            task_category=task_category,
            points_earned=points,
            date=today,
            completed_at=now.timestamp(),
        ),
        partial(
            apply_completion,
            points=points,
            today=today,
            points_per_level=points_per_level,
        ),
    )
    if not created:
        return CompletionResult(task=task, created=False, stats=stats)

    unlocked = evaluate_achievements(
        db, user_id, stats, today, now.time(), points_per_level
    )
    if unlocked:
        stats = db.get_user_stats(user_id)
    return CompletionResult(task=task, created=True, stats=stats, unlocked=unlocked)


def roll_over_streaks(db: DbClient, today: date) -> int:
    """Zero the current streak of every user with no activity since before yesterday."""
    reset = db.reset_lapsed_streaks(before=today - timedelta(days=1))
    if reset:
        logger.info("Reset %d lapsed streaks for %s", reset, today.isoformat())
    return reset


def grant_achievement(
    db: DbClient, user_id: str, achievement_id: str, points_per_level: int
) -> Optional[AchievementRecord]:
    """
    Unlock a catalog achievement on request. Returns None when the id is not
    in the catalog or the user already holds it.
    """
    entry = next(
        (
            e
            for e in db.list_catalog_achievements()
            if e.achievement_id == achievement_id
        ),
        None,
    )
    if entry is None:
        return None
    record = db.unlock_achievement(
        AchievementRecord(
            user_id=user_id,
            achievement_id=entry.achievement_id,
            achievement_title=entry.title,
            achievement_description=entry.description,
            points_earned=entry.points,
        ),
        partial(_relevel, points_per_level=points_per_level),
    )
    if record:
        logger.info("Granted %s to user %s", achievement_id, user_id)
    return record
