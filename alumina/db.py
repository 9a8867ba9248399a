"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import itertools
import threading
import time
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date
from typing import Any, Callable, Dict, Optional, Protocol

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    case,
    create_engine,
    event,
    func,
    select,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

PROFILE_FIELDS = (
    "goals",
    "experience_level",
    "available_time",
    "health_conditions",
    "budget",
)

STATS_FIELDS = (
    "current_streak",
    "longest_streak",
    "total_points",
    "level",
    "last_activity_date",
    "total_protocols_completed",
    "total_days_active",
)

HISTORY_LIMIT = 100

# Receives a StatsRecord or a locked StatsRow and mutates it in place.
StatsCallback = Callable[[Any], None]


class ConflictError(ValueError):
    """Raised when a write collides with a unique constraint."""


@dataclass
class UserRecord:
    id: str
    email: str
    name: str
    has_completed_onboarding: bool = False
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())
    last_login_at: Optional[float] = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class ProfileRecord:
    user_id: str
    goals: list[str] = field(default_factory=list)
    experience_level: str = "beginner"
    available_time: int = 0
    health_conditions: list[str] = field(default_factory=list)
    budget: str = "essential"
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class StatsRecord:
    user_id: str
    current_streak: int = 0
    longest_streak: int = 0
    total_points: int = 0
    level: int = 1
    last_activity_date: Optional[date] = None
    total_protocols_completed: int = 0
    total_days_active: int = 0
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class DailyMetricRecord:
    user_id: str
    date: date
    energy: Optional[int] = None
    sleep: Optional[int] = None
    mood: Optional[int] = None
    notes: Optional[str] = None
    protocols_completed: int = 0
    id: Optional[int] = None
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class CompletedTaskRecord:
    user_id: str
    task_id: str
    task_name: str
    date: date
    task_category: Optional[str] = None
    points_earned: int = 10
    id: Optional[int] = None
    completed_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class AchievementRecord:
    user_id: str
    achievement_id: str
    achievement_title: str
    achievement_description: Optional[str] = None
    points_earned: int = 0
    id: Optional[int] = None
    unlocked_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class CatalogAchievementRecord:
    achievement_id: str
    title: str
    description: str
    icon: Optional[str] = None
    points: int = 0
    unlock_criteria: Optional[dict] = None
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class SupplementRecord:
    user_id: str
    supplement_name: str
    date: date
    dosage: Optional[str] = None
    time_of_day: Optional[str] = None
    id: Optional[int] = None
    taken_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class TimerRecord:
    user_id: str
    protocol_id: str
    protocol_name: str
    duration_seconds: int
    completed: bool = False
    id: Optional[int] = None
    started_at: float = field(default_factory=lambda: time.time())
    completed_at: Optional[float] = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class EquipmentRecord:
    user_id: str
    equipment_id: str
    equipment_name: str
    tier: Optional[str] = None
    id: Optional[int] = None
    marked_owned_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class VideoProgressRecord:
    user_id: str
    video_id: str
    video_title: str
    category: Optional[str] = None
    id: Optional[int] = None
    watched_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class CombinedProfile:
    """User row merged with its onboarding profile."""

    id: str
    email: str
    name: str
    goals: list[str]
    experience_level: str
    available_time: int
    health_conditions: list[str]
    budget: str
    created_at: float
    updated_at: float

    def as_dict(self) -> dict:
        return asdict(self)


class DbClient(Protocol):
    """Interface for database access."""

    def create_user(self, user_id: str, email: str, name: str) -> UserRecord:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def update_user_onboarding(
        self, user_id: str, completed: bool
    ) -> Optional[UserRecord]:
        ...

    def upsert_user_profile(self, user_id: str, profile: dict) -> ProfileRecord:
        ...

    def get_user_profile(self, user_id: str) -> Optional[ProfileRecord]:
        ...

    def get_user_stats(self, user_id: str) -> StatsRecord:
        ...

    def update_user_stats(self, user_id: str, changes: dict) -> StatsRecord:
        ...

    def increment_streak(self, user_id: str, today: date) -> StatsRecord:
        ...

    def add_points(self, user_id: str, points: int) -> StatsRecord:
        ...

    def reset_lapsed_streaks(self, before: date) -> int:
        ...

    def add_daily_metric(self, metric: DailyMetricRecord) -> DailyMetricRecord:
        ...

    def get_daily_metrics(
        self, user_id: str, limit: int = 30
    ) -> list[DailyMetricRecord]:
        ...

    def add_completed_task(
        self, task: CompletedTaskRecord
    ) -> tuple[CompletedTaskRecord, bool]:
        ...

    def get_completed_tasks(
        self, user_id: str, on_date: Optional[date] = None
    ) -> list[CompletedTaskRecord]:
        ...

    def count_completed_tasks(
        self, user_id: str, task_id: Optional[str] = None
    ) -> int:
        ...

    def record_completion(
        self, task: CompletedTaskRecord, apply_stats: StatsCallback
    ) -> tuple[CompletedTaskRecord, bool, StatsRecord]:
        """
        Store a completion and let `apply_stats` mutate the user's stats in
        the same transaction. A duplicate leaves both untouched.
        """
        ...

    def unlock_achievement(
        self,
        achievement: AchievementRecord,
        apply_stats: Optional[StatsCallback] = None,
    ) -> Optional[AchievementRecord]:
        ...

    def get_user_achievements(self, user_id: str) -> list[AchievementRecord]:
        ...

    def save_catalog_achievement(self, entry: CatalogAchievementRecord) -> None:
        ...

    def list_catalog_achievements(self) -> list[CatalogAchievementRecord]:
        ...

    def add_supplement_tracking(self, record: SupplementRecord) -> SupplementRecord:
        ...

    def get_supplements_for_date(
        self, user_id: str, on_date: date
    ) -> list[SupplementRecord]:
        ...

    def start_protocol_timer(self, timer: TimerRecord) -> TimerRecord:
        ...

    def complete_protocol_timer(
        self, user_id: str, timer_id: int
    ) -> Optional[TimerRecord]:
        ...

    def mark_equipment_owned(self, record: EquipmentRecord) -> EquipmentRecord:
        ...

    def get_user_equipment(self, user_id: str) -> list[EquipmentRecord]:
        ...

    def mark_video_watched(
        self, record: VideoProgressRecord
    ) -> VideoProgressRecord:
        ...

    def get_watched_videos(self, user_id: str) -> list[VideoProgressRecord]:
        ...


def _apply_changes(record, changes: dict, allowed: tuple[str, ...]) -> None:
    for key in allowed:
        if key in changes and changes[key] is not None:
            setattr(record, key, changes[key])


def _newest_first(records: list, attr: str) -> list:
    return sorted(
        records, key=lambda r: (getattr(r, attr), r.id or 0), reverse=True
    )


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.profiles: Dict[str, ProfileRecord] = {}
        self.stats: Dict[str, StatsRecord] = {}
        self.metrics: Dict[tuple[str, date], DailyMetricRecord] = {}
        self.tasks: Dict[tuple[str, str, date], CompletedTaskRecord] = {}
        self.achievements: Dict[tuple[str, str], AchievementRecord] = {}
        self.catalog: Dict[str, CatalogAchievementRecord] = {}
        self.supplements: list[SupplementRecord] = []
        self.timers: Dict[int, TimerRecord] = {}
        self.equipment: Dict[tuple[str, str], EquipmentRecord] = {}
        self.videos: Dict[tuple[str, str], VideoProgressRecord] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.profiles.clear()
        self.stats.clear()
        self.metrics.clear()
        self.tasks.clear()
        self.achievements.clear()
        self.catalog.clear()
        self.supplements.clear()
        self.timers.clear()
        self.equipment.clear()
        self.videos.clear()

    def create_user(self, user_id: str, email: str, name: str) -> UserRecord:
        existing = self.users.get(user_id)
        if existing:
            existing.last_login_at = time.time()
            return replace(existing)
        if any(u.email == email for u in self.users.values()):
            raise ConflictError(f"Email already registered: {email}")
        record = UserRecord(id=user_id, email=email, name=name)
        self.users[user_id] = record
        return replace(record)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        record = self.users.get(user_id)
        return replace(record) if record else None

    def update_user_onboarding(
        self, user_id: str, completed: bool
    ) -> Optional[UserRecord]:
        record = self.users.get(user_id)
        if not record:
            return None
        record.has_completed_onboarding = completed
        record.updated_at = time.time()
        return replace(record)

    def upsert_user_profile(self, user_id: str, profile: dict) -> ProfileRecord:
        record = self.profiles.get(user_id)
        if not record:
            record = ProfileRecord(user_id=user_id)
            self.profiles[user_id] = record
        _apply_changes(record, profile, PROFILE_FIELDS)
        record.updated_at = time.time()
        return replace(record)

    def get_user_profile(self, user_id: str) -> Optional[ProfileRecord]:
        record = self.profiles.get(user_id)
        return replace(record) if record else None

    def _stats(self, user_id: str) -> StatsRecord:
        record = self.stats.get(user_id)
        if not record:
            record = StatsRecord(user_id=user_id)
            self.stats[user_id] = record
        return record

    def get_user_stats(self, user_id: str) -> StatsRecord:
        return replace(self._stats(user_id))

    def update_user_stats(self, user_id: str, changes: dict) -> StatsRecord:
        record = self._stats(user_id)
        _apply_changes(record, changes, STATS_FIELDS)
        record.updated_at = time.time()
        return replace(record)

    def increment_streak(self, user_id: str, today: date) -> StatsRecord:
        with self._lock:
            record = self._stats(user_id)
            record.current_streak += 1
            record.longest_streak = max(record.longest_streak, record.current_streak)
            record.last_activity_date = today
            record.updated_at = time.time()
            return replace(record)

    def add_points(self, user_id: str, points: int) -> StatsRecord:
        with self._lock:
            record = self._stats(user_id)
            record.total_points += points
            record.updated_at = time.time()
            return replace(record)

    def reset_lapsed_streaks(self, before: date) -> int:
        now = time.time()
        reset = 0
        for record in self.stats.values():
            if (
                record.current_streak > 0
                and record.last_activity_date is not None
                and record.last_activity_date < before
            ):
                record.current_streak = 0
                record.updated_at = now
                reset += 1
        return reset

    def add_daily_metric(self, metric: DailyMetricRecord) -> DailyMetricRecord:
        key = (metric.user_id, metric.date)
        existing = self.metrics.get(key)
        if existing:
            existing.energy = metric.energy
            existing.sleep = metric.sleep
            existing.mood = metric.mood
            existing.notes = metric.notes
            existing.protocols_completed = metric.protocols_completed
            return replace(existing)
        record = replace(metric, id=next(self._ids))
        self.metrics[key] = record
        return replace(record)

    def get_daily_metrics(
        self, user_id: str, limit: int = 30
    ) -> list[DailyMetricRecord]:
        items = [m for m in self.metrics.values() if m.user_id == user_id]
        items.sort(key=lambda m: m.date, reverse=True)
        return [replace(m) for m in items[:limit]]

    def add_completed_task(
        self, task: CompletedTaskRecord
    ) -> tuple[CompletedTaskRecord, bool]:
        key = (task.user_id, task.task_id, task.date)
        existing = self.tasks.get(key)
        if existing:
            return replace(existing), False
        record = replace(task, id=next(self._ids))
        self.tasks[key] = record
        return replace(record), True

    def get_completed_tasks(
        self, user_id: str, on_date: Optional[date] = None
    ) -> list[CompletedTaskRecord]:
        items = [
            t
            for t in self.tasks.values()
            if t.user_id == user_id and (on_date is None or t.date == on_date)
        ]
        items = _newest_first(items, "completed_at")
        if on_date is None:
            items = items[:HISTORY_LIMIT]
        return [replace(t) for t in items]

    def count_completed_tasks(
        self, user_id: str, task_id: Optional[str] = None
    ) -> int:
        return sum(
            1
            for t in self.tasks.values()
            if t.user_id == user_id and (task_id is None or t.task_id == task_id)
        )

    def record_completion(
        self, task: CompletedTaskRecord, apply_stats: StatsCallback
    ) -> tuple[CompletedTaskRecord, bool, StatsRecord]:
        key = (task.user_id, task.task_id, task.date)
        with self._lock:
            stats = self._stats(task.user_id)
            existing = self.tasks.get(key)
            if existing:
                return replace(existing), False, replace(stats)
            # Mutate a copy so a failing callback stores nothing.
            updated = replace(stats)
            apply_stats(updated)
            updated.updated_at = time.time()
            record = replace(task, id=next(self._ids))
            self.tasks[key] = record
            self.stats[task.user_id] = updated
            return replace(record), True, replace(updated)

    def unlock_achievement(
        self,
        achievement: AchievementRecord,
        apply_stats: Optional[StatsCallback] = None,
    ) -> Optional[AchievementRecord]:
        key = (achievement.user_id, achievement.achievement_id)
        with self._lock:
            if key in self.achievements:
                return None
            updated = replace(self._stats(achievement.user_id))
            updated.total_points += achievement.points_earned or 0
            if apply_stats:
                apply_stats(updated)
            updated.updated_at = time.time()
            record = replace(achievement, id=next(self._ids))
            self.achievements[key] = record
            self.stats[achievement.user_id] = updated
            return replace(record)

    def get_user_achievements(self, user_id: str) -> list[AchievementRecord]:
        items = [a for a in self.achievements.values() if a.user_id == user_id]
        return [replace(a) for a in _newest_first(items, "unlocked_at")]

    def save_catalog_achievement(self, entry: CatalogAchievementRecord) -> None:
        self.catalog.setdefault(entry.achievement_id, replace(entry))

    def list_catalog_achievements(self) -> list[CatalogAchievementRecord]:
        return [replace(entry) for entry in self.catalog.values()]

    def add_supplement_tracking(self, record: SupplementRecord) -> SupplementRecord:
        stored = replace(record, id=next(self._ids))
        self.supplements.append(stored)
        return replace(stored)

    def get_supplements_for_date(
        self, user_id: str, on_date: date
    ) -> list[SupplementRecord]:
        items = [
            s for s in self.supplements if s.user_id == user_id and s.date == on_date
        ]
        return [replace(s) for s in _newest_first(items, "taken_at")]

    def start_protocol_timer(self, timer: TimerRecord) -> TimerRecord:
        stored = replace(timer, id=next(self._ids))
        self.timers[stored.id] = stored
        return replace(stored)

    def complete_protocol_timer(
        self, user_id: str, timer_id: int
    ) -> Optional[TimerRecord]:
        timer = self.timers.get(timer_id)
        if not timer or timer.user_id != user_id:
            return None
        timer.completed = True
        timer.completed_at = time.time()
        return replace(timer)

    def mark_equipment_owned(self, record: EquipmentRecord) -> EquipmentRecord:
        key = (record.user_id, record.equipment_id)
        existing = self.equipment.get(key)
        if existing:
            return replace(existing)
        stored = replace(record, id=next(self._ids))
        self.equipment[key] = stored
        return replace(stored)

    def get_user_equipment(self, user_id: str) -> list[EquipmentRecord]:
        items = [e for e in self.equipment.values() if e.user_id == user_id]
        return [replace(e) for e in _newest_first(items, "marked_owned_at")]

    def mark_video_watched(
        self, record: VideoProgressRecord
    ) -> VideoProgressRecord:
        key = (record.user_id, record.video_id)
        existing = self.videos.get(key)
        if existing:
            existing.watched_at = time.time()
            return replace(existing)
        stored = replace(record, id=next(self._ids))
        self.videos[key] = stored
        return replace(stored)

    def get_watched_videos(self, user_id: str) -> list[VideoProgressRecord]:
        items = [v for v in self.videos.values() if v.user_id == user_id]
        return [replace(v) for v in _newest_first(items, "watched_at")]


def _begin_immediate(engine) -> None:
    """
    Start every SQLite transaction with the database write lock held.
    SQLite ignores FOR UPDATE, so this is what serializes stats writes.
    """

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection, otherwise every thread sees an empty db.
            self.engine = create_engine(
                database_url,
                future=True,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                database_url,
                future=True,
                pool_pre_ping=True,
                pool_recycle=1800,
            )
        if self.engine.dialect.name == "sqlite":
            _begin_immediate(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _to_record(row, record_cls):
        return record_cls(**{f.name: getattr(row, f.name) for f in fields(record_cls)})

    @staticmethod
    def _to_row(record, row_cls):
        values = asdict(record)
        if values.get("id") is None:
            values.pop("id", None)
        return row_cls(**values)

    def create_user(self, user_id: str, email: str, name: str) -> UserRecord:
        now = time.time()
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if row:
                row.last_login_at = now
            else:
                row = UserRow(
                    id=user_id,
                    email=email,
                    name=name,
                    has_completed_onboarding=False,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError(f"Email already registered: {email}") from exc
            return self._to_record(row, UserRecord)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            return self._to_record(row, UserRecord)

    def update_user_onboarding(
        self, user_id: str, completed: bool
    ) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            if not row:
                return None
            row.has_completed_onboarding = completed
            row.updated_at = time.time()
            session.commit()
            return self._to_record(row, UserRecord)

    def upsert_user_profile(self, user_id: str, profile: dict) -> ProfileRecord:
        with self.Session() as session:
            row = session.get(ProfileRow, user_id)
            if not row:
                row = self._to_row(ProfileRecord(user_id=user_id), ProfileRow)
                session.add(row)
            _apply_changes(row, profile, PROFILE_FIELDS)
            row.updated_at = time.time()
            session.commit()
            return self._to_record(row, ProfileRecord)

    def get_user_profile(self, user_id: str) -> Optional[ProfileRecord]:
        with self.Session() as session:
            row = session.get(ProfileRow, user_id)
            if not row:
                return None
            return self._to_record(row, ProfileRecord)

    def _insert_ignore(self, row_cls, values: dict):
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            return postgresql.insert(row_cls).values(**values).on_conflict_do_nothing()
        if dialect == "sqlite":
            return sqlite.insert(row_cls).values(**values).on_conflict_do_nothing()
        raise ValueError(f"Unsupported database dialect: {dialect}")

    def _stats_row(
        self, session: Session, user_id: str, lock: bool = False
    ) -> "StatsRow":
        """Load the stats row, creating it first if no request has yet."""
        row = session.get(StatsRow, user_id, with_for_update=lock)
        if row is None:
            session.execute(
                self._insert_ignore(StatsRow, asdict(StatsRecord(user_id=user_id)))
            )
            row = session.get(
                StatsRow, user_id, with_for_update=lock, populate_existing=True
            )
        return row

    def get_user_stats(self, user_id: str) -> StatsRecord:
        with self.Session() as session:
            row = self._stats_row(session, user_id)
            session.commit()
            return self._to_record(row, StatsRecord)

    def update_user_stats(self, user_id: str, changes: dict) -> StatsRecord:
        with self.Session() as session:
            row = self._stats_row(session, user_id, lock=True)
            _apply_changes(row, changes, STATS_FIELDS)
            row.updated_at = time.time()
            session.commit()
            return self._to_record(row, StatsRecord)

    def _update_stats(self, user_id: str, **values) -> StatsRecord:
        """Apply SQL-side stats expressions so concurrent callers never overwrite."""
        with self.Session() as session:
            self._stats_row(session, user_id)
            session.execute(
                update(StatsRow)
                .where(StatsRow.user_id == user_id)
                .values(updated_at=time.time(), **values)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            row = session.get(StatsRow, user_id, populate_existing=True)
            return self._to_record(row, StatsRecord)

    def increment_streak(self, user_id: str, today: date) -> StatsRecord:
        return self._update_stats(
            user_id,
            current_streak=StatsRow.current_streak + 1,
            longest_streak=case(
                (
                    StatsRow.longest_streak > StatsRow.current_streak,
                    StatsRow.longest_streak,
                ),
                else_=StatsRow.current_streak + 1,
            ),
            last_activity_date=today,
        )

    def add_points(self, user_id: str, points: int) -> StatsRecord:
        return self._update_stats(
            user_id, total_points=StatsRow.total_points + points
        )

    def reset_lapsed_streaks(self, before: date) -> int:
        with self.Session() as session:
            updated = (
                session.query(StatsRow)
                .filter(
                    StatsRow.current_streak > 0,
                    StatsRow.last_activity_date != None,  # noqa: E711
                    StatsRow.last_activity_date < before,
                )
                .update(
                    {
                        StatsRow.current_streak: 0,
                        StatsRow.updated_at: time.time(),
                    },
                    synchronize_session=False,
                )
            )
            session.commit()
            return updated or 0

    def add_daily_metric(self, metric: DailyMetricRecord) -> DailyMetricRecord:
        with self.Session() as session:
            stmt = select(DailyMetricRow).where(
                DailyMetricRow.user_id == metric.user_id,
                DailyMetricRow.date == metric.date,
            )
            row = session.execute(stmt).scalar_one_or_none()
            if row:
                row.energy = metric.energy
                row.sleep = metric.sleep
                row.mood = metric.mood
                row.notes = metric.notes
                row.protocols_completed = metric.protocols_completed
            else:
                row = self._to_row(metric, DailyMetricRow)
                session.add(row)
            session.commit()
            return self._to_record(row, DailyMetricRecord)

    def get_daily_metrics(
        self, user_id: str, limit: int = 30
    ) -> list[DailyMetricRecord]:
        with self.Session() as session:
            stmt = (
                select(DailyMetricRow)
                .where(DailyMetricRow.user_id == user_id)
                .order_by(DailyMetricRow.date.desc())
                .limit(limit)
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_record(row, DailyMetricRecord) for row in rows]

    def _find_task(
        self, session: Session, task: CompletedTaskRecord
    ) -> Optional["CompletedTaskRow"]:
        stmt = select(CompletedTaskRow).where(
            CompletedTaskRow.user_id == task.user_id,
            CompletedTaskRow.task_id == task.task_id,
            CompletedTaskRow.date == task.date,
        )
        return session.execute(stmt).scalar_one_or_none()

    def add_completed_task(
        self, task: CompletedTaskRecord
    ) -> tuple[CompletedTaskRecord, bool]:
        with self.Session() as session:
            existing = self._find_task(session, task)
            if existing:
                return self._to_record(existing, CompletedTaskRecord), False
            row = self._to_row(task, CompletedTaskRow)
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                # Lost a race against a concurrent completion of the same task.
                session.rollback()
                existing = self._find_task(session, task)
                if not existing:
                    raise
                return self._to_record(existing, CompletedTaskRecord), False
            return self._to_record(row, CompletedTaskRecord), True

    def get_completed_tasks(
        self, user_id: str, on_date: Optional[date] = None
    ) -> list[CompletedTaskRecord]:
        with self.Session() as session:
            stmt = select(CompletedTaskRow).where(CompletedTaskRow.user_id == user_id)
            if on_date is not None:
                stmt = stmt.where(CompletedTaskRow.date == on_date)
            stmt = stmt.order_by(
                CompletedTaskRow.completed_at.desc(), CompletedTaskRow.id.desc()
            )
            if on_date is None:
                stmt = stmt.limit(HISTORY_LIMIT)
            rows = session.execute(stmt).scalars().all()
            return [self._to_record(row, CompletedTaskRecord) for row in rows]

    def count_completed_tasks(
        self, user_id: str, task_id: Optional[str] = None
    ) -> int:
        with self.Session() as session:
            stmt = select(func.count(CompletedTaskRow.id)).where(
                CompletedTaskRow.user_id == user_id
            )
            if task_id is not None:
                stmt = stmt.where(CompletedTaskRow.task_id == task_id)
            return session.execute(stmt).scalar_one()

    def record_completion(
        self, task: CompletedTaskRecord, apply_stats: StatsCallback
    ) -> tuple[CompletedTaskRecord, bool, StatsRecord]:
        with self.Session() as session:
            stats = self._stats_row(session, task.user_id, lock=True)
            existing = self._find_task(session, task)
            if existing:
                session.commit()
                return (
                    self._to_record(existing, CompletedTaskRecord),
                    False,
                    self._to_record(stats, StatsRecord),
                )
            row = self._to_row(task, CompletedTaskRow)
            session.add(row)
            apply_stats(stats)
            stats.updated_at = time.time()
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                existing = self._find_task(session, task)
                if not existing:
                    raise
                stats = session.get(StatsRow, task.user_id, populate_existing=True)
                return (
                    self._to_record(existing, CompletedTaskRecord),
                    False,
                    self._to_record(stats, StatsRecord),
                )
            return (
                self._to_record(row, CompletedTaskRecord),
                True,
                self._to_record(stats, StatsRecord),
            )

    def unlock_achievement(
        self,
        achievement: AchievementRecord,
        apply_stats: Optional[StatsCallback] = None,
    ) -> Optional[AchievementRecord]:
        with self.Session() as session:
            stats = self._stats_row(session, achievement.user_id, lock=True)
            stmt = select(AchievementRow).where(
                AchievementRow.user_id == achievement.user_id,
                AchievementRow.achievement_id == achievement.achievement_id,
            )
            if session.execute(stmt).scalar_one_or_none():
                session.commit()
                return None
            row = self._to_row(achievement, AchievementRow)
            session.add(row)
            stats.total_points += achievement.points_earned or 0
            if apply_stats:
                apply_stats(stats)
            stats.updated_at = time.time()
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                if session.execute(stmt).scalar_one_or_none():
                    return None
                raise
            return self._to_record(row, AchievementRecord)

    def get_user_achievements(self, user_id: str) -> list[AchievementRecord]:
        with self.Session() as session:
            stmt = (
                select(AchievementRow)
                .where(AchievementRow.user_id == user_id)
                .order_by(AchievementRow.unlocked_at.desc(), AchievementRow.id.desc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_record(row, AchievementRecord) for row in rows]

    def save_catalog_achievement(self, entry: CatalogAchievementRecord) -> None:
        with self.Session() as session:
            if session.get(CatalogAchievementRow, entry.achievement_id):
                return
            session.add(self._to_row(entry, CatalogAchievementRow))
            session.commit()

    def list_catalog_achievements(self) -> list[CatalogAchievementRecord]:
        with self.Session() as session:
            stmt = select(CatalogAchievementRow).order_by(
                CatalogAchievementRow.created_at.asc()
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_record(row, CatalogAchievementRecord) for row in rows]

    def add_supplement_tracking(self, record: SupplementRecord) -> SupplementRecord:
        with self.Session() as session:
            row = self._to_row(record, SupplementRow)
            session.add(row)
            session.commit()
            return self._to_record(row, SupplementRecord)

    def get_supplements_for_date(
        self, user_id: str, on_date: date
    ) -> list[SupplementRecord]:
        with self.Session() as session:
            stmt = (
                select(SupplementRow)
                .where(SupplementRow.user_id == user_id, SupplementRow.date == on_date)
                .order_by(SupplementRow.taken_at.desc(), SupplementRow.id.desc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_record(row, SupplementRecord) for row in rows]

    def start_protocol_timer(self, timer: TimerRecord) -> TimerRecord:
        with self.Session() as session:
            row = self._to_row(timer, TimerRow)
            session.add(row)
            session.commit()
            return self._to_record(row, TimerRecord)

    def complete_protocol_timer(
        self, user_id: str, timer_id: int
    ) -> Optional[TimerRecord]:
        with self.Session() as session:
            row = session.get(TimerRow, timer_id)
            if not row or row.user_id != user_id:
                return None
            row.completed = True
            row.completed_at = time.time()
            session.commit()
            return self._to_record(row, TimerRecord)

    def mark_equipment_owned(self, record: EquipmentRecord) -> EquipmentRecord:
        with self.Session() as session:
            stmt = select(EquipmentRow).where(
                EquipmentRow.user_id == record.user_id,
                EquipmentRow.equipment_id == record.equipment_id,
            )
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                row = self._to_row(record, EquipmentRow)
                session.add(row)
                session.commit()
            return self._to_record(row, EquipmentRecord)

    def get_user_equipment(self, user_id: str) -> list[EquipmentRecord]:
        with self.Session() as session:
            stmt = (
                select(EquipmentRow)
                .where(EquipmentRow.user_id == user_id)
                .order_by(EquipmentRow.marked_owned_at.desc(), EquipmentRow.id.desc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_record(row, EquipmentRecord) for row in rows]

    def mark_video_watched(
        self, record: VideoProgressRecord
    ) -> VideoProgressRecord:
        with self.Session() as session:
            stmt = select(VideoProgressRow).where(
                VideoProgressRow.user_id == record.user_id,
                VideoProgressRow.video_id == record.video_id,
            )
            row = session.execute(stmt).scalar_one_or_none()
            if row:
                row.watched_at = time.time()
            else:
                row = self._to_row(record, VideoProgressRow)
                session.add(row)
            session.commit()
            return self._to_record(row, VideoProgressRecord)

    def get_watched_videos(self, user_id: str) -> list[VideoProgressRecord]:
        with self.Session() as session:
            stmt = (
                select(VideoProgressRow)
                .where(VideoProgressRow.user_id == user_id)
                .order_by(VideoProgressRow.watched_at.desc(), VideoProgressRow.id.desc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_record(row, VideoProgressRecord) for row in rows]


def get_profile(db: DbClient, user_id: str) -> Optional[CombinedProfile]:
    """Return the user merged with its profile, or None for unknown users."""
    user = db.get_user(user_id)
    if not user:
        return None
    profile = db.get_user_profile(user_id)
    return CombinedProfile(
        id=user.id,
        email=user.email,
        name=user.name,
        goals=list(profile.goals) if profile else [],
        experience_level=profile.experience_level if profile else "beginner",
        available_time=profile.available_time if profile else 0,
        health_conditions=list(profile.health_conditions) if profile else [],
        budget=profile.budget if profile else "essential",
        created_at=user.created_at,
        updated_at=profile.updated_at if profile else user.updated_at,
    )


def upsert_profile(db: DbClient, user_id: str, data: dict) -> Optional[CombinedProfile]:
    """
    Create the user when email and name are given, update whichever profile
    fields are present, and return the combined view.
    """
    if data.get("email") and data.get("name"):
        db.create_user(user_id, data["email"], data["name"])
    elif not db.get_user(user_id):
        return None
    profile_changes = {
        key: data[key] for key in PROFILE_FIELDS if data.get(key) is not None
    }
    if profile_changes:
        db.upsert_user_profile(user_id, profile_changes)
    return get_profile(db, user_id)


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(255), primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    has_completed_onboarding = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
    last_login_at = Column(Float, nullable=True)


class ProfileRow(Base):
    __tablename__ = "user_profiles"

    user_id = Column(
        String(255), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    goals = Column(JSON, nullable=False, default=list)
    experience_level = Column(String(32), nullable=False, default="beginner")
    available_time = Column(Integer, nullable=False, default=0)
    health_conditions = Column(JSON, nullable=False, default=list)
    budget = Column(String(32), nullable=False, default="essential")
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class StatsRow(Base):
    __tablename__ = "user_stats"

    user_id = Column(
        String(255), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    total_points = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)
    last_activity_date = Column(Date, nullable=True, index=True)
    total_protocols_completed = Column(Integer, nullable=False, default=0)
    total_days_active = Column(Integer, nullable=False, default=0)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class DailyMetricRow(Base):
    __tablename__ = "daily_metrics"
    __table_args__ = (UniqueConstraint("user_id", "date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    date = Column(Date, nullable=False)
    energy = Column(Integer, nullable=True)
    sleep = Column(Integer, nullable=True)
    mood = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    protocols_completed = Column(Integer, nullable=False, default=0)
    created_at = Column(Float, nullable=False)


class CompletedTaskRow(Base):
    __tablename__ = "completed_tasks"
    __table_args__ = (UniqueConstraint("user_id", "task_id", "date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    task_id = Column(String(255), nullable=False)
    task_name = Column(String(255), nullable=False)
    task_category = Column(String(100), nullable=True)
    points_earned = Column(Integer, nullable=False, default=10)
    completed_at = Column(Float, nullable=False)
    date = Column(Date, nullable=False)


class AchievementRow(Base):
    __tablename__ = "achievements"
    __table_args__ = (UniqueConstraint("user_id", "achievement_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    achievement_id = Column(String(255), nullable=False)
    achievement_title = Column(String(255), nullable=False)
    achievement_description = Column(Text, nullable=True)
    points_earned = Column(Integer, nullable=False, default=0)
    unlocked_at = Column(Float, nullable=False)


class CatalogAchievementRow(Base):
    __tablename__ = "achievements_catalog"

    achievement_id = Column(String(255), primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    icon = Column(String(10), nullable=True)
    points = Column(Integer, nullable=False, default=0)
    unlock_criteria = Column(JSON, nullable=True)
    created_at = Column(Float, nullable=False)


class SupplementRow(Base):
    __tablename__ = "supplements_tracking"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    supplement_name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=True)
    time_of_day = Column(String(32), nullable=True)
    taken_at = Column(Float, nullable=False)
    date = Column(Date, nullable=False)


class TimerRow(Base):
    __tablename__ = "protocol_timers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    protocol_id = Column(String(255), nullable=False)
    protocol_name = Column(String(255), nullable=False)
    duration_seconds = Column(Integer, nullable=False)
    completed = Column(Boolean, nullable=False, default=False)
    started_at = Column(Float, nullable=False)
    completed_at = Column(Float, nullable=True)


class EquipmentRow(Base):
    __tablename__ = "user_equipment"
    __table_args__ = (UniqueConstraint("user_id", "equipment_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    equipment_id = Column(String(255), nullable=False)
    equipment_name = Column(String(255), nullable=False)
    tier = Column(String(32), nullable=True)
    marked_owned_at = Column(Float, nullable=False)


class VideoProgressRow(Base):
    __tablename__ = "video_progress"
    __table_args__ = (UniqueConstraint("user_id", "video_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    video_id = Column(String(255), nullable=False)
    video_title = Column(String(255), nullable=False)
    category = Column(String(100), nullable=True)
    watched_at = Column(Float, nullable=False)
