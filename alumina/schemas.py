"""
Pydantic schemas for the Alumina API.
"""

from __future__ import annotations

import datetime as dt
from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, Field

ExperienceLevel = Literal["beginner", "intermediate", "advanced"]
Budget = Literal["essential", "intermediate", "premium"]
TimeOfDay = Literal["morning", "afternoon", "evening", "bedtime"]

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    data: T


class CreateUserRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    name: str = Field(..., min_length=1, max_length=255)


class UpdateUserRequest(BaseModel):
    has_completed_onboarding: Optional[bool] = None


class UserOut(BaseModel):
    id: str
    email: str
    name: str
    has_completed_onboarding: bool
    created_at: float
    updated_at: float
    last_login_at: Optional[float] = None


class ProfileUpdateRequest(BaseModel):
    goals: Optional[list[str]] = None
    experience_level: Optional[ExperienceLevel] = None
    available_time: Optional[int] = Field(default=None, ge=0)
    health_conditions: Optional[list[str]] = None
    budget: Optional[Budget] = None


class ProfileOut(BaseModel):
    user_id: str
    goals: list[str]
    experience_level: ExperienceLevel
    available_time: int
    health_conditions: list[str]
    budget: Budget
    created_at: float
    updated_at: float


class StatsUpdateRequest(BaseModel):
    current_streak: Optional[int] = Field(default=None, ge=0)
    longest_streak: Optional[int] = Field(default=None, ge=0)
    total_points: Optional[int] = Field(default=None, ge=0)
    level: Optional[int] = Field(default=None, ge=1)
    last_activity_date: Optional[dt.date] = None
    total_protocols_completed: Optional[int] = Field(default=None, ge=0)
    total_days_active: Optional[int] = Field(default=None, ge=0)


class StatsOut(BaseModel):
    user_id: str
    current_streak: int
    longest_streak: int
    total_points: int
    level: int
    last_activity_date: Optional[dt.date] = None
    total_protocols_completed: int
    total_days_active: int
    created_at: float
    updated_at: float


class DailyMetricRequest(BaseModel):
    date: Optional[dt.date] = None
    energy: int = Field(..., ge=1, le=10)
    sleep: int = Field(..., ge=1, le=10)
    mood: int = Field(..., ge=1, le=10)
    notes: Optional[str] = Field(default=None, max_length=4096)
    protocols_completed: int = Field(default=0, ge=0)


class DailyMetricOut(BaseModel):
    id: int
    user_id: str
    date: dt.date
    energy: Optional[int] = None
    sleep: Optional[int] = None
    mood: Optional[int] = None
    notes: Optional[str] = None
    protocols_completed: int
    created_at: float


class CompleteTaskRequest(BaseModel):
    task_id: str = Field(..., min_length=1, max_length=255)
    task_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    task_category: Optional[str] = Field(default=None, max_length=100)
    points_earned: Optional[int] = Field(default=None, ge=0)


class CompletedTaskOut(BaseModel):
    id: int
    user_id: str
    task_id: str
    task_name: str
    task_category: Optional[str] = None
    points_earned: int
    completed_at: float
    date: dt.date


class AchievementOut(BaseModel):
    id: int
    user_id: str
    achievement_id: str
    achievement_title: str
    achievement_description: Optional[str] = None
    points_earned: int
    unlocked_at: float


class TaskCompletionResponse(BaseModel):
    data: CompletedTaskOut
    created: bool
    stats: StatsOut
    unlocked: list[AchievementOut] = Field(default_factory=list)


class UnlockAchievementRequest(BaseModel):
    achievement_id: str = Field(..., min_length=1, max_length=255)


class CatalogAchievementOut(BaseModel):
    achievement_id: str
    title: str
    description: str
    icon: Optional[str] = None
    points: int
    unlock_criteria: Optional[dict] = None


class SupplementRequest(BaseModel):
    supplement_name: str = Field(..., min_length=1, max_length=255)
    dosage: Optional[str] = Field(default=None, max_length=100)
    time_of_day: Optional[TimeOfDay] = None


class SupplementOut(BaseModel):
    id: int
    user_id: str
    supplement_name: str
    dosage: Optional[str] = None
    time_of_day: Optional[TimeOfDay] = None
    taken_at: float
    date: dt.date


class StartTimerRequest(BaseModel):
    protocol_id: str = Field(..., min_length=1, max_length=255)
    protocol_name: str = Field(..., min_length=1, max_length=255)
    duration_seconds: int = Field(..., ge=1)


class TimerOut(BaseModel):
    id: int
    user_id: str
    protocol_id: str
    protocol_name: str
    duration_seconds: int
    completed: bool
    started_at: float
    completed_at: Optional[float] = None


class EquipmentRequest(BaseModel):
    equipment_id: str = Field(..., min_length=1, max_length=255)
    equipment_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    tier: Optional[Budget] = None


class EquipmentOut(BaseModel):
    id: int
    user_id: str
    equipment_id: str
    equipment_name: str
    tier: Optional[Budget] = None
    marked_owned_at: float


class VideoWatchedRequest(BaseModel):
    video_id: str = Field(..., min_length=1, max_length=255)
    video_title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category: Optional[str] = Field(default=None, max_length=100)


class VideoProgressOut(BaseModel):
    id: int
    user_id: str
    video_id: str
    video_title: str
    category: Optional[str] = None
    watched_at: float


class LegacyProfileRequest(BaseModel):
    user_id: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255, pattern=EMAIL_PATTERN)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    goals: Optional[list[str]] = None
    experience_level: Optional[ExperienceLevel] = None
    available_time: Optional[int] = Field(default=None, ge=0)
    health_conditions: Optional[list[str]] = None
    budget: Optional[Budget] = None


class CombinedProfileOut(BaseModel):
    id: str
    email: str
    name: str
    goals: list[str]
    experience_level: ExperienceLevel
    available_time: int
    health_conditions: list[str]
    budget: Budget
    created_at: float
    updated_at: float


class LegacyProfileResponse(BaseModel):
    success: Literal[True] = True
    data: CombinedProfileOut


class DailyTaskOut(BaseModel):
    task_id: str
    title: str
    time: str
    duration_minutes: int
    category: str


class ProtocolOut(BaseModel):
    protocol_id: str
    title: str
    duration: str
    category: str
    description: str
    steps: list[str]
    benefits: list[str]


class EquipmentItemOut(BaseModel):
    equipment_id: str
    name: str
    description: str
    price: str
    tier: Budget
    category: str


class VideoOut(BaseModel):
    video_id: str
    title: str
    description: str
    duration: str
    category: str


class SupplementDoseOut(BaseModel):
    supplement_id: str
    name: str
    dose: str
    time: str
    time_of_day: TimeOfDay


class PlayUrlResponse(BaseModel):
    video_id: str
    url: str
    expires_in: int


class HealthResponse(BaseModel):
    status: Literal["ok"]
