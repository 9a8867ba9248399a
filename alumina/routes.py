"""
HTTP routes for the Alumina API.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from alumina import catalog
from alumina.config import Settings, get_settings
from alumina.db import (
    DailyMetricRecord,
    DbClient,
    EquipmentRecord,
    SupplementRecord,
    TimerRecord,
    UserRecord,
    VideoProgressRecord,
    get_profile,
    upsert_profile,
)
from alumina.dependencies import get_db_client, get_now, get_storage_client, get_today
from alumina.gamification import complete_task, grant_achievement
from alumina.schemas import (
    AchievementOut,
    CatalogAchievementOut,
    CombinedProfileOut,
    CompleteTaskRequest,
    CompletedTaskOut,
    CreateUserRequest,
    DailyMetricOut,
    DailyMetricRequest,
    DailyTaskOut,
    DataResponse,
    EquipmentItemOut,
    EquipmentOut,
    EquipmentRequest,
    HealthResponse,
    LegacyProfileRequest,
    LegacyProfileResponse,
    PlayUrlResponse,
    ProfileOut,
    ProfileUpdateRequest,
    ProtocolOut,
    StartTimerRequest,
    StatsOut,
    StatsUpdateRequest,
    SupplementDoseOut,
    SupplementOut,
    SupplementRequest,
    TaskCompletionResponse,
    TimerOut,
    UnlockAchievementRequest,
    UpdateUserRequest,
    UserOut,
    VideoOut,
    VideoProgressOut,
    VideoWatchedRequest,
)
from alumina.storage import StorageClient

logger = logging.getLogger(__name__)

router = APIRouter()


def valid_user_id(user_id: str) -> str:
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=400, detail="User ID is required")
    return user_id


def _require_user(db: DbClient, user_id: str) -> UserRecord:
    user = db.get_user(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


# Users


@router.post("/users", response_model=DataResponse[UserOut])
def create_user(payload: CreateUserRequest, db: DbClient = Depends(get_db_client)):
    """
    Register a user. Posting an existing id only refreshes its last login.
    """
    user = db.create_user(payload.id, payload.email, payload.name)
    return DataResponse[UserOut](data=UserOut.model_validate(user.as_dict()))


@router.get("/user/{user_id}", response_model=DataResponse[Optional[UserOut]])
def get_user(
    user_id: str = Depends(valid_user_id), db: DbClient = Depends(get_db_client)
):
    user = db.get_user(user_id)
    data = UserOut.model_validate(user.as_dict()) if user else None
    return DataResponse[Optional[UserOut]](data=data)


@router.patch("/user/{user_id}", response_model=DataResponse[UserOut])
def update_user(
    payload: UpdateUserRequest,
    user_id: str = Depends(valid_user_id),
    db: DbClient = Depends(get_db_client),
):
    if payload.has_completed_onboarding is None:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    user = db.update_user_onboarding(user_id, payload.has_completed_onboarding)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return DataResponse[UserOut](data=UserOut.model_validate(user.as_dict()))


# Profile and stats


@router.get("/user/{user_id}/profile", response_model=DataResponse[Optional[ProfileOut]])
def get_user_profile(
    user_id: str = Depends(valid_user_id), db: DbClient = Depends(get_db_client)
):
    profile = db.get_user_profile(user_id)
    data = ProfileOut.model_validate(profile.as_dict()) if profile else None
    return DataResponse[Optional[ProfileOut]](data=data)


@router.put("/user/{user_id}/profile", response_model=DataResponse[ProfileOut])
def put_user_profile(
    payload: ProfileUpdateRequest,
    user_id: str = Depends(valid_user_id),
    db: DbClient = Depends(get_db_client),
):
    _require_user(db, user_id)
    profile = db.upsert_user_profile(user_id, payload.model_dump(exclude_none=True))
    return DataResponse[ProfileOut](data=ProfileOut.model_validate(profile.as_dict()))


@router.get("/user/{user_id}/stats", response_model=DataResponse[StatsOut])
def get_user_stats(
    user_id: str = Depends(valid_user_id), db: DbClient = Depends(get_db_client)
):
    _require_user(db, user_id)
    stats = db.get_user_stats(user_id)
    return DataResponse[StatsOut](data=StatsOut.model_validate(stats.as_dict()))


@router.put("/user/{user_id}/stats", response_model=DataResponse[StatsOut])
def put_user_stats(
    payload: StatsUpdateRequest,
    user_id: str = Depends(valid_user_id),
    db: DbClient = Depends(get_db_client),
):
    _require_user(db, user_id)
    stats = db.update_user_stats(user_id, payload.model_dump(exclude_none=True))
    return DataResponse[StatsOut](data=StatsOut.model_validate(stats.as_dict()))


# Daily metrics


@router.get("/user/{user_id}/metrics", response_model=DataResponse[list[DailyMetricOut]])
def list_daily_metrics(
    user_id: str = Depends(valid_user_id),
    days: int = Query(30, ge=1, le=366),
    db: DbClient = Depends(get_db_client),
):
    metrics = db.get_daily_metrics(user_id, limit=days)
    return DataResponse[list[DailyMetricOut]](
        data=[DailyMetricOut.model_validate(m.as_dict()) for m in metrics]
    )


@router.post("/user/{user_id}/metrics", response_model=DataResponse[DailyMetricOut])
def add_daily_metric(
    payload: DailyMetricRequest,
    user_id: str = Depends(valid_user_id),
    today: date = Depends(get_today),
    db: DbClient = Depends(get_db_client),
):
    """
    Record how the user felt on a day. Posting the same date again overwrites it.
    """
    _require_user(db, user_id)
    metric = db.add_daily_metric(
        DailyMetricRecord(
            user_id=user_id,
            date=payload.date or today,
            energy=payload.energy,
            sleep=payload.sleep,
            mood=payload.mood,
            notes=payload.notes,
            protocols_completed=payload.protocols_completed,
        )
    )
    return DataResponse[DailyMetricOut](
        data=DailyMetricOut.model_validate(metric.as_dict())
    )


# Protocol completions


@router.get(
    "/user/{user_id}/tasks/today", response_model=DataResponse[list[CompletedTaskOut]]
)
def list_today_tasks(
    user_id: str = Depends(valid_user_id),
    today: date = Depends(get_today),
    db: DbClient = Depends(get_db_client),
):
    tasks = db.get_completed_tasks(user_id, today)
    return DataResponse[list[CompletedTaskOut]](
        data=[CompletedTaskOut.model_validate(t.as_dict()) for t in tasks]
    )


@router.post(
    "/user/{user_id}/tasks/today",
    response_model=TaskCompletionResponse,
    status_code=201,
)
def complete_today_task(
    payload: CompleteTaskRequest,
    response: Response,
    user_id: str = Depends(valid_user_id),
    now: datetime = Depends(get_now),
    settings: Settings = Depends(get_settings),
    db: DbClient = Depends(get_db_client),
):
    """
    Mark a protocol complete for today. Points are awarded at most once per
    task per day; a repeat completion answers 200 with `created: false`.
    """
    _require_user(db, user_id)
    known = catalog.find_daily_task(payload.task_id)
    task_name = payload.task_name or (known.title if known else None)
    if not task_name:
        raise HTTPException(status_code=400, detail="task_name is required")
    task_category = payload.task_category or (known.category if known else None)
    points = (
        payload.points_earned
        if payload.points_earned is not None
        else settings.points_per_task
    )

    result = complete_task(
        db,
        user_id,
        task_id=payload.task_id,
        task_name=task_name,
        task_category=task_category,
        points=points,
        now=now,
        points_per_level=settings.points_per_level,
    )
    if not result.created:
        response.status_code = 200
    return TaskCompletionResponse(
        data=CompletedTaskOut.model_validate(result.task.as_dict()),
        created=result.created,
        stats=StatsOut.model_validate(result.stats.as_dict()),
        unlocked=[AchievementOut.model_validate(a.as_dict()) for a in result.unlocked],
    )


@router.get("/user/{user_id}/tasks", response_model=DataResponse[list[CompletedTaskOut]])
def list_task_history(
    user_id: str = Depends(valid_user_id),
    on_date: Optional[date] = Query(None, alias="date"),
    db: DbClient = Depends(get_db_client),
):
    tasks = db.get_completed_tasks(user_id, on_date)
    return DataResponse[list[CompletedTaskOut]](
        data=[CompletedTaskOut.model_validate(t.as_dict()) for t in tasks]
    )


# Achievements


@router.get(
    "/user/{user_id}/achievements", response_model=DataResponse[list[AchievementOut]]
)
def list_user_achievements(
    user_id: str = Depends(valid_user_id), db: DbClient = Depends(get_db_client)
):
    achievements = db.get_user_achievements(user_id)
    return DataResponse[list[AchievementOut]](
        data=[AchievementOut.model_validate(a.as_dict()) for a in achievements]
    )


@router.post(
    "/user/{user_id}/achievements",
    response_model=DataResponse[AchievementOut],
    status_code=201,
)
def unlock_user_achievement(
    payload: UnlockAchievementRequest,
    response: Response,
    user_id: str = Depends(valid_user_id),
    settings: Settings = Depends(get_settings),
    db: DbClient = Depends(get_db_client),
):
    _require_user(db, user_id)
    known = {e.achievement_id for e in db.list_catalog_achievements()}
    if payload.achievement_id not in known:
        raise HTTPException(status_code=404, detail="Achievement not found")

    record = grant_achievement(
        db, user_id, payload.achievement_id, settings.points_per_level
    )
    if record is None:
        response.status_code = 200
        record = next(
            (
                a
                for a in db.get_user_achievements(user_id)
                if a.achievement_id == payload.achievement_id
            ),
            None,
        )
        if record is None:
            raise HTTPException(status_code=409, detail="Achievement was not unlocked")
    return DataResponse[AchievementOut](
        data=AchievementOut.model_validate(record.as_dict())
    )


# Supplements


@router.get(
    "/user/{user_id}/supplements/today", response_model=DataResponse[list[SupplementOut]]
)
def list_today_supplements(
    user_id: str = Depends(valid_user_id),
    today: date = Depends(get_today),
    db: DbClient = Depends(get_db_client),
):
    doses = db.get_supplements_for_date(user_id, today)
    return DataResponse[list[SupplementOut]](
        data=[SupplementOut.model_validate(s.as_dict()) for s in doses]
    )


@router.post(
    "/user/{user_id}/supplements/today",
    response_model=DataResponse[SupplementOut],
    status_code=201,
)
def record_supplement(
    payload: SupplementRequest,
    user_id: str = Depends(valid_user_id),
    now: datetime = Depends(get_now),
    db: DbClient = Depends(get_db_client),
):
    _require_user(db, user_id)
    dose = db.add_supplement_tracking(
        SupplementRecord(
            user_id=user_id,
            supplement_name=payload.supplement_name,
            dosage=payload.dosage,
            time_of_day=payload.time_of_day,
            date=now.date(),
            taken_at=now.timestamp(),
        )
    )
    return DataResponse[SupplementOut](data=SupplementOut.model_validate(dose.as_dict()))


# Protocol timers


@router.post(
    "/user/{user_id}/timers", response_model=DataResponse[TimerOut], status_code=201
)
def start_timer(
    payload: StartTimerRequest,
    user_id: str = Depends(valid_user_id),
    db: DbClient = Depends(get_db_client),
):
    _require_user(db, user_id)
    timer = db.start_protocol_timer(
        TimerRecord(
            user_id=user_id,
            protocol_id=payload.protocol_id,
            protocol_name=payload.protocol_name,
            duration_seconds=payload.duration_seconds,
        )
    )
    return DataResponse[TimerOut](data=TimerOut.model_validate(timer.as_dict()))


@router.post(
    "/user/{user_id}/timers/{timer_id}/complete", response_model=DataResponse[TimerOut]
)
def complete_timer(
    timer_id: int,
    user_id: str = Depends(valid_user_id),
    db: DbClient = Depends(get_db_client),
):
    timer = db.complete_protocol_timer(user_id, timer_id)
    if not timer:
        raise HTTPException(status_code=404, detail="Timer not found")
    return DataResponse[TimerOut](data=TimerOut.model_validate(timer.as_dict()))


# Equipment and videos


@router.get("/user/{user_id}/equipment", response_model=DataResponse[list[EquipmentOut]])
def list_owned_equipment(
    user_id: str = Depends(valid_user_id), db: DbClient = Depends(get_db_client)
):
    items = db.get_user_equipment(user_id)
    return DataResponse[list[EquipmentOut]](
        data=[EquipmentOut.model_validate(e.as_dict()) for e in items]
    )


@router.post("/user/{user_id}/equipment", response_model=DataResponse[EquipmentOut])
def mark_equipment_owned(
    payload: EquipmentRequest,
    user_id: str = Depends(valid_user_id),
    db: DbClient = Depends(get_db_client),
):
    _require_user(db, user_id)
    known = catalog.find_equipment(payload.equipment_id)
    name = payload.equipment_name or (known.name if known else None)
    if not name:
        raise HTTPException(status_code=400, detail="equipment_name is required")
    record = db.mark_equipment_owned(
        EquipmentRecord(
            user_id=user_id,
            equipment_id=payload.equipment_id,
            equipment_name=name,
            tier=payload.tier or (known.tier if known else None),
        )
    )
    return DataResponse[EquipmentOut](data=EquipmentOut.model_validate(record.as_dict()))


@router.get("/user/{user_id}/videos", response_model=DataResponse[list[VideoProgressOut]])
def list_watched_videos(
    user_id: str = Depends(valid_user_id), db: DbClient = Depends(get_db_client)
):
    videos = db.get_watched_videos(user_id)
    return DataResponse[list[VideoProgressOut]](
        data=[VideoProgressOut.model_validate(v.as_dict()) for v in videos]
    )


@router.post("/user/{user_id}/videos", response_model=DataResponse[VideoProgressOut])
def mark_video_watched(
    payload: VideoWatchedRequest,
    user_id: str = Depends(valid_user_id),
    db: DbClient = Depends(get_db_client),
):
    _require_user(db, user_id)
    known = catalog.find_video(payload.video_id)
    title = payload.video_title or (known.title if known else None)
    if not title:
        raise HTTPException(status_code=400, detail="video_title is required")
    record = db.mark_video_watched(
        VideoProgressRecord(
            user_id=user_id,
            video_id=payload.video_id,
            video_title=title,
            category=payload.category or (known.category if known else None),
        )
    )
    return DataResponse[VideoProgressOut](
        data=VideoProgressOut.model_validate(record.as_dict())
    )


# Combined profile used by the profile screen


@router.get("/profile/update", response_model=LegacyProfileResponse)
def fetch_combined_profile(
    user_id: Optional[str] = Query(None, alias="userId"),
    db: DbClient = Depends(get_db_client),
):
    if not user_id:
        raise HTTPException(status_code=400, detail="User ID is required")
    profile = get_profile(db, user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return LegacyProfileResponse(data=CombinedProfileOut.model_validate(profile.as_dict()))


@router.post("/profile/update", response_model=LegacyProfileResponse)
def save_combined_profile(
    payload: LegacyProfileRequest, db: DbClient = Depends(get_db_client)
):
    if not payload.user_id:
        raise HTTPException(status_code=400, detail="User ID is required")
    data = payload.model_dump(exclude_none=True, exclude={"user_id"})
    profile = upsert_profile(db, payload.user_id, data)
    if not profile:
        logger.info("Profile update for unknown user %s", payload.user_id)
        raise HTTPException(status_code=404, detail="Profile not found")
    return LegacyProfileResponse(data=CombinedProfileOut.model_validate(profile.as_dict()))


# Static catalog


@router.get("/catalog/tasks", response_model=DataResponse[list[DailyTaskOut]])
def list_daily_tasks():
    return DataResponse[list[DailyTaskOut]](
        data=[DailyTaskOut.model_validate(t.to_dict()) for t in catalog.DAILY_TASKS]
    )


@router.get("/catalog/protocols", response_model=DataResponse[list[ProtocolOut]])
def list_protocols(category: Optional[str] = Query(None)):
    return DataResponse[list[ProtocolOut]](
        data=[
            ProtocolOut.model_validate(p.to_dict())
            for p in catalog.list_protocols(category)
        ]
    )


@router.get("/catalog/equipment", response_model=DataResponse[list[EquipmentItemOut]])
def list_equipment(
    tier: Optional[str] = Query(None, pattern="^(essential|intermediate|premium)$"),
):
    return DataResponse[list[EquipmentItemOut]](
        data=[
            EquipmentItemOut.model_validate(e.to_dict())
            for e in catalog.list_equipment(tier)
        ]
    )


@router.get("/catalog/videos", response_model=DataResponse[list[VideoOut]])
def list_videos(category: Optional[str] = Query(None)):
    return DataResponse[list[VideoOut]](
        data=[VideoOut.model_validate(v.to_dict()) for v in catalog.list_videos(category)]
    )


@router.get("/catalog/videos/{video_id}/play-url", response_model=PlayUrlResponse)
def video_play_url(
    video_id: str,
    settings: Settings = Depends(get_settings),
    storage: StorageClient = Depends(get_storage_client),
):
    video = catalog.find_video(video_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    expires_in = settings.video_url_expiry_seconds
    url = storage.presign_get(video.storage_path, expires_in=expires_in)
    return PlayUrlResponse(video_id=video.video_id, url=url, expires_in=expires_in)


@router.get("/catalog/supplements", response_model=DataResponse[list[SupplementDoseOut]])
def list_supplement_schedule():
    return DataResponse[list[SupplementDoseOut]](
        data=[
            SupplementDoseOut.model_validate(s.to_dict())
            for s in catalog.SUPPLEMENT_SCHEDULE
        ]
    )


@router.get(
    "/catalog/achievements", response_model=DataResponse[list[CatalogAchievementOut]]
)
def list_achievement_catalog(db: DbClient = Depends(get_db_client)):
    entries = db.list_catalog_achievements()
    return DataResponse[list[CatalogAchievementOut]](
        data=[CatalogAchievementOut.model_validate(e.as_dict()) for e in entries]
    )
