"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from fastapi import Depends

from alumina.config import Settings, get_settings
from alumina.db import DbClient, InMemoryDbClient, PostgresDbClient
from alumina.gamification import ensure_achievement_catalog
from alumina.storage import InMemoryStorageClient, S3StorageClient, StorageClient

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        client: DbClient = InMemoryDbClient()
    else:
        client = PostgresDbClient(settings.database_url)
    ensure_achievement_catalog(client)
    _db_client = client
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.storage_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def local_now(settings: Settings | None = None) -> datetime:
    """Current time in the configured timezone."""
    settings = settings or get_settings()
    return datetime.now(ZoneInfo(settings.timezone))


def get_now(settings: Settings = Depends(get_settings)) -> datetime:
    return local_now(settings)


def get_today(now: datetime = Depends(get_now)) -> date:
    return now.date()
