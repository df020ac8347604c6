from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import AsyncIterator
from zoneinfo import ZoneInfo

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nodewatch.core.config import settings
from nodewatch.db.session import SessionLocal, get_session
from nodewatch.services.rpc_client import RpcClient


async def get_db_session() -> AsyncIterator[AsyncSession]:
    async for session in get_session():
        yield session


def get_session_factory() -> async_sessionmaker:
    return SessionLocal


def get_rpc_client() -> RpcClient:
    return RpcClient.from_settings(settings)


def get_heatmap_timezone() -> ZoneInfo:
    return ZoneInfo(settings.heatmap_timezone)


def resolve_window(
    start_time: datetime | None,
    end_time: datetime | None,
    span: timedelta,
) -> tuple[datetime, datetime]:
    end = _as_utc(end_time) if end_time else datetime.now(timezone.utc)
    start = _as_utc(start_time) if start_time else end - span
    if start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="startTime must not be after endTime")
    return start, end


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)
