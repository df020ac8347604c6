from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nodewatch.api.dependencies import get_db_session, get_rpc_client, get_session_factory, resolve_window
from nodewatch.api.schemas.snapshots import (
    CaptureRead,
    CleanupRead,
    CycleAggregateRead,
    CycleTimestampsRead,
    LatestCycleRead,
    NetworkHistoryRead,
    SnapshotHistoryRead,
    SnapshotRead,
)
from nodewatch.core.config import settings
from nodewatch.services.capture import CaptureError, CaptureService
from nodewatch.services.rpc_client import RpcClient
from nodewatch.services.snapshots import SnapshotStore, purge_expired

logger = logging.getLogger(__name__)

router = APIRouter(tags=["snapshots"])


@router.post("/snapshot", response_model=CaptureRead)
async def capture_snapshot(
    client: RpcClient = Depends(get_rpc_client),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> CaptureRead:
    service = CaptureService(client, session_factory)
    try:
        report = await service.capture_cycle()
    except CaptureError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": str(exc), "details": exc.details},
        )
    except SQLAlchemyError:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to store snapshot")
    return CaptureRead.model_validate(report)


@router.post("/cleanup", response_model=CleanupRead)
async def cleanup_snapshots(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> CleanupRead:
    now = datetime.now(timezone.utc)
    try:
        deleted = await purge_expired(session_factory, settings.retention_days, now=now)
    except SQLAlchemyError:
        logger.exception("cleanup failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Cleanup failed")
    return CleanupRead(deleted_count=deleted, retention_days=settings.retention_days, timestamp=now)


@router.get("/pods/latest", response_model=LatestCycleRead)
async def latest_pods(session: AsyncSession = Depends(get_db_session)) -> LatestCycleRead:
    rows = await SnapshotStore(session).latest_cycle()
    return LatestCycleRead(
        pods=[SnapshotRead.model_validate(r) for r in rows],
        count=len(rows),
        captured_at=rows[0].captured_at if rows else None,
    )


@router.get("/pods/history", response_model=SnapshotHistoryRead | NetworkHistoryRead)
async def pods_history(
    address: str | None = Query(None),
    hours: int = Query(24, ge=1, le=24 * 90),
    start_time: datetime | None = Query(None, alias="startTime"),
    end_time: datetime | None = Query(None, alias="endTime"),
    session: AsyncSession = Depends(get_db_session),
) -> SnapshotHistoryRead | NetworkHistoryRead:
    start, end = resolve_window(start_time, end_time, timedelta(hours=hours))
    store = SnapshotStore(session)
    if address:
        rows = await store.range_by_address(address, start, end)
        return SnapshotHistoryRead(
            address=address,
            history=[SnapshotRead.model_validate(r) for r in rows],
            count=len(rows),
            start_time=start,
            end_time=end,
        )

    cycles = await store.aggregate_by_cycle(start, end, active_staleness_sec=settings.active_staleness_sec)
    return NetworkHistoryRead(
        network_history=[CycleAggregateRead.model_validate(c) for c in cycles],
        count=len(cycles),
        start_time=start,
        end_time=end,
    )


@router.get("/pods/cycles", response_model=CycleTimestampsRead)
async def pods_cycles(
    hours: int = Query(24, ge=1, le=24 * 90),
    start_time: datetime | None = Query(None, alias="startTime"),
    end_time: datetime | None = Query(None, alias="endTime"),
    session: AsyncSession = Depends(get_db_session),
) -> CycleTimestampsRead:
    start, end = resolve_window(start_time, end_time, timedelta(hours=hours))
    timestamps = await SnapshotStore(session).cycle_timestamps(start, end)
    return CycleTimestampsRead(timestamps=timestamps, count=len(timestamps), start_time=start, end_time=end)
