from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from nodewatch.analysis.heatmap import UTC
from nodewatch.api.dependencies import get_db_session, get_heatmap_timezone, resolve_window
from nodewatch.api.schemas.analytics import (
    DowntimeIncidentRead,
    DowntimeSummaryRead,
    NodeActivityRead,
    NodeHeatmapRead,
)
from nodewatch.api.schemas.snapshots import NodeMetricsRead, SnapshotRead
from nodewatch.core.config import settings
from nodewatch.services.node_analytics import NodeAnalyticsService

router = APIRouter(prefix="/nodes", tags=["nodes"])


def _service(
    session: AsyncSession,
    *,
    gap_threshold_min: int | None = None,
    tz: tzinfo | None = None,
) -> NodeAnalyticsService:
    return NodeAnalyticsService(
        session,
        gap_threshold_ms=(gap_threshold_min or settings.activity_gap_threshold_min) * 60 * 1000,
        tz=tz or UTC,
        recency_window_ms=settings.streak_recency_sec * 1000,
    )


@router.get("/{pubkey}/activity", response_model=NodeActivityRead)
async def node_activity(
    pubkey: str,
    hours: int = Query(24, ge=1, le=24 * 90),
    start_time: datetime | None = Query(None, alias="startTime"),
    end_time: datetime | None = Query(None, alias="endTime"),
    gap_threshold: int | None = Query(None, alias="gapThreshold", ge=1, le=24 * 60),
    session: AsyncSession = Depends(get_db_session),
) -> NodeActivityRead:
    start, end = resolve_window(start_time, end_time, timedelta(hours=hours))
    activity = await _service(session, gap_threshold_min=gap_threshold).activity(pubkey, start, end)
    return NodeActivityRead.model_validate(activity)


@router.get("/{pubkey}/heatmap", response_model=NodeHeatmapRead)
async def node_heatmap(
    pubkey: str,
    days: int = Query(settings.heatmap_window_days, ge=1, le=90),
    start_time: datetime | None = Query(None, alias="startTime"),
    end_time: datetime | None = Query(None, alias="endTime"),
    session: AsyncSession = Depends(get_db_session),
    tz: tzinfo = Depends(get_heatmap_timezone),
) -> NodeHeatmapRead:
    start, end = resolve_window(start_time, end_time, timedelta(days=days))
    heatmap = await _service(session, tz=tz).heatmap(pubkey, start, end)
    return NodeHeatmapRead.model_validate(heatmap)


@router.get("/{pubkey}/downtime", response_model=DowntimeSummaryRead)
async def node_downtime(
    pubkey: str,
    hours: int = Query(24, ge=1, le=24 * 90),
    start_time: datetime | None = Query(None, alias="startTime"),
    end_time: datetime | None = Query(None, alias="endTime"),
    gap_threshold: int | None = Query(None, alias="gapThreshold", ge=1, le=24 * 60),
    session: AsyncSession = Depends(get_db_session),
) -> DowntimeSummaryRead:
    start, end = resolve_window(start_time, end_time, timedelta(hours=hours))
    now = datetime.now(timezone.utc)
    summary = await _service(session, gap_threshold_min=gap_threshold).downtime(pubkey, start, end, now)
    return DowntimeSummaryRead(
        identity=pubkey,
        window_start=start,
        window_end=end,
        total_incidents=summary.total_incidents,
        total_downtime_ms=summary.total_downtime_ms,
        longest_outage_ms=summary.longest_outage_ms,
        longest_outage_time=summary.longest_outage_time,
        mttr_ms=summary.mttr_ms,
        current_streak_ms=summary.current_streak_ms,
        current_streak_status=summary.current_streak_status,
        total_addresses=summary.total_addresses,
        incidents=[DowntimeIncidentRead.model_validate(i) for i in summary.incidents],
    )


@router.get("/{pubkey}/metrics", response_model=NodeMetricsRead)
async def node_metrics(
    pubkey: str,
    hours: int = Query(24, ge=1, le=24 * 90),
    start_time: datetime | None = Query(None, alias="startTime"),
    end_time: datetime | None = Query(None, alias="endTime"),
    session: AsyncSession = Depends(get_db_session),
) -> NodeMetricsRead:
    start, end = resolve_window(start_time, end_time, timedelta(hours=hours))
    rows = await _service(session).history(pubkey, start, end)
    return NodeMetricsRead(
        identity=pubkey,
        history=[SnapshotRead.model_validate(r) for r in rows],
        count=len(rows),
        start_time=start,
        end_time=end,
    )
