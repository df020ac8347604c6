from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from nodewatch.analysis.models import ActivityStatus


class ActivityPeriodRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    start_time: datetime
    end_time: datetime
    status: ActivityStatus
    duration_ms: int


class AddressActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    periods: list[ActivityPeriodRead]
    total_active_ms: int
    total_inactive_ms: int
    active_percent: float
    gap_count: int


class NodeActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    identity: str
    addresses: list[AddressActivityRead]
    window_start: datetime
    window_end: datetime


class HeatmapCellRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_of_week: int
    hour: int
    total_snapshots: int
    active_snapshots: int
    activity_percent: float


class AddressHeatmapRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    address: str
    cells: list[HeatmapCellRead]
    total_snapshots: int
    overall_activity_percent: float


class NodeHeatmapRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    identity: str
    addresses: list[AddressHeatmapRead]
    combined: AddressHeatmapRead
    total_snapshots: int
    window_start: datetime
    window_end: datetime


class DowntimeIncidentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start_time: datetime
    end_time: datetime
    duration_ms: int
    addresses_affected: list[str]
    total_addresses: int


class DowntimeSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    identity: str
    window_start: datetime
    window_end: datetime
    total_incidents: int
    total_downtime_ms: int
    longest_outage_ms: int
    longest_outage_time: datetime | None
    mttr_ms: float
    current_streak_ms: int
    current_streak_status: ActivityStatus | None
    total_addresses: int
    incidents: list[DowntimeIncidentRead]
