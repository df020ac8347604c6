from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class SnapshotRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    address: str
    node_identity: str | None
    is_reachable: bool | None
    version: str
    last_observed_at: int
    uptime_seconds: int | None
    rpc_port: int | None
    storage_committed: int | None
    storage_used: int | None
    storage_usage_percent: float | None
    captured_at: datetime


class LatestCycleRead(BaseModel):
    pods: list[SnapshotRead]
    count: int
    captured_at: datetime | None


class SnapshotHistoryRead(BaseModel):
    address: str
    history: list[SnapshotRead]
    count: int
    start_time: datetime
    end_time: datetime


class NodeMetricsRead(BaseModel):
    identity: str
    history: list[SnapshotRead]
    count: int
    start_time: datetime
    end_time: datetime


class CycleAggregateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    captured_at: datetime
    total_nodes: int
    active_nodes: int
    avg_uptime: float
    total_storage: int
    used_storage: int


class NetworkHistoryRead(BaseModel):
    network_history: list[CycleAggregateRead]
    count: int
    start_time: datetime
    end_time: datetime


class CaptureRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stored: int
    total_count: int | None
    captured_at: datetime
    enqueued_ips: int
    endpoint: str | None
    method: str | None


class CleanupRead(BaseModel):
    deleted_count: int
    retention_days: int
    timestamp: datetime


class CycleTimestampsRead(BaseModel):
    timestamps: list[datetime]
    count: int
    start_time: datetime
    end_time: datetime
