from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Protocol, Sequence

_ONE_MS = timedelta(milliseconds=1)


class ActivityStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Observation(Protocol):
    """Anything shaped like a snapshot row: an address seen at a capture time."""

    address: str
    captured_at: datetime
    last_observed_at: int


class UnsortedInputError(ValueError):
    pass


def to_ms(delta: timedelta) -> int:
    return delta // _ONE_MS


def ensure_utc(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes; all stored times are UTC.
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def check_sorted(snapshots: Sequence[Observation]) -> None:
    for prev, cur in zip(snapshots, snapshots[1:]):
        if ensure_utc(cur.captured_at) < ensure_utc(prev.captured_at):
            raise UnsortedInputError(
                f"snapshots must be ordered by captured_at: {cur.captured_at} follows {prev.captured_at}"
            )


@dataclass(frozen=True)
class ActivityPeriod:
    address: str
    start_time: datetime
    end_time: datetime
    status: ActivityStatus

    @property
    def duration_ms(self) -> int:
        return to_ms(self.end_time - self.start_time)


@dataclass(frozen=True)
class AddressActivity:
    address: str
    periods: list[ActivityPeriod]
    total_active_ms: int
    total_inactive_ms: int
    active_percent: float
    gap_count: int


@dataclass
class HeatmapCell:
    day_of_week: int  # 0 = Sunday
    hour: int
    total_snapshots: int = 0
    active_snapshots: int = 0

    @property
    def activity_percent(self) -> float:
        if self.total_snapshots == 0:
            return 0.0
        return self.active_snapshots / self.total_snapshots * 100

    @property
    def has_data(self) -> bool:
        return self.total_snapshots > 0


@dataclass(frozen=True)
class AddressHeatmap:
    address: str
    cells: list[HeatmapCell]

    @property
    def total_snapshots(self) -> int:
        return sum(c.total_snapshots for c in self.cells)

    @property
    def active_snapshots(self) -> int:
        return sum(c.active_snapshots for c in self.cells)

    @property
    def overall_activity_percent(self) -> float:
        total = self.total_snapshots
        if total == 0:
            return 0.0
        return self.active_snapshots / total * 100


@dataclass
class DowntimeIncident:
    start_time: datetime
    end_time: datetime
    addresses_affected: list[str]
    total_addresses: int

    @property
    def duration_ms(self) -> int:
        return to_ms(self.end_time - self.start_time)


@dataclass(frozen=True)
class DowntimeSummary:
    total_incidents: int = 0
    total_downtime_ms: int = 0
    longest_outage_ms: int = 0
    longest_outage_time: datetime | None = None
    mttr_ms: float = 0.0
    current_streak_ms: int = 0
    # None when no address reported inside the recency window.
    current_streak_status: ActivityStatus | None = None
    total_addresses: int = 0
    incidents: list[DowntimeIncident] = field(default_factory=list)
