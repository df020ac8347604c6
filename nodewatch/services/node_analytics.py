from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from nodewatch.analysis.activity import DEFAULT_GAP_THRESHOLD_MS, address_activity
from nodewatch.analysis.downtime import DEFAULT_RECENCY_WINDOW_MS, analyze_downtime
from nodewatch.analysis.heatmap import UTC, aggregate_heatmap, combine_heatmaps
from nodewatch.analysis.models import AddressActivity, AddressHeatmap, DowntimeSummary
from nodewatch.db.models import Snapshot
from nodewatch.services.snapshots import SnapshotStore

ALL_ADDRESSES = "all"


@dataclass(frozen=True)
class NodeActivity:
    identity: str
    addresses: list[AddressActivity]
    window_start: datetime
    window_end: datetime


@dataclass(frozen=True)
class NodeHeatmap:
    identity: str
    addresses: list[AddressHeatmap]
    combined: AddressHeatmap
    window_start: datetime
    window_end: datetime

    @property
    def total_snapshots(self) -> int:
        return self.combined.total_snapshots


def group_by_address(rows: Sequence[Snapshot]) -> dict[str, list[Snapshot]]:
    # Rows arrive ordered by captured_at, so each group stays ordered.
    grouped: dict[str, list[Snapshot]] = defaultdict(list)
    for row in rows:
        grouped[row.address].append(row)
    return dict(sorted(grouped.items()))


class NodeAnalyticsService:
    """Derived views for one node identity, merged across every address it used."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS,
        tz: tzinfo = UTC,
        recency_window_ms: int = DEFAULT_RECENCY_WINDOW_MS,
    ) -> None:
        self.store = SnapshotStore(session)
        self.gap_threshold_ms = gap_threshold_ms
        self.tz = tz
        self.recency_window_ms = recency_window_ms

    async def history(self, identity: str, start: datetime, end: datetime) -> Sequence[Snapshot]:
        return await self.store.range_by_identity(identity, start, end)

    async def activity(self, identity: str, start: datetime, end: datetime) -> NodeActivity:
        rows = await self.store.range_by_identity(identity, start, end)
        addresses = [
            address_activity(address, snapshots, start, end, self.gap_threshold_ms)
            for address, snapshots in group_by_address(rows).items()
        ]
        return NodeActivity(identity=identity, addresses=addresses, window_start=start, window_end=end)

    async def heatmap(self, identity: str, start: datetime, end: datetime) -> NodeHeatmap:
        rows = await self.store.range_by_identity(identity, start, end)
        heatmaps = [
            aggregate_heatmap(address, snapshots, self.gap_threshold_ms, self.tz)
            for address, snapshots in group_by_address(rows).items()
        ]
        return NodeHeatmap(
            identity=identity,
            addresses=heatmaps,
            combined=combine_heatmaps(ALL_ADDRESSES, heatmaps),
            window_start=start,
            window_end=end,
        )

    async def downtime(self, identity: str, start: datetime, end: datetime, now: datetime) -> DowntimeSummary:
        activity = await self.activity(identity, start, end)
        return analyze_downtime(activity.addresses, now=now, recency_window_ms=self.recency_window_ms)
