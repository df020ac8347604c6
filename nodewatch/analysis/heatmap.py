"""Hour-of-week activity heatmaps.

Buckets are computed in one fixed timezone (UTC unless configured), with
``day_of_week`` 0 = Sunday through 6 = Saturday. Percentages are always derived
from raw counts at read time; combined views sum the counts per cell first.
"""
from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Iterable, Sequence

from nodewatch.analysis.activity import DEFAULT_GAP_THRESHOLD_MS, is_fresh
from nodewatch.analysis.models import AddressHeatmap, HeatmapCell, Observation, ensure_utc

DAYS = 7
HOURS = 24
CELL_COUNT = DAYS * HOURS
UTC = timezone.utc


def empty_cells() -> list[HeatmapCell]:
    return [HeatmapCell(day_of_week=day, hour=hour) for day in range(DAYS) for hour in range(HOURS)]


def bucket_of(ts: datetime, tz: tzinfo = UTC) -> tuple[int, int]:
    local = ensure_utc(ts).astimezone(tz)
    # datetime.weekday() is Monday = 0
    return (local.weekday() + 1) % 7, local.hour


def cell_index(day_of_week: int, hour: int) -> int:
    return day_of_week * HOURS + hour


def aggregate_heatmap(
    address: str,
    snapshots: Iterable[Observation],
    gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS,
    tz: tzinfo = UTC,
) -> AddressHeatmap:
    cells = empty_cells()
    for snapshot in snapshots:
        day, hour = bucket_of(snapshot.captured_at, tz)
        cell = cells[cell_index(day, hour)]
        cell.total_snapshots += 1
        if is_fresh(snapshot, gap_threshold_ms):
            cell.active_snapshots += 1
    return AddressHeatmap(address=address, cells=cells)


def combine_heatmaps(label: str, heatmaps: Sequence[AddressHeatmap]) -> AddressHeatmap:
    """Merge per-address heatmaps by summing counts cell by cell."""
    cells = empty_cells()
    for heatmap in heatmaps:
        for merged, cell in zip(cells, heatmap.cells):
            merged.total_snapshots += cell.total_snapshots
            merged.active_snapshots += cell.active_snapshots
    return AddressHeatmap(address=label, cells=cells)
