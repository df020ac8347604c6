"""Rebuild active/inactive intervals from an address's snapshot history.

Each snapshot is a point observation, labelled active when the node's own
last-seen time is within ``gap_threshold_ms`` of the capture time. Between two
consecutive points the earlier label holds, unless the points are further apart
than the threshold, in which case the stretch between them is inactive. The
stretches before the first point and after the last point take the label of
that point, so the returned periods cover the whole window.
"""
from __future__ import annotations

from datetime import datetime
from typing import Sequence

from nodewatch.analysis.models import (
    ActivityPeriod,
    ActivityStatus,
    AddressActivity,
    Observation,
    check_sorted,
    ensure_utc,
    to_ms,
)

DEFAULT_GAP_THRESHOLD_MS = 5 * 60 * 1000


def is_fresh(snapshot: Observation, gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS) -> bool:
    captured_ms = int(ensure_utc(snapshot.captured_at).timestamp() * 1000)
    return captured_ms - snapshot.last_observed_at * 1000 <= gap_threshold_ms


def label_of(snapshot: Observation, gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS) -> ActivityStatus:
    return ActivityStatus.ACTIVE if is_fresh(snapshot, gap_threshold_ms) else ActivityStatus.INACTIVE


def reconstruct_periods(
    address: str,
    snapshots: Sequence[Observation],
    window_start: datetime,
    window_end: datetime,
    gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS,
) -> list[ActivityPeriod]:
    """Return contiguous, ordered, non-overlapping periods for ``address``.

    An empty result means there was no data in the window. Raises
    ``UnsortedInputError`` if ``snapshots`` is not ordered by ``captured_at``.
    """
    check_sorted(snapshots)
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)

    points = [
        (ensure_utc(s.captured_at), label_of(s, gap_threshold_ms))
        for s in snapshots
        if window_start <= ensure_utc(s.captured_at) <= window_end
    ]
    if not points:
        return []

    segments: list[list] = []

    def append(start: datetime, end: datetime, status: ActivityStatus) -> None:
        if end <= start:
            return
        if segments and segments[-1][2] == status:
            segments[-1][1] = end
        else:
            segments.append([start, end, status])

    first_ts, first_label = points[0]
    append(window_start, first_ts, first_label)

    for (prev_ts, prev_label), (cur_ts, _) in zip(points, points[1:]):
        if to_ms(cur_ts - prev_ts) > gap_threshold_ms:
            append(prev_ts, cur_ts, ActivityStatus.INACTIVE)
        else:
            append(prev_ts, cur_ts, prev_label)

    last_ts, last_label = points[-1]
    append(last_ts, window_end, last_label)

    if not segments:
        # Every point sits on a zero-length window.
        return [ActivityPeriod(address, first_ts, first_ts, last_label)]

    return [ActivityPeriod(address, start, end, status) for start, end, status in segments]


def summarize_address(address: str, periods: Sequence[ActivityPeriod]) -> AddressActivity:
    active_ms = sum(p.duration_ms for p in periods if p.status == ActivityStatus.ACTIVE)
    inactive_ms = sum(p.duration_ms for p in periods if p.status == ActivityStatus.INACTIVE)
    total = active_ms + inactive_ms
    return AddressActivity(
        address=address,
        periods=list(periods),
        total_active_ms=active_ms,
        total_inactive_ms=inactive_ms,
        active_percent=(active_ms / total * 100) if total > 0 else 0.0,
        gap_count=sum(1 for p in periods if p.status == ActivityStatus.INACTIVE),
    )


def address_activity(
    address: str,
    snapshots: Sequence[Observation],
    window_start: datetime,
    window_end: datetime,
    gap_threshold_ms: int = DEFAULT_GAP_THRESHOLD_MS,
) -> AddressActivity:
    periods = reconstruct_periods(address, snapshots, window_start, window_end, gap_threshold_ms)
    return summarize_address(address, periods)
