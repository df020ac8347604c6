from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence, Tuple, Union

from nodewatch.analysis.models import (
    ActivityPeriod,
    ActivityStatus,
    AddressActivity,
    DowntimeIncident,
    DowntimeSummary,
    ensure_utc,
    to_ms,
)

DEFAULT_RECENCY_WINDOW_MS = 5 * 60 * 1000

AddressPeriods = Union[AddressActivity, Tuple[str, Sequence[ActivityPeriod]]]


def _unpack(item: AddressPeriods) -> tuple[str, Sequence[ActivityPeriod]]:
    if isinstance(item, AddressActivity):
        return item.address, item.periods
    address, periods = item
    return address, periods


def merge_incidents(
    addresses: Sequence[tuple[str, Sequence[ActivityPeriod]]],
) -> list[DowntimeIncident]:
    """Sweep-merge inactive periods from all addresses into chronological incidents.

    Periods that overlap or touch end up in the same incident.
    """
    total = len(addresses)
    inactive = sorted(
        (
            (ensure_utc(p.start_time), ensure_utc(p.end_time), address)
            for address, periods in addresses
            for p in periods
            if p.status == ActivityStatus.INACTIVE
        ),
        key=lambda item: item[0],
    )

    incidents: list[DowntimeIncident] = []
    current: DowntimeIncident | None = None
    for start, end, address in inactive:
        if current is not None and start <= current.end_time:
            if end > current.end_time:
                current.end_time = end
            if address not in current.addresses_affected:
                current.addresses_affected.append(address)
            continue
        if current is not None:
            incidents.append(current)
        current = DowntimeIncident(
            start_time=start,
            end_time=end,
            addresses_affected=[address],
            total_addresses=total,
        )
    if current is not None:
        incidents.append(current)
    return incidents


def current_streak(
    addresses: Iterable[tuple[str, Sequence[ActivityPeriod]]],
    *,
    now: datetime,
    recency_window_ms: int = DEFAULT_RECENCY_WINDOW_MS,
) -> tuple[int, ActivityStatus | None]:
    """Length and status of the ongoing streak.

    Only each address's latest period counts, and only if it ended within the
    recency window before ``now``. When addresses disagree the longest streak
    wins.
    """
    now = ensure_utc(now)
    best_ms = 0
    best_status: ActivityStatus | None = None
    for _, periods in addresses:
        if not periods:
            continue
        latest = max(periods, key=lambda p: ensure_utc(p.end_time))
        since_end = max(to_ms(now - ensure_utc(latest.end_time)), 0)
        if since_end >= recency_window_ms:
            continue
        streak = latest.duration_ms + since_end
        if best_status is None or streak > best_ms:
            best_ms = streak
            best_status = latest.status
    return best_ms, best_status


def analyze_downtime(
    addresses: Sequence[AddressPeriods],
    *,
    now: datetime,
    recency_window_ms: int = DEFAULT_RECENCY_WINDOW_MS,
) -> DowntimeSummary:
    unpacked = [_unpack(item) for item in addresses]
    if not unpacked:
        return DowntimeSummary()

    incidents = merge_incidents(unpacked)
    total_downtime = sum(i.duration_ms for i in incidents)

    longest: DowntimeIncident | None = None
    for incident in incidents:
        if longest is None or incident.duration_ms > longest.duration_ms:
            longest = incident

    streak_ms, streak_status = current_streak(unpacked, now=now, recency_window_ms=recency_window_ms)

    return DowntimeSummary(
        total_incidents=len(incidents),
        total_downtime_ms=total_downtime,
        longest_outage_ms=longest.duration_ms if longest else 0,
        longest_outage_time=longest.start_time if longest else None,
        mttr_ms=total_downtime / len(incidents) if incidents else 0.0,
        current_streak_ms=streak_ms,
        current_streak_status=streak_status,
        total_addresses=len(unpacked),
        incidents=sorted(incidents, key=lambda i: i.start_time, reverse=True),
    )
