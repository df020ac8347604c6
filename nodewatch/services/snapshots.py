from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

from sqlalchemy import and_, asc, case, delete, desc, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nodewatch.analysis.models import ensure_utc
from nodewatch.db.models import Snapshot
from nodewatch.rpc.schemas import Pod

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleAggregate:
    captured_at: datetime
    total_nodes: int
    active_nodes: int
    avg_uptime: float
    total_storage: int
    used_storage: int


def _as_int(value: float | None) -> int | None:
    return int(value) if value is not None else None


def snapshot_from_pod(pod: Pod, captured_at: datetime) -> Snapshot:
    captured_at = ensure_utc(captured_at)
    last_observed_at = int(pod.last_seen_timestamp)
    return Snapshot(
        address=pod.address,
        node_identity=pod.pubkey,
        is_reachable=pod.is_public,
        version=pod.version,
        last_observed_at=last_observed_at,
        uptime_seconds=_as_int(pod.uptime),
        rpc_port=pod.rpc_port,
        storage_committed=_as_int(pod.storage_committed),
        storage_used=_as_int(pod.storage_used),
        storage_usage_percent=pod.storage_usage_percent,
        staleness_sec=int(captured_at.timestamp()) - last_observed_at,
        captured_at=captured_at,
    )


class SnapshotStore:
    """Query layer over ``node_snapshots``.

    Range queries include both bounds and return rows ordered by
    ``captured_at`` ascending. Writes only append or delete; the caller owns the
    transaction, so one ``insert_batch`` inside ``session.begin()`` is atomic.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_batch(self, pods: Iterable[Pod], captured_at: datetime) -> int:
        rows = [snapshot_from_pod(pod, captured_at) for pod in pods]
        if not rows:
            return 0
        self.session.add_all(rows)
        await self.session.flush()
        logger.info("stored snapshot batch", extra={"count": len(rows), "captured_at": captured_at.isoformat()})
        return len(rows)

    async def latest_cycle(self) -> Sequence[Snapshot]:
        latest = await self.session.scalar(select(func.max(Snapshot.captured_at)))
        if latest is None:
            return []
        rows = await self.session.scalars(
            select(Snapshot)
            .where(Snapshot.captured_at == latest)
            .order_by(desc(Snapshot.address))
        )
        return list(rows)

    async def range_by_address(self, address: str, start: datetime, end: datetime) -> Sequence[Snapshot]:
        rows = await self.session.scalars(
            select(Snapshot)
            .where(
                Snapshot.address == address,
                Snapshot.captured_at >= start,
                Snapshot.captured_at <= end,
            )
            .order_by(asc(Snapshot.captured_at), asc(Snapshot.id))
        )
        return list(rows)

    async def range_by_identity(self, identity: str, start: datetime, end: datetime) -> Sequence[Snapshot]:
        rows = await self.session.scalars(
            select(Snapshot)
            .where(
                Snapshot.node_identity == identity,
                Snapshot.captured_at >= start,
                Snapshot.captured_at <= end,
            )
            .order_by(asc(Snapshot.captured_at), asc(Snapshot.id))
        )
        return list(rows)

    async def cycle_timestamps(self, start: datetime, end: datetime) -> list[datetime]:
        rows = await self.session.scalars(
            select(distinct(Snapshot.captured_at))
            .where(Snapshot.captured_at >= start, Snapshot.captured_at <= end)
            .order_by(Snapshot.captured_at)
        )
        return [ensure_utc(ts) for ts in rows]

    async def aggregate_by_cycle(
        self,
        start: datetime,
        end: datetime,
        *,
        active_staleness_sec: int = 120,
    ) -> list[CycleAggregate]:
        """Network-wide totals per poll cycle, grouped by the database."""
        active_address = case(
            (
                and_(
                    Snapshot.is_reachable.is_(True),
                    Snapshot.node_identity.is_not(None),
                    Snapshot.staleness_sec <= active_staleness_sec,
                ),
                Snapshot.address,
            ),
        )
        stmt = (
            select(
                Snapshot.captured_at,
                func.count(distinct(Snapshot.address)).label("total_nodes"),
                func.count(distinct(active_address)).label("active_nodes"),
                func.avg(Snapshot.uptime_seconds).label("avg_uptime"),
                func.sum(Snapshot.storage_committed).label("total_storage"),
                func.sum(Snapshot.storage_used).label("used_storage"),
            )
            .where(Snapshot.captured_at >= start, Snapshot.captured_at <= end)
            .group_by(Snapshot.captured_at)
            .order_by(Snapshot.captured_at)
        )
        result = await self.session.execute(stmt)
        return [
            CycleAggregate(
                captured_at=ensure_utc(row.captured_at),
                total_nodes=int(row.total_nodes),
                active_nodes=int(row.active_nodes),
                avg_uptime=float(row.avg_uptime or 0),
                total_storage=int(row.total_storage or 0),
                used_storage=int(row.used_storage or 0),
            )
            for row in result
        ]

    async def delete_older_than(self, cutoff: datetime) -> int:
        result = await self.session.execute(
            delete(Snapshot)
            .where(Snapshot.captured_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        deleted = result.rowcount or 0
        logger.info("deleted expired snapshots", extra={"deleted": deleted, "cutoff": cutoff.isoformat()})
        return deleted


async def purge_expired(
    session_factory: async_sessionmaker,
    retention_days: int,
    now: datetime | None = None,
) -> int:
    """Retention sweep: drop every snapshot older than ``retention_days`` in one transaction."""
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)
    async with session_factory() as session:
        async with session.begin():
            return await SnapshotStore(session).delete_older_than(cutoff)
