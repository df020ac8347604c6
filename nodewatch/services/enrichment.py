from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Protocol, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nodewatch.db.models import EnrichmentStatus, EnrichmentTask

logger = logging.getLogger(__name__)


def extract_ip(address: str) -> str | None:
    """Return the IP part of ``host:port`` (or ``[v6]:port``), or None for hostnames."""
    host = address.strip()
    if host.startswith("["):
        host = host[1:].split("]", 1)[0]
    elif host.count(":") == 1:
        host = host.rsplit(":", 1)[0]
    try:
        return str(ipaddress.ip_address(host))
    except ValueError:
        return None


def unique_ips(addresses: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for address in addresses:
        ip = extract_ip(address)
        if ip is not None:
            seen.setdefault(ip, None)
    return list(seen)


class GeoResolver(Protocol):
    async def resolve(self, ip: str) -> dict[str, Any]:  # pragma: no cover - interface
        ...


class EnrichmentQueue:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def enqueue(self, ips: Sequence[str]) -> int:
        if not ips:
            return 0
        existing = set(
            await self.session.scalars(select(EnrichmentTask.ip).where(EnrichmentTask.ip.in_(ips)))
        )
        fresh = [ip for ip in dict.fromkeys(ips) if ip not in existing]
        for ip in fresh:
            self.session.add(EnrichmentTask(ip=ip, status=EnrichmentStatus.PENDING, attempts=0))
        await self.session.flush()
        return len(fresh)

    async def claim_pending(self, *, limit: int, max_attempts: int) -> Sequence[EnrichmentTask]:
        rows = await self.session.scalars(
            select(EnrichmentTask)
            .where(
                or_(
                    EnrichmentTask.status == EnrichmentStatus.PENDING,
                    (EnrichmentTask.status == EnrichmentStatus.FAILED)
                    & (EnrichmentTask.attempts < max_attempts),
                )
            )
            .order_by(EnrichmentTask.id)
            .limit(limit)
        )
        return list(rows)

    async def complete(self, task: EnrichmentTask, result: dict[str, Any]) -> None:
        task.status = EnrichmentStatus.DONE
        task.attempts += 1
        task.result = result
        task.last_error = None
        await self.session.flush()

    async def fail(self, task: EnrichmentTask, error: str) -> None:
        task.status = EnrichmentStatus.FAILED
        task.attempts += 1
        task.last_error = error
        await self.session.flush()


@dataclass(frozen=True)
class EnrichmentReport:
    claimed: int
    resolved: int
    failed: int


class EnrichmentWorker:
    """Resolves queued IPs outside the capture path; failures stay queued for retry."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        resolver: GeoResolver,
        *,
        batch_size: int = 50,
        max_attempts: int = 3,
    ) -> None:
        self._session_factory = session_factory
        self._resolver = resolver
        self._batch_size = batch_size
        self._max_attempts = max_attempts

    async def run_once(self) -> EnrichmentReport:
        resolved = failed = 0
        async with self._session_factory() as session:
            async with session.begin():
                queue = EnrichmentQueue(session)
                tasks = await queue.claim_pending(limit=self._batch_size, max_attempts=self._max_attempts)
                for task in tasks:
                    try:
                        result = await self._resolver.resolve(task.ip)
                    except Exception as exc:
                        logger.warning("enrichment lookup failed", extra={"ip": task.ip, "error": str(exc)})
                        await queue.fail(task, str(exc) or exc.__class__.__name__)
                        failed += 1
                        continue
                    await queue.complete(task, result)
                    resolved += 1
        logger.info("enrichment batch done", extra={"claimed": len(tasks), "resolved": resolved, "failed": failed})
        return EnrichmentReport(claimed=len(tasks), resolved=resolved, failed=failed)
