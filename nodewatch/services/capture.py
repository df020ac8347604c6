from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker

from nodewatch.rpc.schemas import JsonRpcErrorResponse, JsonRpcRequest, PodsResult
from nodewatch.services.enrichment import EnrichmentQueue, unique_ips
from nodewatch.services.rpc_client import RpcClient
from nodewatch.services.snapshots import SnapshotStore

logger = logging.getLogger(__name__)

CAPTURE_METHOD = "get-pods-with-stats"


class CaptureError(RuntimeError):
    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.details = details


@dataclass(frozen=True)
class CaptureReport:
    stored: int
    total_count: int | None
    captured_at: datetime
    enqueued_ips: int
    endpoint: str | None
    method: str | None


class CaptureService:
    """One poll cycle: fetch every pod, then persist the cycle in a single transaction.

    IP enrichment markers are written afterwards in their own transaction, so a
    failure there never loses the snapshot batch.
    """

    def __init__(self, rpc_client: RpcClient, session_factory: async_sessionmaker) -> None:
        self._rpc_client = rpc_client
        self._session_factory = session_factory

    async def capture_cycle(self, now: datetime | None = None) -> CaptureReport:
        call = await self._rpc_client.call(JsonRpcRequest(method=CAPTURE_METHOD, params=[], id=1))
        response = call.response
        if isinstance(response, JsonRpcErrorResponse):
            logger.error("rpc error during capture", extra={"error": response.error.model_dump()})
            raise CaptureError("Failed to fetch pod data", details=response.error.model_dump())

        try:
            result = PodsResult.model_validate(response.result)
        except ValidationError as exc:
            logger.error("invalid pod list from rpc", extra={"errors": exc.errors()})
            raise CaptureError(
                "Invalid response from pRPC",
                details=exc.errors(include_url=False, include_context=False),
            ) from exc

        captured_at = now or datetime.now(timezone.utc)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    stored = await SnapshotStore(session).insert_batch(result.pods, captured_at)
        except Exception:
            logger.exception("failed to store snapshot cycle", extra={"pods": len(result.pods)})
            raise

        enqueued = await self._enqueue_enrichment([pod.address for pod in result.pods])

        logger.info(
            "capture completed",
            extra={"stored": stored, "total_count": result.total_count, "endpoint": call.endpoint},
        )
        return CaptureReport(
            stored=stored,
            total_count=result.total_count,
            captured_at=captured_at,
            enqueued_ips=enqueued,
            endpoint=call.endpoint,
            method=call.method,
        )

    async def _enqueue_enrichment(self, addresses: list[str]) -> int:
        ips = unique_ips(addresses)
        if not ips:
            return 0
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    return await EnrichmentQueue(session).enqueue(ips)
        except Exception:
            logger.exception("failed to enqueue enrichment", extra={"ips": len(ips)})
            return 0
