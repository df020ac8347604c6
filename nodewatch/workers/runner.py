"""One-shot entry points for an external scheduler (cron or similar).

Each invocation runs exactly one capture cycle or one retention sweep and exits
non-zero on failure, so the next scheduled run retries it.
"""
from __future__ import annotations

import asyncio
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from nodewatch.core.config import settings
from nodewatch.db.session import SessionLocal, engine
from nodewatch.services.capture import CaptureError, CaptureService
from nodewatch.services.rpc_client import RpcClient
from nodewatch.services.snapshots import purge_expired

logger = logging.getLogger(__name__)


async def run_capture(
    rpc_client: RpcClient | None = None,
    session_factory: async_sessionmaker = SessionLocal,
) -> int:
    service = CaptureService(rpc_client or RpcClient.from_settings(settings), session_factory)
    try:
        report = await service.capture_cycle()
    except CaptureError as exc:
        logger.error("capture failed", extra={"error": str(exc), "details": exc.details})
        return 1
    except SQLAlchemyError:
        # logged by the service
        return 1
    logger.info("capture stored", extra={"stored": report.stored, "captured_at": report.captured_at.isoformat()})
    return 0


async def run_cleanup(session_factory: async_sessionmaker = SessionLocal) -> int:
    try:
        deleted = await purge_expired(session_factory, settings.retention_days)
    except SQLAlchemyError:
        logger.exception("cleanup failed", extra={"retention_days": settings.retention_days})
        return 1
    logger.info("cleanup removed snapshots", extra={"deleted": deleted, "retention_days": settings.retention_days})
    return 0


async def _run_and_dispose(coro) -> int:
    try:
        return await coro
    finally:
        await engine.dispose()


def capture_main() -> None:
    logging.basicConfig(level=settings.log_level)
    sys.exit(asyncio.run(_run_and_dispose(run_capture())))


def cleanup_main() -> None:
    logging.basicConfig(level=settings.log_level)
    sys.exit(asyncio.run(_run_and_dispose(run_cleanup())))


if __name__ == "__main__":
    capture_main()
