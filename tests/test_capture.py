from __future__ import annotations

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from factories import T0, make_pod, make_rpc_client, rpc_error, rpc_success
from nodewatch.db.models import EnrichmentTask, Snapshot
from nodewatch.services import snapshots as snapshots_module
from nodewatch.services.capture import CaptureError, CaptureService
from nodewatch.workers.runner import run_capture, run_cleanup


def pods_handler(pods, total_count=None):
    def handler(request):
        result = {"pods": [p.model_dump() for p in pods]}
        if total_count is not None:
            result["total_count"] = total_count
        return httpx.Response(200, json=rpc_success(result))

    return handler


async def count(session_factory, model):
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model))


async def test_capture_stores_every_pod_with_one_timestamp(session_factory):
    pods = [make_pod("10.0.0.1:9001"), make_pod("10.0.0.2:9001", pubkey="pk-2")]
    service = CaptureService(make_rpc_client(pods_handler(pods, total_count=2)), session_factory)

    report = await service.capture_cycle(now=T0)

    assert report.stored == 2
    assert report.total_count == 2
    assert report.captured_at == T0
    assert report.endpoint == "http://a.test/rpc"
    assert report.method == "get-pods-with-stats"
    assert report.enqueued_ips == 2
    async with session_factory() as session:
        stamps = set(await session.scalars(select(Snapshot.captured_at)))
    assert len(stamps) == 1


async def test_capture_falls_back_to_baseline_method(session_factory):
    def handler(request):
        if b"get-pods-with-stats" in request.content:
            return httpx.Response(404)
        return httpx.Response(200, json=rpc_success({"pods": [make_pod().model_dump()]}))

    service = CaptureService(make_rpc_client(handler, endpoints=("http://a.test/rpc",)), session_factory)

    report = await service.capture_cycle(now=T0)

    assert report.method == "get-pods"
    assert report.total_count is None
    assert report.stored == 1


async def test_enrichment_markers_are_written_once_per_ip(session_factory):
    pods = [make_pod("10.0.0.1:9001"), make_pod("10.0.0.1:9002"), make_pod("node.example:9001")]
    service = CaptureService(make_rpc_client(pods_handler(pods)), session_factory)

    first = await service.capture_cycle(now=T0)
    second = await service.capture_cycle(now=T0.replace(minute=1))

    assert first.enqueued_ips == 1
    assert second.enqueued_ips == 0
    assert await count(session_factory, EnrichmentTask) == 1
    assert await count(session_factory, Snapshot) == 6


async def test_upstream_error_aborts_capture(session_factory):
    def handler(request):
        return httpx.Response(200, json=rpc_error(-32000, "node busy"))

    service = CaptureService(make_rpc_client(handler), session_factory)

    with pytest.raises(CaptureError) as excinfo:
        await service.capture_cycle(now=T0)

    assert excinfo.value.details == {"code": -32000, "message": "node busy", "data": None}
    assert await count(session_factory, Snapshot) == 0


async def test_exhausted_endpoints_abort_capture(session_factory):
    service = CaptureService(make_rpc_client(lambda request: httpx.Response(502)), session_factory)

    with pytest.raises(CaptureError) as excinfo:
        await service.capture_cycle(now=T0)

    assert excinfo.value.details["message"] == "All endpoints failed"
    assert await count(session_factory, Snapshot) == 0


async def test_malformed_pod_list_aborts_capture(session_factory):
    def handler(request):
        return httpx.Response(200, json=rpc_success({"pods": [{"address": "x"}]}))

    service = CaptureService(make_rpc_client(handler), session_factory)

    with pytest.raises(CaptureError, match="Invalid response"):
        await service.capture_cycle(now=T0)
    assert await count(session_factory, Snapshot) == 0


async def test_runner_exit_codes(session_factory):
    ok = make_rpc_client(pods_handler([make_pod()]))
    failing = make_rpc_client(lambda request: httpx.Response(500))

    assert await run_capture(ok, session_factory) == 0
    assert await run_capture(failing, session_factory) == 1
    assert await count(session_factory, Snapshot) == 1


@pytest.fixture
def broken_second_row(monkeypatch):
    """Make the second pod of a batch violate NOT NULL so the flush fails mid-batch."""
    original = snapshots_module.snapshot_from_pod

    def build(pod, captured_at):
        row = original(pod, captured_at)
        if pod.address == "10.0.0.2:9001":
            row.address = None
        return row

    monkeypatch.setattr(snapshots_module, "snapshot_from_pod", build)


async def test_persistence_fault_rolls_back_whole_cycle(session_factory, broken_second_row):
    pods = [make_pod("10.0.0.1:9001"), make_pod("10.0.0.2:9001"), make_pod("10.0.0.3:9001")]
    service = CaptureService(make_rpc_client(pods_handler(pods)), session_factory)

    with pytest.raises(SQLAlchemyError):
        await service.capture_cycle(now=T0)

    assert await count(session_factory, Snapshot) == 0
    assert await count(session_factory, EnrichmentTask) == 0


async def test_runner_reports_persistence_fault(session_factory, broken_second_row):
    pods = [make_pod("10.0.0.1:9001"), make_pod("10.0.0.2:9001")]

    assert await run_capture(make_rpc_client(pods_handler(pods)), session_factory) == 1
    assert await count(session_factory, Snapshot) == 0


async def test_fractional_pod_numbers_are_stored_truncated(session_factory):
    def handler(request):
        pod = make_pod().model_dump()
        pod.update(last_seen_timestamp=T0.timestamp() + 0.25, uptime=3600.5, storage_used=250.75)
        return httpx.Response(200, json=rpc_success({"pods": [pod]}))

    service = CaptureService(make_rpc_client(handler), session_factory)

    report = await service.capture_cycle(now=T0)

    assert report.stored == 1
    async with session_factory() as session:
        row = await session.scalar(select(Snapshot))
    assert row.last_observed_at == int(T0.timestamp())
    assert row.uptime_seconds == 3600
    assert row.storage_used == 250
    assert row.staleness_sec == 0


async def test_cleanup_runner_needs_no_rpc_client(session_factory):
    assert await run_cleanup(session_factory) == 0
