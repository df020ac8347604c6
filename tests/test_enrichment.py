from __future__ import annotations

import pytest
from sqlalchemy import select

from nodewatch.db.models import EnrichmentStatus, EnrichmentTask
from nodewatch.services.enrichment import EnrichmentQueue, EnrichmentWorker, extract_ip, unique_ips


@pytest.mark.parametrize(
    ("address", "expected"),
    [
        ("1.2.3.4:9001", "1.2.3.4"),
        ("1.2.3.4", "1.2.3.4"),
        ("[2001:db8::1]:9001", "2001:db8::1"),
        ("2001:db8::1", "2001:db8::1"),
        ("node.example:9001", None),
        ("", None),
    ],
)
def test_extract_ip(address, expected):
    assert extract_ip(address) == expected


def test_unique_ips_keeps_first_seen_order():
    assert unique_ips(["2.2.2.2:1", "1.1.1.1:1", "2.2.2.2:2", "host:1"]) == ["2.2.2.2", "1.1.1.1"]


class FakeResolver:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls: list[str] = []

    async def resolve(self, ip):
        self.calls.append(ip)
        if ip in self.failing:
            raise RuntimeError("lookup refused")
        return {"country": "NL", "ip": ip}


async def enqueue(session_factory, ips):
    async with session_factory() as session:
        async with session.begin():
            return await EnrichmentQueue(session).enqueue(ips)


async def tasks_by_ip(session_factory):
    async with session_factory() as session:
        rows = await session.scalars(select(EnrichmentTask))
        return {t.ip: t for t in rows}


async def test_enqueue_skips_known_ips(session_factory):
    assert await enqueue(session_factory, ["1.1.1.1", "2.2.2.2", "1.1.1.1"]) == 2
    assert await enqueue(session_factory, ["2.2.2.2", "3.3.3.3"]) == 1
    assert set(await tasks_by_ip(session_factory)) == {"1.1.1.1", "2.2.2.2", "3.3.3.3"}


async def test_worker_resolves_and_records_failures(session_factory):
    await enqueue(session_factory, ["1.1.1.1", "2.2.2.2"])
    worker = EnrichmentWorker(session_factory, FakeResolver(failing={"2.2.2.2"}), max_attempts=3)

    report = await worker.run_once()

    assert (report.claimed, report.resolved, report.failed) == (2, 1, 1)
    tasks = await tasks_by_ip(session_factory)
    assert tasks["1.1.1.1"].status == EnrichmentStatus.DONE
    assert tasks["1.1.1.1"].result == {"country": "NL", "ip": "1.1.1.1"}
    assert tasks["2.2.2.2"].status == EnrichmentStatus.FAILED
    assert tasks["2.2.2.2"].attempts == 1
    assert tasks["2.2.2.2"].last_error == "lookup refused"


async def test_failed_tasks_retry_until_attempts_run_out(session_factory):
    await enqueue(session_factory, ["2.2.2.2"])
    resolver = FakeResolver(failing={"2.2.2.2"})
    worker = EnrichmentWorker(session_factory, resolver, max_attempts=2)

    await worker.run_once()
    await worker.run_once()
    final = await worker.run_once()

    assert resolver.calls == ["2.2.2.2", "2.2.2.2"]
    assert final.claimed == 0
    assert (await tasks_by_ip(session_factory))["2.2.2.2"].attempts == 2


async def test_batch_size_limits_claims(session_factory):
    await enqueue(session_factory, ["1.1.1.1", "2.2.2.2", "3.3.3.3"])
    worker = EnrichmentWorker(session_factory, FakeResolver(), batch_size=2)

    assert (await worker.run_once()).claimed == 2
    assert (await worker.run_once()).claimed == 1
    assert (await worker.run_once()).claimed == 0
