from __future__ import annotations

from datetime import timedelta

import pytest

from factories import T0, make_pod, minutes
from nodewatch.analysis.models import ensure_utc
from nodewatch.services.snapshots import SnapshotStore, purge_expired, snapshot_from_pod


def cycle(captured_at):
    return [
        make_pod("10.0.0.1:9001", pubkey="pk-1", last_seen=captured_at),
        make_pod("10.0.0.2:9001", pubkey="pk-2", last_seen=captured_at - minutes(10), uptime=1800),
        make_pod("10.0.0.3:9001", pubkey=None, last_seen=captured_at, uptime=None, committed=None, used=None),
    ]


@pytest.fixture
async def store(session):
    store = SnapshotStore(session)
    for offset in (0, 1, 2):
        await store.insert_batch(cycle(T0 + minutes(offset)), T0 + minutes(offset))
    return store


def test_snapshot_from_pod_fixes_staleness():
    row = snapshot_from_pod(make_pod(last_seen=T0 - timedelta(seconds=90)), T0)

    assert row.staleness_sec == 90
    assert row.node_identity == "pk-1"
    assert row.is_reachable is True
    assert row.captured_at == T0


async def test_insert_empty_batch_is_noop(session):
    assert await SnapshotStore(session).insert_batch([], T0) == 0
    assert await SnapshotStore(session).latest_cycle() == []


async def test_latest_cycle_returns_newest_batch_only(store):
    rows = await store.latest_cycle()

    assert [r.address for r in rows] == ["10.0.0.3:9001", "10.0.0.2:9001", "10.0.0.1:9001"]
    assert {ensure_utc(r.captured_at) for r in rows} == {T0 + minutes(2)}


async def test_range_by_address_includes_both_bounds(store):
    rows = await store.range_by_address("10.0.0.1:9001", T0, T0 + minutes(1))

    assert [ensure_utc(r.captured_at) for r in rows] == [T0, T0 + minutes(1)]


async def test_range_by_identity_spans_addresses(store):
    await store.insert_batch([make_pod("10.9.9.9:9001", pubkey="pk-1", last_seen=T0)], T0 + minutes(1))

    rows = await store.range_by_identity("pk-1", T0, T0 + minutes(2))

    assert [ensure_utc(r.captured_at) for r in rows] == [T0, T0 + minutes(1), T0 + minutes(1), T0 + minutes(2)]
    assert sorted({r.address for r in rows}) == ["10.0.0.1:9001", "10.9.9.9:9001"]


async def test_cycle_timestamps(store):
    assert await store.cycle_timestamps(T0 + minutes(1), T0 + minutes(5)) == [T0 + minutes(1), T0 + minutes(2)]


async def test_aggregate_by_cycle_counts_active_nodes(store):
    aggregates = await store.aggregate_by_cycle(T0, T0 + minutes(2))

    assert len(aggregates) == 3
    first = aggregates[0]
    assert first.captured_at == T0
    assert first.total_nodes == 3
    # only the fresh, public node with an identity counts
    assert first.active_nodes == 1
    assert first.avg_uptime == pytest.approx(2700)
    assert first.total_storage == 2000
    assert first.used_storage == 500


async def test_aggregate_threshold_is_configurable(store):
    aggregates = await store.aggregate_by_cycle(T0, T0, active_staleness_sec=900)

    assert aggregates[0].active_nodes == 2


async def test_delete_older_than(store):
    deleted = await store.delete_older_than(T0 + minutes(1))

    assert deleted == 3
    assert await store.cycle_timestamps(T0 - minutes(10), T0 + minutes(10)) == [T0 + minutes(1), T0 + minutes(2)]


async def test_duplicate_capture_time_keeps_both_rows(session):
    store = SnapshotStore(session)
    pod = make_pod("10.0.0.1:9001", pubkey="pk-1", last_seen=T0)
    await store.insert_batch([pod], T0)
    await store.insert_batch([pod], T0)

    latest = await store.latest_cycle()
    [aggregate] = await store.aggregate_by_cycle(T0, T0)

    assert len(latest) == 2
    assert len(await store.range_by_address("10.0.0.1:9001", T0, T0)) == 2
    assert aggregate.total_nodes == 1
    assert aggregate.total_storage == 2000


async def test_purge_expired_commits_in_its_own_transaction(session_factory):
    async with session_factory() as session:
        async with session.begin():
            store = SnapshotStore(session)
            await store.insert_batch(cycle(T0), T0)
            await store.insert_batch(cycle(T0 + timedelta(days=6)), T0 + timedelta(days=6))

    deleted = await purge_expired(session_factory, 3, now=T0 + timedelta(days=7))

    assert deleted == 3
    async with session_factory() as session:
        assert await SnapshotStore(session).cycle_timestamps(T0, T0 + timedelta(days=7)) == [T0 + timedelta(days=6)]
