from __future__ import annotations

from datetime import timedelta, timezone

import pytest

from factories import T0, minutes, obs
from nodewatch.analysis.heatmap import (
    CELL_COUNT,
    aggregate_heatmap,
    bucket_of,
    cell_index,
    combine_heatmaps,
)


def cell(heatmap, day, hour):
    return heatmap.cells[cell_index(day, hour)]


def test_always_168_cells_in_day_major_order():
    heatmap = aggregate_heatmap("a", [])

    assert len(heatmap.cells) == CELL_COUNT
    assert [(c.day_of_week, c.hour) for c in heatmap.cells[:2]] == [(0, 0), (0, 1)]
    assert (heatmap.cells[-1].day_of_week, heatmap.cells[-1].hour) == (6, 23)
    assert heatmap.overall_activity_percent == 0.0
    assert not any(c.has_data for c in heatmap.cells)


def test_sunday_is_day_zero():
    assert bucket_of(T0) == (0, 10)
    assert bucket_of(T0 + timedelta(days=1)) == (1, 10)
    assert bucket_of(T0 + timedelta(days=6)) == (6, 10)


def test_buckets_follow_the_configured_timezone():
    minus_five = timezone(timedelta(hours=-5))
    # 10:00 UTC Sunday is 05:00 Sunday at UTC-5; 02:00 UTC Sunday is 21:00 Saturday.
    assert bucket_of(T0, minus_five) == (0, 5)
    assert bucket_of(T0.replace(hour=2), minus_five) == (6, 21)


def test_counts_sum_to_number_of_snapshots():
    snapshots = [
        obs(T0),
        obs(T0 + minutes(30), stale_by=minutes(15)),
        obs(T0 + minutes(61)),
        obs(T0 + timedelta(days=2)),
    ]

    heatmap = aggregate_heatmap("a", snapshots)

    assert heatmap.total_snapshots == 4
    assert heatmap.active_snapshots == 3
    assert cell(heatmap, 0, 10).total_snapshots == 2
    assert cell(heatmap, 0, 10).active_snapshots == 1
    assert cell(heatmap, 0, 10).activity_percent == 50.0
    assert cell(heatmap, 0, 11).total_snapshots == 1
    assert cell(heatmap, 2, 10).total_snapshots == 1


def test_combined_heatmap_sums_counts_instead_of_averaging_percentages():
    a = aggregate_heatmap("a", [obs(T0)])
    b = aggregate_heatmap(
        "b",
        [obs(T0 + minutes(m), stale_by=minutes(30), address="b") for m in (1, 2, 3)],
    )

    combined = combine_heatmaps("all", [a, b])

    merged = cell(combined, 0, 10)
    assert merged.total_snapshots == 4
    assert merged.active_snapshots == 1
    assert merged.activity_percent == pytest.approx(25.0)
    assert combined.address == "all"
    # inputs untouched
    assert cell(a, 0, 10).total_snapshots == 1


def test_aggregation_is_repeatable():
    snapshots = [obs(T0 + minutes(m * 7)) for m in range(50)]

    first = aggregate_heatmap("a", snapshots)
    second = aggregate_heatmap("a", snapshots)

    assert first == second


def test_duplicate_capture_times_are_both_counted():
    heatmap = aggregate_heatmap("a", [obs(T0), obs(T0, stale_by=minutes(20))])

    assert heatmap.total_snapshots == 2
    assert cell(heatmap, 0, 10).total_snapshots == 2
    assert cell(heatmap, 0, 10).active_snapshots == 1
