from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ingestion.core.scheduler import schedule_published_at


UTC = timezone.utc
# 12:00 JST on 2026-10-18; the 09:00-23:00 JST window is 00:00-14:00 UTC.
NOW = datetime(2026, 10, 18, 3, 0, tzinfo=UTC)
WINDOW_START = datetime(2026, 10, 18, 0, 0, tzinfo=UTC)
WINDOW_END = datetime(2026, 10, 18, 14, 0, tzinfo=UTC)


@pytest.mark.parametrize("total", [1, 2, 3, 7, 25])
def test_schedule_is_non_decreasing_and_inside_window(total: int):
    times = [schedule_published_at(i, total, 9, 23, now=NOW) for i in range(total)]

    assert times == sorted(times)
    assert all(WINDOW_START <= t < WINDOW_END for t in times)
    assert all(t.tzinfo is not None and t.utcoffset() == timedelta(0) for t in times)


def test_first_item_lands_on_window_start():
    assert schedule_published_at(0, 4, 9, 23, now=NOW) == WINDOW_START


def test_items_are_evenly_spaced():
    times = [schedule_published_at(i, 7, 9, 23, now=NOW) for i in range(7)]
    gaps = {b - a for a, b in zip(times, times[1:])}
    assert gaps == {timedelta(hours=2)}


def test_inverted_window_degenerates_to_one_hour():
    start = datetime(2026, 10, 18, 14, 0, tzinfo=UTC)  # 23:00 JST
    times = [schedule_published_at(i, 4, 23, 9, now=NOW) for i in range(4)]

    assert times[0] == start
    assert all(start <= t < start + timedelta(hours=1) for t in times)
    assert times[1] - times[0] == timedelta(minutes=15)


def test_zero_total_is_treated_as_one():
    assert schedule_published_at(0, 0, 9, 23, now=NOW) == WINDOW_START


def test_window_follows_configured_timezone():
    t = schedule_published_at(0, 1, 9, 23, now=NOW, tz="UTC")
    assert t == datetime(2026, 10, 18, 9, 0, tzinfo=UTC)
