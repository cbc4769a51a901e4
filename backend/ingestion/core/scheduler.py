from __future__ import annotations

"""Publish-time scheduling.

Spreads one run's items evenly over a daily window so a single ingestion does
not produce a burst of identical publish timestamps.
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo


UTC = timezone.utc
MIN_WINDOW = timedelta(hours=1)


def schedule_published_at(
    index: int,
    total: int,
    start_hour: int = 9,
    end_hour: int = 23,
    *,
    now: datetime | None = None,
    tz: str = "Asia/Tokyo",
) -> datetime:
    """Timestamp for item `index` of `total`, as UTC.

    Item i lands at `start + i * span / max(total, 1)` where the window is
    `[start_hour, end_hour)` of `now`'s local day. A window with
    `end <= start` degenerates to one hour starting at `start`.
    """
    zone = ZoneInfo(tz)
    local_now = (now or datetime.now(tz=UTC)).astimezone(zone)
    day = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    start = day + timedelta(hours=start_hour)
    end = day + timedelta(hours=end_hour)

    span = end - start
    if span <= timedelta(0):
        span = MIN_WINDOW
    step = span / max(total, 1)
    return (start + step * index).astimezone(UTC)
