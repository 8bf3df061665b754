"""
Space booking pure helpers: operating hours and free slots.
"""

from __future__ import annotations

import re
import secrets
from datetime import UTC, date, datetime, time, timedelta
from typing import Iterable

from hub_kernel.domain.intervals import TimeRange

_CLOCK = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_clock(value: str) -> time:
    """``"08:30"`` -> ``time(8, 30)``."""
    match = _CLOCK.match(value)
    if match is None:
        raise ValueError(f"time of day must look like HH:MM, got {value!r}")
    hour, minute = (int(g) for g in match.groups())
    return time(hour, minute)


def as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def within_operating_hours(
    span: TimeRange, available_from: str | None, available_until: str | None,
) -> bool:
    """
    Start and end times of day fall inside the resource's hours.

    Only the time of day is compared, so a multi-day booking from 08:00 on
    one day to 18:00 on another fits 08:00-20:00.  Without both bounds the
    resource is open around the clock.
    """
    if not available_from or not available_until:
        return True
    opens, closes = parse_clock(available_from), parse_clock(available_until)
    starts, ends = span.start.astimezone(UTC).time(), span.end.astimezone(UTC).time()
    return starts >= opens and ends <= closes


def opening_window(day: date, available_from: str | None, available_until: str | None) -> TimeRange:
    """The bookable part of ``day`` in UTC; the whole day when hours are unset."""
    if available_from and available_until:
        return TimeRange(
            datetime.combine(day, parse_clock(available_from), tzinfo=UTC),
            datetime.combine(day, parse_clock(available_until), tzinfo=UTC),
        )
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return TimeRange(start, start + timedelta(days=1))


def hours_per_day(available_from: str | None, available_until: str | None) -> int:
    """Whole opening hours in a day; 24 when hours are unset."""
    if not available_from or not available_until:
        return 24
    opens, closes = parse_clock(available_from), parse_clock(available_until)
    minutes = (closes.hour * 60 + closes.minute) - (opens.hour * 60 + opens.minute)
    return max(0, minutes // 60)


def free_slots(
    window: TimeRange,
    taken: Iterable[TimeRange],
    slot_minutes: int,
    buffer_minutes: int = 0,
) -> list[TimeRange]:
    """
    Consecutive ``slot_minutes`` slots in ``window`` around ``taken``.

    Slots before a booking run up to its start; after it the walk resumes
    at its end plus ``buffer_minutes``.
    """
    step = timedelta(minutes=slot_minutes)
    buffer = timedelta(minutes=buffer_minutes)
    slots: list[TimeRange] = []
    cursor = window.start
    for booked in sorted(taken, key=lambda r: r.start):
        while cursor + step <= min(booked.start, window.end):
            slots.append(TimeRange(cursor, cursor + step))
            cursor += step
        cursor = max(cursor, booked.end + buffer)
    while cursor + step <= window.end:
        slots.append(TimeRange(cursor, cursor + step))
        cursor += step
    return slots


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"{slug or 'space'}-{secrets.token_hex(3)}"
