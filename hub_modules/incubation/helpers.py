"""
Incubation pure helpers: evaluation scores, ISO weeks and
mentor availability windows.
"""

from __future__ import annotations

import re
import secrets
from datetime import UTC, date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping

from hub_kernel.domain.intervals import TimeRange

_WINDOW = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")


def compute_score(scores: Mapping[str, float | int | Decimal], scale: int) -> Decimal | None:
    """Mean of the criterion scores times ``scale``; None when nothing was scored."""
    if not scores:
        return None
    values = [Decimal(str(v)) for v in scores.values()]
    mean = sum(values, Decimal("0")) / len(values)
    return (mean * scale).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"{slug or 'cohort'}-{secrets.token_hex(3)}"


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def week_bounds(moment: datetime) -> TimeRange:
    """The ISO week (Monday 00:00 to the next Monday 00:00, UTC) containing ``moment``."""
    moment = as_utc(moment)
    monday = datetime.combine(
        moment.date() - timedelta(days=moment.weekday()), time.min, tzinfo=UTC,
    )
    return TimeRange(monday, monday + timedelta(days=7))


def parse_window(window: str) -> tuple[time, time]:
    """``"09:00-12:00"`` -> ``(time(9), time(12))``."""
    match = _WINDOW.match(window)
    if match is None:
        raise ValueError(f"availability window must look like HH:MM-HH:MM, got {window!r}")
    h1, m1, h2, m2 = (int(g) for g in match.groups())
    start, end = time(h1, m1), time(h2, m2)
    if start >= end:
        raise ValueError(f"availability window {window!r} ends before it starts")
    return start, end


def day_slots(day: date, windows: Iterable[str], slot_minutes: int) -> list[TimeRange]:
    """Consecutive ``slot_minutes`` slots that fit entirely inside each window."""
    step = timedelta(minutes=slot_minutes)
    slots: list[TimeRange] = []
    for window in windows:
        start, end = parse_window(window)
        cursor = datetime.combine(day, start, tzinfo=UTC)
        limit = datetime.combine(day, end, tzinfo=UTC)
        while cursor + step <= limit:
            slots.append(TimeRange(cursor, cursor + step))
            cursor += step
    return sorted(slots, key=lambda s: s.start)
