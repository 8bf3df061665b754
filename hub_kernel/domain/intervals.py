"""
Half-open time intervals (``hub_kernel.domain.intervals``).

Responsibility
--------------
The single overlap predicate used for mentor session conflicts and slot
availability.  Intervals are half-open ``[start, end)``: a session ending at
10:00 does not conflict with one starting at 10:00.

Architecture position
---------------------
**Kernel domain layer** -- pure functions.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, TypeVar

from hub_kernel.exceptions import InvalidTimeRangeError

K = TypeVar("K")


@dataclass(frozen=True)
class TimeRange:
    """A half-open ``[start, end)`` interval."""
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if not self.start < self.end:
            raise InvalidTimeRangeError(self.start, self.end)

    @classmethod
    def from_duration(cls, start: datetime, minutes: int) -> TimeRange:
        return cls(start, start + timedelta(minutes=minutes))

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """True when the two half-open intervals share any instant."""
    return a.start < b.end and a.end > b.start


def find_conflicts(
    candidate: TimeRange,
    existing: Iterable[tuple[K, TimeRange]],
) -> list[K]:
    """Return the keys of every existing range that overlaps ``candidate``.

    Linear scan; callers bound ``existing`` to one mentor's sessions.
    """
    return [key for key, rng in existing if overlaps(candidate, rng)]
