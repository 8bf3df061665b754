"""
Clock -- the only source of "now" for hub services.

Sale windows, registration windows, invoice due dates, booking codes and
mentor slot filtering all read the time through an injected ``Clock``, so
tests can pin it with ``DeterministicClock``.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_TIME = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def _require_aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        raise ValueError("DeterministicClock requires a timezone-aware datetime")
    return moment


class Clock(ABC):
    """Both methods return aware datetimes; ``now_utc`` is normalized to UTC."""

    @abstractmethod
    def now(self) -> datetime: ...

    def now_utc(self) -> datetime:
        return self.now().astimezone(timezone.utc)


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    A clock that only moves when told to.

    Starts at Monday 3 March 2025, 09:00 UTC unless given another aware
    moment.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = _require_aware(fixed_time) if fixed_time is not None else DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = _require_aware(moment)

    def advance(self, seconds: int | float = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Move one second forward and return the new time."""
        self.advance(1)
        return self._current
