"""
Half-open time ranges, overlap detection and the deterministic clock.
"""

from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st

from hub_kernel.domain.clock import DeterministicClock
from hub_kernel.domain.intervals import TimeRange, find_conflicts, overlaps
from hub_kernel.exceptions import InvalidTimeRangeError

BASE = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return BASE + timedelta(minutes=minutes)


class TestTimeRange:

    def test_end_must_follow_start(self):
        with pytest.raises(InvalidTimeRangeError):
            TimeRange(at(60), at(60))
        with pytest.raises(InvalidTimeRangeError):
            TimeRange(at(60), at(0))

    def test_from_duration(self):
        rng = TimeRange.from_duration(at(0), 45)
        assert rng.end == at(45)
        assert rng.duration == timedelta(minutes=45)


class TestOverlaps:

    def test_touching_ranges_do_not_overlap(self):
        """[9:00, 10:00) and [10:00, 11:00) share no instant."""
        assert not overlaps(TimeRange(at(0), at(60)), TimeRange(at(60), at(120)))
        assert not overlaps(TimeRange(at(60), at(120)), TimeRange(at(0), at(60)))

    def test_partial_and_contained_overlap(self):
        outer = TimeRange(at(0), at(120))
        assert overlaps(outer, TimeRange(at(30), at(60)))
        assert overlaps(outer, TimeRange(at(90), at(180)))
        assert overlaps(TimeRange(at(-30), at(1)), outer)

    @given(
        a_start=st.integers(min_value=0, max_value=600),
        a_len=st.integers(min_value=1, max_value=240),
        b_start=st.integers(min_value=0, max_value=600),
        b_len=st.integers(min_value=1, max_value=240),
    )
    def test_symmetric(self, a_start, a_len, b_start, b_len):
        a = TimeRange.from_duration(at(a_start), a_len)
        b = TimeRange.from_duration(at(b_start), b_len)
        assert overlaps(a, b) == overlaps(b, a)

    @given(start=st.integers(min_value=0, max_value=600), length=st.integers(min_value=1, max_value=240))
    def test_range_overlaps_itself(self, start, length):
        rng = TimeRange.from_duration(at(start), length)
        assert overlaps(rng, rng)

    def test_find_conflicts_returns_keys_in_order(self):
        existing = [
            ("morning", TimeRange(at(0), at(60))),
            ("late-morning", TimeRange(at(90), at(150))),
            ("afternoon", TimeRange(at(240), at(300))),
        ]
        assert find_conflicts(TimeRange(at(30), at(120)), existing) == ["morning", "late-morning"]
        assert find_conflicts(TimeRange(at(60), at(90)), existing) == []


class TestDeterministicClock:

    def test_requires_aware_time(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2025, 1, 1))

    def test_stable_until_advanced(self):
        clock = DeterministicClock(BASE)
        assert clock.now() == clock.now() == BASE
        assert clock.tick() == BASE + timedelta(seconds=1)
        clock.advance(59)
        assert clock.now_utc() == at(1)

    def test_set_time_jumps(self):
        clock = DeterministicClock(BASE)
        clock.advance(3600)
        clock.set_time(at(-60))
        assert clock.now() == at(-60)
