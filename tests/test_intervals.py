"""Tests for the IntervalSet type."""

from __future__ import annotations

import datetime as dt

from claritycall.modules.availability.intervals import IntervalSet


def at(hour: int, minute: int = 0) -> dt.datetime:
    return dt.datetime(2025, 1, 15, hour, minute, tzinfo=dt.UTC)


class TestIntervalSet:
    """Tests for merging and gap finding."""

    def test_overlapping_intervals_merge(self) -> None:
        s = IntervalSet([(at(9), at(10)), (at(9, 30), at(11))])
        assert list(s) == [(at(9), at(11))]

    def test_touching_intervals_merge(self) -> None:
        s = IntervalSet([(at(9), at(10)), (at(10), at(11))])
        assert list(s) == [(at(9), at(11))]

    def test_empty_intervals_ignored(self) -> None:
        s = IntervalSet([(at(9), at(9)), (at(12), at(11))])
        assert not s
        assert len(s) == 0

    def test_add_keeps_order(self) -> None:
        s = IntervalSet()
        s.add(at(14), at(15))
        s.add(at(8), at(9))
        s.add(at(8, 30), at(10))
        assert list(s) == [(at(8), at(10)), (at(14), at(15))]

    def test_add_bridges_two_intervals(self) -> None:
        s = IntervalSet([(at(8), at(9)), (at(10), at(11))])
        s.add(at(9), at(10))
        assert list(s) == [(at(8), at(11))]

    def test_gaps_with_nested_interval(self) -> None:
        """A nested interval produces no gap of its own."""
        s = IntervalSet([(at(9), at(10)), (at(9, 30), at(9, 45))])
        assert s.gaps(at(8), at(12)) == [(at(8), at(9)), (at(10), at(12))]

    def test_gaps_empty_set_is_whole_window(self) -> None:
        assert IntervalSet().gaps(at(8), at(12)) == [(at(8), at(12))]

    def test_gaps_interval_covering_window(self) -> None:
        s = IntervalSet([(at(7), at(13))])
        assert s.gaps(at(8), at(12)) == []

    def test_gaps_inverted_window(self) -> None:
        assert IntervalSet([(at(9), at(10))]).gaps(at(12), at(8)) == []

    def test_gaps_ignore_intervals_outside_window(self) -> None:
        s = IntervalSet([(at(6), at(7)), (at(13), at(14))])
        assert s.gaps(at(8), at(12)) == [(at(8), at(12))]

    def test_intersection(self) -> None:
        left = IntervalSet([(at(8), at(12)), (at(13), at(17))])
        right = IntervalSet([(at(9), at(14))])
        assert list(left.intersection(right)) == [(at(9), at(12)), (at(13), at(14))]

    def test_clip(self) -> None:
        s = IntervalSet([(at(8), at(10)), (at(11), at(13))])
        assert list(s.clip(at(9), at(12))) == [(at(9), at(10)), (at(11), at(12))]

    def test_total_duration(self) -> None:
        s = IntervalSet([(at(8), at(9)), (at(10), at(10, 30))])
        assert s.total_duration == dt.timedelta(minutes=90)

    def test_equality(self) -> None:
        assert IntervalSet([(at(8), at(9))]) == IntervalSet([(at(8), at(8, 30)), (at(8, 30), at(9))])
