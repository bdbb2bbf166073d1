"""Sorted, non-overlapping sets of half-open time intervals."""

from __future__ import annotations

import datetime as dt
from typing import Iterable, Iterator, Optional

Interval = tuple[dt.datetime, dt.datetime]


class IntervalSet:
    """A normalized set of ``[start, end)`` intervals.

    Intervals are kept sorted by start; overlapping and touching intervals
    are merged on insertion and empty ones are ignored. All datetimes must be
    timezone-aware so that comparisons are between instants.
    """

    __slots__ = ("_intervals",)

    def __init__(self, intervals: Optional[Iterable[Interval]] = None) -> None:
        self._intervals: list[Interval] = []
        if intervals is not None:
            for start, end in sorted(intervals):
                self._append_sorted(start, end)

    def _append_sorted(self, start: dt.datetime, end: dt.datetime) -> None:
        if end <= start:
            return
        if self._intervals and start <= self._intervals[-1][1]:
            last_start, last_end = self._intervals[-1]
            self._intervals[-1] = (last_start, max(last_end, end))
        else:
            self._intervals.append((start, end))

    def add(self, start: dt.datetime, end: dt.datetime) -> None:
        """Insert an interval, merging with anything it overlaps or touches."""
        if end <= start:
            return
        merged: list[Interval] = []
        placed = False
        for cur_start, cur_end in self._intervals:
            if cur_end < start:
                merged.append((cur_start, cur_end))
            elif end < cur_start:
                if not placed:
                    merged.append((start, end))
                    placed = True
                merged.append((cur_start, cur_end))
            else:
                start, end = min(start, cur_start), max(end, cur_end)
        if not placed:
            merged.append((start, end))
        self._intervals = sorted(merged)

    def gaps(self, window_start: dt.datetime, window_end: dt.datetime) -> list[Interval]:
        """Return the pieces of ``[window_start, window_end)`` not covered.

        Single left-to-right scan with a cursor that only ever moves forward,
        so nested intervals never produce a gap of their own.
        """
        if window_start >= window_end:
            return []
        result: list[Interval] = []
        cursor = window_start
        for start, end in self._intervals:
            if end <= cursor:
                continue
            if start >= window_end:
                break
            if start > cursor:
                result.append((cursor, start))
            cursor = max(cursor, end)
        if cursor < window_end:
            result.append((cursor, window_end))
        return result

    def clip(self, start: dt.datetime, end: dt.datetime) -> IntervalSet:
        """Return the part of this set inside ``[start, end)``."""
        return IntervalSet(
            (max(s, start), min(e, end))
            for s, e in self._intervals
            if s < end and e > start
        )

    def intersection(self, other: IntervalSet) -> IntervalSet:
        """Two-pointer intersection of two normalized sets."""
        result: list[Interval] = []
        i = j = 0
        left, right = self._intervals, other._intervals
        while i < len(left) and j < len(right):
            start = max(left[i][0], right[j][0])
            end = min(left[i][1], right[j][1])
            if start < end:
                result.append((start, end))
            if left[i][1] <= right[j][1]:
                i += 1
            else:
                j += 1
        return IntervalSet(result)

    @property
    def total_duration(self) -> dt.timedelta:
        return sum((end - start for start, end in self._intervals), dt.timedelta())

    def __iter__(self) -> Iterator[Interval]:
        return iter(self._intervals)

    def __len__(self) -> int:
        return len(self._intervals)

    def __bool__(self) -> bool:
        return bool(self._intervals)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IntervalSet):
            return NotImplemented
        return self._intervals == other._intervals

    def __repr__(self) -> str:
        spans = ", ".join(f"{s.isoformat()}..{e.isoformat()}" for s, e in self._intervals)
        return f"<IntervalSet [{spans}]>"
