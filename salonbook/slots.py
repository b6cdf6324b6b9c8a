"""Slot grid generation."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator

from .hours import Interval


class SlotGrid:
    """Candidate start times for one service on one day.

    Iterating is lazy and can be repeated; the same inputs always produce the
    same sequence. A slot is valid when ``[start, start + duration)`` fits
    inside a single open interval, whether or not ``duration`` is a multiple
    of the granularity.
    """

    def __init__(
        self,
        day: date,
        intervals: Iterable[Interval],
        granularity_minutes: int,
        duration_minutes: int,
        not_before: datetime | None = None,
    ) -> None:
        if granularity_minutes <= 0:
            raise ValueError("granularity_minutes must be positive")
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        self.day = day
        self.intervals = tuple(intervals)
        self.granularity_minutes = granularity_minutes
        self.duration_minutes = duration_minutes
        self.cutoff = not_before

    def __iter__(self) -> Iterator[datetime]:
        midnight = datetime.combine(self.day, time.min)
        for interval in self.intervals:
            minute = interval.start
            while minute + self.duration_minutes <= interval.end:
                start = midnight + timedelta(minutes=minute)
                if self.cutoff is None or start >= self.cutoff:
                    yield start
                minute += self.granularity_minutes

    def __contains__(self, candidate: object) -> bool:
        return any(start == candidate for start in self)

    def not_before(self, cutoff: datetime) -> "SlotGrid":
        """The same grid restricted to start times at or after ``cutoff``."""
        if self.cutoff is not None and self.cutoff > cutoff:
            cutoff = self.cutoff
        return SlotGrid(self.day, self.intervals, self.granularity_minutes, self.duration_minutes, cutoff)

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)


def bookable_grid(
    day: date,
    intervals: Iterable[Interval],
    granularity_minutes: int,
    duration_minutes: int,
    now: datetime,
    lead_minutes: int,
) -> SlotGrid:
    """Grid for ``day`` with nothing earlier than ``now + lead_minutes`` offered."""
    grid = SlotGrid(day, intervals, granularity_minutes, duration_minutes)
    return grid.not_before(now + timedelta(minutes=lead_minutes))
