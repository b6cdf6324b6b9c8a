"""Business hours resolution for a calendar date."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time

from .errors import DataIntegrityError
from .extensions import db
from .holidays import HolidayCalendar, HolidayInfo
from .models import BusinessHours

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class Interval:
    """Open interval ``[start, end)`` in minutes of the day."""

    start: int
    end: int

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class WeekdaySchedule:
    weekday: int
    is_open: bool
    intervals: tuple[Interval, ...] = ()


@dataclass(frozen=True)
class DayHours:
    day: date
    intervals: tuple[Interval, ...] = ()
    holiday: HolidayInfo | None = None
    reason: str | None = None

    @property
    def is_closed(self) -> bool:
        return not self.intervals


def weekday_index(day: date) -> int:
    """Weekday number used by the schedule table: 0=Sunday ... 6=Saturday."""
    return (day.weekday() + 1) % 7


def minute_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


def validate_intervals(raw: list[dict]) -> tuple[Interval, ...]:
    """Parse and check schedule intervals: in-range, sorted and non-overlapping.

    Raises ``ValueError`` describing the first problem found.
    """
    intervals = []
    for item in raw:
        try:
            start, end = int(item["start"]), int(item["end"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError("each interval needs integer start and end minutes") from exc
        if not 0 <= start < end <= MINUTES_PER_DAY:
            raise ValueError(f"interval {start}-{end} is outside the day or empty")
        intervals.append(Interval(start, end))

    for previous, current in zip(intervals, intervals[1:]):
        if current.start < previous.end:
            raise ValueError("intervals must be sorted and must not overlap")
    return tuple(intervals)


def load_weekday_schedule(weekday: int, settings) -> WeekdaySchedule:
    """Stored schedule for ``weekday``, or the configured default opening hours."""
    row = db.session.get(BusinessHours, weekday)
    if row is not None:
        try:
            intervals = validate_intervals(row.intervals or [])
        except ValueError as exc:
            raise DataIntegrityError(f"stored hours for weekday {weekday} are invalid: {exc}") from exc
        return WeekdaySchedule(weekday=row.weekday, is_open=bool(row.is_open), intervals=intervals)

    if weekday in settings.default_open_weekdays:
        default = Interval(minute_of_day(settings.default_open_time), minute_of_day(settings.default_close_time))
        return WeekdaySchedule(weekday=weekday, is_open=True, intervals=(default,))
    return WeekdaySchedule(weekday=weekday, is_open=False)


def resolve_day_hours(
    day: date,
    schedule: WeekdaySchedule,
    calendar: HolidayCalendar,
    regional_closes: bool = False,
) -> DayHours:
    """Open intervals for ``day``, or an empty (closed) result with a reason."""
    holiday = calendar.lookup(day)

    if not schedule.is_open or not schedule.intervals:
        return DayHours(day=day, holiday=holiday, reason="closed_weekday")

    if holiday is not None and (holiday.is_national or regional_closes):
        return DayHours(day=day, holiday=holiday, reason="holiday")

    # Regional holidays only annotate the day unless configured to close it.
    return DayHours(day=day, intervals=schedule.intervals, holiday=holiday)
