"""Holiday calendar lookups."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from .models import Holiday

NATIONAL = "national"


@dataclass(frozen=True)
class HolidayInfo:
    day: date
    name: str
    scope: str

    @property
    def is_national(self) -> bool:
        return self.scope == NATIONAL

    def to_dict(self) -> dict[str, object]:
        return {"date": self.day.isoformat(), "name": self.name, "scope": self.scope}


class HolidayCalendar:
    """Answers whether a date is a holiday, and of which scope.

    When a date carries both a national and a regional entry, the national one wins.
    """

    def __init__(self, holidays: Iterable[HolidayInfo] = ()) -> None:
        self._by_date: dict[date, HolidayInfo] = {}
        for holiday in holidays:
            current = self._by_date.get(holiday.day)
            if current is None or (holiday.is_national and not current.is_national):
                self._by_date[holiday.day] = holiday

    def lookup(self, day: date) -> HolidayInfo | None:
        return self._by_date.get(day)

    def is_full_closure(self, day: date) -> bool:
        holiday = self.lookup(day)
        return holiday is not None and holiday.is_national

    def __len__(self) -> int:
        return len(self._by_date)

    @classmethod
    def from_db(cls, start: date, end: date | None = None) -> "HolidayCalendar":
        """Load the holidays stored between ``start`` and ``end`` (inclusive)."""
        end = end or start
        rows = Holiday.query.filter(
            Holiday.holiday_date >= start,
            Holiday.holiday_date <= end,
        ).all()
        return cls(HolidayInfo(row.holiday_date, row.name, row.scope) for row in rows)
