"""Tests for slot grid generation."""
from __future__ import annotations

from datetime import date, datetime, time

import pytest

from salonbook.hours import Interval
from salonbook.slots import SlotGrid, bookable_grid

MONDAY = date(2025, 3, 3)
LUNCH_GAP = (Interval(540, 720), Interval(780, 1080))


def _hours(grid):
    return [slot.strftime("%H:%M") for slot in grid]


def test_monday_with_lunch_gap_offers_hourly_starts() -> None:
    grid = SlotGrid(MONDAY, LUNCH_GAP, 60, 60)

    assert _hours(grid) == ["09:00", "10:00", "11:00", "13:00", "14:00", "15:00", "16:00", "17:00"]


def test_grid_can_be_iterated_more_than_once() -> None:
    grid = SlotGrid(MONDAY, LUNCH_GAP, 60, 60)

    assert list(grid) == list(grid)


def test_slot_must_fit_inside_a_single_interval() -> None:
    grid = SlotGrid(MONDAY, LUNCH_GAP, 60, 90)

    # 11:00 + 90 minutes runs into the lunch break; 17:00 + 90 runs past closing.
    assert _hours(grid) == ["09:00", "10:00", "13:00", "14:00", "15:00", "16:00"]


def test_finer_granularity() -> None:
    grid = SlotGrid(MONDAY, (Interval(540, 660),), 30, 60)

    assert _hours(grid) == ["09:00", "09:30", "10:00"]


def test_membership() -> None:
    grid = SlotGrid(MONDAY, LUNCH_GAP, 60, 60)

    assert datetime(2025, 3, 3, 13, 0) in grid
    assert datetime(2025, 3, 3, 12, 0) not in grid
    assert datetime(2025, 3, 3, 9, 30) not in grid


def test_closed_day_has_no_slots() -> None:
    assert list(SlotGrid(MONDAY, (), 60, 60)) == []


def test_bookable_grid_respects_lead_time() -> None:
    now = datetime.combine(MONDAY, time(9, 45))

    grid = bookable_grid(MONDAY, LUNCH_GAP, 60, 60, now, 30)

    assert _hours(grid)[0] == "11:00"


def test_not_before_keeps_the_later_cutoff() -> None:
    grid = SlotGrid(MONDAY, LUNCH_GAP, 60, 60, not_before=datetime(2025, 3, 3, 14, 0))

    narrowed = grid.not_before(datetime(2025, 3, 3, 10, 0))

    assert _hours(narrowed)[0] == "14:00"


@pytest.mark.parametrize("granularity, duration", [(0, 60), (60, 0), (-15, 60)])
def test_rejects_non_positive_sizes(granularity, duration) -> None:
    with pytest.raises(ValueError):
        SlotGrid(MONDAY, LUNCH_GAP, granularity, duration)
