"""Booking conflict resolution and the atomic reservation step.

Listing slots never locks: it may serve a slightly stale view. Writers
serialize on ``BookingLock`` rows and re-check inside their transaction; the
unique ``slot_key`` constraint on appointments is the last line of defence.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable

from flask import current_app
from sqlalchemy import insert, update
from sqlalchemy.exc import IntegrityError

from .errors import SlotConflict
from .extensions import db
from .models import Appointment, BookingLock


@dataclass
class SlotPartition:
    available: list[datetime] = field(default_factory=list)
    booked: list[datetime] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "available": [slot.strftime("%H:%M") for slot in self.available],
            "booked": [slot.strftime("%H:%M") for slot in self.booked],
        }


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Half-open ``[start, end)`` intersection test."""
    return start < other_end and other_start < end


def partition_slots(
    grid: Iterable[datetime],
    duration: timedelta,
    appointments: Iterable[Appointment],
) -> SlotPartition:
    """Split candidate starts into free and already-booked ones.

    Every candidate lands in exactly one of the two lists, in grid order.
    """
    busy = [(appt.starts_at, appt.ends_at) for appt in appointments]
    partition = SlotPartition()
    for start in grid:
        end = start + duration
        if any(overlaps(start, end, busy_start, busy_end) for busy_start, busy_end in busy):
            partition.booked.append(start)
        else:
            partition.available.append(start)
    return partition


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, datetime.min.time())
    return start, start + timedelta(days=1)


def active_appointments_for_day(day: date) -> list[Appointment]:
    """Non-cancelled appointments touching ``day`` (including ones that started the day before)."""
    start, end = day_bounds(day)
    return (
        Appointment.query.filter(
            Appointment.slot_key.isnot(None),
            Appointment.starts_at < end,
            Appointment.ends_at > start,
        )
        .order_by(Appointment.starts_at)
        .all()
    )


def find_conflict(start: datetime, end: datetime, exclude_id: int | None = None) -> Appointment | None:
    query = Appointment.query.filter(
        Appointment.slot_key.isnot(None),
        Appointment.starts_at < end,
        Appointment.ends_at > start,
    )
    if exclude_id is not None:
        query = query.filter(Appointment.appointment_id != exclude_id)
    return query.first()


def day_lock_key(day: date) -> str:
    return f"day:{day.isoformat()}"


def subscription_lock_key(subscription_id: int) -> str:
    return f"subscription:{subscription_id}"


def lock_keys(*keys: str) -> None:
    """Take the write locks for ``keys`` inside the current transaction.

    Keys are locked in sorted order. The first writer for a key creates its
    row; losing that race rolls the transaction back and locks again, so this
    must be the first write of the transaction.
    """
    ordered = sorted(set(keys))
    try:
        _bump_lock_rows(ordered)
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info("Lock row created concurrently, retrying %s", ordered)
        _bump_lock_rows(ordered)


def _bump_lock_rows(keys: list[str]) -> None:
    for key in keys:
        result = db.session.execute(
            update(BookingLock)
            .where(BookingLock.lock_key == key)
            .values(version=BookingLock.version + 1)
        )
        if result.rowcount == 0:
            db.session.execute(insert(BookingLock).values(lock_key=key, version=1))


def ensure_slot_free(start: datetime, end: datetime, exclude_id: int | None = None) -> None:
    conflicting = find_conflict(start, end, exclude_id=exclude_id)
    if conflicting is not None:
        raise SlotConflict(
            "The selected time is no longer available. Please pick another slot.",
            starts_at=start.isoformat(),
        )


def flush_reservation(appointment: Appointment) -> None:
    """Write ``appointment`` so the unique slot constraint is checked now.

    A constraint violation means a concurrent writer took the slot first.
    """
    try:
        db.session.flush()
    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.warning(
            "Slot %s taken by a concurrent booking", appointment.slot_key, exc_info=exc
        )
        raise SlotConflict(
            "The selected time is no longer available. Please pick another slot.",
            starts_at=appointment.starts_at.isoformat(),
        ) from exc
