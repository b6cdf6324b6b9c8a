"""Tests for rescheduling appointments."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta

import pytest
from conftest import NOW, upcoming_monday

from salonbook import bookings
from salonbook.errors import (AlreadyTerminal, DenialReason, EntitlementDenied,
                              RescheduleBlocked, SlotConflict, SlotUnavailable)
from salonbook.extensions import db
from salonbook.models import Appointment
from salonbook.policies import evaluate_reschedule


@pytest.fixture
def booked(seed):
    appointment = bookings.create_appointment(
        seed.subscriber_id, seed.massage_id, datetime(2025, 3, 5, 10, 0), "SUBSCRIPTION", now=NOW
    )
    return appointment.appointment_id


def test_reschedule_policy_threshold() -> None:
    starts_at = datetime(2025, 3, 5, 10, 0)

    assert evaluate_reschedule(starts_at, datetime(2025, 3, 5, 2, 0), 8).allowed is True
    assert evaluate_reschedule(starts_at, datetime(2025, 3, 5, 5, 0), 8).allowed is False


def test_reschedule_moves_and_keeps_status(seed, booked) -> None:
    appointment = bookings.reschedule_appointment(booked, datetime(2025, 3, 6, 14, 0), now=NOW)

    assert appointment.starts_at == datetime(2025, 3, 6, 14, 0)
    assert appointment.ends_at == datetime(2025, 3, 6, 15, 0)
    assert appointment.slot_key == "2025-03-06T14:00"
    assert appointment.status == "CONFIRMED"

    listing = bookings.get_available_slots(date(2025, 3, 5), seed.massage_id, now=NOW).to_dict()
    assert "10:00" in listing["available"]


def test_reschedule_inside_notice_window_is_blocked(seed, booked) -> None:
    with pytest.raises(RescheduleBlocked) as excinfo:
        bookings.reschedule_appointment(booked, datetime(2025, 3, 6, 14, 0), now=datetime(2025, 3, 5, 5, 0))

    assert excinfo.value.to_dict()["hours_until"] == 5.0
    assert db.session.get(Appointment, booked).starts_at == datetime(2025, 3, 5, 10, 0)


def test_reschedule_into_taken_slot_conflicts(seed, booked) -> None:
    bookings.create_appointment(seed.walk_in_id, seed.massage_id, datetime(2025, 3, 6, 14, 0), "SINGLE", now=NOW)

    with pytest.raises(SlotConflict):
        bookings.reschedule_appointment(booked, datetime(2025, 3, 6, 14, 0), now=NOW)

    assert db.session.get(Appointment, booked).slot_key == "2025-03-05T10:00"


def test_reschedule_to_an_overlapping_time_on_the_same_day(seed, booked) -> None:
    # Moving within the same day must not conflict with itself.
    appointment = bookings.reschedule_appointment(booked, datetime(2025, 3, 5, 11, 0), now=NOW)

    assert appointment.starts_at == datetime(2025, 3, 5, 11, 0)


def test_reschedule_to_closed_or_off_grid_time(seed, booked) -> None:
    with pytest.raises(SlotUnavailable):
        bookings.reschedule_appointment(booked, datetime(2025, 3, 9, 10, 0), now=NOW)
    with pytest.raises(SlotUnavailable):
        bookings.reschedule_appointment(booked, datetime(2025, 3, 6, 12, 0), now=NOW)


def test_terminal_appointment_cannot_be_rescheduled(seed, booked) -> None:
    bookings.cancel_appointment(booked, "client", now=NOW)

    with pytest.raises(AlreadyTerminal):
        bookings.reschedule_appointment(booked, datetime(2025, 3, 6, 14, 0), now=NOW)


def test_reschedule_into_a_full_cycle_is_denied(seed, booked) -> None:
    for day in (1, 2, 3, 4):
        bookings.create_appointment(
            seed.subscriber_id, seed.massage_id, datetime(2025, 4, day, 10, 0), "SUBSCRIPTION", now=NOW
        )

    with pytest.raises(EntitlementDenied) as excinfo:
        bookings.reschedule_appointment(booked, datetime(2025, 4, 7, 10, 0), now=NOW)

    assert excinfo.value.reason is DenialReason.MONTHLY_LIMIT_REACHED
    assert db.session.get(Appointment, booked).starts_at == datetime(2025, 3, 5, 10, 0)


def test_reschedule_endpoint(client, seed) -> None:
    monday = upcoming_monday()
    tuesday = (monday + timedelta(days=1)).isoformat()
    appointment = bookings.create_appointment(
        seed.walk_in_id, seed.massage_id, datetime.combine(monday, time(10)), "SINGLE"
    )

    response = client.put(
        f"/appointments/{appointment.appointment_id}/reschedule",
        json={"starts_at": f"{tuesday}T17:00:00Z"},
    )

    assert response.status_code == 200
    assert response.get_json()["appointment"]["starts_at"] == f"{tuesday}T14:00:00"


def test_reschedule_endpoint_validation(client, seed) -> None:
    assert client.put("/appointments/1/reschedule", json={}).status_code == 400
    response = client.put("/appointments/1/reschedule", json={"starts_at": "not-a-date"})
    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_datetime"
    starts_at = f"{upcoming_monday().isoformat()}T14:00:00"
    assert client.put("/appointments/999/reschedule", json={"starts_at": starts_at}).status_code == 404
