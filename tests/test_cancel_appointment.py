"""Tests for appointment cancellation."""
from __future__ import annotations

from datetime import datetime, time, timedelta

import pytest
from conftest import NOW, upcoming_monday
from sqlalchemy import update

from salonbook import bookings, lifecycle
from salonbook.config import get_settings
from salonbook.errors import AlreadyTerminal, ConcurrentUpdate, InvalidRequest, NotFound
from salonbook.extensions import db
from salonbook.identity import build_token
from salonbook.models import Appointment, Voucher
from salonbook.policies import evaluate_cancellation


def test_cancellation_policy_boundaries() -> None:
    starts_at = datetime(2025, 3, 10, 10, 0)

    assert evaluate_cancellation(starts_at, datetime(2025, 3, 10, 2, 0), 8).late is False
    assert evaluate_cancellation(starts_at, datetime(2025, 3, 10, 2, 1), 8).penalized is True
    assert evaluate_cancellation(starts_at, datetime(2025, 3, 10, 2, 1), 8, actor="admin").penalized is False


def test_cancel_records_who_and_why(seed) -> None:
    appointment = bookings.create_appointment(
        seed.walk_in_id, seed.massage_id, datetime(2025, 3, 5, 10, 0), "SINGLE", now=NOW
    )

    result = bookings.cancel_appointment(appointment.appointment_id, "client", reason="Viagem", now=NOW)

    assert result.appointment.status == "CANCELED"
    assert result.appointment.canceled_by == "client"
    assert result.appointment.cancel_reason == "Viagem"
    assert result.appointment.canceled_at == NOW
    assert result.appointment.slot_key is None
    assert result.to_dict()["hours_until"] == 50.0


def test_cancelling_twice_is_rejected(seed) -> None:
    appointment = bookings.create_appointment(
        seed.walk_in_id, seed.massage_id, datetime(2025, 3, 5, 10, 0), "SINGLE", now=NOW
    )
    bookings.cancel_appointment(appointment.appointment_id, "client", now=NOW)

    with pytest.raises(AlreadyTerminal):
        bookings.cancel_appointment(appointment.appointment_id, "client", now=NOW)


def test_completed_appointment_cannot_be_cancelled(seed) -> None:
    appointment = bookings.create_appointment(
        seed.subscriber_id, seed.massage_id, datetime(2025, 3, 5, 10, 0), "SUBSCRIPTION", now=NOW
    )
    bookings.complete_appointment(appointment.appointment_id)

    with pytest.raises(AlreadyTerminal):
        bookings.cancel_appointment(appointment.appointment_id, "admin", now=NOW)


def test_unknown_actor_and_appointment(seed) -> None:
    with pytest.raises(InvalidRequest):
        bookings.cancel_appointment(1, "robot", now=NOW)
    with pytest.raises(NotFound):
        bookings.cancel_appointment(999, "client", now=NOW)


def test_timely_cancellation_returns_the_voucher(seed) -> None:
    voucher = Voucher(client_id=seed.walk_in_id, any_service=True)
    db.session.add(voucher)
    db.session.commit()
    appointment = bookings.create_appointment(
        seed.walk_in_id, seed.massage_id, datetime(2025, 3, 5, 10, 0), "VOUCHER",
        voucher_id=voucher.voucher_id, now=NOW,
    )
    assert voucher.is_used

    bookings.cancel_appointment(appointment.appointment_id, "client", now=NOW)

    assert db.session.get(Voucher, voucher.voucher_id).is_used is False


def test_late_cancellation_keeps_the_voucher_spent(seed) -> None:
    voucher = Voucher(client_id=seed.walk_in_id, any_service=True)
    db.session.add(voucher)
    db.session.commit()
    appointment = bookings.create_appointment(
        seed.walk_in_id, seed.massage_id, datetime(2025, 3, 3, 10, 0), "VOUCHER",
        voucher_id=voucher.voucher_id, now=NOW,
    )

    bookings.cancel_appointment(appointment.appointment_id, "client", now=NOW)

    assert db.session.get(Voucher, voucher.voucher_id).is_used is True


def test_cancel_endpoint(client, seed) -> None:
    appointment = bookings.create_appointment(
        seed.subscriber_id, seed.massage_id, datetime.combine(upcoming_monday(), time(10)), "SUBSCRIPTION"
    )
    token = build_token({"client_id": seed.subscriber_id, "role": "admin"})

    response = client.put(
        f"/appointments/{appointment.appointment_id}/cancel",
        json={"reason": "Agenda da profissional"},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["appointment"]["canceled_by"] == "admin"
    assert body["penalized"] is False
    assert body["lost_treatment"] is False

    again = client.put(f"/appointments/{appointment.appointment_id}/cancel", json={"canceled_by": "client"})
    assert again.status_code == 409
    assert again.get_json()["error"] == "already_terminal"


def _upcoming_plan_session(seed) -> int:
    appointment = bookings.create_appointment(
        seed.subscriber_id, seed.massage_id, datetime.combine(upcoming_monday(), time(10)), "SUBSCRIPTION"
    )
    return appointment.appointment_id


def test_client_token_cannot_cancel_as_staff(client, seed) -> None:
    appointment_id = _upcoming_plan_session(seed)
    token = build_token({"client_id": seed.subscriber_id, "role": "client"})

    response = client.put(
        f"/appointments/{appointment_id}/cancel",
        json={"canceled_by": "admin"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 403
    assert response.get_json()["error"] == "forbidden"

    response = client.put(f"/appointments/{appointment_id}/cancel", json={"canceled_by": "admin"})
    assert response.status_code == 403

    appointment = db.session.get(Appointment, appointment_id)
    assert appointment.status == "CONFIRMED"
    assert appointment.canceled_by is None


def test_staff_can_record_a_client_cancellation(client, seed) -> None:
    appointment_id = _upcoming_plan_session(seed)
    token = build_token({"role": "admin"})

    response = client.put(
        f"/appointments/{appointment_id}/cancel",
        json={"canceled_by": "Client"},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert response.status_code == 200
    assert response.get_json()["appointment"]["canceled_by"] == "client"


@pytest.mark.parametrize("canceled_by", [5, ["admin"], "robot"])
def test_cancel_endpoint_rejects_malformed_actor(client, seed, canceled_by) -> None:
    appointment_id = _upcoming_plan_session(seed)

    response = client.put(f"/appointments/{appointment_id}/cancel", json={"canceled_by": canceled_by})

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"
    assert db.session.get(Appointment, appointment_id).status == "CONFIRMED"


def test_cancel_decided_before_a_reschedule_is_not_applied(seed) -> None:
    appointment = bookings.create_appointment(
        seed.subscriber_id, seed.massage_id, datetime(2025, 3, 3, 10, 0), "SUBSCRIPTION", now=NOW
    )
    appointment_id = appointment.appointment_id
    old_start = appointment.starts_at
    decision = evaluate_cancellation(old_start, NOW, get_settings().min_cancellation_hours)
    assert decision.penalized

    # A reschedule to next week commits between the decision and the write.
    new_start = old_start + timedelta(days=7)
    db.session.execute(
        update(Appointment)
        .where(Appointment.appointment_id == appointment_id)
        .values(
            starts_at=new_start,
            ends_at=new_start + timedelta(minutes=60),
            slot_key=Appointment.make_slot_key(new_start),
        )
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    with pytest.raises(ConcurrentUpdate) as excinfo:
        lifecycle.cancel(appointment, "client", decision, NOW, decided_starts_at=old_start)
    db.session.rollback()

    assert excinfo.value.http_status == 409
    reloaded = db.session.get(Appointment, appointment_id)
    assert reloaded.status == "CONFIRMED"
    assert reloaded.starts_at == new_start
    assert reloaded.entitlement_forfeited is False
