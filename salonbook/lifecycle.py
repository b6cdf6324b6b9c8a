"""Appointment state machine.

    PENDING ──> CONFIRMED ──> COMPLETED
       │            │ └─────> NO_SHOW
       └────────────┴───────> CANCELED

Every transition is written as ``UPDATE ... WHERE status = <expected>`` so a
concurrent request that changed the status first makes this one fail instead
of overwriting it. Writes whose outcome depends on the start time (cancel,
move) also pin ``starts_at``, so a reschedule committed in between is not
overwritten with a decision taken against the old time.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import update

from .errors import AlreadyTerminal, ConcurrentUpdate, InvalidTransition
from .extensions import db
from .models import Appointment
from .policies import CancellationDecision

PENDING = "PENDING"
CONFIRMED = "CONFIRMED"
COMPLETED = "COMPLETED"
CANCELED = "CANCELED"
NO_SHOW = "NO_SHOW"

TRANSITIONS = {
    PENDING: frozenset({CONFIRMED, CANCELED}),
    CONFIRMED: frozenset({COMPLETED, CANCELED, NO_SHOW}),
}
TERMINAL_STATUSES = frozenset({COMPLETED, CANCELED, NO_SHOW})

# Plan-covered and staff-created bookings skip staff confirmation.
_PRE_TRUSTED_ORIGINS = frozenset({"SUBSCRIPTION", "ADMIN_CREATED"})
_PAY_LATER_ORIGINS = frozenset({"SINGLE", "ADMIN_CREATED"})


def initial_status(origin: str) -> str:
    return CONFIRMED if origin in _PRE_TRUSTED_ORIGINS else PENDING


def initial_payment_status(origin: str) -> str:
    return "PENDING" if origin in _PAY_LATER_ORIGINS else "NONE"


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def check_transition(current: str, target: str) -> None:
    if current in TERMINAL_STATUSES:
        raise AlreadyTerminal(
            f"Appointment is already {current.lower()} and cannot be changed.",
            status=current,
        )
    if target not in TRANSITIONS.get(current, ()):
        raise InvalidTransition(
            f"Cannot change appointment status from {current} to {target}.",
            status=current,
            target=target,
        )


def ensure_active(appointment: Appointment) -> None:
    if is_terminal(appointment.status):
        raise AlreadyTerminal(
            f"Appointment is already {appointment.status.lower()} and cannot be changed.",
            status=appointment.status,
        )


def _compare_and_set(
    appointment: Appointment,
    expected: str,
    values: dict,
    expected_starts_at: datetime | None = None,
) -> None:
    statement = update(Appointment).where(
        Appointment.appointment_id == appointment.appointment_id,
        Appointment.status == expected,
    )
    if expected_starts_at is not None:
        statement = statement.where(Appointment.starts_at == expected_starts_at)
    result = db.session.execute(
        statement.values(**values).execution_options(synchronize_session=False)
    )
    db.session.refresh(appointment)
    if result.rowcount == 0:
        # Another request changed the status or the time first.
        ensure_active(appointment)
        raise ConcurrentUpdate(
            "Appointment was changed by another request. Reload it and try again.",
            status=appointment.status,
        )


def transition(
    appointment: Appointment,
    target: str,
    expected_starts_at: datetime | None = None,
    **values: object,
) -> Appointment:
    """Move ``appointment`` to ``target`` atomically, writing ``values`` alongside."""
    expected = appointment.status
    check_transition(expected, target)
    values["status"] = target
    if target == CANCELED:
        values["slot_key"] = None
    _compare_and_set(appointment, expected, values, expected_starts_at=expected_starts_at)
    return appointment


def move(appointment: Appointment, starts_at: datetime, ends_at: datetime) -> Appointment:
    """Change the time of a non-terminal appointment, keeping its status."""
    ensure_active(appointment)
    _compare_and_set(
        appointment,
        appointment.status,
        {
            "starts_at": starts_at,
            "ends_at": ends_at,
            "slot_key": Appointment.make_slot_key(starts_at),
        },
        expected_starts_at=appointment.starts_at,
    )
    return appointment


def confirm(appointment: Appointment) -> Appointment:
    return transition(appointment, CONFIRMED)


def complete(appointment: Appointment, paid: bool = False) -> Appointment:
    # No entitlement effect: the session was consumed when it was booked.
    values: dict[str, object] = {}
    if paid:
        values["payment_status"] = "PAID"
    return transition(appointment, COMPLETED, **values)


def mark_no_show(appointment: Appointment) -> Appointment:
    return transition(appointment, NO_SHOW)


def cancel(
    appointment: Appointment,
    actor: str,
    decision: CancellationDecision,
    now: datetime,
    reason: str | None = None,
    decided_starts_at: datetime | None = None,
) -> Appointment:
    """Cancel and apply the entitlement side effects of the cancellation policy.

    ``decided_starts_at`` is the start time ``decision`` was evaluated
    against; the cancellation fails with ``ConcurrentUpdate`` if the
    appointment has been moved since.
    """
    forfeited = decision.penalized and appointment.origin == "SUBSCRIPTION"
    transition(
        appointment,
        CANCELED,
        expected_starts_at=decided_starts_at or appointment.starts_at,
        canceled_by=actor,
        cancel_reason=reason,
        canceled_at=now,
        entitlement_forfeited=forfeited,
    )

    voucher = appointment.voucher
    if voucher is not None and not decision.penalized:
        voucher.is_used = False
        voucher.used_at = None
    return appointment
