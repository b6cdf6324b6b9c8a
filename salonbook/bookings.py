"""Booking operations: slot listing, creation, cancellation, reschedule and
the lifecycle/entitlement queries built on them.

Each write runs as one transaction on ``db.session``; expected outcomes are
raised as ``BookingError`` subclasses after rolling the transaction back.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from . import lifecycle, notifications
from .availability import (active_appointments_for_day, day_lock_key, ensure_slot_free,
                           flush_reservation, lock_keys, partition_slots,
                           subscription_lock_key)
from .config import SchedulingSettings, get_settings
from .entitlements import EntitlementSummary, authorize, billing_cycle, summarize, week_window
from .errors import (BookingError, ClosedDay, DataIntegrityError, InvalidRequest,
                     NotFound, RescheduleBlocked, SlotConflict, SlotUnavailable,
                     VoucherRejected)
from .extensions import db
from .holidays import HolidayCalendar, HolidayInfo
from .hours import DayHours, load_weekday_schedule, resolve_day_hours, weekday_index
from .models import (APPOINTMENT_ORIGINS, Appointment, Client, HiddenAppointment,
                     Service, Subscription, Voucher)
from .policies import ACTORS, CancellationDecision, evaluate_cancellation, evaluate_reschedule
from .slots import SlotGrid, bookable_grid


@dataclass
class SlotListing:
    day: date
    service_id: int
    duration_minutes: int
    available: list[datetime] = field(default_factory=list)
    booked: list[datetime] = field(default_factory=list)
    closed: bool = False
    reason: str | None = None
    holiday: HolidayInfo | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "date": self.day.isoformat(),
            "service_id": self.service_id,
            "duration_minutes": self.duration_minutes,
            "available": [slot.strftime("%H:%M") for slot in self.available],
            "booked": [slot.strftime("%H:%M") for slot in self.booked],
            "closed": self.closed,
            "reason": self.reason,
            "holiday": self.holiday.to_dict() if self.holiday else None,
        }


@dataclass(frozen=True)
class CancellationResult:
    appointment: Appointment
    decision: CancellationDecision

    @property
    def penalized(self) -> bool:
        return self.decision.penalized

    def to_dict(self) -> dict[str, object]:
        return {
            "appointment": self.appointment.to_dict(),
            "penalized": self.decision.penalized,
            "lost_treatment": self.appointment.entitlement_forfeited,
            "hours_until": round(self.decision.hours_until, 2),
        }


def _get_service(service_id: int) -> Service:
    service = db.session.get(Service, service_id)
    if service is None or not service.is_active:
        raise NotFound("Service not found")
    return service


def _get_appointment(appointment_id: int) -> Appointment:
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFound("Appointment not found")
    if appointment.ends_at <= appointment.starts_at:
        current_app.logger.error(
            "Appointment %s ends at %s before it starts at %s",
            appointment.appointment_id,
            appointment.ends_at,
            appointment.starts_at,
        )
        raise DataIntegrityError(f"appointment {appointment.appointment_id} has an inverted time window")
    return appointment


def day_hours(day: date, settings: SchedulingSettings) -> DayHours:
    calendar = HolidayCalendar.from_db(day)
    schedule = load_weekday_schedule(weekday_index(day), settings)
    return resolve_day_hours(day, schedule, calendar, regional_closes=settings.regional_holidays_close)


def get_available_slots(day: date, service_id: int, now: datetime | None = None) -> SlotListing:
    """Bookable and already-booked start times for ``service_id`` on ``day``.

    Reads only; the result may be stale by the time a booking is attempted.
    """
    settings = get_settings()
    now = now or settings.now()
    service = _get_service(service_id)

    hours = day_hours(day, settings)
    if hours.is_closed:
        return SlotListing(
            day=day,
            service_id=service.service_id,
            duration_minutes=service.duration_minutes,
            closed=True,
            reason=hours.reason,
            holiday=hours.holiday,
        )

    grid = bookable_grid(
        day,
        hours.intervals,
        settings.slot_granularity_minutes,
        service.duration_minutes,
        now,
        settings.minimum_lead_minutes,
    )
    partition = partition_slots(grid, grid.duration, active_appointments_for_day(day))
    return SlotListing(
        day=day,
        service_id=service.service_id,
        duration_minutes=service.duration_minutes,
        available=partition.available,
        booked=partition.booked,
        holiday=hours.holiday,
    )


def _check_bookable(
    service: Service,
    starts_at: datetime,
    origin: str,
    settings: SchedulingSettings,
    now: datetime,
) -> None:
    """Reject start times the slot listing would never offer.

    Staff-created bookings only have to avoid closed days.
    """
    day = starts_at.date()
    hours = day_hours(day, settings)
    if hours.is_closed:
        raise ClosedDay(
            f"The salon is closed on {day.isoformat()}.",
            reason=hours.reason,
            holiday=hours.holiday.to_dict() if hours.holiday else None,
        )
    if origin == "ADMIN_CREATED":
        return

    if starts_at < now + timedelta(minutes=settings.minimum_lead_minutes):
        raise SlotUnavailable(
            f"Bookings need at least {settings.minimum_lead_minutes} minutes of notice.",
            starts_at=starts_at.isoformat(),
        )
    grid = SlotGrid(day, hours.intervals, settings.slot_granularity_minutes, service.duration_minutes)
    if starts_at not in grid:
        raise SlotUnavailable(
            "The selected time is not offered for this service.",
            starts_at=starts_at.isoformat(),
        )


def _redeem_voucher(voucher_id: int | None, client_id: int, service: Service, now: datetime) -> Voucher:
    if voucher_id is None:
        raise InvalidRequest("voucher_id is required for voucher bookings")
    voucher = db.session.get(Voucher, voucher_id)
    if voucher is None or voucher.client_id != client_id:
        raise VoucherRejected("not_found", "Voucher not found.")
    db.session.refresh(voucher)
    if voucher.is_used:
        raise VoucherRejected("already_used", "This voucher has already been used.")
    if voucher.expires_at is not None and voucher.expires_at < now:
        raise VoucherRejected("expired", "This voucher has expired.")
    if not voucher.any_service and voucher.service_id != service.service_id:
        raise VoucherRejected("service_mismatch", f"This voucher is not valid for {service.name}.")
    voucher.is_used = True
    voucher.used_at = now
    return voucher


def create_appointment(
    client_id: int,
    service_id: int,
    starts_at: datetime,
    origin: str,
    notes: str | None = None,
    voucher_id: int | None = None,
    now: datetime | None = None,
) -> Appointment:
    """Book ``service_id`` for ``client_id`` at ``starts_at``.

    The conflict re-check, the entitlement check and the insert happen in one
    transaction holding the day's booking lock, so of two concurrent requests
    for the same slot exactly one succeeds and the other gets ``SlotConflict``.
    """
    settings = get_settings()
    now = now or settings.now()
    origin = (origin or "").upper()
    if origin not in APPOINTMENT_ORIGINS:
        raise InvalidRequest(f"origin must be one of: {', '.join(APPOINTMENT_ORIGINS)}")

    client = db.session.get(Client, client_id)
    if client is None:
        raise NotFound("Client not found")
    service = _get_service(service_id)

    starts_at = settings.to_reference(starts_at)
    ends_at = starts_at + timedelta(minutes=service.duration_minutes)
    _check_bookable(service, starts_at, origin, settings, now)

    subscription = client.subscription if origin == "SUBSCRIPTION" else None
    keys = [day_lock_key(starts_at.date())]
    if subscription is not None:
        keys.append(subscription_lock_key(subscription.subscription_id))
    if origin == "VOUCHER" and voucher_id is not None:
        keys.append(f"voucher:{voucher_id}")

    try:
        lock_keys(*keys)
        ensure_slot_free(starts_at, ends_at)

        if origin == "SUBSCRIPTION":
            if subscription is not None:
                db.session.refresh(subscription)
            authorize(
                subscription,
                service,
                starts_at,
                daily_limit=settings.max_subscription_treatments_per_day,
            )

        voucher = None
        if origin == "VOUCHER":
            voucher = _redeem_voucher(voucher_id, client.client_id, service, now)

        appointment = Appointment(
            client_id=client.client_id,
            service_id=service.service_id,
            subscription_id=subscription.subscription_id if subscription is not None else None,
            voucher_id=voucher.voucher_id if voucher is not None else None,
            starts_at=starts_at,
            ends_at=ends_at,
            slot_key=Appointment.make_slot_key(starts_at),
            status=lifecycle.initial_status(origin),
            origin=origin,
            payment_status=lifecycle.initial_payment_status(origin),
            notes=notes,
        )
        db.session.add(appointment)
        flush_reservation(appointment)
        db.session.commit()
    except BookingError as exc:
        db.session.rollback()
        current_app.logger.warning(
            "Booking for client %s at %s rejected: %s", client_id, starts_at, exc.code
        )
        raise

    current_app.logger.info(
        "Appointment %s created for client %s at %s (%s)",
        appointment.appointment_id,
        appointment.client_id,
        appointment.starts_at,
        appointment.origin,
    )
    notifications.appointment_created(appointment)
    return appointment


def cancel_appointment(
    appointment_id: int,
    actor: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> CancellationResult:
    """Cancel an appointment; late client cancellations keep the plan session consumed."""
    if actor not in ACTORS:
        raise InvalidRequest(f"canceled_by must be one of: {', '.join(ACTORS)}")
    settings = get_settings()
    now = now or settings.now()

    appointment = _get_appointment(appointment_id)
    lifecycle.ensure_active(appointment)
    starts_at = appointment.starts_at
    decision = evaluate_cancellation(starts_at, now, settings.min_cancellation_hours, actor)

    try:
        lifecycle.cancel(appointment, actor, decision, now, reason=reason, decided_starts_at=starts_at)
        db.session.commit()
    except BookingError:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Appointment %s cancelled by %s (penalized=%s)", appointment_id, actor, decision.penalized
    )
    notifications.appointment_cancelled(appointment, decision.penalized)
    return CancellationResult(appointment, decision)


def _crosses_entitlement_window(old: datetime, new: datetime, anchor: date) -> bool:
    return (
        billing_cycle(anchor, old.date()) != billing_cycle(anchor, new.date())
        or week_window(old.date()) != week_window(new.date())
        or old.date() != new.date()
    )


def reschedule_appointment(
    appointment_id: int,
    new_starts_at: datetime,
    now: datetime | None = None,
) -> Appointment:
    """Move an appointment to ``new_starts_at``.

    Refused inside the minimum-notice window. The new time is checked against
    every other booking; on any failure the appointment is left untouched.
    """
    settings = get_settings()
    now = now or settings.now()

    appointment = _get_appointment(appointment_id)
    lifecycle.ensure_active(appointment)

    decision = evaluate_reschedule(appointment.starts_at, now, settings.min_reschedule_hours)
    if not decision.allowed:
        raise RescheduleBlocked(
            f"Appointments cannot be rescheduled less than {settings.min_reschedule_hours:g} hours in advance.",
            hours_until=round(decision.hours_until, 2),
            min_reschedule_hours=settings.min_reschedule_hours,
        )

    service = appointment.service
    new_start = settings.to_reference(new_starts_at)
    new_end = new_start + timedelta(minutes=service.duration_minutes)
    _check_bookable(service, new_start, appointment.origin, settings, now)

    subscription = appointment.subscription if appointment.origin == "SUBSCRIPTION" else None
    keys = [day_lock_key(new_start.date())]
    if subscription is not None:
        keys.append(subscription_lock_key(subscription.subscription_id))

    old_start = appointment.starts_at
    try:
        lock_keys(*keys)
        db.session.refresh(appointment)
        lifecycle.ensure_active(appointment)
        ensure_slot_free(new_start, new_end, exclude_id=appointment.appointment_id)

        if subscription is not None and _crosses_entitlement_window(old_start, new_start, subscription.start_date):
            authorize(
                subscription,
                service,
                new_start,
                daily_limit=settings.max_subscription_treatments_per_day,
                exclude_id=appointment.appointment_id,
            )

        try:
            lifecycle.move(appointment, new_start, new_end)
        except IntegrityError as exc:
            raise SlotConflict(
                "The selected time is no longer available. Please pick another slot.",
                starts_at=new_start.isoformat(),
            ) from exc
        db.session.commit()
    except BookingError as exc:
        db.session.rollback()
        current_app.logger.warning("Reschedule of appointment %s rejected: %s", appointment_id, exc.code)
        raise

    current_app.logger.info("Appointment %s moved from %s to %s", appointment_id, old_start, new_start)
    notifications.appointment_rescheduled(appointment)
    return appointment


def get_remaining_entitlement(subscription_id: int, on: date | None = None) -> EntitlementSummary:
    subscription = db.session.get(Subscription, subscription_id)
    if subscription is None:
        raise NotFound("Subscription not found")
    on = on or get_settings().now().date()
    return summarize(subscription, on)


def confirm_appointment(appointment_id: int) -> Appointment:
    appointment = _get_appointment(appointment_id)
    try:
        lifecycle.confirm(appointment)
        db.session.commit()
    except BookingError:
        db.session.rollback()
        raise
    notifications.appointment_confirmed(appointment)
    return appointment


def complete_appointment(appointment_id: int, paid: bool = False) -> Appointment:
    appointment = _get_appointment(appointment_id)
    try:
        lifecycle.complete(appointment, paid=paid)
        db.session.commit()
    except BookingError:
        db.session.rollback()
        raise
    notifications.appointment_completed(appointment)
    return appointment


def mark_no_show(appointment_id: int) -> Appointment:
    appointment = _get_appointment(appointment_id)
    try:
        lifecycle.mark_no_show(appointment)
        db.session.commit()
    except BookingError:
        db.session.rollback()
        raise
    return appointment


def hide_appointment(appointment_id: int, client_id: int) -> None:
    """Hide an appointment from the client's own history without touching it."""
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None or appointment.client_id != client_id:
        raise NotFound("Appointment not found")

    exists = HiddenAppointment.query.filter_by(client_id=client_id, appointment_id=appointment_id).first()
    if exists is not None:
        return
    db.session.add(HiddenAppointment(client_id=client_id, appointment_id=appointment_id))
    try:
        db.session.commit()
    except IntegrityError:
        # Hidden by a concurrent request.
        db.session.rollback()


def list_client_appointments(client_id: int, include_hidden: bool = False) -> list[Appointment]:
    query = Appointment.query.filter(Appointment.client_id == client_id)
    if not include_hidden:
        hidden = select(HiddenAppointment.appointment_id).where(HiddenAppointment.client_id == client_id)
        query = query.filter(Appointment.appointment_id.not_in(hidden))
    return query.order_by(Appointment.starts_at.desc()).all()
