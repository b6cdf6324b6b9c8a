"""Subscription entitlement tracking.

Usage is never stored. Every count is an aggregate over the client's
``SUBSCRIPTION``-origin appointments, so cancellations, reschedules and
staff-created bookings are reflected the moment their rows change.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from flask import current_app
from sqlalchemy import and_, func, or_

from .errors import DataIntegrityError, DenialReason, EntitlementDenied
from .extensions import db
from .models import Appointment, Service, Subscription

# Statuses that keep a plan-covered session consumed.
CONSUMING_STATUSES = ("PENDING", "CONFIRMED", "COMPLETED", "NO_SHOW")
FACIAL_CATEGORY = "facial"


def _anchored(year: int, month: int, anchor_day: int) -> date:
    return date(year, month, min(anchor_day, calendar.monthrange(year, month)[1]))


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def add_months(day: date, months: int) -> date:
    year, month = _shift_month(day.year, day.month, months)
    return _anchored(year, month, day.day)


def billing_cycle(anchor: date, on: date) -> tuple[date, date]:
    """Cycle ``[start, end)`` containing ``on`` for a subscription started on ``anchor``.

    Cycles roll monthly on the anchor's day of month, clamped to short months.
    """
    start = _anchored(on.year, on.month, anchor.day)
    if on < start:
        year, month = _shift_month(on.year, on.month, -1)
        start = _anchored(year, month, anchor.day)
    year, month = _shift_month(start.year, start.month, 1)
    return start, _anchored(year, month, anchor.day)


def week_window(on: date) -> tuple[date, date]:
    """Monday-to-Monday window containing ``on``."""
    monday = on - timedelta(days=on.weekday())
    return monday, monday + timedelta(days=7)


def _as_datetime(value: date) -> datetime:
    return datetime.combine(value, time.min)


def consumed_count(
    client_id: int,
    start: date,
    end: date,
    exclude_id: int | None = None,
    category: str | None = None,
) -> int:
    """Plan-covered sessions consumed by ``client_id`` with a start in ``[start, end)``."""
    query = db.session.query(func.count(Appointment.appointment_id)).filter(
        Appointment.client_id == client_id,
        Appointment.origin == "SUBSCRIPTION",
        Appointment.starts_at >= _as_datetime(start),
        Appointment.starts_at < _as_datetime(end),
        or_(
            Appointment.status.in_(CONSUMING_STATUSES),
            and_(Appointment.status == "CANCELED", Appointment.entitlement_forfeited.is_(True)),
        ),
    )
    if exclude_id is not None:
        query = query.filter(Appointment.appointment_id != exclude_id)
    if category is not None:
        query = query.join(Service, Service.service_id == Appointment.service_id).filter(
            Service.category == category
        )
    return query.scalar() or 0


@dataclass(frozen=True)
class EntitlementSummary:
    monthly_limit: int
    monthly_used: int
    weekly_limit: int | None
    weekly_used: int | None
    cycle_start: date
    cycle_end: date
    week_start: date

    @property
    def monthly(self) -> int:
        return max(self.monthly_limit - self.monthly_used, 0)

    @property
    def weekly(self) -> int | None:
        if self.weekly_limit is None:
            return None
        return max(self.weekly_limit - (self.weekly_used or 0), 0)

    def to_dict(self) -> dict[str, object]:
        return {
            "monthly": self.monthly,
            "weekly": self.weekly,
            "monthly_limit": self.monthly_limit,
            "monthly_used": self.monthly_used,
            "weekly_limit": self.weekly_limit,
            "weekly_used": self.weekly_used,
            "cycle_start": self.cycle_start.isoformat(),
            "cycle_end": self.cycle_end.isoformat(),
            "week_start": self.week_start.isoformat(),
        }


def _plan_of(subscription: Subscription):
    plan = subscription.plan
    if plan is None:
        current_app.logger.error(
            "Subscription %s references missing plan %s",
            subscription.subscription_id,
            subscription.plan_id,
        )
        raise DataIntegrityError(f"subscription {subscription.subscription_id} has no plan")
    return plan


def summarize(subscription: Subscription, on: date, exclude_id: int | None = None) -> EntitlementSummary:
    """Allowance of ``subscription`` for the cycle and week containing ``on``."""
    plan = _plan_of(subscription)
    cycle_start, cycle_end = billing_cycle(subscription.start_date, on)
    week_start, week_end = week_window(on)

    monthly_used = consumed_count(subscription.client_id, cycle_start, cycle_end, exclude_id=exclude_id)
    weekly_used = None
    if plan.max_treatments_per_week is not None:
        weekly_used = consumed_count(subscription.client_id, week_start, week_end, exclude_id=exclude_id)

    return EntitlementSummary(
        monthly_limit=plan.max_treatments_per_month,
        monthly_used=monthly_used,
        weekly_limit=plan.max_treatments_per_week,
        weekly_used=weekly_used,
        cycle_start=cycle_start,
        cycle_end=cycle_end,
        week_start=week_start,
    )


def authorize(
    subscription: Subscription | None,
    service: Service,
    starts_at: datetime,
    daily_limit: int | None = None,
    exclude_id: int | None = None,
) -> EntitlementSummary:
    """Check that a plan-covered booking of ``service`` at ``starts_at`` is allowed.

    Monthly and weekly limits apply together. Raises ``EntitlementDenied``
    carrying the first failing reason.
    """
    if subscription is None:
        raise EntitlementDenied(DenialReason.NO_SUBSCRIPTION, "You do not have a subscription plan.")
    if subscription.status != "ACTIVE":
        raise EntitlementDenied(
            DenialReason.PLAN_INACTIVE,
            "Your subscription is not active. Book as a single session instead.",
            subscription_status=subscription.status,
        )

    plan = _plan_of(subscription)
    if not plan.covers(service):
        raise EntitlementDenied(
            DenialReason.SERVICE_NOT_COVERED,
            f"{service.name} is not included in the {plan.name} plan.",
        )

    day = starts_at.date()
    summary = summarize(subscription, day, exclude_id=exclude_id)
    if summary.monthly <= 0:
        raise EntitlementDenied(
            DenialReason.MONTHLY_LIMIT_REACHED,
            f"Monthly limit of {plan.max_treatments_per_month} treatments reached for this billing cycle.",
            limit=plan.max_treatments_per_month,
            used=summary.monthly_used,
            cycle_start=summary.cycle_start.isoformat(),
            cycle_end=summary.cycle_end.isoformat(),
        )
    if summary.weekly is not None and summary.weekly <= 0:
        raise EntitlementDenied(
            DenialReason.WEEKLY_LIMIT_REACHED,
            f"Weekly limit of {plan.max_treatments_per_week} treatments reached.",
            limit=plan.max_treatments_per_week,
            used=summary.weekly_used,
        )

    if plan.max_facial_per_month is not None and service.category == FACIAL_CATEGORY:
        facial_used = consumed_count(
            subscription.client_id,
            summary.cycle_start,
            summary.cycle_end,
            exclude_id=exclude_id,
            category=FACIAL_CATEGORY,
        )
        if facial_used >= plan.max_facial_per_month:
            raise EntitlementDenied(
                DenialReason.FACIAL_LIMIT_REACHED,
                f"Monthly limit of {plan.max_facial_per_month} facial treatments reached.",
                limit=plan.max_facial_per_month,
                used=facial_used,
            )

    if daily_limit:
        day_used = consumed_count(subscription.client_id, day, day + timedelta(days=1), exclude_id=exclude_id)
        if day_used >= daily_limit:
            raise EntitlementDenied(
                DenialReason.DAILY_LIMIT_REACHED,
                f"At most {daily_limit} plan treatments can be booked on the same day.",
                limit=daily_limit,
                used=day_used,
            )

    return summary
