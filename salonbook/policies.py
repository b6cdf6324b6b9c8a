"""Cancellation and reschedule time-window rules.

Pure functions of the appointment start and "now"; no I/O.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

CLIENT = "client"
ADMIN = "admin"
ACTORS = (CLIENT, ADMIN)


def hours_until(starts_at: datetime, now: datetime) -> float:
    return (starts_at - now).total_seconds() / 3600


@dataclass(frozen=True)
class CancellationDecision:
    hours_until: float
    late: bool
    penalized: bool


@dataclass(frozen=True)
class RescheduleDecision:
    hours_until: float
    allowed: bool


def evaluate_cancellation(
    starts_at: datetime,
    now: datetime,
    min_hours: float,
    actor: str = CLIENT,
) -> CancellationDecision:
    """Cancellation is always permitted; a late one by the client is penalized.

    A penalized cancellation of a plan-covered appointment keeps the session
    consumed. Staff cancellations never cost the client a session.
    """
    remaining = hours_until(starts_at, now)
    late = remaining < min_hours
    return CancellationDecision(hours_until=remaining, late=late, penalized=late and actor == CLIENT)


def evaluate_reschedule(starts_at: datetime, now: datetime, min_hours: float) -> RescheduleDecision:
    """Rescheduling inside the minimum-notice window is refused outright."""
    remaining = hours_until(starts_at, now)
    return RescheduleDecision(hours_until=remaining, allowed=remaining >= min_hours)
