"""Expected booking outcomes, each with its own error code and HTTP status.

Routes branch on these types and turn them into tailored JSON payloads;
nothing here is meant to escape as a 500.
"""
from __future__ import annotations

import enum


class DenialReason(str, enum.Enum):
    PLAN_INACTIVE = "PlanInactive"
    SERVICE_NOT_COVERED = "ServiceNotCovered"
    MONTHLY_LIMIT_REACHED = "MonthlyLimitReached"
    WEEKLY_LIMIT_REACHED = "WeeklyLimitReached"
    FACIAL_LIMIT_REACHED = "FacialLimitReached"
    DAILY_LIMIT_REACHED = "DailyLimitReached"
    NO_SUBSCRIPTION = "NoSubscription"


class BookingError(Exception):
    code = "booking_error"
    http_status = 400

    def __init__(self, message: str, **extra: object) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"error": self.code, "message": self.message}
        payload.update(self.extra)
        return payload


class SlotConflict(BookingError):
    """The requested start time is no longer free; re-fetch slots and retry."""

    code = "slot_conflict"
    http_status = 409


class SlotUnavailable(BookingError):
    """The requested start time is not on the offered grid for that day."""

    code = "slot_unavailable"


class ClosedDay(SlotUnavailable):
    code = "closed_day"


class EntitlementDenied(BookingError):
    code = "entitlement_denied"
    http_status = 403

    def __init__(self, reason: DenialReason, message: str, **extra: object) -> None:
        super().__init__(message, reason=reason.value, **extra)
        self.reason = reason


class RescheduleBlocked(BookingError):
    code = "reschedule_blocked"


class AlreadyTerminal(BookingError):
    code = "already_terminal"
    http_status = 409


class InvalidTransition(BookingError):
    code = "invalid_transition"


class ConcurrentUpdate(InvalidTransition):
    """Another request changed the appointment first; reload it and retry."""

    code = "concurrent_update"
    http_status = 409


class VoucherRejected(BookingError):
    code = "voucher_rejected"

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message, reason=reason)
        self.reason = reason


class CommitmentActive(BookingError):
    code = "commitment_active"


class NotFound(BookingError):
    code = "not_found"
    http_status = 404


class InvalidRequest(BookingError):
    code = "invalid_payload"


class DataIntegrityError(BookingError):
    """Stored data contradicts an invariant; a bug elsewhere, never user-actionable."""

    code = "server_error"
    http_status = 500

    def __init__(self, detail: str) -> None:
        super().__init__("An unexpected error occurred.")
        self.detail = detail
