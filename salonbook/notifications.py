"""Client notifications for booking events.

Dispatch is fire-and-forget: it runs after the booking transaction has been
committed and a failure here is logged, never propagated to the caller.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models import Appointment, Notification


def _when(appointment: Appointment) -> str:
    return appointment.starts_at.strftime("%B %d, %Y at %I:%M %p")


def _service_name(appointment: Appointment) -> str:
    return appointment.service.name if appointment.service else "your treatment"


def dispatch(appointment: Appointment, notification_type: str, title: str, message: str) -> None:
    try:
        db.session.add(
            Notification(
                client_id=appointment.client_id,
                appointment_id=appointment.appointment_id,
                title=title,
                message=message,
                notification_type=notification_type,
            )
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to record %s notification for appointment %s",
            notification_type,
            appointment.appointment_id,
            exc_info=exc,
        )


def appointment_created(appointment: Appointment) -> None:
    if appointment.status == "CONFIRMED":
        title = "Appointment Confirmed"
        message = f"Your {_service_name(appointment)} is confirmed for {_when(appointment)}."
        kind = "appointment_confirmed"
    else:
        title = "Appointment Requested"
        message = f"Your {_service_name(appointment)} on {_when(appointment)} is awaiting confirmation."
        kind = "appointment_created"
    dispatch(appointment, kind, title, message)


def appointment_confirmed(appointment: Appointment) -> None:
    dispatch(
        appointment,
        "appointment_confirmed",
        "Appointment Confirmed",
        f"Your {_service_name(appointment)} is confirmed for {_when(appointment)}.",
    )


def appointment_cancelled(appointment: Appointment, penalized: bool) -> None:
    message = f"Your {_service_name(appointment)} on {_when(appointment)} has been cancelled."
    if penalized and appointment.origin == "SUBSCRIPTION":
        message += " Because it was cancelled late, the session still counts towards your plan."
    dispatch(appointment, "appointment_cancelled", "Appointment Cancelled", message)


def appointment_rescheduled(appointment: Appointment) -> None:
    dispatch(
        appointment,
        "appointment_rescheduled",
        "Appointment Rescheduled",
        f"Your {_service_name(appointment)} has been moved to {_when(appointment)}.",
    )


def appointment_completed(appointment: Appointment) -> None:
    dispatch(
        appointment,
        "appointment_completed",
        "Appointment Completed",
        f"Thank you for visiting! Your {_service_name(appointment)} has been completed.",
    )
