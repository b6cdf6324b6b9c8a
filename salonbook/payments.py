"""Stripe payment processor integration for paid (single or pay-later) bookings."""
from __future__ import annotations

from dataclasses import dataclass

import stripe
from flask import current_app

from .errors import BookingError, InvalidRequest
from .extensions import db
from .models import Appointment

PAYABLE_ORIGINS = ("SINGLE", "ADMIN_CREATED")


class PaymentsUnavailable(BookingError):
    code = "payments_unavailable"
    http_status = 503


class PaymentError(BookingError):
    code = "payment_error"
    http_status = 502


@dataclass(frozen=True)
class PaymentIntentInfo:
    payment_intent_id: str
    client_secret: str | None
    status: str

    def to_dict(self) -> dict[str, object]:
        return {
            "payment_intent_id": self.payment_intent_id,
            "client_secret": self.client_secret,
            "status": self.status,
        }


def _configure() -> None:
    stripe_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not stripe_key:
        current_app.logger.warning("Stripe secret key not configured")
        raise PaymentsUnavailable("Payments are not currently available. Please contact support.")
    stripe.api_key = stripe_key


def create_payment_intent(appointment: Appointment) -> PaymentIntentInfo:
    """Ask the processor to collect the service price for ``appointment``."""
    if appointment.origin not in PAYABLE_ORIGINS:
        raise InvalidRequest("This appointment is not paid per session.")
    if appointment.payment_status == "PAID":
        raise InvalidRequest("This appointment has already been paid.")
    if appointment.service is None:
        raise InvalidRequest("Appointment has no associated service")

    _configure()
    try:
        intent = stripe.PaymentIntent.create(
            amount=int(appointment.service.price_cents),
            currency=current_app.config.get("PAYMENT_CURRENCY", "brl"),
            metadata={
                "appointment_id": str(appointment.appointment_id),
                "client_id": str(appointment.client_id),
            },
        )
    except stripe.error.StripeError as exc:
        current_app.logger.exception("Stripe API error while creating payment intent", exc_info=exc)
        raise PaymentError("An error occurred while processing the payment.") from exc

    appointment.payment_intent_id = intent.id
    appointment.payment_status = "PENDING"
    db.session.commit()
    return PaymentIntentInfo(intent.id, intent.client_secret, intent.status)


def confirm_payment(appointment: Appointment) -> PaymentIntentInfo:
    """Check the processor's verdict and mark the appointment paid when it succeeded."""
    if not appointment.payment_intent_id:
        raise InvalidRequest("No payment was started for this appointment.")

    _configure()
    try:
        intent = stripe.PaymentIntent.retrieve(appointment.payment_intent_id)
    except stripe.error.StripeError as exc:
        current_app.logger.exception("Stripe API error while retrieving payment intent", exc_info=exc)
        raise PaymentError("Failed to retrieve payment intent") from exc

    if intent.status == "succeeded" and appointment.payment_status != "PAID":
        appointment.payment_status = "PAID"
        db.session.commit()
        current_app.logger.info("Appointment %s paid", appointment.appointment_id)
    return PaymentIntentInfo(intent.id, None, intent.status)
