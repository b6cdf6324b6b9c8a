"""HTTP routes for the SalonBook scheduling core."""
from __future__ import annotations

from datetime import date, datetime

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from . import bookings, payments, subscriptions
from .config import get_settings
from .errors import BookingError, DataIntegrityError
from .extensions import db
from .hours import validate_intervals
from .identity import get_actor_role, get_jwt_identity
from .models import HOLIDAY_SCOPES, Appointment, BusinessHours, Holiday
from .policies import ACTORS

bp = Blueprint("api", __name__)


def _booking_error(exc: BookingError):
    if isinstance(exc, DataIntegrityError):
        current_app.logger.error("Data integrity violation: %s", exc.detail)
    return jsonify(exc.to_dict()), exc.http_status


def _invalid(message: str, error: str = "invalid_payload"):
    return jsonify({"error": error, "message": message}), 400


def _forbidden(message: str):
    return jsonify({"error": "forbidden", "message": message}), 403


def _get_text(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def _parse_datetime(value: str | None) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _get_int(payload: dict, key: str) -> int | None:
    value = payload.get(key)
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
        return jsonify({"database": "ok"}), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database health check failed", exc_info=exc)
        return jsonify({"database": "error"}), 500


@bp.get("/config")
def scheduling_config() -> tuple[dict[str, object], int]:
    """Expose the scheduling settings in effect.
    ---
    tags:
      - Schedule
    responses:
      200:
        description: Current scheduling settings
    """
    return jsonify({"config": get_settings().to_dict()}), 200


@bp.get("/schedule/available")
def available_slots() -> tuple[dict[str, object], int]:
    """List available and booked start times for a service on a date.
    ---
    tags:
      - Schedule
    parameters:
      - name: date
        in: query
        required: true
        type: string
        format: date
      - name: service_id
        in: query
        required: true
        type: integer
    responses:
      200:
        description: Slot listing (empty lists when the salon is closed)
      400:
        description: Missing or malformed parameters
      404:
        description: Service not found
      500:
        description: Database error
    """
    day = _parse_date(request.args.get("date"))
    service_id = request.args.get("service_id", type=int)
    if day is None or service_id is None:
        return _invalid("date (YYYY-MM-DD) and service_id are required")

    try:
        listing = bookings.get_available_slots(day, service_id)
        return jsonify(listing.to_dict()), 200
    except BookingError as exc:
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to compute available slots", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/schedule/business-hours")
def list_business_hours() -> tuple[dict[str, object], int]:
    """List the stored weekly opening hours.
    ---
    tags:
      - Schedule
    responses:
      200:
        description: One entry per stored weekday
      500:
        description: Database error
    """
    try:
        rows = BusinessHours.query.order_by(BusinessHours.weekday.asc()).all()
        return jsonify({"business_hours": [row.to_dict() for row in rows]}), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch business hours", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.put("/schedule/business-hours/<int:weekday>")
def update_business_hours(weekday: int) -> tuple[dict[str, object], int]:
    """Replace the opening hours of one weekday.
    ---
    tags:
      - Schedule
    parameters:
      - in: path
        name: weekday
        required: true
        type: integer
        description: 0=Sunday ... 6=Saturday
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            is_open:
              type: boolean
            intervals:
              type: array
              items:
                type: object
                properties:
                  start:
                    type: integer
                    description: Minute of the day
                  end:
                    type: integer
    responses:
      200:
        description: Hours saved
      400:
        description: Invalid weekday or intervals
      500:
        description: Database error
    """
    if not 0 <= weekday <= 6:
        return _invalid("weekday must be between 0 (Sunday) and 6 (Saturday)")

    payload = request.get_json(silent=True) or {}
    raw_intervals = payload.get("intervals") or []
    if not isinstance(raw_intervals, list):
        return _invalid("intervals must be a list")
    try:
        intervals = validate_intervals(raw_intervals)
    except ValueError as exc:
        return _invalid(str(exc), error="invalid_intervals")

    is_open = bool(payload.get("is_open", True)) and bool(intervals)

    try:
        row = db.session.get(BusinessHours, weekday)
        if row is None:
            row = BusinessHours(weekday=weekday)
            db.session.add(row)
        row.is_open = is_open
        row.intervals = [interval.to_dict() for interval in intervals]
        db.session.commit()
        current_app.logger.info("Business hours for weekday %s updated", weekday)
        return jsonify({"business_hours": row.to_dict()}), 200
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to update business hours", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/schedule/holidays")
def list_holidays() -> tuple[dict[str, object], int]:
    """List holidays, optionally within a date range.
    ---
    tags:
      - Schedule
    parameters:
      - name: start
        in: query
        type: string
        format: date
      - name: end
        in: query
        type: string
        format: date
    responses:
      200:
        description: Holidays ordered by date
      500:
        description: Database error
    """
    start = _parse_date(request.args.get("start"))
    end = _parse_date(request.args.get("end"))
    try:
        query = Holiday.query
        if start is not None:
            query = query.filter(Holiday.holiday_date >= start)
        if end is not None:
            query = query.filter(Holiday.holiday_date <= end)
        holidays = query.order_by(Holiday.holiday_date.asc()).all()
        return jsonify({"holidays": [holiday.to_dict() for holiday in holidays]}), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch holidays", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/schedule/holidays")
def create_holiday() -> tuple[dict[str, object], int]:
    """Register a holiday.
    ---
    tags:
      - Schedule
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - date
            - name
          properties:
            date:
              type: string
              format: date
            name:
              type: string
            scope:
              type: string
              enum: [national, regional]
    responses:
      201:
        description: Holiday created
      400:
        description: Invalid payload
      409:
        description: A holiday already exists on that date
      500:
        description: Database error
    """
    payload = request.get_json(silent=True) or {}
    day = _parse_date(payload.get("date"))
    name = (payload.get("name") or "").strip()
    scope = (payload.get("scope") or "national").strip().lower()
    if day is None or not name:
        return _invalid("date (YYYY-MM-DD) and name are required")
    if scope not in HOLIDAY_SCOPES:
        return _invalid(f"scope must be one of: {', '.join(HOLIDAY_SCOPES)}")

    try:
        holiday = Holiday(holiday_date=day, name=name, scope=scope)
        db.session.add(holiday)
        db.session.commit()
        current_app.logger.info("Holiday %s registered on %s (%s)", name, day, scope)
        return jsonify({"holiday": holiday.to_dict()}), 201
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "duplicate", "message": "A holiday already exists on that date"}), 409
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create holiday", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.delete("/schedule/holidays/<string:holiday_date>")
def delete_holiday(holiday_date: str) -> tuple[dict[str, object], int]:
    """Remove the holiday on a date.
    ---
    tags:
      - Schedule
    responses:
      200:
        description: Holiday removed
      400:
        description: Malformed date
      404:
        description: No holiday on that date
      500:
        description: Database error
    """
    day = _parse_date(holiday_date)
    if day is None:
        return _invalid("date must be YYYY-MM-DD")
    try:
        holiday = Holiday.query.filter_by(holiday_date=day).first()
        if holiday is None:
            return jsonify({"error": "not_found", "message": "Holiday not found"}), 404
        db.session.delete(holiday)
        db.session.commit()
        return jsonify({"message": "Holiday removed"}), 200
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to delete holiday", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/appointments")
def list_appointments() -> tuple[dict[str, list[dict[str, object]]], int]:
    """Get the authenticated client's appointments, hidden ones excluded.
    ---
    tags:
      - Appointments
    security:
      - Bearer: []
    responses:
      200:
        description: List of appointments (empty when not authenticated)
      500:
        description: Server error
    """
    client_id = get_jwt_identity()
    if not client_id:
        return jsonify({"appointments": []}), 200

    try:
        appointments = bookings.list_client_appointments(client_id)
        return jsonify({"appointments": [appt.to_dict() for appt in appointments]}), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch appointments", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/appointments/<int:appointment_id>")
def get_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Get a single appointment.
    ---
    tags:
      - Appointments
    responses:
      200:
        description: Appointment details
      404:
        description: Appointment not found
      500:
        description: Database error
    """
    try:
        appointment = db.session.get(Appointment, appointment_id)
        if appointment is None:
            return jsonify({"error": "not_found", "message": "Appointment not found"}), 404
        return jsonify({"appointment": appointment.to_dict()}), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/appointments")
def create_appointment() -> tuple[dict[str, object], int]:
    """Book a service at a slot start time.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          required:
            - service_id
            - starts_at
            - origin
          properties:
            client_id:
              type: integer
              description: Taken from the bearer token when present, except for staff tokens
            service_id:
              type: integer
            starts_at:
              type: string
              format: date-time
            origin:
              type: string
              enum: [SUBSCRIPTION, SINGLE, VOUCHER, ADMIN_CREATED]
            voucher_id:
              type: integer
            notes:
              type: string
    responses:
      201:
        description: Appointment created
      400:
        description: Invalid payload, closed day or slot not offered
      403:
        description: Subscription entitlement denied, or ADMIN_CREATED without a staff token
      404:
        description: Client or service not found
      409:
        description: Slot already taken
      500:
        description: Server error
    """
    payload = request.get_json(silent=True) or {}
    role = get_actor_role()

    if role == "admin":
        client_id = _get_int(payload, "client_id") or get_jwt_identity()
    else:
        client_id = get_jwt_identity() or _get_int(payload, "client_id")
    service_id = _get_int(payload, "service_id")
    starts_at = _parse_datetime(payload.get("starts_at"))
    origin = _get_text(payload, "origin")
    notes = _get_text(payload, "notes")

    if not client_id or not service_id or not origin:
        return _invalid("client_id, service_id, starts_at and origin are required")
    if starts_at is None:
        return _invalid("Invalid datetime format", error="invalid_datetime")
    if origin.upper() == "ADMIN_CREATED" and role != "admin":
        return _forbidden("Only staff can create ADMIN_CREATED appointments")

    try:
        appointment = bookings.create_appointment(
            client_id,
            service_id,
            starts_at,
            origin,
            notes=notes,
            voucher_id=_get_int(payload, "voucher_id"),
        )
        return jsonify({"appointment": appointment.to_dict()}), 201
    except BookingError as exc:
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.put("/appointments/<int:appointment_id>/cancel")
def cancel_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Cancel an appointment.

    Client cancellations inside the minimum-notice window keep the plan
    session consumed (``lost_treatment`` in the response).
    ---
    tags:
      - Appointments
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            canceled_by:
              type: string
              enum: [client, admin]
            reason:
              type: string
    responses:
      200:
        description: Appointment cancelled
      400:
        description: Invalid actor
      403:
        description: canceled_by asks for more than the token's role
      404:
        description: Appointment not found
      409:
        description: Appointment already completed, cancelled, no-show or changed concurrently
      500:
        description: Database error
    """
    payload = request.get_json(silent=True) or {}
    requested = payload.get("canceled_by")
    if requested is not None and not isinstance(requested, str):
        return _invalid("canceled_by must be a string")

    # The token decides the role; canceled_by may only narrow staff to client.
    actor = get_actor_role()
    requested = (requested or "").strip().lower()
    if requested:
        if requested not in ACTORS:
            return _invalid(f"canceled_by must be one of: {', '.join(ACTORS)}")
        if actor != "admin" and requested != actor:
            return _forbidden("Only staff can cancel on behalf of the salon")
        actor = requested
    reason = _get_text(payload, "reason")

    try:
        result = bookings.cancel_appointment(appointment_id, actor, reason=reason)
        return jsonify(result.to_dict()), 200
    except BookingError as exc:
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.put("/appointments/<int:appointment_id>/reschedule")
def reschedule_appointment(appointment_id: int) -> tuple[dict[str, dict[str, object]], int]:
    """Reschedule an appointment to a new start time with conflict checking.
    ---
    tags:
      - Appointments
    parameters:
      - in: path
        name: appointment_id
        required: true
        type: integer
      - in: body
        name: body
        required: true
        schema:
          properties:
            starts_at:
              type: string
              format: date-time
    responses:
      200:
        description: Appointment rescheduled successfully
      400:
        description: Invalid input, too close to the appointment or slot not offered
      403:
        description: Subscription entitlement denied for the new date
      404:
        description: Appointment not found
      409:
        description: Time slot conflict or appointment no longer active
      500:
        description: Database error
    """
    payload = request.get_json(silent=True) or {}
    if "starts_at" not in payload:
        return _invalid("starts_at is required", error="invalid_input")
    new_start = _parse_datetime(payload.get("starts_at"))
    if new_start is None:
        return _invalid("Invalid datetime format", error="invalid_datetime")

    try:
        appointment = bookings.reschedule_appointment(appointment_id, new_start)
        return jsonify({"appointment": appointment.to_dict()}), 200
    except BookingError as exc:
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to reschedule appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


def _status_change(appointment_id: int, action, description: str, **kwargs):
    if get_actor_role() != "admin":
        return _forbidden(f"Only staff can {description} appointments")
    try:
        appointment = action(appointment_id, **kwargs)
        return jsonify({"appointment": appointment.to_dict()}), 200
    except BookingError as exc:
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to %s appointment", description, exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.put("/appointments/<int:appointment_id>/confirm")
def confirm_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Confirm a pending appointment.
    ---
    tags:
      - Appointments
    responses:
      200:
        description: Appointment confirmed
      400:
        description: Appointment is not pending
      403:
        description: Staff token required
      404:
        description: Appointment not found
      409:
        description: Appointment already in a final state
    """
    return _status_change(appointment_id, bookings.confirm_appointment, "confirm")


@bp.put("/appointments/<int:appointment_id>/complete")
def complete_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Mark an appointment as completed, optionally recording payment at the desk.
    ---
    tags:
      - Appointments
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            paid:
              type: boolean
    responses:
      200:
        description: Appointment completed
      403:
        description: Staff token required
      404:
        description: Appointment not found
      409:
        description: Appointment already in a final state
    """
    payload = request.get_json(silent=True) or {}
    return _status_change(
        appointment_id, bookings.complete_appointment, "complete", paid=bool(payload.get("paid"))
    )


@bp.put("/appointments/<int:appointment_id>/no-show")
def no_show_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Mark that the client did not attend.
    ---
    tags:
      - Appointments
    responses:
      200:
        description: Appointment marked as no-show
      403:
        description: Staff token required
      404:
        description: Appointment not found
      409:
        description: Appointment already in a final state
    """
    return _status_change(appointment_id, bookings.mark_no_show, "mark no-show on")


@bp.delete("/appointments/<int:appointment_id>")
def hide_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Hide an appointment from the authenticated client's history.
    ---
    tags:
      - Appointments
    security:
      - Bearer: []
    responses:
      200:
        description: Appointment hidden
      401:
        description: Authentication required
      404:
        description: Appointment not found
      500:
        description: Database error
    """
    client_id = get_jwt_identity()
    if not client_id:
        return jsonify({"error": "unauthorized", "message": "Authentication required. Please log in to continue."}), 401

    try:
        bookings.hide_appointment(appointment_id, client_id)
        return jsonify({"message": "Appointment removed from history"}), 200
    except BookingError as exc:
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to hide appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/appointments/<int:appointment_id>/payment-intent")
def create_payment_intent(appointment_id: int) -> tuple[dict[str, object], int]:
    """Create a Stripe PaymentIntent for a paid appointment.
    ---
    tags:
      - Payments
    responses:
      200:
        description: PaymentIntent created
      400:
        description: Appointment is not paid per session or already paid
      404:
        description: Appointment not found
      502:
        description: Payment processor error
      503:
        description: Payments not configured
    """
    try:
        appointment = db.session.get(Appointment, appointment_id)
        if appointment is None:
            return jsonify({"error": "not_found", "message": "Appointment not found"}), 404
        info = payments.create_payment_intent(appointment)
        return jsonify(info.to_dict()), 200
    except BookingError as exc:
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create payment intent", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/appointments/<int:appointment_id>/confirm-payment")
def confirm_payment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Check the PaymentIntent and record the payment once it succeeded.
    ---
    tags:
      - Payments
    responses:
      200:
        description: Current payment state
      400:
        description: No payment started
      404:
        description: Appointment not found
      502:
        description: Payment processor error
    """
    try:
        appointment = db.session.get(Appointment, appointment_id)
        if appointment is None:
            return jsonify({"error": "not_found", "message": "Appointment not found"}), 404
        info = payments.confirm_payment(appointment)
        return jsonify({**info.to_dict(), "payment_status": appointment.payment_status}), 200
    except BookingError as exc:
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to confirm payment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/subscriptions")
def create_subscription() -> tuple[dict[str, object], int]:
    """Subscribe a client to a plan.
    ---
    tags:
      - Subscriptions
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - plan_id
          properties:
            client_id:
              type: integer
            plan_id:
              type: integer
    responses:
      201:
        description: Subscription active
      400:
        description: Invalid payload or already subscribed
      404:
        description: Client or plan not found
    """
    payload = request.get_json(silent=True) or {}
    client_id = get_jwt_identity() or _get_int(payload, "client_id")
    plan_id = _get_int(payload, "plan_id")
    if not client_id or not plan_id:
        return _invalid("client_id and plan_id are required")

    try:
        subscription = subscriptions.subscribe(client_id, plan_id)
        return jsonify({"subscription": subscription.to_dict()}), 201
    except BookingError as exc:
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to create subscription", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.put("/subscriptions/<int:subscription_id>/plan")
def change_subscription_plan(subscription_id: int) -> tuple[dict[str, object], int]:
    """Move an active subscription to another plan.
    ---
    tags:
      - Subscriptions
    responses:
      200:
        description: Plan changed
      400:
        description: Missing plan_id or subscription not active
      404:
        description: Subscription or plan not found
    """
    payload = request.get_json(silent=True) or {}
    plan_id = _get_int(payload, "plan_id")
    if not plan_id:
        return _invalid("plan_id is required")

    try:
        subscription = subscriptions.change_plan(subscription_id, plan_id)
        return jsonify({"subscription": subscription.to_dict()}), 200
    except BookingError as exc:
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to change subscription plan", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.put("/subscriptions/<int:subscription_id>/cancel")
def cancel_subscription(subscription_id: int) -> tuple[dict[str, object], int]:
    """Cancel a subscription after its minimum commitment period.
    ---
    tags:
      - Subscriptions
    responses:
      200:
        description: Subscription cancelled
      400:
        description: Already cancelled or still within the commitment period
      404:
        description: Subscription not found
    """
    payload = request.get_json(silent=True) or {}
    reason = (payload.get("reason") or "").strip() or None

    try:
        subscription = subscriptions.cancel_subscription(subscription_id, reason=reason)
        return jsonify({"subscription": subscription.to_dict()}), 200
    except BookingError as exc:
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel subscription", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/subscriptions/<int:subscription_id>/entitlement")
def subscription_entitlement(subscription_id: int) -> tuple[dict[str, object], int]:
    """Remaining plan sessions for the cycle and week containing a date.
    ---
    tags:
      - Subscriptions
    parameters:
      - name: "on"
        in: query
        type: string
        format: date
    responses:
      200:
        description: Remaining monthly and weekly allowance
      400:
        description: Malformed date
      404:
        description: Subscription not found
    """
    raw_on = request.args.get("on")
    on = _parse_date(raw_on)
    if raw_on and on is None:
        return _invalid("on must be YYYY-MM-DD")

    try:
        summary = bookings.get_remaining_entitlement(subscription_id, on)
        return jsonify({"subscription_id": subscription_id, **summary.to_dict()}), 200
    except BookingError as exc:
        return _booking_error(exc)
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to compute entitlement", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


def register_routes(app) -> None:
    app.register_blueprint(bp)
