"""Database models for the SalonBook scheduling core."""
from __future__ import annotations

from datetime import datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


APPOINTMENT_STATUSES = ("PENDING", "CONFIRMED", "COMPLETED", "CANCELED", "NO_SHOW")
APPOINTMENT_ORIGINS = ("SUBSCRIPTION", "SINGLE", "VOUCHER", "ADMIN_CREATED")
PAYMENT_STATUSES = ("NONE", "PENDING", "PAID")
SUBSCRIPTION_STATUSES = ("ACTIVE", "CANCELED", "PAST_DUE")
HOLIDAY_SCOPES = ("national", "regional")


# Services covered by a subscription plan
plan_services = db.Table(
    "plan_services",
    db.Column("plan_id", db.Integer, db.ForeignKey("subscription_plans.plan_id"), primary_key=True),
    db.Column("service_id", db.Integer, db.ForeignKey("services.service_id"), primary_key=True),
)


class Client(db.Model):
    __tablename__ = "clients"

    client_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    phone = db.Column(db.String(30))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    subscription = db.relationship("Subscription", back_populates="client", uselist=False)

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.client_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
        }


class Service(db.Model):
    """Treatments offered by the salon."""

    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(50), nullable=False, server_default="general")
    price_cents = db.Column(db.Integer, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    plan_coverable = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "duration_minutes": self.duration_minutes,
            "plan_coverable": bool(self.plan_coverable),
            "is_active": bool(self.is_active),
        }


class BusinessHours(db.Model):
    """Weekly opening hours; one row per weekday (0=Sunday, 1=Monday, ...)."""

    __tablename__ = "business_hours"

    weekday = db.Column(db.Integer, primary_key=True)
    is_open = db.Column(db.Boolean, nullable=False, default=True)
    # [{"start": 540, "end": 720}, ...] in minutes of the day
    intervals = db.Column(db.JSON, nullable=False, default=list)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "weekday": self.weekday,
            "is_open": bool(self.is_open),
            "intervals": [
                {
                    "start": interval["start"],
                    "end": interval["end"],
                    "label": f"{interval['start'] // 60:02d}:{interval['start'] % 60:02d}"
                    f"-{interval['end'] // 60:02d}:{interval['end'] % 60:02d}",
                }
                for interval in (self.intervals or [])
            ],
        }


class Holiday(db.Model):
    __tablename__ = "holidays"

    holiday_id = db.Column(db.Integer, primary_key=True)
    holiday_date = db.Column(db.Date, nullable=False, unique=True)
    name = db.Column(db.String(150), nullable=False)
    scope = db.Column(
        db.Enum(*HOLIDAY_SCOPES, name="holiday_scope", native_enum=False, validate_strings=True),
        nullable=False,
        server_default="national",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.holiday_id,
            "date": self.holiday_date.isoformat(),
            "name": self.name,
            "scope": self.scope,
        }


class SubscriptionPlan(db.Model):
    __tablename__ = "subscription_plans"

    plan_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    tier = db.Column(db.String(30), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    max_treatments_per_month = db.Column(db.Integer, nullable=False)
    max_treatments_per_week = db.Column(db.Integer, nullable=True)
    max_facial_per_month = db.Column(db.Integer, nullable=True)
    covers_all_services = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    services = db.relationship("Service", secondary=plan_services, lazy="selectin")

    def covers(self, service: Service) -> bool:
        if not service.plan_coverable:
            return False
        if self.covers_all_services:
            return True
        return any(s.service_id == service.service_id for s in self.services)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.plan_id,
            "name": self.name,
            "tier": self.tier,
            "price_cents": self.price_cents,
            "max_treatments_per_month": self.max_treatments_per_month,
            "max_treatments_per_week": self.max_treatments_per_week,
            "max_facial_per_month": self.max_facial_per_month,
            "covers_all_services": bool(self.covers_all_services),
            "service_ids": [s.service_id for s in self.services],
        }


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    subscription_id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.client_id"), nullable=False, unique=True)
    plan_id = db.Column(db.Integer, db.ForeignKey("subscription_plans.plan_id"), nullable=True)
    status = db.Column(
        db.Enum(*SUBSCRIPTION_STATUSES, name="subscription_status", native_enum=False, validate_strings=True),
        nullable=False,
        server_default="ACTIVE",
    )
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True)
    minimum_commitment_end = db.Column(db.Date, nullable=True)
    canceled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    client = db.relationship("Client", back_populates="subscription")
    plan = db.relationship("SubscriptionPlan")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.subscription_id,
            "client_id": self.client_id,
            "plan": self.plan.to_dict() if self.plan else None,
            "status": self.status,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "minimum_commitment_end": (
                self.minimum_commitment_end.isoformat() if self.minimum_commitment_end else None
            ),
            "cancel_reason": self.cancel_reason,
        }


class Voucher(db.Model):
    """Free-treatment voucher granted to a client."""

    __tablename__ = "vouchers"

    voucher_id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.client_id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=True)
    any_service = db.Column(db.Boolean, nullable=False, default=False)
    description = db.Column(db.String(255))
    expires_at = db.Column(db.DateTime, nullable=True)
    is_used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.voucher_id,
            "client_id": self.client_id,
            "service_id": self.service_id,
            "any_service": bool(self.any_service),
            "description": self.description,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_used": bool(self.is_used),
            "used_at": self.used_at.isoformat() if self.used_at else None,
        }


class Appointment(db.Model):
    """A booked treatment. Times are wall-clock in the salon's reference timezone."""

    __tablename__ = "appointments"
    __table_args__ = (
        # Non-cancelled appointments hold their start in slot_key; cancelled ones hold NULL.
        db.UniqueConstraint("slot_key", name="uq_appointments_active_slot"),
    )

    appointment_id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.client_id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.subscription_id"), nullable=True)
    voucher_id = db.Column(db.Integer, db.ForeignKey("vouchers.voucher_id"), nullable=True)
    starts_at = db.Column(db.DateTime, nullable=False, index=True)
    ends_at = db.Column(db.DateTime, nullable=False)
    slot_key = db.Column(db.String(16), nullable=True)
    status = db.Column(
        db.Enum(*APPOINTMENT_STATUSES, name="appointment_status", native_enum=False, validate_strings=True),
        nullable=False,
        server_default="PENDING",
    )
    origin = db.Column(
        db.Enum(*APPOINTMENT_ORIGINS, name="appointment_origin", native_enum=False, validate_strings=True),
        nullable=False,
    )
    payment_status = db.Column(
        db.Enum(*PAYMENT_STATUSES, name="payment_status", native_enum=False, validate_strings=True),
        nullable=False,
        server_default="NONE",
    )
    payment_intent_id = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text)
    canceled_by = db.Column(db.String(20))
    cancel_reason = db.Column(db.String(255))
    canceled_at = db.Column(db.DateTime, nullable=True)
    entitlement_forfeited = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    client = db.relationship("Client")
    service = db.relationship("Service")
    subscription = db.relationship("Subscription")
    voucher = db.relationship("Voucher")

    @staticmethod
    def make_slot_key(starts_at: datetime) -> str:
        return starts_at.strftime("%Y-%m-%dT%H:%M")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.appointment_id,
            "client_id": self.client_id,
            "client": self.client.to_dict_basic() if self.client else None,
            "service_id": self.service_id,
            "service": {
                "id": self.service.service_id,
                "name": self.service.name,
                "price_cents": self.service.price_cents,
                "duration_minutes": self.service.duration_minutes,
            } if self.service else None,
            "subscription_id": self.subscription_id,
            "voucher_id": self.voucher_id,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "status": self.status,
            "origin": self.origin,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "canceled_by": self.canceled_by,
            "cancel_reason": self.cancel_reason,
            "canceled_at": self.canceled_at.isoformat() if self.canceled_at else None,
            "entitlement_forfeited": bool(self.entitlement_forfeited),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class BookingLock(db.Model):
    """Row whose update serializes writers for one day or one subscription."""

    __tablename__ = "booking_locks"

    lock_key = db.Column(db.String(64), primary_key=True)
    version = db.Column(db.Integer, nullable=False, default=0)


class HiddenAppointment(db.Model):
    """A client's "hide from my history" preference; the appointment itself is untouched."""

    __tablename__ = "hidden_appointments"
    __table_args__ = (
        db.UniqueConstraint("client_id", "appointment_id", name="uq_hidden_client_appointment"),
    )

    hidden_id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.client_id"), nullable=False)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.appointment_id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)


class Notification(db.Model):
    __tablename__ = "notifications"

    notification_id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.client_id"), nullable=False)
    appointment_id = db.Column(db.Integer, db.ForeignKey("appointments.appointment_id"), nullable=True)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    notification_type = db.Column(
        db.Enum(
            "appointment_created",
            "appointment_confirmed",
            "appointment_cancelled",
            "appointment_rescheduled",
            "appointment_completed",
            name="notification_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    is_read = db.Column(db.Boolean, nullable=False, server_default="0")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    client = db.relationship("Client")
    appointment = db.relationship("Appointment")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.notification_id,
            "client_id": self.client_id,
            "appointment_id": self.appointment_id,
            "title": self.title,
            "message": self.message,
            "notification_type": self.notification_type,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
