"""Configuration defaults and the read-only scheduling settings view."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, time
from zoneinfo import ZoneInfo

from flask import current_app


class DefaultConfig:
    """Baseline Flask configuration; anything here can be overridden."""

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///salonbook.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")
    TOKEN_MAX_AGE_SECONDS = 86400

    MIN_CANCELLATION_HOURS = 8
    MIN_RESCHEDULE_HOURS = 8
    SLOT_GRANULARITY_MINUTES = 60
    DEFAULT_OPEN_TIME = "09:00"
    DEFAULT_CLOSE_TIME = "18:00"
    # 0=Sunday ... 6=Saturday
    DEFAULT_OPEN_WEEKDAYS = (1, 2, 3, 4, 5, 6)
    MINIMUM_LEAD_MINUTES = 30
    REFERENCE_TIMEZONE = "America/Sao_Paulo"
    REGIONAL_HOLIDAYS_CLOSE = False
    MAX_SUBSCRIPTION_TREATMENTS_PER_DAY = 3
    MINIMUM_COMMITMENT_MONTHS = 3

    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY")
    PAYMENT_CURRENCY = "brl"


@dataclass(frozen=True)
class SchedulingSettings:
    min_cancellation_hours: float
    min_reschedule_hours: float
    slot_granularity_minutes: int
    default_open_time: time
    default_close_time: time
    default_open_weekdays: tuple[int, ...]
    minimum_lead_minutes: int
    reference_timezone: str
    regional_holidays_close: bool
    max_subscription_treatments_per_day: int | None
    minimum_commitment_months: int

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.reference_timezone)

    def now(self) -> datetime:
        """Current wall-clock time in the reference timezone, as a naive datetime."""
        return datetime.now(self.zone).replace(tzinfo=None)

    def to_reference(self, value: datetime) -> datetime:
        """Interpret ``value`` in the reference timezone and drop the tzinfo.

        Naive values are assumed to already be reference wall-clock time.
        """
        if value.tzinfo is None:
            return value
        return value.astimezone(self.zone).replace(tzinfo=None)

    def to_dict(self) -> dict[str, object]:
        return {
            "min_cancellation_hours": self.min_cancellation_hours,
            "min_reschedule_hours": self.min_reschedule_hours,
            "slot_granularity_minutes": self.slot_granularity_minutes,
            "default_open_time": self.default_open_time.strftime("%H:%M"),
            "default_close_time": self.default_close_time.strftime("%H:%M"),
            "default_open_weekdays": list(self.default_open_weekdays),
            "minimum_lead_minutes": self.minimum_lead_minutes,
            "reference_timezone": self.reference_timezone,
            "regional_holidays_close": self.regional_holidays_close,
            "max_subscription_treatments_per_day": self.max_subscription_treatments_per_day,
            "minimum_commitment_months": self.minimum_commitment_months,
        }


def parse_clock(value: str) -> time:
    """Parse an ``HH:MM`` string."""
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def settings_from_mapping(config) -> SchedulingSettings:
    daily_limit = config.get("MAX_SUBSCRIPTION_TREATMENTS_PER_DAY")
    return SchedulingSettings(
        min_cancellation_hours=float(config["MIN_CANCELLATION_HOURS"]),
        min_reschedule_hours=float(config["MIN_RESCHEDULE_HOURS"]),
        slot_granularity_minutes=int(config["SLOT_GRANULARITY_MINUTES"]),
        default_open_time=parse_clock(config["DEFAULT_OPEN_TIME"]),
        default_close_time=parse_clock(config["DEFAULT_CLOSE_TIME"]),
        default_open_weekdays=tuple(config["DEFAULT_OPEN_WEEKDAYS"]),
        minimum_lead_minutes=int(config["MINIMUM_LEAD_MINUTES"]),
        reference_timezone=config["REFERENCE_TIMEZONE"],
        regional_holidays_close=bool(config["REGIONAL_HOLIDAYS_CLOSE"]),
        max_subscription_treatments_per_day=int(daily_limit) if daily_limit else None,
        minimum_commitment_months=int(config["MINIMUM_COMMITMENT_MONTHS"]),
    )


def get_settings() -> SchedulingSettings:
    """Scheduling settings of the current application (read-only)."""
    return settings_from_mapping(current_app.config)
