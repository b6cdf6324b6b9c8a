"""Shared fixtures: an in-memory app and a small seeded salon."""
from __future__ import annotations

import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest

# Ensure the project root is available on sys.path so tests can import the package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salonbook import create_app  # noqa: E402
from salonbook.config import get_settings  # noqa: E402
from salonbook.extensions import db  # noqa: E402
from salonbook.models import (BusinessHours, Client, Service, Subscription,  # noqa: E402
                              SubscriptionPlan)

# Monday 3 March 2025, 08:00 salon time.
NOW = datetime(2025, 3, 3, 8, 0)

SPLIT_DAY = [{"start": 540, "end": 720}, {"start": 780, "end": 1080}]
WEEKLY_HOURS = {
    0: [],
    1: SPLIT_DAY,
    2: SPLIT_DAY,
    3: SPLIT_DAY,
    4: SPLIT_DAY,
    5: SPLIT_DAY,
    6: [{"start": 540, "end": 780}],
}


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "SECRET_KEY": "test-secret",
        "STRIPE_SECRET_KEY": None,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def upcoming_monday() -> date:
    """A Monday at least a week past the salon's real clock.

    Endpoint tests cannot pass ``now``, so their bookings must stay in the future.
    """
    today = get_settings().now().date()
    return today + timedelta(days=14 - today.weekday())


def add_weekly_hours(hours=None) -> None:
    for weekday, intervals in (hours or WEEKLY_HOURS).items():
        db.session.add(BusinessHours(weekday=weekday, is_open=bool(intervals), intervals=intervals))
    db.session.commit()


def seed_salon() -> SimpleNamespace:
    """Opening hours, three services, a plan and one subscribed client.

    Returns the primary keys so tests can reload rows after commits.
    """
    add_weekly_hours()

    massage = Service(name="Massagem Relaxante", category="massage", price_cents=12000, duration_minutes=60)
    facial = Service(name="Limpeza de Pele", category="facial", price_cents=15000, duration_minutes=60)
    peel = Service(
        name="Peeling Químico",
        category="facial",
        price_cents=22000,
        duration_minutes=90,
        plan_coverable=False,
    )
    plan = SubscriptionPlan(
        name="Essencial",
        tier="BRONZE",
        price_cents=19900,
        max_treatments_per_month=4,
        max_facial_per_month=2,
        covers_all_services=True,
    )
    subscriber = Client(name="Ana Souza", email="ana@example.com")
    walk_in = Client(name="Bruno Lima", email="bruno@example.com")
    db.session.add_all([massage, facial, peel, plan, subscriber, walk_in])
    db.session.flush()

    subscription = Subscription(
        client_id=subscriber.client_id,
        plan_id=plan.plan_id,
        status="ACTIVE",
        start_date=date(2025, 3, 1),
        minimum_commitment_end=date(2025, 6, 1),
    )
    db.session.add(subscription)
    db.session.commit()

    return SimpleNamespace(
        massage_id=massage.service_id,
        facial_id=facial.service_id,
        peel_id=peel.service_id,
        plan_id=plan.plan_id,
        subscriber_id=subscriber.client_id,
        walk_in_id=walk_in.client_id,
        subscription_id=subscription.subscription_id,
    )


@pytest.fixture
def seed(app):
    return seed_salon()
