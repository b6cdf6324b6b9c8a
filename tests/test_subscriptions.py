"""Tests for subscribing, changing plan and cancelling a subscription."""
from __future__ import annotations

from datetime import date, datetime

import pytest

from salonbook import subscriptions
from salonbook.errors import CommitmentActive, InvalidRequest, NotFound
from salonbook.extensions import db
from salonbook.models import SubscriptionPlan


@pytest.fixture
def premium_plan_id(seed):
    plan = SubscriptionPlan(
        name="Premium",
        tier="GOLD",
        price_cents=39900,
        max_treatments_per_month=8,
        max_treatments_per_week=2,
        covers_all_services=True,
    )
    db.session.add(plan)
    db.session.commit()
    return plan.plan_id


def test_subscribe_sets_commitment(seed, premium_plan_id) -> None:
    subscription = subscriptions.subscribe(seed.walk_in_id, premium_plan_id, now=datetime(2025, 11, 30, 12, 0))

    assert subscription.status == "ACTIVE"
    assert subscription.start_date == date(2025, 11, 30)
    assert subscription.minimum_commitment_end == date(2026, 2, 28)


def test_cannot_subscribe_twice(seed, premium_plan_id) -> None:
    with pytest.raises(InvalidRequest):
        subscriptions.subscribe(seed.subscriber_id, premium_plan_id)


def test_cancel_within_commitment_is_refused(seed) -> None:
    with pytest.raises(CommitmentActive) as excinfo:
        subscriptions.cancel_subscription(seed.subscription_id, now=datetime(2025, 5, 31, 9, 0))

    assert excinfo.value.to_dict()["minimum_commitment_end"] == "2025-06-01"


def test_cancel_after_commitment_and_resubscribe(seed, premium_plan_id) -> None:
    subscription = subscriptions.cancel_subscription(
        seed.subscription_id, reason="Mudança de cidade", now=datetime(2025, 6, 1, 9, 0)
    )
    assert subscription.status == "CANCELED"
    assert subscription.end_date == date(2025, 6, 1)

    with pytest.raises(InvalidRequest):
        subscriptions.cancel_subscription(seed.subscription_id, now=datetime(2025, 6, 2, 9, 0))

    renewed = subscriptions.subscribe(seed.subscriber_id, premium_plan_id, now=datetime(2025, 7, 10, 9, 0))
    assert renewed.subscription_id == seed.subscription_id
    assert renewed.status == "ACTIVE"
    assert renewed.start_date == date(2025, 7, 10)
    assert renewed.cancel_reason is None


def test_change_plan(seed, premium_plan_id) -> None:
    subscription = subscriptions.change_plan(seed.subscription_id, premium_plan_id)

    assert subscription.plan.name == "Premium"
    with pytest.raises(NotFound):
        subscriptions.change_plan(seed.subscription_id, 999)


def test_subscription_endpoints(client, seed, premium_plan_id) -> None:
    response = client.post("/subscriptions", json={"client_id": seed.walk_in_id, "plan_id": premium_plan_id})
    assert response.status_code == 201
    subscription_id = response.get_json()["subscription"]["id"]

    response = client.put(f"/subscriptions/{subscription_id}/plan", json={"plan_id": seed.plan_id})
    assert response.status_code == 200
    assert response.get_json()["subscription"]["plan"]["name"] == "Essencial"

    response = client.put(f"/subscriptions/{subscription_id}/cancel", json={"reason": "teste"})
    assert response.status_code == 400
    assert response.get_json()["error"] == "commitment_active"

    assert client.post("/subscriptions", json={"client_id": seed.walk_in_id}).status_code == 400
