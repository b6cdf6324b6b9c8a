"""Subscribe, change plan and cancel a client's subscription."""
from __future__ import annotations

from datetime import datetime

from flask import current_app

from .config import get_settings
from .entitlements import add_months
from .errors import CommitmentActive, InvalidRequest, NotFound
from .extensions import db
from .models import Client, Subscription, SubscriptionPlan


def _get_plan(plan_id: int) -> SubscriptionPlan:
    plan = db.session.get(SubscriptionPlan, plan_id)
    if plan is None or not plan.is_active:
        raise NotFound("Plan not found")
    return plan


def _get_subscription(subscription_id: int) -> Subscription:
    subscription = db.session.get(Subscription, subscription_id)
    if subscription is None:
        raise NotFound("Subscription not found")
    return subscription


def subscribe(client_id: int, plan_id: int, now: datetime | None = None) -> Subscription:
    """Start (or restart) the client's subscription; its billing day is today."""
    settings = get_settings()
    now = now or settings.now()

    client = db.session.get(Client, client_id)
    if client is None:
        raise NotFound("Client not found")
    plan = _get_plan(plan_id)

    subscription = client.subscription
    if subscription is not None and subscription.status == "ACTIVE":
        raise InvalidRequest("Client already has an active subscription")

    today = now.date()
    if subscription is None:
        subscription = Subscription(client_id=client.client_id)
        db.session.add(subscription)
    subscription.plan_id = plan.plan_id
    subscription.status = "ACTIVE"
    subscription.start_date = today
    subscription.end_date = None
    subscription.minimum_commitment_end = add_months(today, settings.minimum_commitment_months)
    subscription.canceled_at = None
    subscription.cancel_reason = None
    db.session.commit()

    current_app.logger.info("Client %s subscribed to plan %s", client_id, plan.name)
    return subscription


def change_plan(subscription_id: int, plan_id: int) -> Subscription:
    """Switch an active subscription to another plan; limits apply from now on."""
    subscription = _get_subscription(subscription_id)
    if subscription.status != "ACTIVE":
        raise InvalidRequest("Only active subscriptions can change plan")
    plan = _get_plan(plan_id)
    subscription.plan_id = plan.plan_id
    db.session.commit()
    current_app.logger.info("Subscription %s moved to plan %s", subscription_id, plan.name)
    return subscription


def cancel_subscription(
    subscription_id: int,
    reason: str | None = None,
    now: datetime | None = None,
) -> Subscription:
    """Cancel a subscription once its minimum commitment period is over."""
    now = now or get_settings().now()
    subscription = _get_subscription(subscription_id)
    if subscription.status == "CANCELED":
        raise InvalidRequest("Subscription is already cancelled")

    today = now.date()
    if subscription.minimum_commitment_end and today < subscription.minimum_commitment_end:
        raise CommitmentActive(
            "The minimum commitment period has not ended yet.",
            minimum_commitment_end=subscription.minimum_commitment_end.isoformat(),
        )

    subscription.status = "CANCELED"
    subscription.canceled_at = now
    subscription.cancel_reason = reason
    subscription.end_date = today
    db.session.commit()
    current_app.logger.info("Subscription %s cancelled", subscription_id)
    return subscription
