# Overview: Subscription reconciler; mirrors processor subscription lifecycle signals into local rows.

"""
Subscription reconciler.

The processor owns the subscription lifecycle; local rows are a mirror keyed
by the processor's subscription id (external_ref). "created" inserts (or
refreshes an existing row for the same reference), "updated" and "deleted"
only touch rows that already exist. Signals for unknown references are
logged and dropped.
"""

from __future__ import annotations

from typing import Optional

from flask import current_app

from ..models import MembershipPlan, Subscription
from ..models.membership import (
    SUBSCRIPTION_STATUS_ACTIVE,
    SUBSCRIPTION_STATUS_CANCELLED,
    SUBSCRIPTION_STATUS_INCOMPLETE,
    SUBSCRIPTION_STATUS_PAST_DUE,
)
from ..time_utils import from_epoch_seconds, utcnow
from .concurrency import commit


PROCESSOR_STATUS_MAP = {
    "active": SUBSCRIPTION_STATUS_ACTIVE,
    "trialing": SUBSCRIPTION_STATUS_ACTIVE,
    "past_due": SUBSCRIPTION_STATUS_PAST_DUE,
    "canceled": SUBSCRIPTION_STATUS_CANCELLED,
    "unpaid": SUBSCRIPTION_STATUS_CANCELLED,
    "incomplete": SUBSCRIPTION_STATUS_INCOMPLETE,
    "incomplete_expired": SUBSCRIPTION_STATUS_INCOMPLETE,
}


def map_status(raw: Optional[str]) -> str:
    """Processor status vocabulary -> local status; unknown values pass through uppercased."""
    if not raw:
        return SUBSCRIPTION_STATUS_INCOMPLETE
    return PROCESSOR_STATUS_MAP.get(raw, raw.upper())


def period_bounds(obj: dict):
    """
    Current period (start, end) of a processor subscription.

    Newer processor API versions report the period on each subscription item
    instead of the subscription itself; fall back to the first item.
    """
    start = obj.get("current_period_start")
    end = obj.get("current_period_end")
    if start is None or end is None:
        items = (obj.get("items") or {}).get("data") or []
        if items:
            start = start if start is not None else items[0].get("current_period_start")
            end = end if end is not None else items[0].get("current_period_end")
    return from_epoch_seconds(start), from_epoch_seconds(end)


class SubscriptionReconciler:
    def __init__(self, session) -> None:
        self.session = session

    def on_created(self, obj: dict) -> Optional[Subscription]:
        external_ref = obj.get("id")
        metadata = obj.get("metadata") or {}
        user_id = metadata.get("user_id")
        plan_id = metadata.get("plan_id")

        if not external_ref or not user_id or not plan_id:
            current_app.logger.warning(
                "Subscription %s created without user_id/plan_id metadata; dropped", external_ref
            )
            return None

        try:
            plan = self.session.get(MembershipPlan, int(plan_id))
        except (TypeError, ValueError):
            plan = None
        if plan is None:
            current_app.logger.warning(
                "Subscription %s references unknown plan %s; dropped", external_ref, plan_id
            )
            return None

        period_start, period_end = period_bounds(obj)
        status = map_status(obj.get("status"))

        subscription = self._find(external_ref)
        if subscription is None:
            subscription = Subscription(external_ref=external_ref)
            self.session.add(subscription)
        else:
            current_app.logger.info("Subscription %s already recorded; refreshing", external_ref)

        subscription.user_id = str(user_id)
        subscription.plan_id = plan.id
        subscription.status = status
        subscription.current_period_start = period_start
        subscription.current_period_end = period_end
        commit(self.session)

        current_app.logger.info(
            "Created subscription %s for user %s plan %s (processor: %s)",
            subscription.id, user_id, plan.id, external_ref,
        )
        return subscription

    def on_updated(self, obj: dict) -> Optional[Subscription]:
        external_ref = obj.get("id")
        subscription = self._find(external_ref)
        if subscription is None:
            current_app.logger.warning(
                "Received update for unknown processor subscription: %s", external_ref
            )
            return None

        period_start, period_end = period_bounds(obj)
        subscription.status = map_status(obj.get("status"))
        if period_start is not None:
            subscription.current_period_start = period_start
        if period_end is not None:
            subscription.current_period_end = period_end
        if subscription.status == SUBSCRIPTION_STATUS_CANCELLED and subscription.cancelled_at is None:
            subscription.cancelled_at = from_epoch_seconds(obj.get("canceled_at")) or utcnow()
        commit(self.session)

        current_app.logger.info(
            "Updated subscription %s status=%s period=%s-%s",
            subscription.id, subscription.status, period_start, period_end,
        )
        return subscription

    def on_deleted(self, obj: dict) -> Optional[Subscription]:
        external_ref = obj.get("id")
        subscription = self._find(external_ref)
        if subscription is None:
            current_app.logger.warning(
                "Received deletion for unknown processor subscription: %s", external_ref
            )
            return None

        subscription.status = SUBSCRIPTION_STATUS_CANCELLED
        subscription.cancelled_at = utcnow()
        commit(self.session)

        current_app.logger.info(
            "Marked subscription %s as cancelled (processor: %s)", subscription.id, external_ref
        )
        return subscription

    def _find(self, external_ref: Optional[str]) -> Optional[Subscription]:
        if not external_ref:
            return None
        return self.session.query(Subscription).filter_by(external_ref=external_ref).first()
