# Overview: Membership service; plans, active subscription lookup, subscribe and cancel.

from __future__ import annotations

import re
from typing import Iterable, Optional

from flask import current_app

from ..models import MembershipPlan, Subscription
from ..models.membership import SUBSCRIPTION_STATUS_ACTIVE, SUBSCRIPTION_STATUS_CANCELLED
from ..processor import PaymentProcessor, ProcessorError
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, parse_currency, parse_int
from ..values import PlanFeatures
from .checkout_service import CheckoutError, CheckoutOrchestrator, CheckoutResult
from .concurrency import commit
from .identity import Principal


SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

UPDATABLE_PLAN_FIELDS = (
    "name",
    "description",
    "processor_price_czk",
    "processor_price_eur",
    "features",
    "sort_order",
    "active",
)


class MembershipError(Exception):
    """Raised for membership business rule violations."""


class MembershipService:
    def __init__(
        self,
        session,
        processor: PaymentProcessor,
        checkout: CheckoutOrchestrator,
        *,
        supported_currencies: Iterable[str] = ("CZK", "EUR"),
        default_currency: str = "CZK",
    ) -> None:
        self.session = session
        self.processor = processor
        self.checkout = checkout
        self.supported_currencies = tuple(supported_currencies)
        self.default_currency = default_currency

    # =========================================================================
    # Plans
    # =========================================================================

    def list_plans(self, active_only: bool = False) -> list[MembershipPlan]:
        query = self.session.query(MembershipPlan)
        if active_only:
            query = query.filter(MembershipPlan.active.is_(True))
        return query.order_by(MembershipPlan.sort_order.asc(), MembershipPlan.id.asc()).all()

    def get_plan(self, plan_id: int) -> MembershipPlan:
        plan = self.session.get(MembershipPlan, plan_id)
        if plan is None:
            raise NotFoundError("Plan not found")
        return plan

    def create_plan(self, data: dict) -> MembershipPlan:
        name = (data.get("name") or "").strip()
        slug = (data.get("slug") or "").strip().lower()
        if not name:
            raise ValidationError("name required")
        if not slug or not SLUG_PATTERN.match(slug):
            raise ValidationError("slug must be lowercase letters, digits and dashes")
        if self.session.query(MembershipPlan.id).filter_by(slug=slug).first():
            raise ConflictError(f"Plan with slug '{slug}' already exists")

        plan = MembershipPlan(name=name, slug=slug)
        self._apply(plan, {k: v for k, v in data.items() if k not in ("name", "slug")})
        self.session.add(plan)
        commit(self.session)
        current_app.logger.info("Created membership plan %s (%s)", plan.id, plan.slug)
        return plan

    def update_plan(self, plan_id: int, data: dict) -> MembershipPlan:
        plan = self.get_plan(plan_id)
        if "name" in data and not (data.get("name") or "").strip():
            raise ValidationError("name cannot be empty")
        self._apply(plan, data)
        commit(self.session)
        current_app.logger.info("Updated membership plan %s", plan.id)
        return plan

    def _apply(self, plan: MembershipPlan, data: dict) -> None:
        for field in UPDATABLE_PLAN_FIELDS:
            if field not in data:
                continue
            value = data[field]
            if field == "name":
                plan.name = value.strip()
            elif field == "features":
                plan.features = PlanFeatures.from_dict(value)
            elif field == "sort_order":
                plan.sort_order = parse_int(value, "sort_order")
            elif field == "active":
                if not isinstance(value, bool):
                    raise ValidationError("active must be a boolean")
                plan.active = value
            else:
                setattr(plan, field, value or None)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def get_active_subscription(self, user_id: str) -> Optional[Subscription]:
        """ACTIVE with a period end in the future; newest period wins if several match."""
        return (
            self.session.query(Subscription)
            .filter(
                Subscription.user_id == user_id,
                Subscription.status == SUBSCRIPTION_STATUS_ACTIVE,
                Subscription.current_period_end > utcnow(),
            )
            .order_by(Subscription.current_period_end.desc())
            .first()
        )

    def features_for(self, user_id: str) -> Optional[PlanFeatures]:
        subscription = self.get_active_subscription(user_id)
        if subscription is None or subscription.plan is None:
            return None
        return subscription.plan.features

    def subscribe(self, principal: Principal, plan_slug: str, currency: Optional[str] = None) -> CheckoutResult:
        plan = (
            self.session.query(MembershipPlan)
            .filter_by(slug=(plan_slug or "").strip().lower(), active=True)
            .first()
        )
        if plan is None:
            raise MembershipError(f"Plan not found: {plan_slug}")

        currency = parse_currency(
            currency,
            supported=self.supported_currencies,
            default=self.default_currency,
        )
        price_id = plan.price_for(currency)
        if not price_id:
            raise MembershipError(f"No processor price configured for currency: {currency}")

        return self.checkout.start_subscription_checkout(principal, plan, price_id)

    def cancel(self, user_id: str) -> Subscription:
        """Cancel at the processor first; the local row only changes if that succeeds."""
        subscription = self.get_active_subscription(user_id)
        if subscription is None:
            raise MembershipError("No active subscription found")

        try:
            self.processor.cancel_subscription(subscription.external_ref)
        except ProcessorError as exc:
            current_app.logger.error(
                "Failed to cancel processor subscription %s: %s", subscription.external_ref, exc
            )
            raise CheckoutError("Failed to cancel subscription") from exc

        subscription.status = SUBSCRIPTION_STATUS_CANCELLED
        subscription.cancelled_at = utcnow()
        commit(self.session)
        current_app.logger.info("Cancelled subscription %s for user %s", subscription.id, user_id)
        return subscription
