# Overview: Checkout orchestrator; turns an order or a plan into a processor-hosted checkout session.

"""
Checkout orchestrator.

Prices are final before the processor is called: one-off checkouts are built
from the stored line items, never re-read from the catalog. The order id (or
the user and plan ids for memberships) travels with the session as the
correlation token the webhook later resolves.

A processor failure raises CheckoutError and leaves the order PENDING, so the
buyer can retry with resume_checkout() instead of creating a new order.
Each issued session is recorded as the order's current one; expiry of an
earlier, abandoned session leaves the order alone.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import current_app

from ..models import MembershipPlan, Order
from ..models.orders import ORDER_STATUS_PENDING
from ..processor import (
    MODE_PAYMENT,
    MODE_SUBSCRIPTION,
    CheckoutLineItem,
    CheckoutSessionParams,
    PaymentProcessor,
    ProcessorError,
)
from ..values import CartItem
from .identity import Principal
from .order_service import OrderError, OrderLedger


CHECKOUT_SUCCESS_PATH = "/checkout/success?session_id={CHECKOUT_SESSION_ID}"
CHECKOUT_CANCEL_PATH = "/checkout/cancelled?order_id={order_id}"
MEMBERSHIP_SUCCESS_PATH = "/account/membership?success=true"
MEMBERSHIP_CANCEL_PATH = "/account/membership?cancelled=true"


class CheckoutError(Exception):
    """The processor could not create a checkout session."""
    def __init__(self, message: str, order_id: int | None = None):
        super().__init__(message)
        self.order_id = order_id


@dataclass(frozen=True)
class CheckoutResult:
    checkout_url: str
    order_id: Optional[int] = None
    session_id: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"checkout_url": self.checkout_url}
        if self.order_id is not None:
            data["order_id"] = self.order_id
        return data


class CheckoutOrchestrator:
    def __init__(self, ledger: OrderLedger, processor: PaymentProcessor, *, frontend_url: str) -> None:
        self.ledger = ledger
        self.processor = processor
        self.frontend_url = frontend_url.rstrip("/")

    def start_checkout(
        self,
        principal: Principal,
        items: list[CartItem],
        currency: Optional[str] = None,
    ) -> CheckoutResult:
        """Create a PENDING order and a hosted checkout session for it."""
        order = self.ledger.create(principal.user_id, items, currency)
        return self._checkout_for_order(principal, order)

    def resume_checkout(self, principal: Principal, order_id: int) -> CheckoutResult:
        """Issue a fresh session for an existing PENDING order of the same buyer."""
        order = self.ledger.get_order(order_id, buyer_id=principal.user_id)
        if order.status != ORDER_STATUS_PENDING:
            raise OrderError(
                f"Order {order.id} is {order.status}; only pending orders can be paid",
                details={"status": order.status},
            )
        return self._checkout_for_order(principal, order)

    def start_subscription_checkout(
        self,
        principal: Principal,
        plan: MembershipPlan,
        price_id: str,
    ) -> CheckoutResult:
        correlation = {"user_id": principal.user_id, "plan_id": str(plan.id)}
        params = CheckoutSessionParams(
            mode=MODE_SUBSCRIPTION,
            success_url=self.frontend_url + MEMBERSHIP_SUCCESS_PATH,
            cancel_url=self.frontend_url + MEMBERSHIP_CANCEL_PATH,
            line_items=(CheckoutLineItem(quantity=1, price_id=price_id),),
            customer_email=principal.email,
            metadata=correlation,
            subscription_metadata=correlation,
        )
        try:
            session = self.processor.create_checkout_session(params)
        except ProcessorError as exc:
            current_app.logger.error(
                "Failed to create subscription checkout for user %s: %s", principal.user_id, exc
            )
            raise CheckoutError("Failed to create subscription checkout") from exc

        current_app.logger.info(
            "Created subscription checkout session %s for user %s plan %s",
            session.id, principal.user_id, plan.slug,
        )
        return CheckoutResult(checkout_url=session.url, session_id=session.id)

    def _checkout_for_order(self, principal: Principal, order: Order) -> CheckoutResult:
        line_items = tuple(
            CheckoutLineItem(
                quantity=line.quantity,
                name=line.snapshot.title,
                unit_amount_cents=line.unit_price_cents,
                currency=order.currency,
            )
            for line in order.items
        )
        params = CheckoutSessionParams(
            mode=MODE_PAYMENT,
            success_url=self.frontend_url + CHECKOUT_SUCCESS_PATH,
            cancel_url=self.frontend_url + CHECKOUT_CANCEL_PATH.format(order_id=order.id),
            line_items=line_items,
            client_reference_id=str(order.id),
            customer_email=principal.email,
            metadata={"order_id": str(order.id), "user_name": principal.name or ""},
        )
        try:
            session = self.processor.create_checkout_session(params)
        except ProcessorError as exc:
            current_app.logger.error(
                "Failed to create checkout session for order %s: %s", order.id, exc
            )
            raise CheckoutError("Failed to create checkout session", order_id=order.id) from exc

        self.ledger.record_checkout_session(order.id, session.id)
        current_app.logger.info("Created checkout session %s for order %s", session.id, order.id)
        return CheckoutResult(checkout_url=session.url, order_id=order.id, session_id=session.id)
