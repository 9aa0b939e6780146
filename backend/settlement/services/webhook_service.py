# Overview: Webhook gateway; verifies processor notifications and routes them by event type.

"""
Webhook gateway.

The signature is checked over the exact raw request body before anything
else happens; a payload that fails verification never reaches a handler.
Event types without a handler are acknowledged so the processor stops
redelivering them.

A completed checkout paid by a delayed method (payment_status "unpaid") is
not settled until checkout.session.async_payment_succeeded arrives.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

import stripe
from flask import current_app

from .order_service import OrderError, OrderLedger, OrderNotFoundError
from .subscription_service import SubscriptionReconciler


EVENT_CHECKOUT_COMPLETED = "checkout.session.completed"
EVENT_CHECKOUT_EXPIRED = "checkout.session.expired"
EVENT_CHECKOUT_ASYNC_SUCCEEDED = "checkout.session.async_payment_succeeded"
EVENT_CHECKOUT_ASYNC_FAILED = "checkout.session.async_payment_failed"
EVENT_SUBSCRIPTION_CREATED = "customer.subscription.created"
EVENT_SUBSCRIPTION_UPDATED = "customer.subscription.updated"
EVENT_SUBSCRIPTION_DELETED = "customer.subscription.deleted"

PAYMENT_STATUS_UNPAID = "unpaid"


@dataclass(frozen=True)
class WebhookResult:
    status_code: int
    body: dict = field(default_factory=dict)


def _order_id_from_session(session_obj: dict) -> Optional[int]:
    raw = session_obj.get("client_reference_id") or (session_obj.get("metadata") or {}).get("order_id")
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class WebhookGateway:
    def __init__(
        self,
        ledger: OrderLedger,
        reconciler: SubscriptionReconciler,
        *,
        secret: str,
        tolerance: int = 300,
    ) -> None:
        self.ledger = ledger
        self.reconciler = reconciler
        self.secret = secret
        self.tolerance = tolerance
        self._handlers: dict[str, Callable[[dict], None]] = {
            EVENT_CHECKOUT_COMPLETED: self._on_checkout_completed,
            EVENT_CHECKOUT_EXPIRED: self._on_checkout_expired,
            EVENT_CHECKOUT_ASYNC_SUCCEEDED: self._on_async_payment_succeeded,
            EVENT_CHECKOUT_ASYNC_FAILED: self._on_checkout_expired,
            EVENT_SUBSCRIPTION_CREATED: self.reconciler.on_created,
            EVENT_SUBSCRIPTION_UPDATED: self.reconciler.on_updated,
            EVENT_SUBSCRIPTION_DELETED: self.reconciler.on_deleted,
        }

    @property
    def handled_types(self) -> list[str]:
        return sorted(self._handlers)

    def handle(self, payload: Union[bytes, str], signature: Optional[str]) -> WebhookResult:
        if not self.secret:
            current_app.logger.error("STRIPE_WEBHOOK_SECRET is not configured; webhook rejected")
            return WebhookResult(500, {"error": "Webhook secret not configured"})
        if not signature:
            current_app.logger.warning("Webhook rejected: missing signature header")
            return WebhookResult(400, {"error": "Missing signature"})

        try:
            stripe.Webhook.construct_event(payload, signature, self.secret, tolerance=self.tolerance)
        except ValueError:
            current_app.logger.warning("Webhook rejected: invalid payload")
            return WebhookResult(400, {"error": "Invalid payload"})
        except stripe.SignatureVerificationError:
            current_app.logger.warning("Webhook rejected: invalid signature")
            return WebhookResult(400, {"error": "Invalid signature"})

        # Verified; read the event as plain data
        raw = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        event = json.loads(raw)
        event_type = event.get("type")
        event_id = event.get("id")
        current_app.logger.info("Received webhook %s (%s)", event_type, event_id)

        handler = self._handlers.get(event_type)
        if handler is None:
            current_app.logger.debug("Unhandled webhook event type: %s", event_type)
            return WebhookResult(200, {"status": "ignored"})

        obj = (event.get("data") or {}).get("object") or {}
        handler(obj)
        return WebhookResult(200, {"status": "processed"})

    def _on_checkout_completed(self, session_obj: dict) -> None:
        if session_obj.get("mode") == "subscription":
            # Subscription checkouts settle through customer.subscription.* events
            return
        if session_obj.get("payment_status") == PAYMENT_STATUS_UNPAID:
            # Delayed payment method; settles on async_payment_succeeded
            current_app.logger.info(
                "Checkout session %s completed with payment pending", session_obj.get("id")
            )
            return
        self._settle(session_obj)

    def _on_async_payment_succeeded(self, session_obj: dict) -> None:
        if session_obj.get("mode") == "subscription":
            return
        self._settle(session_obj)

    def _settle(self, session_obj: dict) -> None:
        order_id = _order_id_from_session(session_obj)
        if order_id is None:
            current_app.logger.warning(
                "Checkout session %s completed without an order reference", session_obj.get("id")
            )
            return

        details = session_obj.get("customer_details") or {}
        email = details.get("email") or session_obj.get("customer_email")
        name = details.get("name") or (session_obj.get("metadata") or {}).get("user_name") or None
        payment_ref = session_obj.get("payment_intent") or session_obj.get("id")

        current_app.logger.info(
            "Processing checkout completion for order %s, payment %s", order_id, payment_ref
        )
        try:
            self.ledger.mark_paid(order_id, payment_ref, buyer_email=email, buyer_name=name)
        except OrderNotFoundError:
            current_app.logger.warning("Payment confirmation for unknown order %s acknowledged", order_id)
        except OrderError as exc:
            current_app.logger.error(
                "Payment %s for order %s not applied and needs manual review: %s",
                payment_ref, order_id, exc,
            )

    def _on_checkout_expired(self, session_obj: dict) -> None:
        order_id = _order_id_from_session(session_obj)
        if order_id is None:
            return
        session_id = session_obj.get("id")
        try:
            if not self.ledger.cancel(order_id, session_id=session_id):
                current_app.logger.info(
                    "Checkout session %s ended; order %s left unchanged", session_id, order_id
                )
        except OrderNotFoundError:
            current_app.logger.warning("Checkout expiry for unknown order %s acknowledged", order_id)
