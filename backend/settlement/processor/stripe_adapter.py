"""Stripe payment processor adapter.

Uses stripe-python for hosted Checkout Sessions and subscription
retrieve/cancel. The secret key is passed per request, so no module-level
stripe state is shared between apps.
"""

from __future__ import annotations

import stripe

from .port import (
    MODE_SUBSCRIPTION,
    CheckoutLineItem,
    CheckoutSession,
    CheckoutSessionParams,
    PaymentProcessor,
    ProcessorError,
)


def _line_item(item: CheckoutLineItem) -> dict:
    if item.price_id:
        return {"price": item.price_id, "quantity": item.quantity}
    return {
        "quantity": item.quantity,
        "price_data": {
            "currency": (item.currency or "").lower(),
            "unit_amount": item.unit_amount_cents,
            "product_data": {"name": item.name or "Item"},
        },
    }


def _error_message(exc: stripe.StripeError) -> str:
    return getattr(exc, "user_message", None) or str(exc)


class StripeProcessor(PaymentProcessor):
    """Production Stripe adapter."""

    def __init__(self, api_key: str) -> None:
        self.api_key = api_key

    def _require_key(self) -> None:
        if not self.api_key:
            raise ProcessorError("STRIPE_SECRET_KEY missing")

    def create_checkout_session(self, params: CheckoutSessionParams) -> CheckoutSession:
        self._require_key()

        session_params = {
            "mode": params.mode,
            "line_items": [_line_item(item) for item in params.line_items],
            "success_url": params.success_url,
            "cancel_url": params.cancel_url,
            "metadata": dict(params.metadata),
        }
        if params.client_reference_id:
            session_params["client_reference_id"] = params.client_reference_id
        if params.customer_email:
            session_params["customer_email"] = params.customer_email
        if params.mode == MODE_SUBSCRIPTION and params.subscription_metadata:
            # Session metadata is not copied onto the subscription object
            session_params["subscription_data"] = {"metadata": dict(params.subscription_metadata)}

        try:
            session = stripe.checkout.Session.create(api_key=self.api_key, **session_params)
        except stripe.StripeError as exc:
            raise ProcessorError(_error_message(exc)) from exc

        return CheckoutSession(id=session.id, url=session.url)

    def retrieve_subscription(self, external_ref: str) -> dict:
        self._require_key()
        try:
            subscription = stripe.Subscription.retrieve(external_ref, api_key=self.api_key)
        except stripe.StripeError as exc:
            raise ProcessorError(_error_message(exc)) from exc
        return subscription.to_dict()

    def cancel_subscription(self, external_ref: str) -> None:
        self._require_key()
        try:
            stripe.Subscription.cancel(external_ref, api_key=self.api_key)
        except stripe.StripeError as exc:
            raise ProcessorError(_error_message(exc)) from exc
