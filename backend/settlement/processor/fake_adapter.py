"""Configurable fake payment processor for development and testing.

Simulates hosted checkout and subscription management without any external
calls. Can be configured to fail, so callers' error paths are exercised.
"""

from __future__ import annotations

from uuid import uuid4

from .port import CheckoutSession, CheckoutSessionParams, PaymentProcessor, ProcessorError


class FakeProcessor(PaymentProcessor):
    """Configurable fake payment processor."""

    def __init__(self, checkout_base_url: str = "https://checkout.fake.test/pay") -> None:
        self.checkout_base_url = checkout_base_url
        self.should_succeed: bool = True
        self.failure_reason: str = "Processor unavailable"
        self.calls: list[dict] = []
        self.sessions: dict[str, CheckoutSessionParams] = {}
        self.subscriptions: dict[str, dict] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Processor unavailable") -> None:
        """Configure processor behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def reset(self) -> None:
        self.configure(True)
        self.calls.clear()
        self.sessions.clear()
        self.subscriptions.clear()

    def create_checkout_session(self, params: CheckoutSessionParams) -> CheckoutSession:
        self.calls.append({"method": "create_checkout_session", "params": params})
        if not self.should_succeed:
            raise ProcessorError(self.failure_reason)

        session_id = f"cs_fake_{uuid4().hex[:12]}"
        self.sessions[session_id] = params
        return CheckoutSession(id=session_id, url=f"{self.checkout_base_url}/{session_id}")

    def add_subscription(self, external_ref: str, **fields) -> dict:
        subscription = {"id": external_ref, "object": "subscription", "status": "active", **fields}
        self.subscriptions[external_ref] = subscription
        return subscription

    def retrieve_subscription(self, external_ref: str) -> dict:
        self.calls.append({"method": "retrieve_subscription", "external_ref": external_ref})
        if not self.should_succeed:
            raise ProcessorError(self.failure_reason)
        if external_ref not in self.subscriptions:
            raise ProcessorError(f"No such subscription: {external_ref}")
        return dict(self.subscriptions[external_ref])

    def cancel_subscription(self, external_ref: str) -> None:
        self.calls.append({"method": "cancel_subscription", "external_ref": external_ref})
        if not self.should_succeed:
            raise ProcessorError(self.failure_reason)
        subscription = self.subscriptions.setdefault(external_ref, {"id": external_ref, "object": "subscription"})
        subscription["status"] = "canceled"
