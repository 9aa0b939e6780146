"""Payment processor port (abstract interface).

Defines the contract every processor adapter implements, so checkout and
membership code can run against StripeProcessor in production and
FakeProcessor in development and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional


MODE_PAYMENT = "payment"
MODE_SUBSCRIPTION = "subscription"


class ProcessorError(Exception):
    """The processor rejected the call or could not be reached."""


@dataclass(frozen=True)
class CheckoutLineItem:
    """One line of a hosted checkout.

    Either ad-hoc pricing (name + unit_amount_cents + currency) for one-off
    purchases, or a processor price id for recurring plans.
    """

    quantity: int
    name: Optional[str] = None
    unit_amount_cents: Optional[int] = None
    currency: Optional[str] = None
    price_id: Optional[str] = None


@dataclass(frozen=True)
class CheckoutSessionParams:
    """Everything the processor needs to host a checkout; prices are final."""

    mode: str
    success_url: str
    cancel_url: str
    line_items: tuple[CheckoutLineItem, ...]
    client_reference_id: Optional[str] = None
    customer_email: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    subscription_metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CheckoutSession:
    """Result of creating a hosted checkout session."""

    id: str
    url: str


class PaymentProcessor(ABC):
    """Abstract payment processor interface."""

    @abstractmethod
    def create_checkout_session(self, params: CheckoutSessionParams) -> CheckoutSession:
        """Create a hosted checkout session and return its redirect URL."""
        ...

    @abstractmethod
    def retrieve_subscription(self, external_ref: str) -> dict:
        """Fetch the processor's current view of a subscription."""
        ...

    @abstractmethod
    def cancel_subscription(self, external_ref: str) -> None:
        """Cancel a subscription at the processor."""
        ...
