"""Payment processor adapters.

- FakeProcessor for development and testing
- StripeProcessor for production

The active processor is chosen in create_app() and injected into the
services that need it; there is no module-level default.
"""

from .fake_adapter import FakeProcessor
from .port import (
    MODE_PAYMENT,
    MODE_SUBSCRIPTION,
    CheckoutLineItem,
    CheckoutSession,
    CheckoutSessionParams,
    PaymentProcessor,
    ProcessorError,
)
from .stripe_adapter import StripeProcessor

__all__ = [
    "MODE_PAYMENT",
    "MODE_SUBSCRIPTION",
    "CheckoutLineItem",
    "CheckoutSession",
    "CheckoutSessionParams",
    "FakeProcessor",
    "PaymentProcessor",
    "ProcessorError",
    "StripeProcessor",
]
