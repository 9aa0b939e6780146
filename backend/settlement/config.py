# backend/settlement/config.py
from __future__ import annotations
import os


def _csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip().upper() for part in value.split(",") if part.strip())


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///settlement.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Payment processor (Stripe)
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_WEBHOOK_TOLERANCE = int(os.environ.get("STRIPE_WEBHOOK_TOLERANCE", "300"))

    # Where the processor redirects the buyer after checkout
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:4321").rstrip("/")

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "CZK").upper()
    SUPPORTED_CURRENCIES = _csv(os.environ.get("SUPPORTED_CURRENCIES", "CZK,EUR"))

    # PENDING orders older than this are swept to CANCELLED
    STALE_ORDER_HOURS = int(os.environ.get("STALE_ORDER_HOURS", "24"))

    # Settlement outbox: stop republishing a publication after this many attempts
    OUTBOX_MAX_ATTEMPTS = int(os.environ.get("OUTBOX_MAX_ATTEMPTS", "5"))

    # Bearer tokens accepted by the static identity resolver:
    # "token:user_id:email[:admin]" entries separated by ";"
    STATIC_IDENTITY_TOKENS = os.environ.get("STATIC_IDENTITY_TOKENS", "")


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
    FRONTEND_URL = "http://shop.test"
    DEFAULT_CURRENCY = "CZK"
    SUPPORTED_CURRENCIES = ("CZK", "EUR")
