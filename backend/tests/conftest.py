# Overview: Pytest fixtures for the settlement backend tests.

"""
Pytest fixtures for settlement backend tests.

Provides the app wired with in-memory collaborators (catalog, fake
processor, static identity), a per-test clean database, and helpers for
signed processor webhooks.
"""

import hashlib
import hmac
import json
import time

import pytest

from settlement import create_app
from settlement.config import TestConfig
from settlement.container import get_services
from settlement.extensions import db
from settlement.models import MembershipPlan
from settlement.processor import FakeProcessor
from settlement.services.catalog import CatalogItem, InMemoryCatalog
from settlement.services.identity import Principal, StaticTokenIdentity
from settlement.values import PlanFeatures


BUYER = Principal(user_id="buyer-1", email="buyer@example.com", name="Jana Buyer")
OTHER_BUYER = Principal(user_id="buyer-2", email="other@example.com", name="Other Buyer")
ADMIN = Principal(user_id="admin-1", email="admin@example.com", name="Admin", is_admin=True)

TOKENS = {
    "buyer-token": BUYER,
    "other-token": OTHER_BUYER,
    "admin-token": ADMIN,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(
        TestConfig,
        catalog=InMemoryCatalog(),
        processor=FakeProcessor(),
        identity=StaticTokenIdentity(TOKENS),
    )

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def services(app, db_session):
    return get_services(app)


@pytest.fixture(scope='function')
def processor(services):
    """The app's FakeProcessor, reset to succeed with no recorded calls."""
    services.processor.reset()
    return services.processor


@pytest.fixture(scope='function')
def catalog(services):
    """Catalog with one digital item (A), one video (V) and one draft item (D)."""
    catalog = services.catalog
    catalog.clear()
    catalog.put(CatalogItem(id="item-a", title="Meditation Course", item_type="DIGITAL",
                            price_cents=100, currency="CZK", thumbnail_url="https://cdn.test/a.png"))
    catalog.put(CatalogItem(id="item-b", title="Printed Workbook", item_type="PHYSICAL",
                            price_cents=350, currency="CZK"))
    catalog.put(CatalogItem(id="video-1", title="Morning Practice", item_type="VIDEO",
                            price_cents=900, currency="CZK"))
    catalog.put(CatalogItem(id="item-eur", title="Euro Edition", item_type="DIGITAL",
                            price_cents=500, currency="EUR"))
    catalog.put(CatalogItem(id="item-draft", title="Unreleased", item_type="DIGITAL",
                            price_cents=100, currency="CZK", status="DRAFT"))
    return catalog


@pytest.fixture(scope='function')
def plan(db_session):
    """Active plan with a CZK price only; unlocks the video library."""
    plan = MembershipPlan(
        name="Member",
        slug="member",
        processor_price_czk="price_member_czk",
        sort_order=1,
    )
    plan.features = PlanFeatures(flags={"video_library": True, "articles": "all"})
    db_session.add(plan)
    db_session.commit()
    return plan


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def sign_payload(payload: str, secret: str = TestConfig.STRIPE_WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header value for payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    })


def checkout_completed(order_id, payment_intent="pi_test_1", email="buyer@example.com", name=None):
    return {
        "id": "cs_test_1",
        "object": "checkout.session",
        "mode": "payment",
        "client_reference_id": str(order_id),
        "payment_intent": payment_intent,
        "customer_details": {"email": email, "name": name},
        "metadata": {"order_id": str(order_id), "user_name": "Jana Buyer"},
    }


@pytest.fixture(scope='function')
def post_webhook(client):
    """POST a signed event to the webhook endpoint."""
    def _post(event_type, obj, *, event_id="evt_test_1", signature=None):
        payload = make_event(event_type, obj, event_id)
        headers = {"Content-Type": "application/json"}
        header = signature if signature is not None else sign_payload(payload)
        if header:
            headers["Stripe-Signature"] = header
        return client.post("/api/stripe/webhook", data=payload, headers=headers)
    return _post
