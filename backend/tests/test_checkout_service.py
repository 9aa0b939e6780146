# Overview: Pytest coverage for the checkout orchestrator.

import pytest

from conftest import BUYER, OTHER_BUYER
from settlement.models import Order
from settlement.services.checkout_service import CheckoutError
from settlement.services.order_service import OrderError, OrderNotFoundError
from settlement.values import CartItem


class TestStartCheckout:
    def test_builds_payment_session_from_stored_lines(self, services, catalog, processor):
        result = services.checkout.start_checkout(BUYER, [
            CartItem(catalog_item_id="item-a", quantity=2),
            CartItem(catalog_item_id="item-b", quantity=1),
        ])

        assert result.checkout_url.startswith("https://checkout.fake.test/pay/cs_fake_")
        params = processor.calls[-1]["params"]
        assert params.mode == "payment"
        assert params.client_reference_id == str(result.order_id)
        assert params.metadata["order_id"] == str(result.order_id)
        assert params.customer_email == "buyer@example.com"
        assert params.success_url.startswith("http://shop.test/checkout/success")
        assert "{CHECKOUT_SESSION_ID}" in params.success_url
        assert [(li.name, li.quantity, li.unit_amount_cents, li.currency) for li in params.line_items] == [
            ("Meditation Course", 2, 100, "CZK"),
            ("Printed Workbook", 1, 350, "CZK"),
        ]

    def test_prices_are_not_reread_from_catalog(self, services, catalog, processor):
        order = services.ledger.create(BUYER.user_id, [CartItem(catalog_item_id="item-a", quantity=1)])
        catalog.update("item-a", price_cents=9999)

        services.checkout.resume_checkout(BUYER, order.id)

        assert processor.calls[-1]["params"].line_items[0].unit_amount_cents == 100

    def test_processor_failure_leaves_order_pending(self, services, catalog, processor, db_session):
        processor.configure(False, "card network down")

        with pytest.raises(CheckoutError) as exc:
            services.checkout.start_checkout(BUYER, [CartItem(catalog_item_id="item-a", quantity=1)])

        order = db_session.get(Order, exc.value.order_id)
        assert order.status == "PENDING"

    def test_retry_after_failure_reuses_order(self, services, catalog, processor, db_session):
        processor.configure(False)
        with pytest.raises(CheckoutError) as exc:
            services.checkout.start_checkout(BUYER, [CartItem(catalog_item_id="item-a", quantity=1)])

        processor.configure(True)
        result = services.checkout.resume_checkout(BUYER, exc.value.order_id)

        assert result.order_id == exc.value.order_id
        assert db_session.query(Order).count() == 1

    def test_invalid_cart_never_calls_processor(self, services, catalog, processor):
        with pytest.raises(OrderError):
            services.checkout.start_checkout(BUYER, [CartItem(catalog_item_id="item-draft", quantity=1)])

        assert processor.calls == []


class TestResumeCheckout:
    def test_other_buyers_order_is_not_found(self, services, catalog, processor):
        order = services.ledger.create(BUYER.user_id, [CartItem(catalog_item_id="item-a", quantity=1)])

        with pytest.raises(OrderNotFoundError):
            services.checkout.resume_checkout(OTHER_BUYER, order.id)

    def test_paid_order_cannot_be_resumed(self, services, catalog, processor):
        order = services.ledger.create(BUYER.user_id, [CartItem(catalog_item_id="item-a", quantity=1)])
        services.ledger.mark_paid(order.id, "pi_1")

        with pytest.raises(OrderError):
            services.checkout.resume_checkout(BUYER, order.id)
        assert processor.calls == []

    def test_resume_makes_new_session_current(self, services, catalog, processor, db_session):
        first = services.checkout.start_checkout(BUYER, [CartItem(catalog_item_id="item-a", quantity=1)])
        db_session.expire_all()
        assert db_session.get(Order, first.order_id).checkout_session_id == first.session_id

        resumed = services.checkout.resume_checkout(BUYER, first.order_id)

        db_session.expire_all()
        order = db_session.get(Order, first.order_id)
        assert order.checkout_session_id == resumed.session_id
        assert order.checkout_started_at is not None


class TestSubscriptionCheckout:
    def test_subscription_session_carries_user_and_plan(self, services, plan, processor):
        result = services.checkout.start_subscription_checkout(BUYER, plan, "price_member_czk")

        params = processor.calls[-1]["params"]
        assert result.order_id is None
        assert params.mode == "subscription"
        assert params.line_items[0].price_id == "price_member_czk"
        assert params.line_items[0].quantity == 1
        assert params.metadata == {"user_id": "buyer-1", "plan_id": str(plan.id)}
        assert params.subscription_metadata == params.metadata
