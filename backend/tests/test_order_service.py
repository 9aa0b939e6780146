# Overview: Pytest coverage for the order ledger.

"""
Order ledger tests.

Covers pricing and totals, snapshot immutability, the guarded status
transitions, stale sweeps, buyer scoping and shipping records.
"""

from datetime import timedelta

import pytest

from settlement.models import Entitlement, EventPublication, Order
from settlement.models.orders import SnapshotImmutableError
from settlement.services.order_service import OrderError, OrderNotFoundError
from settlement.time_utils import utcnow
from settlement.validation import ValidationError
from settlement.values import CartItem, ItemSnapshot


class TestCreate:
    def test_total_is_sum_of_line_totals(self, services, catalog):
        order = services.ledger.create("buyer-1", [
            CartItem(catalog_item_id="item-a", quantity=2),
            CartItem(catalog_item_id="item-b", quantity=3),
        ])

        assert order.status == "PENDING"
        assert order.currency == "CZK"
        assert [line.line_total_cents for line in order.items] == [200, 1050]
        assert order.total_cents == sum(line.line_total_cents for line in order.items) == 1250

    def test_single_item_scenario(self, services, catalog):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=2)], "CZK")

        assert order.total_cents == 200
        assert order.items[0].unit_price_cents == 100
        assert order.items[0].snapshot.title == "Meditation Course"

    def test_empty_cart_rejected(self, services, catalog):
        with pytest.raises(ValidationError):
            services.ledger.create("buyer-1", [])
        assert Order.query.count() == 0

    def test_zero_quantity_rejected(self, services, catalog):
        with pytest.raises(ValidationError):
            services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=0)])

    def test_unsupported_currency_rejected(self, services, catalog):
        with pytest.raises(ValidationError):
            services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)], "USD")

    def test_not_purchasable_item_rejects_whole_order(self, services, catalog):
        with pytest.raises(OrderError) as exc:
            services.ledger.create("buyer-1", [
                CartItem(catalog_item_id="item-a", quantity=1),
                CartItem(catalog_item_id="item-draft", quantity=1),
            ])

        assert "Unreleased" in str(exc.value)
        assert Order.query.count() == 0

    def test_unknown_item_rejected(self, services, catalog):
        with pytest.raises(OrderError):
            services.ledger.create("buyer-1", [CartItem(catalog_item_id="nope", quantity=1)])

    def test_item_priced_in_other_currency_rejected(self, services, catalog):
        with pytest.raises(OrderError):
            services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-eur", quantity=1)], "CZK")

    def test_currency_is_recorded_not_converted(self, services, catalog):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-eur", quantity=1)], "eur")

        assert order.currency == "EUR"
        assert order.total_cents == 500


class TestSnapshots:
    def test_snapshot_survives_catalog_edit_and_delete(self, services, catalog, db_session):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])
        order_id = order.id

        catalog.update("item-a", title="Renamed", price_cents=999)
        catalog.remove("item-a")
        db_session.expire_all()

        line = services.ledger.get_order(order_id).items[0]
        assert line.snapshot.title == "Meditation Course"
        assert line.snapshot.unit_price_cents == 100
        assert line.snapshot.thumbnail_url == "https://cdn.test/a.png"
        assert line.unit_price_cents == 100

    def test_snapshot_is_write_once(self, services, catalog):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])
        line = order.items[0]

        replacement = ItemSnapshot(title="Tampered", item_type="DIGITAL",
                                   unit_price_cents=1, price_currency="CZK")
        with pytest.raises(SnapshotImmutableError):
            line.snapshot_data = replacement.to_dict()

        assert line.snapshot.title == "Meditation Course"

    def test_snapshot_is_versioned(self, services, catalog):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])
        data = order.items[0].snapshot_data

        assert data["kind"] == "item_snapshot"
        assert data["schema_version"] == ItemSnapshot.CURRENT_VERSION


class TestMarkPaid:
    def test_pending_to_paid(self, services, catalog, db_session):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=2)])

        assert services.ledger.mark_paid(order.id, "pi_123", "buyer@example.com", "Jana") is True

        db_session.expire_all()
        order = db_session.get(Order, order.id)
        assert order.status == "PAID"
        assert order.external_payment_ref == "pi_123"
        assert order.paid_at is not None
        assert services.entitlements.has_access("buyer-1", "item-a")

    def test_duplicate_mark_paid_is_ignored(self, services, catalog, db_session):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])

        assert services.ledger.mark_paid(order.id, "pi_123") is True
        assert services.ledger.mark_paid(order.id, "pi_123") is False

        assert db_session.query(EventPublication).count() == 1
        assert db_session.query(Entitlement).filter_by(user_id="buyer-1").count() == 1

    def test_event_items_come_from_snapshots(self, services, catalog, db_session):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])
        catalog.update("item-a", title="Renamed")

        services.ledger.mark_paid(order.id, "pi_1")

        publication = db_session.query(EventPublication).one()
        assert publication.payload["items"][0]["title"] == "Meditation Course"
        assert publication.payload["total_cents"] == 100

    def test_missing_order(self, services):
        with pytest.raises(OrderNotFoundError):
            services.ledger.mark_paid(4242, "pi_1")

    def test_payment_reinstates_cancelled_order(self, services, catalog, db_session):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])
        services.ledger.cancel(order.id)

        assert services.ledger.mark_paid(order.id, "pi_late") is True

        db_session.expire_all()
        order = db_session.get(Order, order.id)
        assert order.status == "PAID"
        assert order.cancelled_at is None
        assert order.external_payment_ref == "pi_late"
        assert services.entitlements.has_access("buyer-1", "item-a")


class TestCancel:
    def test_cancel_pending(self, services, catalog, db_session):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])

        assert services.ledger.cancel(order.id) is True

        db_session.expire_all()
        order = db_session.get(Order, order.id)
        assert order.status == "CANCELLED"
        assert order.cancelled_at is not None

    def test_cancel_paid_is_noop(self, services, catalog, db_session):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])
        services.ledger.mark_paid(order.id, "pi_1")

        assert services.ledger.cancel(order.id) is False
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "PAID"

    def test_cancel_for_superseded_session_is_noop(self, services, catalog, db_session):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])
        services.ledger.record_checkout_session(order.id, "cs_first")
        services.ledger.record_checkout_session(order.id, "cs_second")

        assert services.ledger.cancel(order.id, session_id="cs_first") is False
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "PENDING"

        assert services.ledger.cancel(order.id, session_id="cs_second") is True
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "CANCELLED"

    def test_expire_stale(self, services, catalog, db_session):
        old = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])
        fresh = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])
        old.created_at = utcnow() - timedelta(hours=48)
        db_session.commit()

        assert services.ledger.expire_stale(utcnow() - timedelta(hours=24)) == 1

        db_session.expire_all()
        assert db_session.get(Order, old.id).status == "CANCELLED"
        assert db_session.get(Order, fresh.id).status == "PENDING"

    def test_expire_stale_skips_recent_checkout(self, services, catalog, db_session):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])
        services.ledger.record_checkout_session(order.id, "cs_resumed")
        order = db_session.get(Order, order.id)
        order.created_at = utcnow() - timedelta(hours=48)
        db_session.commit()

        assert services.ledger.expire_stale(utcnow() - timedelta(hours=24)) == 0

        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "PENDING"


class TestQueries:
    def test_get_order_is_buyer_scoped(self, services, catalog):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])

        assert services.ledger.get_order(order.id, buyer_id="buyer-1").id == order.id
        with pytest.raises(OrderNotFoundError):
            services.ledger.get_order(order.id, buyer_id="buyer-2")

    def test_list_for_buyer_paginates(self, services, catalog):
        for _ in range(3):
            services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])
        services.ledger.create("buyer-2", [CartItem(catalog_item_id="item-a", quantity=1)])

        result = services.ledger.list_for_buyer("buyer-1", page=1, limit=2)

        assert result["total_items"] == 3
        assert result["total_pages"] == 2
        assert len(result["items"]) == 2
        assert all(item["buyer_id"] == "buyer-1" for item in result["items"])

    def test_list_all_filters_by_status(self, services, catalog):
        paid = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])
        services.ledger.create("buyer-2", [CartItem(catalog_item_id="item-a", quantity=1)])
        services.ledger.mark_paid(paid.id, "pi_1")

        result = services.ledger.list_all("paid")

        assert [item["id"] for item in result["items"]] == [paid.id]

    def test_list_all_rejects_unknown_status(self, services):
        with pytest.raises(ValidationError):
            services.ledger.list_all("SHIPPED")


class TestShipping:
    def test_update_shipping_upserts(self, services, catalog):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-b", quantity=1)])

        first = services.ledger.update_shipping(order.id, "PPL", "123")
        second = services.ledger.update_shipping(order.id, "DPD", "456", "https://track.test/456")

        assert first.id == second.id
        view = services.ledger.get_order(order.id).to_dict()
        assert view["shipping"]["carrier"] == "DPD"
        assert view["shipping"]["tracking_url"] == "https://track.test/456"

    def test_update_shipping_requires_fields(self, services, catalog):
        order = services.ledger.create("buyer-1", [CartItem(catalog_item_id="item-b", quantity=1)])

        with pytest.raises(ValidationError):
            services.ledger.update_shipping(order.id, "", "123")

    def test_update_shipping_missing_order(self, services):
        with pytest.raises(OrderNotFoundError):
            services.ledger.update_shipping(999, "PPL", "123")
