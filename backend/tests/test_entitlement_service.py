# Overview: Pytest coverage for entitlements, the library view and access checks.

from datetime import timedelta

import pytest

from settlement.models import Entitlement, Subscription
from settlement.models.membership import SUBSCRIPTION_STATUS_ACTIVE
from settlement.services.event_bus import OrderPaidEvent, OrderPaidItem
from settlement.time_utils import utcnow
from settlement.validation import NotFoundError, ValidationError


class TestHasAccess:
    def test_any_active_row_grants_access(self, services, db_session):
        purchase = services.entitlements.grant("buyer-1", "item-a", "PURCHASE", "1")
        services.entitlements.grant("buyer-1", "item-a", "PROMOTION", "spring")

        services.entitlements.revoke_by_id(purchase.id)

        assert services.entitlements.has_access("buyer-1", "item-a")

    def test_revoke_removes_all_sources(self, services, db_session):
        services.entitlements.grant("buyer-1", "item-a", "PURCHASE", "1")
        services.entitlements.grant("buyer-1", "item-a", "ADMIN", "admin-1")

        assert services.entitlements.revoke("buyer-1", "item-a") == 2
        assert not services.entitlements.has_access("buyer-1", "item-a")
        # Soft revoke only
        assert db_session.query(Entitlement).count() == 2

    def test_expired_row_does_not_grant(self, services, db_session):
        services.entitlements.grant("buyer-1", "item-a", "PROMOTION", "trial",
                                    expires_at=utcnow() - timedelta(minutes=1))
        services.entitlements.grant("buyer-1", "item-b", "PROMOTION", "trial",
                                    expires_at=utcnow() + timedelta(days=1))

        assert not services.entitlements.has_access("buyer-1", "item-a")
        assert services.entitlements.has_access("buyer-1", "item-b")

    def test_access_is_per_user(self, services, db_session):
        services.entitlements.grant("buyer-1", "item-a", "PURCHASE", "1")

        assert not services.entitlements.has_access("buyer-2", "item-a")

    def test_invalid_source_kind(self, services, db_session):
        with pytest.raises(ValidationError):
            services.entitlements.grant("buyer-1", "item-a", "GIFT")

    def test_revoke_by_id_missing(self, services, db_session):
        with pytest.raises(NotFoundError):
            services.entitlements.revoke_by_id(12345)


class TestGranter:
    def test_duplicate_events_add_rows_but_access_is_unchanged(self, services, db_session):
        event = OrderPaidEvent(
            order_id=5, buyer_id="buyer-1", buyer_email=None, buyer_name=None,
            total_cents=200, currency="CZK",
            items=(
                OrderPaidItem("item-a", None, "Meditation Course", "DIGITAL", 2),
                OrderPaidItem("item-b", None, "Printed Workbook", "PHYSICAL", 1),
            ),
        )

        services.granter.on_order_paid(event)
        db_session.commit()
        services.granter.on_order_paid(event)
        db_session.commit()

        rows = db_session.query(Entitlement).filter_by(catalog_item_id="item-a").all()
        assert len(rows) == 2
        assert {row.source_kind for row in rows} == {"PURCHASE"}
        assert {row.source_id for row in rows} == {"5"}
        assert services.entitlements.has_access("buyer-1", "item-a")
        assert services.entitlements.has_access("buyer-1", "item-b")


class TestLibrary:
    def test_library_lists_each_item_once(self, services, catalog, db_session):
        services.entitlements.grant("buyer-1", "item-a", "PURCHASE", "1")
        services.entitlements.grant("buyer-1", "item-a", "PURCHASE", "2")
        services.entitlements.grant("buyer-1", "video-1", "ADMIN", "admin-1")

        library = services.entitlements.library("buyer-1")

        assert [entry["catalog_item_id"] for entry in library] == ["item-a", "video-1"]
        assert library[0]["title"] == "Meditation Course"

    def test_library_tolerates_deleted_catalog_items(self, services, catalog, db_session):
        services.entitlements.grant("buyer-1", "item-a", "PURCHASE", "1")
        catalog.remove("item-a")

        library = services.entitlements.library("buyer-1")

        assert library[0]["catalog_item_id"] == "item-a"
        assert library[0]["title"] is None


class TestAccessChecker:
    def _subscribe(self, db_session, plan, days=30):
        db_session.add(Subscription(
            user_id="buyer-1",
            plan_id=plan.id,
            external_ref="sub_1",
            status=SUBSCRIPTION_STATUS_ACTIVE,
            current_period_start=utcnow(),
            current_period_end=utcnow() + timedelta(days=days),
        ))
        db_session.commit()

    def test_direct_entitlement(self, services, db_session):
        services.entitlements.grant("buyer-1", "item-a", "PURCHASE", "1")

        assert services.access.can_access("buyer-1", "item-a", "DIGITAL")

    def test_membership_feature_unlocks_item_type(self, services, plan, db_session):
        self._subscribe(db_session, plan)

        assert services.access.can_access("buyer-1", "video-1", "VIDEO")
        assert services.access.can_access("buyer-1", "post-1", "ARTICLE")
        assert not services.access.can_access("buyer-1", "event-1", "EVENT")
        assert not services.access.can_access("buyer-1", "item-a", "DIGITAL")

    def test_lapsed_membership_denies(self, services, plan, db_session):
        self._subscribe(db_session, plan, days=-1)

        assert not services.access.can_access("buyer-1", "video-1", "VIDEO")

    def test_no_grant_no_membership_denies(self, services, db_session):
        assert not services.access.can_access("buyer-1", "video-1", "VIDEO")
