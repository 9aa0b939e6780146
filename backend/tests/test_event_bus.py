# Overview: Pytest coverage for the settlement event bus and its outbox.

import pytest

from settlement.models import Entitlement, EventPublication, Order
from settlement.services.concurrency import after_commit, commit, discard_after_commit
from settlement.services.entitlement_service import EntitlementGranter
from settlement.services.event_bus import OrderPaidEvent, OrderPaidItem, SettlementEventBus
from settlement.services.order_service import OrderLedger
from settlement.values import CartItem


def _event(order_id=1):
    return OrderPaidEvent(
        order_id=order_id,
        buyer_id="buyer-1",
        buyer_email="buyer@example.com",
        buyer_name="Jana",
        total_cents=100,
        currency="CZK",
        items=(OrderPaidItem(catalog_item_id="item-a", variant_id=None,
                             title="Meditation Course", item_type="DIGITAL", quantity=1),),
    )


@pytest.fixture
def bus(db_session):
    return SettlementEventBus(db_session)


class TestPublish:
    def test_dispatches_only_after_commit(self, bus, db_session):
        received = []
        bus.subscribe("probe", received.append)

        bus.publish(_event())
        assert received == []
        assert db_session.query(EventPublication).count() == 1

        commit(db_session)

        assert received == [_event()]
        publication = db_session.query(EventPublication).one()
        assert publication.completed_at is not None
        assert publication.attempts == 1

    def test_rollback_discards_publication_and_hook(self, bus, db_session):
        received = []
        bus.subscribe("probe", received.append)

        bus.publish(_event())
        db_session.rollback()
        commit(db_session)

        assert received == []
        assert db_session.query(EventPublication).count() == 0

    def test_one_publication_per_listener(self, bus, db_session):
        first, second = [], []
        bus.subscribe("first", first.append)
        bus.subscribe("second", second.append)

        bus.publish(_event())
        commit(db_session)

        assert len(first) == 1 and len(second) == 1
        listeners = sorted(p.listener for p in db_session.query(EventPublication).all())
        assert listeners == ["first", "second"]

    def test_publish_without_listeners_records_nothing(self, bus, db_session):
        assert bus.publish(_event()) == []
        assert db_session.query(EventPublication).count() == 0

    def test_payload_round_trips(self):
        event = _event(order_id=7)
        assert OrderPaidEvent.from_payload(event.to_payload()) == event

    def test_unknown_event_type_cannot_be_subscribed(self, bus):
        with pytest.raises(ValueError):
            bus.subscribe("probe", lambda event: None, event_type="order.refunded")


class TestAfterCommit:
    def test_callbacks_run_in_order(self, db_session):
        calls = []
        after_commit(db_session, lambda: calls.append("a"))
        after_commit(db_session, lambda: calls.append("b"))

        commit(db_session)

        assert calls == ["a", "b"]

    def test_callbacks_dropped_on_rollback(self, db_session):
        calls = []
        after_commit(db_session, lambda: calls.append("a"))
        db_session.rollback()
        commit(db_session)

        assert calls == []


class TestListenerFailure:
    def test_failure_leaves_order_paid_and_publication_incomplete(self, services, catalog, db_session):
        bus = SettlementEventBus(db_session)
        ledger = OrderLedger(db_session, catalog, bus)
        granter = EntitlementGranter(services.entitlements)
        state = {"fail": True}

        def flaky(event):
            granter.on_order_paid(event)
            if state["fail"]:
                raise RuntimeError("mail server down")

        bus.subscribe("flaky", flaky)
        order = ledger.create("buyer-1", [CartItem(catalog_item_id="item-a", quantity=1)])

        assert ledger.mark_paid(order.id, "pi_1") is True

        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "PAID"
        # Listener work is rolled back with the failure
        assert db_session.query(Entitlement).count() == 0
        publication = db_session.query(EventPublication).one()
        assert publication.completed_at is None
        assert publication.attempts == 1
        assert "mail server down" in publication.last_error

        state["fail"] = False
        result = bus.republish_incomplete(max_attempts=5)

        assert result == {"delivered": 1, "failed": 0}
        db_session.expire_all()
        publication = db_session.query(EventPublication).one()
        assert publication.completed_at is not None
        assert publication.attempts == 2
        assert db_session.query(Entitlement).filter_by(user_id="buyer-1").count() == 1

    def test_republish_respects_attempt_ceiling(self, bus, db_session):
        def always_fails(event):
            raise RuntimeError("boom")

        bus.subscribe("broken", always_fails)
        bus.publish(_event())
        commit(db_session)

        assert bus.republish_incomplete(max_attempts=1) == {"delivered": 0, "failed": 0}
        assert bus.republish_incomplete(max_attempts=3) == {"delivered": 0, "failed": 1}
        assert len(bus.pending()) == 1

    def test_unregistered_listener_is_left_pending(self, db_session):
        writer = SettlementEventBus(db_session)
        writer.subscribe("gone", lambda event: None)
        writer.publish(_event())
        # Commit without the writer's hook to simulate a restart before dispatch
        discard_after_commit(db_session)
        commit(db_session)

        reader = SettlementEventBus(db_session)
        assert reader.republish_incomplete(max_attempts=5) == {"delivered": 0, "failed": 1}
        assert reader.pending()[0].listener == "gone"
