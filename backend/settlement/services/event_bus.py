# Overview: Settlement event bus; outbox-backed, dispatched after the publishing transaction commits.

"""
Settlement event bus.

publish() writes one EventPublication row per subscribed listener inside the
caller's transaction and registers a post-commit hook that dispatches them.
If the transaction rolls back, both the rows and the hook disappear, so a
listener only ever sees events whose state change actually committed.

Each listener runs in its own transaction together with the update that
marks its publication complete. A failing listener is rolled back and its
publication stays incomplete for republish_incomplete().
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Callable, ClassVar, Optional

from flask import current_app

from ..models import EventPublication
from ..time_utils import utcnow
from .concurrency import after_commit, commit


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True)
class OrderPaidItem:
    catalog_item_id: str
    variant_id: Optional[str]
    title: str
    item_type: str
    quantity: int


@dataclass(frozen=True)
class OrderPaidEvent:
    """An order's payment has been confirmed; items come from stored snapshots."""

    EVENT_TYPE: ClassVar[str] = "order.paid"

    order_id: int
    buyer_id: str
    buyer_email: Optional[str]
    buyer_name: Optional[str]
    total_cents: int
    currency: str
    items: tuple[OrderPaidItem, ...]

    def to_payload(self) -> dict:
        payload = asdict(self)
        payload["items"] = [asdict(item) for item in self.items]
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> "OrderPaidEvent":
        return cls(
            order_id=int(payload["order_id"]),
            buyer_id=payload["buyer_id"],
            buyer_email=payload.get("buyer_email"),
            buyer_name=payload.get("buyer_name"),
            total_cents=int(payload["total_cents"]),
            currency=payload["currency"],
            items=tuple(OrderPaidItem(**item) for item in payload.get("items") or []),
        )


EVENT_TYPES = {
    OrderPaidEvent.EVENT_TYPE: OrderPaidEvent,
}


Listener = Callable[[object], None]


# =============================================================================
# Bus
# =============================================================================

class SettlementEventBus:
    def __init__(self, session) -> None:
        self.session = session
        self._listeners: dict[str, dict[str, Listener]] = {}

    def subscribe(self, name: str, listener: Listener, *, event_type: str = OrderPaidEvent.EVENT_TYPE) -> None:
        """Register a named listener. The name is persisted on outbox rows, so keep it stable."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")
        self._listeners.setdefault(event_type, {})[name] = listener

    def listener_names(self, event_type: str = OrderPaidEvent.EVENT_TYPE) -> list[str]:
        return list(self._listeners.get(event_type, {}))

    def publish(self, event) -> list[int]:
        """
        Record the event for every listener in the current transaction.

        Does not commit. Returns the ids of the created publications.
        """
        payload = event.to_payload()
        publications = [
            EventPublication(
                event_type=event.EVENT_TYPE,
                listener=name,
                payload=payload,
                attempts=0,
            )
            for name in self._listeners.get(event.EVENT_TYPE, {})
        ]
        if not publications:
            return []

        self.session.add_all(publications)
        self.session.flush()

        publication_ids = [publication.id for publication in publications]
        after_commit(self.session, lambda: self._dispatch_all(publication_ids))
        return publication_ids

    def republish_incomplete(self, max_attempts: int) -> dict:
        """Re-dispatch every incomplete publication that has attempts left."""
        rows = (
            self.session.query(EventPublication.id)
            .filter(
                EventPublication.completed_at.is_(None),
                EventPublication.attempts < max_attempts,
            )
            .order_by(EventPublication.created_at.asc(), EventPublication.id.asc())
            .all()
        )
        result = self._dispatch_all([row.id for row in rows])
        current_app.logger.info(
            "Outbox republish: %s delivered, %s failed",
            result["delivered"],
            result["failed"],
        )
        return result

    def pending(self, limit: int = 100) -> list[EventPublication]:
        return (
            self.session.query(EventPublication)
            .filter(EventPublication.completed_at.is_(None))
            .order_by(EventPublication.created_at.asc(), EventPublication.id.asc())
            .limit(limit)
            .all()
        )

    def _dispatch_all(self, publication_ids: list[int]) -> dict:
        delivered = 0
        failed = 0
        for publication_id in publication_ids:
            if self._dispatch(publication_id):
                delivered += 1
            else:
                failed += 1
        return {"delivered": delivered, "failed": failed}

    def _dispatch(self, publication_id: int) -> bool:
        publication = self.session.get(EventPublication, publication_id)
        if publication is None or publication.completed_at is not None:
            return True

        listener_name = publication.listener
        listener = self._listeners.get(publication.event_type, {}).get(listener_name)
        if listener is None:
            current_app.logger.warning(
                "No listener %s registered for %s (publication %s)",
                listener_name,
                publication.event_type,
                publication_id,
            )
            return False

        try:
            event = EVENT_TYPES[publication.event_type].from_payload(publication.payload)
            listener(event)
            publication.attempts = (publication.attempts or 0) + 1
            publication.completed_at = utcnow()
            commit(self.session)
            return True
        except Exception as exc:
            self.session.rollback()
            current_app.logger.exception(
                "Listener %s failed for publication %s",
                listener_name,
                publication_id,
            )
            self._record_failure(publication_id, exc)
            return False

    def _record_failure(self, publication_id: int, exc: Exception) -> None:
        publication = self.session.get(EventPublication, publication_id)
        if publication is None:
            return
        publication.attempts = (publication.attempts or 0) + 1
        publication.last_error = f"{type(exc).__name__}: {exc}"[:500]
        commit(self.session)
