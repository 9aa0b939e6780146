# Overview: Order ledger; creates priced, snapshotted orders and owns the order status transitions.

"""
Order ledger.

The ledger is the system of record for what a buyer owes. Orders are created
PENDING with every line priced from the catalog once and its descriptive
terms frozen in an ItemSnapshot. Status moves are guarded compare-and-set
updates keyed on the current status, so duplicate or racing webhook
deliveries cannot pay (or cancel) an order twice.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy import or_, update

from ..models import Order, OrderLineItem, OrderShipping
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_PAID,
    ORDER_STATUS_PENDING,
    ORDER_STATUSES,
)
from ..time_utils import utcnow
from ..validation import MAX_LINE_QUANTITY, NotFoundError, ValidationError, parse_currency, parse_identifier
from ..values import CartItem, ItemSnapshot
from .catalog import CatalogLookup
from .concurrency import commit, lock_for_update, run_with_retry
from .event_bus import OrderPaidEvent, OrderPaidItem, SettlementEventBus


# =============================================================================
# Constants
# =============================================================================

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class OrderError(Exception):
    """Raised for order business rule violations."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class OrderNotFoundError(NotFoundError):
    """Order does not exist (or is not visible to the caller)."""
    def __init__(self, order_id=None):
        super().__init__("Order not found")
        self.order_id = order_id


def _page_args(page, limit) -> tuple[int, int]:
    page = max(int(page or 1), 1)
    limit = int(limit or DEFAULT_PAGE_SIZE)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    return page, limit


def _paginate(query, page, limit) -> dict:
    page, limit = _page_args(page, limit)
    total_items = query.count()
    orders = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [order_view(order) for order in orders],
        "page": page,
        "limit": limit,
        "total_items": total_items,
        "total_pages": math.ceil(total_items / limit) if total_items else 0,
    }


def order_view(order: Order) -> dict:
    """Buyer-facing view: status, totals, line items with snapshots, shipping."""
    return order.to_dict(include_items=True)


class OrderLedger:
    def __init__(
        self,
        session,
        catalog: CatalogLookup,
        bus: SettlementEventBus,
        *,
        supported_currencies: Iterable[str] = ("CZK", "EUR"),
        default_currency: str = "CZK",
    ) -> None:
        self.session = session
        self.catalog = catalog
        self.bus = bus
        self.supported_currencies = tuple(supported_currencies)
        self.default_currency = default_currency

    # =========================================================================
    # Creation
    # =========================================================================

    def create(self, buyer_id: str, items: list[CartItem], currency: Optional[str] = None) -> Order:
        """
        Create a PENDING order.

        Every item is priced from the catalog exactly once here; the order
        total is the sum of the line totals and is never recomputed.
        """
        buyer_id = parse_identifier(buyer_id, "buyer_id")
        if not items:
            raise ValidationError("Order must have at least one item")
        currency = parse_currency(
            currency,
            supported=self.supported_currencies,
            default=self.default_currency,
        )

        lines: list[OrderLineItem] = []
        total_cents = 0
        unavailable = []
        for cart_item in items:
            if cart_item.quantity < 1 or cart_item.quantity > MAX_LINE_QUANTITY:
                raise ValidationError(
                    f"Quantity for {cart_item.catalog_item_id} must be between 1 and {MAX_LINE_QUANTITY}"
                )

            catalog_item = self.catalog.get_item(cart_item.catalog_item_id, cart_item.variant_id)
            if catalog_item is None:
                raise OrderError(
                    f"Catalog item {cart_item.catalog_item_id} not found",
                    details={"catalog_item_id": cart_item.catalog_item_id},
                )
            if not catalog_item.purchasable:
                unavailable.append({"catalog_item_id": catalog_item.id, "title": catalog_item.title})
                continue
            if catalog_item.currency.upper() != currency:
                raise OrderError(
                    f"Item '{catalog_item.title}' is not priced in {currency}",
                    details={"catalog_item_id": catalog_item.id, "currency": catalog_item.currency},
                )

            line_total = catalog_item.price_cents * cart_item.quantity
            total_cents += line_total

            snapshot = ItemSnapshot(
                title=catalog_item.title,
                item_type=catalog_item.item_type,
                unit_price_cents=catalog_item.price_cents,
                price_currency=currency,
                thumbnail_url=catalog_item.thumbnail_url,
            )
            lines.append(OrderLineItem(
                catalog_item_id=cart_item.catalog_item_id,
                variant_id=cart_item.variant_id,
                quantity=cart_item.quantity,
                unit_price_cents=catalog_item.price_cents,
                line_total_cents=line_total,
                snapshot_data=snapshot.to_dict(),
            ))

        if unavailable:
            titles = ", ".join(f"'{entry['title']}'" for entry in unavailable)
            raise OrderError(
                f"Not available for purchase: {titles}",
                details={"items": unavailable},
            )

        order = Order(
            buyer_id=buyer_id,
            status=ORDER_STATUS_PENDING,
            total_cents=total_cents,
            currency=currency,
        )
        order.items.extend(lines)
        self.session.add(order)
        commit(self.session)

        current_app.logger.info(
            "Order %s created for buyer %s: %s %s in %s line(s)",
            order.id, buyer_id, total_cents, currency, len(lines),
        )
        return order

    # =========================================================================
    # Status transitions
    # =========================================================================

    def _transition(self, order_id: int, from_status: str, *conditions, **values) -> bool:
        """Guarded UPDATE keyed on the current status. True if exactly one row moved."""
        result = self.session.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == from_status, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def record_checkout_session(self, order_id: int, session_id: str) -> bool:
        """Remember the newest checkout session issued for a PENDING order."""
        now = utcnow()
        moved = self._transition(
            order_id,
            ORDER_STATUS_PENDING,
            checkout_session_id=session_id,
            checkout_started_at=now,
            updated_at=now,
        )
        if not moved:
            self.session.rollback()
            current_app.logger.warning(
                "Checkout session %s issued for order %s which is no longer pending", session_id, order_id
            )
            return False
        commit(self.session)
        return True

    def mark_paid(
        self,
        order_id: int,
        external_payment_ref: Optional[str],
        buyer_email: Optional[str] = None,
        buyer_name: Optional[str] = None,
    ) -> bool:
        """
        PENDING -> PAID, then publish OrderPaidEvent after commit.

        A verified payment for a CANCELLED order reinstates it as PAID; the
        buyer has been charged. Returns False (and publishes nothing) if the
        order is already PAID.
        """
        def _op():
            now = utcnow()
            paid = dict(
                status=ORDER_STATUS_PAID,
                external_payment_ref=external_payment_ref,
                paid_at=now,
                updated_at=now,
            )
            if self._transition(order_id, ORDER_STATUS_PENDING, **paid):
                reinstated = False
            elif self._transition(order_id, ORDER_STATUS_CANCELLED, cancelled_at=None, **paid):
                reinstated = True
            else:
                self.session.rollback()
                order = self.session.get(Order, order_id)
                if order is None:
                    raise OrderNotFoundError(order_id)
                if order.status == ORDER_STATUS_PAID:
                    current_app.logger.info(
                        "Duplicate payment confirmation for order %s ignored", order_id
                    )
                    return False
                raise OrderError(
                    f"Cannot mark order {order_id} as paid from status {order.status}",
                    details={"status": order.status},
                )

            order = self.session.get(Order, order_id)
            self.session.refresh(order)
            self.bus.publish(self._paid_event(order, buyer_email, buyer_name))
            commit(self.session)
            if reinstated:
                current_app.logger.warning(
                    "Order %s was cancelled but payment %s arrived; reinstated as paid",
                    order_id, external_payment_ref,
                )
            else:
                current_app.logger.info(
                    "Order %s paid (payment ref %s)", order_id, external_payment_ref
                )
            return True

        return run_with_retry(self.session, _op)

    def cancel(self, order_id: int, *, session_id: Optional[str] = None) -> bool:
        """
        PENDING -> CANCELLED. Returns False if the order was not cancelled.

        With session_id, only cancels while that session is still the order's
        current checkout session; expiry of a superseded session is a no-op.
        """
        conditions = []
        if session_id is not None:
            conditions.append(or_(
                Order.checkout_session_id.is_(None),
                Order.checkout_session_id == session_id,
            ))
        return self._cancel(order_id, *conditions)

    def _cancel(self, order_id: int, *conditions) -> bool:
        now = utcnow()
        moved = self._transition(
            order_id,
            ORDER_STATUS_PENDING,
            *conditions,
            status=ORDER_STATUS_CANCELLED,
            cancelled_at=now,
            updated_at=now,
        )
        if not moved:
            self.session.rollback()
            if self.session.get(Order, order_id) is None:
                raise OrderNotFoundError(order_id)
            return False
        commit(self.session)
        current_app.logger.info("Order %s cancelled", order_id)
        return True

    def expire_stale(self, older_than) -> int:
        """
        Cancel PENDING orders created before the cutoff; returns how many were cancelled.

        Orders whose latest checkout session was started after the cutoff are left alone.
        """
        idle = or_(Order.checkout_started_at.is_(None), Order.checkout_started_at < older_than)
        stale_ids = [
            row.id
            for row in self.session.query(Order.id)
            .filter(Order.status == ORDER_STATUS_PENDING, Order.created_at < older_than, idle)
            .order_by(Order.id.asc())
            .all()
        ]
        cancelled = 0
        for order_id in stale_ids:
            if self._cancel(order_id, idle):
                cancelled += 1
        if cancelled:
            current_app.logger.info("Expired %s stale pending order(s)", cancelled)
        return cancelled

    # =========================================================================
    # Queries
    # =========================================================================

    def get_order(self, order_id: int, buyer_id: Optional[str] = None) -> Order:
        order = self.session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if buyer_id is not None and order.buyer_id != buyer_id:
            raise OrderNotFoundError(order_id)
        return order

    def list_for_buyer(self, buyer_id: str, page=1, limit=DEFAULT_PAGE_SIZE) -> dict:
        query = (
            self.session.query(Order)
            .filter(Order.buyer_id == buyer_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return _paginate(query, page, limit)

    def list_all(self, status: Optional[str] = None, page=1, limit=DEFAULT_PAGE_SIZE) -> dict:
        query = self.session.query(Order)
        if status:
            status = status.upper()
            if status not in ORDER_STATUSES:
                raise ValidationError(f"Invalid status. Must be one of {list(ORDER_STATUSES)}")
            query = query.filter(Order.status == status)
        query = query.order_by(Order.created_at.desc(), Order.id.desc())
        return _paginate(query, page, limit)

    # =========================================================================
    # Shipping
    # =========================================================================

    def update_shipping(
        self,
        order_id: int,
        carrier: str,
        tracking_number: str,
        tracking_url: Optional[str] = None,
    ) -> OrderShipping:
        if not carrier or not str(carrier).strip():
            raise ValidationError("carrier required")
        if not tracking_number or not str(tracking_number).strip():
            raise ValidationError("tracking_number required")

        order = lock_for_update(self.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise OrderNotFoundError(order_id)

        shipping = order.shipping
        if shipping is None:
            shipping = OrderShipping(order_id=order.id, shipped_at=utcnow())
            self.session.add(shipping)
        shipping.carrier = str(carrier).strip()
        shipping.tracking_number = str(tracking_number).strip()
        shipping.tracking_url = tracking_url
        commit(self.session)
        return shipping

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _paid_event(order: Order, buyer_email: Optional[str], buyer_name: Optional[str]) -> OrderPaidEvent:
        items = []
        for line in order.items:
            snapshot = line.snapshot
            items.append(OrderPaidItem(
                catalog_item_id=line.catalog_item_id,
                variant_id=line.variant_id,
                title=snapshot.title,
                item_type=snapshot.item_type,
                quantity=line.quantity,
            ))
        return OrderPaidEvent(
            order_id=order.id,
            buyer_id=order.buyer_id,
            buyer_email=buyer_email,
            buyer_name=buyer_name,
            total_cents=order.total_cents,
            currency=order.currency,
            items=tuple(items),
        )
