from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..values import ItemSnapshot


ORDER_STATUS_PENDING = "PENDING"
ORDER_STATUS_PAID = "PAID"
ORDER_STATUS_CANCELLED = "CANCELLED"

ORDER_STATUSES = (ORDER_STATUS_PENDING, ORDER_STATUS_PAID, ORDER_STATUS_CANCELLED)


class SnapshotImmutableError(ValueError):
    """Raised when code tries to overwrite a line item snapshot."""


class Order(db.Model):
    """
    Purchase order.

    The order is the system of record for what the buyer owes. total_cents is
    computed once at creation and never recomputed; orders are never deleted.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_buyer_created", "buyer_id", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(db.String(64), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)

    total_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)

    # Processor payment reference (e.g. a payment intent id), set on PAID
    external_payment_ref = db.Column(db.String(128), nullable=True, index=True)

    # Most recent hosted checkout session; only its expiry may cancel the order
    checkout_session_id = db.Column(db.String(128), nullable=True, index=True)
    checkout_started_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    paid_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    items = db.relationship(
        "OrderLineItem",
        backref=db.backref("order", lazy=True),
        lazy=True,
        order_by="OrderLineItem.id",
    )
    shipping = db.relationship(
        "OrderShipping",
        backref=db.backref("order", lazy=True),
        uselist=False,
        lazy=True,
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "buyer_id": self.buyer_id,
            "status": self.status,
            "total_cents": self.total_cents,
            "currency": self.currency,
            "external_payment_ref": self.external_payment_ref,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "paid_at": to_utc_z(self.paid_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "shipping": self.shipping.to_dict() if self.shipping else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderLineItem(db.Model):
    """
    Line item with a write-once descriptive snapshot.

    The snapshot is copied from the catalog at purchase time; later edits or
    deletion of the catalog item never change a historical order.
    """
    __tablename__ = "order_line_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    catalog_item_id = db.Column(db.String(64), nullable=False, index=True)
    variant_id = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    snapshot_data = db.Column(db.JSON, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @validates("snapshot_data")
    def _validate_snapshot(self, key, value):
        if self.snapshot_data is not None:
            raise SnapshotImmutableError(f"Snapshot of order line {self.id} is write-once")
        # Round-trip through the value type so only well-formed payloads are stored
        return ItemSnapshot.from_dict(value).to_dict()

    @property
    def snapshot(self) -> ItemSnapshot:
        return ItemSnapshot.from_dict(self.snapshot_data)

    def to_dict(self) -> dict:
        snapshot = self.snapshot
        return {
            "id": self.id,
            "order_id": self.order_id,
            "catalog_item_id": self.catalog_item_id,
            "variant_id": self.variant_id,
            "title": snapshot.title,
            "item_type": snapshot.item_type,
            "thumbnail_url": snapshot.thumbnail_url,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "snapshot": snapshot.to_dict(),
        }


class OrderShipping(db.Model):
    """Shipping sub-record for orders containing physical goods."""
    __tablename__ = "order_shipping"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True)

    carrier = db.Column(db.String(64), nullable=False)
    tracking_number = db.Column(db.String(128), nullable=False)
    tracking_url = db.Column(db.String(512), nullable=True)

    shipped_at = db.Column(db.DateTime, nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "carrier": self.carrier,
            "tracking_number": self.tracking_number,
            "tracking_url": self.tracking_url,
            "shipped_at": to_utc_z(self.shipped_at),
            "delivered_at": to_utc_z(self.delivered_at),
        }
