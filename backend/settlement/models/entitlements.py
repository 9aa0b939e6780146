from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


SOURCE_PURCHASE = "PURCHASE"
SOURCE_PROMOTION = "PROMOTION"
SOURCE_ADMIN = "ADMIN"

SOURCE_KINDS = (SOURCE_PURCHASE, SOURCE_PROMOTION, SOURCE_ADMIN)


class Entitlement(db.Model):
    """
    A recorded grant of access from a user to a catalog item.

    Access for a (user, item) pair is the union of all matching rows that are
    neither revoked nor expired. Rows are only ever soft-revoked.
    """
    __tablename__ = "entitlements"
    __table_args__ = (
        db.Index("ix_entitlements_user_item", "user_id", "catalog_item_id"),
        db.Index("ix_entitlements_source", "source_kind", "source_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    catalog_item_id = db.Column(db.String(64), nullable=False)

    source_kind = db.Column(db.String(32), nullable=False)
    source_id = db.Column(db.String(64), nullable=True)

    granted_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=True)
    revoked_at = db.Column(db.DateTime, nullable=True)

    def is_active(self, now=None) -> bool:
        now = now or utcnow()
        if self.revoked_at is not None:
            return False
        return self.expires_at is None or self.expires_at > now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "catalog_item_id": self.catalog_item_id,
            "source_kind": self.source_kind,
            "source_id": self.source_id,
            "granted_at": to_utc_z(self.granted_at),
            "expires_at": to_utc_z(self.expires_at),
            "revoked_at": to_utc_z(self.revoked_at),
        }
