# Overview: Entitlement service; grants, checks and soft-revokes user access to catalog items.

"""
Entitlements.

Access for a (user, item) pair is the union of all rows that are neither
revoked nor expired. The granter inserts one row per paid line without
looking for an existing grant, so a redelivered settlement event can add a
duplicate row; it never changes the answer of has_access().
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import or_

from ..models import Entitlement
from ..models.entitlements import SOURCE_KINDS, SOURCE_PURCHASE
from ..time_utils import to_utc_z, utcnow
from ..validation import NotFoundError, ValidationError, parse_identifier
from .catalog import CatalogLookup
from .concurrency import commit
from .event_bus import OrderPaidEvent


# Item type -> plan feature flag that unlocks it for members
ITEM_TYPE_FEATURES = {
    "ARTICLE": "articles",
    "EVENT": "online_events",
    "VIDEO": "video_library",
    "PRODUCT": "video_library",
}


class EntitlementService:
    def __init__(self, session, catalog: CatalogLookup) -> None:
        self.session = session
        self.catalog = catalog

    def _active_filter(self, now: datetime):
        return (
            Entitlement.revoked_at.is_(None),
            or_(Entitlement.expires_at.is_(None), Entitlement.expires_at > now),
        )

    def add(
        self,
        user_id: str,
        catalog_item_id: str,
        source_kind: str,
        source_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> Entitlement:
        """Stage a grant in the current transaction without committing."""
        if source_kind not in SOURCE_KINDS:
            raise ValidationError(f"Invalid source_kind. Must be one of {list(SOURCE_KINDS)}")
        entitlement = Entitlement(
            user_id=parse_identifier(user_id, "user_id"),
            catalog_item_id=parse_identifier(catalog_item_id, "catalog_item_id"),
            source_kind=source_kind,
            source_id=str(source_id) if source_id is not None else None,
            expires_at=expires_at,
        )
        self.session.add(entitlement)
        return entitlement

    def grant(
        self,
        user_id: str,
        catalog_item_id: str,
        source_kind: str,
        source_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> Entitlement:
        entitlement = self.add(user_id, catalog_item_id, source_kind, source_id, expires_at)
        commit(self.session)
        current_app.logger.info(
            "Granted %s access to %s for user %s (source %s)",
            source_kind, catalog_item_id, user_id, source_id,
        )
        return entitlement

    def has_access(self, user_id: str, catalog_item_id: str) -> bool:
        row = (
            self.session.query(Entitlement.id)
            .filter(
                Entitlement.user_id == user_id,
                Entitlement.catalog_item_id == catalog_item_id,
                *self._active_filter(utcnow()),
            )
            .first()
        )
        return row is not None

    def library(self, user_id: str) -> list[dict]:
        """
        One entry per item the user can access, earliest grant first.

        Catalog details are looked up live; items deleted from the catalog
        still appear, with empty details.
        """
        rows = (
            self.session.query(Entitlement)
            .filter(Entitlement.user_id == user_id, *self._active_filter(utcnow()))
            .order_by(Entitlement.granted_at.asc(), Entitlement.id.asc())
            .all()
        )

        library: dict[str, dict] = {}
        for row in rows:
            if row.catalog_item_id in library:
                continue
            item = self.catalog.get_item(row.catalog_item_id)
            library[row.catalog_item_id] = {
                "catalog_item_id": row.catalog_item_id,
                "title": item.title if item else None,
                "item_type": item.item_type if item else None,
                "thumbnail_url": item.thumbnail_url if item else None,
                "granted_at": to_utc_z(row.granted_at),
                "expires_at": to_utc_z(row.expires_at),
            }
        return list(library.values())

    def revoke(self, user_id: str, catalog_item_id: str) -> int:
        """Soft-revoke every active row for the pair; returns how many were revoked."""
        now = utcnow()
        rows = (
            self.session.query(Entitlement)
            .filter(
                Entitlement.user_id == user_id,
                Entitlement.catalog_item_id == catalog_item_id,
                Entitlement.revoked_at.is_(None),
            )
            .all()
        )
        for row in rows:
            row.revoked_at = now
        commit(self.session)
        if rows:
            current_app.logger.info(
                "Revoked %s entitlement(s) to %s for user %s", len(rows), catalog_item_id, user_id
            )
        return len(rows)

    def revoke_by_id(self, entitlement_id: int) -> Entitlement:
        entitlement = self.session.get(Entitlement, entitlement_id)
        if entitlement is None:
            raise NotFoundError("Entitlement not found")
        if entitlement.revoked_at is None:
            entitlement.revoked_at = utcnow()
            commit(self.session)
            current_app.logger.info("Revoked entitlement %s", entitlement_id)
        return entitlement


class EntitlementGranter:
    """Settlement listener: one PURCHASE grant per paid line."""

    LISTENER_NAME = "entitlements.grant_purchase"

    def __init__(self, entitlements: EntitlementService) -> None:
        self.entitlements = entitlements

    def on_order_paid(self, event: OrderPaidEvent) -> None:
        # The bus commits these rows together with the publication's completion
        for item in event.items:
            self.entitlements.add(
                user_id=event.buyer_id,
                catalog_item_id=item.catalog_item_id,
                source_kind=SOURCE_PURCHASE,
                source_id=str(event.order_id),
            )
        current_app.logger.info(
            "Granting %s item(s) from order %s to user %s",
            len(event.items), event.order_id, event.buyer_id,
        )


class AccessChecker:
    """Direct entitlement, then the active membership's plan features, then deny."""

    def __init__(self, entitlements: EntitlementService, membership) -> None:
        self.entitlements = entitlements
        self.membership = membership

    def can_access(self, user_id: str, catalog_item_id: str, item_type: Optional[str] = None) -> bool:
        if self.entitlements.has_access(user_id, catalog_item_id):
            return True

        feature_key = ITEM_TYPE_FEATURES.get((item_type or "").upper())
        if feature_key is None:
            return False
        features = self.membership.features_for(user_id)
        return features is not None and features.enabled(feature_key)
