"""
Value types shared by services and models.

Snapshots and plan feature sets are persisted as JSON but always read back
through these types. Every payload carries a `schema_version` so a reader can
detect shape drift instead of trusting an untyped blob.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


class SnapshotVersionError(ValueError):
    """Stored JSON has an unknown or missing schema version."""


@dataclass(frozen=True)
class CartItem:
    """One requested line of a checkout cart."""

    catalog_item_id: str
    quantity: int
    variant_id: Optional[str] = None


@dataclass(frozen=True)
class ItemSnapshot:
    """Descriptive terms of a catalog item, frozen at purchase time."""

    KIND = "item_snapshot"
    CURRENT_VERSION = 1

    title: str
    item_type: str
    unit_price_cents: int
    price_currency: str
    thumbnail_url: Optional[str] = None
    schema_version: int = CURRENT_VERSION

    def to_dict(self) -> dict:
        return {
            "kind": self.KIND,
            "schema_version": self.schema_version,
            "title": self.title,
            "item_type": self.item_type,
            "unit_price_cents": self.unit_price_cents,
            "price_currency": self.price_currency,
            "thumbnail_url": self.thumbnail_url,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ItemSnapshot":
        if not isinstance(data, dict):
            raise SnapshotVersionError("Snapshot payload must be an object")
        if data.get("kind", cls.KIND) != cls.KIND:
            raise SnapshotVersionError(f"Unexpected snapshot kind: {data.get('kind')}")
        version = data.get("schema_version")
        if version != cls.CURRENT_VERSION:
            raise SnapshotVersionError(f"Unsupported item snapshot version: {version}")
        return cls(
            title=data["title"],
            item_type=data["item_type"],
            unit_price_cents=int(data["unit_price_cents"]),
            price_currency=data["price_currency"],
            thumbnail_url=data.get("thumbnail_url"),
            schema_version=version,
        )


@dataclass(frozen=True)
class PlanFeatures:
    """Feature flags granted by a membership plan (e.g. {"video_library": True})."""

    KIND = "plan_features"
    CURRENT_VERSION = 1

    flags: dict = field(default_factory=dict)
    schema_version: int = CURRENT_VERSION

    def enabled(self, key: str) -> bool:
        value = self.flags.get(key)
        if value is None or value is False:
            return False
        if isinstance(value, str):
            return value.strip().lower() not in ("", "false", "none", "0")
        return True

    def to_dict(self) -> dict:
        return {
            "kind": self.KIND,
            "schema_version": self.schema_version,
            "flags": dict(self.flags),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "PlanFeatures":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise SnapshotVersionError("Plan features payload must be an object")
        if "schema_version" not in data:
            # Bare flag mapping as sent by admin clients
            return cls(flags=dict(data))
        if data.get("kind", cls.KIND) != cls.KIND:
            raise SnapshotVersionError(f"Unexpected features kind: {data.get('kind')}")
        version = data.get("schema_version")
        if version != cls.CURRENT_VERSION:
            raise SnapshotVersionError(f"Unsupported plan features version: {version}")
        flags = data.get("flags") or {}
        if not isinstance(flags, dict):
            raise SnapshotVersionError("Plan feature flags must be an object")
        return cls(flags=dict(flags), schema_version=version)
