"""
Catalog read-side port.

The catalog owns items, prices and availability; this system only consumes
a lookup. InMemoryCatalog backs development and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional


ITEM_STATUS_ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class CatalogItem:
    """Catalog view of a purchasable item."""

    id: str
    title: str
    item_type: str
    price_cents: int
    currency: str
    status: str = ITEM_STATUS_ACTIVE
    thumbnail_url: Optional[str] = None

    @property
    def purchasable(self) -> bool:
        return self.status == ITEM_STATUS_ACTIVE and self.price_cents is not None


class CatalogLookup(ABC):
    """Abstract catalog query interface."""

    @abstractmethod
    def get_item(self, item_id: str, variant_id: Optional[str] = None) -> Optional[CatalogItem]:
        """Return the item (priced for the variant, if given) or None if unknown."""
        ...


class InMemoryCatalog(CatalogLookup):
    """Dict-backed catalog. Variants are stored under "<item_id>:<variant_id>"."""

    def __init__(self, items: Optional[list[CatalogItem]] = None) -> None:
        self._items: dict[str, CatalogItem] = {}
        for item in items or []:
            self.put(item)

    def put(self, item: CatalogItem, variant_id: Optional[str] = None) -> None:
        self._items[self._key(item.id, variant_id)] = item

    def update(self, item_id: str, **changes) -> CatalogItem:
        item = replace(self._items[item_id], **changes)
        self._items[item_id] = item
        return item

    def remove(self, item_id: str) -> None:
        self._items.pop(item_id, None)

    def clear(self) -> None:
        self._items.clear()

    def get_item(self, item_id: str, variant_id: Optional[str] = None) -> Optional[CatalogItem]:
        return self._items.get(self._key(item_id, variant_id))

    @staticmethod
    def _key(item_id: str, variant_id: Optional[str]) -> str:
        return item_id if variant_id is None else f"{item_id}:{variant_id}"
