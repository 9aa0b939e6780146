from __future__ import annotations

from typing import Any, Iterable

from .values import CartItem


# Upper bound per line; guards against overflow of quantity * unit price
MAX_LINE_QUANTITY = 10_000


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate plan slug)."""


class NotFoundError(LookupError):
    """404-level missing resource."""


def parse_int(value: Any, field: str) -> int:
    """
    Strict integer coercion.

    Accepts ints (not bools) and plain digit strings; rejects floats,
    decimals and scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def parse_identifier(value: Any, field: str) -> str:
    if value is None:
        raise ValidationError(f"{field} required")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field} required")
    if len(text) > 64:
        raise ValidationError(f"{field} too long")
    return text


def parse_currency(value: Any, *, supported: Iterable[str], default: str) -> str:
    """Normalize a currency code; only records the code, never converts."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if not isinstance(value, str):
        raise ValidationError("currency must be a string")
    code = value.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError("currency must be a 3-letter ISO code")
    allowed = tuple(supported)
    if code not in allowed:
        raise ValidationError(f"Unsupported currency: {code}. Must be one of {list(allowed)}")
    return code


def parse_cart_items(raw: Any) -> list[CartItem]:
    """
    Validate the checkout item list:
    [{"catalog_item_id": "...", "variant_id": "..." (optional), "quantity": 1}, ...]
    """
    if raw is None:
        raise ValidationError("items required")
    if not isinstance(raw, list):
        raise ValidationError("items must be a list")
    if not raw:
        raise ValidationError("Order must have at least one item")

    items: list[CartItem] = []
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        item_id = parse_identifier(entry.get("catalog_item_id"), f"items[{idx}].catalog_item_id")
        variant = entry.get("variant_id")
        variant_id = parse_identifier(variant, f"items[{idx}].variant_id") if variant is not None else None
        quantity = parse_int(entry.get("quantity", 1), f"items[{idx}].quantity")
        if quantity < 1:
            raise ValidationError(f"items[{idx}].quantity must be at least 1")
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(f"items[{idx}].quantity must be at most {MAX_LINE_QUANTITY}")
        items.append(CartItem(catalog_item_id=item_id, variant_id=variant_id, quantity=quantity))
    return items
