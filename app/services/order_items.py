"""Canonical representation of an order's line items.

Older rows may hold ``items`` as a list, as an object keyed by numeric
strings (``{"0": {...}, "1": {...}}``) or as null, and may use the legacy
camelCase field names. ``normalize_items`` turns any of those into one
ordered list of canonical dicts; ``canonical_items`` additionally validates
the list and is what every write path stores.
"""
import uuid
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, List

from pydantic import ValidationError as PydanticValidationError

from app.core.errors import ValidationError
from app.schemas.order import OrderItem
from app.services.order_status import ITEM_STATUSES

DEFAULT_NAME = "Sem nome"
DEFAULT_UNIT = "Un"
DEFAULT_STATUS = "pending"

# labels older rows carry for item statuses; anything else reads as pending
_STATUS_ALIASES = {
    "pendente": "pending",
    "preparando": "preparing",
    "em preparo": "preparing",
    "pronto": "ready",
    "entregue": "delivered",
    "finalizado": "finished",
    "concluido": "finished",
    "concluído": "finished",
    # a cancelled line leaves the kitchen flow
    "cancelled": "finished",
    "canceled": "finished",
    "cancelado": "finished",
}

DIETARY_FLAGS = ("is_vegetarian", "is_vegan", "is_gluten_free", "is_lactose_free")

_LEGACY_KEYS = {
    "itemId": "item_id",
    "isVegetarian": "is_vegetarian",
    "isVegan": "is_vegan",
    "isGlutenFree": "is_gluten_free",
    "isLactoseFree": "is_lactose_free",
    "customDietaryRestrictions": "custom_dietary_restrictions",
}


def _ordered_values(raw) -> List[Any]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if isinstance(raw, dict):
        keys = list(raw.keys())
        try:
            numeric = sorted(int(k) for k in keys)
        except (TypeError, ValueError):
            numeric = None
        if numeric is not None and numeric == list(range(len(keys))):
            by_index = {int(k): v for k, v in raw.items()}
            return [by_index[i] for i in numeric]
        return list(raw.values())
    return []


def _as_quantity(value) -> int:
    """Whole quantity of at least 1; fractional legacy values round half up."""
    try:
        quantity = int(Decimal(str(value).strip()).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    except (InvalidOperation, TypeError, ValueError):
        return 1
    return max(quantity, 1)


def _as_float(value, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _text(value, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _status(value) -> str:
    raw = _text(value).strip().lower()
    if raw in ITEM_STATUSES:
        return raw
    return _STATUS_ALIASES.get(raw, DEFAULT_STATUS)


def normalize_item(raw: Any) -> dict:
    data = dict(raw) if isinstance(raw, dict) else {}
    for legacy, key in _LEGACY_KEYS.items():
        if legacy in data and key not in data:
            data[key] = data[legacy]

    item_id = data.get("id") or str(uuid.uuid4())
    item = {
        "id": str(item_id),
        "item_id": str(data.get("item_id") or item_id),
        "name": _text(data.get("name")) or DEFAULT_NAME,
        "category": _text(data.get("category")),
        "quantity": _as_quantity(data.get("quantity")),
        "price": max(_as_float(data.get("price"), 0.0), 0.0),
        "unit": _text(data.get("unit")) or DEFAULT_UNIT,
        "status": _status(data.get("status")),
        "notes": _text(data.get("notes")),
        "description": _text(data.get("description")),
    }
    for flag in DIETARY_FLAGS:
        item[flag] = bool(data.get(flag) or False)
    restrictions = data.get("custom_dietary_restrictions") or []
    item["custom_dietary_restrictions"] = [str(r) for r in restrictions] if isinstance(restrictions, (list, tuple)) else []
    return item


def normalize_items(raw: Any) -> List[dict]:
    """Return the canonical ordered item list for any stored ``items`` value.

    Idempotent: ``normalize_items(normalize_items(x)) == normalize_items(x)``.
    """
    return [normalize_item(value) for value in _ordered_values(raw)]


def canonical_items(raw: Any) -> List[dict]:
    """Normalize and validate items before they are written.

    Legacy values are repaired by the normalizer; a line that still breaks
    the item invariants (quantity >= 1, price >= 0, known status) raises
    ValidationError.
    """
    items = normalize_items(raw)
    validated = []
    for item in items:
        try:
            validated.append(OrderItem.model_validate(item).model_dump())
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ()))
            raise ValidationError(f"Item inválido ({item.get('name')}): {field} {first.get('msg')}") from exc
    return validated


def find_item(items: List[dict], item_id: str) -> dict:
    """Return the line whose ``id`` (or inventory ``item_id``) matches."""
    for item in items:
        if item.get("id") == item_id:
            return item
    for item in items:
        if item.get("item_id") == item_id:
            return item
    return None
