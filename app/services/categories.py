"""Classify inventory/menu categories into kitchen buckets.

Food goes to the kitchen (chef), drinks to the bar (barman). The classifier
never raises: unknown input degrades to the food bucket.
"""
from typing import Iterable, List, NamedTuple, Optional, Tuple

FOOD = "food"
DRINK = "drink"
UNCLASSIFIED = "unclassified"

FOOD_CATEGORIES = ("acompanhamentos", "almoco", "jantar")
DRINK_CATEGORIES = ("cervejas", "drinks", "refrigerantes", "vinhos")

# Items in these categories are priced but never counted.
DEFAULT_CATEGORIES_WITHOUT_STOCK = ("acompanhamentos", "almoco", "jantar")

# (keyword in item name, drink category it implies)
_NAME_KEYWORDS = (
    ("cerveja", "cervejas"),
    ("coca", "refrigerantes"),
    ("suco", "refrigerantes"),
    ("vinho", "vinhos"),
)
_DRINK_CATEGORY_HINTS = ("drink", "bebida")


class Classification(NamedTuple):
    bucket: str
    stock_tracked: bool
    # known category the identifier resolves to ('' when unclassified)
    category: str

    @property
    def is_food(self) -> bool:
        return self.bucket == FOOD

    @property
    def is_drink(self) -> bool:
        return self.bucket == DRINK


def _clean(value) -> str:
    if value is None:
        return ""
    try:
        return str(value).strip().lower()
    except Exception:
        return ""


def is_stock_tracked(category, no_stock: Optional[Iterable[str]] = None) -> bool:
    excluded = DEFAULT_CATEGORIES_WITHOUT_STOCK if no_stock is None else tuple(_clean(c) for c in no_stock)
    return _clean(category) not in excluded


def classify(category, name="", no_stock: Optional[Iterable[str]] = None) -> Classification:
    cat = _clean(category)
    tracked = is_stock_tracked(cat, no_stock)

    if cat in FOOD_CATEGORIES:
        return Classification(FOOD, tracked, cat)
    if cat in DRINK_CATEGORIES:
        return Classification(DRINK, tracked, cat)

    item_name = _clean(name)
    if not cat and not item_name:
        return Classification(UNCLASSIFIED, tracked, "")

    if any(hint in cat for hint in _DRINK_CATEGORY_HINTS):
        return Classification(DRINK, tracked, "drinks")
    for keyword, drink_category in _NAME_KEYWORDS:
        if keyword in item_name:
            return Classification(DRINK, tracked, drink_category)
    return Classification(FOOD, tracked, "almoco")


def split_items_by_bucket(items: List[dict]) -> Tuple[List[dict], List[dict]]:
    """Split order items into (food, drinks); unclassified items count as food."""
    food, drinks = [], []
    for item in items or []:
        result = classify(item.get("category"), item.get("name"))
        (drinks if result.is_drink else food).append(item)
    return food, drinks


def visible_buckets(role: str) -> Tuple[bool, bool]:
    """Return (sees_food, sees_drinks) for the kitchen display of a role."""
    if role == "chef":
        return True, False
    if role == "barman":
        return False, True
    return True, True
