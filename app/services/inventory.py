"""Inventory categories, items and stock adjustment.

``adjust_stock`` is the single place where quantities change. It never
commits: the caller's transaction decides, so an order and the stock it
consumed become visible together. Items carry a version token, so two
transactions adjusting the same item cannot both win.
"""
import logging
import re
from typing import Iterable, List, NamedTuple, Optional

from sqlalchemy.orm import Session

from app.core.errors import ConflictError, InsufficientStock, NotFound, ValidationError
from app.core.timezone_utils import utcnow
from app.models.inventory import InventoryCategory, InventoryItem
from app.services.categories import is_stock_tracked

logger = logging.getLogger("app.inventory")

OK = "ok"
LOW = "low"
CRITICAL = "critical"


class StockAdjustment(NamedTuple):
    item_id: str
    category: str
    tracked: bool
    previous: Optional[int]
    quantity: Optional[int]
    level: str = OK


def stock_level(quantity: Optional[int], min_quantity: Optional[int]) -> str:
    """Low at or below the minimum, critical at or below half of it."""
    if quantity is None:
        return OK
    minimum = min_quantity or 0
    if minimum > 0 and quantity <= minimum / 2:
        return CRITICAL
    if quantity <= minimum:
        return LOW
    return OK


def get_item(db: Session, category_id: str, item_id: str) -> InventoryItem:
    item = (
        db.query(InventoryItem)
        .filter(InventoryItem.id == item_id, InventoryItem.category == category_id)
        .first()
    )
    if not item:
        raise NotFound(f"Item de estoque não encontrado: {category_id}/{item_id}")
    return item


def adjust_stock(db: Session, category_id: str, item_id: str, delta: int,
                 no_stock: Optional[Iterable[str]] = None) -> StockAdjustment:
    """Apply a signed quantity delta to a stock-tracked item.

    Raises InsufficientStock, leaving the quantity untouched, when
    ``current + delta < 0``. Categories without stock are a no-op.
    """
    if not is_stock_tracked(category_id, no_stock):
        return StockAdjustment(item_id, category_id, False, None, None)

    item = get_item(db, category_id, item_id)
    current = item.quantity or 0
    new_quantity = current + int(delta)
    if new_quantity < 0:
        raise InsufficientStock(item_id, current, -int(delta), name=item.name)

    item.quantity = new_quantity
    item.updated_at = utcnow()
    db.flush()
    level = stock_level(new_quantity, item.min_quantity)
    logger.info("Stock %s/%s: %s -> %s (%+d)", category_id, item_id, current, new_quantity, delta)
    return StockAdjustment(item_id, category_id, True, current, new_quantity, level)


def check_stock(db: Session, category_id: str, item_id: str, delta: int,
                no_stock: Optional[Iterable[str]] = None) -> None:
    """Raise InsufficientStock if ``delta`` could not be applied; writes nothing."""
    if not is_stock_tracked(category_id, no_stock) or delta >= 0:
        return
    item = get_item(db, category_id, item_id)
    current = item.quantity or 0
    if current + delta < 0:
        raise InsufficientStock(item_id, current, -delta, name=item.name)


def add_stock(db: Session, category_id: str, item_id: str, amount: int,
              no_stock: Optional[Iterable[str]] = None) -> StockAdjustment:
    if amount is None or int(amount) <= 0:
        raise ValidationError("Quantidade a adicionar deve ser maior que zero")
    if not is_stock_tracked(category_id, no_stock):
        raise ValidationError(f"A categoria {category_id} não controla estoque")
    result = adjust_stock(db, category_id, item_id, int(amount), no_stock)
    db.commit()
    return result


# --- categories -------------------------------------------------------------

def _slug(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").strip().lower()).strip("-")
    if not slug:
        raise ValidationError("Identificador de categoria inválido")
    return slug


def list_categories(db: Session) -> List[InventoryCategory]:
    return db.query(InventoryCategory).order_by(InventoryCategory.name).all()


def create_category(db: Session, name: str, category_id: Optional[str] = None) -> InventoryCategory:
    if not (name or "").strip():
        raise ValidationError("Nome da categoria é obrigatório")
    cid = _slug(category_id or name)
    if db.get(InventoryCategory, cid):
        raise ConflictError(f"Categoria já existe: {cid}")
    category = InventoryCategory(id=cid, name=name.strip())
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, category_id: str) -> None:
    category = db.get(InventoryCategory, category_id)
    if not category:
        raise NotFound(f"Categoria não encontrada: {category_id}")
    db.delete(category)
    db.commit()


# --- items ------------------------------------------------------------------

def list_items(db: Session, category_id: str) -> List[InventoryItem]:
    if not db.get(InventoryCategory, category_id):
        raise NotFound(f"Categoria não encontrada: {category_id}")
    return (
        db.query(InventoryItem)
        .filter(InventoryItem.category == category_id)
        .order_by(InventoryItem.name)
        .all()
    )


def _stock_fields(tracked: bool, quantity, min_quantity):
    if not tracked:
        return None, None
    quantity = 0 if quantity is None else int(quantity)
    min_quantity = 0 if min_quantity is None else int(min_quantity)
    if quantity < 0 or min_quantity < 0:
        raise ValidationError("Quantidade e quantidade mínima não podem ser negativas")
    return quantity, min_quantity


def create_item(db: Session, category_id: str, data: dict,
                no_stock: Optional[Iterable[str]] = None) -> InventoryItem:
    if not db.get(InventoryCategory, category_id):
        raise NotFound(f"Categoria não encontrada: {category_id}")
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Nome do item é obrigatório")
    price = float(data.get("price") or 0)
    if price < 0:
        raise ValidationError("Preço não pode ser negativo")
    quantity, min_quantity = _stock_fields(
        is_stock_tracked(category_id, no_stock), data.get("quantity"), data.get("min_quantity")
    )
    item = InventoryItem(
        category=category_id,
        name=name,
        quantity=quantity,
        min_quantity=min_quantity,
        unit=data.get("unit") or "Un",
        price=price,
        supplier=data.get("supplier"),
        description=data.get("description"),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def update_item(db: Session, category_id: str, item_id: str, data: dict,
                no_stock: Optional[Iterable[str]] = None) -> InventoryItem:
    item = get_item(db, category_id, item_id)
    if data.get("category") not in (None, category_id):
        raise ValidationError("A categoria de um item não pode ser alterada")

    if "name" in data and data["name"] is not None:
        if not data["name"].strip():
            raise ValidationError("Nome do item é obrigatório")
        item.name = data["name"].strip()
    if data.get("price") is not None:
        if float(data["price"]) < 0:
            raise ValidationError("Preço não pode ser negativo")
        item.price = float(data["price"])
    for field in ("unit", "supplier", "description"):
        if data.get(field) is not None:
            setattr(item, field, data[field])

    tracked = is_stock_tracked(category_id, no_stock)
    quantity = data["quantity"] if data.get("quantity") is not None else item.quantity
    min_quantity = data["min_quantity"] if data.get("min_quantity") is not None else item.min_quantity
    item.quantity, item.min_quantity = _stock_fields(tracked, quantity, min_quantity)
    item.updated_at = utcnow()
    db.commit()
    db.refresh(item)
    return item


def delete_item(db: Session, category_id: str, item_id: str) -> None:
    item = get_item(db, category_id, item_id)
    db.delete(item)
    db.commit()


def low_stock_items(db: Session, no_stock: Optional[Iterable[str]] = None) -> List[InventoryItem]:
    """Stock-tracked items at or below their minimum quantity."""
    rows = db.query(InventoryItem).filter(InventoryItem.quantity.isnot(None)).all()
    return [
        row for row in rows
        if is_stock_tracked(row.category, no_stock)
        and stock_level(row.quantity, row.min_quantity) != OK
    ]
