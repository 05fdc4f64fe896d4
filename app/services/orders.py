"""Order workflow: every user action on an order, end to end.

Each action runs: normalize items -> classify -> adjust inventory ->
recompute aggregate status -> persist order -> synchronize table, inside
one database transaction. Either the order, the stock and the table
change together or nothing changes. Actions return an ``OrderOutcome``
whose events the route dispatches after the commit.
"""
import logging
import uuid
from collections import OrderedDict
from contextlib import contextmanager
from typing import Iterable, List, NamedTuple, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, InsufficientStock, NotFound, ValidationError
from app.core.timezone_utils import local_day_range_to_utc, local_today, utcnow
from app.models.order import Order
from app.services import inventory, table_sync
from app.services.categories import split_items_by_bucket, visible_buckets
from app.services.order_items import canonical_items, find_item, normalize_items
from app.services.order_status import (
    CANCELLED,
    ITEM_STATUSES,
    PAID,
    PENDING,
    TERMINAL_STATUSES,
    TRANSITIONAL_STATUSES,
    is_terminal,
    next_item_status,
    resolve_order_status,
)

logger = logging.getLogger("app.orders")

ORDER_TYPES = ("table", "counter", "takeaway")
PAYMENT_METHODS = ("cash", "card", "pix", "credit", "debit", "other")

_PAYMENT_ALIASES = {
    "dinheiro": "cash",
    "cartão": "card",
    "cartao": "card",
    "cartão de crédito": "credit",
    "cartao de credito": "credit",
    "crédito": "credit",
    "credito": "credit",
    "cartão de débito": "debit",
    "cartao de debito": "debit",
    "débito": "debit",
    "debito": "debit",
    "outro": "other",
}

# roles whose order list only shows what still has to be prepared
KITCHEN_ROLES = ("chef", "barman")
SEARCH_BATCH_SIZE = 200


class OrderOutcome(NamedTuple):
    order: Order
    events: List[dict]
    warnings: List[str]


@contextmanager
def _unit_of_work(db: Session):
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise


def _money(value) -> float:
    return round(float(value or 0), 2)


def normalize_payment_method(value: Optional[str]) -> str:
    """Map a payment method (code or Portuguese label) to its code."""
    raw = (value or "").strip().lower()
    if not raw:
        raise ValidationError("Selecione um método de pagamento")
    if raw in PAYMENT_METHODS:
        return raw
    if raw in _PAYMENT_ALIASES:
        return _PAYMENT_ALIASES[raw]
    raise ValidationError(f"Método de pagamento inválido: {value}")


def compute_discount(subtotal: float, discount: Optional[dict]) -> float:
    """Absolute discount for a percentage or fixed discount, clamped to the subtotal."""
    if not discount:
        return 0.0
    kind = discount.get("type") or "fixed"
    value = float(discount.get("value") or 0)
    if value < 0:
        raise ValidationError("Desconto não pode ser negativo")
    if kind == "percentage":
        if value > 100:
            raise ValidationError("Desconto percentual deve estar entre 0 e 100")
        amount = subtotal * value / 100
    elif kind == "fixed":
        amount = value
    else:
        raise ValidationError(f"Tipo de desconto inválido: {kind}")
    return _money(min(amount, subtotal))


def _apply_totals(order: Order, items: List[dict]) -> None:
    subtotal = _money(sum(float(i["price"]) * int(i["quantity"]) for i in items))
    # the discount is fixed at creation; it only shrinks if the subtotal drops below it
    discount = min(_money(order.discount), subtotal)
    order.subtotal = subtotal
    order.discount = discount
    order.total = _money(subtotal - discount)


def serialize_order(order: Order) -> dict:
    payment = None
    if order.payment_method:
        payment = {
            "method": order.payment_method,
            "amount": _money(order.payment_amount),
            "processed_at": order.paid_at,
        }
    return {
        "id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "items": normalize_items(order.items),
        "subtotal": _money(order.subtotal),
        "discount": _money(order.discount),
        "total": _money(order.total),
        "status": order.status,
        "order_type": order.order_type,
        "table_id": order.table_id,
        "map_id": order.map_id,
        "table_number": order.table_number,
        "waiter": order.waiter,
        "payment_info": payment,
        "special_requests": order.special_requests,
        "dietary_restrictions": list(order.dietary_restrictions or []),
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "closed_at": order.closed_at,
    }


def _event(kind: str, order: Order, **extra) -> dict:
    event = {
        "type": kind,
        "order_id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "table_id": order.table_id,
        "table_number": order.table_number,
        "total": _money(order.total),
    }
    event.update(extra)
    return event


def get_order(db: Session, order_id: str) -> Order:
    order = db.get(Order, order_id)
    if not order:
        raise NotFound("Pedido não encontrado")
    return order


def _ensure_open(order: Order, action: str) -> None:
    if is_terminal(order.status):
        raise ConflictError(f"Pedido já finalizado ({order.status}); não é possível {action}")


def _next_order_number(db: Session) -> int:
    start, end = local_day_range_to_utc(local_today())
    current = (
        db.query(func.max(Order.order_number))
        .filter(Order.created_at >= start, Order.created_at <= end)
        .scalar()
    )
    return int(current or 0) + 1


def _snapshot_line(db: Session, line: dict) -> dict:
    """Build an order line from the inventory; client prices are never trusted."""
    quantity = int(line.get("quantity") or 0)
    if quantity < 1:
        raise ValidationError("Quantidade deve ser maior ou igual a 1")
    stock_item = inventory.get_item(db, line.get("category"), line.get("item_id"))
    return {
        "id": str(uuid.uuid4()),
        "item_id": stock_item.id,
        "name": stock_item.name,
        "category": stock_item.category,
        "quantity": quantity,
        "price": _money(stock_item.price),
        "unit": stock_item.unit or "Un",
        "status": "pending",
        "notes": line.get("notes") or "",
        "description": stock_item.description or "",
        "is_vegetarian": bool(line.get("is_vegetarian")),
        "is_vegan": bool(line.get("is_vegan")),
        "is_gluten_free": bool(line.get("is_gluten_free")),
        "is_lactose_free": bool(line.get("is_lactose_free")),
        "custom_dietary_restrictions": list(line.get("custom_dietary_restrictions") or []),
    }


def _deduct_stock(db: Session, lines: Iterable[dict], settings, order: Order,
                  events: List[dict], warnings: List[str]) -> None:
    """Deduct the quantities of ``lines`` from the inventory.

    Blocking mode checks every item before writing and lets
    InsufficientStock abort the action. Otherwise a shortfall leaves that
    item's stock untouched and is reported as a warning plus an event.
    """
    wanted = OrderedDict()
    for line in lines:
        key = (line["category"], line["item_id"])
        name, qty = wanted.get(key, (line["name"], 0))
        wanted[key] = (name, qty + int(line["quantity"]))

    no_stock = settings.CATEGORIES_WITHOUT_STOCK
    if settings.STOCK_DEDUCTION_BLOCKING:
        for (category, item_id), (_, qty) in wanted.items():
            inventory.check_stock(db, category, item_id, -qty, no_stock)

    for (category, item_id), (name, qty) in wanted.items():
        try:
            result = inventory.adjust_stock(db, category, item_id, -qty, no_stock)
        except InsufficientStock as exc:
            logger.warning("Order %s: %s", order.id, exc.message)
            warnings.append(exc.message)
            events.append(_event("stock.deduction_failed", order, item_id=item_id, name=name, message=exc.message))
            continue
        if result.tracked and result.level == inventory.CRITICAL:
            stock_item = inventory.get_item(db, category, item_id)
            events.append({
                "type": "stock.critical",
                "item_id": item_id,
                "category": category,
                "name": stock_item.name,
                "quantity": result.quantity,
                "unit": stock_item.unit,
            })


def _restock(db: Session, line: dict, quantity: int, settings, warnings: List[str]) -> None:
    try:
        inventory.adjust_stock(db, line["category"], line["item_id"], quantity, settings.CATEGORIES_WITHOUT_STOCK)
    except NotFound:
        # the inventory item was deleted after the sale; nothing to give back
        logger.warning("Restock skipped, inventory item %s/%s no longer exists", line["category"], line["item_id"])
        warnings.append(f"Item {line['name']} não existe mais no estoque; estoque não devolvido")


def _sync_table(db: Session, order: Order) -> None:
    if order.map_id and order.table_id:
        table_sync.sync_table(db, order.map_id, order.table_id, order.id, order.status)


def _resolve_table(db: Session, order_type: str, map_id: Optional[str], table_id: Optional[str]):
    """Return (map_id, table_id, table_number) for a new order."""
    if order_type != "table":
        return None, None, None
    if not map_id or not table_id:
        raise ValidationError("Mesa é obrigatória para pedidos de mesa")
    table = table_sync.get_table(db, map_id, table_id)
    if table.get("status") == table_sync.MAINTENANCE:
        raise ConflictError(f"Mesa {table.get('number')} está em manutenção")
    active = table.get("active_order_id")
    if active:
        holder = db.get(Order, active)
        if holder is not None and not is_terminal(holder.status):
            raise ConflictError(f"Mesa {table.get('number')} já possui um pedido ativo")
    return map_id, table_id, table.get("number")


def create_order(db: Session, payload: dict, user, settings) -> OrderOutcome:
    order_type = payload.get("order_type") or "table"
    if order_type not in ORDER_TYPES:
        raise ValidationError(f"Tipo de pedido inválido: {order_type}")
    incoming = payload.get("items") or []
    if not incoming:
        raise ValidationError("O pedido precisa de pelo menos um item")

    events: List[dict] = []
    warnings: List[str] = []
    with _unit_of_work(db):
        map_id, table_id, table_number = _resolve_table(db, order_type, payload.get("map_id"), payload.get("table_id"))
        lines = [_snapshot_line(db, line) for line in incoming]
        subtotal = _money(sum(line["price"] * line["quantity"] for line in lines))
        discount = compute_discount(subtotal, payload.get("discount"))

        order = Order(
            order_number=_next_order_number(db),
            user_id=getattr(user, "id", None),
            items=canonical_items(lines),
            subtotal=subtotal,
            discount=discount,
            total=_money(subtotal - discount),
            status=PENDING,
            order_type=order_type,
            map_id=map_id,
            table_id=table_id,
            table_number=table_number,
            waiter=payload.get("waiter") or getattr(user, "display_name", None) or getattr(user, "username", None)
            or getattr(user, "email", None),
            special_requests=payload.get("special_requests"),
            dietary_restrictions=list(payload.get("dietary_restrictions") or []),
            customer_name=payload.get("customer_name"),
            customer_phone=payload.get("customer_phone"),
        )
        db.add(order)
        db.flush()

        _deduct_stock(db, lines, settings, order, events, warnings)
        order.status = resolve_order_status(order.items, PENDING)
        _sync_table(db, order)

    db.refresh(order)
    logger.info("Order %s #%s created (%s items, total=%.2f)", order.id, order.order_number, len(lines), order.total)
    events.insert(0, _event("order.created", order))
    return OrderOutcome(order, events, warnings)


def _status_events(order: Order, previous: str, kind: str = "order.updated") -> List[dict]:
    events = [_event(kind, order)]
    if order.status != previous:
        events.append(_event("order.status", order, previous=previous))
    return events


def add_items(db: Session, order_id: str, new_items: List[dict], settings) -> OrderOutcome:
    """Add lines to an open order.

    A line for an inventory item already on the order and still pending
    just grows in quantity; anything else becomes a new pending line.
    """
    if not new_items:
        raise ValidationError("Informe ao menos um item")
    order = get_order(db, order_id)
    _ensure_open(order, "adicionar itens")

    warnings: List[str] = []
    stock_events: List[dict] = []
    previous = order.status
    with _unit_of_work(db):
        items = normalize_items(order.items)
        added = [_snapshot_line(db, line) for line in new_items]
        for line in added:
            existing = next(
                (i for i in items if i["item_id"] == line["item_id"] and i["status"] == "pending"),
                None,
            )
            if existing is not None:
                existing["quantity"] += line["quantity"]
            else:
                items.append(line)

        _deduct_stock(db, added, settings, order, stock_events, warnings)
        items = canonical_items(items)
        order.items = items
        _apply_totals(order, items)
        order.status = resolve_order_status(items, order.status)
        _sync_table(db, order)

    db.refresh(order)
    return OrderOutcome(order, _status_events(order, previous) + stock_events, warnings)


def update_item_status(db: Session, order_id: str, line_id: str, status: str) -> OrderOutcome:
    if status not in ITEM_STATUSES:
        raise ValidationError(f"Status de item inválido: {status}")
    order = get_order(db, order_id)
    _ensure_open(order, "alterar itens")

    previous = order.status
    with _unit_of_work(db):
        items = normalize_items(order.items)
        line = find_item(items, line_id)
        if line is None:
            raise NotFound("Item do pedido não encontrado")
        line["status"] = status
        items = canonical_items(items)
        order.items = items
        order.status = resolve_order_status(items, order.status)
        _sync_table(db, order)

    db.refresh(order)
    return OrderOutcome(order, _status_events(order, previous), [])


def advance_item(db: Session, order_id: str, line_id: str) -> OrderOutcome:
    order = get_order(db, order_id)
    line = find_item(normalize_items(order.items), line_id)
    if line is None:
        raise NotFound("Item do pedido não encontrado")
    return update_item_status(db, order_id, line_id, next_item_status(line["status"]))


def update_item_quantity(db: Session, order_id: str, line_id: str, quantity: int, settings) -> OrderOutcome:
    if quantity is None or int(quantity) < 1:
        raise ValidationError("Quantidade deve ser maior ou igual a 1")
    order = get_order(db, order_id)
    _ensure_open(order, "alterar itens")

    warnings: List[str] = []
    events: List[dict] = []
    previous = order.status
    with _unit_of_work(db):
        items = normalize_items(order.items)
        line = find_item(items, line_id)
        if line is None:
            raise NotFound("Item do pedido não encontrado")
        delta = int(quantity) - int(line["quantity"])
        if delta > 0:
            _deduct_stock(db, [dict(line, quantity=delta)], settings, order, events, warnings)
        elif delta < 0:
            _restock(db, line, -delta, settings, warnings)
        line["quantity"] = int(quantity)
        items = canonical_items(items)
        order.items = items
        _apply_totals(order, items)
        order.status = resolve_order_status(items, order.status)
        _sync_table(db, order)

    db.refresh(order)
    return OrderOutcome(order, _status_events(order, previous) + events, warnings)


def set_order_status(db: Session, order_id: str, status: str) -> OrderOutcome:
    """Manual change between transitional statuses (the status dialog)."""
    if status in TERMINAL_STATUSES:
        raise ValidationError("Use as ações de fechar ou cancelar para finalizar o pedido")
    if status not in TRANSITIONAL_STATUSES:
        raise ValidationError(f"Status de pedido inválido: {status}")
    order = get_order(db, order_id)
    _ensure_open(order, "alterar o status")

    previous = order.status
    with _unit_of_work(db):
        order.status = status
        _sync_table(db, order)

    db.refresh(order)
    return OrderOutcome(order, _status_events(order, previous), [])


def close_order(db: Session, order_id: str, payment_method: Optional[str]) -> OrderOutcome:
    method = normalize_payment_method(payment_method)
    order = get_order(db, order_id)
    _ensure_open(order, "fechar")

    with _unit_of_work(db):
        now = utcnow()
        order.status = PAID
        order.payment_method = method
        order.payment_amount = _money(order.total)
        order.paid_at = now
        order.closed_at = now
        _sync_table(db, order)

    db.refresh(order)
    logger.info("Order %s #%s closed with %s (%.2f)", order.id, order.order_number, method, order.total)
    return OrderOutcome(order, [_event("order.closed", order, payment_method=method)], [])


def cancel_order(db: Session, order_id: str) -> OrderOutcome:
    order = get_order(db, order_id)
    _ensure_open(order, "cancelar")

    with _unit_of_work(db):
        order.status = CANCELLED
        order.closed_at = utcnow()
        _sync_table(db, order)

    db.refresh(order)
    logger.info("Order %s #%s cancelled", order.id, order.order_number)
    return OrderOutcome(order, [_event("order.cancelled", order)], [])


def request_bill(db: Session, order_id: str) -> OrderOutcome:
    order = get_order(db, order_id)
    _ensure_open(order, "pedir a conta")
    if not order.table_id:
        raise ValidationError("Pedido não está associado a uma mesa")

    with _unit_of_work(db):
        table_sync.mark_billing(db, order.map_id, order.table_id, order.id)

    return OrderOutcome(order, [_event("table.billing", order)], [])


def delete_order(db: Session, order_id: str) -> OrderOutcome:
    order = get_order(db, order_id)
    event = _event("order.deleted", order)
    with _unit_of_work(db):
        if order.map_id and order.table_id and not is_terminal(order.status):
            # free the table as a cancellation would
            table_sync.sync_table(db, order.map_id, order.table_id, order.id, CANCELLED)
        db.delete(order)
    logger.info("Order %s #%s deleted", event["order_id"], event["order_number"])
    return OrderOutcome(None, [event], [])


def _matches(order: Order, text: str) -> bool:
    needle = text.strip().lower()
    if not needle:
        return True
    haystack = [order.id, str(order.table_number or ""), order.waiter or "", order.status or "",
                str(order.order_number or ""), order.customer_name or ""]
    haystack.extend(i["name"] for i in normalize_items(order.items))
    return any(needle in (value or "").lower() for value in haystack)


def list_orders(db: Session, role: str, status: Optional[str] = None, search: Optional[str] = None,
                date_from: Optional[str] = None, date_to: Optional[str] = None,
                limit: int = 200) -> List[Order]:
    """Orders newest first; chef and barman only ever see pending ones."""
    query = db.query(Order)
    if role in KITCHEN_ROLES:
        query = query.filter(Order.status == PENDING)
    elif status:
        query = query.filter(Order.status == status)
    if date_from or date_to:
        try:
            if date_from:
                start, end = local_day_range_to_utc(date_from, date_to)
            else:
                # only an upper bound: everything up to the end of that day
                start, end = None, local_day_range_to_utc(date_to)[1]
        except ValueError as exc:
            raise ValidationError(f"Data inválida: {exc}") from exc
        if start is not None:
            query = query.filter(Order.created_at >= start)
        query = query.filter(Order.created_at <= end)
    query = query.order_by(Order.created_at.desc())
    if not search:
        return query.limit(limit).all()

    # item names live inside the JSON column, so matching happens here over
    # the whole filtered set, newest first, until ``limit`` hits are found
    matched = []
    for row in query.yield_per(SEARCH_BATCH_SIZE):
        if _matches(row, search):
            matched.append(row)
            if len(matched) >= limit:
                break
    return matched


def kitchen_orders(db: Session, role: str) -> List[dict]:
    """Pending orders with their items split into food and drinks for a role."""
    sees_food, sees_drinks = visible_buckets(role)
    result = []
    for order in list_orders(db, "chef"):
        food, drinks = split_items_by_bucket(normalize_items(order.items))
        food = food if sees_food else []
        drinks = drinks if sees_drinks else []
        if not food and not drinks:
            continue
        entry = serialize_order(order)
        entry.update({"food": food, "drinks": drinks})
        result.append(entry)
    return result
