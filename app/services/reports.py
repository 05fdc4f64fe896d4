"""Sales aggregates for the reports screen.

Only orders that were actually sold count: status Pago or Entregue,
created inside the requested local-day range (America/Sao_Paulo).
"""
from collections import defaultdict
from typing import Optional

from sqlalchemy.orm import Session

from app.core.errors import ValidationError
from app.core.timezone_utils import local_day_range_to_utc, local_today, to_local
from app.models.order import Order
from app.services.order_items import normalize_items
from app.services.order_status import DELIVERED, PAID

SOLD_STATUSES = (PAID, DELIVERED)
TOP_ITEMS_LIMIT = 10
TOP_WAITER_CATEGORIES = 3
NO_CATEGORY = "sem-categoria"
NO_WAITER = "Sem garçom"
UNPAID = "pending"


def _pct(part: float, whole: float) -> float:
    return round(part * 100 / whole, 2) if whole else 0.0


def _round(value: float) -> float:
    return round(float(value or 0), 2)


def sold_orders(db: Session, date_from, date_to=None):
    try:
        start, end = local_day_range_to_utc(date_from or local_today(), date_to)
    except ValueError as exc:
        raise ValidationError(f"Período inválido: {exc}") from exc
    return (
        db.query(Order)
        .filter(Order.status.in_(SOLD_STATUSES), Order.created_at >= start, Order.created_at <= end)
        .order_by(Order.created_at)
        .all()
    )


def sales_report(db: Session, date_from=None, date_to: Optional[str] = None) -> dict:
    orders = sold_orders(db, date_from, date_to)

    total_sales = 0.0
    items = defaultdict(lambda: {"quantity": 0, "revenue": 0.0})
    categories = defaultdict(float)
    payments = defaultdict(int)
    daily = defaultdict(lambda: {"sales": 0.0, "orders": 0})
    waiters = defaultdict(lambda: {"total_sales": 0.0, "total_orders": 0, "categories": defaultdict(float)})

    for order in orders:
        total = float(order.total or 0)
        total_sales += total
        payments[order.payment_method or UNPAID] += 1

        day = to_local(order.created_at).date().isoformat()
        daily[day]["sales"] += total
        daily[day]["orders"] += 1

        waiter = waiters[order.waiter or NO_WAITER]
        waiter["total_sales"] += total
        waiter["total_orders"] += 1

        for line in normalize_items(order.items):
            quantity, price = int(line["quantity"]), float(line["price"])
            if quantity <= 0 or price <= 0:
                continue
            revenue = quantity * price
            items[line["name"]]["quantity"] += quantity
            items[line["name"]]["revenue"] += revenue
            category = line["category"] or NO_CATEGORY
            categories[category] += revenue
            waiter["categories"][category] += revenue

    order_count = len(orders)
    category_total = sum(categories.values())

    top_items = sorted(items.items(), key=lambda kv: (-kv[1]["quantity"], -kv[1]["revenue"], kv[0]))
    return {
        "date_from": str(date_from or local_today()),
        "date_to": str(date_to or date_from or local_today()),
        "total_sales": _round(total_sales),
        "order_count": order_count,
        "average_ticket": _round(total_sales / order_count) if order_count else 0.0,
        "top_items": [
            {"name": name, "quantity": agg["quantity"], "revenue": _round(agg["revenue"])}
            for name, agg in top_items[:TOP_ITEMS_LIMIT]
        ],
        "categories": [
            {"category": cat, "value": _round(value), "percentage": _pct(value, category_total)}
            for cat, value in sorted(categories.items(), key=lambda kv: -kv[1])
        ],
        "payment_methods": [
            {"method": method, "count": count, "percentage": _pct(count, order_count)}
            for method, count in sorted(payments.items(), key=lambda kv: -kv[1])
        ],
        "waiters": [
            {
                "waiter": name,
                "total_sales": _round(agg["total_sales"]),
                "total_orders": agg["total_orders"],
                "average_ticket": _round(agg["total_sales"] / agg["total_orders"]),
                "top_categories": [
                    cat for cat, _ in sorted(agg["categories"].items(), key=lambda kv: -kv[1])[:TOP_WAITER_CATEGORIES]
                ],
            }
            for name, agg in sorted(waiters.items(), key=lambda kv: -kv[1]["total_sales"])
        ],
        "daily": [
            {"date": day, "sales": _round(agg["sales"]), "orders": agg["orders"]}
            for day, agg in sorted(daily.items())
        ],
    }
