from typing import Iterable, Optional

PENDING = "Pendente"
READY = "Pronto para servir"
DELIVERED = "Entregue"
CANCELLED = "Cancelado"
PAID = "Pago"

ORDER_STATUSES = (PENDING, READY, DELIVERED, CANCELLED, PAID)
TERMINAL_STATUSES = (PAID, CANCELLED)
TRANSITIONAL_STATUSES = (PENDING, READY, DELIVERED)

ITEM_STATUSES = ("pending", "preparing", "ready", "delivered", "finished")
# the "advance" action walks items along this path
ITEM_FLOW = ("pending", "preparing", "ready", "delivered")


def is_terminal(status: Optional[str]) -> bool:
    return status in TERMINAL_STATUSES


def status_from_items(items: Iterable[dict]) -> str:
    """Derive the transitional order status from its items' statuses.

    Precedence: empty -> Pendente; all delivered -> Entregue; all
    ready/delivered -> Pronto para servir; any pending/preparing ->
    Pendente; all finished -> Pronto para servir; otherwise Pendente.
    The result depends only on the multiset of statuses, not their order.
    """
    statuses = [(item.get("status") or "pending") for item in items]
    if not statuses:
        return PENDING
    if all(s == "delivered" for s in statuses):
        return DELIVERED
    if all(s in ("ready", "delivered") for s in statuses):
        return READY
    if any(s in ("pending", "preparing") for s in statuses):
        return PENDING
    if all(s == "finished" for s in statuses):
        return READY
    return PENDING


def resolve_order_status(items: Iterable[dict], current: Optional[str]) -> str:
    """Aggregate status for an order, keeping Pago/Cancelado untouched."""
    if is_terminal(current):
        return current
    return status_from_items(items)


def next_item_status(current: Optional[str]) -> str:
    """Next step of pending -> preparing -> ready -> delivered.

    ``delivered`` and ``finished`` stay where they are.
    """
    if current not in ITEM_FLOW:
        return current or "pending"
    idx = ITEM_FLOW.index(current)
    return ITEM_FLOW[min(idx + 1, len(ITEM_FLOW) - 1)]
