from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, InsufficientStock, NotFound, ValidationError
from app.core.timezone_utils import local_today
from app.models.inventory import InventoryItem
from app.models.order import Order
from app.services import orders, table_sync
from app.services.order_status import CANCELLED, DELIVERED, PAID, PENDING, READY


def _line(item, category, quantity=1, **extra):
    return dict({"item_id": item.id, "category": category, "quantity": quantity}, **extra)


def _table_order(stocked, floor, *lines, **extra):
    payload = {"order_type": "table", "map_id": floor.id, "table_id": "t1",
               "items": list(lines) or [_line(stocked["beer"], "cervejas", 2)]}
    payload.update(extra)
    return payload


def _quantity(db: Session, item) -> int:
    db.expire_all()
    return db.get(InventoryItem, item.id).quantity


def _table(db: Session, floor, table_id="t1") -> dict:
    db.expire_all()
    return table_sync.get_table(db, floor.id, table_id)


def test_create_order_snapshots_prices_and_totals(db_session, settings, stocked, floor, waiter_user) -> None:
    payload = _table_order(stocked, floor, _line(stocked["beer"], "cervejas", 2), _line(stocked["dish"], "almoco"),
                           discount={"type": "percentage", "value": 10})
    outcome = orders.create_order(db_session, payload, waiter_user, settings)
    order = outcome.order

    assert order.status == PENDING
    assert order.order_number == 1
    assert float(order.subtotal) == 72.0
    assert float(order.discount) == 7.2
    assert float(order.total) == pytest.approx(64.8)
    assert order.waiter == "Waiter"
    assert [i["name"] for i in order.items] == ["Cerveja Original 600ml", "Feijoada"]
    assert outcome.warnings == []
    assert outcome.events[0]["type"] == "order.created"


def test_create_order_deducts_stock_and_occupies_table(db_session, settings, stocked, floor, waiter_user) -> None:
    outcome = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings)

    assert _quantity(db_session, stocked["beer"]) == 8
    entry = _table(db_session, floor)
    assert entry["status"] == "occupied"
    assert entry["active_order_id"] == outcome.order.id


def test_fixed_discount_is_clamped(db_session, settings, stocked, floor, waiter_user) -> None:
    payload = _table_order(stocked, floor, discount={"type": "fixed", "value": 500})
    order = orders.create_order(db_session, payload, waiter_user, settings).order
    assert float(order.discount) == 30.0
    assert float(order.total) == 0.0


def test_percentage_over_100_rejected(db_session, settings, stocked, floor, waiter_user) -> None:
    with pytest.raises(ValidationError):
        orders.create_order(db_session, _table_order(stocked, floor, discount={"type": "percentage", "value": 150}),
                            waiter_user, settings)


def test_validation_happens_before_any_write(db_session, settings, stocked, floor, waiter_user) -> None:
    with pytest.raises(ValidationError):
        orders.create_order(db_session, _table_order(stocked, floor, _line(stocked["beer"], "cervejas", 0)),
                            waiter_user, settings)
    with pytest.raises(ValidationError):
        orders.create_order(db_session, {"order_type": "table", "items": [_line(stocked["beer"], "cervejas")]},
                            waiter_user, settings)
    with pytest.raises(ValidationError):
        orders.create_order(db_session, _table_order(stocked, floor, items=[]), waiter_user, settings)
    assert db_session.query(Order).count() == 0
    assert _quantity(db_session, stocked["beer"]) == 10


def test_unknown_inventory_item_aborts(db_session, settings, stocked, floor, waiter_user) -> None:
    payload = _table_order(stocked, floor, {"item_id": "ghost", "category": "cervejas", "quantity": 1})
    with pytest.raises(NotFound):
        orders.create_order(db_session, payload, waiter_user, settings)
    assert _table(db_session, floor)["status"] == "available"


def test_occupied_table_rejects_second_order(db_session, settings, stocked, floor, waiter_user) -> None:
    orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings)
    with pytest.raises(ConflictError):
        orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings)


def test_counter_order_needs_no_table(db_session, settings, stocked, waiter_user) -> None:
    payload = {"order_type": "counter", "items": [_line(stocked["dish"], "almoco")]}
    order = orders.create_order(db_session, payload, waiter_user, settings).order
    assert order.table_id is None
    assert float(order.total) == 42.0


def test_order_numbers_increase_per_day(db_session, settings, stocked, waiter_user) -> None:
    payload = {"order_type": "takeaway", "items": [_line(stocked["dish"], "almoco")]}
    first = orders.create_order(db_session, payload, waiter_user, settings).order
    second = orders.create_order(db_session, payload, waiter_user, settings).order
    assert (first.order_number, second.order_number) == (1, 2)


def test_insufficient_stock_does_not_block_by_default(db_session, settings, stocked, floor, waiter_user) -> None:
    payload = _table_order(stocked, floor, _line(stocked["soda"], "refrigerantes", 5))
    outcome = orders.create_order(db_session, payload, waiter_user, settings)

    assert outcome.order.status == PENDING
    assert len(outcome.warnings) == 1
    assert any(e["type"] == "stock.deduction_failed" for e in outcome.events)
    assert _quantity(db_session, stocked["soda"]) == 2


def test_insufficient_stock_blocks_when_configured(db_session, settings, stocked, floor, waiter_user) -> None:
    settings.STOCK_DEDUCTION_BLOCKING = True
    payload = _table_order(stocked, floor, _line(stocked["beer"], "cervejas", 1),
                           _line(stocked["soda"], "refrigerantes", 5))
    with pytest.raises(InsufficientStock):
        orders.create_order(db_session, payload, waiter_user, settings)

    assert db_session.query(Order).count() == 0
    assert _quantity(db_session, stocked["beer"]) == 10
    assert _table(db_session, floor)["status"] == "available"


def test_critical_stock_event(db_session, settings, stocked, floor, waiter_user) -> None:
    outcome = orders.create_order(db_session, _table_order(stocked, floor, _line(stocked["beer"], "cervejas", 8)),
                                  waiter_user, settings)
    critical = [e for e in outcome.events if e["type"] == "stock.critical"]
    assert critical and critical[0]["quantity"] == 2


def test_add_items_merges_pending_line(db_session, settings, stocked, floor, waiter_user) -> None:
    order = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings).order
    outcome = orders.add_items(db_session, order.id, [_line(stocked["beer"], "cervejas", 1),
                                                      _line(stocked["soda"], "refrigerantes", 1)], settings)
    items = outcome.order.items

    assert [(i["name"], i["quantity"]) for i in items] == [("Cerveja Original 600ml", 3), ("Coca-Cola Lata", 1)]
    assert float(outcome.order.subtotal) == 51.5
    assert float(outcome.order.total) == 51.5
    assert _quantity(db_session, stocked["beer"]) == 7


def test_add_items_after_ready_goes_back_to_pending(db_session, settings, stocked, floor, waiter_user) -> None:
    order = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings).order
    line_id = order.items[0]["id"]
    assert orders.update_item_status(db_session, order.id, line_id, "ready").order.status == READY

    outcome = orders.add_items(db_session, order.id, [_line(stocked["beer"], "cervejas", 1)], settings)
    assert len(outcome.order.items) == 2
    assert outcome.order.status == PENDING


def test_discount_is_kept_when_items_are_added(db_session, settings, stocked, floor, waiter_user) -> None:
    payload = _table_order(stocked, floor, discount={"type": "fixed", "value": 5})
    order = orders.create_order(db_session, payload, waiter_user, settings).order
    order = orders.add_items(db_session, order.id, [_line(stocked["dish"], "almoco")], settings).order
    assert float(order.discount) == 5.0
    assert float(order.total) == float(order.subtotal) - 5.0


def test_item_status_drives_order_status(db_session, settings, stocked, floor, waiter_user) -> None:
    payload = _table_order(stocked, floor, _line(stocked["beer"], "cervejas"), _line(stocked["dish"], "almoco"))
    order = orders.create_order(db_session, payload, waiter_user, settings).order
    first, second = (i["id"] for i in order.items)

    assert orders.update_item_status(db_session, order.id, first, "delivered").order.status == PENDING
    outcome = orders.update_item_status(db_session, order.id, second, "ready")
    assert outcome.order.status == READY
    assert any(e["type"] == "order.status" for e in outcome.events)
    assert orders.update_item_status(db_session, order.id, second, "delivered").order.status == DELIVERED
    assert _table(db_session, floor)["status"] == "occupied"


def test_advance_item(db_session, settings, stocked, floor, waiter_user) -> None:
    order = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings).order
    line_id = order.items[0]["id"]
    assert orders.advance_item(db_session, order.id, line_id).order.items[0]["status"] == "preparing"
    assert orders.advance_item(db_session, order.id, line_id).order.items[0]["status"] == "ready"


def test_update_quantity_adjusts_stock(db_session, settings, stocked, floor, waiter_user) -> None:
    order = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings).order
    line_id = order.items[0]["id"]

    orders.update_item_quantity(db_session, order.id, line_id, 5, settings)
    assert _quantity(db_session, stocked["beer"]) == 5
    outcome = orders.update_item_quantity(db_session, order.id, line_id, 1, settings)
    assert _quantity(db_session, stocked["beer"]) == 9
    assert float(outcome.order.total) == 15.0


def test_close_order_frees_table(db_session, settings, stocked, floor, waiter_user) -> None:
    order = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings).order
    outcome = orders.close_order(db_session, order.id, "Dinheiro")

    assert outcome.order.status == PAID
    assert outcome.order.payment_method == "cash"
    assert float(outcome.order.payment_amount) == 30.0
    assert outcome.order.closed_at is not None
    entry = _table(db_session, floor)
    assert entry["status"] == "available"
    assert entry["active_order_id"] is None


def test_close_requires_payment_method(db_session, settings, stocked, floor, waiter_user) -> None:
    order = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings).order
    with pytest.raises(ValidationError):
        orders.close_order(db_session, order.id, None)
    with pytest.raises(ValidationError):
        orders.close_order(db_session, order.id, "cheque")
    db_session.expire_all()
    assert db_session.get(Order, order.id).status == PENDING


def test_terminal_orders_are_frozen(db_session, settings, stocked, floor, waiter_user) -> None:
    order = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings).order
    orders.cancel_order(db_session, order.id)
    line_id = order.items[0]["id"]

    with pytest.raises(ConflictError):
        orders.add_items(db_session, order.id, [_line(stocked["beer"], "cervejas")], settings)
    with pytest.raises(ConflictError):
        orders.update_item_status(db_session, order.id, line_id, "delivered")
    with pytest.raises(ConflictError):
        orders.close_order(db_session, order.id, "pix")
    db_session.expire_all()
    assert db_session.get(Order, order.id).status == CANCELLED
    assert _table(db_session, floor)["status"] == "available"


def test_set_status_only_transitional(db_session, settings, stocked, floor, waiter_user) -> None:
    order = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings).order
    with pytest.raises(ValidationError):
        orders.set_order_status(db_session, order.id, PAID)
    assert orders.set_order_status(db_session, order.id, DELIVERED).order.status == DELIVERED


def test_request_bill_and_close(db_session, settings, stocked, floor, waiter_user) -> None:
    order = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings).order
    orders.request_bill(db_session, order.id)
    assert _table(db_session, floor)["status"] == "billing"
    orders.close_order(db_session, order.id, "pix")
    assert _table(db_session, floor)["status"] == "available"


def test_delete_order_frees_table(db_session, settings, stocked, floor, waiter_user) -> None:
    order = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings).order
    orders.delete_order(db_session, order.id)
    assert db_session.query(Order).count() == 0
    assert _table(db_session, floor)["active_order_id"] is None


def test_table_reusable_after_payment(db_session, settings, stocked, floor, waiter_user) -> None:
    order = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings).order
    orders.close_order(db_session, order.id, "card")
    again = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings).order
    assert _table(db_session, floor)["active_order_id"] == again.id


def test_list_orders_filters(db_session, settings, stocked, floor, waiter_user) -> None:
    first = orders.create_order(db_session, _table_order(stocked, floor), waiter_user, settings).order
    payload = {"order_type": "counter", "items": [_line(stocked["dish"], "almoco")]}
    second = orders.create_order(db_session, payload, waiter_user, settings).order
    orders.close_order(db_session, second.id, "pix")

    assert {o.id for o in orders.list_orders(db_session, "waiter")} == {first.id, second.id}
    assert [o.id for o in orders.list_orders(db_session, "chef")] == [first.id]
    assert [o.id for o in orders.list_orders(db_session, "waiter", status=PAID)] == [second.id]
    assert [o.id for o in orders.list_orders(db_session, "waiter", search="feijoada")] == [second.id]


def test_search_reaches_past_the_newest_page(db_session, settings, stocked, waiter_user) -> None:
    dish = {"order_type": "counter", "items": [_line(stocked["dish"], "almoco")]}
    beer = {"order_type": "counter", "items": [_line(stocked["beer"], "cervejas")]}
    old = orders.create_order(db_session, dish, waiter_user, settings).order
    newer = [orders.create_order(db_session, beer, waiter_user, settings).order for _ in range(3)]
    old.created_at = min(o.created_at for o in newer) - timedelta(hours=1)
    db_session.commit()

    assert [o.id for o in orders.list_orders(db_session, "waiter", search="feijoada", limit=2)] == [old.id]
    assert len(orders.list_orders(db_session, "waiter", search="cerveja", limit=2)) == 2


def test_date_to_alone_is_an_upper_bound(db_session, settings, stocked, waiter_user) -> None:
    payload = {"order_type": "counter", "items": [_line(stocked["dish"], "almoco")]}
    order = orders.create_order(db_session, payload, waiter_user, settings).order
    today = local_today()

    assert [o.id for o in orders.list_orders(db_session, "waiter", date_to=today.isoformat())] == [order.id]
    yesterday = (today - timedelta(days=1)).isoformat()
    assert orders.list_orders(db_session, "waiter", date_to=yesterday) == []
    with pytest.raises(ValidationError):
        orders.list_orders(db_session, "waiter", date_to="amanha")


def test_kitchen_orders_split_by_role(db_session, settings, stocked, floor, waiter_user) -> None:
    payload = _table_order(stocked, floor, _line(stocked["beer"], "cervejas"), _line(stocked["dish"], "almoco"))
    orders.create_order(db_session, payload, waiter_user, settings)

    chef_view = orders.kitchen_orders(db_session, "chef")
    assert [i["name"] for i in chef_view[0]["food"]] == ["Feijoada"]
    assert chef_view[0]["drinks"] == []
    bar_view = orders.kitchen_orders(db_session, "barman")
    assert [i["name"] for i in bar_view[0]["drinks"]] == ["Cerveja Original 600ml"]
