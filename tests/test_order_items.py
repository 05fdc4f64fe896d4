from __future__ import annotations

import pytest

from app.services.order_items import canonical_items, find_item, normalize_items


def test_none_is_empty() -> None:
    assert normalize_items(None) == []


def test_keyed_object_is_ordered_numerically() -> None:
    raw = {
        "1": {"id": "b", "name": "Segundo"},
        "0": {"id": "a", "name": "Primeiro"},
    }
    items = normalize_items(raw)
    assert [i["id"] for i in items] == ["a", "b"]


def test_numeric_order_is_not_lexicographic() -> None:
    raw = {str(i): {"id": f"x{i}"} for i in range(12)}
    assert [i["id"] for i in normalize_items(raw)] == [f"x{i}" for i in range(12)]


def test_non_index_keys_fall_back_to_values() -> None:
    raw = {"abc": {"id": "a"}, "def": {"id": "b"}}
    assert sorted(i["id"] for i in normalize_items(raw)) == ["a", "b"]


def test_defaults_are_backfilled() -> None:
    item = normalize_items([{}])[0]
    assert item["id"]
    assert item["item_id"] == item["id"]
    assert item["quantity"] == 1
    assert item["price"] == 0.0
    assert item["unit"] == "Un"
    assert item["status"] == "pending"
    assert item["name"] == "Sem nome"
    assert item["is_vegan"] is False
    assert item["custom_dietary_restrictions"] == []


def test_legacy_camel_case_keys() -> None:
    item = normalize_items([{"id": "1", "itemId": "inv-9", "isVegan": True,
                             "customDietaryRestrictions": ["sem cebola"]}])[0]
    assert item["item_id"] == "inv-9"
    assert item["is_vegan"] is True
    assert item["custom_dietary_restrictions"] == ["sem cebola"]


def test_idempotent() -> None:
    raw = {"0": {"name": "Cerveja", "quantity": "2", "price": "15.5"}, "1": {"status": "ready"}}
    once = normalize_items(raw)
    assert normalize_items(once) == once


def test_legacy_quantities_are_whole_and_positive() -> None:
    items = normalize_items([{"quantity": "2.5"}, {"quantity": 2.9}, {"quantity": 0}, {"quantity": "-3"},
                             {"quantity": "muitos"}, {"quantity": "4"}])
    assert [i["quantity"] for i in items] == [3, 3, 1, 1, 1, 4]


def test_negative_legacy_price_reads_as_zero() -> None:
    assert normalize_items([{"price": -1}])[0]["price"] == 0.0


@pytest.mark.parametrize("raw, expected", [
    ("ready", "ready"),
    ("READY", "ready"),
    ("pendente", "pending"),
    ("Entregue", "delivered"),
    ("cancelled", "finished"),
    ("algo-estranho", "pending"),
    (None, "pending"),
])
def test_item_status_is_always_known(raw, expected) -> None:
    assert normalize_items([{"status": raw}])[0]["status"] == expected


def test_canonical_items_accepts_legacy_lines() -> None:
    items = canonical_items([{"id": "a", "quantity": 0, "price": 10, "status": "cancelled"},
                             {"id": "b", "quantity": 1, "price": 10, "status": "pending"}])
    assert [(i["quantity"], i["status"]) for i in items] == [(1, "finished"), (1, "pending")]


def test_canonical_items_keeps_normalized_shape() -> None:
    items = canonical_items({"0": {"id": "1", "name": "Cerveja", "quantity": 2, "price": 15}})
    assert items == normalize_items(items)


def test_find_item_by_line_or_inventory_id() -> None:
    items = normalize_items([{"id": "line-1", "item_id": "inv-1"}])
    assert find_item(items, "line-1") is items[0]
    assert find_item(items, "inv-1") is items[0]
    assert find_item(items, "other") is None
