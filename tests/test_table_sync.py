from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFound, ValidationError
from app.services import table_sync, tables
from app.services.order_status import CANCELLED, DELIVERED, PAID, PENDING, READY


def _table(db: Session, floor, table_id: str) -> dict:
    db.expire_all()
    return table_sync.get_table(db, floor.id, table_id)


@pytest.mark.parametrize("status", [PENDING, READY, DELIVERED])
def test_open_statuses_occupy(db_session: Session, floor, status) -> None:
    table_sync.sync_table(db_session, floor.id, "t1", "order-1", status)
    db_session.commit()
    entry = _table(db_session, floor, "t1")
    assert entry["status"] == "occupied"
    assert entry["active_order_id"] == "order-1"


@pytest.mark.parametrize("status", [PAID, CANCELLED])
def test_terminal_statuses_free(db_session: Session, floor, status) -> None:
    table_sync.sync_table(db_session, floor.id, "t1", "order-1", PENDING)
    table_sync.sync_table(db_session, floor.id, "t1", "order-1", status)
    db_session.commit()
    entry = _table(db_session, floor, "t1")
    assert entry["status"] == "available"
    assert entry["active_order_id"] is None


def test_other_tables_untouched(db_session: Session, floor) -> None:
    table_sync.sync_table(db_session, floor.id, "t1", "order-1", PENDING)
    db_session.commit()
    assert _table(db_session, floor, "t2")["status"] == "available"


def test_stale_terminal_event_keeps_new_order(db_session: Session, floor) -> None:
    table_sync.sync_table(db_session, floor.id, "t1", "order-2", PENDING)
    table_sync.sync_table(db_session, floor.id, "t1", "order-1", CANCELLED)
    db_session.commit()
    assert _table(db_session, floor, "t1")["active_order_id"] == "order-2"


def test_billing_survives_item_progress(db_session: Session, floor) -> None:
    table_sync.sync_table(db_session, floor.id, "t1", "order-1", PENDING)
    table_sync.mark_billing(db_session, floor.id, "t1", "order-1")
    table_sync.sync_table(db_session, floor.id, "t1", "order-1", DELIVERED)
    db_session.commit()
    assert _table(db_session, floor, "t1")["status"] == "billing"


def test_version_bumps_on_rewrite(db_session: Session, floor) -> None:
    before = floor.version
    table_sync.sync_table(db_session, floor.id, "t1", "order-1", PENDING)
    db_session.commit()
    db_session.refresh(floor)
    assert floor.version == before + 1


def test_missing_table_or_map(db_session: Session, floor) -> None:
    with pytest.raises(NotFound):
        table_sync.sync_table(db_session, floor.id, "t9", "order-1", PENDING)
    with pytest.raises(NotFound):
        table_sync.sync_table(db_session, "no-map", "t1", "order-1", PENDING)


def test_manual_status_refused_while_occupied(db_session: Session, floor) -> None:
    table_sync.sync_table(db_session, floor.id, "t1", "order-1", PENDING)
    db_session.commit()
    with pytest.raises(ConflictError):
        table_sync.set_manual_status(db_session, floor.id, "t1", "maintenance")
    with pytest.raises(ValidationError):
        table_sync.set_manual_status(db_session, floor.id, "t2", "occupied")
    assert table_sync.set_manual_status(db_session, floor.id, "t2", "reserved")["status"] == "reserved"


def test_add_and_remove_tables(db_session: Session, floor) -> None:
    entry = tables.add_table(db_session, floor.id, {"number": 3, "seats": 6})
    assert entry["name"] == "Mesa 3"
    assert entry["status"] == "available"
    with pytest.raises(ConflictError):
        tables.add_table(db_session, floor.id, {"number": 3})
    tables.remove_table(db_session, floor.id, entry["id"])
    db_session.expire_all()
    assert [t["number"] for t in table_sync.get_map(db_session, floor.id).tables] == [1, 2]
