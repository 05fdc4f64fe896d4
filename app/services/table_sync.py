"""Keep a table's occupancy in step with the order seated at it.

Tables are embedded in their map as one JSON array, so every change reads
the whole array, replaces the matching entry and writes the array back.
The map's version token turns a concurrent rewrite into a conflict instead
of a silent overwrite. Nothing here commits.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFound, ValidationError
from app.core.timezone_utils import utcnow
from app.models.table_map import TableMap
from app.services.order_status import is_terminal

logger = logging.getLogger("app.tables")

AVAILABLE = "available"
OCCUPIED = "occupied"
ORDERING = "ordering"
MAINTENANCE = "maintenance"
RESERVED = "reserved"
BILLING = "billing"

TABLE_STATUSES = (AVAILABLE, OCCUPIED, ORDERING, MAINTENANCE, RESERVED, BILLING)
# statuses a person may set by hand; occupied/billing follow the orders
MANUAL_STATUSES = (AVAILABLE, ORDERING, MAINTENANCE, RESERVED)


def table_status_for(order_status: str) -> str:
    return AVAILABLE if is_terminal(order_status) else OCCUPIED


def get_map(db: Session, map_id: str) -> TableMap:
    table_map = db.get(TableMap, map_id) if map_id else None
    if not table_map:
        raise NotFound(f"Mapa de mesas não encontrado: {map_id}")
    return table_map


def locate_table(table_map: TableMap, table_id: str) -> Tuple[List[dict], int]:
    """Return a copy of the map's tables and the index of ``table_id``."""
    tables = [dict(t) for t in (table_map.tables or [])]
    for idx, entry in enumerate(tables):
        if str(entry.get("id")) == str(table_id):
            return tables, idx
    raise NotFound(f"Mesa não encontrada: {table_id}")


def write_tables(table_map: TableMap, tables: List[dict]) -> None:
    # assign a fresh list so the JSON column is flagged dirty
    table_map.tables = list(tables)
    table_map.updated_at = utcnow()


def get_table(db: Session, map_id: str, table_id: str) -> dict:
    tables, idx = locate_table(get_map(db, map_id), table_id)
    return tables[idx]


def sync_table(db: Session, map_id: str, table_id: str, order_id: str, order_status: str) -> Optional[dict]:
    """Rewrite the table entry for an order status change.

    Open statuses mark the table occupied by ``order_id``; Pago/Cancelado
    free it. A terminal status of an order the table no longer holds is
    ignored so a newer order keeps its table.
    """
    if not map_id or not table_id:
        return None
    table_map = get_map(db, map_id)
    tables, idx = locate_table(table_map, table_id)
    entry = tables[idx]
    active = entry.get("active_order_id")

    if is_terminal(order_status):
        if active not in (None, order_id):
            logger.info("Table %s holds order %s; ignoring %s for order %s", table_id, active, order_status, order_id)
            return entry
        entry["status"] = AVAILABLE
        entry["active_order_id"] = None
    else:
        # a bill already requested for this order stays requested
        keep_billing = entry.get("status") == BILLING and active == order_id
        entry["status"] = BILLING if keep_billing else OCCUPIED
        entry["active_order_id"] = order_id

    tables[idx] = entry
    write_tables(table_map, tables)
    db.flush()
    logger.info("Table %s/%s -> %s (order %s)", map_id, table_id, entry["status"], entry["active_order_id"])
    return entry


def mark_billing(db: Session, map_id: str, table_id: str, order_id: str) -> dict:
    table_map = get_map(db, map_id)
    tables, idx = locate_table(table_map, table_id)
    entry = tables[idx]
    if entry.get("active_order_id") != order_id:
        raise ConflictError("A mesa não está associada a este pedido")
    entry["status"] = BILLING
    tables[idx] = entry
    write_tables(table_map, tables)
    db.flush()
    return entry


def set_manual_status(db: Session, map_id: str, table_id: str, status: str) -> dict:
    if status not in MANUAL_STATUSES:
        raise ValidationError(f"Status de mesa inválido para alteração manual: {status}")
    table_map = get_map(db, map_id)
    tables, idx = locate_table(table_map, table_id)
    entry = tables[idx]
    if entry.get("active_order_id"):
        raise ConflictError("Mesa possui pedido ativo; feche ou cancele o pedido primeiro")
    entry["status"] = status
    tables[idx] = entry
    write_tables(table_map, tables)
    db.commit()
    return entry
