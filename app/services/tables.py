import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import ConflictError, ValidationError
from app.models.table_map import TableMap
from app.services.table_sync import AVAILABLE, get_map, locate_table, write_tables

LAYOUT_FIELDS = ("name", "seats", "shape", "x", "y", "width", "height")
DEFAULT_LAYOUT = {"seats": 4, "shape": "square", "x": 0, "y": 0, "width": 80, "height": 80}


def list_maps(db: Session) -> List[TableMap]:
    return db.query(TableMap).order_by(TableMap.created_at).all()


def create_map(db: Session, name: str, description: Optional[str] = None, user_id: Optional[int] = None) -> TableMap:
    if not (name or "").strip():
        raise ValidationError("Nome do mapa é obrigatório")
    table_map = TableMap(name=name.strip(), description=description, user_id=user_id, tables=[])
    db.add(table_map)
    db.commit()
    db.refresh(table_map)
    return table_map


def update_map(db: Session, map_id: str, name: Optional[str] = None, description: Optional[str] = None) -> TableMap:
    table_map = get_map(db, map_id)
    if name is not None:
        if not name.strip():
            raise ValidationError("Nome do mapa é obrigatório")
        table_map.name = name.strip()
    if description is not None:
        table_map.description = description
    db.commit()
    db.refresh(table_map)
    return table_map


def delete_map(db: Session, map_id: str) -> None:
    table_map = get_map(db, map_id)
    if any(t.get("active_order_id") for t in table_map.tables or []):
        raise ConflictError("Mapa possui mesas com pedidos ativos")
    db.delete(table_map)
    db.commit()


def add_table(db: Session, map_id: str, data: dict) -> dict:
    table_map = get_map(db, map_id)
    number = data.get("number")
    if number is None or int(number) < 1:
        raise ValidationError("Número da mesa é obrigatório")
    tables = [dict(t) for t in table_map.tables or []]
    if any(int(t.get("number") or 0) == int(number) for t in tables):
        raise ConflictError(f"Já existe uma mesa {number} neste mapa")

    entry = dict(DEFAULT_LAYOUT)
    entry.update({k: data[k] for k in LAYOUT_FIELDS if data.get(k) is not None})
    entry.update({
        "id": str(uuid.uuid4()),
        "number": int(number),
        "name": data.get("name") or f"Mesa {number}",
        "status": AVAILABLE,
        "active_order_id": None,
        "map_id": map_id,
    })
    tables.append(entry)
    write_tables(table_map, tables)
    db.commit()
    return entry


def update_table(db: Session, map_id: str, table_id: str, data: dict) -> dict:
    """Change layout fields; status is handled by the order flow or set by hand."""
    table_map = get_map(db, map_id)
    tables, idx = locate_table(table_map, table_id)
    entry = tables[idx]
    if data.get("number") is not None and int(data["number"]) != int(entry.get("number") or 0):
        if any(int(t.get("number") or 0) == int(data["number"]) for t in tables):
            raise ConflictError(f"Já existe uma mesa {data['number']} neste mapa")
        entry["number"] = int(data["number"])
    for field in LAYOUT_FIELDS:
        if data.get(field) is not None:
            entry[field] = data[field]
    tables[idx] = entry
    write_tables(table_map, tables)
    db.commit()
    return entry


def remove_table(db: Session, map_id: str, table_id: str) -> None:
    table_map = get_map(db, map_id)
    tables, idx = locate_table(table_map, table_id)
    if tables[idx].get("active_order_id"):
        raise ConflictError("Mesa possui pedido ativo")
    del tables[idx]
    write_tables(table_map, tables)
    db.commit()
