from fastapi import APIRouter, BackgroundTasks, Depends
from typing import List
from sqlalchemy.orm import Session

from app.core.context import get_context
from app.db.session import get_db
from app.schemas.table import (
    TableCreate,
    TableEntry,
    TableMapCreate,
    TableMapRead,
    TableMapUpdate,
    TableStatusUpdate,
    TableUpdate,
)
from app.services import table_sync, tables as table_service
from app.services.notifications import dispatch_events
from app.services.permissions import require_permission

router = APIRouter(prefix="/tables", tags=["Tables"])


@router.get("/maps", response_model=List[TableMapRead])
def list_maps(db: Session = Depends(get_db), current_user=Depends(require_permission("tables", "view"))):
    return table_service.list_maps(db)


@router.post("/maps", response_model=TableMapRead, status_code=201)
def create_map(body: TableMapCreate, db: Session = Depends(get_db),
               current_user=Depends(require_permission("tables", "create"))):
    return table_service.create_map(db, body.name, body.description, current_user.id)


@router.get("/maps/{map_id}", response_model=TableMapRead)
def get_map(map_id: str, db: Session = Depends(get_db), current_user=Depends(require_permission("tables", "view"))):
    return table_sync.get_map(db, map_id)


@router.patch("/maps/{map_id}", response_model=TableMapRead)
def update_map(map_id: str, body: TableMapUpdate, db: Session = Depends(get_db),
               current_user=Depends(require_permission("tables", "update"))):
    return table_service.update_map(db, map_id, body.name, body.description)


@router.delete("/maps/{map_id}")
def delete_map(map_id: str, db: Session = Depends(get_db),
               current_user=Depends(require_permission("tables", "delete"))):
    table_service.delete_map(db, map_id)
    return {"ok": True}


@router.post("/maps/{map_id}/tables", response_model=TableEntry, status_code=201)
def add_table(map_id: str, body: TableCreate, db: Session = Depends(get_db),
              current_user=Depends(require_permission("tables", "create"))):
    return table_service.add_table(db, map_id, body.model_dump())


@router.patch("/maps/{map_id}/tables/{table_id}", response_model=TableEntry)
def update_table(map_id: str, table_id: str, body: TableUpdate, db: Session = Depends(get_db),
                 current_user=Depends(require_permission("tables", "update"))):
    return table_service.update_table(db, map_id, table_id, body.model_dump(exclude_unset=True))


@router.put("/maps/{map_id}/tables/{table_id}/status", response_model=TableEntry)
def set_table_status(map_id: str, table_id: str, body: TableStatusUpdate, background_tasks: BackgroundTasks,
                     db: Session = Depends(get_db), ctx=Depends(get_context),
                     current_user=Depends(require_permission("tables", "update"))):
    entry = table_sync.set_manual_status(db, map_id, table_id, body.status)
    event = {"type": "table.status", "map_id": map_id, "table_id": table_id, "status": entry["status"]}
    background_tasks.add_task(dispatch_events, ctx, [event])
    return entry


@router.delete("/maps/{map_id}/tables/{table_id}")
def remove_table(map_id: str, table_id: str, db: Session = Depends(get_db),
                 current_user=Depends(require_permission("tables", "delete"))):
    table_service.remove_table(db, map_id, table_id)
    return {"ok": True}
