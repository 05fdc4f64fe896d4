from fastapi import APIRouter, BackgroundTasks, Depends
from typing import List
from sqlalchemy.orm import Session

from app.core.context import get_context
from app.db.session import get_db
from app.schemas.inventory import (
    AddStockRequest,
    CategoryCreate,
    CategoryRead,
    InventoryItemCreate,
    InventoryItemRead,
    InventoryItemUpdate,
)
from app.services import inventory as inventory_service
from app.services.notifications import dispatch_events
from app.services.permissions import require_permission

router = APIRouter(prefix="/inventory", tags=["Inventory"])


def _critical_event(item) -> dict:
    return {
        "type": "stock.critical",
        "item_id": item.id,
        "category": item.category,
        "name": item.name,
        "quantity": item.quantity,
        "unit": item.unit,
    }


def _stock_changed(item, background_tasks: BackgroundTasks, ctx):
    events = [{"type": "inventory.updated", "item_id": item.id, "category": item.category, "quantity": item.quantity}]
    if inventory_service.stock_level(item.quantity, item.min_quantity) == inventory_service.CRITICAL:
        events.append(_critical_event(item))
    background_tasks.add_task(dispatch_events, ctx, events)


@router.get("/categories", response_model=List[CategoryRead])
def list_categories(db: Session = Depends(get_db), current_user=Depends(require_permission("inventory", "view"))):
    return inventory_service.list_categories(db)


@router.post("/categories", response_model=CategoryRead, status_code=201)
def create_category(body: CategoryCreate, db: Session = Depends(get_db),
                    current_user=Depends(require_permission("inventory", "create"))):
    return inventory_service.create_category(db, body.name, body.id)


@router.delete("/categories/{category_id}")
def delete_category(category_id: str, db: Session = Depends(get_db),
                    current_user=Depends(require_permission("inventory", "delete"))):
    inventory_service.delete_category(db, category_id)
    return {"ok": True}


@router.get("/low-stock", response_model=List[InventoryItemRead])
def low_stock(db: Session = Depends(get_db), ctx=Depends(get_context),
              current_user=Depends(require_permission("inventory", "view"))):
    return inventory_service.low_stock_items(db, ctx.settings.CATEGORIES_WITHOUT_STOCK)


@router.get("/{category_id}/items", response_model=List[InventoryItemRead])
def list_items(category_id: str, db: Session = Depends(get_db),
               current_user=Depends(require_permission("inventory", "view"))):
    return inventory_service.list_items(db, category_id)


@router.get("/{category_id}/items/{item_id}", response_model=InventoryItemRead)
def get_item(category_id: str, item_id: str, db: Session = Depends(get_db),
             current_user=Depends(require_permission("inventory", "view"))):
    return inventory_service.get_item(db, category_id, item_id)


@router.post("/{category_id}/items", response_model=InventoryItemRead, status_code=201)
def create_item(category_id: str, body: InventoryItemCreate, db: Session = Depends(get_db),
                ctx=Depends(get_context), current_user=Depends(require_permission("inventory", "create"))):
    return inventory_service.create_item(db, category_id, body.model_dump(), ctx.settings.CATEGORIES_WITHOUT_STOCK)


@router.patch("/{category_id}/items/{item_id}", response_model=InventoryItemRead)
def update_item(category_id: str, item_id: str, body: InventoryItemUpdate, background_tasks: BackgroundTasks,
                db: Session = Depends(get_db), ctx=Depends(get_context),
                current_user=Depends(require_permission("inventory", "update"))):
    item = inventory_service.update_item(db, category_id, item_id, body.model_dump(exclude_unset=True),
                                         ctx.settings.CATEGORIES_WITHOUT_STOCK)
    _stock_changed(item, background_tasks, ctx)
    return item


@router.post("/{category_id}/items/{item_id}/add-stock", response_model=InventoryItemRead)
def add_stock(category_id: str, item_id: str, body: AddStockRequest, background_tasks: BackgroundTasks,
              db: Session = Depends(get_db), ctx=Depends(get_context),
              current_user=Depends(require_permission("inventory", "update"))):
    inventory_service.add_stock(db, category_id, item_id, body.quantity, ctx.settings.CATEGORIES_WITHOUT_STOCK)
    item = inventory_service.get_item(db, category_id, item_id)
    _stock_changed(item, background_tasks, ctx)
    return item


@router.delete("/{category_id}/items/{item_id}")
def delete_item(category_id: str, item_id: str, db: Session = Depends(get_db),
                current_user=Depends(require_permission("inventory", "delete"))):
    inventory_service.delete_item(db, category_id, item_id)
    return {"ok": True}
