from fastapi import APIRouter, BackgroundTasks, Depends, Query
from typing import List, Optional
from sqlalchemy.orm import Session

from app.core.context import get_context
from app.db.session import get_db
from app.schemas.order import (
    AddItemsRequest,
    CloseOrderRequest,
    ItemQuantityUpdate,
    ItemStatusUpdate,
    OrderActionResult,
    OrderCreate,
    OrderRead,
    OrderStatusUpdate,
)
from app.services import orders as order_service
from app.services.auth import require_roles
from app.services.notifications import dispatch_events
from app.services.permissions import CLOSE_ORDER_ROLES, require_permission

router = APIRouter(prefix="/orders", tags=["Orders"])


def _respond(outcome, background_tasks: BackgroundTasks, ctx) -> dict:
    # events go out only after the transaction committed
    if outcome.events:
        background_tasks.add_task(dispatch_events, ctx, outcome.events)
    return {"order": order_service.serialize_order(outcome.order), "warnings": outcome.warnings}


@router.get("", response_model=List[OrderRead])
@router.get("/", response_model=List[OrderRead])
def list_orders(
    status: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD, local day"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD, local day"),
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user=Depends(require_permission("orders", "view")),
):
    rows = order_service.list_orders(db, current_user.role, status=status, search=search,
                                     date_from=date_from, date_to=date_to, limit=limit)
    return [order_service.serialize_order(row) for row in rows]


@router.get("/kitchen")
def kitchen_view(db: Session = Depends(get_db), current_user=Depends(require_permission("orders", "view"))):
    """Pending orders split into food and drinks; chef sees food, barman sees drinks."""
    return order_service.kitchen_orders(db, current_user.role)


@router.get("/{order_id}", response_model=OrderRead)
def get_order(order_id: str, db: Session = Depends(get_db),
              current_user=Depends(require_permission("orders", "view"))):
    return order_service.serialize_order(order_service.get_order(db, order_id))


@router.post("", response_model=OrderActionResult, status_code=201)
@router.post("/", response_model=OrderActionResult, status_code=201)
def create_order(payload: OrderCreate, background_tasks: BackgroundTasks, db: Session = Depends(get_db),
                 ctx=Depends(get_context), current_user=Depends(require_permission("orders", "create"))):
    outcome = order_service.create_order(db, payload.model_dump(), current_user, ctx.settings)
    return _respond(outcome, background_tasks, ctx)


@router.post("/{order_id}/items", response_model=OrderActionResult)
def add_items(order_id: str, body: AddItemsRequest, background_tasks: BackgroundTasks,
              db: Session = Depends(get_db), ctx=Depends(get_context),
              current_user=Depends(require_permission("orders", "update"))):
    items = [item.model_dump() for item in body.items]
    outcome = order_service.add_items(db, order_id, items, ctx.settings)
    return _respond(outcome, background_tasks, ctx)


@router.patch("/{order_id}/items/{line_id}/status", response_model=OrderActionResult)
def update_item_status(order_id: str, line_id: str, body: ItemStatusUpdate, background_tasks: BackgroundTasks,
                       db: Session = Depends(get_db), ctx=Depends(get_context),
                       current_user=Depends(require_permission("orders", "update"))):
    outcome = order_service.update_item_status(db, order_id, line_id, body.status)
    return _respond(outcome, background_tasks, ctx)


@router.post("/{order_id}/items/{line_id}/advance", response_model=OrderActionResult)
def advance_item(order_id: str, line_id: str, background_tasks: BackgroundTasks,
                 db: Session = Depends(get_db), ctx=Depends(get_context),
                 current_user=Depends(require_permission("orders", "update"))):
    outcome = order_service.advance_item(db, order_id, line_id)
    return _respond(outcome, background_tasks, ctx)


@router.patch("/{order_id}/items/{line_id}/quantity", response_model=OrderActionResult)
def update_item_quantity(order_id: str, line_id: str, body: ItemQuantityUpdate, background_tasks: BackgroundTasks,
                         db: Session = Depends(get_db), ctx=Depends(get_context),
                         current_user=Depends(require_permission("orders", "update"))):
    outcome = order_service.update_item_quantity(db, order_id, line_id, body.quantity, ctx.settings)
    return _respond(outcome, background_tasks, ctx)


@router.patch("/{order_id}/status", response_model=OrderActionResult)
def set_status(order_id: str, body: OrderStatusUpdate, background_tasks: BackgroundTasks,
               db: Session = Depends(get_db), ctx=Depends(get_context),
               current_user=Depends(require_permission("orders", "update"))):
    outcome = order_service.set_order_status(db, order_id, body.status)
    return _respond(outcome, background_tasks, ctx)


@router.post("/{order_id}/close", response_model=OrderActionResult)
def close_order(order_id: str, body: CloseOrderRequest, background_tasks: BackgroundTasks,
                db: Session = Depends(get_db), ctx=Depends(get_context),
                current_user=Depends(require_roles(*CLOSE_ORDER_ROLES))):
    outcome = order_service.close_order(db, order_id, body.payment_method)
    return _respond(outcome, background_tasks, ctx)


@router.post("/{order_id}/cancel", response_model=OrderActionResult)
def cancel_order(order_id: str, background_tasks: BackgroundTasks,
                 db: Session = Depends(get_db), ctx=Depends(get_context),
                 current_user=Depends(require_permission("orders", "update"))):
    outcome = order_service.cancel_order(db, order_id)
    return _respond(outcome, background_tasks, ctx)


@router.post("/{order_id}/request-bill", response_model=OrderActionResult)
def request_bill(order_id: str, background_tasks: BackgroundTasks,
                 db: Session = Depends(get_db), ctx=Depends(get_context),
                 current_user=Depends(require_permission("orders", "update"))):
    outcome = order_service.request_bill(db, order_id)
    return _respond(outcome, background_tasks, ctx)


@router.delete("/{order_id}")
def delete_order(order_id: str, background_tasks: BackgroundTasks,
                 db: Session = Depends(get_db), ctx=Depends(get_context),
                 current_user=Depends(require_permission("orders", "delete"))):
    outcome = order_service.delete_order(db, order_id)
    background_tasks.add_task(dispatch_events, ctx, outcome.events)
    return {"ok": True}
