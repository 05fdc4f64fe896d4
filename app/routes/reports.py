from fastapi import APIRouter, Depends, Query
from typing import Optional
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.services import reports as report_service
from app.services.permissions import require_permission

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/sales")
def sales(
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD, local day; defaults to today"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD, local day; defaults to date_from"),
    db: Session = Depends(get_db),
    current_user=Depends(require_permission("reports", "view")),
):
    """
    Sales summary over paid or delivered orders of the period: totals,
    average ticket, top items, category and payment-method shares, per
    waiter figures and a daily series.
    """
    return report_service.sales_report(db, date_from, date_to)
