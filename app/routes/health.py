from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.context import get_context
from app.db.session import get_db

router = APIRouter(tags=["Health"])


@router.get("/health")
def health(db: Session = Depends(get_db), ctx=Depends(get_context)):
    # a failing query surfaces as 503 through the database error handler
    db.execute(text("SELECT 1"))
    return {
        "status": "ok",
        "env": ctx.settings.APP_ENV,
        "push": ctx.notifier.enabled,
        "db_queries_total": ctx.db.total_queries,
    }
