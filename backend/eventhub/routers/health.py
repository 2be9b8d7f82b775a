from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventhub.db.session import get_db
from eventhub.schemas.common import ok, fail, meta_now

router = APIRouter(prefix="/api/health", tags=["health"])

@router.get("")
def healthcheck():
    return ok(data={"status": "ok"}, meta=meta_now())


@router.get("/db")
def db_healthcheck(db: Session = Depends(get_db)):
    """The feed and sync both need the store; report whether it answers."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return fail("DB_UNAVAILABLE", str(exc), status_code=503)
    return ok(data={"status": "ok", "database": "reachable"}, meta=meta_now())
