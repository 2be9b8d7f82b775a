# eventhub/routers/sources.py
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from eventhub.core.errors import SourceNotFoundError, SyncInProgressError
from eventhub.core.security import get_current_user
from eventhub.db.session import get_db
from eventhub.models.event_source import EventSource
from eventhub.models.user import User
from eventhub.schemas.common import ok, fail, meta_now
from eventhub.schemas.sources import SourceCreate, SourceOut, SourceUpdate
from eventhub.services.adapters import detect_source_kind
from eventhub.services.sync import summarize, sync_all_sources, sync_source

router = APIRouter(prefix="/api/sources", tags=["sources"])


def _out(row: EventSource) -> dict:
    return SourceOut.model_validate(row).model_dump(mode="json")


def _not_found(source_id: int):
    return fail(
        code="NOT_FOUND",
        message=f"Source {source_id} not found",
        status_code=status.HTTP_404_NOT_FOUND,
        meta=meta_now(source_id=source_id),
    )


def _forbidden(source_id: int):
    return fail(
        code="FORBIDDEN",
        message="Only the owner of this source may change it",
        status_code=status.HTTP_403_FORBIDDEN,
        meta=meta_now(source_id=source_id),
    )


def _may_modify(row: EventSource, user: User) -> bool:
    return row.owner_id is None or row.owner_id == user.id


@router.get("")
def list_sources(db: Session = Depends(get_db)):
    rows = db.execute(select(EventSource).order_by(EventSource.name.asc(), EventSource.id.asc())).scalars().all()
    return ok(data=[_out(r) for r in rows], meta=meta_now())


@router.post("")
def create_source(body: SourceCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    kind = body.source_kind or detect_source_kind(body.url)
    row = EventSource(
        name=body.name.strip(),
        url=body.url,
        source_kind=kind.value,
        is_active=body.is_active,
        owner_id=user.id or None,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return ok(data=_out(row), meta=meta_now(source_id=row.id), status_code=status.HTTP_201_CREATED)


@router.post("/sync")
def sync_all(db: Session = Depends(get_db)):
    """Sync every active source now. Failures are reported per source, never as a request error."""
    results = sync_all_sources(db)
    return ok(
        data={
            "results": [r.to_dict() for r in results],
            "summary": summarize(results),
        },
        meta=meta_now(),
    )


@router.get("/{source_id}")
def get_source(source_id: int, db: Session = Depends(get_db)):
    row = db.get(EventSource, source_id)
    if not row:
        return _not_found(source_id)
    return ok(data=_out(row), meta=meta_now(source_id=source_id))


@router.patch("/{source_id}")
def update_source(
    source_id: int,
    body: SourceUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    row = db.get(EventSource, source_id)
    if not row:
        return _not_found(source_id)
    if not _may_modify(row, user):
        return _forbidden(source_id)

    for name, value in body.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(row, name, value.strip() if isinstance(value, str) else value)
    db.commit()
    db.refresh(row)
    return ok(data=_out(row), meta=meta_now(source_id=source_id))


@router.delete("/{source_id}")
def delete_source(source_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Delete a source together with the events imported from it."""
    row = db.get(EventSource, source_id)
    if not row:
        return _not_found(source_id)
    if not _may_modify(row, user):
        return _forbidden(source_id)
    db.delete(row)
    db.commit()
    return ok(data={"id": source_id, "deleted": True}, meta=meta_now(source_id=source_id))


@router.post("/{source_id}/sync")
def sync_one(source_id: int, db: Session = Depends(get_db)):
    try:
        result = sync_source(db, source_id)
    except SourceNotFoundError:
        return _not_found(source_id)
    except SyncInProgressError as exc:
        return fail(
            code="SYNC_IN_PROGRESS",
            message=str(exc),
            status_code=status.HTTP_409_CONFLICT,
            meta=meta_now(source_id=source_id),
        )

    if result.error:
        return fail(
            code="UPSTREAM_FAILED",
            message=result.error,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=result.counters(),
            meta=meta_now(source_id=source_id),
        )
    return ok(data=result.counters(), meta=meta_now(source_id=source_id))
