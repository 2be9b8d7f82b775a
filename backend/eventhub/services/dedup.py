"""
Dedup & merge: decide Insert / Update / Skip for each normalized draft and write it.

Identity is `(source_id, external_id)`, backed by the `uq_events_source_external`
constraint. external_id is `"<source_id>:<native id>"` when the upstream exposes a
stable id, otherwise `"<source_id>:hash:<digest>"` over title + start + source.
Two id-less events from one feed with identical title and start therefore collapse
into a single row; that is accepted.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import hashlib

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventhub.models.event import ApprovalStatus, Event, EventOrigin
from eventhub.models.event_source import EventSource
from eventhub.services.normalizer import EventDraft

logger = structlog.get_logger(__name__)

INSERT = "insert"
UPDATE = "update"
SKIP = "skip"

HASH_LEN = 32


@dataclass
class Resolution:
    action: str
    existing_id: Optional[int] = None
    changes: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None
    external_id: Optional[str] = None

    @property
    def is_noop(self) -> bool:
        return self.action == UPDATE and not self.changes


def content_hash(source_id: int, draft: EventDraft) -> str:
    start = draft.event_date.isoformat() if draft.event_date else ""
    if draft.event_time is not None:
        start = f"{start}T{draft.event_time.isoformat()}"
    raw = f"{draft.title}|{start}|{source_id}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:HASH_LEN]


def external_identity(source_id: int, draft: EventDraft) -> str:
    if draft.native_id:
        return f"{source_id}:{draft.native_id}"
    return f"{source_id}:hash:{content_hash(source_id, draft)}"


def _diff(row: Event, fields: Dict[str, Any]) -> Dict[str, Any]:
    changes: Dict[str, Any] = {}
    for name, value in fields.items():
        if getattr(row, name) != value:
            changes[name] = value
    return changes


def resolve(db: Session, source_id: int, draft: EventDraft) -> Resolution:
    if not draft.is_valid:
        return Resolution(SKIP, reason=draft.invalid_reason)

    ext_id = external_identity(source_id, draft)
    row = db.execute(
        select(Event).where(Event.source_id == source_id, Event.external_id == ext_id)
    ).scalar_one_or_none()
    if row is None:
        return Resolution(INSERT, external_id=ext_id)
    return Resolution(UPDATE, existing_id=row.id, changes=_diff(row, draft.imported_fields()), external_id=ext_id)


def apply(db: Session, source: EventSource, draft: EventDraft, resolution: Resolution) -> Resolution:
    """
    Write one resolution inside a savepoint and return what actually happened.

    A concurrent insert of the same identity surfaces as IntegrityError and comes
    back as a skip; the surrounding transaction stays usable.
    """
    if resolution.action == SKIP or resolution.is_noop:
        return resolution

    if resolution.action == INSERT:
        row = Event(
            source_id=source.id,
            external_id=resolution.external_id or external_identity(source.id, draft),
            origin=EventOrigin.IMPORTED.value,
            approval_status=ApprovalStatus.PENDING.value,
            current_attendees=0,
            **draft.imported_fields(),
        )
        try:
            with db.begin_nested():
                db.add(row)
                db.flush()
        except IntegrityError as exc:
            logger.warning(
                "dedup.insert_conflict",
                source_id=source.id,
                external_id=row.external_id,
                error=str(exc.orig),
            )
            return Resolution(SKIP, reason=f"duplicate identity {row.external_id}", external_id=row.external_id)
        resolution.existing_id = row.id
        return resolution

    row = db.get(Event, resolution.existing_id)
    if row is None:
        return Resolution(SKIP, reason=f"event {resolution.existing_id} vanished before update")
    with db.begin_nested():
        for name, value in resolution.changes.items():
            setattr(row, name, value)
        db.flush()
    return resolution


__all__ = [
    "Resolution",
    "INSERT",
    "UPDATE",
    "SKIP",
    "content_hash",
    "external_identity",
    "resolve",
    "apply",
]
