"""
Sync orchestrator.

One run per source walks `idle -> fetching -> parsing -> merging -> succeeded|failed`.
A FetchError fails the run; anything wrong with a single item only bumps `skipped`.
Whatever the outcome, the EventSource row gets last_synced_at / last_sync_error and
its cumulative events_imported counter.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Set
import threading
import time

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventhub.config import get_settings
from eventhub.core.errors import SourceNotFoundError, SyncInProgressError
from eventhub.db import session as db_session
from eventhub.models.event_source import EventSource, SourceKind
from eventhub.observability.metrics import record_sync
from eventhub.services import dedup
from eventhub.services.adapters import get_adapter
from eventhub.services.adapters.base import MAX_ITEM_ERRORS
from eventhub.services.normalizer import normalize

logger = structlog.get_logger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    MERGING = "merging"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class SyncResult:
    source_id: int
    source_name: Optional[str] = None
    kind: Optional[str] = None
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    error: Optional[str] = None
    state: SyncState = SyncState.IDLE
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.state == SyncState.SUCCEEDED

    def note(self, message: str) -> None:
        if len(self.errors) < MAX_ITEM_ERRORS:
            self.errors.append(message)

    def counters(self) -> Dict[str, Any]:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "source_name": self.source_name,
            "kind": self.kind,
            **self.counters(),
            "error": self.error,
            "state": self.state.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


# ---------------------------------------------------------------------------
# In-flight guard
# ---------------------------------------------------------------------------

_inflight_lock = threading.Lock()
_inflight: Set[int] = set()


@contextmanager
def _claim(source_id: int) -> Iterator[None]:
    with _inflight_lock:
        if source_id in _inflight:
            raise SyncInProgressError(source_id)
        _inflight.add(source_id)
    try:
        yield
    finally:
        with _inflight_lock:
            _inflight.discard(source_id)


def is_syncing(source_id: int) -> bool:
    with _inflight_lock:
        return source_id in _inflight


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Single source
# ---------------------------------------------------------------------------

def sync_source(db: Session, source_id: int, *, client: Optional[httpx.Client] = None) -> SyncResult:
    """
    Run one sync for `source_id` and persist its outcome.

    Raises SourceNotFoundError for an unknown id and SyncInProgressError when a run
    for the same source is already in flight. Upstream failures do not raise; they
    come back in `result.error`.
    """
    source = db.get(EventSource, source_id)
    if source is None:
        raise SourceNotFoundError(source_id)

    with _claim(source.id):
        result = SyncResult(
            source_id=source.id,
            source_name=source.name,
            kind=source.source_kind,
            started_at=_utcnow(),
        )
        log = logger.bind(source_id=source.id, kind=source.source_kind)
        t0 = time.perf_counter()

        try:
            _run(db, source, result, client, log)
        except Exception as exc:  # noqa: BLE001 - a crashed run is still recorded on the source
            db.rollback()
            log.exception("sync.source.crashed")
            result.state = SyncState.FAILED
            result.error = f"internal error: {exc}"
            result.inserted = result.updated = result.unchanged = result.skipped = 0
            result.errors = []

        result.finished_at = _utcnow()
        source.last_synced_at = result.finished_at
        source.last_sync_error = result.error
        source.events_imported = (source.events_imported or 0) + result.inserted
        db.commit()

        record_sync(
            source.source_kind,
            result.state.value,
            {
                dedup.INSERT: result.inserted,
                dedup.UPDATE: result.updated,
                "unchanged": result.unchanged,
                dedup.SKIP: result.skipped,
            },
            time.perf_counter() - t0,
        )
        if result.succeeded:
            log.info("sync.source.completed", **{k: v for k, v in result.counters().items() if k != "errors"})
        else:
            log.warning("sync.source.failed", error=result.error)
        return result


def _run(db: Session, source: EventSource, result: SyncResult, client, log) -> None:
    result.state = SyncState.FETCHING
    adapter = get_adapter(SourceKind(source.source_kind), client=client)
    fetched = adapter.fetch(source.url)
    if fetched.error is not None:
        result.state = SyncState.FAILED
        result.error = str(fetched.error)
        return

    result.state = SyncState.PARSING
    result.skipped += fetched.skipped
    for msg in fetched.errors:
        result.note(msg)
    drafts = [normalize(item, source.source_kind) for item in fetched.items]

    result.state = SyncState.MERGING
    for draft in drafts:
        try:
            resolution = dedup.resolve(db, source.id, draft)
            applied = dedup.apply(db, source, draft, resolution)
        except SQLAlchemyError as exc:
            log.warning("sync.item.merge_failed", native_id=draft.native_id, error=str(exc))
            result.skipped += 1
            result.note(f"{draft.title or draft.native_id}: merge failed")
            continue

        if applied.action == dedup.INSERT:
            result.inserted += 1
        elif applied.action == dedup.UPDATE and applied.changes:
            result.updated += 1
        elif applied.action == dedup.UPDATE:
            result.unchanged += 1
        else:
            result.skipped += 1
            result.note(f"{draft.title or draft.native_id or 'item'}: {applied.reason}")

    result.state = SyncState.SUCCEEDED


# ---------------------------------------------------------------------------
# All sources
# ---------------------------------------------------------------------------

def _failed_result(source_id: int, message: str) -> SyncResult:
    now = _utcnow()
    return SyncResult(
        source_id=source_id,
        error=message,
        state=SyncState.FAILED,
        started_at=now,
        finished_at=now,
    )


def _sync_isolated(db: Session, source_id: int, client: Optional[httpx.Client]) -> SyncResult:
    """sync_source with every failure folded into the result, so one source never stops the rest."""
    try:
        return sync_source(db, source_id, client=client)
    except (SyncInProgressError, SourceNotFoundError) as exc:
        logger.info("sync.source.not_run", source_id=source_id, reason=str(exc))
        return _failed_result(source_id, str(exc))
    except Exception as exc:  # noqa: BLE001 - isolate per-source failures
        db.rollback()
        logger.exception("sync.source.crashed", source_id=source_id)
        return _failed_result(source_id, f"internal error: {exc}")


def _sync_in_own_session(source_id: int, client: Optional[httpx.Client]) -> SyncResult:
    with db_session.session_scope() as db:
        return _sync_isolated(db, source_id, client)


def active_source_ids(db: Session) -> List[int]:
    return list(
        db.execute(
            select(EventSource.id).where(EventSource.is_active.is_(True)).order_by(EventSource.id)
        ).scalars()
    )


def sync_all_sources(
    db: Optional[Session] = None,
    *,
    parallel: bool = False,
    max_workers: Optional[int] = None,
    client: Optional[httpx.Client] = None,
) -> List[SyncResult]:
    """
    Sync every active source and return one SyncResult per source, in id order.

    Sequential runs share `db`; parallel runs give each worker its own session.
    """
    if db is None:
        with db_session.session_scope() as own:
            return sync_all_sources(own, parallel=parallel, max_workers=max_workers, client=client)

    ids = active_source_ids(db)
    logger.info("sync.all.start", sources=len(ids), parallel=parallel)

    if parallel and len(ids) > 1:
        # workers open their own sessions; end the read transaction first
        db.commit()
        workers = max(1, min(max_workers or get_settings().SYNC_MAX_WORKERS, len(ids)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sync") as pool:
            results = list(pool.map(lambda sid: _sync_in_own_session(sid, client), ids))
    else:
        results = [_sync_isolated(db, sid, client) for sid in ids]

    logger.info("sync.all.completed", **summarize(results))
    return results


def summarize(results: List[SyncResult]) -> Dict[str, int]:
    return {
        "total_inserted": sum(r.inserted for r in results),
        "total_updated": sum(r.updated for r in results),
        "total_unchanged": sum(r.unchanged for r in results),
        "total_skipped": sum(r.skipped for r in results),
        "failed_sources": sum(1 for r in results if r.error),
    }
