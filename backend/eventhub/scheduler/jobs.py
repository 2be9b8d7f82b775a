from __future__ import annotations

from typing import List

import structlog

from eventhub.config import get_settings
from eventhub.observability.instrument import log_job
from eventhub.services.sync import SyncResult, summarize, sync_all_sources

logger = structlog.get_logger(__name__)


@log_job("sync-all-sources")
def sync_active_sources() -> List[SyncResult]:
    """
    Periodic sync of every active source.

    Runs in a worker thread of the scheduler; each source gets its own session when
    SYNC_MAX_WORKERS allows more than one worker.
    """
    settings = get_settings()
    results = sync_all_sources(
        parallel=settings.SYNC_MAX_WORKERS > 1,
        max_workers=settings.SYNC_MAX_WORKERS,
    )
    summary = summarize(results)
    if summary["failed_sources"]:
        logger.warning(
            "sync.scheduled.partial_failure",
            failed=[r.source_id for r in results if r.error],
            **summary,
        )
    return results
