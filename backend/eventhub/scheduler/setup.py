from __future__ import annotations

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
import structlog
from pytz import timezone

from eventhub.scheduler.jobs import sync_active_sources
from eventhub.config import get_settings

SYNC_JOB_ID = "sync-all-sources"

settings = get_settings()
logger = structlog.get_logger(__name__)


def _jobstores() -> dict:
    url = settings.SCHEDULER_DB_URL or settings.DATABASE_URL
    # A private in-memory database would lose the jobs anyway.
    if not url or url in ("sqlite://", "sqlite:///:memory:"):
        return {"default": MemoryJobStore()}
    return {"default": SQLAlchemyJobStore(url=url)}


scheduler = AsyncIOScheduler(
    jobstores=_jobstores(),
    timezone=timezone(settings.SCHEDULER_TZ),
)


def configure_jobs() -> None:
    """Register the recurring source sync every SYNC_INTERVAL_MINUTES."""
    scheduler.add_job(
        sync_active_sources,
        "interval",
        id=SYNC_JOB_ID,
        minutes=settings.SYNC_INTERVAL_MINUTES,
        replace_existing=True,
        misfire_grace_time=settings.SYNC_INTERVAL_MINUTES * 60,
        coalesce=True,
        max_instances=1,
    )


async def init_scheduler(app) -> None:
    """
    FastAPI startup hook: initialize and start the APScheduler instance
    if SCHEDULER_ENABLED is true.
    """
    if not settings.SCHEDULER_ENABLED:
        return
    configure_jobs()
    scheduler.start()
    logger.info("scheduler.started", jobs=[j.id for j in scheduler.get_jobs()])


async def shutdown_scheduler() -> None:
    """
    FastAPI shutdown hook: stop the scheduler cleanly.
    """
    if scheduler.running:
        scheduler.shutdown(wait=False)
