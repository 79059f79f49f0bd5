from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pytz import timezone

from openbudget.scheduler.jobs import run_nightly_sync, retry_failed_job
from openbudget.config import get_settings


settings = get_settings()


def _jobstore():
    if settings.SCHEDULER_DB_URL:
        return SQLAlchemyJobStore(url=settings.SCHEDULER_DB_URL)
    return MemoryJobStore()


# Global scheduler instance; jobs are registered by configure_jobs().
scheduler = AsyncIOScheduler(
    jobstores={"default": _jobstore()},
    timezone=timezone(settings.SCHEDULER_TZ),
)


def configure_jobs() -> None:
    """
    Register all recurring jobs with the scheduler.

    - nightly-sync: full OpenBudget sync for the current year
    - retry-failed: re-drive units whose last outcome is `error`
    """
    scheduler.add_job(
        run_nightly_sync,
        "cron",
        id="nightly-sync",
        hour=settings.SCHEDULER_SYNC_HOUR,
        minute=0,
        replace_existing=True,
        misfire_grace_time=3600,
        coalesce=True,
        max_instances=1,
    )
    scheduler.add_job(
        retry_failed_job,
        "interval",
        id="retry-failed",
        hours=settings.SCHEDULER_RETRY_HOURS,
        replace_existing=True,
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


async def shutdown_scheduler() -> None:
    """
    FastAPI shutdown hook: stop the scheduler cleanly.
    """
    if scheduler.running:
        scheduler.shutdown(wait=False)
