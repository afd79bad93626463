"""Background scheduler for session timers and periodic maintenance."""

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TYPE_CHECKING

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from roleswitch.core.logging import log_error

if TYPE_CHECKING:
    from roleswitch.core.config import Settings
    from roleswitch.services.storage import StorageService

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[None]]


class TimerScheduler:
    """
    Cancellable timers keyed by job id.

    Wraps an ``AsyncIOScheduler`` so every job runs on the application's
    event loop. Scheduling under an existing id replaces the old job.
    """

    def __init__(self, scheduler: AsyncIOScheduler | None = None) -> None:
        self._scheduler = scheduler or AsyncIOScheduler()

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Timer scheduler started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Timer scheduler stopped")

    def call_at(self, job_id: str, run_at: datetime, func: JobFunc) -> None:
        """Run ``func`` once at ``run_at``."""
        self._scheduler.add_job(
            func,
            trigger=DateTrigger(run_date=run_at),
            id=job_id,
            name=job_id,
            replace_existing=True,
            misfire_grace_time=None,
        )

    def call_every(self, job_id: str, seconds: float, func: JobFunc) -> None:
        """Run ``func`` every ``seconds`` until cancelled."""
        self._scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            name=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def call_cron(self, job_id: str, func: JobFunc, **cron_fields: int | str) -> None:
        self._scheduler.add_job(
            func,
            trigger=CronTrigger(**cron_fields),
            id=job_id,
            name=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def cancel(self, job_id: str) -> bool:
        """Remove a pending job. Returns False if there was nothing to cancel."""
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        return True

    def has_job(self, job_id: str) -> bool:
        return self._scheduler.get_job(job_id) is not None


async def prune_history_job(storage: "StorageService", settings: "Settings") -> None:
    """Daily job trimming stored history to the configured retention size."""
    logger.info("Running scheduled history retention...")
    try:
        result = await storage.prune_history(
            max_sessions=settings.history_max_sessions,
            max_events=settings.history_max_events,
        )
        logger.info(
            f"History retention complete: deleted {result['sessions_deleted']} sessions, "
            f"{result['events_deleted']} events"
        )
    except Exception as e:
        log_error(logger, "History retention job failed", error=e)


def start_maintenance_jobs(
    timers: TimerScheduler,
    storage: "StorageService",
    settings: "Settings",
) -> None:
    """Register periodic maintenance jobs."""

    async def run_prune() -> None:
        await prune_history_job(storage, settings)

    # Trim history daily at 2 AM
    timers.call_cron("history_retention", run_prune, hour=2, minute=0)
    logger.info("Maintenance jobs registered")
