"""Background scheduler for periodic blocklist sync tasks."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from blocklist_sync.core.time_utils import utc_now

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from pydantic import BaseModel

    from blocklist_sync.adapters.blocklist_api.sync.protocols import RecurringScheduler
    from blocklist_sync.adapters.blocklist_api.sync.service import BlocklistSyncService
    from blocklist_sync.config import AppConfig

logger = logging.getLogger(__name__)

FULL_SYNC_JOB_ID = "blocklist_full_sync"
DRAIN_JOB_ID = "blocklist_queue_drain"


class ApschedulerRecurringScheduler:
    """Recurring-job facility on top of APScheduler's asyncio scheduler."""

    def __init__(self, scheduler: AsyncIOScheduler | None = None) -> None:
        self._scheduler = scheduler or AsyncIOScheduler()

    def add_recurring(
        self,
        job_id: str,
        callback: Callable[[], Awaitable[Any]],
        *,
        interval: timedelta,
        first_run_delay: timedelta,
    ) -> None:
        self._scheduler.add_job(
            callback,
            trigger=IntervalTrigger(seconds=int(interval.total_seconds())),
            id=job_id,
            name=job_id.replace("_", " ").title(),
            replace_existing=True,
            max_instances=1,  # Prevent overlapping runs
            next_run_time=utc_now() + first_run_delay,
        )

    def start(self) -> None:
        self._scheduler.start()

    def shutdown(self) -> None:
        self._scheduler.shutdown(wait=True)

    def get_next_run_time(self, job_id: str) -> datetime | None:
        job = self._scheduler.get_job(job_id)
        return job.next_run_time if job else None


class SchedulerService:
    """Registers the daily full sync and the queue drain as recurring jobs.

    Job failures are logged and swallowed so a bad run never unschedules the job.
    """

    def __init__(
        self,
        cfg: AppConfig,
        service: BlocklistSyncService,
        scheduler: RecurringScheduler | None = None,
    ) -> None:
        self.cfg = cfg
        self.service = service
        self._scheduler = scheduler or ApschedulerRecurringScheduler()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("sync_scheduler_already_running")
            return

        cfg = self.cfg.sync
        delay = timedelta(minutes=cfg.first_run_delay_minutes)
        jobs = (
            (FULL_SYNC_JOB_ID, self._run_full_sync, timedelta(hours=cfg.full_sync_interval_hours)),
            (DRAIN_JOB_ID, self._run_queue_drain, timedelta(minutes=cfg.drain_interval_minutes)),
        )
        for job_id, job, interval in jobs:
            self._scheduler.add_recurring(job_id, job, interval=interval, first_run_delay=delay)

        self._scheduler.start()
        self._running = True
        logger.info(
            "sync_scheduler_started",
            extra={
                "full_sync_interval_hours": cfg.full_sync_interval_hours,
                "drain_interval_minutes": cfg.drain_interval_minutes,
                "first_run_delay_minutes": cfg.first_run_delay_minutes,
            },
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self._scheduler.shutdown()
        self._running = False
        logger.info("sync_scheduler_stopped")

    async def _run_full_sync(self) -> None:
        await self._run_job("scheduled_full_sync", self.service.perform_full_sync)

    async def _run_queue_drain(self) -> None:
        await self._run_job("scheduled_queue_drain", self.service.drain_queue)

    async def _run_job(self, event: str, call: Callable[[], Awaitable[BaseModel]]) -> None:
        try:
            result = await call()
        except Exception as exc:
            logger.exception(f"{event}_failed", extra={"error": str(exc)})
            return
        logger.info(f"{event}_complete", extra=result.model_dump(mode="json", exclude={"errors"}))
