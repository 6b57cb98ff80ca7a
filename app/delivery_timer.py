"""In-process recurring triggers for the delivery pipeline."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import DeliverySettings
from app.services.reclaim_service import StuckMessageReclaimer
from app.services.scheduler_service import MessageScheduler

PROCESS_JOB_ID = "process-scheduled-messages"
RECLAIM_JOB_ID = "reset-stuck-messages"


class DeliveryTimer:
    """Runs the scheduler and the stuck-message sweep on fixed intervals.

    One of several triggers; cron and on-demand calls may overlap with it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: DeliverySettings,
        logger: Optional[logging.Logger] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Register both jobs and start the scheduler on the running loop."""
        if self.running:
            return

        self.logger.info("Starting message scheduler")
        scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={"coalesce": True, "max_instances": 1},
        )

        first_run: Dict[str, Any] = {}
        if self.settings.timer_run_on_start:
            first_run["next_run_time"] = datetime.now(timezone.utc)

        scheduler.add_job(
            self.process_scheduled_messages,
            IntervalTrigger(seconds=self.settings.scheduler_interval_seconds),
            id=PROCESS_JOB_ID,
            replace_existing=True,
            **first_run,
        )
        scheduler.add_job(
            self.reset_stuck_messages,
            IntervalTrigger(seconds=self.settings.reclaimer_interval_seconds),
            id=RECLAIM_JOB_ID,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler

    def stop(self) -> None:
        if self._scheduler is not None:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None
            self.logger.info("Stopped message scheduler")

    async def process_scheduled_messages(self) -> None:
        try:
            async with self.session_factory() as session:
                scheduler = MessageScheduler(
                    session, settings=self.settings, logger=self.logger
                )
                await scheduler.run_once()
        except Exception:
            self.logger.exception("Error in scheduled message processing")

    async def reset_stuck_messages(self) -> None:
        try:
            async with self.session_factory() as session:
                reclaimer = StuckMessageReclaimer(
                    session, settings=self.settings, logger=self.logger
                )
                await reclaimer.reclaim()
        except Exception:
            self.logger.exception("Error resetting stuck messages")
