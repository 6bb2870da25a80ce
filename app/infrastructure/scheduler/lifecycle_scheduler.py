"""
Lifecycle scheduler.

Runs the appointment sweep on a fixed interval and purges past doctor
availability once a day.
"""

import logging
from datetime import datetime
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.cron import CronTrigger  # type: ignore
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore
from zoneinfo import ZoneInfo

from ...application.services.availability_service import AvailabilityService
from ...application.services.sweeper import LifecycleSweeper, SweepReport

logger = logging.getLogger(__name__)

# Global singleton instance
_lifecycle_scheduler: Optional["LifecycleScheduler"] = None


class LifecycleScheduler:
    """
    Scheduler for time-driven appointment transitions.

    A tick that is still running when the next one is due is not doubled up
    (max_instances=1); missed ticks are coalesced into one. Neither needs a
    lock: the sweep's conditional writes make a duplicate run harmless.
    """

    def __init__(self, sweeper: LifecycleSweeper, availability: AvailabilityService, interval_minutes: int = 5, cleanup_hour: int = 0, timezone: str = "Europe/Warsaw"):
        self.sweeper = sweeper
        self.availability = availability
        self.interval_minutes = interval_minutes
        self.cleanup_hour = cleanup_hour
        self.timezone = ZoneInfo(timezone)
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)
        self._is_started = False

    def start(self) -> None:
        if self._is_started:
            logger.warning("Lifecycle scheduler is already started")
            return

        self.scheduler.add_job(  # type: ignore
            self.run_sweep,
            IntervalTrigger(minutes=self.interval_minutes),
            id="appointment_lifecycle_sweep",
            name="Appointment reminders and time-driven transitions",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.add_job(  # type: ignore
            self.purge_old_availability,
            CronTrigger(hour=self.cleanup_hour, minute=0),
            id="availability_cleanup",
            name="Delete availability for past days",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        self._is_started = True
        logger.info(f"Lifecycle scheduler started (sweep every {self.interval_minutes} min)")

    def stop(self) -> None:
        if self._is_started:
            self.scheduler.shutdown(wait=False)
            self._is_started = False
            logger.info("Lifecycle scheduler stopped")

    async def run_sweep(self) -> Optional[SweepReport]:
        try:
            return await self.sweeper.run()
        except Exception as e:
            # The next tick is the retry
            logger.exception(f"Sweep run failed: {e}")
            return None

    async def purge_old_availability(self) -> int:
        today = datetime.now(self.timezone).date()
        try:
            return self.availability.purge_before(today)
        except Exception as e:
            logger.exception(f"Availability cleanup failed: {e}")
            return 0


def get_lifecycle_scheduler() -> Optional[LifecycleScheduler]:
    return _lifecycle_scheduler


def start_lifecycle_scheduler(scheduler: LifecycleScheduler) -> LifecycleScheduler:
    global _lifecycle_scheduler
    if _lifecycle_scheduler is not None and _lifecycle_scheduler is not scheduler:
        _lifecycle_scheduler.stop()
    _lifecycle_scheduler = scheduler
    scheduler.start()
    return scheduler


def stop_lifecycle_scheduler() -> None:
    global _lifecycle_scheduler
    if _lifecycle_scheduler:
        _lifecycle_scheduler.stop()
        _lifecycle_scheduler = None
