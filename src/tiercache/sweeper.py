"""APScheduler-based periodic sweep of the local tier."""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from tiercache.errors import ValidationError

if TYPE_CHECKING:
    from tiercache.cache.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


class Sweeper:
    """
    Cron-driven cleanup of expired local entries.

    Only active when sweeping is enabled and the orchestrator has no remote
    tier (the remote tier expires keys on its own). Runs on the caller's
    asyncio event loop, so ticks never race with cache calls mid-operation.
    """

    JOB_ID = "cache_sweep"

    def __init__(
        self,
        orchestrator: "Orchestrator",
        schedule: str = "*/1 * * * *",
        enabled: bool = True,
        timezone: str = "UTC",
    ) -> None:
        """
        Initialize the sweeper (does not start it).

        Args:
            orchestrator: Cache whose ``cleanup_expired`` is invoked
            schedule: Crontab expression (5 fields)
            enabled: Whether sweeping is enabled in configuration
            timezone: Timezone the schedule is evaluated in

        Raises:
            ValidationError: If the schedule is not a valid crontab expression
        """
        try:
            self._trigger = CronTrigger.from_crontab(schedule, timezone=timezone)
        except ValueError as e:
            raise ValidationError(f"Invalid sweeper schedule {schedule!r}: {e}") from e

        self._orchestrator = orchestrator
        self._schedule = schedule
        self._timezone = timezone
        self._enabled = enabled and not orchestrator.remote_active
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        """Start the schedule. Must be called from a running event loop."""
        if not self._enabled:
            logger.info("Disabled (remote mode or sweeper disabled in config)")
            return
        if self._scheduler is not None:
            logger.warning("Sweeper is already running")
            return

        scheduler = AsyncIOScheduler(
            timezone=self._timezone,
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,  # Prevent overlapping sweeps
            },
        )
        scheduler.add_job(
            self._tick,
            trigger=self._trigger,
            id=self.JOB_ID,
            name=self.JOB_ID,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(f"Starting cleanup schedule: {self._schedule}")

    def stop(self) -> None:
        """Cancel the schedule. Idempotent."""
        if self._scheduler is None:
            return

        scheduler, self._scheduler = self._scheduler, None
        try:
            scheduler.remove_job(self.JOB_ID)
        except JobLookupError:
            pass
        scheduler.shutdown(wait=False)
        logger.info("Stopped")

    async def _tick(self) -> int:
        logger.info("Running cleanup...")
        try:
            cleaned = await self._orchestrator.cleanup_expired()
        except Exception as e:
            logger.error(f"Cleanup failed: {e}")
            return 0

        if cleaned == 0:
            logger.info("No expired entries found")
        return cleaned

    async def run_now(self) -> int:
        """Run one sweep immediately, outside the schedule."""
        return await self._tick()

    def next_run_time(self) -> datetime | None:
        """Next scheduled tick, or None when not running."""
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(self.JOB_ID)
        return job.next_run_time if job else None

    def status(self) -> dict[str, Any]:
        """Get sweeper status."""
        return {
            "enabled": self._enabled,
            "schedule": self._schedule,
            "next_run": self.next_run_time(),
        }
