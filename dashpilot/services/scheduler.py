"""Background scheduler service for site health checks."""

import asyncio
import logging
import socket
import uuid
from datetime import UTC, datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from dashpilot.db import AsyncSessionLocal
from dashpilot.exceptions import WordPressApiError
from dashpilot.models.site import Site
from dashpilot.services.health_check import HealthCheckService
from dashpilot.services.scheduler_lease import SchedulerLeaseService
from dashpilot.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

HEALTH_CHECK_JOB_ID = "health_checks"
HEALTH_CHECK_LEASE = "health-checks"
SITE_PAGE_SIZE = 50


class SchedulerService:
    """Service for managing background scheduled tasks."""

    def __init__(self) -> None:
        """Initialize the scheduler service."""
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._health_check_schedule: str = "*/5 * * * *"
        self._enabled: bool = True
        self._last_run: Optional[datetime] = None
        self.instance_id = f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"

    async def start(self) -> None:
        """Start the background scheduler.

        Loads configuration from settings and starts the APScheduler.
        """
        try:
            async with AsyncSessionLocal() as db:
                self._health_check_schedule = await SettingsService.get(
                    db, "health_check_schedule", default="*/5 * * * *"
                )
                self._enabled = await SettingsService.get_bool(
                    db, "health_check_enabled", default=True
                )

            if not self._enabled:
                logger.info("Scheduled health checks are disabled in settings")
                return

            self.scheduler = AsyncIOScheduler()

            self.scheduler.add_job(
                self._run_health_checks,
                CronTrigger.from_crontab(self._health_check_schedule),
                id=HEALTH_CHECK_JOB_ID,
                name="Site Health Checks",
                replace_existing=True,
                max_instances=1,  # Prevent overlapping runs
                coalesce=True,
            )

            self.scheduler.start()
            logger.info(
                f"Background scheduler started with health check schedule: "
                f"{self._health_check_schedule} (instance {self.instance_id})"
            )

            job = self.scheduler.get_job(HEALTH_CHECK_JOB_ID)
            if job and job.next_run_time:
                logger.info(f"Next health check run scheduled for: {job.next_run_time}")

        except OperationalError as e:
            logger.error(f"Database connection error during scheduler start: {e}")
            raise
        except ValueError as e:
            logger.error(f"Invalid cron schedule or configuration: {e}")
            raise

    async def stop(self) -> None:
        """Stop the background scheduler and give up the health-check lease."""
        if self.scheduler:
            try:
                self.scheduler.shutdown(wait=False)
                # Give event loop a chance to process shutdown
                await asyncio.sleep(0)
                logger.info("Background scheduler stopped")
            except RuntimeError as e:
                logger.error(f"Scheduler shutdown error: {e}")

        try:
            async with AsyncSessionLocal() as db:
                await SchedulerLeaseService.release(db, HEALTH_CHECK_LEASE, self.instance_id)
        except SQLAlchemyError as e:
            logger.error(f"Database error releasing scheduler lease: {e}")

    async def _run_health_checks(self) -> int:
        """Queue a health check for every site that is not archived.

        Only the instance holding the health-check lease dispatches checks.

        Returns:
            Number of site checks dispatched
        """
        dispatched = 0
        try:
            async with AsyncSessionLocal() as db:
                ttl = await SettingsService.get_int(db, "scheduler_lease_seconds", default=300)
                acquired = await SchedulerLeaseService.acquire(
                    db, HEALTH_CHECK_LEASE, self.instance_id, ttl
                )
                if not acquired:
                    logger.debug("Health checks are owned by another instance, skipping run")
                    return 0

                last_id = 0
                while True:
                    result = await db.execute(
                        select(Site.id)
                        .where(Site.status != "archived", Site.id > last_id)
                        .order_by(Site.id)
                        .limit(SITE_PAGE_SIZE)
                    )
                    site_ids = list(result.scalars().all())
                    if not site_ids:
                        break

                    for site_id in site_ids:
                        self._dispatch_site_check(site_id)
                        dispatched += 1
                    last_id = site_ids[-1]

        except SQLAlchemyError as e:
            logger.error(f"Database error in scheduled health checks: {e}")
            return dispatched

        self._last_run = datetime.now(UTC)
        logger.info(f"Dispatched {dispatched} site health check(s)")
        return dispatched

    def _dispatch_site_check(self, site_id: int) -> None:
        self.scheduler.add_job(
            self._run_site_check,
            "date",
            run_date=datetime.now(UTC),
            args=[site_id],
            id=f"health_check_{site_id}",
            name=f"Health Check for site {site_id}",
            replace_existing=True,
            misfire_grace_time=60,  # Allow 60s delay if scheduler is busy
        )

    async def _run_site_check(self, site_id: int) -> None:
        """Run a single site's health check in its own session."""
        try:
            async with AsyncSessionLocal() as db:
                # Scheduled runs always query the site and refresh the cache
                await HealthCheckService.check_site(db, site_id, use_cache=False)
        except WordPressApiError as e:
            logger.warning(f"Health check for site {site_id} did not complete: {e}")
        except SQLAlchemyError as e:
            logger.error(f"Database error checking site {site_id}: {e}")

    def get_next_run_time(self) -> Optional[datetime]:
        """Get the next scheduled health check run time."""
        if not self.scheduler:
            return None

        job = self.scheduler.get_job(HEALTH_CHECK_JOB_ID)
        if job:
            return job.next_run_time
        return None

    def get_status(self) -> dict:
        """Get current scheduler status."""
        next_run = self.get_next_run_time()
        return {
            "running": bool(self.scheduler and self.scheduler.running),
            "enabled": self._enabled,
            "schedule": self._health_check_schedule,
            "instance_id": self.instance_id,
            "next_run": next_run.isoformat() if next_run else None,
            "last_run": self._last_run.isoformat() if self._last_run else None,
        }


# Global scheduler instance
scheduler_service = SchedulerService()
