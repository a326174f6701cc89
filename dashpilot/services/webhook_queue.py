"""Webhook retry queue built on APScheduler.

Every delivery is a ``WebhookJob``. The queue runs one attempt at a time per
job: the next attempt is only scheduled once the previous one has failed, so
attempts for the same job never overlap.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.exc import SQLAlchemyError

from dashpilot.db import AsyncSessionLocal
from dashpilot.exceptions import WebhookDeliveryError
from dashpilot.models.webhook import Webhook
from dashpilot.services.metrics import webhook_terminal_failures_total
from dashpilot.services.webhook_delivery import DeliveryResult, WebhookDeliveryService

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
# BACKOFF_SECONDS[n - 1] is the wait after failed attempt n
BACKOFF_SECONDS = (60, 300, 900)


@dataclass
class WebhookJob:
    """A queued delivery of one event to one webhook endpoint."""

    webhook_id: int
    event_type: str
    payload: dict[str, Any]
    attempt: int = 1
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])

    @property
    def scheduler_id(self) -> str:
        return f"webhook_{self.job_id}_{self.attempt}"

    def next_attempt(self) -> "WebhookJob":
        return replace(self, attempt=self.attempt + 1)


def retry_delay(attempt: int) -> int | None:
    """Seconds to wait after a failed attempt, or None when it was the last one.

    Args:
        attempt: 1-based number of the attempt that just failed

    Returns:
        Backoff delay in seconds, or None if no further attempt is allowed
    """
    if attempt < 1 or attempt >= MAX_ATTEMPTS:
        return None
    return BACKOFF_SECONDS[attempt - 1]


class WebhookQueue:
    """Schedules webhook delivery attempts and applies the retry policy."""

    def __init__(
        self,
        scheduler: AsyncIOScheduler | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the queue.

        Args:
            scheduler: APScheduler instance (a dedicated one is created if omitted)
            client: Optional shared httpx client passed to the dispatcher
        """
        self.scheduler = scheduler or AsyncIOScheduler()
        self.client = client

    def start(self) -> None:
        """Start processing queued deliveries."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Webhook queue started")

    def stop(self) -> None:
        """Stop the queue without waiting for in-flight attempts."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Webhook queue stopped")

    def enqueue(self, job: WebhookJob, delay_seconds: int = 0) -> str:
        """Schedule a delivery attempt.

        Args:
            job: Job to run
            delay_seconds: Seconds to wait before the attempt

        Returns:
            Scheduler job id
        """
        run_date = datetime.now(UTC) + timedelta(seconds=delay_seconds)
        self.scheduler.add_job(
            self.run_job,
            "date",
            run_date=run_date,
            args=[job],
            id=job.scheduler_id,
            name=f"Webhook {job.webhook_id} '{job.event_type}' attempt {job.attempt}",
            replace_existing=True,
            misfire_grace_time=None,  # Late attempts still run
        )

        if delay_seconds:
            logger.info(
                f"Scheduled webhook {job.webhook_id} '{job.event_type}' "
                f"attempt {job.attempt}/{MAX_ATTEMPTS} in {delay_seconds}s"
            )
        else:
            logger.debug(f"Queued webhook {job.webhook_id} '{job.event_type}' ({job.job_id})")

        return job.scheduler_id

    async def run_job(self, job: WebhookJob) -> DeliveryResult | None:
        """Run one delivery attempt and schedule a retry on failure.

        Args:
            job: Job to run

        Returns:
            DeliveryResult on success, None when the attempt failed or was dropped
        """
        async with AsyncSessionLocal() as db:
            webhook = await db.get(Webhook, job.webhook_id)
            if webhook is None:
                logger.warning(
                    f"Dropping webhook job {job.job_id}: webhook {job.webhook_id} no longer exists"
                )
                return None

            if not webhook.is_active:
                logger.info(
                    f"Dropping webhook job {job.job_id}: webhook {job.webhook_id} is disabled"
                )
                return None

            try:
                return await WebhookDeliveryService.deliver(
                    db,
                    webhook,
                    job.event_type,
                    job.payload,
                    attempt_number=job.attempt,
                    client=self.client,
                )
            except WebhookDeliveryError as e:
                self.handle_failure(job, e)
                return None
            except SQLAlchemyError as e:
                # The POST may already have been sent, so this attempt is not retried
                await db.rollback()
                webhook_terminal_failures_total.inc()
                logger.error(
                    f"Webhook {job.webhook_id} delivery of '{job.event_type}' aborted on "
                    f"attempt {job.attempt}: database error: {e}"
                )
                return None

    def handle_failure(self, job: WebhookJob, error: WebhookDeliveryError) -> str | None:
        """Apply the retry policy to a failed attempt.

        Args:
            job: Job whose attempt failed
            error: Failure raised by the dispatcher

        Returns:
            Scheduler id of the retry, or None if the failure is terminal
        """
        delay = retry_delay(job.attempt)
        if delay is None:
            webhook_terminal_failures_total.inc()
            logger.error(
                f"Webhook {job.webhook_id} delivery of '{job.event_type}' failed permanently "
                f"after {job.attempt} attempts (last status {error.status_code}): "
                f"{error.response_body}"
            )
            return None

        return self.enqueue(job.next_attempt(), delay_seconds=delay)


# Global queue instance
webhook_queue = WebhookQueue()
