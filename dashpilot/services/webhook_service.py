"""Service layer for webhook management and event fan-out."""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Callable

import httpx
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from dashpilot.exceptions import WebhookDeliveryError
from dashpilot.models.webhook import Webhook
from dashpilot.models.webhook_log import WebhookLog
from dashpilot.schemas.webhook import (
    AlertEvent,
    WebhookCreate,
    WebhookLogSchema,
    WebhookSchema,
    WebhookTestResponse,
    WebhookUpdate,
)
from dashpilot.services.webhook_delivery import WebhookDeliveryService
from dashpilot.services.webhook_payloads import build_alert_payload
from dashpilot.services.webhook_queue import WebhookJob, WebhookQueue, webhook_queue
from dashpilot.utils.encryption import encrypt_value
from dashpilot.utils.url_validation import ensure_safe_webhook_url

logger = logging.getLogger(__name__)


class WebhookService:
    """Service for managing and triggering webhooks."""

    @staticmethod
    async def _load(db: AsyncSession, webhook_id: int) -> Webhook | None:
        result = await db.execute(select(Webhook).where(Webhook.id == webhook_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def create_webhook(db: AsyncSession, webhook_data: WebhookCreate) -> WebhookSchema:
        """Create a new webhook with SSRF protection.

        Args:
            db: Database session
            webhook_data: Webhook configuration

        Returns:
            Created webhook

        Raises:
            SSRFProtectionError: If URL points to a private/internal address
        """
        url = str(webhook_data.url)
        # DNS resolution blocks, keep it off the event loop
        await asyncio.to_thread(ensure_safe_webhook_url, url)

        webhook = Webhook(
            owner_id=webhook_data.owner_id,
            name=webhook_data.name,
            url=url,
            secret=encrypt_value(webhook_data.secret) if webhook_data.secret else None,
            events=webhook_data.events,
            is_active=webhook_data.is_active,
        )

        db.add(webhook)
        await db.commit()
        await db.refresh(webhook)

        logger.info(f"Created webhook {webhook.id} for owner {webhook.owner_id}")
        return WebhookSchema.model_validate(webhook)

    @staticmethod
    async def list_webhooks(db: AsyncSession, owner_id: int | None = None) -> list[WebhookSchema]:
        """List webhooks, newest first.

        Args:
            db: Database session
            owner_id: Only return webhooks owned by this user

        Returns:
            List of webhooks
        """
        query = select(Webhook).order_by(Webhook.created_at.desc(), Webhook.id.desc())
        if owner_id is not None:
            query = query.where(Webhook.owner_id == owner_id)

        result = await db.execute(query)
        return [WebhookSchema.model_validate(w) for w in result.scalars().all()]

    @staticmethod
    async def get_webhook(db: AsyncSession, webhook_id: int) -> WebhookSchema | None:
        """Get webhook by ID.

        Args:
            db: Database session
            webhook_id: Webhook ID

        Returns:
            Webhook or None if not found
        """
        webhook = await WebhookService._load(db, webhook_id)
        if webhook:
            return WebhookSchema.model_validate(webhook)
        return None

    @staticmethod
    async def update_webhook(
        db: AsyncSession, webhook_id: int, webhook_data: WebhookUpdate
    ) -> WebhookSchema | None:
        """Update an existing webhook.

        The SSRF guard only runs when the URL actually changes. An empty
        secret removes signing.

        Args:
            db: Database session
            webhook_id: Webhook ID
            webhook_data: Updated webhook data

        Returns:
            Updated webhook or None if not found

        Raises:
            SSRFProtectionError: If the new URL points to a private/internal address
        """
        webhook = await WebhookService._load(db, webhook_id)
        if not webhook:
            return None

        if webhook_data.url is not None:
            new_url = str(webhook_data.url)
            if new_url != webhook.url:
                # DNS resolution blocks, keep it off the event loop
                await asyncio.to_thread(ensure_safe_webhook_url, new_url)
                webhook.url = new_url

        if webhook_data.name is not None:
            webhook.name = webhook_data.name
        if webhook_data.secret is not None:
            webhook.secret = encrypt_value(webhook_data.secret) if webhook_data.secret else None
        if webhook_data.events is not None:
            webhook.events = webhook_data.events
        if webhook_data.is_active is not None:
            webhook.is_active = webhook_data.is_active

        await db.commit()
        await db.refresh(webhook)

        return WebhookSchema.model_validate(webhook)

    @staticmethod
    async def delete_webhook(db: AsyncSession, webhook_id: int) -> bool:
        """Delete a webhook and its delivery logs.

        Args:
            db: Database session
            webhook_id: Webhook ID

        Returns:
            True if deleted, False if not found
        """
        webhook = await WebhookService._load(db, webhook_id)
        if not webhook:
            return False

        await db.execute(delete(WebhookLog).where(WebhookLog.webhook_id == webhook_id))
        await db.delete(webhook)
        await db.commit()

        logger.info(f"Deleted webhook {webhook_id}")
        return True

    @staticmethod
    async def get_logs(db: AsyncSession, webhook_id: int, limit: int = 50) -> list[WebhookLogSchema]:
        """Get recent delivery attempts for a webhook, newest first.

        Args:
            db: Database session
            webhook_id: Webhook ID
            limit: Maximum number of attempts to return

        Returns:
            List of delivery attempts
        """
        result = await db.execute(
            select(WebhookLog)
            .where(WebhookLog.webhook_id == webhook_id)
            .order_by(WebhookLog.id.desc())
            .limit(limit)
        )
        return [WebhookLogSchema.model_validate(log) for log in result.scalars().all()]

    @staticmethod
    async def test_webhook(
        db: AsyncSession, webhook_id: int, client: httpx.AsyncClient | None = None
    ) -> WebhookTestResponse | None:
        """Send a single test payload to a webhook.

        The attempt is logged like any other delivery but never retried.

        Args:
            db: Database session
            webhook_id: Webhook ID
            client: Optional httpx client

        Returns:
            Test result, or None if the webhook does not exist
        """
        webhook = await WebhookService._load(db, webhook_id)
        if not webhook:
            return None

        test_payload = {
            "event": "test",
            "timestamp": datetime.now(UTC).isoformat(),
            "data": {
                "message": "This is a test webhook from DashPilot",
                "webhook_id": webhook.id,
                "webhook_name": webhook.name,
            },
        }

        try:
            result = await WebhookDeliveryService.deliver(
                db, webhook, "test", test_payload, attempt_number=1, client=client
            )
        except WebhookDeliveryError as e:
            if e.status_code:
                message = f"Test failed (HTTP {e.status_code})"
            else:
                message = "Test failed (connection error)"
            return WebhookTestResponse(
                success=False,
                status_code=e.status_code,
                message=message,
                error=e.response_body[:200],
            )

        return WebhookTestResponse(
            success=True,
            status_code=result.status_code,
            response_time_ms=result.duration_ms,
            message=f"Test successful (HTTP {result.status_code})",
        )

    @staticmethod
    async def get_active_webhooks_for_event(db: AsyncSession, event_type: str) -> list[Webhook]:
        """Get active webhooks subscribed to an event (directly or through "*")."""
        result = await db.execute(
            select(Webhook).where(Webhook.is_active.is_(True)).order_by(Webhook.id)
        )
        return [w for w in result.scalars().all() if w.subscribes_to(event_type)]

    @staticmethod
    async def trigger_event(
        db: AsyncSession,
        event_type: str,
        payload_for: Callable[[Webhook], dict[str, Any]],
        queue: WebhookQueue | None = None,
    ) -> list[WebhookJob]:
        """Queue one delivery per subscribed webhook.

        Args:
            db: Database session
            event_type: Event type
            payload_for: Builds the payload for a given webhook
            queue: Queue to use (defaults to the global webhook queue)

        Returns:
            The queued jobs
        """
        queue = queue or webhook_queue
        webhooks = await WebhookService.get_active_webhooks_for_event(db, event_type)

        jobs = []
        for webhook in webhooks:
            job = WebhookJob(
                webhook_id=webhook.id,
                event_type=event_type,
                payload=payload_for(webhook),
            )
            queue.enqueue(job)
            jobs.append(job)

        logger.info(f"Queued '{event_type}' for {len(jobs)} webhook(s)")
        return jobs

    @staticmethod
    async def trigger_alert_event(
        db: AsyncSession,
        event_type: str,
        alert: AlertEvent,
        queue: WebhookQueue | None = None,
    ) -> list[WebhookJob]:
        """Queue alert_created / alert_resolved deliveries.

        Slack and Discord endpoints receive their native message format.
        """
        return await WebhookService.trigger_event(
            db,
            event_type,
            lambda webhook: build_alert_payload(event_type, alert, webhook.url),
            queue=queue,
        )
