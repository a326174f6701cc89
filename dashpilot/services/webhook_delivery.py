"""Single-attempt webhook delivery: sign, POST, log the attempt.

The dispatcher performs exactly one HTTP attempt per call and records exactly
one WebhookLog row for it. Retrying is the job of the webhook queue
(see ``webhook_queue.py``), which reacts to WebhookDeliveryError.
"""

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from dashpilot.exceptions import WebhookDeliveryError
from dashpilot.models.webhook import Webhook
from dashpilot.models.webhook_log import MAX_RESPONSE_BODY_LENGTH, WebhookLog
from dashpilot.services.metrics import webhook_deliveries_total, webhook_delivery_duration
from dashpilot.utils.encryption import decrypt_value

logger = logging.getLogger(__name__)

USER_AGENT = "DashPilot/1.0"
DELIVERY_TIMEOUT_SECONDS = 10.0


def generate_signature(payload: dict[str, Any], secret: str) -> str:
    """Generate HMAC-SHA256 signature for a webhook payload.

    The payload is serialized as compact JSON in its own key order, so the
    same payload and secret always produce the same signature.

    Args:
        payload: Payload to sign (without any signature field)
        secret: Shared secret

    Returns:
        64-character hex-encoded signature
    """
    payload_json = json.dumps(payload, separators=(",", ":"))
    return hmac.new(
        secret.encode("utf-8"), payload_json.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def truncate_body(text: str | None) -> str:
    """Bound a response body or error text to the stored length."""
    return (text or "")[:MAX_RESPONSE_BODY_LENGTH]


@dataclass
class DeliveryResult:
    """Outcome of a successful delivery attempt."""

    success: bool
    status_code: int
    attempt: int
    duration_ms: float
    log_id: int | None = None


class WebhookDeliveryService:
    """Deliver one event payload to one webhook endpoint."""

    @staticmethod
    def build_body(webhook: Webhook, payload: dict[str, Any]) -> dict[str, Any]:
        """Return the request body, signed when the endpoint has a secret.

        Raises:
            ValueError: If the stored secret cannot be decrypted
        """
        body = dict(payload)
        if webhook.secret:
            secret = decrypt_value(webhook.secret)
            if secret:
                body["signature"] = generate_signature(payload, secret)
        return body

    @staticmethod
    async def deliver(
        db: AsyncSession,
        webhook: Webhook,
        event_type: str,
        payload: dict[str, Any],
        attempt_number: int = 1,
        client: httpx.AsyncClient | None = None,
    ) -> DeliveryResult:
        """Perform a single delivery attempt.

        Args:
            db: Database session used for the attempt log and timestamp update
            webhook: Target endpoint
            event_type: Event that triggered the delivery
            payload: JSON-serializable event payload
            attempt_number: 1-based attempt number supplied by the queue
            client: Optional shared httpx client (a short-lived one is used otherwise)

        Returns:
            DeliveryResult for a 2xx response

        Raises:
            ValueError: If the webhook has no URL
            WebhookDeliveryError: On a non-2xx response or transport error
        """
        if not webhook.url:
            raise ValueError(f"Webhook {webhook.id} has no URL")

        status_code = 0
        response_text = ""
        start_time = time.monotonic()

        try:
            body = WebhookDeliveryService.build_body(webhook, payload)
        except ValueError as e:
            logger.error(f"Failed to sign payload for webhook {webhook.id}: {e}")
            response_text = f"Failed to prepare payload: {e}"
        else:
            headers = {
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            }
            try:
                if client is None:
                    async with httpx.AsyncClient(timeout=DELIVERY_TIMEOUT_SECONDS) as http:
                        response = await http.post(webhook.url, json=body, headers=headers)
                else:
                    response = await client.post(
                        webhook.url, json=body, headers=headers, timeout=DELIVERY_TIMEOUT_SECONDS
                    )
                status_code = response.status_code
                response_text = response.text
            except httpx.TimeoutException:
                response_text = f"Request timeout after {DELIVERY_TIMEOUT_SECONDS:.0f} seconds"
            except (httpx.RequestError, httpx.InvalidURL) as e:
                response_text = f"Request error: {e}"

        duration = time.monotonic() - start_time
        duration_ms = round(duration * 1000, 2)
        success = 200 <= status_code < 300
        truncated = truncate_body(response_text)

        log = WebhookLog(
            webhook_id=webhook.id,
            event_type=event_type,
            payload=payload,
            response_status=status_code,
            response_body=truncated,
            attempt_number=attempt_number,
            success=success,
            error_message=None if success else truncated,
            duration_ms=duration_ms,
        )
        db.add(log)

        if success:
            webhook.last_triggered_at = datetime.now(UTC)

        await db.commit()

        webhook_delivery_duration.observe(duration)
        webhook_deliveries_total.labels(result="success" if success else "failure").inc()

        if not success:
            logger.warning(
                f"Webhook {webhook.id} delivery of '{event_type}' failed "
                f"(attempt {attempt_number}, status {status_code}, {duration_ms}ms)"
            )
            raise WebhookDeliveryError(status_code, truncated, webhook_id=webhook.id)

        logger.info(
            f"Webhook {webhook.id} delivered '{event_type}' "
            f"(attempt {attempt_number}, status {status_code}, {duration_ms}ms)"
        )
        return DeliveryResult(
            success=True,
            status_code=status_code,
            attempt=attempt_number,
            duration_ms=duration_ms,
            log_id=log.id,
        )
