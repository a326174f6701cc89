"""API endpoints for webhook management."""

import logging
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from dashpilot.db import get_db
from dashpilot.services.webhook_service import WebhookService
from dashpilot.schemas.webhook import (
    AlertEvent,
    WebhookCreate,
    WebhookUpdate,
    WebhookSchema,
    WebhookLogSchema,
    WebhookTestResponse,
)
from dashpilot.utils.error_handling import safe_error_response

logger = logging.getLogger(__name__)

router = APIRouter()


def _not_found(webhook_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Webhook with ID {webhook_id} not found"
    )


@router.get("/", response_model=List[WebhookSchema], status_code=status.HTTP_200_OK)
async def list_webhooks(
    owner_id: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db)
) -> List[WebhookSchema]:
    """List webhooks, optionally only those of one owner.

    Args:
        owner_id: Owner to filter by
        db: Database session

    Returns:
        List of configured webhooks, newest first
    """
    try:
        return await WebhookService.list_webhooks(db, owner_id=owner_id)
    except Exception as e:
        safe_error_response(logger, e, "Failed to list webhooks")


@router.post("/", response_model=WebhookSchema, status_code=status.HTTP_201_CREATED)
async def create_webhook(
    webhook: WebhookCreate,
    db: AsyncSession = Depends(get_db)
) -> WebhookSchema:
    """Create a new webhook.

    SSRF Protection: Webhook URLs pointing to private/internal IPs are blocked.

    Raises:
        400: SSRF attempt or invalid configuration
    """
    try:
        return await WebhookService.create_webhook(db, webhook)
    except ValueError as e:
        # SSRF protection or validation error
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        safe_error_response(logger, e, "Failed to create webhook")


@router.post("/alerts/{event_type}", status_code=status.HTTP_202_ACCEPTED)
async def trigger_alert_event(
    event_type: Literal["alert_created", "alert_resolved"],
    alert: AlertEvent,
    db: AsyncSession = Depends(get_db)
) -> dict:
    """Queue an alert event for every subscribed webhook.

    Returns:
        Number of queued deliveries and their job ids
    """
    try:
        jobs = await WebhookService.trigger_alert_event(db, event_type, alert)
    except Exception as e:
        safe_error_response(logger, e, "Failed to queue alert event")

    return {"queued": len(jobs), "jobs": [job.job_id for job in jobs]}


@router.get("/{webhook_id}", response_model=WebhookSchema, status_code=status.HTTP_200_OK)
async def get_webhook(
    webhook_id: int,
    db: AsyncSession = Depends(get_db)
) -> WebhookSchema:
    """Get webhook by ID.

    Raises:
        404: Webhook not found
    """
    webhook = await WebhookService.get_webhook(db, webhook_id)
    if not webhook:
        raise _not_found(webhook_id)
    return webhook


@router.put("/{webhook_id}", response_model=WebhookSchema, status_code=status.HTTP_200_OK)
async def update_webhook(
    webhook_id: int,
    webhook: WebhookUpdate,
    db: AsyncSession = Depends(get_db)
) -> WebhookSchema:
    """Update an existing webhook.

    Raises:
        400: SSRF attempt or invalid configuration
        404: Webhook not found
    """
    try:
        updated_webhook = await WebhookService.update_webhook(db, webhook_id, webhook)
        if not updated_webhook:
            raise _not_found(webhook_id)
        return updated_webhook
    except ValueError as e:
        # SSRF protection or validation error
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        safe_error_response(logger, e, "Failed to update webhook")


@router.delete("/{webhook_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_webhook(
    webhook_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Delete a webhook together with its delivery logs.

    Raises:
        404: Webhook not found
    """
    deleted = await WebhookService.delete_webhook(db, webhook_id)
    if not deleted:
        raise _not_found(webhook_id)


@router.post("/{webhook_id}/test", response_model=WebhookTestResponse, status_code=status.HTTP_200_OK)
async def test_webhook(
    webhook_id: int,
    db: AsyncSession = Depends(get_db)
) -> WebhookTestResponse:
    """Send a single test payload to a webhook.

    Raises:
        404: Webhook not found
    """
    result = await WebhookService.test_webhook(db, webhook_id)
    if result is None:
        raise _not_found(webhook_id)
    return result


@router.get("/{webhook_id}/logs", response_model=List[WebhookLogSchema], status_code=status.HTTP_200_OK)
async def get_webhook_logs(
    webhook_id: int,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
) -> List[WebhookLogSchema]:
    """Get recent delivery attempts for a webhook.

    Raises:
        404: Webhook not found
    """
    webhook = await WebhookService.get_webhook(db, webhook_id)
    if not webhook:
        raise _not_found(webhook_id)
    return await WebhookService.get_logs(db, webhook_id, limit=limit)
