"""Pydantic schemas for API validation."""

from dashpilot.schemas.webhook import (
    VALID_WEBHOOK_EVENTS,
    AlertEvent,
    SiteSummary,
    WebhookCreate,
    WebhookLogSchema,
    WebhookSchema,
    WebhookTestResponse,
    WebhookUpdate,
)

__all__ = [
    "VALID_WEBHOOK_EVENTS",
    "AlertEvent",
    "SiteSummary",
    "WebhookCreate",
    "WebhookLogSchema",
    "WebhookSchema",
    "WebhookTestResponse",
    "WebhookUpdate",
]
