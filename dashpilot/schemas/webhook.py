"""Schemas for webhook configuration, delivery logs and alert events."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, HttpUrl, Field, field_validator, ConfigDict


# Valid event types that can trigger webhooks ("*" subscribes to all of them)
VALID_WEBHOOK_EVENTS = [
    "alert_created",
    "alert_resolved",
    "*",
]

ALERT_SEVERITIES = ["critical", "high", "medium", "low", "info"]


def _check_events(events: List[str]) -> List[str]:
    invalid_events = [e for e in events if e not in VALID_WEBHOOK_EVENTS]
    if invalid_events:
        raise ValueError(
            f"Invalid event types: {invalid_events}. "
            f"Valid events: {VALID_WEBHOOK_EVENTS}"
        )
    return events


class WebhookCreate(BaseModel):
    """Schema for creating a new webhook."""

    owner_id: int = Field(..., ge=1, description="User that owns the webhook")
    name: str = Field(
        default="Webhook", min_length=1, max_length=100, description="Display name"
    )
    url: HttpUrl = Field(..., description="Webhook URL (HTTPS recommended)")
    secret: Optional[str] = Field(
        None, max_length=256, description="HMAC secret for payload signatures"
    )
    events: List[str] = Field(
        ..., min_length=1, description="List of event types to trigger on"
    )
    is_active: bool = Field(default=True, description="Whether webhook is active")

    @field_validator("events")
    @classmethod
    def validate_events(cls, v):
        """Validate that all events are recognized."""
        return _check_events(v)

    @field_validator("url")
    @classmethod
    def validate_url_scheme(cls, v):
        """Ensure URL uses HTTP or HTTPS."""
        if v.scheme not in ["http", "https"]:
            raise ValueError("URL must use http or https scheme")
        return v


class WebhookUpdate(BaseModel):
    """Schema for updating an existing webhook.

    An empty ``secret`` removes the signing secret.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    url: Optional[HttpUrl] = None
    secret: Optional[str] = Field(None, max_length=256)
    events: Optional[List[str]] = Field(None, min_length=1)
    is_active: Optional[bool] = None

    @field_validator("events")
    @classmethod
    def validate_events(cls, v):
        """Validate that all events are recognized."""
        if v is not None:
            return _check_events(v)
        return v

    @field_validator("url")
    @classmethod
    def validate_url_scheme(cls, v):
        """Ensure URL uses HTTP or HTTPS."""
        if v is not None and v.scheme not in ["http", "https"]:
            raise ValueError("URL must use http or https scheme")
        return v


class WebhookSchema(BaseModel):
    """Schema for webhook response. The secret itself is never returned."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    name: str
    url: str
    events: List[str]
    is_active: bool
    has_secret: bool
    last_triggered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WebhookLogSchema(BaseModel):
    """One recorded delivery attempt."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    webhook_id: int
    event_type: str
    payload: Dict[str, Any]
    response_status: int
    response_body: Optional[str] = None
    attempt_number: int
    success: bool
    error_message: Optional[str] = None
    duration_ms: Optional[float] = None
    created_at: Optional[datetime] = None


class WebhookTestResponse(BaseModel):
    """Response from testing a webhook."""

    success: bool
    status_code: Optional[int] = None
    response_time_ms: Optional[float] = None
    error: Optional[str] = None
    message: str


class SiteSummary(BaseModel):
    """Site fields included in alert webhook payloads."""

    id: int
    name: str
    url: str


class AlertEvent(BaseModel):
    """An alert raised against a site, as delivered to webhooks."""

    id: int
    title: str
    type: str
    severity: str = Field(default="info")
    message: str = ""
    status: str = "active"
    is_resolved: bool = False
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    site: SiteSummary

    @field_validator("severity")
    @classmethod
    def validate_severity(cls, v):
        """Validate the severity level."""
        if v not in ALERT_SEVERITIES:
            raise ValueError(f"Invalid severity: {v}. Valid severities: {ALERT_SEVERITIES}")
        return v
