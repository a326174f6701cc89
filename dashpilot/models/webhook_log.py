"""Webhook delivery attempt log."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from dashpilot.db import Base

# Response bodies and error texts are stored truncated to this many characters
MAX_RESPONSE_BODY_LENGTH = 1000


class WebhookLog(Base):
    """One row per webhook delivery attempt, successful or not.

    Rows are written by the dispatcher after every attempt and are never
    updated afterwards.
    """

    __tablename__ = "webhook_logs"
    __table_args__ = (
        Index("idx_webhook_log_webhook", "webhook_id"),
        Index("idx_webhook_log_event_type", "event_type"),
        Index("idx_webhook_log_success", "success"),
    )
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    webhook_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("webhooks.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String, nullable=False)

    # Payload as queued, without the signature field
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # 0 when the request failed before a response was received
    response_status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<WebhookLog(id={self.id}, webhook_id={self.webhook_id}, "
            f"attempt={self.attempt_number}, status={self.response_status}, success={self.success})>"
        )
