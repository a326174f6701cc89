"""Webhook endpoint model for outbound event notifications."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from dashpilot.db import Base


class Webhook(Base):
    """Webhook endpoint configured by an agency user.

    Webhooks receive an HTTP POST whenever a subscribed event occurs
    (e.g., alert_created, alert_resolved). The URL is validated against
    private/internal addresses when the endpoint is created or updated.
    """

    __tablename__ = "webhooks"
    __table_args__ = (Index("idx_webhook_owner", "owner_id"),)
    # Load server-side timestamps on flush instead of lazily
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False, default="Webhook")
    url: Mapped[str] = mapped_column(String, nullable=False)

    # Fernet-encrypted HMAC secret; NULL means deliveries are unsigned
    secret: Mapped[str | None] = mapped_column(String, nullable=True)

    # Event types to deliver; "*" subscribes to everything
    events: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Only written by a successful delivery
    last_triggered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Webhook(id={self.id}, name='{self.name}', url='{self.url}', is_active={self.is_active})>"

    @property
    def has_secret(self) -> bool:
        return bool(self.secret)

    def subscribes_to(self, event_type: str) -> bool:
        """Return True if this endpoint listens to the given event type."""
        events = self.events or []
        return event_type in events or "*" in events
