"""Site model for managed client websites."""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from dashpilot.db import Base

SITE_TYPES = ("wordpress", "shopify", "woocommerce", "custom")
SITE_STATUSES = ("healthy", "warning", "critical", "offline", "archived")


class Site(Base):
    """A client website monitored by the scheduled health checks."""

    __tablename__ = "sites"
    __table_args__ = (Index("idx_site_status", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    url: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    type: Mapped[str] = mapped_column(String, nullable=False, default="wordpress")
    status: Mapped[str] = mapped_column(String, nullable=False, default="healthy")
    health_score: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    last_checked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # WordPress health endpoint credentials (API key is Fernet-encrypted)
    wp_api_url: Mapped[str | None] = mapped_column(String, nullable=True)
    wp_api_key: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Site(id={self.id}, name='{self.name}', status={self.status})>"
