"""SiteCheck model for persisted health check results."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from dashpilot.db import Base


class SiteCheck(Base):
    """Snapshot of one automated or manual check against a site."""

    __tablename__ = "site_checks"
    __table_args__ = (Index("idx_site_check_site_checked_at", "site_id", "checked_at"),)

    TYPE_UPTIME = "uptime"
    TYPE_PERFORMANCE = "performance"
    TYPE_SECURITY = "security"
    TYPE_BACKUP = "backup"

    STATUS_PASS = "pass"
    STATUS_WARNING = "warning"
    STATUS_FAIL = "fail"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False
    )
    check_type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=STATUS_PASS)
    response_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    checked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<SiteCheck(id={self.id}, site_id={self.site_id}, type={self.check_type}, status={self.status})>"
