"""Scheduler lease model for single-owner scheduled jobs."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from dashpilot.db import Base


class SchedulerLease(Base):
    """Time-bounded ownership of a named scheduled job.

    When several DashPilot instances run their own scheduler, only the
    instance currently holding the lease executes the job.
    """

    __tablename__ = "scheduler_leases"

    name: Mapped[str] = mapped_column(String, primary_key=True)
    owner: Mapped[str] = mapped_column(String, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<SchedulerLease(name={self.name}, owner={self.owner}, expires_at={self.expires_at})>"
