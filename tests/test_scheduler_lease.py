"""Tests for scheduler leases (dashpilot/services/scheduler_lease.py)."""

import logging
from datetime import UTC, datetime, timedelta

from dashpilot.models.scheduler_lease import SchedulerLease
from dashpilot.services.scheduler_lease import SchedulerLeaseService


class TestSchedulerLeaseService:
    async def test_first_acquire_creates_lease(self, db):
        assert await SchedulerLeaseService.acquire(db, "health-checks", "host-a", 300) is True

        lease = await db.get(SchedulerLease, "health-checks")
        assert lease.owner == "host-a"

    async def test_owner_can_renew(self, db):
        assert await SchedulerLeaseService.acquire(db, "health-checks", "host-a", 300) is True
        assert await SchedulerLeaseService.acquire(db, "health-checks", "host-a", 300) is True

    async def test_other_owner_blocked_while_valid(self, db):
        await SchedulerLeaseService.acquire(db, "health-checks", "host-a", 300)

        assert await SchedulerLeaseService.acquire(db, "health-checks", "host-b", 300) is False

    async def test_other_owner_takes_expired_lease(self, db):
        db.add(
            SchedulerLease(
                name="health-checks",
                owner="host-a",
                expires_at=datetime.now(UTC) - timedelta(seconds=1),
            )
        )
        await db.commit()

        assert await SchedulerLeaseService.acquire(db, "health-checks", "host-b", 300) is True

        db.expunge_all()
        lease = await db.get(SchedulerLease, "health-checks")
        assert lease.owner == "host-b"

    async def test_release_only_by_owner(self, db):
        await SchedulerLeaseService.acquire(db, "health-checks", "host-a", 300)

        assert await SchedulerLeaseService.release(db, "health-checks", "host-b") is False
        assert await SchedulerLeaseService.release(db, "health-checks", "host-a") is True
        assert await SchedulerLeaseService.acquire(db, "health-checks", "host-b", 300) is True

    async def test_leases_are_independent(self, db):
        assert await SchedulerLeaseService.acquire(db, "health-checks", "host-a", 300) is True
        assert await SchedulerLeaseService.acquire(db, "reports", "host-b", 300) is True

    async def test_blocked_owner_reports_current_holder(self, db, caplog):
        await SchedulerLeaseService.acquire(db, "health-checks", "host-a", 300)

        with caplog.at_level(logging.DEBUG, logger="dashpilot.services.scheduler_lease"):
            assert await SchedulerLeaseService.acquire(db, "health-checks", "host-b", 300) is False

        assert "held by host-a" in caplog.text

        # Session stays usable after the blocked attempt
        db.expunge_all()
        lease = await db.get(SchedulerLease, "health-checks")
        assert lease.owner == "host-a"
