"""Database leases that give one scheduler instance ownership of a job."""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dashpilot.models.scheduler_lease import SchedulerLease

logger = logging.getLogger(__name__)


class SchedulerLeaseService:
    """Acquire, renew and release named leases in ``scheduler_leases``."""

    @staticmethod
    async def acquire(db: AsyncSession, name: str, owner: str, ttl_seconds: int) -> bool:
        """Acquire or renew a lease.

        Succeeds when the lease is unclaimed, already held by ``owner``, or
        expired. The holder renews it by acquiring again.

        Args:
            db: Database session
            name: Lease name
            owner: Identifier of the calling instance
            ttl_seconds: Lease duration

        Returns:
            True if ``owner`` now holds the lease
        """
        now = datetime.now(UTC)
        expires_at = now + timedelta(seconds=ttl_seconds)

        result = await db.execute(
            update(SchedulerLease)
            .where(
                SchedulerLease.name == name,
                or_(SchedulerLease.owner == owner, SchedulerLease.expires_at < now),
            )
            .values(owner=owner, expires_at=expires_at)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount:
            await db.commit()
            return True

        existing = await db.get(SchedulerLease, name, populate_existing=True)
        if existing is not None:
            holder, held_until = existing.owner, existing.expires_at
            # Rollback expires every loaded instance, including existing
            await db.rollback()
            logger.debug(f"Lease '{name}' is held by {holder} until {held_until}")
            return False

        db.add(SchedulerLease(name=name, owner=owner, expires_at=expires_at))
        try:
            await db.commit()
        except IntegrityError:
            # Another instance created it first
            await db.rollback()
            return False

        logger.info(f"Lease '{name}' acquired by {owner}")
        return True

    @staticmethod
    async def release(db: AsyncSession, name: str, owner: str) -> bool:
        """Release a lease held by ``owner``.

        Returns:
            True if a lease was released
        """
        result = await db.execute(
            delete(SchedulerLease)
            .where(SchedulerLease.name == name, SchedulerLease.owner == owner)
            .execution_options(synchronize_session="fetch")
        )
        await db.commit()
        if result.rowcount:
            logger.info(f"Lease '{name}' released by {owner}")
            return True
        return False
