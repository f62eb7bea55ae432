"""
Distributed Lock Service

Coordinates background jobs across application replicas using the
distributed_locks table and optimistic version checks, so only one
instance runs a given job at a time.

The lock only coordinates jobs. Payment crediting never relies on it.
"""

import os
import socket
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.distributed_lock import DistributedLock

logger = structlog.get_logger(__name__)

# How long a lock is valid before it is considered stale
DEFAULT_LOCK_TIMEOUT_SECONDS = 300

LOCK_PAYMENT_SWEEP = "payment_sweep"

_instance_id: Optional[str] = None


def get_instance_id() -> str:
    """Identify this replica as hostname:pid."""
    global _instance_id
    if _instance_id is None:
        _instance_id = f"{socket.gethostname()}:{os.getpid()}"
    return _instance_id


class DistributedLockService:
    """
    Acquire and release named job locks.

    Usage:
        async with DistributedLockService.acquire_lock(db, LOCK_PAYMENT_SWEEP) as acquired:
            if acquired:
                ...
    """

    @staticmethod
    async def ensure_lock_exists(db: AsyncSession, lock_name: str) -> DistributedLock:
        """Return the lock row, creating it on first use."""
        lock = await DistributedLockService.get_lock_status(db, lock_name)
        if lock is not None:
            return lock

        try:
            db.add(DistributedLock(lock_name=lock_name, is_locked=False))
            await db.commit()
            logger.info("Created lock record", lock_name=lock_name)
        except IntegrityError:
            # Another replica created it first
            await db.rollback()

        lock = await DistributedLockService.get_lock_status(db, lock_name)
        if lock is None:
            raise RuntimeError(f"Lock record {lock_name} could not be created")
        return lock

    @staticmethod
    async def try_acquire(
        db: AsyncSession,
        lock_name: str,
        timeout_seconds: int = DEFAULT_LOCK_TIMEOUT_SECONDS,
    ) -> bool:
        """
        Take the lock if it is free or expired.

        The UPDATE is conditional on the version read, so two replicas racing
        for the same expired lock cannot both win.
        """
        instance_id = get_instance_id()
        now = datetime.now(timezone.utc)

        try:
            lock = await DistributedLockService.ensure_lock_exists(db, lock_name)

            if lock.is_locked and not lock.is_expired(now):
                logger.debug("Lock held elsewhere", lock_name=lock_name, locked_by=lock.locked_by)
                return False

            result = await db.execute(
                update(DistributedLock)
                .where(
                    DistributedLock.lock_name == lock_name,
                    DistributedLock.version == lock.version,
                )
                .values(
                    is_locked=True,
                    locked_by=instance_id,
                    locked_at=now,
                    expires_at=now + timedelta(seconds=timeout_seconds),
                    version=lock.version + 1,
                )
            )

            if getattr(result, "rowcount", 0) == 1:
                await db.commit()
                logger.info("Lock acquired", lock_name=lock_name, instance=instance_id)
                return True

            await db.rollback()
            logger.debug("Lost lock acquisition race", lock_name=lock_name)
            return False

        except SQLAlchemyError as e:
            logger.error("Error acquiring lock", lock_name=lock_name, error=str(e))
            await db.rollback()
            return False

    @staticmethod
    async def release(
        db: AsyncSession,
        lock_name: str,
        success: bool = True,
        result_notes: Optional[str] = None,
    ) -> bool:
        """Release a lock held by this instance and record the run result."""
        instance_id = get_instance_id()

        try:
            result = await db.execute(
                update(DistributedLock)
                .where(
                    DistributedLock.lock_name == lock_name,
                    DistributedLock.locked_by == instance_id,
                )
                .values(
                    is_locked=False,
                    locked_by=None,
                    locked_at=None,
                    expires_at=None,
                    last_run_at=datetime.now(timezone.utc),
                    last_run_result=result_notes or ("success" if success else "failed"),
                )
            )

            if getattr(result, "rowcount", 0) == 1:
                await db.commit()
                logger.info("Lock released", lock_name=lock_name, instance=instance_id)
                return True

            await db.rollback()
            logger.warning("Lock release failed, not held by this instance", lock_name=lock_name)
            return False

        except SQLAlchemyError as e:
            logger.error("Error releasing lock", lock_name=lock_name, error=str(e))
            await db.rollback()
            return False

    @staticmethod
    @asynccontextmanager
    async def acquire_lock(
        db: AsyncSession,
        lock_name: str,
        timeout_seconds: int = DEFAULT_LOCK_TIMEOUT_SECONDS,
    ) -> AsyncGenerator[bool, None]:
        """Yield whether the lock was acquired; release it on exit."""
        acquired = await DistributedLockService.try_acquire(db, lock_name, timeout_seconds)
        success = True
        result_notes = None

        try:
            yield acquired
        except Exception as e:
            success = False
            result_notes = str(e)[:500]
            raise
        finally:
            if acquired:
                await DistributedLockService.release(db, lock_name, success, result_notes)

    @staticmethod
    async def get_lock_status(db: AsyncSession, lock_name: str) -> Optional[DistributedLock]:
        result = await db.execute(select(DistributedLock).where(DistributedLock.lock_name == lock_name))
        return result.scalar_one_or_none()
