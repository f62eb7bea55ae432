"""
Tests for the distributed job lock.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from models.distributed_lock import DistributedLock
from services.distributed_lock_service import (
    LOCK_PAYMENT_SWEEP,
    DistributedLockService,
    get_instance_id,
)


def select_result(lock):
    result = MagicMock()
    result.scalar_one_or_none = MagicMock(return_value=lock)
    return result


def update_result(rowcount: int):
    result = MagicMock()
    result.rowcount = rowcount
    return result


@pytest.mark.unit
class TestTryAcquire:
    """DistributedLockService.try_acquire."""

    async def test_acquires_free_lock(self, mock_db_session) -> None:
        lock = DistributedLock(lock_name=LOCK_PAYMENT_SWEEP, is_locked=False, version=3)
        mock_db_session.execute = AsyncMock(side_effect=[select_result(lock), update_result(1)])

        assert await DistributedLockService.try_acquire(mock_db_session, LOCK_PAYMENT_SWEEP) is True
        mock_db_session.commit.assert_awaited_once()

    async def test_held_lock_not_acquired(self, mock_db_session) -> None:
        lock = DistributedLock(
            lock_name=LOCK_PAYMENT_SWEEP,
            is_locked=True,
            locked_by="other:1",
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=5),
            version=3,
        )
        mock_db_session.execute = AsyncMock(return_value=select_result(lock))

        assert await DistributedLockService.try_acquire(mock_db_session, LOCK_PAYMENT_SWEEP) is False
        assert mock_db_session.execute.await_count == 1

    async def test_expired_lock_is_taken_over(self, mock_db_session) -> None:
        lock = DistributedLock(
            lock_name=LOCK_PAYMENT_SWEEP,
            is_locked=True,
            locked_by="crashed:1",
            expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
            version=3,
        )
        mock_db_session.execute = AsyncMock(side_effect=[select_result(lock), update_result(1)])

        assert await DistributedLockService.try_acquire(mock_db_session, LOCK_PAYMENT_SWEEP) is True

    async def test_lost_race(self, mock_db_session) -> None:
        lock = DistributedLock(lock_name=LOCK_PAYMENT_SWEEP, is_locked=False, version=3)
        mock_db_session.execute = AsyncMock(side_effect=[select_result(lock), update_result(0)])

        assert await DistributedLockService.try_acquire(mock_db_session, LOCK_PAYMENT_SWEEP) is False
        mock_db_session.rollback.assert_awaited_once()

    async def test_creates_missing_lock_row(self, mock_db_session) -> None:
        created = DistributedLock(lock_name=LOCK_PAYMENT_SWEEP, is_locked=False, version=0)
        mock_db_session.execute = AsyncMock(
            side_effect=[select_result(None), select_result(created), update_result(1)]
        )

        assert await DistributedLockService.try_acquire(mock_db_session, LOCK_PAYMENT_SWEEP) is True
        mock_db_session.add.assert_called_once()


@pytest.mark.unit
class TestAcquireLockContext:
    """DistributedLockService.acquire_lock."""

    async def test_releases_after_work(self, mock_db_session) -> None:
        lock = DistributedLock(lock_name=LOCK_PAYMENT_SWEEP, is_locked=False, version=0)
        mock_db_session.execute = AsyncMock(
            side_effect=[select_result(lock), update_result(1), update_result(1)]
        )

        async with DistributedLockService.acquire_lock(mock_db_session, LOCK_PAYMENT_SWEEP) as acquired:
            assert acquired is True

        assert mock_db_session.execute.await_count == 3

    async def test_not_released_when_not_acquired(self, mock_db_session) -> None:
        lock = DistributedLock(
            lock_name=LOCK_PAYMENT_SWEEP,
            is_locked=True,
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=5),
            version=0,
        )
        mock_db_session.execute = AsyncMock(return_value=select_result(lock))

        async with DistributedLockService.acquire_lock(mock_db_session, LOCK_PAYMENT_SWEEP) as acquired:
            assert acquired is False

        assert mock_db_session.execute.await_count == 1


@pytest.mark.unit
def test_instance_id_is_stable() -> None:
    assert get_instance_id() == get_instance_id()
    assert ":" in get_instance_id()
