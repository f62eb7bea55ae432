"""
Tests for the pending-payment sweep job.
"""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from services import background_scheduler


def fake_lock(acquired: bool):
    @asynccontextmanager
    async def _acquire_lock(db, lock_name, timeout_seconds=300):
        yield acquired

    return _acquire_lock


@pytest.fixture
def session_maker(mock_db_session):
    @asynccontextmanager
    async def _maker():
        yield mock_db_session

    return _maker


@pytest.mark.unit
class TestPaymentSweepJob:
    """background_scheduler.payment_sweep_job."""

    async def test_sweeps_and_commits_when_lock_acquired(self, session_maker, mock_db_session) -> None:
        counts = {"checked": 2, "credited": 1, "failed": 0, "errors": 1}

        with (
            patch.object(background_scheduler, "async_session_maker", session_maker),
            patch.object(background_scheduler.DistributedLockService, "acquire_lock", fake_lock(True)),
            patch.object(background_scheduler, "get_paystack_client", MagicMock()),
            patch.object(background_scheduler, "PaymentReconciler") as reconciler_cls,
        ):
            reconciler_cls.return_value.sweep_pending = AsyncMock(return_value=counts)
            result = await background_scheduler.payment_sweep_job()

        assert result == counts
        mock_db_session.commit.assert_awaited_once()
        reconciler_cls.return_value.sweep_pending.assert_awaited_once_with(
            older_than_minutes=background_scheduler.settings.PAYMENT_SWEEP_MIN_AGE_MINUTES,
            limit=background_scheduler.settings.PAYMENT_SWEEP_BATCH_SIZE,
            abandon_after_minutes=background_scheduler.settings.PAYMENT_SWEEP_ABANDON_AFTER_MINUTES,
        )

    async def test_skips_when_lock_held_elsewhere(self, session_maker) -> None:
        with (
            patch.object(background_scheduler, "async_session_maker", session_maker),
            patch.object(background_scheduler.DistributedLockService, "acquire_lock", fake_lock(False)),
            patch.object(background_scheduler, "PaymentReconciler") as reconciler_cls,
        ):
            result = await background_scheduler.payment_sweep_job()

        assert result is None
        reconciler_cls.assert_not_called()

    async def test_errors_do_not_escape(self, session_maker) -> None:
        with (
            patch.object(background_scheduler, "async_session_maker", session_maker),
            patch.object(background_scheduler.DistributedLockService, "acquire_lock", fake_lock(True)),
            patch.object(background_scheduler, "get_paystack_client", MagicMock()),
            patch.object(background_scheduler, "PaymentReconciler") as reconciler_cls,
        ):
            reconciler_cls.return_value.sweep_pending = AsyncMock(side_effect=RuntimeError("db down"))
            result = await background_scheduler.payment_sweep_job()

        assert result is None
