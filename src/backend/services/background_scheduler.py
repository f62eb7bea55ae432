"""
Background Scheduler Service

Runs the pending-payment sweep with APScheduler, in-process with the
FastAPI application. The sweep verifies payments that stayed pending past
PAYMENT_SWEEP_MIN_AGE_MINUTES, for when a webhook was lost.
"""

from datetime import timezone
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from db.session import async_session_maker
from services.distributed_lock_service import LOCK_PAYMENT_SWEEP, DistributedLockService
from services.payment_reconciler import PaymentReconciler
from services.paystack_client import get_paystack_client

logger = structlog.get_logger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None


async def payment_sweep_job() -> Optional[dict[str, int]]:
    """
    Verify stale pending payments with the provider.

    Only one replica sweeps at a time; the others skip the run.
    Returns the sweep counters, or None when skipped or failed.
    """
    try:
        async with async_session_maker() as lock_db:
            async with DistributedLockService.acquire_lock(lock_db, LOCK_PAYMENT_SWEEP) as acquired:
                if not acquired:
                    logger.debug("Payment sweep running elsewhere, skipping")
                    return None

                async with async_session_maker() as db:
                    reconciler = PaymentReconciler(db, get_paystack_client())
                    counts = await reconciler.sweep_pending(
                        older_than_minutes=settings.PAYMENT_SWEEP_MIN_AGE_MINUTES,
                        limit=settings.PAYMENT_SWEEP_BATCH_SIZE,
                        abandon_after_minutes=settings.PAYMENT_SWEEP_ABANDON_AFTER_MINUTES,
                    )
                    await db.commit()
                    return counts
    except Exception as e:
        logger.error("Payment sweep job failed", error=str(e), exc_info=True)
        return None


def get_scheduler() -> AsyncIOScheduler:
    """Get the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone=timezone.utc)
    return _scheduler


async def start_scheduler() -> None:
    """Start the background scheduler with the payment sweep job."""
    scheduler = get_scheduler()

    if scheduler.running:
        logger.info("Scheduler already running")
        return

    scheduler.add_job(
        payment_sweep_job,
        trigger=IntervalTrigger(minutes=settings.PAYMENT_SWEEP_INTERVAL_MINUTES),
        id=LOCK_PAYMENT_SWEEP,
        name="Pending Payment Sweep",
        replace_existing=True,
        max_instances=1,
    )
    logger.info("Added payment sweep job", interval_minutes=settings.PAYMENT_SWEEP_INTERVAL_MINUTES)

    scheduler.start()


async def stop_scheduler() -> None:
    """Stop the background scheduler gracefully."""
    global _scheduler

    if _scheduler and _scheduler.running:
        logger.info("Stopping background scheduler...")
        _scheduler.shutdown(wait=True)

    _scheduler = None
