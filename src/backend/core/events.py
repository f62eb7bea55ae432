"""
Application lifecycle event handlers.

Manages startup and shutdown of logging, the database, the pending-payment
sweep scheduler and the Paystack HTTP client.
"""

from typing import Callable

import structlog
from fastapi import FastAPI

from core.config import settings
from core.logging import setup_logging
from db.session import close_db, init_db
from services.paystack_client import close_paystack_client

logger = structlog.get_logger(__name__)


def create_start_app_handler(app: FastAPI) -> Callable:
    """Create startup event handler."""

    async def start_app() -> None:
        setup_logging()
        logger.info("Starting eVote API...", env=settings.APP_ENV)

        await init_db()
        logger.info("Database initialized")

        # Pull-model fallback for payments whose webhook never arrived
        if settings.PAYMENT_SWEEP_ENABLED:
            try:
                from services.background_scheduler import start_scheduler

                await start_scheduler()
                logger.info("Background scheduler started successfully")
            except Exception as e:
                logger.exception("Failed to start background scheduler", error=str(e))
                logger.warning("Pending payments will only settle via webhook or verify")

        logger.info("eVote API started successfully")

    return start_app


def create_stop_app_handler(app: FastAPI) -> Callable:
    """Create shutdown event handler."""

    async def stop_app() -> None:
        logger.info("Shutting down eVote API...")

        if settings.PAYMENT_SWEEP_ENABLED:
            try:
                from services.background_scheduler import stop_scheduler

                await stop_scheduler()
                logger.info("Background scheduler stopped")
            except Exception as e:
                logger.warning("Background scheduler cleanup failed", error=str(e))

        await close_paystack_client()
        await close_db()

        logger.info("eVote API shutdown complete")

    return stop_app
