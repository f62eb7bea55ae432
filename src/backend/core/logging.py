"""
Structured logging setup.

Routes structlog through the standard library so uvicorn, SQLAlchemy and
application logs share one stream.
"""

import logging
import sys

import structlog

from core.config import settings


def setup_logging() -> None:
    """Configure structlog and the root logger from settings."""
    level = settings.LOG_LEVEL.upper()

    logging.basicConfig(
        level=level,
        stream=sys.stdout,
        format="%(message)s",
    )

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.DEBUG
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def mask_phone(phone_number: str | None) -> str:
    """Keep only enough of a phone number to correlate logs."""
    if not phone_number:
        return ""
    return f"{phone_number[:6]}***"
