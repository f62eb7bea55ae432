"""
USSD voting session model.

One row per gateway session id. Holds only cross-step content (chosen
nominee, price, vote count, payment correlation); the menu position is
always re-derived from the gateway's accumulated input.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class SessionPaymentStatus(str, Enum):
    """Payment progress of a USSD session (NULL means no charge yet)."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class VoteSession(Base):
    """In-progress USSD vote purchase."""

    __tablename__ = "vote_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Gateway-issued identifier; correlates every step of one dial
    session_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    phone_number: Mapped[str] = mapped_column(String(32))

    event_id: Mapped[str] = mapped_column(String(36), index=True)
    nominee_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    vote_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    vote_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Written once, when the charge is initiated
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    payment_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    def is_expired(self, timeout_seconds: int, now: Optional[datetime] = None) -> bool:
        """Gateway sessions are abandoned after a provider-defined timeout."""
        now = now or datetime.now(timezone.utc)
        created_at = self.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return now - created_at > timedelta(seconds=timeout_seconds)

    @property
    def is_terminal(self) -> bool:
        return self.payment_status in (SessionPaymentStatus.PAID.value, SessionPaymentStatus.FAILED.value)

    @property
    def total_amount(self) -> Decimal:
        """Total charge in major currency units."""
        return (self.vote_price * (self.vote_count or 0)).quantize(Decimal("0.01"))

    def __repr__(self) -> str:
        return f"<VoteSession(session_id={self.session_id}, status={self.payment_status})>"
