"""
Payment model.

A Payment correlates a provider transaction with what it buys. Status moves
only from pending to succeeded or failed; every transition is a
conditional update so redundant confirmations are harmless.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import DateTime, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class PaymentStatus(str, Enum):
    """Payment lifecycle status."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PaymentSource(str, Enum):
    """Channel that initiated the payment."""

    USSD = "ussd"
    APP = "app"


class Payment(Base):
    """Local record of a provider charge."""

    __tablename__ = "payments"

    __table_args__ = (
        # Sweeper query: "pending payments older than N minutes, least recently checked first"
        Index("ix_payments_status_created", "status", "created_at"),
        Index("ix_payments_status_checked", "status", "last_checked_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))

    # Provider reference; primary correlation key
    transaction_id: Mapped[str] = mapped_column(String(100), unique=True, index=True)

    event_id: Mapped[str] = mapped_column(String(36), index=True)
    category_id: Mapped[str] = mapped_column(String(36))
    nominee_id: Mapped[str] = mapped_column(String(36), index=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)

    phone_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Major units (GHS); the provider is sent minor units (pesewas)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    vote_count: Mapped[int] = mapped_column(Integer)

    status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.PENDING.value, index=True)
    source: Mapped[str] = mapped_column(String(10), default=PaymentSource.USSD.value)
    provider_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

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
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Last time the sweeper asked the provider about this payment
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    check_attempts: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    @property
    def amount_minor(self) -> int:
        """Amount in the smallest currency unit."""
        return int((self.amount * 100).quantize(Decimal("1")))

    def __repr__(self) -> str:
        return f"<Payment(transaction_id={self.transaction_id}, status={self.status})>"
