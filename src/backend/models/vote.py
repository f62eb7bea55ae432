"""
Vote model for PostgreSQL storage.

One row per purchased vote. Rows are only ever written by the crediting
engine, in a single batch per paid transaction.
"""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import DateTime, Index, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class Vote(Base):
    """
    Credited vote.

    EXACTLY-ONCE DESIGN:
    - A batch for transaction T is numbered sequence 0..n-1
    - (transaction_id, sequence) is unique, so a second batch for T
      collides on (T, 0) and its whole transaction rolls back
    - "Is T already credited?" is a lookup of (T, 0)
    """

    __tablename__ = "votes"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    nominee_id: Mapped[str] = mapped_column(String(36), index=True)
    category_id: Mapped[str] = mapped_column(String(36), index=True)
    event_id: Mapped[str] = mapped_column(String(36), index=True)

    transaction_id: Mapped[str] = mapped_column(String(100))
    sequence: Mapped[int] = mapped_column(Integer, default=0)

    # Per-vote share of the payment
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True,
    )

    __table_args__ = (
        UniqueConstraint("transaction_id", "sequence", name="uq_votes_transaction_sequence"),
        Index("ix_votes_event_nominee", "event_id", "nominee_id"),
    )
