"""
Distributed job lock model.

Lets several API replicas share one scheduler configuration while only one
of them runs a given periodic job (e.g. the pending-payment sweep) at a time.
It coordinates jobs only; payment crediting never relies on it.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class DistributedLock(Base):
    """
    One row per named job.

    Acquisition is an optimistic-version conditional update:
    UPDATE ... SET is_locked=true, version=v+1 WHERE lock_name=? AND version=v.
    expires_at bounds how long a crashed holder can block others.
    """

    __tablename__ = "distributed_locks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lock_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    locked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_run_result: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def is_expired(self, now: datetime | None = None) -> bool:
        if not self.expires_at:
            return True
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return (now or datetime.now(timezone.utc)) >= expires_at

    def __repr__(self) -> str:
        return f"<DistributedLock(name={self.lock_name}, locked={self.is_locked}, by={self.locked_by})>"
