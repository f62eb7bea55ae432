"""
Payment repository.

Status transitions are conditional on status='pending', so only the first of
several redundant confirmations changes the row.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.payment import Payment, PaymentSource, PaymentStatus


class PaymentRepository:
    """Repository for payment database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _get_rowcount(self, result: Any) -> int:
        """Safely get rowcount from result."""
        return getattr(result, "rowcount", 0) or 0

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        result = await self.db.execute(select(Payment).where(Payment.transaction_id == transaction_id))
        return result.scalar_one_or_none()

    async def create(
        self,
        transaction_id: str,
        event_id: str,
        category_id: str,
        nominee_id: str,
        amount: Decimal,
        vote_count: int,
        source: PaymentSource,
        session_id: Optional[str] = None,
        phone_number: Optional[str] = None,
        email: Optional[str] = None,
        provider_status: Optional[str] = None,
    ) -> Payment:
        """Insert a pending payment. Raises IntegrityError on a duplicate reference."""
        payment = Payment(
            transaction_id=transaction_id,
            event_id=event_id,
            category_id=category_id,
            nominee_id=nominee_id,
            session_id=session_id,
            phone_number=phone_number,
            email=email,
            amount=amount,
            vote_count=vote_count,
            status=PaymentStatus.PENDING.value,
            source=source.value,
            provider_status=provider_status,
        )
        self.db.add(payment)
        await self.db.flush()
        return payment

    async def _complete(
        self,
        transaction_id: str,
        status: PaymentStatus,
        provider_status: Optional[str],
    ) -> bool:
        values: dict[str, Any] = {
            "status": status.value,
            "completed_at": datetime.now(timezone.utc),
        }
        if provider_status is not None:
            values["provider_status"] = provider_status
        result = await self.db.execute(
            update(Payment)
            .where(
                Payment.transaction_id == transaction_id,
                Payment.status == PaymentStatus.PENDING.value,
            )
            .values(**values)
        )
        return self._get_rowcount(result) > 0

    async def mark_succeeded(self, transaction_id: str, provider_status: Optional[str] = "success") -> bool:
        """Transition pending -> succeeded. False if it was not pending."""
        return await self._complete(transaction_id, PaymentStatus.SUCCEEDED, provider_status)

    async def mark_failed(self, transaction_id: str, provider_status: Optional[str] = None) -> bool:
        """Transition pending -> failed. False if it was not pending."""
        return await self._complete(transaction_id, PaymentStatus.FAILED, provider_status)

    async def list_stale_pending(self, older_than_minutes: int, limit: int = 50) -> list[Payment]:
        """
        Pending payments created before the cutoff and not checked since it.

        Never-checked rows come first, then the least recently checked, so
        payments the provider cannot resolve do not starve newer ones.
        """
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
        result = await self.db.execute(
            select(Payment)
            .where(
                Payment.status == PaymentStatus.PENDING.value,
                Payment.created_at < cutoff,
                or_(Payment.last_checked_at.is_(None), Payment.last_checked_at < cutoff),
            )
            .order_by(Payment.last_checked_at.asc().nulls_first(), Payment.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def record_check(self, transaction_id: str) -> bool:
        """Stamp a sweep attempt on a payment that is still pending."""
        result = await self.db.execute(
            update(Payment)
            .where(
                Payment.transaction_id == transaction_id,
                Payment.status == PaymentStatus.PENDING.value,
            )
            .values(
                last_checked_at=datetime.now(timezone.utc),
                check_attempts=Payment.check_attempts + 1,
            )
        )
        return self._get_rowcount(result) > 0
