"""
USSD session store.

Every mutation is a conditional UPDATE keyed by session_id so that two
overlapping gateway requests for one session cannot clobber each other.
"""

from decimal import Decimal
from typing import Any, Optional

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.vote_session import SessionPaymentStatus, VoteSession

logger = structlog.get_logger(__name__)


class VoteSessionRepository:
    """Repository for USSD vote sessions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _get_rowcount(self, result: Any) -> int:
        """Safely get rowcount from result."""
        return getattr(result, "rowcount", 0) or 0

    async def get(self, session_id: str) -> Optional[VoteSession]:
        """Get a session by its gateway session id."""
        result = await self.db.execute(select(VoteSession).where(VoteSession.session_id == session_id))
        return result.scalar_one_or_none()

    async def _update_selection(
        self,
        session_id: str,
        event_id: str,
        nominee_code: str,
        vote_price: Decimal,
    ) -> bool:
        result = await self.db.execute(
            update(VoteSession)
            .where(
                VoteSession.session_id == session_id,
                VoteSession.payment_reference.is_(None),
            )
            .values(event_id=event_id, nominee_code=nominee_code, vote_price=vote_price)
        )
        return self._get_rowcount(result) > 0

    async def upsert_selection(
        self,
        session_id: str,
        phone_number: str,
        event_id: str,
        nominee_code: str,
        vote_price: Decimal,
    ) -> VoteSession:
        """
        Create the session on first nominee selection, or refresh it on replay.

        A session whose payment is already initiated is returned unchanged.
        """
        existing = await self.get(session_id)
        if existing is None:
            try:
                async with self.db.begin_nested():
                    session = VoteSession(
                        session_id=session_id,
                        phone_number=phone_number,
                        event_id=event_id,
                        nominee_code=nominee_code,
                        vote_price=vote_price,
                    )
                    self.db.add(session)
                    await self.db.flush()
                logger.info("Vote session created", session_id=session_id, event_id=event_id)
                return session
            except IntegrityError:
                # A concurrent retry of the same step inserted it first
                logger.info("Vote session created concurrently", session_id=session_id)

        await self._update_selection(session_id, event_id, nominee_code, vote_price)
        session = await self.get(session_id)
        if session is None:
            raise RuntimeError(f"Vote session {session_id} vanished during upsert")
        await self.db.refresh(session)
        return session

    async def set_vote_count(self, session_id: str, vote_count: int) -> bool:
        """Record the vote count unless a payment has already been initiated."""
        result = await self.db.execute(
            update(VoteSession)
            .where(
                VoteSession.session_id == session_id,
                VoteSession.payment_reference.is_(None),
            )
            .values(vote_count=vote_count)
        )
        return self._get_rowcount(result) > 0

    async def attach_payment(self, session_id: str, payment_reference: str) -> bool:
        """Set the payment reference once and mark the session pending."""
        result = await self.db.execute(
            update(VoteSession)
            .where(
                VoteSession.session_id == session_id,
                VoteSession.payment_reference.is_(None),
            )
            .values(
                payment_reference=payment_reference,
                payment_status=SessionPaymentStatus.PENDING.value,
            )
        )
        return self._get_rowcount(result) > 0

    async def _transition(self, session_id: str, status: SessionPaymentStatus) -> bool:
        result = await self.db.execute(
            update(VoteSession)
            .where(
                VoteSession.session_id == session_id,
                or_(
                    VoteSession.payment_status.is_(None),
                    VoteSession.payment_status == SessionPaymentStatus.PENDING.value,
                ),
            )
            .values(payment_status=status.value)
        )
        return self._get_rowcount(result) > 0

    async def mark_paid(self, session_id: str) -> bool:
        """Mark the session paid; a no-op if it is already terminal."""
        return await self._transition(session_id, SessionPaymentStatus.PAID)

    async def mark_failed(self, session_id: str) -> bool:
        """Mark the session failed; a no-op if it is already terminal."""
        return await self._transition(session_id, SessionPaymentStatus.FAILED)
