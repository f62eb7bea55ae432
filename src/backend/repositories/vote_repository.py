"""
Vote repository for database operations.

Only the crediting engine should call create_batch.
"""

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.vote import Vote


class VoteRepository:
    """Repository for vote database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def exists_for_transaction(self, transaction_id: str) -> bool:
        """Check whether a transaction has already been credited."""
        result = await self.db.execute(
            select(func.count(Vote.id)).where(
                Vote.transaction_id == transaction_id,
                Vote.sequence == 0,
            )
        )
        count = result.scalar() or 0
        return count > 0

    async def create_batch(
        self,
        transaction_id: str,
        nominee_id: str,
        category_id: str,
        event_id: str,
        vote_count: int,
        amount_per_vote: Decimal,
    ) -> list[Vote]:
        """
        Insert one row per vote.

        Raises IntegrityError if any row of this transaction already exists.
        """
        votes = [
            Vote(
                transaction_id=transaction_id,
                sequence=sequence,
                nominee_id=nominee_id,
                category_id=category_id,
                event_id=event_id,
                amount=amount_per_vote,
            )
            for sequence in range(vote_count)
        ]
        self.db.add_all(votes)
        await self.db.flush()
        return votes

