"""
Vote Crediting Engine.

The only code that creates Vote rows. Turns "the provider says transaction T
succeeded" into exactly one batch of votes, no matter how many times, or
through how many paths (webhook, verify, synchronous charge, sweeper), the
success is reported.

Enforcement is in the database, not in process memory:
- votes(transaction_id, sequence) is unique, so a second batch for T fails
  on (T, 0) and its savepoint rolls back completely
- payments.status flips pending -> succeeded with a conditional UPDATE
The webhook and the verify path may run in different processes; whichever
commits second hits the constraint and reports already_credited.
"""

from decimal import ROUND_DOWN, Decimal

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.payment import PaymentStatus
from repositories.payment_repository import PaymentRepository
from repositories.vote_repository import VoteRepository
from schemas.payment import CreditResult
from services.payment_errors import PaymentNotFoundError

logger = structlog.get_logger(__name__)


class VoteCreditingEngine:
    """Idempotent crediting of paid transactions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.payments = PaymentRepository(db)
        self.votes = VoteRepository(db)

    async def credit(self, transaction_id: str) -> CreditResult:
        """
        Credit the votes bought by a confirmed-successful transaction.

        Returns a CreditResult; calling it again for the same transaction is
        a no-op reported as already_credited.

        Raises:
            PaymentNotFoundError: No local payment carries this reference.
        """
        log = logger.bind(reference=transaction_id)

        try:
            async with self.db.begin_nested():
                if await self.votes.exists_for_transaction(transaction_id):
                    log.info("Transaction already credited")
                    return CreditResult(
                        transaction_id=transaction_id,
                        credited=False,
                        already_credited=True,
                    )

                payment = await self.payments.get_by_transaction_id(transaction_id)
                if payment is None:
                    raise PaymentNotFoundError(transaction_id)

                if payment.status == PaymentStatus.FAILED.value:
                    # Terminal states are never reversed
                    log.warning("Refusing to credit a failed payment")
                    return CreditResult(
                        transaction_id=transaction_id,
                        credited=False,
                        reason="payment_failed",
                    )

                amount_per_vote = (payment.amount / payment.vote_count).quantize(
                    Decimal("0.01"), rounding=ROUND_DOWN
                )
                votes = await self.votes.create_batch(
                    transaction_id=transaction_id,
                    nominee_id=payment.nominee_id,
                    category_id=payment.category_id,
                    event_id=payment.event_id,
                    vote_count=payment.vote_count,
                    amount_per_vote=amount_per_vote,
                )
                await self.payments.mark_succeeded(transaction_id)
        except IntegrityError:
            # Lost the race: another path committed this batch first
            log.info("Concurrent crediting detected, batch discarded")
            return CreditResult(
                transaction_id=transaction_id,
                credited=False,
                already_credited=True,
            )

        log.info(
            "Votes credited",
            nominee_id=payment.nominee_id,
            event_id=payment.event_id,
            votes=len(votes),
        )
        return CreditResult(
            transaction_id=transaction_id,
            credited=True,
            votes_created=len(votes),
        )
