"""
Payment Initiator.

Starts a mobile money charge for a USSD session and records it locally.
The provider is called first; the Payment row and the session's payment
reference are written only after the provider accepted the charge, so a
provider failure leaves nothing behind.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.logging import mask_phone
from core.security import app_payment_reference, ussd_payment_reference
from models.payment import PaymentSource
from repositories.catalog_repository import CatalogRepository
from repositories.payment_repository import PaymentRepository
from repositories.vote_session_repository import VoteSessionRepository
from schemas.payment import AppPaymentResponse, ChargeOutcome, CreditResult
from services.payment_errors import InvalidPaymentRequestError, SessionNotFoundError
from services.payment_reconciler import PaymentReconciler
from services.paystack_client import PaystackClient, to_minor_units

logger = structlog.get_logger(__name__)

DEFAULT_INSTRUCTIONS = {
    ChargeOutcome.PAY_OFFLINE: "Please approve the payment prompt on your phone to complete your vote.",
    ChargeOutcome.SEND_OTP: "Enter the OTP sent to your phone to complete payment.",
    ChargeOutcome.SUCCESS: "Payment received. Your votes have been recorded.",
    ChargeOutcome.PENDING: "Your payment is being processed.",
}


@dataclass
class InitiationResult:
    """Outcome of a USSD charge initiation."""

    reference: str
    outcome: ChargeOutcome
    instructions: str
    already_initiated: bool = False
    credit: Optional[CreditResult] = None


class PaymentInitiator:
    """Creates Payment rows and starts provider charges."""

    def __init__(self, db: AsyncSession, paystack: PaystackClient):
        self.db = db
        self.paystack = paystack
        self.catalog = CatalogRepository(db)
        self.payments = PaymentRepository(db)
        self.sessions = VoteSessionRepository(db)

    async def initiate(self, session_id: str, network: str, phone_number: str) -> InitiationResult:
        """
        Charge the total of a USSD session.

        Raises:
            SessionNotFoundError: Session missing.
            InvalidPaymentRequestError: Session incomplete or nominee gone.
            PaymentProviderError: Provider refused, failed or timed out.
        """
        session = await self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"No vote session {session_id}")
        if not session.nominee_code or not session.vote_count:
            raise InvalidPaymentRequestError("Session has no nominee or vote count")

        if session.payment_reference:
            logger.info("Charge already initiated for session", session_id=session_id)
            return InitiationResult(
                reference=session.payment_reference,
                outcome=ChargeOutcome.PENDING,
                instructions="A payment for this vote is already in progress.",
                already_initiated=True,
            )

        context = await self.catalog.resolve_nominee_code(session.nominee_code)
        if context is None:
            raise InvalidPaymentRequestError(f"Nominee {session.nominee_code} is no longer available")

        total = session.total_amount
        reference = ussd_payment_reference(session_id)

        charge = await self.paystack.charge_mobile_money(
            reference=reference,
            amount=total,
            phone_number=phone_number,
            network=network,
            metadata={
                "sessionId": session_id,
                "nomineeCode": session.nominee_code,
                "voteCount": session.vote_count,
                "phoneNumber": phone_number,
                "source": PaymentSource.USSD.value,
            },
        )
        reference = charge.reference

        try:
            async with self.db.begin_nested():
                await self.payments.create(
                    transaction_id=reference,
                    event_id=context.event.id,
                    category_id=context.category.id,
                    nominee_id=context.nominee.id,
                    amount=total,
                    vote_count=session.vote_count,
                    source=PaymentSource.USSD,
                    session_id=session_id,
                    phone_number=phone_number,
                    provider_status=charge.status,
                )
        except IntegrityError:
            logger.info("Payment row already recorded by a concurrent request", reference=reference)

        await self.sessions.attach_payment(session_id, reference)

        logger.info(
            "Charge initiated",
            reference=reference,
            session_id=session_id,
            outcome=charge.outcome.value,
            phone=mask_phone(phone_number),
            amount=str(total),
        )

        credit = None
        if charge.outcome == ChargeOutcome.SUCCESS:
            reconciler = PaymentReconciler(self.db, self.paystack)
            credit = await reconciler.confirm_payment(reference, session_id=session_id)

        return InitiationResult(
            reference=reference,
            outcome=charge.outcome,
            instructions=charge.display_text or DEFAULT_INSTRUCTIONS[charge.outcome],
            credit=credit,
        )

    async def initiate_app_payment(
        self,
        nominee_id: str,
        vote_count: int,
        email: Optional[str] = None,
    ) -> AppPaymentResponse:
        """
        Record a pending payment for a web/app checkout.

        The client completes the charge with the provider; completion arrives
        through verify or the webhook like any other payment.
        """
        if vote_count <= 0 or vote_count > settings.MAX_VOTES_PER_TRANSACTION:
            raise InvalidPaymentRequestError("Vote count must be a positive integer within the allowed limit")

        context = await self.catalog.resolve_nominee_id(nominee_id)
        if context is None:
            raise InvalidPaymentRequestError("Nominee not found")
        if not context.event.is_open_for_voting():
            raise InvalidPaymentRequestError("Voting is not open for this event")

        amount = (context.event.vote_price * vote_count).quantize(Decimal("0.01"))
        reference = app_payment_reference(vote_count)

        await self.payments.create(
            transaction_id=reference,
            event_id=context.event.id,
            category_id=context.category.id,
            nominee_id=context.nominee.id,
            amount=amount,
            vote_count=vote_count,
            source=PaymentSource.APP,
            email=email,
        )
        logger.info("App payment created", reference=reference, nominee_id=nominee_id, vote_count=vote_count)

        return AppPaymentResponse(
            reference=reference,
            amount=amount,
            amount_minor=to_minor_units(amount),
            currency=settings.PAYSTACK_CURRENCY,
            vote_count=vote_count,
            callback_url=settings.PAYSTACK_CALLBACK_URL,
        )
