"""
Payment reconciliation: the webhook (push) and verify (pull) paths.

Both paths, the synchronous `success` charge outcome and the pending-payment
sweep all end in confirm_payment(), which hands the actual crediting to
VoteCreditingEngine. None of them deduplicate on their own.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from core.security import is_valid_webhook_signature
from models.payment import PaymentStatus
from repositories.payment_repository import PaymentRepository
from repositories.vote_session_repository import VoteSessionRepository
from schemas.payment import CreditResult, VerifyResponse, WebhookEvent
from services.payment_errors import (
    InvalidPaymentRequestError,
    PaymentNotFoundError,
    PaymentProviderError,
    WebhookSignatureError,
)
from services.paystack_client import PaystackClient
from services.vote_crediting import VoteCreditingEngine

logger = structlog.get_logger(__name__)

CHARGE_SUCCESS_EVENT = "charge.success"

# Provider transaction statuses that are final failures
FAILED_TRANSACTION_STATUSES = {"failed", "abandoned", "reversed"}

# provider_status recorded on payments failed locally
AMOUNT_MISMATCH = "amount_mismatch"
PROVIDER_NOT_FOUND = "not_found"

# Verify answers for a reference the provider never saw a charge for
NOT_FOUND_STATUS_CODES = {400, 404}

DEFAULT_ABANDON_AFTER_MINUTES = 1440


@dataclass
class WebhookOutcome:
    """What a webhook delivery did."""

    event: str
    reference: Optional[str] = None
    handled: bool = False
    credit: Optional[CreditResult] = None


class PaymentReconciler:
    """Advances payments and sessions from provider confirmations."""

    def __init__(self, db: AsyncSession, paystack: PaystackClient):
        self.db = db
        self.paystack = paystack
        self.payments = PaymentRepository(db)
        self.sessions = VoteSessionRepository(db)
        self.crediting = VoteCreditingEngine(db)

    # -------------------------------------------------------------------------
    # Webhook (push)
    # -------------------------------------------------------------------------

    @staticmethod
    def verify_signature(raw_body: bytes, signature: Optional[str]) -> None:
        """Raise WebhookSignatureError unless the signature matches the raw body."""
        if not is_valid_webhook_signature(raw_body, signature):
            raise WebhookSignatureError("Webhook signature mismatch")

    @staticmethod
    def parse_event(raw_body: bytes) -> WebhookEvent:
        try:
            return WebhookEvent.model_validate(json.loads(raw_body))
        except (ValueError, ValidationError) as e:
            raise InvalidPaymentRequestError(f"Malformed webhook payload: {e}") from e

    async def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> WebhookOutcome:
        """
        Authenticate and apply one webhook delivery.

        Raises:
            WebhookSignatureError: Signature missing or wrong; nothing was read or written.
            InvalidPaymentRequestError: Signed but unparseable body.
            PaymentNotFoundError: charge.success for an unknown reference.
        """
        self.verify_signature(raw_body, signature)
        event = self.parse_event(raw_body)
        log = logger.bind(webhook_event=event.event, reference=event.data.reference)

        if event.event != CHARGE_SUCCESS_EVENT:
            log.info("Webhook acknowledged without action")
            return WebhookOutcome(event=event.event, reference=event.data.reference)

        credit = await self.confirm_payment(
            event.data.reference,
            session_id=event.session_id,
            amount_minor=event.data.amount,
        )
        log.info("Webhook processed", credited=credit.credited, already_credited=credit.already_credited)
        return WebhookOutcome(
            event=event.event,
            reference=event.data.reference,
            handled=True,
            credit=credit,
        )

    # -------------------------------------------------------------------------
    # Shared confirmation
    # -------------------------------------------------------------------------

    async def confirm_payment(
        self,
        reference: str,
        session_id: Optional[str] = None,
        amount_minor: Optional[int] = None,
    ) -> CreditResult:
        """
        Apply a provider-confirmed success: mark the session paid, then credit.

        Raises:
            PaymentNotFoundError: The payment row is not (yet) visible.
        """
        payment = await self.payments.get_by_transaction_id(reference)
        if payment is None:
            logger.warning("Confirmation for unknown payment", reference=reference)
            raise PaymentNotFoundError(reference)

        if amount_minor is not None and amount_minor != payment.amount_minor:
            logger.error(
                "Provider amount does not match payment, failing for manual review",
                reference=reference,
                expected_minor=payment.amount_minor,
                received_minor=amount_minor,
            )
            await self.fail_payment(reference, AMOUNT_MISMATCH)
            return CreditResult(transaction_id=reference, credited=False, reason=AMOUNT_MISMATCH)

        if payment.status == PaymentStatus.FAILED.value:
            logger.warning("Success reported for a payment already marked failed", reference=reference)
            return CreditResult(transaction_id=reference, credited=False, reason="payment_failed")

        session_id = session_id or payment.session_id
        if session_id:
            await self.sessions.mark_paid(session_id)

        return await self.crediting.credit(reference)

    async def fail_payment(self, reference: str, provider_status: str) -> bool:
        """Move a pending payment (and its session) to failed."""
        payment = await self.payments.get_by_transaction_id(reference)
        if payment is None:
            raise PaymentNotFoundError(reference)

        changed = await self.payments.mark_failed(reference, provider_status=provider_status)
        if changed and payment.session_id:
            await self.sessions.mark_failed(payment.session_id)
        logger.info("Payment marked failed", reference=reference, provider_status=provider_status, changed=changed)
        return changed

    # -------------------------------------------------------------------------
    # Verify (pull)
    # -------------------------------------------------------------------------

    async def verify(self, reference: str) -> VerifyResponse:
        """
        Ask the provider for the transaction state and apply it.

        Raises:
            PaymentProviderError: Provider unreachable or rejected the lookup.
            PaymentNotFoundError: No local payment for the reference.
        """
        transaction = await self.paystack.verify_transaction(reference)
        credit: Optional[CreditResult] = None

        if transaction.status == "success":
            session_id = transaction.metadata.get("sessionId") or transaction.metadata.get("session_id")
            credit = await self.confirm_payment(
                reference,
                session_id=str(session_id) if session_id else None,
                amount_minor=transaction.amount,
            )
        elif transaction.status in FAILED_TRANSACTION_STATUSES:
            await self.fail_payment(reference, transaction.status)
        elif await self.payments.get_by_transaction_id(reference) is None:
            raise PaymentNotFoundError(reference)

        payment = await self.payments.get_by_transaction_id(reference)
        if payment is not None:
            await self.db.refresh(payment)
        return VerifyResponse(
            reference=reference,
            provider_status=transaction.status,
            payment_status=payment.status if payment else PaymentStatus.PENDING.value,
            credit=credit,
        )

    async def sweep_pending(
        self,
        older_than_minutes: int,
        limit: int = 50,
        abandon_after_minutes: int = DEFAULT_ABANDON_AFTER_MINUTES,
    ) -> dict[str, int]:
        """
        Verify stale pending payments whose webhook never arrived.

        Each payment is applied in its own savepoint so one bad reference does
        not undo the others, and every attempt is stamped on the row so the
        next run moves on to payments checked less recently. A payment the
        provider still reports as unknown after abandon_after_minutes is
        failed. The caller commits.
        """
        stale = await self.payments.list_stale_pending(older_than_minutes, limit)
        counts = {"checked": 0, "credited": 0, "failed": 0, "errors": 0}
        now = datetime.now(timezone.utc)

        for payment in stale:
            reference = payment.transaction_id
            created_at = payment.created_at
            counts["checked"] += 1
            try:
                async with self.db.begin_nested():
                    result = await self.verify(reference)
            except PaymentProviderError as e:
                if created_at.tzinfo is None:
                    created_at = created_at.replace(tzinfo=timezone.utc)
                abandoned = now - created_at >= timedelta(minutes=abandon_after_minutes)
                if e.status_code in NOT_FOUND_STATUS_CODES and abandoned:
                    await self.fail_payment(reference, PROVIDER_NOT_FOUND)
                    counts["failed"] += 1
                else:
                    counts["errors"] += 1
                    logger.warning("Pending payment sweep skipped reference", reference=reference, error=str(e))
                    await self.payments.record_check(reference)
                continue
            except PaymentNotFoundError as e:
                counts["errors"] += 1
                logger.warning("Pending payment sweep skipped reference", reference=reference, error=str(e))
                continue

            if result.credit is not None and result.credit.credited:
                counts["credited"] += 1
            elif result.payment_status == PaymentStatus.FAILED.value:
                counts["failed"] += 1
            else:
                await self.payments.record_check(reference)

        logger.info("Pending payment sweep finished", **counts)
        return counts
