"""
Payment endpoints.

- webhook: provider push, authenticated by HMAC-SHA512 over the raw body
- verify / callback: pull the provider's view of a transaction and apply it
- otp: relay an OTP for a charge that asked for one
- initialize: record a pending payment for the web/app checkout
"""

from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from api.deps import get_otp_relay, get_payment_initiator, get_payment_reconciler
from core.security import PAYSTACK_SIGNATURE_HEADER
from schemas.payment import (
    AppPaymentRequest,
    AppPaymentResponse,
    OtpSubmitRequest,
    OtpSubmitResponse,
    VerifyResponse,
)
from services.otp_relay import OtpRelay
from services.payment_errors import (
    InvalidPaymentRequestError,
    PaymentNotFoundError,
    PaymentProviderError,
    WebhookSignatureError,
)
from services.payment_initiator import PaymentInitiator
from services.payment_reconciler import PaymentReconciler

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/webhook")
async def paystack_webhook(
    request: Request,
    reconciler: Annotated[PaymentReconciler, Depends(get_payment_reconciler)],
    signature: Annotated[Optional[str], Header(alias=PAYSTACK_SIGNATURE_HEADER)] = None,
) -> dict:
    """
    Receive a Paystack event.

    The signature is checked against the exact bytes received, before any
    parsing. Unknown references answer 404 so the provider retries later.
    """
    raw_body = await request.body()

    try:
        outcome = await reconciler.handle_webhook(raw_body, signature)
    except WebhookSignatureError:
        logger.warning(
            "Rejected webhook with invalid signature",
            client=request.client.host if request.client else None,
            has_signature=signature is not None,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature",
        )
    except InvalidPaymentRequestError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    except PaymentNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )

    return {
        "status": "ok",
        "event": outcome.event,
        "handled": outcome.handled,
        "credited": bool(outcome.credit and outcome.credit.credited),
    }


async def _verify(reference: str, reconciler: PaymentReconciler) -> VerifyResponse:
    try:
        return await reconciler.verify(reference)
    except PaymentNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )
    except PaymentProviderError as e:
        logger.warning("Verification failed at provider", reference=reference, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Payment provider unavailable",
        )


@router.get("/verify/{reference}", response_model=VerifyResponse)
async def verify_payment(
    reference: str,
    reconciler: Annotated[PaymentReconciler, Depends(get_payment_reconciler)],
) -> VerifyResponse:
    """Verify a transaction with the provider and credit it if it succeeded."""
    return await _verify(reference, reconciler)


@router.get("/callback", response_model=VerifyResponse)
async def payment_callback(
    reconciler: Annotated[PaymentReconciler, Depends(get_payment_reconciler)],
    reference: str = Query(..., min_length=1),
) -> VerifyResponse:
    """Redirect target after a hosted checkout; same as verify."""
    return await _verify(reference, reconciler)


@router.post("/otp", response_model=OtpSubmitResponse)
async def submit_otp(
    body: OtpSubmitRequest,
    relay: Annotated[OtpRelay, Depends(get_otp_relay)],
) -> OtpSubmitResponse:
    """Forward an OTP to the provider and return its answer."""
    try:
        result = await relay.submit(body.reference, body.otp)
    except PaymentProviderError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        )

    return OtpSubmitResponse(
        success=result.status != "failed",
        status=result.status,
        display_text=result.display_text or result.message,
    )


@router.post("/initialize", response_model=AppPaymentResponse, status_code=status.HTTP_201_CREATED)
async def initialize_payment(
    body: AppPaymentRequest,
    initiator: Annotated[PaymentInitiator, Depends(get_payment_initiator)],
) -> AppPaymentResponse:
    """Create a pending payment for the web/app checkout."""
    try:
        return await initiator.initiate_app_payment(body.nominee_id, body.vote_count, body.email)
    except InvalidPaymentRequestError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
