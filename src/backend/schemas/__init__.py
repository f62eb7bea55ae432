"""Schemas module initialization."""

from schemas.payment import (
    AppPaymentRequest,
    AppPaymentResponse,
    ChargeOutcome,
    CreditResult,
    OtpSubmitRequest,
    OtpSubmitResponse,
    ProviderChargeResult,
    ProviderTransaction,
    VerifyResponse,
    WebhookEvent,
)

__all__ = [
    "AppPaymentRequest",
    "AppPaymentResponse",
    "ChargeOutcome",
    "CreditResult",
    "OtpSubmitRequest",
    "OtpSubmitResponse",
    "ProviderChargeResult",
    "ProviderTransaction",
    "VerifyResponse",
    "WebhookEvent",
]
