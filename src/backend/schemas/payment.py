"""
Payment-related Pydantic schemas.

Covers the Paystack wire formats (charge, OTP, verify, webhook envelope)
and the request/response bodies of the payments API.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChargeOutcome(str, Enum):
    """How the provider answered a charge initiation."""

    PAY_OFFLINE = "pay_offline"  # User approves on the handset (mobile money prompt)
    SEND_OTP = "send_otp"  # Provider needs an OTP before it can proceed
    SUCCESS = "success"  # Charged synchronously
    PENDING = "pending"  # Any other status; text forwarded verbatim


class ProviderChargeResult(BaseModel):
    """Normalized result of a charge or OTP submission call."""

    reference: str
    status: str
    display_text: Optional[str] = None
    message: Optional[str] = None

    @property
    def outcome(self) -> ChargeOutcome:
        try:
            return ChargeOutcome(self.status)
        except ValueError:
            return ChargeOutcome.PENDING


class ProviderTransaction(BaseModel):
    """Normalized result of a verify-by-reference call."""

    reference: str
    status: str
    amount: Optional[int] = Field(None, description="Amount in minor units (pesewas)")
    currency: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    gateway_response: Optional[str] = None


class WebhookData(BaseModel):
    """Data payload of a Paystack webhook event."""

    model_config = ConfigDict(extra="allow")

    reference: str
    amount: Optional[int] = None
    status: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    customer: Optional[dict[str, Any]] = None


class WebhookEvent(BaseModel):
    """Paystack webhook envelope."""

    model_config = ConfigDict(extra="allow")

    event: str
    data: WebhookData

    @property
    def session_id(self) -> Optional[str]:
        metadata = self.data.metadata or {}
        value = metadata.get("sessionId") or metadata.get("session_id")
        return str(value) if value else None


# =============================================================================
# API bodies
# =============================================================================


class OtpSubmitRequest(BaseModel):
    """Body of POST /payments/otp."""

    reference: str = Field(..., min_length=1, max_length=100)
    otp: str = Field(..., min_length=3, max_length=10, pattern=r"^\d+$")


class OtpSubmitResponse(BaseModel):
    success: bool = True
    status: str
    display_text: Optional[str] = None


class AppPaymentRequest(BaseModel):
    """Body of POST /payments/initialize (web/app checkout)."""

    nominee_id: str
    vote_count: int = Field(1, gt=0)
    email: Optional[str] = None


class AppPaymentResponse(BaseModel):
    success: bool = True
    reference: str
    amount: Decimal
    amount_minor: int
    currency: str
    vote_count: int
    callback_url: Optional[str] = None


class CreditResult(BaseModel):
    """Outcome of one crediting attempt."""

    transaction_id: str
    credited: bool
    already_credited: bool = False
    votes_created: int = 0
    reason: Optional[str] = None


class VerifyResponse(BaseModel):
    """Body returned by the verify and callback endpoints."""

    reference: str
    provider_status: str
    payment_status: str
    credit: Optional[CreditResult] = None
