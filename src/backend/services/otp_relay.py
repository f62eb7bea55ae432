"""
OTP relay.

Forwards a one-time passcode to the provider for charges that asked for one.
Holds no state and writes nothing: whatever the provider decides still
reaches us through the webhook or the verify path.
"""

import structlog

from schemas.payment import ProviderChargeResult
from services.paystack_client import PaystackClient

logger = structlog.get_logger(__name__)


class OtpRelay:
    """Submit OTPs to the provider."""

    def __init__(self, paystack: PaystackClient):
        self.paystack = paystack

    async def submit(self, reference: str, otp: str) -> ProviderChargeResult:
        """Forward the OTP and return the provider's answer unchanged."""
        result = await self.paystack.submit_otp(reference=reference, otp=otp.strip())
        logger.info("OTP submitted", reference=reference, provider_status=result.status)
        return result
