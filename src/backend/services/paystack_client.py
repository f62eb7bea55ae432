"""
Paystack API client.

Thin async wrapper over the three endpoints the voting flow needs:
- POST /charge                      start a mobile money charge
- POST /charge/submit_otp           continue a charge that asked for an OTP
- GET  /transaction/verify/{ref}    pull the final state of a transaction

Every failure (transport, timeout, non-2xx, `status: false`, unparseable
body) surfaces as PaymentProviderError. Nothing here retries.
"""

from decimal import Decimal
from typing import Any, Optional

import httpx
import structlog

from core.config import settings
from core.logging import mask_phone
from schemas.payment import ProviderChargeResult, ProviderTransaction
from services.payment_errors import PaymentProviderError

logger = structlog.get_logger(__name__)

# Charge statuses that mean the provider refused outright
FAILED_CHARGE_STATUSES = {"failed"}


def to_minor_units(amount: Decimal) -> int:
    """GHS -> pesewas."""
    return int((amount * 100).quantize(Decimal("1")))


class PaystackClient:
    """Async Paystack client bound to one secret key."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._secret_key = secret_key or settings.PAYSTACK_SECRET_KEY
        self._base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self._timeout = timeout_seconds or settings.PAYSTACK_TIMEOUT_SECONDS
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={
                    "Authorization": f"Bearer {self._secret_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, json: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """Send a request and return the `data` object of a successful response."""
        client = self._get_client()
        try:
            response = await client.request(method, path, json=json)
        except httpx.TimeoutException as e:
            logger.error("Paystack request timed out", path=path)
            raise PaymentProviderError("Payment provider timed out") from e
        except httpx.HTTPError as e:
            logger.error("Paystack request failed", path=path, error=str(e))
            raise PaymentProviderError(f"Payment provider unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            logger.error("Paystack returned non-JSON body", path=path, status_code=response.status_code)
            raise PaymentProviderError("Malformed provider response", response.status_code) from e

        if response.status_code >= 400 or not body.get("status"):
            message = body.get("message") or "Payment provider rejected the request"
            logger.warning(
                "Paystack request rejected",
                path=path,
                status_code=response.status_code,
                provider_message=message,
            )
            raise PaymentProviderError(message, response.status_code)

        data = body.get("data")
        if not isinstance(data, dict):
            raise PaymentProviderError("Provider response has no data", response.status_code)
        data.setdefault("message", body.get("message"))
        return data

    @staticmethod
    def _charge_result(
        data: dict[str, Any],
        reference: str,
        raise_on_failure: bool = True,
    ) -> ProviderChargeResult:
        status = str(data.get("status") or "pending")
        if raise_on_failure and status in FAILED_CHARGE_STATUSES:
            raise PaymentProviderError(
                data.get("gateway_response") or data.get("message") or "Charge failed"
            )
        return ProviderChargeResult(
            reference=data.get("reference") or reference,
            status=status,
            display_text=data.get("display_text"),
            message=data.get("message"),
        )

    async def charge_mobile_money(
        self,
        reference: str,
        amount: Decimal,
        phone_number: str,
        network: str,
        email: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ProviderChargeResult:
        """Start a mobile money charge. `amount` is in major units."""
        payload: dict[str, Any] = {
            "reference": reference,
            "amount": to_minor_units(amount),
            "currency": settings.PAYSTACK_CURRENCY,
            "email": email or settings.PAYSTACK_DEFAULT_EMAIL,
            "mobile_money": {"phone": phone_number, "provider": network},
            "metadata": metadata or {},
        }
        logger.info(
            "Initiating mobile money charge",
            reference=reference,
            network=network,
            phone=mask_phone(phone_number),
            amount_minor=payload["amount"],
        )
        data = await self._request("POST", "/charge", json=payload)
        return self._charge_result(data, reference)

    async def submit_otp(self, reference: str, otp: str) -> ProviderChargeResult:
        """Forward an OTP for a charge in `send_otp` state."""
        data = await self._request("POST", "/charge/submit_otp", json={"reference": reference, "otp": otp})
        return self._charge_result(data, reference, raise_on_failure=False)

    async def verify_transaction(self, reference: str) -> ProviderTransaction:
        """Fetch the authoritative state of a transaction."""
        data = await self._request("GET", f"/transaction/verify/{reference}")
        metadata = data.get("metadata")
        return ProviderTransaction(
            reference=data.get("reference") or reference,
            status=str(data.get("status") or "pending"),
            amount=data.get("amount"),
            currency=data.get("currency"),
            metadata=metadata if isinstance(metadata, dict) else {},
            gateway_response=data.get("gateway_response"),
        )


# Singleton instance
_paystack_client: Optional[PaystackClient] = None


def get_paystack_client() -> PaystackClient:
    """FastAPI dependency returning the process-wide client."""
    global _paystack_client
    if _paystack_client is None:
        _paystack_client = PaystackClient()
    return _paystack_client


async def close_paystack_client() -> None:
    global _paystack_client
    if _paystack_client is not None:
        await _paystack_client.close()
        _paystack_client = None
