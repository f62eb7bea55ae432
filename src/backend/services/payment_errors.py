"""
Payment subsystem exceptions.

Routes translate these into USSD END texts or HTTP status codes; services
never swallow them.
"""


class PaymentError(Exception):
    """Base exception for payment operations."""

    pass


class PaymentProviderError(PaymentError):
    """The provider rejected the call, returned garbage, or timed out."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PaymentNotFoundError(PaymentError):
    """No local payment for a provider reference (may not be committed yet)."""

    def __init__(self, reference: str):
        super().__init__(f"No payment for reference {reference}")
        self.reference = reference


class WebhookSignatureError(PaymentError):
    """Webhook body and signature do not match."""

    pass


class SessionNotFoundError(PaymentError):
    """USSD session missing or expired at a step that needs it."""

    pass


class InvalidPaymentRequestError(PaymentError):
    """Request is well-formed but cannot be charged (closed event, bad nominee...)."""

    pass
