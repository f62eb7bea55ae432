"""Security utilities for payment callbacks and transaction references.

Paystack signs every webhook with HMAC-SHA512 over the raw request body,
keyed with the account secret key.
"""

import hashlib
import hmac
import secrets
import time

from core.config import settings

# Header Paystack uses for the webhook signature
PAYSTACK_SIGNATURE_HEADER = "x-paystack-signature"


def compute_webhook_signature(raw_body: bytes, secret_key: str | None = None) -> str:
    """Compute the hex HMAC-SHA512 of a raw webhook body."""
    key = (secret_key or settings.PAYSTACK_SECRET_KEY).encode()
    return hmac.new(key, raw_body, hashlib.sha512).hexdigest()


def is_valid_webhook_signature(
    raw_body: bytes,
    signature: str | None,
    secret_key: str | None = None,
) -> bool:
    """
    Check a webhook signature against the unparsed body.

    The body must be the exact bytes received; re-serialized JSON will
    not match.
    """
    if not signature:
        return False
    expected = compute_webhook_signature(raw_body, secret_key)
    return hmac.compare_digest(expected.encode(), signature.encode())


def ussd_payment_reference(session_id: str) -> str:
    """
    Deterministic provider reference for a USSD session.

    A retried final step for the same session produces the same reference,
    so the provider rejects the duplicate charge instead of billing twice.
    """
    digest = hashlib.sha256(session_id.encode()).hexdigest()
    return f"ussd_{digest[:24]}"


def app_payment_reference(vote_count: int) -> str:
    """Unique reference for an app-initiated payment."""
    return f"vote_{int(time.time() * 1000)}_vc{vote_count}_{secrets.token_hex(4)}"
