"""
HMAC signature verification for gateway callbacks.

Two things arrive signed with HMAC-SHA256:

- Payment confirmations from the checkout: the digest covers the UTF-8
  string ``order_id + "|" + payment_id`` keyed with the API key secret.
- Refund webhooks: the digest covers the exact raw request body, keyed with
  the webhook secret, and arrives in the ``X-Razorpay-Signature`` header.
  Verify before parsing: re-serialized JSON is not byte-identical.

Every function here is pure and never raises on bad input; anything that
does not verify is simply ``False``.

Usage:
    from billing.signatures import verify_webhook

    if not verify_webhook(request.body, signature, settings.RAZORPAY_WEBHOOK_SECRET):
        return HttpResponse("Invalid signature", status=401)
"""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_HEADER = "HTTP_X_RAZORPAY_SIGNATURE"


def _to_bytes(value: bytes | str) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def sign(payload: bytes | str, secret: bytes | str) -> str:
    """Return the lowercase hex HMAC-SHA256 of payload."""
    return hmac.new(_to_bytes(secret), _to_bytes(payload), hashlib.sha256).hexdigest()


def verify(
    candidate: str | None,
    payload: bytes | str,
    secret: bytes | str | None,
) -> bool:
    """
    Check candidate against the expected digest in constant time.

    Hex case and surrounding whitespace in the candidate are ignored. Missing
    secret, missing candidate, or a candidate that is not ASCII all return
    False rather than raising.
    """
    if not candidate or not secret:
        return False
    if not isinstance(candidate, str):
        return False

    expected = sign(payload, secret)
    try:
        given = candidate.strip().lower().encode("ascii")
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(expected.encode("ascii"), given)


def payment_confirmation_payload(order_id: str, payment_id: str) -> bytes:
    return f"{order_id}|{payment_id}".encode("utf-8")


def verify_payment_confirmation(
    order_id: str,
    payment_id: str,
    signature: str | None,
    secret: bytes | str | None,
) -> bool:
    return verify(signature, payment_confirmation_payload(order_id, payment_id), secret)


def verify_webhook(
    raw_body: bytes,
    signature: str | None,
    secret: bytes | str | None,
) -> bool:
    return verify(signature, raw_body, secret)
