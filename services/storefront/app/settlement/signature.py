"""Gateway signature checks.

These run server-side only. The signing secret is the gateway key secret and
must never be sent to the storefront client.
"""

from __future__ import annotations

import hashlib
import hmac


def sign_payment(gateway_order_id: str, gateway_payment_id: str, secret: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(
    gateway_order_id: str,
    gateway_payment_id: str,
    signature: str,
    secret: str,
) -> bool:
    """Return True only if `signature` was issued for this order/payment pair.

    Fails closed: missing or malformed input is a mismatch, never an exception.
    """

    if not all(
        isinstance(v, str) and v for v in (gateway_order_id, gateway_payment_id, signature, secret)
    ):
        return False

    expected = sign_payment(gateway_order_id, gateway_payment_id, secret)
    return _digests_match(expected, signature)


def sign_webhook(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: bytes, signature: str, secret: str) -> bool:
    if not isinstance(body, (bytes, bytearray)):
        return False
    if not all(isinstance(v, str) and v for v in (signature, secret)):
        return False

    expected = sign_webhook(bytes(body), secret)
    return _digests_match(expected, signature)


def _digests_match(expected: str, supplied: str) -> bool:
    # compare_digest rejects non-ASCII str input with TypeError.
    try:
        supplied_bytes = supplied.encode("ascii")
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(expected.encode("ascii"), supplied_bytes)
