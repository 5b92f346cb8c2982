"""HMAC verification of inbound webhook signatures."""

import base64
import hashlib
import hmac


def pos_signature(signature_key: str, notification_url: str, body: bytes) -> str:
    """Compute the Square signature: base64 HMAC-SHA256 over URL + body."""
    digest = hmac.new(signature_key.encode(), notification_url.encode() + body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def marketplace_signature(secret: str, body: bytes) -> str:
    """Compute the Uber Eats signature: hex HMAC-SHA256 over the body."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_pos_signature(signature_key: str, notification_url: str, body: bytes, signature: str | None) -> bool:
    """Return True if `signature` matches the Square signature of the request.

    Args:
        signature_key: Webhook signature key of the subscription
        notification_url: URL the notification was sent to, as registered
        body: Raw request body
        signature: Value of the x-square-hmacsha256-signature header
    """
    if not signature:
        return False
    expected = pos_signature(signature_key, notification_url, body)
    return hmac.compare_digest(expected.encode(), signature.encode())


def verify_marketplace_signature(secret: str, body: bytes, signature: str | None) -> bool:
    if not signature:
        return False
    expected = marketplace_signature(secret, body)
    return hmac.compare_digest(expected.encode(), signature.strip().lower().encode())
