"""
Webhook payload signing.

Signatures are computed over the exact bytes sent as the request body,
so receivers verify by HMAC-ing the raw body they received.
"""
import hmac
import hashlib


SIGNATURE_PREFIX = "sha256="


def sign_payload(body: bytes, secret: str | None) -> str:
    """
    Generate the X-Webhook-Signature value for an outbound body.

    Returns "sha256=<hex digest>", or an empty string when the endpoint
    has no secret (unsigned delivery is allowed).
    """
    if not secret:
        return ""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: bytes, secret: str | None, signature: str) -> bool:
    """Check a received signature header against the raw body."""
    expected = sign_payload(body, secret)
    return hmac.compare_digest(expected, signature or "")
