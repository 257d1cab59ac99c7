"""
Security Utilities

Bearer tokens for actors (PyJWT, HS256 by default) and gateway payment
signatures.
"""

import hashlib
import hmac
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from coursegate.config import get_settings

ACCESS_TOKEN_TYPE = "access"


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """
    Sign an access token carrying ``data`` as claims.

    Issuer, audience, type and expiry are stamped from settings; the default
    lifetime is ``access_token_expire_minutes``.
    """
    settings = get_settings()
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)

    claims = {
        **data,
        "exp": datetime.now(UTC) + lifetime,
        "type": ACCESS_TOKEN_TYPE,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str, expected_type: str | None = None) -> dict[str, Any] | None:
    """
    Verify a token and return its claims.

    Returns None for a bad signature, an expired token, a foreign issuer or
    audience, or a ``type`` claim other than ``expected_type``.
    """
    settings = get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
        )
    except jwt.InvalidTokenError:
        return None

    if expected_type is not None and payload.get("type") != expected_type:
        return None
    return payload


# =============================================================================
# Payment Signatures
# =============================================================================


def compute_payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    """
    Compute the gateway signature for a captured payment.

    HMAC-SHA256 over "{order_id}|{payment_id}", hex encoded. This is the
    Razorpay checkout convention and must stay byte-for-byte compatible.
    """
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Check a gateway signature in constant time. Any non-matching input is False."""
    expected = compute_payment_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode(), signature.encode())
