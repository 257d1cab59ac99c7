"""
Unit tests for security utilities.

Tests JWT encoding/decoding and payment signature checks.
"""

from datetime import timedelta

import pytest


@pytest.mark.unit
class TestJWTTokens:
    """Tests for JWT token functions."""

    def test_create_and_decode_access_token(self):
        """Test access token creation and decoding."""
        from coursegate.core.security import create_access_token, decode_token

        token = create_access_token({"sub": "student-123", "role": "STUDENT"})

        payload = decode_token(token, expected_type="access")
        assert payload is not None
        assert payload["sub"] == "student-123"
        assert payload["role"] == "STUDENT"
        assert payload["type"] == "access"

    def test_expired_token_returns_none(self):
        """Test that an expired token does not decode."""
        from coursegate.core.security import create_access_token, decode_token

        token = create_access_token({"sub": "student-123"}, expires_delta=timedelta(seconds=-1))

        assert decode_token(token) is None

    def test_wrong_type_returns_none(self):
        """Test that the expected type is enforced."""
        from coursegate.core.security import create_access_token, decode_token

        token = create_access_token({"sub": "student-123"})

        assert decode_token(token, expected_type="refresh") is None

    def test_tampered_token_returns_none(self):
        """Test that a modified token is rejected."""
        from coursegate.core.security import create_access_token, decode_token

        token = create_access_token({"sub": "student-123"})
        tampered = token[:-4] + ("AAAA" if not token.endswith("AAAA") else "BBBB")

        assert decode_token(tampered) is None


@pytest.mark.unit
class TestPaymentSignature:
    """Tests for gateway signature computation."""

    def test_signature_is_hmac_sha256_of_order_and_payment(self):
        """Test the signature matches HMAC-SHA256 over 'order|payment'."""
        import hashlib
        import hmac

        from coursegate.core.security import compute_payment_signature

        expected = hmac.new(b"secret", b"order_1|pay_1", hashlib.sha256).hexdigest()

        assert compute_payment_signature("order_1", "pay_1", "secret") == expected

    def test_verify_accepts_valid_signature(self):
        from coursegate.core.security import compute_payment_signature, verify_payment_signature

        signature = compute_payment_signature("order_1", "pay_1", "secret")

        assert verify_payment_signature("order_1", "pay_1", signature, "secret") is True

    def test_verify_rejects_other_payment(self):
        """Test a signature does not carry over to another payment id."""
        from coursegate.core.security import compute_payment_signature, verify_payment_signature

        signature = compute_payment_signature("order_1", "pay_1", "secret")

        assert verify_payment_signature("order_1", "pay_2", signature, "secret") is False
        assert verify_payment_signature("order_1", "pay_1", signature, "other") is False

    def test_verify_rejects_non_ascii_signature(self):
        """Test a garbled signature is a mismatch, not an error."""
        from coursegate.core.security import verify_payment_signature

        assert verify_payment_signature("order_1", "pay_1", "é" * 64, "secret") is False
        assert verify_payment_signature("order_1", "pay_1", "", "secret") is False
