"""
Passkey code generation and format checks.

Codes are typed in by students, so the alphabet leaves out 0, O, 1 and I.
Existing issued codes depend on this exact alphabet.
"""

import re
import secrets

from coursegate.core.errors import ValidationError

PASSKEY_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
PASSKEY_CODE_LENGTH = 10


def generate_code(length: int = PASSKEY_CODE_LENGTH) -> str:
    """Draw one random code from the passkey alphabet."""
    return "".join(secrets.choice(PASSKEY_ALPHABET) for _ in range(length))


def normalize_code(raw: str) -> str:
    return raw.strip().upper()


def is_valid_code(code: str, length: int = PASSKEY_CODE_LENGTH) -> bool:
    return re.fullmatch(rf"[{PASSKEY_ALPHABET}]{{{length}}}", code) is not None


def validate_code(raw: str | None, length: int = PASSKEY_CODE_LENGTH) -> str:
    """
    Normalize a user-supplied code and check its format.

    Raises:
        ValidationError: If the code is missing or malformed
    """
    if not raw:
        raise ValidationError("Passkey is required")
    code = normalize_code(raw)
    if not is_valid_code(code, length):
        raise ValidationError("Invalid passkey format", {"expected_length": length})
    return code
