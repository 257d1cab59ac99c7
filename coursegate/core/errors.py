"""
Domain Errors

Typed exceptions raised by the services. The HTTP layer maps them to
responses in one exception handler (see main.py); services never build
HTTP responses themselves.
"""

from typing import Any


class CoursegateError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    error: str = "internal_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(CoursegateError):
    """Malformed input: bad format, missing field, out-of-range value."""

    status_code = 400
    error = "validation_error"


class Unauthenticated(CoursegateError):
    """Missing or invalid credential."""

    status_code = 401
    error = "unauthenticated"


class AuthorizationError(CoursegateError):
    """Valid credential, wrong tenant or role."""

    status_code = 403
    error = "forbidden"


class NotFoundError(CoursegateError):
    """Entity absent, or hidden from the caller."""

    status_code = 404
    error = "not_found"


class ConflictError(CoursegateError):
    """State-machine transition rejected because of the current state."""

    status_code = 409
    error = "conflict"

    def __init__(
        self,
        message: str,
        current_state: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.current_state = current_state
        merged = dict(details or {})
        if current_state is not None:
            merged["current_state"] = current_state
        super().__init__(message, merged or None)


class PolicyError(CoursegateError):
    """Business-rule rejection (refund window closed, quota reached)."""

    status_code = 400
    error = "policy_violation"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        *,
        rate_limited: bool = False,
    ):
        if rate_limited:
            self.status_code = 429
        super().__init__(message, details)


class GatewayError(CoursegateError):
    """External payment or SMS provider failure.

    `message` is safe to show to callers; `internal_detail` is only logged.
    """

    status_code = 502
    error = "gateway_error"

    def __init__(self, message: str, internal_detail: str | None = None):
        self.internal_detail = internal_detail
        super().__init__(message)
