"""
Passkey state rules.

Pure functions over a passkey and a clock. Every read path asks
effective_status() instead of trusting the stored status, so a passkey whose
window has passed reads as EXPIRED before the reconciliation job rewrites it.
"""

import math
from datetime import datetime, timedelta
from typing import Protocol

from coursegate.models.enums import PasskeyStatus

EXPIRABLE_STATUSES = frozenset(
    {
        PasskeyStatus.PLATFORM_FEE_PAID,
        PasskeyStatus.COURSE_ACCESS_PENDING,
        PasskeyStatus.FULLY_ACTIVE,
        PasskeyStatus.ACTIVE,
    }
)

# Statuses that let a student into content
USABLE_STATUSES = frozenset({PasskeyStatus.FULLY_ACTIVE, PasskeyStatus.ACTIVE})

TERMINAL_STATUSES = frozenset({PasskeyStatus.REVOKED})

CLAIMABLE_STATUSES = frozenset({PasskeyStatus.PENDING, PasskeyStatus.GENERATED})

# Allowed source statuses for record_payment, per payment type
PAYABLE_STATUSES = frozenset(
    {
        PasskeyStatus.STUDENT_ASSIGNED,
        PasskeyStatus.PLATFORM_FEE_PENDING,
        PasskeyStatus.COURSE_ACCESS_PENDING,
    }
)


class PasskeyLike(Protocol):
    status: str
    expires_at: datetime | None


def stored_status(passkey: PasskeyLike) -> PasskeyStatus:
    return PasskeyStatus(passkey.status)


def effective_status(passkey: PasskeyLike, now: datetime) -> PasskeyStatus:
    """
    Status of a passkey as of `now`.

    An expirable status whose expires_at is at or before `now` reads as
    EXPIRED. Everything else is the stored status.
    """
    status = stored_status(passkey)
    if (
        status in EXPIRABLE_STATUSES
        and passkey.expires_at is not None
        and passkey.expires_at <= now
    ):
        return PasskeyStatus.EXPIRED
    return status


def is_usable(passkey: PasskeyLike, now: datetime) -> bool:
    """Active with time left."""
    return effective_status(passkey, now) in USABLE_STATUSES and (
        passkey.expires_at is not None and passkey.expires_at > now
    )


def remaining_days(passkey: PasskeyLike, now: datetime) -> int:
    """Whole days left until expiry, rounded up; 0 when unset or past."""
    if passkey.expires_at is None:
        return 0
    seconds = (passkey.expires_at - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def is_renewable(passkey: PasskeyLike, now: datetime, grace_days: int = 30) -> bool:
    """
    Whether the holder should be offered a renewal.

    Usable passkeys are always renewable; expired ones only within the grace
    window after expiry. Informational: renew() itself accepts any EXPIRED.
    """
    status = effective_status(passkey, now)
    if status in USABLE_STATUSES:
        return True
    if status == PasskeyStatus.EXPIRED and passkey.expires_at is not None:
        return now - passkey.expires_at <= timedelta(days=grace_days)
    return False
