"""
Enums for Coursegate models.
"""

from enum import Enum


class ActorRole(str, Enum):
    """Roles carried in access tokens."""

    SUPER_ADMIN = "SUPER_ADMIN"  # Platform operator
    PRINCIPAL = "PRINCIPAL"  # Institute owner/admin
    TEACHER = "TEACHER"  # Teacher hired by an institute
    STUDENT = "STUDENT"  # Device-bound passkey holder


class PasskeyStatus(str, Enum):
    """Lifecycle states of a passkey."""

    PENDING = "PENDING"  # Generated, unclaimed
    GENERATED = "GENERATED"  # Legacy alias of PENDING
    STUDENT_ASSIGNED = "STUDENT_ASSIGNED"  # Device and student bound, unpaid
    PLATFORM_FEE_PENDING = "PLATFORM_FEE_PENDING"  # Platform fee order opened
    PLATFORM_FEE_PAID = "PLATFORM_FEE_PAID"  # Platform fee settled
    COURSE_ACCESS_PENDING = "COURSE_ACCESS_PENDING"  # Course fee settled, platform fee outstanding
    FULLY_ACTIVE = "FULLY_ACTIVE"  # All fees settled
    ACTIVE = "ACTIVE"  # Single-fee model, renewals land here
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


class PaymentStatus(str, Enum):
    """Status of a payment attempt."""

    CREATED = "CREATED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PaymentType(str, Enum):
    """What a payment settles."""

    PLATFORM_FEE = "PLATFORM_FEE"
    COURSE_FEE = "COURSE_FEE"
    COMBINED = "COMBINED"


class PlatformFeeStatus(str, Enum):
    """Platform fee standing of a passkey."""

    PAID = "PAID"
    PENDING = "PENDING"
    OVERDUE = "OVERDUE"


class FeePayer(str, Enum):
    """Who paid a platform fee."""

    STUDENT = "STUDENT"
    INSTITUTE = "INSTITUTE"


class PricingModel(str, Enum):
    """How a course is priced."""

    FREE = "FREE"
    ONE_TIME = "ONE_TIME"
    ALREADY_PAID = "ALREADY_PAID"  # Institute collects the course fee offline
    SUBSCRIPTION = "SUBSCRIPTION"


class CurrencyCode(str, Enum):
    """Supported currencies."""

    INR = "INR"
    USD = "USD"
    EUR = "EUR"


class PaymentMethod(str, Enum):
    """How an enrollment was paid for."""

    RAZORPAY = "razorpay"
    MANUAL = "manual"
    FREE = "free"
