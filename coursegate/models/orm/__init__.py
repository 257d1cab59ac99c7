"""SQLAlchemy ORM Models for Coursegate.

Pure database models using SQLAlchemy 2.0 declarative style.
These models define the database schema and relationships.
"""

from coursegate.models.orm.base import Base
from coursegate.models.orm.course import Course, CoursePricing
from coursegate.models.orm.enrollment import Enrollment
from coursegate.models.orm.passkey import Passkey, PasskeyStatusEvent, PlatformFeePayment
from coursegate.models.orm.payment import Payment
from coursegate.models.orm.student import Student, StudentPasskey

__all__ = [
    "Base",
    "Course",
    "CoursePricing",
    "Enrollment",
    "Passkey",
    "PasskeyStatusEvent",
    "Payment",
    "PlatformFeePayment",
    "Student",
    "StudentPasskey",
]
