"""Data access repositories."""

from coursegate.repositories.course import CourseRepository
from coursegate.repositories.enrollment import EnrollmentRepository
from coursegate.repositories.passkey import PasskeyRepository
from coursegate.repositories.payment import PaymentRepository
from coursegate.repositories.student import StudentRepository

__all__ = [
    "CourseRepository",
    "EnrollmentRepository",
    "PasskeyRepository",
    "PaymentRepository",
    "StudentRepository",
]
