"""
Unit tests for the Enrollment Ledger.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from coursegate.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PolicyError,
    ValidationError,
)
from coursegate.core.timeutils import add_months, utcnow
from coursegate.models.enums import PaymentMethod, PaymentStatus, PaymentType, PricingModel
from coursegate.models.orm import Payment
from coursegate.services.catalog import CourseCatalog
from coursegate.services.enrollment_ledger import EnrollmentLedger

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def ledger(db_session, settings):
    return EnrollmentLedger(db_session, settings)


@pytest.fixture
def activate(registry, binder, principal, make_payment):
    """Claim a new passkey of a course from a device and pay for it."""

    async def _activate(course, device_id="device-A", duration_months=1):
        [passkey] = await registry.generate(principal, course.id, 1, duration_months)
        claim = await binder.claim_passkey(passkey.passkey_id, device_id)
        payment = await make_payment(claim.passkey, duration_months=duration_months)
        passkey = await registry.record_payment(passkey.passkey_id, payment, PaymentType.COMBINED)
        return passkey, payment

    return _activate


@pytest_asyncio.fixture
async def enrolled(ledger, activate, course):
    """(passkey, enrollment) for the default ONE_TIME course."""
    passkey, payment = await activate(course)
    enrollment = await ledger.enroll(passkey.passkey_id, course.id, passkey.student_id, payment)
    return passkey, enrollment


# =============================================================================
# Test: enroll
# =============================================================================


@pytest.mark.unit
class TestEnroll:
    """Tests for creating enrollments per pricing model."""

    @pytest.mark.asyncio
    async def test_one_time_follows_passkey_window(self, enrolled, course):
        passkey, enrollment = enrolled

        assert enrollment.is_active is True
        assert enrollment.course_id == course.id
        assert enrollment.institute_id == course.institute_id
        assert enrollment.student_id == passkey.student_id
        assert enrollment.passkey_id == passkey.passkey_id
        assert enrollment.expires_at == passkey.expires_at
        assert enrollment.expires_at > enrollment.enrolled_at
        assert enrollment.amount_paid == Decimal("2090")
        assert enrollment.payment_method == PaymentMethod.RAZORPAY.value

    @pytest.mark.asyncio
    async def test_one_time_with_access_duration(self, ledger, activate, make_course):
        course = await make_course(access_duration_months=6)
        passkey, payment = await activate(course)

        before = utcnow()
        enrollment = await ledger.enroll(passkey.passkey_id, course.id, passkey.student_id, payment)

        assert add_months(before, 6) <= enrollment.expires_at <= add_months(utcnow(), 6)

    @pytest.mark.asyncio
    async def test_subscription_grants_only_paid_months(self, db_session, ledger, activate, make_course):
        """A 12-month course default does not stretch a 1-month payment."""
        course = await make_course(
            pricing_model=PricingModel.SUBSCRIPTION, base_price="500", subscription_duration=12
        )
        quote = await CourseCatalog(db_session).quote(course.id, 1)
        passkey, payment = await activate(course, duration_months=1)

        before = utcnow()
        enrollment = await ledger.enroll(passkey.passkey_id, course.id, passkey.student_id, payment)

        assert quote.course_fee == Decimal("500")
        assert add_months(before, 1) <= enrollment.expires_at <= add_months(utcnow(), 1)
        assert enrollment.expires_at < add_months(before, 2)

    @pytest.mark.asyncio
    async def test_subscription_without_course_default(self, ledger, activate, make_course):
        course = await make_course(pricing_model=PricingModel.SUBSCRIPTION)
        passkey, payment = await activate(course, duration_months=12)

        before = utcnow()
        enrollment = await ledger.enroll(passkey.passkey_id, course.id, passkey.student_id, payment)

        assert enrollment.expires_at >= add_months(before, 12)

    @pytest.mark.asyncio
    async def test_free_course_never_expires(self, ledger, activate, make_course):
        course = await make_course(pricing_model=PricingModel.FREE, base_price="0")
        passkey, payment = await activate(course)

        enrollment = await ledger.enroll(passkey.passkey_id, course.id, passkey.student_id, payment)

        assert enrollment.expires_at is None
        assert enrollment.payment_method == PaymentMethod.FREE.value

    @pytest.mark.asyncio
    async def test_already_paid_is_manual(self, ledger, activate, make_course):
        course = await make_course(pricing_model=PricingModel.ALREADY_PAID)
        passkey, payment = await activate(course)

        enrollment = await ledger.enroll(passkey.passkey_id, course.id, passkey.student_id, payment)

        assert enrollment.payment_method == PaymentMethod.MANUAL.value
        assert enrollment.expires_at == passkey.expires_at

    @pytest.mark.asyncio
    async def test_same_payment_is_idempotent(self, ledger, enrolled, db_session):
        passkey, enrollment = enrolled
        payment = await db_session.get(Payment, enrollment.payment_id)

        again = await ledger.enroll(
            passkey.passkey_id, enrollment.course_id, enrollment.student_id, payment
        )

        assert again.id == enrollment.id
        assert again.amount_paid == Decimal("2090")

    @pytest.mark.asyncio
    async def test_rejects_uncompleted_payment(self, ledger, claimed, course, make_payment):
        payment = await make_payment(claimed.passkey, status=PaymentStatus.CREATED)

        with pytest.raises(ValidationError):
            await ledger.enroll(claimed.passkey.passkey_id, course.id, claimed.student.id, payment)

    @pytest.mark.asyncio
    async def test_rejects_other_course(self, ledger, activate, course, make_course):
        other = await make_course(name="Chemistry")
        passkey, payment = await activate(course)

        with pytest.raises(ValidationError):
            await ledger.enroll(passkey.passkey_id, other.id, passkey.student_id, payment)

    @pytest.mark.asyncio
    async def test_one_time_without_window_is_rejected(self, ledger, claimed, course, make_payment):
        """An unpaid passkey has no expiry to copy."""
        payment = await make_payment(claimed.passkey)

        with pytest.raises(ValidationError):
            await ledger.enroll(claimed.passkey.passkey_id, course.id, claimed.student.id, payment)


# =============================================================================
# Test: renewal
# =============================================================================


@pytest.mark.unit
class TestRenewal:
    """Tests for extending an existing enrollment."""

    @pytest.mark.asyncio
    async def test_renewal_extends_existing_row(
        self, db_session, ledger, registry, enrolled, make_payment, course
    ):
        passkey, enrollment = enrolled
        enrolled_at = enrollment.enrolled_at
        passkey.expires_at = utcnow() - timedelta(minutes=1)
        await db_session.flush()
        renewal = await make_payment(passkey, duration_months=12, amount="3080", platform_fee="1080")
        passkey = await registry.renew(passkey.passkey_id, renewal, 12)

        renewed = await ledger.enroll(passkey.passkey_id, course.id, passkey.student_id, renewal)

        assert renewed.id == enrollment.id
        assert renewed.enrolled_at == enrolled_at
        assert renewed.expires_at == passkey.expires_at
        assert renewed.amount_paid == Decimal("5170")
        assert renewed.payment_id == renewal.id
        assert renewed.is_active is True
        assert len(await ledger.list_for_student(passkey.student_id)) == 1

    @pytest.mark.asyncio
    async def test_renewal_never_shortens_access(
        self, db_session, ledger, make_course, activate, make_payment
    ):
        course = await make_course(access_duration_months=12)
        passkey, payment = await activate(course)
        first = await ledger.enroll(passkey.passkey_id, course.id, passkey.student_id, payment)
        long_expiry = first.expires_at
        pricing = await ledger.courses.get_pricing(course.id)
        pricing.access_duration_months = 1
        await db_session.flush()

        second = await make_payment(passkey, PaymentType.COURSE_FEE)
        renewed = await ledger.enroll(passkey.passkey_id, course.id, passkey.student_id, second)

        assert renewed.expires_at == long_expiry
        assert renewed.payment_id == second.id


# =============================================================================
# Test: refunds
# =============================================================================


@pytest.mark.unit
class TestRefund:
    """Tests for refund requests."""

    @pytest.mark.asyncio
    async def test_refund_within_window(self, ledger, enrolled):
        passkey, enrollment = enrolled

        refunded = await ledger.request_refund(passkey.student_id, enrollment.id, "Wrong course")

        assert refunded.is_active is False
        assert refunded.metadata_["refund_requested"] is True
        assert refunded.metadata_["refund_reason"] == "Wrong course"
        assert "refund_request_date" in refunded.metadata_

    @pytest.mark.asyncio
    async def test_refund_on_last_day_of_window(self, db_session, ledger, enrolled, settings):
        passkey, enrollment = enrolled
        enrollment.enrolled_at = utcnow() - timedelta(days=settings.refund_window_days - 1)
        await db_session.flush()

        refunded = await ledger.request_refund(passkey.student_id, enrollment.id, "Changed school")

        assert refunded.is_active is False
        assert refunded.metadata_["refund_reason"] == "Changed school"

    @pytest.mark.asyncio
    async def test_refund_after_window(self, db_session, ledger, enrolled, settings):
        passkey, enrollment = enrolled
        enrollment.enrolled_at = utcnow() - timedelta(days=settings.refund_window_days + 1)
        await db_session.flush()

        with pytest.raises(PolicyError):
            await ledger.request_refund(passkey.student_id, enrollment.id)

        assert enrollment.is_active is True

    @pytest.mark.asyncio
    async def test_refund_twice(self, ledger, enrolled):
        passkey, enrollment = enrolled
        await ledger.request_refund(passkey.student_id, enrollment.id)

        with pytest.raises(ConflictError):
            await ledger.request_refund(passkey.student_id, enrollment.id)

    @pytest.mark.asyncio
    async def test_other_student_cannot_refund(self, ledger, enrolled):
        _, enrollment = enrolled

        with pytest.raises(NotFoundError):
            await ledger.request_refund(uuid4(), enrollment.id)

    @pytest.mark.asyncio
    async def test_unknown_enrollment(self, ledger, enrolled):
        passkey, _ = enrolled

        with pytest.raises(NotFoundError):
            await ledger.request_refund(passkey.student_id, uuid4())


# =============================================================================
# Test: listing and expiry
# =============================================================================


@pytest.mark.unit
class TestListing:
    """Tests for list_for_student, list_for_course and mark_expired."""

    @pytest.mark.asyncio
    async def test_list_for_student_active_only(self, ledger, enrolled):
        passkey, enrollment = enrolled
        await ledger.mark_expired(enrollment)

        everything = await ledger.list_for_student(passkey.student_id)
        active = await ledger.list_for_student(passkey.student_id, active_only=True)

        assert [e.id for e in everything] == [enrollment.id]
        assert active == []
        assert "expired_at" in enrollment.metadata_

    @pytest.mark.asyncio
    async def test_list_for_course_counts(self, ledger, activate, course, teacher, enrolled):
        second, payment = await activate(course, device_id="device-B")
        other = await ledger.enroll(second.passkey_id, course.id, second.student_id, payment)
        await ledger.mark_expired(other)

        items, total, active = await ledger.list_for_course(teacher, course.id)
        active_items, active_total, _ = await ledger.list_for_course(
            teacher, course.id, active_only=True
        )

        assert total == 2
        assert len(items) == 2
        assert active == 1
        assert active_total == 1
        assert active_items[0].id == enrolled[1].id

    @pytest.mark.asyncio
    async def test_list_for_foreign_course(self, ledger, other_principal, course):
        with pytest.raises(NotFoundError):
            await ledger.list_for_course(other_principal, course.id)

    @pytest.mark.asyncio
    async def test_students_cannot_list_course(self, ledger, student_actor, course):
        with pytest.raises(AuthorizationError):
            await ledger.list_for_course(student_actor, course.id)
