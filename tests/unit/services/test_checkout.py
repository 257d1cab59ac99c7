"""
Unit tests for the checkout flow: order, verification, passkey transition,
enrollment and confirmation SMS in one request.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from coursegate.core.auth import Student
from coursegate.core.errors import (
    ConflictError,
    GatewayError,
    NotFoundError,
    ValidationError,
)
from coursegate.core.timeutils import utcnow
from coursegate.models.enums import PasskeyStatus, PaymentStatus, PaymentType, PricingModel
from coursegate.services.checkout import CheckoutService
from tests.conftest import FakeNotificationSender, sign


async def _complete(checkout, student, order, gateway_payment_id="pay_X1"):
    return await checkout.complete_checkout(
        student,
        order.order.order_id,
        gateway_payment_id,
        sign(order.order.order_id, gateway_payment_id),
    )


# =============================================================================
# Test: starting a checkout
# =============================================================================


@pytest.mark.unit
class TestStartCheckout:
    """Tests for opening payment orders."""

    @pytest.mark.asyncio
    async def test_combined_order(self, checkout, gateway, student_actor, registry):
        order = await checkout.start_checkout(student_actor)

        assert order.payment.amount == Decimal("2090.00")
        assert order.payment.platform_fee == Decimal("90.00")
        assert order.payment.course_fee == Decimal("2000.00")
        assert order.payment.status == PaymentStatus.CREATED.value
        assert order.order.amount_minor_units == 209000
        assert order.quote.total == Decimal("2090.00")
        passkey = await registry.get(student_actor.passkey_id)
        assert passkey.status == PasskeyStatus.PLATFORM_FEE_PENDING.value

    @pytest.mark.asyncio
    async def test_platform_fee_only(self, checkout, student_actor):
        order = await checkout.start_checkout(student_actor, payment_type=PaymentType.PLATFORM_FEE)

        assert order.payment.amount == Decimal("90.00")
        assert order.payment.course_fee == Decimal("0")

    @pytest.mark.asyncio
    async def test_course_fee_only(self, checkout, student_actor, registry):
        order = await checkout.start_checkout(student_actor, payment_type=PaymentType.COURSE_FEE)

        assert order.payment.amount == Decimal("2000.00")
        assert order.payment.platform_fee == Decimal("0")
        passkey = await registry.get(student_actor.passkey_id)
        assert passkey.status == PasskeyStatus.STUDENT_ASSIGNED.value

    @pytest.mark.asyncio
    async def test_nothing_due(self, binder, registry, principal, make_course, checkout):
        course = await make_course(pricing_model=PricingModel.FREE, base_price="0")
        [passkey] = await registry.generate(principal, course.id, 1)
        claim = await binder.claim_passkey(passkey.passkey_id, "device-F")
        student = Student(student_id=claim.student.id, device_id="device-F", passkey_id=passkey.passkey_id)

        with pytest.raises(ValidationError):
            await checkout.start_checkout(student, payment_type=PaymentType.COURSE_FEE)

    @pytest.mark.asyncio
    async def test_someone_elses_passkey(self, checkout, student_actor, registry, principal, course):
        [other] = await registry.generate(principal, course.id, 1)

        with pytest.raises(NotFoundError):
            await checkout.start_checkout(student_actor, other.passkey_id)

    @pytest.mark.asyncio
    async def test_gateway_failure(self, checkout, gateway, student_actor):
        gateway.fail_with = GatewayError("Payment gateway unavailable, please retry")

        with pytest.raises(GatewayError):
            await checkout.start_checkout(student_actor)

    @pytest.mark.asyncio
    async def test_unclaimed_passkey_cannot_pay(self, checkout, passkey):
        student = Student(student_id=passkey.generated_by, passkey_id=passkey.passkey_id)

        with pytest.raises(NotFoundError):
            await checkout.start_checkout(student)


# =============================================================================
# Test: completing a checkout
# =============================================================================


@pytest.mark.unit
class TestCompleteCheckout:
    """Tests for verification and its effects."""

    @pytest.mark.asyncio
    async def test_full_payment_activates_and_enrolls(
        self, checkout, notifier, student_actor, binder, course
    ):
        order = await checkout.start_checkout(student_actor)

        result = await _complete(checkout, student_actor, order)

        assert result.newly_completed is True
        assert result.payment.status == PaymentStatus.COMPLETED.value
        assert result.passkey.status == PasskeyStatus.FULLY_ACTIVE.value
        assert result.passkey.expires_at is not None
        assert result.enrollment is not None
        assert result.enrollment.course_id == course.id
        assert result.enrollment.amount_paid == Decimal("2090.00")
        assert result.notification.delivered is True
        [(destination, message)] = notifier.sent
        assert destination == "+919876543210"
        assert result.passkey.passkey_id in message
        entry = await binder.get_active_passkey(student_actor.student_id)
        assert entry.expires_at == result.passkey.expires_at

    @pytest.mark.asyncio
    async def test_replay_applies_nothing(self, checkout, notifier, student_actor, registry):
        order = await checkout.start_checkout(student_actor)
        first = await _complete(checkout, student_actor, order)

        again = await _complete(checkout, student_actor, order)

        assert again.newly_completed is False
        assert again.enrollment.id == first.enrollment.id
        assert again.enrollment.amount_paid == Decimal("2090.00")
        assert len(notifier.sent) == 1
        history = await registry.history(again.passkey)
        assert [e.status for e in history].count(PasskeyStatus.FULLY_ACTIVE.value) == 1

    @pytest.mark.asyncio
    async def test_bad_signature(self, checkout, student_actor, registry):
        order = await checkout.start_checkout(student_actor)

        with pytest.raises(ValidationError):
            await checkout.complete_checkout(student_actor, order.order.order_id, "pay_X1", "f" * 64)

        passkey = await registry.get(student_actor.passkey_id)
        assert passkey.status == PasskeyStatus.PLATFORM_FEE_PENDING.value

    @pytest.mark.asyncio
    async def test_other_students_order(self, checkout, student_actor):
        order = await checkout.start_checkout(student_actor)
        stranger = Student(student_id=uuid4(), device_id="device-Z")

        with pytest.raises(NotFoundError):
            await _complete(checkout, stranger, order)

    @pytest.mark.asyncio
    async def test_split_payments(self, checkout, student_actor):
        platform = await checkout.start_checkout(student_actor, payment_type=PaymentType.PLATFORM_FEE)
        first = await _complete(checkout, student_actor, platform, "pay_P1")
        assert first.passkey.status == PasskeyStatus.PLATFORM_FEE_PAID.value
        assert first.enrollment is None

        course_fee = await checkout.start_checkout(student_actor, payment_type=PaymentType.COURSE_FEE)
        second = await _complete(checkout, student_actor, course_fee, "pay_C1")

        assert second.passkey.status == PasskeyStatus.FULLY_ACTIVE.value
        assert second.enrollment is not None
        assert second.enrollment.amount_paid == Decimal("2000.00")

    @pytest.mark.asyncio
    async def test_sms_failure_does_not_fail_checkout(
        self, db_session, gateway, settings, student_actor
    ):
        notifier = FakeNotificationSender(fail_with=GatewayError("SMS provider unavailable"))
        checkout = CheckoutService(db_session, gateway, notifier, settings)
        order = await checkout.start_checkout(student_actor)

        result = await _complete(checkout, student_actor, order)

        assert result.passkey.status == PasskeyStatus.FULLY_ACTIVE.value
        assert result.notification.delivered is False

    @pytest.mark.asyncio
    async def test_no_phone_number(self, binder, registry, principal, course, checkout, notifier):
        [passkey] = await registry.generate(principal, course.id, 1)
        claim = await binder.claim_passkey(passkey.passkey_id, "device-N")
        student = Student(student_id=claim.student.id, device_id="device-N", passkey_id=passkey.passkey_id)
        order = await checkout.start_checkout(student)

        result = await _complete(checkout, student, order)

        assert result.enrollment is not None
        assert result.notification.delivered is False
        assert notifier.sent == []


# =============================================================================
# Test: renewal
# =============================================================================


@pytest.mark.unit
class TestRenewalCheckout:
    """Tests for renewing an expired passkey through checkout."""

    @pytest.mark.asyncio
    async def test_renewal_requires_expiry(self, checkout, pay, student_actor):
        await pay(student_actor)

        with pytest.raises(ConflictError):
            await checkout.start_renewal(student_actor, 12)

    @pytest.mark.asyncio
    async def test_renewal_duration(self, checkout, student_actor):
        with pytest.raises(ValidationError):
            await checkout.start_renewal(student_actor, 3)

    @pytest.mark.asyncio
    async def test_renew_expired_passkey(self, db_session, checkout, pay, student_actor):
        paid = await pay(student_actor)
        paid.passkey.expires_at = utcnow() - timedelta(days=2)
        await db_session.flush()

        order = await checkout.start_renewal(student_actor, 12)
        assert order.payment.amount == Decimal("3080.00")
        assert order.payment.duration_months == 12

        result = await _complete(checkout, student_actor, order, "pay_R1")

        assert result.passkey.status == PasskeyStatus.ACTIVE.value
        assert result.passkey.renewal_count == 1
        assert result.passkey.duration_months == 12
        assert result.enrollment.id == paid.enrollment.id
        assert result.enrollment.amount_paid == Decimal("5170.00")
        assert result.enrollment.expires_at == result.passkey.expires_at
