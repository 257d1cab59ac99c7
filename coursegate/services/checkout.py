"""
Checkout - payment flow across the ledgers.

Opening a checkout prices the passkey's course and creates a gateway order.
Completing it verifies the gateway signature, applies the payment to the
passkey (or renews it when expired), enrolls the student and sends a
confirmation SMS. A replayed verification stops after the ledger check, so
nothing is applied twice.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from coursegate.config import Settings, get_settings
from coursegate.core.auth import Student
from coursegate.core.errors import ConflictError, NotFoundError, ValidationError
from coursegate.core.timeutils import utcnow
from coursegate.models.enums import PasskeyStatus, PaymentType
from coursegate.models.orm.enrollment import Enrollment
from coursegate.models.orm.passkey import Passkey
from coursegate.models.orm.payment import Payment
from coursegate.repositories.enrollment import EnrollmentRepository
from coursegate.repositories.student import StudentRepository
from coursegate.services.catalog import CourseCatalog, PriceQuote
from coursegate.services.enrollment_ledger import EnrollmentLedger
from coursegate.services.notifications import DeliveryResult, NotificationSender, deliver_safely
from coursegate.services.passkey_registry import ALLOWED_DURATIONS, PasskeyRegistry
from coursegate.services.passkey_state import USABLE_STATUSES, effective_status
from coursegate.services.payment_gateway import GatewayOrder, PaymentGatewayClient
from coursegate.services.payment_ledger import PaymentLedger
from coursegate.services.student_binder import StudentBinder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutOrder:
    payment: Payment
    order: GatewayOrder
    quote: PriceQuote


@dataclass(frozen=True)
class CheckoutResult:
    payment: Payment
    passkey: Passkey
    enrollment: Enrollment | None
    newly_completed: bool
    notification: DeliveryResult | None = None


class CheckoutService:
    """Service orchestrating passkey payments."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGatewayClient | None,
        notifier: NotificationSender,
        settings: Settings | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.notifier = notifier
        self.registry = PasskeyRegistry(db, self.settings)
        self.payment_ledger = PaymentLedger(db, gateway, self.settings)
        self.enrollment_ledger = EnrollmentLedger(db, self.settings)
        self.binder = StudentBinder(db, self.registry, self.settings)
        self.catalog = CourseCatalog(db, self.settings)
        self.enrollments = EnrollmentRepository(db)
        self.students = StudentRepository(db)

    async def _owned_passkey(self, student: Student, passkey_id: str | None) -> Passkey:
        code = passkey_id or student.passkey_id
        if not code:
            raise ValidationError("Passkey is required")
        passkey = await self.registry.get(code)
        if passkey.student_id != student.student_id:
            raise NotFoundError("Passkey not found")
        return passkey

    async def start_checkout(
        self,
        student: Student,
        passkey_id: str | None = None,
        payment_type: PaymentType = PaymentType.COMBINED,
    ) -> CheckoutOrder:
        """
        Open a payment order for a claimed passkey.

        COMBINED charges everything due; PLATFORM_FEE and COURSE_FEE charge
        one part.

        Raises:
            NotFoundError: If the passkey is not the student's or the course
                has no pricing
            ConflictError: If the passkey cannot take this payment now
            ValidationError: If nothing is due for this payment type
            GatewayError: If the gateway fails
        """
        passkey = await self._owned_passkey(student, passkey_id)
        quote = await self.catalog.quote(passkey.course_id, passkey.duration_months)

        if payment_type == PaymentType.COMBINED:
            amount, platform_fee = quote.total, quote.platform_fee
        elif payment_type == PaymentType.PLATFORM_FEE:
            amount, platform_fee = quote.platform_fee, quote.platform_fee
        else:
            amount, platform_fee = quote.course_total, Decimal("0")
        if amount <= 0:
            raise ValidationError("Nothing to pay for this passkey", {"payment_type": payment_type.value})

        await self.registry.mark_payment_pending(passkey.passkey_id, payment_type)
        payment, order = await self.payment_ledger.create_order(
            passkey,
            amount=amount,
            currency=quote.currency,
            platform_fee=platform_fee,
            payment_type=payment_type,
            duration_months=passkey.duration_months,
            device_id=passkey.device_id,
            student_id=student.student_id,
        )
        return CheckoutOrder(payment=payment, order=order, quote=quote)

    async def start_renewal(
        self,
        student: Student,
        duration_months: int,
        passkey_id: str | None = None,
    ) -> CheckoutOrder:
        """
        Open a renewal order for an expired passkey.

        Raises:
            ValidationError: If the duration is not 1 or 12 months
            ConflictError: If the passkey is not expired
            GatewayError: If the gateway fails
        """
        if duration_months not in ALLOWED_DURATIONS:
            raise ValidationError("Duration must be 1 or 12 months", {"duration_months": duration_months})
        passkey = await self._owned_passkey(student, passkey_id)
        current = effective_status(passkey, utcnow())
        if current != PasskeyStatus.EXPIRED:
            raise ConflictError("Only expired passkeys can be renewed", current_state=current.value)

        quote = await self.catalog.quote(passkey.course_id, duration_months)
        payment, order = await self.payment_ledger.create_order(
            passkey,
            amount=quote.total,
            currency=quote.currency,
            platform_fee=quote.platform_fee,
            payment_type=PaymentType.COMBINED,
            duration_months=duration_months,
            device_id=passkey.device_id,
            student_id=student.student_id,
        )
        return CheckoutOrder(payment=payment, order=order, quote=quote)

    async def complete_checkout(
        self,
        student: Student,
        order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> CheckoutResult:
        """
        Verify a payment and apply it.

        Raises:
            NotFoundError: If the order is not the student's
            ValidationError: If the signature is wrong
            ConflictError: If the payment or passkey state rejects it
        """
        payment = await self.payment_ledger.get_by_order_id(order_id)
        if payment.student_id != student.student_id:
            raise NotFoundError("Payment not found")

        verification = await self.payment_ledger.verify(order_id, gateway_payment_id, signature)
        payment = verification.payment
        code = payment.passkey_id

        if not verification.newly_completed:
            passkey = await self.registry.get(code)
            enrollment = await self.enrollments.get_for_student_course(
                student.student_id, payment.course_id
            )
            return CheckoutResult(
                payment=payment, passkey=passkey, enrollment=enrollment, newly_completed=False
            )

        passkey = await self.registry.get(code)
        if effective_status(passkey, utcnow()) == PasskeyStatus.EXPIRED:
            passkey = await self.registry.renew(code, payment, payment.duration_months)
        else:
            passkey = await self.registry.record_payment(
                code, payment, PaymentType(payment.payment_type)
            )
        await self.binder.sync_entry(passkey)

        enrollment = None
        if PasskeyStatus(passkey.status) in USABLE_STATUSES:
            enrollment = await self.enrollment_ledger.enroll(
                code, passkey.course_id, student.student_id, payment
            )

        notification = await self._notify(student, payment, passkey)
        return CheckoutResult(
            payment=payment,
            passkey=passkey,
            enrollment=enrollment,
            newly_completed=True,
            notification=notification,
        )

    async def _notify(self, student: Student, payment: Payment, passkey: Passkey) -> DeliveryResult:
        record = await self.students.get_by_id(student.student_id)
        phone = record.phone_number if record else None
        message = f"Payment of {payment.currency} {payment.amount} received for passkey {passkey.passkey_id}."
        if passkey.expires_at is not None:
            message += f" Access valid until {passkey.expires_at:%d %b %Y}."
        result = await deliver_safely(self.notifier, phone, message)
        if not result.delivered:
            logger.info(
                f"Payment confirmation for {payment.order_id} not delivered: {result.error}",
                extra={"order_id": payment.order_id},
            )
        return result
