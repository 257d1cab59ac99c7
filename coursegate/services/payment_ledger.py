"""
Payment Ledger - payment order and verification logic.

Creates payment rows for gateway orders and completes them once the gateway
signature checks out. Amounts never change after creation; a repriced
attempt needs a new order.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from coursegate.config import Settings, get_settings
from coursegate.core.auth import Actor, require_institute_member
from coursegate.core.errors import ConflictError, GatewayError, NotFoundError, ValidationError
from coursegate.core.security import verify_payment_signature
from coursegate.core.timeutils import utcnow
from coursegate.models.enums import PaymentStatus, PaymentType
from coursegate.models.orm.passkey import Passkey
from coursegate.models.orm.payment import Payment
from coursegate.repositories.payment import PaymentRepository
from coursegate.services.payment_gateway import GatewayOrder, PaymentGatewayClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a signature verification.

    newly_completed is False when the payment was already COMPLETED with the
    same gateway payment id (a replayed verification).
    """

    payment: Payment
    newly_completed: bool


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (rupees) to minor units (paise)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentLedger:
    """Service for payment orders and their verification."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGatewayClient | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.payments = PaymentRepository(db)

    async def create_order(
        self,
        passkey: Passkey,
        amount: Decimal,
        currency: str,
        platform_fee: Decimal,
        payment_type: PaymentType,
        duration_months: int,
        device_id: str | None = None,
        student_id: UUID | None = None,
    ) -> tuple[Payment, GatewayOrder]:
        """
        Open a gateway order and record it as a CREATED payment.

        Args:
            passkey: Passkey the payment is for
            amount: Total amount in major units
            currency: ISO currency code
            platform_fee: Platform share of amount; the rest is the course fee
            payment_type: What the payment settles
            duration_months: Window the payment buys
            device_id: Paying device
            student_id: Paying student, if known

        Returns:
            Tuple of (payment, gateway order handle)

        Raises:
            ValidationError: If the amounts do not add up
            GatewayError: If no gateway is configured or the gateway fails
        """
        amount = Decimal(amount)
        platform_fee = Decimal(platform_fee)
        course_fee = amount - platform_fee

        if amount <= 0:
            raise ValidationError("Amount must be positive", {"amount": str(amount)})
        if platform_fee < 0 or course_fee < 0:
            raise ValidationError(
                "Platform fee must be between 0 and the total amount",
                {"amount": str(amount), "platform_fee": str(platform_fee)},
            )
        if duration_months < 1:
            raise ValidationError("Duration must be at least one month")
        if self.gateway is None:
            raise GatewayError("Payment gateway is not configured")

        receipt = f"pk_{passkey.passkey_id}_{int(utcnow().timestamp())}"
        order = await self.gateway.create_order(
            to_minor_units(amount),
            currency,
            receipt,
            notes={
                "passkey_id": passkey.passkey_id,
                "institute_id": str(passkey.institute_id),
                "course_id": str(passkey.course_id),
                "payment_type": payment_type.value,
            },
        )

        payment = Payment(
            order_id=order.order_id,
            institute_id=passkey.institute_id,
            course_id=passkey.course_id,
            passkey_id=passkey.passkey_id,
            student_id=student_id,
            device_id=device_id,
            amount=amount,
            platform_fee=platform_fee,
            course_fee=course_fee,
            currency=currency,
            duration_months=duration_months,
            payment_type=payment_type.value,
            status=PaymentStatus.CREATED.value,
        )
        payment = await self.payments.create(payment)

        logger.info(
            f"Created payment order {order.order_id} for passkey {passkey.passkey_id}",
            extra={
                "order_id": order.order_id,
                "passkey_id": passkey.passkey_id,
                "amount": str(amount),
                "payment_type": payment_type.value,
            },
        )
        return payment, order

    async def verify(self, order_id: str, gateway_payment_id: str, signature: str) -> VerificationResult:
        """
        Verify a gateway signature and complete the payment.

        Replaying an identical (order, payment, signature) triple returns the
        COMPLETED payment with newly_completed=False.

        Raises:
            ValidationError: If a field is missing or the signature is wrong
            NotFoundError: If no payment has this order id
            ConflictError: If the order failed, or completed with another payment
            GatewayError: If no gateway secret is configured
        """
        if not order_id or not gateway_payment_id or not signature:
            raise ValidationError("order_id, payment_id and signature are required")

        payment = await self.payments.get_by_order_id(order_id)
        if payment is None:
            raise NotFoundError("Payment not found")

        secret = self.settings.razorpay_key_secret
        if not secret:
            raise GatewayError("Payment gateway is not configured")

        if not verify_payment_signature(order_id, gateway_payment_id, signature, secret):
            logger.warning(
                f"Invalid payment signature for order {order_id}",
                extra={"order_id": order_id, "gateway_payment_id": gateway_payment_id},
            )
            raise ValidationError("Invalid payment signature")

        if payment.status == PaymentStatus.CREATED.value:
            if await self.payments.complete_if_created(
                order_id, gateway_payment_id, signature, utcnow()
            ):
                payment = await self.payments.get_by_order_id(order_id, fresh=True)
                assert payment is not None
                logger.info(
                    f"Payment {order_id} completed",
                    extra={"order_id": order_id, "gateway_payment_id": gateway_payment_id},
                )
                return VerificationResult(payment=payment, newly_completed=True)
            # Another request completed or failed it in the meantime
            payment = await self.payments.get_by_order_id(order_id, fresh=True)
            assert payment is not None

        if payment.status == PaymentStatus.COMPLETED.value:
            if payment.gateway_payment_id == gateway_payment_id:
                return VerificationResult(payment=payment, newly_completed=False)
            raise ConflictError(
                "Order already completed with a different payment",
                current_state=payment.status,
            )

        raise ConflictError("Payment cannot be completed", current_state=payment.status)

    async def mark_failed(self, order_id: str, reason: str) -> Payment:
        """
        Record a gateway failure for a CREATED payment. Repeating it is a no-op.

        Raises:
            NotFoundError: If no payment has this order id
            ConflictError: If the payment is already COMPLETED
        """
        payment = await self.payments.get_by_order_id(order_id)
        if payment is None:
            raise NotFoundError("Payment not found")

        if await self.payments.fail_if_created(order_id, reason or "Payment failed"):
            logger.info(f"Payment {order_id} marked failed: {reason}", extra={"order_id": order_id})
        payment = await self.payments.get_by_order_id(order_id, fresh=True)
        assert payment is not None
        if payment.status == PaymentStatus.COMPLETED.value:
            raise ConflictError("Payment already completed", current_state=payment.status)
        return payment

    async def get_by_order_id(self, order_id: str) -> Payment:
        payment = await self.payments.get_by_order_id(order_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        return payment

    async def history(
        self,
        actor: Actor,
        *,
        status: PaymentStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Payment], int]:
        """Payment history of the actor's institute."""
        institute_id = require_institute_member(actor)
        return await self.payments.list_for_institute(
            institute_id, status=status, limit=limit, offset=offset
        )

    async def stats(self, actor: Actor) -> dict[str, int | Decimal]:
        """Payment counts and revenue of the actor's institute."""
        institute_id = require_institute_member(actor)
        return await self.payments.stats_for_institute(institute_id)
