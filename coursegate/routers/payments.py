"""
Payments Router

Student checkout (order, verification, failure callback, renewal) and the
institute's payment history and stats.
"""

from fastapi import APIRouter, Query

from coursegate.config import get_settings
from coursegate.core.auth import CurrentActor, require_student
from coursegate.core.database import DbSession
from coursegate.core.errors import NotFoundError
from coursegate.core.providers import Notifier, PaymentGateway
from coursegate.core.timeutils import utcnow
from coursegate.models.contracts.common import PaginatedResponse
from coursegate.models.contracts.enrollments import EnrollmentPublic
from coursegate.models.contracts.passkeys import PasskeyPublic
from coursegate.models.contracts.payments import (
    CheckoutOrderResponse,
    CheckoutRequest,
    PaymentFailedRequest,
    PaymentPublic,
    PaymentStats,
    RenewalRequest,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from coursegate.models.enums import PaymentStatus
from coursegate.services.checkout import CheckoutOrder, CheckoutService
from coursegate.services.payment_ledger import PaymentLedger

router = APIRouter(prefix="/api/payments", tags=["payments"])


def _order_response(checkout: CheckoutOrder) -> CheckoutOrderResponse:
    payment = checkout.payment
    return CheckoutOrderResponse(
        order_id=checkout.order.order_id,
        key_id=checkout.order.key_id,
        passkey_id=payment.passkey_id,
        payment_type=payment.payment_type,
        amount=payment.amount,
        amount_minor_units=checkout.order.amount_minor_units,
        currency=payment.currency,
        course_fee=payment.course_fee,
        tax=checkout.quote.tax if payment.course_fee > 0 else 0,
        platform_fee=payment.platform_fee,
        duration_months=payment.duration_months,
    )


# =============================================================================
# Student checkout
# =============================================================================


@router.post(
    "/checkout",
    response_model=CheckoutOrderResponse,
    summary="Open a payment order",
    description="Price the passkey's course and open a gateway order for it.",
)
async def start_checkout(
    request: CheckoutRequest,
    actor: CurrentActor,
    db: DbSession,
    gateway: PaymentGateway,
    notifier: Notifier,
) -> CheckoutOrderResponse:
    student = require_student(actor)
    service = CheckoutService(db, gateway, notifier)
    checkout = await service.start_checkout(student, request.passkey_id, request.payment_type)
    return _order_response(checkout)


@router.post(
    "/renew",
    response_model=CheckoutOrderResponse,
    summary="Open a renewal order",
)
async def start_renewal(
    request: RenewalRequest,
    actor: CurrentActor,
    db: DbSession,
    gateway: PaymentGateway,
    notifier: Notifier,
) -> CheckoutOrderResponse:
    """Open a gateway order renewing an expired passkey."""
    student = require_student(actor)
    service = CheckoutService(db, gateway, notifier)
    checkout = await service.start_renewal(student, request.duration_months, request.passkey_id)
    return _order_response(checkout)


@router.post(
    "/verify",
    response_model=VerifyPaymentResponse,
    summary="Verify a payment",
    description="Check the gateway signature and apply the payment to the passkey and enrollment. "
    "Replaying a verified payment returns the current state without applying it again.",
)
async def verify_payment(
    request: VerifyPaymentRequest,
    actor: CurrentActor,
    db: DbSession,
    gateway: PaymentGateway,
    notifier: Notifier,
) -> VerifyPaymentResponse:
    student = require_student(actor)
    settings = get_settings()
    service = CheckoutService(db, gateway, notifier, settings)
    result = await service.complete_checkout(
        student, request.order_id, request.payment_id, request.signature
    )
    return VerifyPaymentResponse(
        payment=PaymentPublic.model_validate(result.payment),
        passkey=PasskeyPublic.from_passkey(result.passkey, utcnow(), settings.renewal_grace_days),
        enrollment=EnrollmentPublic.model_validate(result.enrollment) if result.enrollment else None,
        newly_completed=result.newly_completed,
        sms_delivered=bool(result.notification and result.notification.delivered),
    )


@router.post(
    "/failed",
    response_model=PaymentPublic,
    summary="Report a failed payment",
)
async def payment_failed(
    request: PaymentFailedRequest,
    actor: CurrentActor,
    db: DbSession,
) -> PaymentPublic:
    student = require_student(actor)
    ledger = PaymentLedger(db)
    payment = await ledger.get_by_order_id(request.order_id)
    if payment.student_id != student.student_id:
        raise NotFoundError("Payment not found")
    payment = await ledger.mark_failed(request.order_id, request.reason)
    return PaymentPublic.model_validate(payment)


# =============================================================================
# Institute reporting
# =============================================================================


@router.get(
    "",
    response_model=PaginatedResponse[PaymentPublic],
    summary="Payment history",
)
async def list_payments(
    actor: CurrentActor,
    db: DbSession,
    status_filter: PaymentStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> PaginatedResponse[PaymentPublic]:
    ledger = PaymentLedger(db)
    items, total = await ledger.history(actor, status=status_filter, limit=limit, offset=offset)
    return PaginatedResponse(
        items=[PaymentPublic.model_validate(p) for p in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/stats",
    response_model=PaymentStats,
    summary="Payment stats",
)
async def payment_stats(actor: CurrentActor, db: DbSession) -> PaymentStats:
    ledger = PaymentLedger(db)
    return PaymentStats(**await ledger.stats(actor))
