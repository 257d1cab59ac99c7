"""
Pytest fixtures for Coursegate testing infrastructure.

This module provides:
1. Database fixtures (file-backed SQLite per test via aiosqlite)
2. Actor fixtures for each role
3. Course, passkey and payment fixtures
4. Fake payment gateway and notification sender
"""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from decimal import Decimal
from itertools import count
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

# Set environment variables BEFORE any imports that might load settings
os.environ.setdefault("COURSEGATE_ENVIRONMENT", "testing")
os.environ.setdefault("COURSEGATE_SECRET_KEY", "test-secret-key-for-testing-must-be-32-chars")
os.environ.setdefault("COURSEGATE_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("COURSEGATE_REDIS_URL", "redis://localhost:6380/0")
os.environ.setdefault("COURSEGATE_RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("COURSEGATE_RAZORPAY_KEY_SECRET", "rzp-test-secret")

from coursegate.config import Settings, get_settings  # noqa: E402
from coursegate.core.auth import InstitutePrincipal, Student, Teacher  # noqa: E402
from coursegate.core.errors import GatewayError  # noqa: E402
from coursegate.core.security import compute_payment_signature  # noqa: E402
from coursegate.core.timeutils import utcnow  # noqa: E402
from coursegate.models.enums import PaymentStatus, PaymentType, PricingModel  # noqa: E402
from coursegate.models.orm import Base, Course, CoursePricing, Passkey, Payment  # noqa: E402
from coursegate.services.checkout import CheckoutService  # noqa: E402
from coursegate.services.passkey_registry import PasskeyRegistry  # noqa: E402
from coursegate.services.payment_gateway import GatewayOrder  # noqa: E402
from coursegate.services.student_binder import ClaimResult, StudentBinder  # noqa: E402

# ==================== FAKES ====================


class FakeGateway:
    """In-memory payment gateway issuing sequential order ids."""

    def __init__(self):
        self._ids = count(1)
        self.orders: list[GatewayOrder] = []
        self.statuses: dict[str, str] = {}
        self.fail_with: GatewayError | None = None
        self.closed = False

    async def create_order(
        self,
        amount_minor_units: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
    ) -> GatewayOrder:
        if self.fail_with is not None:
            raise self.fail_with
        order = GatewayOrder(
            order_id=f"order_test{next(self._ids):04d}",
            amount_minor_units=amount_minor_units,
            currency=currency,
            receipt=receipt,
            key_id="rzp_test_key",
            notes=notes or {},
        )
        self.orders.append(order)
        return order

    async def fetch_payment(self, gateway_payment_id: str) -> str:
        return self.statuses.get(gateway_payment_id, "captured")

    async def close(self) -> None:
        self.closed = True


class FakeNotificationSender:
    """Records messages instead of sending them."""

    def __init__(self, fail_with: Exception | None = None):
        self.sent: list[tuple[str, str]] = []
        self.fail_with = fail_with
        self.closed = False

    async def send(self, destination: str, message: str) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((destination, message))
        return f"SM{len(self.sent):04d}"

    async def close(self) -> None:
        self.closed = True


def sign(order_id: str, gateway_payment_id: str) -> str:
    """Gateway signature for a captured payment under the test secret."""
    return compute_payment_signature(
        order_id, gateway_payment_id, get_settings().razorpay_key_secret or ""
    )


# ==================== SETTINGS ====================


@pytest.fixture
def settings() -> Settings:
    return get_settings()


# ==================== DATABASE FIXTURES ====================


@pytest_asyncio.fixture
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Create a fresh SQLite database for one test.

    A file database (not :memory:) so that several sessions can see the
    same data, as concurrent requests would. SQLite transactions are begun
    explicitly so that savepoints behave like PostgreSQL's.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/coursegate.db")

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured like the application's."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ==================== ACTOR FIXTURES ====================


@pytest.fixture
def institute_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_institute_id() -> UUID:
    return uuid4()


@pytest.fixture
def principal(institute_id: UUID) -> InstitutePrincipal:
    return InstitutePrincipal(user_id=uuid4(), institute_id=institute_id)


@pytest.fixture
def other_principal(other_institute_id: UUID) -> InstitutePrincipal:
    return InstitutePrincipal(user_id=uuid4(), institute_id=other_institute_id)


@pytest.fixture
def teacher(institute_id: UUID) -> Teacher:
    return Teacher(user_id=uuid4(), institute_id=institute_id)


# ==================== COURSE FIXTURES ====================

CourseFactory = Callable[..., Awaitable[Course]]


@pytest.fixture
def make_course(db_session: AsyncSession, institute_id: UUID) -> CourseFactory:
    """Factory creating a course with pricing."""

    async def _make(
        *,
        institute: UUID | None = None,
        pricing_model: PricingModel = PricingModel.ONE_TIME,
        base_price: Decimal | str = "2000",
        subscription_duration: int | None = None,
        access_duration_months: int | None = None,
        tax_rate: Decimal | str = "0",
        tax_included: bool = False,
        name: str = "Physics Class 12",
    ) -> Course:
        owner = institute or institute_id
        course = Course(institute_id=owner, name=name, is_active=True)
        db_session.add(course)
        await db_session.flush()
        db_session.add(
            CoursePricing(
                course_id=course.id,
                institute_id=owner,
                pricing_model=pricing_model.value,
                currency="INR",
                base_price=Decimal(base_price),
                subscription_duration=subscription_duration,
                access_duration_months=access_duration_months,
                tax_rate=Decimal(tax_rate),
                tax_included=tax_included,
                is_active=True,
            )
        )
        await db_session.flush()
        return course

    return _make


@pytest_asyncio.fixture
async def course(make_course: CourseFactory) -> Course:
    """ONE_TIME course priced at 2000 INR without tax."""
    return await make_course()


# ==================== SERVICE FIXTURES ====================


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> FakeNotificationSender:
    return FakeNotificationSender()


@pytest.fixture
def registry(db_session: AsyncSession, settings: Settings) -> PasskeyRegistry:
    return PasskeyRegistry(db_session, settings)


@pytest.fixture
def binder(db_session: AsyncSession, registry: PasskeyRegistry, settings: Settings) -> StudentBinder:
    return StudentBinder(db_session, registry, settings)


@pytest.fixture
def checkout(
    db_session: AsyncSession,
    gateway: FakeGateway,
    notifier: FakeNotificationSender,
    settings: Settings,
) -> CheckoutService:
    return CheckoutService(db_session, gateway, notifier, settings)


@pytest_asyncio.fixture
async def passkey(registry: PasskeyRegistry, principal: InstitutePrincipal, course: Course) -> Passkey:
    """One PENDING passkey for the default course."""
    generated = await registry.generate(principal, course.id, 1)
    return generated[0]


@pytest_asyncio.fixture
async def claimed(binder: StudentBinder, passkey: Passkey) -> ClaimResult:
    """The default passkey claimed from device-A by a student with a phone."""
    return await binder.claim_passkey(
        passkey.passkey_id, "device-A", name="Asha", phone_number="9876543210"
    )


@pytest.fixture
def student_actor(claimed: ClaimResult) -> Student:
    return Student(
        student_id=claimed.student.id,
        device_id=claimed.student.device_id,
        passkey_id=claimed.passkey.passkey_id,
    )


PayFunction = Callable[..., Awaitable]


@pytest.fixture
def pay(checkout: CheckoutService) -> PayFunction:
    """Open and verify a checkout for a student in one step."""
    payment_ids = count(1)

    async def _pay(
        student: Student,
        passkey_id: str | None = None,
        payment_type: PaymentType = PaymentType.COMBINED,
    ):
        order = await checkout.start_checkout(student, passkey_id, payment_type)
        gateway_payment_id = f"pay_test{next(payment_ids):04d}"
        return await checkout.complete_checkout(
            student,
            order.order.order_id,
            gateway_payment_id,
            sign(order.order.order_id, gateway_payment_id),
        )

    return _pay


# ==================== PAYMENT FIXTURES ====================


@pytest.fixture
def make_payment(db_session: AsyncSession) -> Callable[..., Awaitable[Payment]]:
    """Factory for payments already verified by the gateway."""
    ids = count(1)

    async def _make(
        passkey: Passkey,
        payment_type: PaymentType = PaymentType.COMBINED,
        *,
        status: PaymentStatus = PaymentStatus.COMPLETED,
        amount: Decimal | str = "2090",
        platform_fee: Decimal | str = "90",
        duration_months: int = 1,
        passkey_id: str | None = None,
    ) -> Payment:
        n = next(ids)
        completed = status == PaymentStatus.COMPLETED
        payment = Payment(
            order_id=f"order_made{n:04d}",
            gateway_payment_id=f"pay_made{n:04d}" if completed else None,
            institute_id=passkey.institute_id,
            course_id=passkey.course_id,
            passkey_id=passkey_id or passkey.passkey_id,
            student_id=passkey.student_id,
            device_id=passkey.device_id,
            amount=Decimal(amount),
            platform_fee=Decimal(platform_fee),
            course_fee=Decimal(amount) - Decimal(platform_fee),
            currency="INR",
            duration_months=duration_months,
            payment_type=payment_type.value,
            status=status.value,
            completed_at=utcnow() if completed else None,
        )
        db_session.add(payment)
        await db_session.flush()
        return payment

    return _make
