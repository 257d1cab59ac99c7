"""
Course/Pricing Catalog.

Read-only pricing lookups and price quotes for passkey checkout.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from coursegate.config import Settings, get_settings
from coursegate.core.errors import NotFoundError, ValidationError
from coursegate.models.enums import PricingModel
from coursegate.repositories.course import CourseRepository

CENT = Decimal("0.01")


@dataclass(frozen=True)
class CoursePricingInfo:
    course_id: UUID
    institute_id: UUID
    pricing_model: PricingModel
    base_price: Decimal
    currency: str
    subscription_duration: int | None
    access_duration_months: int | None
    tax_rate: Decimal
    tax_included: bool


@dataclass(frozen=True)
class PriceQuote:
    """Amounts due for buying `duration_months` of a course."""

    pricing_model: PricingModel
    duration_months: int
    course_fee: Decimal
    tax: Decimal
    platform_fee: Decimal
    currency: str

    @property
    def course_total(self) -> Decimal:
        return self.course_fee + self.tax

    @property
    def total(self) -> Decimal:
        return self.course_total + self.platform_fee


class CourseCatalog:
    """Service for course pricing lookups."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.courses = CourseRepository(db)

    async def get_pricing(self, course_id: UUID) -> CoursePricingInfo:
        """
        Get the active pricing of a course.

        Raises:
            NotFoundError: If the course has no active pricing
        """
        pricing = await self.courses.get_pricing(course_id)
        if pricing is None:
            raise NotFoundError("Course pricing not found")
        return CoursePricingInfo(
            course_id=pricing.course_id,
            institute_id=pricing.institute_id,
            pricing_model=PricingModel(pricing.pricing_model),
            base_price=Decimal(pricing.base_price),
            currency=pricing.currency,
            subscription_duration=pricing.subscription_duration,
            access_duration_months=pricing.access_duration_months,
            tax_rate=Decimal(pricing.tax_rate),
            tax_included=pricing.tax_included,
        )

    async def quote(self, course_id: UUID, duration_months: int) -> PriceQuote:
        """
        Price `duration_months` of access to a course.

        FREE and ALREADY_PAID courses carry no online course fee. ONE_TIME
        charges the base price once; SUBSCRIPTION charges it per month. Tax
        is added on top unless the price already includes it. The platform
        fee is charged per month for every model.
        """
        if duration_months < 1:
            raise ValidationError("Duration must be at least one month")
        pricing = await self.get_pricing(course_id)

        match pricing.pricing_model:
            case PricingModel.FREE | PricingModel.ALREADY_PAID:
                course_fee = Decimal("0")
            case PricingModel.ONE_TIME:
                course_fee = pricing.base_price
            case PricingModel.SUBSCRIPTION:
                course_fee = pricing.base_price * duration_months

        tax = Decimal("0")
        if pricing.tax_rate and not pricing.tax_included:
            tax = (course_fee * pricing.tax_rate / 100).quantize(CENT, rounding=ROUND_HALF_UP)

        platform_fee = Decimal(self.settings.platform_fee_amount) * duration_months

        return PriceQuote(
            pricing_model=pricing.pricing_model,
            duration_months=duration_months,
            course_fee=course_fee.quantize(CENT),
            tax=tax,
            platform_fee=platform_fee.quantize(CENT),
            currency=pricing.currency,
        )
