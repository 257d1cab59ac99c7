"""
Payment Repository

Provides database operations for Payment model.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select, update

from coursegate.models.enums import PaymentStatus
from coursegate.models.orm.payment import Payment
from coursegate.repositories.base import BaseRepository


class PaymentRepository(BaseRepository[Payment]):
    """Repository for Payment model operations."""

    model = Payment

    async def get_by_order_id(self, order_id: str, *, fresh: bool = False) -> Payment | None:
        """
        Get a payment by its gateway order id.

        Args:
            order_id: Gateway order id
            fresh: Overwrite any cached instance with the row as stored now

        Returns:
            Payment or None if not found
        """
        query = select(Payment).where(Payment.order_id == order_id)
        if fresh:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def complete_if_created(
        self,
        order_id: str,
        gateway_payment_id: str,
        signature: str,
        now: datetime,
    ) -> bool:
        """
        Mark a CREATED payment COMPLETED.

        Returns:
            True if this call performed the transition
        """
        result = await self.session.execute(
            update(Payment)
            .where(
                Payment.order_id == order_id,
                Payment.status == PaymentStatus.CREATED.value,
            )
            .values(
                status=PaymentStatus.COMPLETED.value,
                gateway_payment_id=gateway_payment_id,
                signature=signature,
                completed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def fail_if_created(self, order_id: str, reason: str) -> bool:
        """Mark a CREATED payment FAILED. Returns True if this call did it."""
        result = await self.session.execute(
            update(Payment)
            .where(
                Payment.order_id == order_id,
                Payment.status == PaymentStatus.CREATED.value,
            )
            .values(status=PaymentStatus.FAILED.value, failure_reason=reason[:255])
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_for_institute(
        self,
        institute_id: UUID,
        *,
        status: PaymentStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Payment], int]:
        """Payment history of an institute, newest first."""
        filters = [Payment.institute_id == institute_id]
        if status is not None:
            filters.append(Payment.status == status.value)
        return await self.get_paginated(
            filters=filters,
            sort_by="created_at",
            sort_dir="desc",
            limit=limit,
            offset=offset,
        )

    async def list_for_passkey(self, passkey_id: str) -> list[Payment]:
        """All payments of one passkey, oldest first."""
        result = await self.session.execute(
            select(Payment).where(Payment.passkey_id == passkey_id).order_by(Payment.created_at)
        )
        return list(result.scalars().all())

    async def stats_for_institute(self, institute_id: UUID) -> dict[str, int | Decimal]:
        """
        Aggregate payment counts and revenue for an institute.

        Returns:
            Dict with total, completed, failed, pending counts and
            total_revenue (sum of COMPLETED amounts)
        """

        def _count(status: PaymentStatus):
            return func.coalesce(func.sum(case((Payment.status == status.value, 1), else_=0)), 0)

        result = await self.session.execute(
            select(
                func.count(Payment.id),
                _count(PaymentStatus.COMPLETED),
                _count(PaymentStatus.FAILED),
                _count(PaymentStatus.CREATED),
                func.coalesce(
                    func.sum(
                        case(
                            (Payment.status == PaymentStatus.COMPLETED.value, Payment.amount),
                            else_=0,
                        )
                    ),
                    0,
                ),
            ).where(Payment.institute_id == institute_id)
        )
        total, completed, failed, pending, revenue = result.one()
        return {
            "total": int(total),
            "completed": int(completed),
            "failed": int(failed),
            "pending": int(pending),
            "total_revenue": Decimal(str(revenue)),
        }
