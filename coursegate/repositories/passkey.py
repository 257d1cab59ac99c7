"""
Passkey Repository

Provides database operations for Passkey, including the conditional
updates that keep claims and expiry safe under concurrent requests.
"""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select, update

from coursegate.models.enums import PasskeyStatus, PlatformFeeStatus
from coursegate.models.orm.passkey import Passkey, PasskeyStatusEvent
from coursegate.repositories.base import BaseRepository
from coursegate.services import passkey_state

CLAIMABLE_STATUSES = tuple(s.value for s in passkey_state.CLAIMABLE_STATUSES)
EXPIRABLE_STATUSES = tuple(s.value for s in passkey_state.EXPIRABLE_STATUSES)


class PasskeyRepository(BaseRepository[Passkey]):
    """Repository for Passkey model operations."""

    model = Passkey

    async def get_by_code(self, code: str, *, fresh: bool = False) -> Passkey | None:
        """
        Get a passkey by its human-facing code.

        Args:
            code: Normalized passkey code
            fresh: Overwrite any cached instance with the row as stored now

        Returns:
            Passkey or None if not found
        """
        query = select(Passkey).where(Passkey.passkey_id == code)
        if fresh:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def existing_codes(self, codes: Iterable[str]) -> set[str]:
        """Return the subset of codes already present in the registry."""
        codes = list(codes)
        if not codes:
            return set()
        result = await self.session.execute(
            select(Passkey.passkey_id).where(Passkey.passkey_id.in_(codes))
        )
        return set(result.scalars().all())

    async def claim(self, code: str, student_id: UUID, device_id: str, now: datetime) -> bool:
        """
        Bind a student and device to an unclaimed passkey.

        One conditional UPDATE: only matches while the passkey is still
        claimable and not bound to someone else. Of two racing claims exactly
        one matches a row.

        Returns:
            True if this call performed the claim
        """
        result = await self.session.execute(
            update(Passkey)
            .where(
                Passkey.passkey_id == code,
                Passkey.status.in_(CLAIMABLE_STATUSES),
                or_(Passkey.device_id.is_(None), Passkey.device_id == device_id),
                or_(Passkey.student_id.is_(None), Passkey.student_id == student_id),
            )
            .values(
                student_id=student_id,
                device_id=device_id,
                assigned_at=now,
                status=PasskeyStatus.STUDENT_ASSIGNED.value,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_expired_if_lapsed(self, passkey_pk: UUID, now: datetime) -> bool:
        """Persist EXPIRED for one passkey, only if it is still lapsed."""
        result = await self.session.execute(
            update(Passkey)
            .where(
                Passkey.id == passkey_pk,
                Passkey.status.in_(EXPIRABLE_STATUSES),
                Passkey.expires_at.is_not(None),
                Passkey.expires_at <= now,
            )
            .values(status=PasskeyStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_lapsed(self, now: datetime, limit: int = 500) -> list[Passkey]:
        """Passkeys whose stored status is active but whose window has passed."""
        result = await self.session.execute(
            select(Passkey)
            .where(
                Passkey.status.in_(EXPIRABLE_STATUSES),
                Passkey.expires_at.is_not(None),
                Passkey.expires_at <= now,
            )
            .order_by(Passkey.expires_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_fee_overdue(self, now: datetime, limit: int = 500) -> list[Passkey]:
        """
        Claimed passkeys whose platform fee period has lapsed.

        Excludes unclaimed, expired and revoked passkeys, and rows already
        flagged OVERDUE.
        """
        result = await self.session.execute(
            select(Passkey)
            .where(
                Passkey.next_platform_fee_due < now,
                Passkey.platform_fee_status != PlatformFeeStatus.OVERDUE.value,
                Passkey.status.not_in(
                    [
                        *CLAIMABLE_STATUSES,
                        PasskeyStatus.EXPIRED.value,
                        PasskeyStatus.REVOKED.value,
                    ]
                ),
            )
            .order_by(Passkey.next_platform_fee_due)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_for_institute(
        self,
        institute_id: UUID,
        *,
        status: PasskeyStatus | None = None,
        course_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Passkey], int]:
        """
        List an institute's passkeys, newest first.

        Args:
            institute_id: Institute UUID
            status: Stored status filter
            course_id: Course filter
            limit: Maximum number of results
            offset: Number of results to skip

        Returns:
            Tuple of (passkeys, total count)
        """
        filters = [Passkey.institute_id == institute_id]
        if status is not None:
            filters.append(Passkey.status == status.value)
        if course_id is not None:
            filters.append(Passkey.course_id == course_id)
        return await self.get_paginated(
            filters=filters,
            sort_by="generated_at",
            sort_dir="desc",
            limit=limit,
            offset=offset,
        )

    async def record_access(self, code: str, now: datetime) -> None:
        """Increment access_count and stamp last_accessed_at in SQL."""
        await self.session.execute(
            update(Passkey)
            .where(Passkey.passkey_id == code)
            .values(access_count=Passkey.access_count + 1, last_accessed_at=now)
            .execution_options(synchronize_session=False)
        )

    async def add_status_event(
        self,
        passkey: Passkey,
        status: PasskeyStatus,
        *,
        changed_at: datetime,
        changed_by: UUID | None = None,
        changed_by_role: str = "SYSTEM",
        reason: str | None = None,
    ) -> PasskeyStatusEvent:
        """Append one entry to a passkey's status history."""
        event = PasskeyStatusEvent(
            passkey_pk=passkey.id,
            status=status.value,
            changed_at=changed_at,
            changed_by=changed_by,
            changed_by_role=changed_by_role,
            reason=reason,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def get_history(self, passkey_pk: UUID) -> list[PasskeyStatusEvent]:
        """Status history of a passkey, oldest first."""
        result = await self.session.execute(
            select(PasskeyStatusEvent)
            .where(PasskeyStatusEvent.passkey_pk == passkey_pk)
            .order_by(PasskeyStatusEvent.changed_at, PasskeyStatusEvent.id)
        )
        return list(result.scalars().all())
