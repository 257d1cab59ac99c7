"""
Base Repository

Shared persistence helpers for the ledgers. Repositories only flush; the
caller's unit of work decides when to commit.
"""

from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import asc, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from coursegate.models.orm.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """Generic repository keyed on the ``id`` surrogate key."""

    model: type[ModelT]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, id: UUID, *, fresh: bool = False) -> ModelT | None:
        """
        Get an entity by surrogate key.

        Args:
            id: Entity UUID
            fresh: Reload from the database even if the session already holds it

        Returns:
            Entity or None if not found
        """
        query = select(self.model).where(self.model.id == id)  # type: ignore[attr-defined]
        if fresh:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def create(self, entity: ModelT) -> ModelT:
        """Insert an entity and return it with server defaults loaded."""
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def update(self, entity: ModelT) -> ModelT:
        """Flush pending attribute changes on an entity and reload it."""
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def get_paginated(
        self,
        *,
        filters: list[ColumnElement[bool]] | None = None,
        sort_by: str | None = None,
        sort_dir: str = "asc",
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[ModelT], int]:
        """
        Get one page of entities and the total matching count.

        Rows sharing a ``sort_by`` value are ordered by ``id`` so pages do
        not overlap.

        Args:
            filters: SQLAlchemy conditions, combined with AND
            sort_by: Column name to sort by; ignored if the model lacks it
            sort_dir: "asc" or "desc"
            limit: Page size
            offset: Rows to skip

        Returns:
            Tuple of (entities, total count)
        """
        conditions = filters or []
        count_query = select(func.count()).select_from(self.model).where(*conditions)
        total = (await self.session.execute(count_query)).scalar() or 0

        query = select(self.model).where(*conditions)
        if sort_by and hasattr(self.model, sort_by):
            direction = desc if sort_dir == "desc" else asc
            query = query.order_by(direction(getattr(self.model, sort_by)))
        query = query.order_by(self.model.id)  # type: ignore[attr-defined]

        result = await self.session.execute(query.limit(limit).offset(offset))
        return list(result.scalars().all()), total
