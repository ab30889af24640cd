"""
Base repository.

Shared insert and count helpers. Repositories flush but never commit:
the service that owns the unit of work decides when it becomes durable.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Generic repository bound to one model and one session."""

    def __init__(self, model: type[ModelType], session: AsyncSession) -> None:
        self.model = model
        self.session = session

    async def create(self, **data: Any) -> ModelType:
        """
        Add a row and flush it.

        Flushing surfaces unique-constraint violations here, inside the
        caller's try block, instead of at commit time.

        Args:
            **data: Column values

        Returns:
            Persistent instance with its primary key set
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def count(self, **filters: Any) -> int:
        """Count rows matching equality filters."""
        stmt = select(func.count()).select_from(self.model).filter_by(**filters)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def exists(self, **filters: Any) -> bool:
        """Whether any row matches equality filters."""
        return await self.count(**filters) > 0
