"""
Base repository implementation.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from paasbaan.core.exceptions import NotFoundError
from paasbaan.infrastructure.database.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class EntityState(str, Enum):
    """Result of a point lookup that distinguishes soft deletes from absence."""
    ACTIVE = "active"
    SOFT_DELETED = "soft_deleted"
    ABSENT = "absent"


@dataclass(frozen=True)
class Lookup(Generic[ModelType]):
    """Tri-state lookup result."""
    state: EntityState
    row: Optional[ModelType] = None

    @property
    def is_active(self) -> bool:
        return self.state is EntityState.ACTIVE


class BaseRepository(Generic[ModelType]):
    """
    Base repository with common CRUD operations.

    Repositories never commit; the surrounding unit of work owns the
    transaction. Writes are flushed so generated ids are available.
    """

    label: str = "Entity"

    def __init__(
        self,
        model: Type[ModelType],
        db: AsyncSession,
    ):
        self.model = model
        self.db = db

    def active(self, stmt):
        """Restrict a statement to rows that are not soft deleted."""
        return stmt.where(self.model.deleted_at.is_(None))

    async def create(
        self,
        data: Dict[str, Any],
    ) -> ModelType:
        """
        Create a new record.

        Args:
            data: Record data

        Returns:
            Created record
        """
        db_obj = self.model(**data)
        self.db.add(db_obj)
        await self.db.flush()
        await self.db.refresh(db_obj)
        return db_obj

    async def get(
        self,
        id: int,
    ) -> Optional[ModelType]:
        """
        Get record by ID, soft deleted or not.

        Args:
            id: Record ID

        Returns:
            Record if found
        """
        stmt = select(self.model).where(self.model.id == id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def lookup(self, id: int) -> Lookup[ModelType]:
        """Get record by ID together with its lifecycle state."""
        row = await self.get(id)
        if row is None:
            return Lookup(EntityState.ABSENT)
        if row.deleted_at is not None:
            return Lookup(EntityState.SOFT_DELETED, row)
        return Lookup(EntityState.ACTIVE, row)

    async def get_active(self, id: int) -> Optional[ModelType]:
        """Get record by ID if it is not soft deleted."""
        found = await self.lookup(id)
        return found.row if found.is_active else None

    async def require(self, id: int) -> ModelType:
        """
        Get an active record or raise.

        Raises:
            NotFoundError: carrying ``state`` ``absent`` or ``soft_deleted``
        """
        found = await self.lookup(id)
        if not found.is_active:
            raise NotFoundError(self.label, id, state=found.state.value)
        return found.row

    async def get_multi(
        self,
        *,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[ModelType]:
        """
        Get active records ordered by id.

        Args:
            skip: Number of records to skip
            limit: Maximum number of records to return

        Returns:
            List of records
        """
        stmt = self.active(select(self.model)).order_by(self.model.id).offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_active(self, **filters: Any) -> int:
        """Count active records matching equality filters."""
        stmt = self.active(select(func.count()).select_from(self.model)).filter_by(**filters)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def update(
        self,
        db_obj: ModelType,
        data: Dict[str, Any],
    ) -> ModelType:
        """
        Update a record.

        Args:
            db_obj: Record to update
            data: Update data

        Returns:
            Updated record
        """
        for field, value in data.items():
            setattr(db_obj, field, value)

        await self.db.flush()
        await self.db.refresh(db_obj)
        return db_obj

    async def soft_delete(self, db_obj: ModelType) -> ModelType:
        """Mark a record as deleted."""
        db_obj.soft_delete()
        await self.db.flush()
        return db_obj

    async def restore(self, db_obj: ModelType) -> ModelType:
        """Reactivate a soft deleted record."""
        db_obj.restore()
        await self.db.flush()
        return db_obj

    async def delete(
        self,
        db_obj: ModelType,
    ) -> None:
        """
        Permanently delete a record.

        Args:
            db_obj: Record to delete
        """
        await self.db.delete(db_obj)
        await self.db.flush()
