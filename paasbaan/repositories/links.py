"""
Repositories for the group membership and group permission join tables.
"""
from typing import Any, List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from paasbaan.infrastructure.database.models import (
    AccessGroupPermission,
    AccessGroupUser,
    utcnow,
)
from paasbaan.repositories.base import BaseRepository, ModelType


class LinkRepository(BaseRepository[ModelType]):
    """
    Join-table repository with idempotent link semantics.

    A removed link is soft deleted; linking the same pair again reactivates
    the existing row instead of inserting a duplicate.
    """

    async def find(self, **keys: Any) -> Optional[ModelType]:
        """Get the link row for a key pair, active or soft deleted."""
        stmt = select(self.model).filter_by(**keys)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def link(self, **keys: Any) -> Tuple[ModelType, bool]:
        """
        Ensure an active link exists.

        Returns:
            The link row and whether it was created or reactivated
        """
        row = await self.find(**keys)
        if row is None:
            return await self.create(keys), True
        if row.deleted_at is not None:
            await self.restore(row)
            return row, True
        return row, False

    async def unlink(self, **keys: Any) -> bool:
        """Soft delete an active link. Returns whether one existed."""
        row = await self.find(**keys)
        if row is None or row.deleted_at is not None:
            return False
        await self.soft_delete(row)
        return True

    async def list_active(self, **filters: Any) -> List[ModelType]:
        """Active links matching equality filters."""
        stmt = self.active(select(self.model)).filter_by(**filters).order_by(self.model.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def unlink_all(self, **filters: Any) -> int:
        """Soft delete every active link matching the filters."""
        stmt = (
            update(self.model)
            .filter_by(**filters)
            .where(self.model.deleted_at.is_(None))
            .values(deleted_at=utcnow(), updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        result = await self.db.execute(stmt)
        return result.rowcount

    async def purge(self, **filters: Any) -> int:
        """Hard delete every link matching the filters, soft deleted ones included."""
        stmt = delete(self.model).filter_by(**filters).execution_options(synchronize_session="fetch")
        result = await self.db.execute(stmt)
        return result.rowcount


class AccessGroupUserRepository(LinkRepository[AccessGroupUser]):
    """Group membership repository."""

    label = "AccessGroupUser"

    def __init__(self, db: AsyncSession):
        super().__init__(AccessGroupUser, db)

    async def member_ids(self, group_id: int) -> List[int]:
        """User IDs with an active membership in the group."""
        stmt = (
            self.active(select(AccessGroupUser.user_id))
            .where(AccessGroupUser.access_group_id == group_id)
            .order_by(AccessGroupUser.user_id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


class AccessGroupPermissionRepository(LinkRepository[AccessGroupPermission]):
    """Group permission link repository."""

    label = "AccessGroupPermission"

    def __init__(self, db: AsyncSession):
        super().__init__(AccessGroupPermission, db)
