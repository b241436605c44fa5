"""
Access group and permission repositories.
"""
from typing import List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paasbaan.infrastructure.database.models import (
    AccessGroup,
    AccessGroupPermission,
    AccessGroupUser,
    Permission,
)
from paasbaan.repositories.base import BaseRepository


class AccessGroupRepository(BaseRepository[AccessGroup]):
    """Access group repository."""

    label = "AccessGroup"

    def __init__(self, db: AsyncSession):
        super().__init__(AccessGroup, db)

    async def get_by_name(
        self,
        name: str,
        exclude_id: Optional[int] = None,
    ) -> Optional[AccessGroup]:
        """
        Get an active group by name.

        Args:
            name: Group name
            exclude_id: Group to ignore (used when renaming)

        Returns:
            Group if found
        """
        stmt = self.active(select(AccessGroup)).where(AccessGroup.name == name)
        if exclude_id is not None:
            stmt = stmt.where(AccessGroup.id != exclude_id)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_for_user(self, user_id: int) -> List[AccessGroup]:
        """Active groups the user is an active member of."""
        stmt = (
            self.active(select(AccessGroup))
            .join(AccessGroupUser, AccessGroupUser.access_group_id == AccessGroup.id)
            .where(
                AccessGroupUser.user_id == user_id,
                AccessGroupUser.deleted_at.is_(None),
            )
            .order_by(AccessGroup.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().unique().all())

    async def ids_for_user(self, user_id: int) -> Set[int]:
        """IDs of active groups the user is an active member of."""
        stmt = (
            self.active(select(AccessGroup.id))
            .join(AccessGroupUser, AccessGroupUser.access_group_id == AccessGroup.id)
            .where(
                AccessGroupUser.user_id == user_id,
                AccessGroupUser.deleted_at.is_(None),
            )
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())


class PermissionRepository(BaseRepository[Permission]):
    """Permission repository."""

    label = "Permission"

    def __init__(self, db: AsyncSession):
        super().__init__(Permission, db)

    async def get_by_code(self, code: str) -> Optional[Permission]:
        """Get an active permission by code."""
        stmt = self.active(select(Permission)).where(Permission.code == code)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def codes_for_user(self, user_id: int) -> Set[str]:
        """
        Distinct permission codes reachable from a user's groups.

        One round trip: membership -> group -> permission link -> permission,
        every hop restricted to rows that are not soft deleted.

        Args:
            user_id: User ID

        Returns:
            Set of permission codes
        """
        stmt = (
            select(Permission.code)
            .distinct()
            .join(AccessGroupPermission, AccessGroupPermission.permission_id == Permission.id)
            .join(AccessGroup, AccessGroup.id == AccessGroupPermission.access_group_id)
            .join(AccessGroupUser, AccessGroupUser.access_group_id == AccessGroup.id)
            .where(
                AccessGroupUser.user_id == user_id,
                AccessGroupUser.deleted_at.is_(None),
                AccessGroup.deleted_at.is_(None),
                AccessGroupPermission.deleted_at.is_(None),
                Permission.deleted_at.is_(None),
            )
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def for_group(self, group_id: int) -> List[Permission]:
        """Active permissions linked to a group."""
        stmt = (
            self.active(select(Permission))
            .join(AccessGroupPermission, AccessGroupPermission.permission_id == Permission.id)
            .where(
                AccessGroupPermission.access_group_id == group_id,
                AccessGroupPermission.deleted_at.is_(None),
            )
            .order_by(Permission.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
