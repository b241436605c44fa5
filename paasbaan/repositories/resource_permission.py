"""
Resource type declaration and resource grant repositories.
"""
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paasbaan.infrastructure.database.models import (
    ResourceLevelPermission,
    ResourceLevelPermissionType,
)
from paasbaan.repositories.links import LinkRepository


class ResourceTypeRepository(LinkRepository[ResourceLevelPermissionType]):
    """Resource type declarations, unique per (permission, name)."""

    label = "ResourceLevelPermissionType"

    def __init__(self, db: AsyncSession):
        super().__init__(ResourceLevelPermissionType, db)

    async def get_declared(
        self,
        permission_id: int,
        name: str,
    ) -> Optional[ResourceLevelPermissionType]:
        """Active declaration of ``name`` for a permission."""
        stmt = self.active(select(ResourceLevelPermissionType)).where(
            ResourceLevelPermissionType.permission_id == permission_id,
            ResourceLevelPermissionType.name == name,
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def names_by_id(self, type_ids: Iterable[int]) -> Dict[int, str]:
        """Map type ids to names."""
        ids = set(type_ids)
        if not ids:
            return {}
        stmt = select(ResourceLevelPermissionType.id, ResourceLevelPermissionType.name).where(
            ResourceLevelPermissionType.id.in_(ids)
        )
        result = await self.db.execute(stmt)
        return {row.id: row.name for row in result}

    async def ids_by_name(self, name: str) -> Set[int]:
        """IDs of active declarations named ``name``, across permissions."""
        stmt = self.active(select(ResourceLevelPermissionType.id)).where(
            ResourceLevelPermissionType.name == name
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())


class ResourceGrantRepository(LinkRepository[ResourceLevelPermission]):
    """Resource-level grants."""

    label = "ResourceLevelPermission"

    def __init__(self, db: AsyncSession):
        super().__init__(ResourceLevelPermission, db)

    async def resource_ids(
        self,
        resource_type_id: int,
        permission_id: int,
        group_ids: Iterable[int],
    ) -> Set[int]:
        """
        Distinct resource IDs granted to any of the groups.

        Args:
            resource_type_id: Declared resource type
            permission_id: Permission the grant is made through
            group_ids: Candidate access groups

        Returns:
            Union of granted resource IDs
        """
        ids = set(group_ids)
        if not ids:
            return set()
        stmt = (
            self.active(select(ResourceLevelPermission.resource_id))
            .distinct()
            .where(
                ResourceLevelPermission.resource_type_id == resource_type_id,
                ResourceLevelPermission.permission_id == permission_id,
                ResourceLevelPermission.access_group_id.in_(ids),
            )
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def for_group(
        self,
        group_id: int,
        permission_id: Optional[int] = None,
        resource_type_ids: Optional[Iterable[int]] = None,
    ) -> List[ResourceLevelPermission]:
        """Active grants of a group, optionally filtered."""
        stmt = self.active(select(ResourceLevelPermission)).where(
            ResourceLevelPermission.access_group_id == group_id
        )
        if permission_id is not None:
            stmt = stmt.where(ResourceLevelPermission.permission_id == permission_id)
        if resource_type_ids is not None:
            stmt = stmt.where(ResourceLevelPermission.resource_type_id.in_(set(resource_type_ids)))
        stmt = stmt.order_by(ResourceLevelPermission.permission_id, ResourceLevelPermission.resource_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
