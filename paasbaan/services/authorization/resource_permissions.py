"""
Resource-level permissions.

A permission can be narrowed to specific instances of a named resource
type. The (permission, type) pair must be declared before grants against it
are meaningful; lookups and grants on an undeclared pair are configuration
errors rather than silent denials.
"""
from typing import Any, Dict, Iterable, List, Optional, Set

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paasbaan.core.exceptions import (
    ResourceTypeInUseError,
    UnconfiguredResourceTypeError,
    ValidationError,
)
from paasbaan.domain.schemas import (
    GroupPermissionView,
    GroupPermissionsView,
    ResourceGrantRead,
    ResourceTypeRead,
    coerce_id,
    coerce_ids,
)
from paasbaan.infrastructure.cache.permission_cache import PermissionCache
from paasbaan.infrastructure.database.models import ResourceLevelPermissionType
from paasbaan.repositories.unit_of_work import ReadOnlyUnitOfWork, UnitOfWork
from paasbaan.services.authorization.resolver import PermissionResolver, holds_super_admin


def resource_type_name(value: Any) -> str:
    """Validate a resource type name."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("resource_type must be a non-empty string", field="resource_type")
    return value.strip()


async def declare_type(
    uow: UnitOfWork,
    permission_id: int,
    name: str,
) -> ResourceLevelPermissionType:
    """Declare a resource type for a permission inside an open unit of work."""
    await uow.permissions.require(permission_id)
    row, _ = await uow.resource_types.link(permission_id=permission_id, name=name)
    return row


async def create_grants(
    uow: UnitOfWork,
    permission_id: int,
    resource_type_id: int,
    group_id: int,
    resource_ids: Iterable[int],
) -> List[Any]:
    """Idempotently create one grant per resource id inside an open unit of work."""
    rows = []
    for resource_id in resource_ids:
        row, _ = await uow.resource_grants.link(
            permission_id=permission_id,
            resource_id=resource_id,
            resource_type_id=resource_type_id,
            access_group_id=group_id,
        )
        rows.append(row)
    return rows


class ResourcePermissionService:
    """
    Resolves and administers resource-level grants.

    Lookups are memoized per (user, resource type, permission); grants and
    revocations invalidate that entry for every current member of the group.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        resolver: PermissionResolver,
        cache: Optional[PermissionCache] = None,
        logger: Any = None,
    ):
        self.session_factory = session_factory
        self.resolver = resolver
        self.logger = logger or structlog.get_logger(__name__)
        self.cache = cache or resolver.cache

    async def _declared(self, uow: UnitOfWork, permission_id: int, name: str) -> ResourceLevelPermissionType:
        rtype = await uow.resource_types.get_declared(permission_id, name)
        if rtype is None:
            raise UnconfiguredResourceTypeError(permission_id, name)
        return rtype

    async def resource_ids_for(
        self,
        resource_type: str,
        permission_id: Any,
        user_id: Any,
    ) -> Set[int]:
        """
        Resource IDs a user may act on through a permission.

        Args:
            resource_type: Resource type name
            permission_id: Permission the access is requested through
            user_id: User ID

        Returns:
            Union of resource IDs granted to the user's active groups

        Raises:
            ValidationError: on malformed arguments
            UnconfiguredResourceTypeError: if the type is not declared for the permission
        """
        name = resource_type_name(resource_type)
        pid = coerce_id(permission_id, "permission_id")
        uid = coerce_id(user_id, "user_id")

        cached = await self.cache.get_resource_ids(uid, name, pid)
        if cached is not None:
            return cached

        async with ReadOnlyUnitOfWork(
            self.session_factory, operation="resource_ids_for", logger=self.logger
        ) as uow:
            rtype = await self._declared(uow, pid, name)
            group_ids = await uow.access_groups.ids_for_user(uid)
            resource_ids = await uow.resource_grants.resource_ids(rtype.id, pid, group_ids)

        await self.cache.set_resource_ids(uid, name, pid, resource_ids)
        self.logger.debug(
            "resource_permissions_resolved",
            user_id=uid,
            resource_type=name,
            permission_id=pid,
            count=len(resource_ids),
        )
        return resource_ids

    async def has_access(
        self,
        resource_type: str,
        permission_id: Any,
        resource_ids: List[Any],
        user_id: Any,
    ) -> bool:
        """
        Check access to every requested resource.

        A single missing id denies the whole batch. Super admins are always
        allowed.

        Raises:
            ValidationError: if resource_ids is empty or malformed
            UnconfiguredResourceTypeError: if the type is not declared for the permission
        """
        requested = coerce_ids(resource_ids, "resource_ids")
        if holds_super_admin(await self.resolver.resolve(user_id)):
            return True
        allowed = await self.resource_ids_for(resource_type, permission_id, user_id)
        return all(resource_id in allowed for resource_id in requested)

    async def declare_resource_type(self, permission_id: Any, resource_type: str) -> ResourceTypeRead:
        """
        Declare that a permission is scoped by a resource type.

        Idempotent: an existing declaration is returned unchanged.

        Raises:
            NotFoundError: if the permission does not exist
        """
        name = resource_type_name(resource_type)
        pid = coerce_id(permission_id, "permission_id")
        async with UnitOfWork(
            self.session_factory, operation="declare_resource_type", logger=self.logger
        ) as uow:
            row = await declare_type(uow, pid, name)
            declared = ResourceTypeRead.model_validate(row)

        self.logger.info("resource_type_declared", permission_id=pid, resource_type=name)
        return declared

    async def revoke_resource_type(self, permission_id: Any, resource_type: str) -> bool:
        """
        Remove a resource type declaration.

        Returns:
            Whether a declaration was removed

        Raises:
            ResourceTypeInUseError: while active grants reference the declaration
        """
        name = resource_type_name(resource_type)
        pid = coerce_id(permission_id, "permission_id")
        async with UnitOfWork(
            self.session_factory, operation="revoke_resource_type", logger=self.logger
        ) as uow:
            rtype = await uow.resource_types.get_declared(pid, name)
            if rtype is None:
                return False
            grants = await uow.resource_grants.count_active(resource_type_id=rtype.id)
            if grants:
                raise ResourceTypeInUseError(pid, name, grants)
            await uow.resource_types.soft_delete(rtype)

        await self.cache.invalidate_resource_type(name, pid)
        self.logger.info("resource_type_revoked", permission_id=pid, resource_type=name)
        return True

    async def grant(
        self,
        permission_id: Any,
        resource_ids: List[Any],
        resource_type: str,
        group_id: Any,
    ) -> List[ResourceGrantRead]:
        """
        Grant a group access to resources through a permission.

        Existing grants are left as they are.

        Raises:
            UnconfiguredResourceTypeError: if the type is not declared for the permission
            NotFoundError: if the group or permission does not exist
        """
        name = resource_type_name(resource_type)
        pid = coerce_id(permission_id, "permission_id")
        gid = coerce_id(group_id, "access_group_id")
        ids = coerce_ids(resource_ids, "resource_ids")

        async with UnitOfWork(
            self.session_factory, operation="grant_resource_permission", logger=self.logger
        ) as uow:
            await uow.permissions.require(pid)
            await uow.access_groups.require(gid)
            rtype = await self._declared(uow, pid, name)
            members = await uow.group_users.member_ids(gid)
            rows = await create_grants(uow, pid, rtype.id, gid, ids)
            granted = [ResourceGrantRead.model_validate(row) for row in rows]

        await self.cache.invalidate_resource(members, name, pid)
        self.logger.info(
            "resource_permission_granted",
            permission_id=pid,
            resource_type=name,
            access_group_id=gid,
            resource_ids=ids,
        )
        return granted

    async def revoke(
        self,
        permission_id: Any,
        resource_ids: List[Any],
        resource_type: str,
        group_id: Any,
    ) -> int:
        """
        Revoke a group's access to resources.

        Returns:
            Number of grants removed

        Raises:
            UnconfiguredResourceTypeError: if the type is not declared for the permission
        """
        name = resource_type_name(resource_type)
        pid = coerce_id(permission_id, "permission_id")
        gid = coerce_id(group_id, "access_group_id")
        ids = coerce_ids(resource_ids, "resource_ids")

        async with UnitOfWork(
            self.session_factory, operation="revoke_resource_permission", logger=self.logger
        ) as uow:
            rtype = await self._declared(uow, pid, name)
            members = await uow.group_users.member_ids(gid)
            removed = 0
            for resource_id in ids:
                if await uow.resource_grants.unlink(
                    permission_id=pid,
                    resource_id=resource_id,
                    resource_type_id=rtype.id,
                    access_group_id=gid,
                ):
                    removed += 1

        await self.cache.invalidate_resource(members, name, pid)
        self.logger.info(
            "resource_permission_revoked",
            permission_id=pid,
            resource_type=name,
            access_group_id=gid,
            removed=removed,
        )
        return removed

    async def group_permissions_view(
        self,
        group_id: Any,
        resource_type: Optional[str] = None,
        permission_id: Optional[Any] = None,
    ) -> GroupPermissionsView:
        """
        Permissions of a group with their resource grants grouped by type.

        A permission without grants reports empty ``resources``, meaning
        unrestricted access under that permission.

        Args:
            group_id: Access group ID
            resource_type: Only report grants of this type
            permission_id: Only report this permission
        """
        gid = coerce_id(group_id, "access_group_id")
        pid = coerce_id(permission_id, "permission_id") if permission_id is not None else None
        name = resource_type_name(resource_type) if resource_type is not None else None

        async with ReadOnlyUnitOfWork(
            self.session_factory, operation="group_permissions_view", logger=self.logger
        ) as uow:
            await uow.access_groups.require(gid)
            permissions = await uow.permissions.for_group(gid)
            if pid is not None:
                permissions = [p for p in permissions if p.id == pid]

            type_filter = await uow.resource_types.ids_by_name(name) if name is not None else None
            grants = await uow.resource_grants.for_group(gid, pid, type_filter)
            type_names = await uow.resource_types.names_by_id(g.resource_type_id for g in grants)

            # Rows expire when the read-only unit rolls back; build the view while attached.
            resources: Dict[int, Dict[str, List[int]]] = {}
            for grant in grants:
                by_type = resources.setdefault(grant.permission_id, {})
                by_type.setdefault(type_names[grant.resource_type_id], []).append(grant.resource_id)

            return GroupPermissionsView(
                permissions=[
                    GroupPermissionView(
                        id=permission.id,
                        code=permission.code,
                        name=permission.name,
                        resources=resources.get(permission.id, {}),
                    )
                    for permission in permissions
                ]
            )
