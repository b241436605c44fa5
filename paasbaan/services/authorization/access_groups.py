"""
Access group administration.

Every operation runs in one unit of work. Cache entries of affected users
are invalidated only after the unit of work has committed; affected users
are always read before any membership is removed.
"""
from typing import Any, Dict, Iterable, List, Optional, Set, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paasbaan.core.exceptions import (
    AccessGroupInUseError,
    DuplicateCodeError,
    DuplicateNameError,
    NotFoundError,
    ValidationError,
)
from paasbaan.domain.schemas import (
    AccessGroupAssignments,
    AccessGroupCreate,
    AccessGroupPermissionRead,
    AccessGroupRead,
    AccessGroupUpdate,
    AccessGroupUserRead,
    AccessGroupWithAssignments,
    AssignmentMode,
    PermissionCreate,
    PermissionRead,
    coerce_id,
    coerce_ids,
    parse,
)
from paasbaan.infrastructure.cache.permission_cache import PermissionCache
from paasbaan.repositories.unit_of_work import ReadOnlyUnitOfWork, UnitOfWork
from paasbaan.services.authorization.resource_permissions import create_grants, declare_type


class AccessGroupAdministrator:
    """
    CRUD and bulk assignment over access groups, permissions and memberships.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: Optional[PermissionCache] = None,
        logger: Any = None,
    ):
        self.session_factory = session_factory
        self.logger = logger or structlog.get_logger(__name__)
        self.cache = cache or PermissionCache(logger=self.logger)

    # Access groups

    async def _ensure_name_free(
        self,
        uow: UnitOfWork,
        name: str,
        exclude_id: Optional[int] = None,
    ) -> None:
        if await uow.access_groups.get_by_name(name, exclude_id=exclude_id) is not None:
            raise DuplicateNameError(name)

    async def create_access_group(self, data: Union[AccessGroupCreate, Dict[str, Any]]) -> AccessGroupRead:
        """
        Create an access group.

        Raises:
            ValidationError: if the name is missing
            DuplicateNameError: if an active group already uses the name
        """
        payload = parse(AccessGroupCreate, data)
        async with UnitOfWork(
            self.session_factory, operation="create_access_group", logger=self.logger
        ) as uow:
            await self._ensure_name_free(uow, payload.name)
            group = await uow.access_groups.create(payload.model_dump())
            created = AccessGroupRead.model_validate(group)

        self.logger.info("access_group_created", access_group_id=created.id, name=created.name)
        return created

    async def update_access_group(
        self,
        group_id: Any,
        data: Union[AccessGroupUpdate, Dict[str, Any]],
    ) -> AccessGroupRead:
        """
        Update the name and/or description of a group.

        Raises:
            NotFoundError: if the group does not exist
            DuplicateNameError: if another active group already uses the name
        """
        gid = coerce_id(group_id, "access_group_id")
        payload = parse(AccessGroupUpdate, data)
        async with UnitOfWork(
            self.session_factory, operation="update_access_group", logger=self.logger
        ) as uow:
            group = await uow.access_groups.require(gid)
            if payload.name is not None:
                await self._ensure_name_free(uow, payload.name, exclude_id=gid)
            group = await uow.access_groups.update(group, payload.model_dump(exclude_none=True))
            updated = AccessGroupRead.model_validate(group)

        self.logger.info("access_group_updated", access_group_id=gid)
        return updated

    async def delete_access_group(self, group_id: Any, hard: bool = False) -> bool:
        """
        Delete a group that owns nothing.

        Soft deletes by default. A hard delete also purges the group's
        previously removed links and grants.

        Raises:
            NotFoundError: if the group does not exist
            AccessGroupInUseError: while active users, permission links or grants remain
        """
        gid = coerce_id(group_id, "access_group_id")
        async with UnitOfWork(
            self.session_factory, operation="delete_access_group", logger=self.logger
        ) as uow:
            group = await uow.access_groups.require(gid)
            users = await uow.group_users.count_active(access_group_id=gid)
            permissions = await uow.group_permissions.count_active(access_group_id=gid)
            grants = await uow.resource_grants.count_active(access_group_id=gid)
            if users or permissions or grants:
                raise AccessGroupInUseError(gid, users, permissions, grants)

            if hard:
                await uow.resource_grants.purge(access_group_id=gid)
                await uow.group_permissions.purge(access_group_id=gid)
                await uow.group_users.purge(access_group_id=gid)
                await uow.access_groups.delete(group)
            else:
                await uow.access_groups.soft_delete(group)

        self.logger.info("access_group_deleted", access_group_id=gid, hard=hard)
        return True

    async def get_access_group(self, group_id: Any) -> AccessGroupRead:
        gid = coerce_id(group_id, "access_group_id")
        async with ReadOnlyUnitOfWork(
            self.session_factory, operation="get_access_group", logger=self.logger
        ) as uow:
            return AccessGroupRead.model_validate(await uow.access_groups.require(gid))

    async def list_access_groups(self) -> List[AccessGroupRead]:
        async with ReadOnlyUnitOfWork(
            self.session_factory, operation="list_access_groups", logger=self.logger
        ) as uow:
            return [AccessGroupRead.model_validate(g) for g in await uow.access_groups.get_multi()]

    async def get_access_group_users(self, group_id: Any) -> List[int]:
        """User IDs with an active membership in a group."""
        gid = coerce_id(group_id, "access_group_id")
        async with ReadOnlyUnitOfWork(
            self.session_factory, operation="get_access_group_users", logger=self.logger
        ) as uow:
            await uow.access_groups.require(gid)
            return await uow.group_users.member_ids(gid)

    async def get_user_access_groups(self, user_id: Any) -> List[AccessGroupRead]:
        uid = coerce_id(user_id, "user_id")
        async with ReadOnlyUnitOfWork(
            self.session_factory, operation="get_user_access_groups", logger=self.logger
        ) as uow:
            return [AccessGroupRead.model_validate(g) for g in await uow.access_groups.get_for_user(uid)]

    # Permissions

    async def create_permission(self, data: Union[PermissionCreate, Dict[str, Any]]) -> PermissionRead:
        """
        Create a permission.

        Raises:
            ValidationError: if the code or name is missing
            DuplicateCodeError: if an active permission already uses the code
        """
        payload = parse(PermissionCreate, data)
        async with UnitOfWork(
            self.session_factory, operation="create_permission", logger=self.logger
        ) as uow:
            if await uow.permissions.get_by_code(payload.code) is not None:
                raise DuplicateCodeError(payload.code)
            permission = await uow.permissions.create(payload.model_dump())
            created = PermissionRead.model_validate(permission)

        self.logger.info("permission_created", permission_id=created.id, code=created.code)
        return created

    async def get_permission(self, permission_id: Any) -> PermissionRead:
        pid = coerce_id(permission_id, "permission_id")
        async with ReadOnlyUnitOfWork(
            self.session_factory, operation="get_permission", logger=self.logger
        ) as uow:
            return PermissionRead.model_validate(await uow.permissions.require(pid))

    async def get_permission_by_code(self, code: str) -> PermissionRead:
        if not isinstance(code, str) or not code.strip():
            raise ValidationError("code is required", field="code")
        async with ReadOnlyUnitOfWork(
            self.session_factory, operation="get_permission_by_code", logger=self.logger
        ) as uow:
            permission = await uow.permissions.get_by_code(code.strip())
            if permission is None:
                raise NotFoundError("Permission", code)
            return PermissionRead.model_validate(permission)

    async def list_permissions(self) -> List[PermissionRead]:
        async with ReadOnlyUnitOfWork(
            self.session_factory, operation="list_permissions", logger=self.logger
        ) as uow:
            return [PermissionRead.model_validate(p) for p in await uow.permissions.get_multi()]

    async def assign_permission_to_access_group(
        self,
        group_id: Any,
        permission_id: Any,
    ) -> AccessGroupPermissionRead:
        """
        Link a permission to a group. Linking twice is a no-op.

        Raises:
            NotFoundError: if the group or permission does not exist
        """
        gid = coerce_id(group_id, "access_group_id")
        pid = coerce_id(permission_id, "permission_id")
        async with UnitOfWork(
            self.session_factory, operation="assign_permission", logger=self.logger
        ) as uow:
            await uow.access_groups.require(gid)
            await uow.permissions.require(pid)
            members = await uow.group_users.member_ids(gid)
            link, created = await uow.group_permissions.link(access_group_id=gid, permission_id=pid)
            assigned = AccessGroupPermissionRead.model_validate(link)

        if created:
            await self.cache.invalidate_users(members)
            self.logger.info("permission_assigned", access_group_id=gid, permission_id=pid)
        return assigned

    async def unassign_permission_from_access_group(self, group_id: Any, permission_id: Any) -> bool:
        """
        Remove a permission from a group.

        Resource grants made through the permission are kept.

        Returns:
            Whether a link was removed
        """
        gid = coerce_id(group_id, "access_group_id")
        pid = coerce_id(permission_id, "permission_id")
        async with UnitOfWork(
            self.session_factory, operation="unassign_permission", logger=self.logger
        ) as uow:
            members = await uow.group_users.member_ids(gid)
            removed = await uow.group_permissions.unlink(access_group_id=gid, permission_id=pid)

        if removed:
            await self.cache.invalidate_users(members)
            self.logger.info("permission_unassigned", access_group_id=gid, permission_id=pid)
        return removed

    # Users

    async def register_user(self, user_id: Any) -> int:
        """Ensure a row exists in the user reference table."""
        uid = coerce_id(user_id, "user_id")
        async with UnitOfWork(
            self.session_factory, operation="register_user", logger=self.logger
        ) as uow:
            found = await uow.users.lookup(uid)
            if found.row is None:
                await uow.users.create({"id": uid})
            elif not found.is_active:
                await uow.users.restore(found.row)
        return uid

    async def _require_users(self, uow: UnitOfWork, user_ids: Iterable[int]) -> None:
        requested = list(dict.fromkeys(user_ids))
        existing = await uow.users.existing_ids(requested)
        missing = [uid for uid in requested if uid not in existing]
        if missing:
            raise NotFoundError("User", missing[0])

    async def add_user_to_access_group(self, group_id: Any, user_id: Any) -> AccessGroupUserRead:
        """
        Add a user to a group. Adding twice is a no-op.

        Raises:
            NotFoundError: if the group or user does not exist
        """
        gid = coerce_id(group_id, "access_group_id")
        uid = coerce_id(user_id, "user_id")
        async with UnitOfWork(
            self.session_factory, operation="add_user", logger=self.logger
        ) as uow:
            await uow.access_groups.require(gid)
            await self._require_users(uow, [uid])
            link, created = await uow.group_users.link(access_group_id=gid, user_id=uid)
            added = AccessGroupUserRead.model_validate(link)

        if created:
            await self.cache.invalidate_user(uid)
            self.logger.info("user_added_to_access_group", access_group_id=gid, user_id=uid)
        return added

    async def remove_user_from_access_group(self, group_id: Any, user_id: Any) -> bool:
        """
        Remove a user from a group.

        Returns:
            Whether a membership was removed
        """
        gid = coerce_id(group_id, "access_group_id")
        uid = coerce_id(user_id, "user_id")
        async with UnitOfWork(
            self.session_factory, operation="remove_user", logger=self.logger
        ) as uow:
            removed = await uow.group_users.unlink(access_group_id=gid, user_id=uid)

        if removed:
            await self.cache.invalidate_user(uid)
            self.logger.info("user_removed_from_access_group", access_group_id=gid, user_id=uid)
        return removed

    # Bulk assignment

    async def _apply_assignments(
        self,
        uow: UnitOfWork,
        group_id: int,
        payload: AccessGroupWithAssignments,
    ) -> Dict[str, Any]:
        """Add users, permission links and resource grants to a group in an open unit of work."""
        await self._require_users(uow, payload.user_ids)
        for uid in payload.user_ids:
            await uow.group_users.link(access_group_id=group_id, user_id=uid)

        permission_ids: List[int] = []
        grants = 0
        for assignment in payload.permissions:
            pid = assignment.permission_id
            await uow.permissions.require(pid)
            await uow.group_permissions.link(access_group_id=group_id, permission_id=pid)
            permission_ids.append(pid)

            for type_name, resource_ids in assignment.resource_level_permissions.items():
                rtype = await declare_type(uow, pid, type_name)
                rows = await create_grants(uow, pid, rtype.id, group_id, dict.fromkeys(resource_ids))
                grants += len(rows)

        return {
            "user_ids": list(dict.fromkeys(payload.user_ids)),
            "permission_ids": list(dict.fromkeys(permission_ids)),
            "resource_grants": grants,
        }

    async def create_access_group_with_assignments(
        self,
        data: Union[AccessGroupWithAssignments, Dict[str, Any]],
    ) -> AccessGroupAssignments:
        """
        Create a group together with its users, permissions and resource grants.

        All or nothing: any failure leaves no new rows behind.

        Args:
            data: ``{name, description, user_ids, permissions: [{permission_id,
                resource_level_permissions: {type_name: [resource_id, ...]}}]}``

        Raises:
            DuplicateNameError: if an active group already uses the name
            NotFoundError: for an unknown user or permission
        """
        payload = parse(AccessGroupWithAssignments, data)
        async with UnitOfWork(
            self.session_factory, operation="create_access_group_with_assignments", logger=self.logger
        ) as uow:
            await self._ensure_name_free(uow, payload.name)
            group = await uow.access_groups.create(
                {"name": payload.name, "description": payload.description}
            )
            applied = await self._apply_assignments(uow, group.id, payload)
            result = AccessGroupAssignments(access_group=AccessGroupRead.model_validate(group), **applied)

        await self.cache.invalidate_users(result.user_ids)
        self.logger.info(
            "access_group_created_with_assignments",
            access_group_id=result.access_group.id,
            users=len(result.user_ids),
            permissions=len(result.permission_ids),
            resource_grants=result.resource_grants,
        )
        return result

    async def update_access_group_with_assignments(
        self,
        group_id: Any,
        data: Union[AccessGroupWithAssignments, Dict[str, Any]],
        mode: Union[AssignmentMode, str] = AssignmentMode.REPLACE,
    ) -> AccessGroupAssignments:
        """
        Update a group and its assignments in one transaction.

        ``replace`` removes every existing membership, permission link and
        resource grant of the group before applying the payload;
        ``additive`` only adds what is missing.

        Raises:
            NotFoundError: if the group, a user or a permission does not exist
            DuplicateNameError: if another active group already uses the name
        """
        gid = coerce_id(group_id, "access_group_id")
        payload = parse(AccessGroupWithAssignments, data)
        try:
            mode = AssignmentMode(mode)
        except ValueError as e:
            raise ValidationError(f"Unknown assignment mode: {mode}", field="mode") from e

        async with UnitOfWork(
            self.session_factory, operation="update_access_group_with_assignments", logger=self.logger
        ) as uow:
            group = await uow.access_groups.require(gid)
            await self._ensure_name_free(uow, payload.name, exclude_id=gid)

            # Members about to be unlinked still need their cache entries cleared.
            affected: Set[int] = set(await uow.group_users.member_ids(gid))

            group = await uow.access_groups.update(
                group, {"name": payload.name, "description": payload.description}
            )
            if mode is AssignmentMode.REPLACE:
                await uow.resource_grants.unlink_all(access_group_id=gid)
                await uow.group_permissions.unlink_all(access_group_id=gid)
                await uow.group_users.unlink_all(access_group_id=gid)

            applied = await self._apply_assignments(uow, gid, payload)
            result = AccessGroupAssignments(access_group=AccessGroupRead.model_validate(group), **applied)

        affected.update(result.user_ids)
        await self.cache.invalidate_users(affected)
        self.logger.info(
            "access_group_updated_with_assignments",
            access_group_id=gid,
            mode=mode.value,
            users=len(result.user_ids),
            permissions=len(result.permission_ids),
            resource_grants=result.resource_grants,
        )
        return result

    async def bulk_add_users(self, group_id: Any, user_ids: List[Any]) -> List[int]:
        """Add several users to a group in one transaction."""
        gid = coerce_id(group_id, "access_group_id")
        ids = coerce_ids(user_ids, "user_ids")
        async with UnitOfWork(
            self.session_factory, operation="bulk_add_users", logger=self.logger
        ) as uow:
            await uow.access_groups.require(gid)
            await self._require_users(uow, ids)
            for uid in ids:
                await uow.group_users.link(access_group_id=gid, user_id=uid)

        await self.cache.invalidate_users(ids)
        self.logger.info("users_added_to_access_group", access_group_id=gid, users=len(ids))
        return ids
