"""
Flat permission resolution through access group membership.
"""
from typing import Any, Iterable, List, Optional, Set, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paasbaan.core.config import SUPER_ADMIN_CODE
from paasbaan.core.exceptions import StoreError
from paasbaan.domain.schemas import AccessGroupRead, coerce_id
from paasbaan.infrastructure.cache.permission_cache import PermissionCache
from paasbaan.repositories.unit_of_work import ReadOnlyUnitOfWork


def holds_super_admin(codes: Iterable[str]) -> bool:
    """Check whether a permission set carries the universal bypass."""
    return SUPER_ADMIN_CODE in set(codes)


class PermissionResolver:
    """
    Computes the permission codes a user holds.

    A user's permissions are the union of the permissions of every active
    group they are an active member of. Results are memoized in the
    permission cache under the user's id.
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

    async def resolve(self, user_id: Any) -> Set[str]:
        """
        Get the distinct permission codes of a user.

        Args:
            user_id: User ID (integer or digit string)

        Returns:
            Permission codes; empty for users without memberships

        Raises:
            ValidationError: if user_id is missing or malformed
            StoreError: on persistence failure
        """
        uid = coerce_id(user_id, "user_id")

        cached = await self.cache.get_user_permissions(uid)
        if cached is not None:
            return cached

        async with ReadOnlyUnitOfWork(
            self.session_factory, operation="resolve_permissions", logger=self.logger
        ) as uow:
            codes = await uow.permissions.codes_for_user(uid)

        await self.cache.set_user_permissions(uid, codes)
        self.logger.debug("user_permissions_resolved", user_id=uid, count=len(codes))
        return codes

    async def has_permission(
        self,
        user_id: Any,
        permissions: Union[str, List[str]],
    ) -> bool:
        """
        Check whether a user holds any of the given permissions.

        Super admins hold every permission. Store failures deny.

        Args:
            user_id: User ID
            permissions: A permission code or list of codes (ANY semantics)

        Returns:
            True if the user holds super_admin or at least one listed code
        """
        required = [permissions] if isinstance(permissions, str) else list(permissions)
        try:
            held = await self.resolve(user_id)
        except StoreError as e:
            self.logger.error("permission_check_failed", user_id=user_id, error=e.message)
            return False

        if holds_super_admin(held):
            return True
        return any(code in held for code in required)

    async def get_user_access_groups(self, user_id: Any) -> List[AccessGroupRead]:
        """Active access groups a user belongs to."""
        uid = coerce_id(user_id, "user_id")
        async with ReadOnlyUnitOfWork(
            self.session_factory, operation="get_user_access_groups", logger=self.logger
        ) as uow:
            groups = await uow.access_groups.get_for_user(uid)
            return [AccessGroupRead.model_validate(group) for group in groups]
