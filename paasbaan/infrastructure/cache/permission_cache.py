"""
Permission cache keyspaces on top of a cache backend.
"""
from typing import Any, Iterable, Optional, Set

import structlog

from paasbaan.domain.interfaces.base import ICacheBackend
from paasbaan.infrastructure.cache.memory import NullCache

USER_PERMISSIONS_PREFIX = "user_permissions"
RESOURCE_PERMISSIONS_PREFIX = "resource_permissions"


def user_permissions_key(user_id: int) -> str:
    return f"{USER_PERMISSIONS_PREFIX}:{user_id}"


def resource_permissions_key(user_id: int, resource_type: str, permission_id: int) -> str:
    return f"{RESOURCE_PERMISSIONS_PREFIX}:{user_id}:{resource_type}:{permission_id}"


class PermissionCache:
    """
    Memoizes permission lookups per user.

    Two keyspaces: the flat permission set of a user, and the resource IDs a
    user may act on per (resource type, permission). Mutations invalidate
    entries; they never write recomputed values.

    Backend failures are logged and treated as a miss or a no-op, so cache
    calls never raise.
    """

    def __init__(self, backend: Optional[ICacheBackend] = None, logger: Any = None):
        self.backend = backend if backend is not None else NullCache()
        self.logger = logger or structlog.get_logger(__name__)

    @property
    def enabled(self) -> bool:
        return not isinstance(self.backend, NullCache)

    async def _get(self, key: str) -> Optional[Any]:
        try:
            value = await self.backend.get(key)
        except Exception as e:
            self.logger.warning("permission_cache_get_failed", key=key, error=str(e))
            return None
        if value is not None:
            self.logger.debug("permission_cache_hit", key=key)
        return value

    async def _set(self, key: str, value: Any) -> None:
        try:
            await self.backend.set(key, value)
        except Exception as e:
            self.logger.warning("permission_cache_set_failed", key=key, error=str(e))

    async def _delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self.backend.delete(*keys)
        except Exception as e:
            self.logger.warning("permission_cache_delete_failed", keys=list(keys), error=str(e))
            return 0

    async def get_user_permissions(self, user_id: int) -> Optional[Set[str]]:
        value = await self._get(user_permissions_key(user_id))
        return set(value) if value is not None else None

    async def set_user_permissions(self, user_id: int, codes: Iterable[str]) -> None:
        await self._set(user_permissions_key(user_id), sorted(codes))

    async def get_resource_ids(
        self,
        user_id: int,
        resource_type: str,
        permission_id: int,
    ) -> Optional[Set[int]]:
        value = await self._get(resource_permissions_key(user_id, resource_type, permission_id))
        return set(value) if value is not None else None

    async def set_resource_ids(
        self,
        user_id: int,
        resource_type: str,
        permission_id: int,
        resource_ids: Iterable[int],
    ) -> None:
        await self._set(
            resource_permissions_key(user_id, resource_type, permission_id),
            sorted(resource_ids),
        )

    async def invalidate_user(self, user_id: int) -> int:
        """
        Drop every cached answer for a user.

        Returns:
            Number of entries removed
        """
        prefix = f"{RESOURCE_PERMISSIONS_PREFIX}:{user_id}:"
        try:
            resource_keys = await self.backend.keys_with_prefix(prefix)
        except Exception as e:
            self.logger.warning("permission_cache_scan_failed", prefix=prefix, error=str(e))
            resource_keys = []
        removed = await self._delete(user_permissions_key(user_id), *resource_keys)
        self.logger.debug("permission_cache_user_invalidated", user_id=user_id, removed=removed)
        return removed

    async def invalidate_users(self, user_ids: Iterable[int]) -> int:
        removed = 0
        for user_id in set(user_ids):
            removed += await self.invalidate_user(user_id)
        return removed

    async def invalidate_resource(
        self,
        user_ids: Iterable[int],
        resource_type: str,
        permission_id: int,
    ) -> int:
        """Drop the (type, permission) resource entry of each user."""
        keys = [
            resource_permissions_key(user_id, resource_type, permission_id)
            for user_id in set(user_ids)
        ]
        return await self._delete(*keys)

    async def invalidate_resource_type(self, resource_type: str, permission_id: int) -> int:
        """Drop the (type, permission) resource entry of every user."""
        suffix = f":{resource_type}:{permission_id}"
        try:
            keys = await self.backend.keys_with_prefix(f"{RESOURCE_PERMISSIONS_PREFIX}:")
        except Exception as e:
            self.logger.warning("permission_cache_scan_failed", suffix=suffix, error=str(e))
            return 0
        return await self._delete(*[key for key in keys if key.endswith(suffix)])

    async def clear(self) -> None:
        try:
            await self.backend.clear()
        except Exception as e:
            self.logger.warning("permission_cache_clear_failed", error=str(e))
            return
        self.logger.info("permission_cache_cleared")
