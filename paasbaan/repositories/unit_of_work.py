"""
Unit of Work pattern implementation for transactional operations.
"""
from typing import Any, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paasbaan.core.exceptions import StoreError
from paasbaan.repositories.access_group import AccessGroupRepository, PermissionRepository
from paasbaan.repositories.links import (
    AccessGroupPermissionRepository,
    AccessGroupUserRepository,
)
from paasbaan.repositories.resource_permission import (
    ResourceGrantRepository,
    ResourceTypeRepository,
)
from paasbaan.repositories.user import UserRepository


class UnitOfWork:
    """
    Unit of Work pattern for managing database transactions.

    Ensures all repository operations within a unit are committed together
    or rolled back on failure. Persistence failures leave the unit as
    ``StoreError``; domain exceptions pass through unchanged after rollback.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        operation: Optional[str] = None,
        logger: Any = None,
    ):
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self.operation = operation
        self.logger = logger or structlog.get_logger(__name__)

        # Repository instances
        self._users: UserRepository | None = None
        self._access_groups: AccessGroupRepository | None = None
        self._permissions: PermissionRepository | None = None
        self._group_users: AccessGroupUserRepository | None = None
        self._group_permissions: AccessGroupPermissionRepository | None = None
        self._resource_types: ResourceTypeRepository | None = None
        self._resource_grants: ResourceGrantRepository | None = None

    async def __aenter__(self):
        """Enter the context manager."""
        self._session = self._session_factory()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit the context manager."""
        try:
            if exc_type is not None:
                await self.rollback()
            else:
                await self.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            self.logger.error("transaction_commit_failed", operation=self.operation, error=str(e))
            raise StoreError(f"Store operation failed: {e}", operation=self.operation) from e
        finally:
            await self._session.close()

        if exc_type is not None and issubclass(exc_type, SQLAlchemyError):
            self.logger.error("transaction_rolled_back", operation=self.operation, error=str(exc_val))
            raise StoreError(f"Store operation failed: {exc_val}", operation=self.operation) from exc_val
        return False

    async def commit(self):
        """Commit the transaction."""
        if self._session:
            await self._session.commit()

    async def rollback(self):
        """Rollback the transaction."""
        if self._session:
            await self._session.rollback()

    @property
    def session(self) -> AsyncSession:
        """Get the current session."""
        if not self._session:
            raise RuntimeError("UnitOfWork must be used within a context manager")
        return self._session

    @property
    def users(self) -> UserRepository:
        """Get user repository."""
        if not self._users:
            self._users = UserRepository(self.session)
        return self._users

    @property
    def access_groups(self) -> AccessGroupRepository:
        """Get access group repository."""
        if not self._access_groups:
            self._access_groups = AccessGroupRepository(self.session)
        return self._access_groups

    @property
    def permissions(self) -> PermissionRepository:
        """Get permission repository."""
        if not self._permissions:
            self._permissions = PermissionRepository(self.session)
        return self._permissions

    @property
    def group_users(self) -> AccessGroupUserRepository:
        """Get group membership repository."""
        if not self._group_users:
            self._group_users = AccessGroupUserRepository(self.session)
        return self._group_users

    @property
    def group_permissions(self) -> AccessGroupPermissionRepository:
        """Get group permission link repository."""
        if not self._group_permissions:
            self._group_permissions = AccessGroupPermissionRepository(self.session)
        return self._group_permissions

    @property
    def resource_types(self) -> ResourceTypeRepository:
        """Get resource type declaration repository."""
        if not self._resource_types:
            self._resource_types = ResourceTypeRepository(self.session)
        return self._resource_types

    @property
    def resource_grants(self) -> ResourceGrantRepository:
        """Get resource grant repository."""
        if not self._resource_grants:
            self._resource_grants = ResourceGrantRepository(self.session)
        return self._resource_grants


class ReadOnlyUnitOfWork(UnitOfWork):
    """
    Read-only Unit of Work for query operations.

    Automatically rolls back any changes to prevent accidental writes.
    """

    async def commit(self):
        """Override commit to always rollback."""
        await self.rollback()
