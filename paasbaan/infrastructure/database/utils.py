"""
Database utilities: startup schema validation and seed data.
"""
from typing import Any, List, Tuple

import structlog
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from paasbaan.core.config import SUPER_ADMIN_CODE, SUPER_ADMIN_GROUP_NAME
from paasbaan.core.exceptions import ConfigurationError, StoreError
from paasbaan.infrastructure.database.models import (
    CORE_TABLES,
    RESOURCE_LEVEL_TABLES,
    AccessGroup,
    Permission,
)
from paasbaan.repositories.unit_of_work import UnitOfWork


async def validate_tables(
    engine: AsyncEngine,
    resource_level_permissions: bool = False,
    logger: Any = None,
) -> List[str]:
    """
    Check that every table the access layer needs exists.

    Args:
        engine: Async engine bound to the entity store
        resource_level_permissions: Also require the resource type and grant tables
        logger: Logger of the calling instance

    Returns:
        Names of the required tables

    Raises:
        ConfigurationError: if any required table is missing
    """
    logger = logger or structlog.get_logger(__name__)
    required = list(CORE_TABLES)
    if resource_level_permissions:
        required.extend(RESOURCE_LEVEL_TABLES)

    try:
        async with engine.connect() as conn:
            existing = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    except SQLAlchemyError as e:
        raise StoreError(f"Could not inspect database schema: {e}", operation="validate_tables") from e

    missing = [name for name in required if name not in existing]
    if missing:
        logger.error("required_tables_missing", missing=missing)
        raise ConfigurationError(
            f"Missing required tables: {', '.join(missing)}. Run the migrations first."
        )

    logger.info("required_tables_present", tables=required)
    return required


async def setup_initial_data(
    session_factory: async_sessionmaker[AsyncSession],
    logger: Any = None,
) -> Tuple[Permission, AccessGroup]:
    """
    Seed the super admin permission, its group and their link.

    Safe to run on every startup; existing rows are reused.

    Returns:
        The super admin permission and group
    """
    logger = logger or structlog.get_logger(__name__)
    async with UnitOfWork(session_factory, operation="setup_initial_data", logger=logger) as uow:
        permission = await uow.permissions.get_by_code(SUPER_ADMIN_CODE)
        if permission is None:
            permission = await uow.permissions.create({
                "code": SUPER_ADMIN_CODE,
                "name": "Super Admin",
                "description": "Super Admin permission with access to all resources",
            })
            logger.info("super_admin_permission_created", permission_id=permission.id)

        group = await uow.access_groups.get_by_name(SUPER_ADMIN_GROUP_NAME)
        if group is None:
            group = await uow.access_groups.create({
                "name": SUPER_ADMIN_GROUP_NAME,
                "description": "Super Admin group with all permissions",
            })
            logger.info("super_admin_group_created", access_group_id=group.id)

        _, created = await uow.group_permissions.link(
            access_group_id=group.id,
            permission_id=permission.id,
        )
        if created:
            logger.info(
                "super_admin_permission_assigned",
                access_group_id=group.id,
                permission_id=permission.id,
            )

    return permission, group
