"""
paasbaan command-line interface.

Every command takes ``--config``, a JSON file holding the store connection
(``{"url": "postgresql+asyncpg://..."}``), prints its result as JSON on
stdout and exits 0 on success or 1 on error.
"""
import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import click
from pydantic_core import to_jsonable_python
from sqlalchemy.exc import SQLAlchemyError

from paasbaan.core.exceptions import PaasbaanException
from paasbaan.core.logging import setup_logging
from paasbaan.infrastructure.cache import PermissionCache
from paasbaan.infrastructure.database.base import create_engine, create_session_factory, create_tables
from paasbaan.infrastructure.database.utils import setup_initial_data
from paasbaan.services.authorization import (
    AccessGroupAdministrator,
    PermissionResolver,
    ResourcePermissionService,
)


@dataclass
class Services:
    engine: Any
    session_factory: Any
    admin: AccessGroupAdministrator
    resolver: PermissionResolver
    resources: ResourcePermissionService


def load_store_config(path: str) -> Dict[str, Any]:
    """Read the JSON store configuration file."""
    try:
        config = json.loads(Path(path).read_text())
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Error loading configuration: {e}")
    if not isinstance(config, dict) or not config.get("url"):
        raise click.ClickException("Invalid config file format: a database 'url' is required")
    return config


async def _with_services(store: Dict[str, Any], operation: Callable[[Services], Awaitable[Any]]) -> Any:
    engine = create_engine(store["url"], echo=bool(store.get("echo", False)))
    try:
        session_factory = create_session_factory(engine)
        cache = PermissionCache()
        resolver = PermissionResolver(session_factory, cache)
        services = Services(
            engine=engine,
            session_factory=session_factory,
            admin=AccessGroupAdministrator(session_factory, cache),
            resolver=resolver,
            resources=ResourcePermissionService(session_factory, resolver, cache),
        )
        return await operation(services)
    finally:
        await engine.dispose()


def execute(
    config_path: str,
    operation: Callable[[Services], Awaitable[Any]],
    message: str,
) -> None:
    """Run one operation against the store and print its result."""
    store = load_store_config(config_path)
    try:
        result = asyncio.run(_with_services(store, operation))
    except PaasbaanException as e:
        raise click.ClickException(f"{message} failed: {e.message}")
    except SQLAlchemyError as e:
        raise click.ClickException(f"{message} failed: {e}")

    click.echo(f"{message} succeeded", err=True)
    click.echo(json.dumps(to_jsonable_python(result), indent=2))


config_option = click.option(
    "--config", "-c", "config_path", type=str, required=True, help="Path to database config file"
)
group_option = click.option("--group", "-g", "group_id", type=int, required=True, help="Access group ID")
permission_option = click.option(
    "--permission", "-p", "permission_id", type=int, required=True, help="Permission ID"
)
user_option = click.option("--user", "-u", "user_id", type=int, required=True, help="User ID")
resource_type_option = click.option(
    "--type", "-t", "resource_type", type=str, required=True, help="Resource type name"
)
resources_option = click.option(
    "--resource", "-r", "resource_ids", type=int, multiple=True, required=True,
    help="Resource ID (repeatable)",
)


@click.group()
@click.version_option(package_name="paasbaan")
@click.option("--debug", is_flag=True, help="Emit debug logs on stderr")
def cli(debug: bool):
    """Access Control CLI."""
    setup_logging(debug=debug)


@cli.command("init-db")
@config_option
def init_db(config_path: str):
    """Create the tables and seed the super admin permission and group."""

    async def run(s: Services):
        await create_tables(s.engine)
        permission, group = await setup_initial_data(s.session_factory)
        return {"super_admin_permission_id": permission.id, "super_admin_group_id": group.id}

    execute(config_path, run, "Database initialization")


@cli.command("create-access-group")
@config_option
@click.option("--name", "-n", type=str, required=True, help="Access group name")
@click.option("--description", "-d", type=str, default="", help="Access group description")
def create_access_group(config_path: str, name: str, description: str):
    """Create a new access group."""
    execute(
        config_path,
        lambda s: s.admin.create_access_group({"name": name, "description": description}),
        "Access group creation",
    )


@cli.command("update-access-group")
@config_option
@group_option
@click.option("--name", "-n", type=str, default=None, help="New access group name")
@click.option("--description", "-d", type=str, default=None, help="New access group description")
def update_access_group(config_path: str, group_id: int, name: Optional[str], description: Optional[str]):
    """Rename or redescribe an access group."""
    execute(
        config_path,
        lambda s: s.admin.update_access_group(group_id, {"name": name, "description": description}),
        "Access group update",
    )


@cli.command("delete-access-group")
@config_option
@group_option
@click.option("--hard", is_flag=True, help="Remove the row instead of soft deleting it")
def delete_access_group(config_path: str, group_id: int, hard: bool):
    """Delete an access group that has no users, permissions or grants."""
    execute(config_path, lambda s: s.admin.delete_access_group(group_id, hard=hard), "Access group deletion")


@cli.command("create-permission")
@config_option
@click.option("--code", type=str, required=True, help="Permission code")
@click.option("--name", "-n", type=str, required=True, help="Permission name")
@click.option("--description", "-d", type=str, default="", help="Permission description")
def create_permission(config_path: str, code: str, name: str, description: str):
    """Create a new permission."""
    execute(
        config_path,
        lambda s: s.admin.create_permission({"code": code, "name": name, "description": description}),
        "Permission creation",
    )


@cli.command("assign-permission")
@config_option
@group_option
@permission_option
def assign_permission(config_path: str, group_id: int, permission_id: int):
    """Assign a permission to an access group."""
    execute(
        config_path,
        lambda s: s.admin.assign_permission_to_access_group(group_id, permission_id),
        "Permission assignment",
    )


@cli.command("unassign-permission")
@config_option
@group_option
@permission_option
def unassign_permission(config_path: str, group_id: int, permission_id: int):
    """Remove a permission from an access group."""
    execute(
        config_path,
        lambda s: s.admin.unassign_permission_from_access_group(group_id, permission_id),
        "Permission unassignment",
    )


@cli.command("register-user")
@config_option
@user_option
def register_user(config_path: str, user_id: int):
    """Add a user id to the user reference table."""
    execute(config_path, lambda s: s.admin.register_user(user_id), "User registration")


@cli.command("add-user")
@config_option
@group_option
@user_option
def add_user(config_path: str, group_id: int, user_id: int):
    """Add a user to an access group."""
    execute(config_path, lambda s: s.admin.add_user_to_access_group(group_id, user_id), "User addition")


@cli.command("remove-user")
@config_option
@group_option
@user_option
def remove_user(config_path: str, group_id: int, user_id: int):
    """Remove a user from an access group."""
    execute(config_path, lambda s: s.admin.remove_user_from_access_group(group_id, user_id), "User removal")


@cli.command("list-access-groups")
@config_option
def list_access_groups(config_path: str):
    """List all access groups."""
    execute(config_path, lambda s: s.admin.list_access_groups(), "Access group listing")


@cli.command("list-permissions")
@config_option
def list_permissions(config_path: str):
    """List all permissions."""
    execute(config_path, lambda s: s.admin.list_permissions(), "Permission listing")


@cli.command("get-user-permissions")
@config_option
@user_option
def get_user_permissions(config_path: str, user_id: int):
    """Print the permission codes a user holds."""

    async def run(s: Services):
        return sorted(await s.resolver.resolve(user_id))

    execute(config_path, run, "Permission lookup")


@cli.command("declare-resource-type")
@config_option
@permission_option
@resource_type_option
def declare_resource_type(config_path: str, permission_id: int, resource_type: str):
    """Declare that a permission is scoped by a resource type."""
    execute(
        config_path,
        lambda s: s.resources.declare_resource_type(permission_id, resource_type),
        "Resource type declaration",
    )


@cli.command("grant-resource-permission")
@config_option
@group_option
@permission_option
@resource_type_option
@resources_option
def grant_resource_permission(
    config_path: str, group_id: int, permission_id: int, resource_type: str, resource_ids: tuple
):
    """Grant an access group access to specific resources."""
    execute(
        config_path,
        lambda s: s.resources.grant(permission_id, list(resource_ids), resource_type, group_id),
        "Resource permission grant",
    )


@cli.command("revoke-resource-permission")
@config_option
@group_option
@permission_option
@resource_type_option
@resources_option
def revoke_resource_permission(
    config_path: str, group_id: int, permission_id: int, resource_type: str, resource_ids: tuple
):
    """Revoke an access group's access to specific resources."""
    execute(
        config_path,
        lambda s: s.resources.revoke(permission_id, list(resource_ids), resource_type, group_id),
        "Resource permission revocation",
    )


@cli.command("group-permissions")
@config_option
@group_option
@click.option("--type", "-t", "resource_type", type=str, default=None, help="Only show this resource type")
@click.option("--permission", "-p", "permission_id", type=int, default=None, help="Only show this permission")
def group_permissions(config_path: str, group_id: int, resource_type: Optional[str], permission_id: Optional[int]):
    """Show a group's permissions with their resource grants."""
    execute(
        config_path,
        lambda s: s.resources.group_permissions_view(group_id, resource_type, permission_id),
        "Group permission lookup",
    )


if __name__ == "__main__":
    cli()
