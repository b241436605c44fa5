"""
Access control test data and builders.
"""
from typing import Dict, Iterable, List, Optional

from jose import jwt

from paasbaan.core.config import SUPER_ADMIN_CODE
from paasbaan.domain.schemas import AccessGroupRead, PermissionRead
from paasbaan.services.authorization import AccessGroupAdministrator

SECRET = "test-secret"


class AccessControlTestData:
    """Test data for access control tests."""

    READ_USERS = {"code": "read:users", "name": "Read users", "description": "List and view users"}
    UPDATE_USERS = {"code": "update:users", "name": "Update users", "description": "Edit users"}
    EDIT_CONTENT = {"code": "edit:content", "name": "Edit content", "description": ""}
    READ_OBSERVATIONS = {"code": "read:observations", "name": "Read observations", "description": ""}
    SUPER_ADMIN = {"code": SUPER_ADMIN_CODE, "name": "Super Admin", "description": "All access"}

    ROUTE_ACCESS = {
        "/api/users/:id": {"method": "GET", "permissions": ["read:users", "update:users"]},
        "/api/users/:id/profile": {"method": "PUT", "permissions": ["update:users"]},
    }


def make_token(claims: Dict, secret: str = SECRET) -> str:
    """Sign claims the way a host application would."""
    return jwt.encode(claims, secret, algorithm="HS256")


def bearer(claims: Dict, secret: str = SECRET) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(claims, secret)}"}


async def create_permissions(admin: AccessGroupAdministrator, *payloads: Dict) -> List[PermissionRead]:
    return [await admin.create_permission(payload) for payload in payloads]


async def create_group(
    admin: AccessGroupAdministrator,
    name: str,
    permissions: Iterable[PermissionRead] = (),
    user_ids: Iterable[int] = (),
    description: Optional[str] = "",
) -> AccessGroupRead:
    """Create a group, link permissions and add (registered) users."""
    group = await admin.create_access_group({"name": name, "description": description})
    for permission in permissions:
        await admin.assign_permission_to_access_group(group.id, permission.id)
    for user_id in user_ids:
        await admin.register_user(user_id)
        await admin.add_user_to_access_group(group.id, user_id)
    return group
