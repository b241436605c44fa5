"""
Tests for access group administration.
"""
import pytest
from sqlalchemy import func, select

from paasbaan.core.exceptions import (
    AccessGroupInUseError,
    DuplicateCodeError,
    DuplicateKind,
    DuplicateNameError,
    NotFoundError,
    ValidationError,
)
from paasbaan.domain.schemas import AssignmentMode
from paasbaan.infrastructure.cache.permission_cache import user_permissions_key
from paasbaan.infrastructure.database.models import (
    AccessGroupPermission,
    ResourceLevelPermission,
    ResourceLevelPermissionType,
)
from tests.fixtures.access_control import (
    AccessControlTestData,
    create_group,
    create_permissions,
)


class TestAccessGroupCrud:
    """Test access group create, update and delete."""

    @pytest.mark.asyncio
    async def test_create_access_group(self, admin):
        """Test creating a group strips whitespace and defaults the description."""
        group = await admin.create_access_group({"name": "  Editors  "})

        assert group.id > 0
        assert group.name == "Editors"
        assert group.description == ""

    @pytest.mark.asyncio
    async def test_create_requires_name(self, admin):
        """Test a missing name is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            await admin.create_access_group({"description": "no name"})

        assert exc_info.value.field == "name"

    @pytest.mark.asyncio
    async def test_duplicate_name(self, admin):
        """Test two active groups cannot share a name."""
        await admin.create_access_group({"name": "Editors"})

        with pytest.raises(DuplicateNameError) as exc_info:
            await admin.create_access_group({"name": "Editors"})

        assert exc_info.value.kind is DuplicateKind.ACCESS_GROUP_NAME
        assert exc_info.value.details["kind"] == "duplicate_group_name"

    @pytest.mark.asyncio
    async def test_name_reusable_after_delete(self, admin):
        """Test the name of a deleted group can be used again."""
        first = await admin.create_access_group({"name": "Editors"})
        await admin.delete_access_group(first.id)

        second = await admin.create_access_group({"name": "Editors"})

        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_rename(self, admin):
        """Test renaming keeps the id and updates the name."""
        group = await admin.create_access_group({"name": "Editors", "description": "old"})

        updated = await admin.update_access_group(group.id, {"name": "Writers"})

        assert updated.id == group.id
        assert updated.name == "Writers"
        assert updated.description == "old"

    @pytest.mark.asyncio
    async def test_rename_to_own_name(self, admin):
        """Test renaming a group to its current name is allowed."""
        group = await admin.create_access_group({"name": "Editors"})

        updated = await admin.update_access_group(group.id, {"name": "Editors", "description": "new"})

        assert updated.description == "new"

    @pytest.mark.asyncio
    async def test_rename_to_taken_name(self, admin):
        """Test renaming onto another group's name fails."""
        await admin.create_access_group({"name": "Editors"})
        group = await admin.create_access_group({"name": "Writers"})

        with pytest.raises(DuplicateNameError):
            await admin.update_access_group(group.id, {"name": "Editors"})

    @pytest.mark.asyncio
    async def test_update_requires_a_field(self, admin):
        """Test an empty update is rejected."""
        group = await admin.create_access_group({"name": "Editors"})

        with pytest.raises(ValidationError):
            await admin.update_access_group(group.id, {})

    @pytest.mark.asyncio
    async def test_update_missing_group(self, admin):
        """Test updating a missing group raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await admin.update_access_group(999, {"name": "Nobody"})

    @pytest.mark.asyncio
    async def test_delete_blocked_while_in_use(self, admin):
        """Test a group with members or permissions cannot be deleted."""
        (read,) = await create_permissions(admin, AccessControlTestData.READ_USERS)
        group = await create_group(admin, "Readers", [read], user_ids=[1, 2])

        with pytest.raises(AccessGroupInUseError) as exc_info:
            await admin.delete_access_group(group.id)

        assert exc_info.value.details["users"] == 2
        assert exc_info.value.details["permissions"] == 1
        assert exc_info.value.details["resource_grants"] == 0

    @pytest.mark.asyncio
    async def test_delete_blocked_by_resource_grant(self, admin, resources):
        """Test a group holding only a resource grant cannot be deleted."""
        (observe,) = await create_permissions(admin, AccessControlTestData.READ_OBSERVATIONS)
        await resources.declare_resource_type(observe.id, "location")
        group = await admin.create_access_group({"name": "Field team"})
        await resources.grant(observe.id, [1], "location", group.id)

        with pytest.raises(AccessGroupInUseError) as exc_info:
            await admin.delete_access_group(group.id)

        assert exc_info.value.details["users"] == 0
        assert exc_info.value.details["permissions"] == 0
        assert exc_info.value.details["resource_grants"] == 1

    @pytest.mark.asyncio
    async def test_delete_after_grant_revoked(self, admin, resources):
        """Test deletion succeeds once the last resource grant is revoked."""
        (observe,) = await create_permissions(admin, AccessControlTestData.READ_OBSERVATIONS)
        await resources.declare_resource_type(observe.id, "location")
        group = await admin.create_access_group({"name": "Field team"})
        await resources.grant(observe.id, [1], "location", group.id)

        assert await resources.revoke(observe.id, [1], "location", group.id) == 1
        assert await admin.delete_access_group(group.id) is True

    @pytest.mark.asyncio
    async def test_soft_delete_hides_group(self, admin):
        """Test a soft deleted group is no longer found or listed."""
        group = await admin.create_access_group({"name": "Temp"})

        assert await admin.delete_access_group(group.id) is True

        with pytest.raises(NotFoundError) as exc_info:
            await admin.get_access_group(group.id)
        assert exc_info.value.details["state"] == "soft_deleted"
        assert group.id not in [g.id for g in await admin.list_access_groups()]

    @pytest.mark.asyncio
    async def test_hard_delete_purges_history(self, admin):
        """Test a hard delete removes the row and previously removed links."""
        (read,) = await create_permissions(admin, AccessControlTestData.READ_USERS)
        group = await create_group(admin, "Temp", [read], user_ids=[5])
        await admin.remove_user_from_access_group(group.id, 5)
        await admin.unassign_permission_from_access_group(group.id, read.id)

        assert await admin.delete_access_group(group.id, hard=True) is True

        with pytest.raises(NotFoundError) as exc_info:
            await admin.get_access_group(group.id)
        assert exc_info.value.details["state"] == "absent"

    @pytest.mark.asyncio
    async def test_delete_missing_group(self, admin):
        """Test deleting a missing group raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await admin.delete_access_group(999)


class TestPermissions:
    """Test permission administration."""

    @pytest.mark.asyncio
    async def test_create_and_lookup_by_code(self, admin):
        """Test a created permission can be fetched by id and code."""
        created = await admin.create_permission(AccessControlTestData.READ_USERS)

        assert (await admin.get_permission(created.id)).code == "read:users"
        assert (await admin.get_permission_by_code("read:users")).id == created.id

    @pytest.mark.asyncio
    async def test_duplicate_code(self, admin):
        """Test two active permissions cannot share a code."""
        await admin.create_permission(AccessControlTestData.READ_USERS)

        with pytest.raises(DuplicateCodeError) as exc_info:
            await admin.create_permission({"code": "read:users", "name": "Again"})

        assert exc_info.value.kind is DuplicateKind.PERMISSION_CODE

    @pytest.mark.asyncio
    async def test_create_requires_code(self, admin):
        """Test a permission without a code is rejected."""
        with pytest.raises(ValidationError):
            await admin.create_permission({"name": "No code"})

    @pytest.mark.asyncio
    async def test_unknown_code(self, admin):
        """Test looking up an unknown code raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await admin.get_permission_by_code("missing:code")

    @pytest.mark.asyncio
    async def test_list_permissions(self, admin):
        """Test permissions are listed in creation order."""
        await create_permissions(
            admin, AccessControlTestData.READ_USERS, AccessControlTestData.UPDATE_USERS
        )

        codes = [p.code for p in await admin.list_permissions()]

        assert codes == ["read:users", "update:users"]

    @pytest.mark.asyncio
    async def test_assign_is_idempotent(self, admin):
        """Test assigning the same permission twice keeps one link."""
        (read,) = await create_permissions(admin, AccessControlTestData.READ_USERS)
        group = await admin.create_access_group({"name": "Readers"})

        first = await admin.assign_permission_to_access_group(group.id, read.id)
        second = await admin.assign_permission_to_access_group(group.id, read.id)

        assert first.id == second.id

    @pytest.mark.asyncio
    async def test_assign_unknown_permission(self, admin):
        """Test assigning a missing permission raises NotFoundError."""
        group = await admin.create_access_group({"name": "Readers"})

        with pytest.raises(NotFoundError):
            await admin.assign_permission_to_access_group(group.id, 404)

    @pytest.mark.asyncio
    async def test_unassign_reports_removal(self, admin):
        """Test unassign returns whether a link was removed."""
        (read,) = await create_permissions(admin, AccessControlTestData.READ_USERS)
        group = await create_group(admin, "Readers", [read])

        assert await admin.unassign_permission_from_access_group(group.id, read.id) is True
        assert await admin.unassign_permission_from_access_group(group.id, read.id) is False


class TestMembership:
    """Test adding and removing users."""

    @pytest.mark.asyncio
    async def test_add_unknown_user(self, admin):
        """Test adding an unregistered user raises NotFoundError."""
        group = await admin.create_access_group({"name": "Readers"})

        with pytest.raises(NotFoundError) as exc_info:
            await admin.add_user_to_access_group(group.id, 77)

        assert exc_info.value.resource == "User"

    @pytest.mark.asyncio
    async def test_add_to_unknown_group(self, admin):
        """Test adding to a missing group raises NotFoundError."""
        await admin.register_user(1)

        with pytest.raises(NotFoundError):
            await admin.add_user_to_access_group(999, 1)

    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, admin):
        """Test adding a member twice keeps one membership."""
        group = await create_group(admin, "Readers", user_ids=[1])

        again = await admin.add_user_to_access_group(group.id, 1)

        assert again.user_id == 1
        assert await admin.get_access_group_users(group.id) == [1]

    @pytest.mark.asyncio
    async def test_remove_and_readd(self, admin):
        """Test a removed member can be added back."""
        group = await create_group(admin, "Readers", user_ids=[1])

        assert await admin.remove_user_from_access_group(group.id, 1) is True
        assert await admin.remove_user_from_access_group(group.id, 1) is False
        assert await admin.get_access_group_users(group.id) == []

        await admin.add_user_to_access_group(group.id, 1)
        assert await admin.get_access_group_users(group.id) == [1]

    @pytest.mark.asyncio
    async def test_register_user_is_idempotent(self, admin):
        """Test registering a user twice succeeds."""
        assert await admin.register_user(5) == 5
        assert await admin.register_user("5") == 5

    @pytest.mark.asyncio
    async def test_user_access_groups(self, admin):
        """Test listing the groups of a user."""
        first = await create_group(admin, "First", user_ids=[3])
        await create_group(admin, "Other", user_ids=[4])

        groups = await admin.get_user_access_groups(3)

        assert [g.name for g in groups] == [first.name]

    @pytest.mark.asyncio
    async def test_bulk_add_users(self, admin, resolver):
        """Test adding several users at once."""
        (read,) = await create_permissions(admin, AccessControlTestData.READ_USERS)
        group = await create_group(admin, "Readers", [read])
        for uid in (1, 2, 3):
            await admin.register_user(uid)

        added = await admin.bulk_add_users(group.id, [3, 1, 2, 1])

        assert added == [3, 1, 2]
        assert await admin.get_access_group_users(group.id) == [1, 2, 3]
        assert await resolver.has_permission(2, "read:users") is True

    @pytest.mark.asyncio
    async def test_bulk_add_unknown_user_adds_nobody(self, admin):
        """Test one unknown user aborts the whole bulk add."""
        group = await admin.create_access_group({"name": "Readers"})
        await admin.register_user(1)

        with pytest.raises(NotFoundError):
            await admin.bulk_add_users(group.id, [1, 2])

        assert await admin.get_access_group_users(group.id) == []


class TestBulkAssignments:
    """Test creating and updating groups with their assignments."""

    @pytest.mark.asyncio
    async def test_create_with_assignments(self, admin, resolver, resources):
        """Test users, permissions and resource grants are created together."""
        read, observe = await create_permissions(
            admin, AccessControlTestData.READ_USERS, AccessControlTestData.READ_OBSERVATIONS
        )
        for uid in (1, 2):
            await admin.register_user(uid)

        result = await admin.create_access_group_with_assignments({
            "name": "Field team",
            "description": "Observers",
            "user_ids": [1, 2],
            "permissions": [
                {"permission_id": read.id},
                {"permission_id": observe.id, "resource_level_permissions": {"location": [1, 2]}},
            ],
        })

        assert result.access_group.name == "Field team"
        assert result.user_ids == [1, 2]
        assert result.permission_ids == [read.id, observe.id]
        assert result.resource_grants == 2
        assert await resolver.resolve(2) == {"read:users", "read:observations"}
        assert await resources.resource_ids_for("location", observe.id, 1) == {1, 2}

    @pytest.mark.asyncio
    async def test_create_is_atomic(self, admin, session_factory):
        """Test one unknown permission leaves no group, links or grants behind."""
        read, update = await create_permissions(
            admin, AccessControlTestData.READ_USERS, AccessControlTestData.UPDATE_USERS
        )
        await admin.register_user(1)

        with pytest.raises(NotFoundError):
            await admin.create_access_group_with_assignments({
                "name": "Broken",
                "user_ids": [1],
                "permissions": [
                    {"permission_id": read.id, "resource_level_permissions": {"location": [1, 2]}},
                    {"permission_id": 9999},
                    {"permission_id": update.id, "resource_level_permissions": {"location": [3]}},
                ],
            })

        assert await admin.list_access_groups() == []
        assert await admin.get_user_access_groups(1) == []
        async with session_factory() as session:
            for model in (AccessGroupPermission, ResourceLevelPermission, ResourceLevelPermissionType):
                count = await session.scalar(select(func.count()).select_from(model))
                assert count == 0, model.__tablename__

    @pytest.mark.asyncio
    async def test_create_duplicate_name(self, admin):
        """Test bulk creation honours name uniqueness."""
        await admin.create_access_group({"name": "Editors"})

        with pytest.raises(DuplicateNameError):
            await admin.create_access_group_with_assignments({"name": "Editors"})

    @pytest.mark.asyncio
    async def test_replace_mode(self, admin, resolver, resources):
        """Test replace drops every previous assignment."""
        read, update, observe = await create_permissions(
            admin,
            AccessControlTestData.READ_USERS,
            AccessControlTestData.UPDATE_USERS,
            AccessControlTestData.READ_OBSERVATIONS,
        )
        for uid in (1, 2):
            await admin.register_user(uid)
        created = await admin.create_access_group_with_assignments({
            "name": "Team",
            "user_ids": [1],
            "permissions": [
                {"permission_id": read.id},
                {"permission_id": observe.id, "resource_level_permissions": {"location": [1]}},
            ],
        })
        gid = created.access_group.id
        assert await resolver.resolve(1) == {"read:users", "read:observations"}

        result = await admin.update_access_group_with_assignments(
            gid,
            {
                "name": "Team",
                "user_ids": [2],
                "permissions": [
                    {"permission_id": update.id},
                    {"permission_id": observe.id, "resource_level_permissions": {"location": [5]}},
                ],
            },
            mode=AssignmentMode.REPLACE,
        )

        assert result.user_ids == [2]
        assert await admin.get_access_group_users(gid) == [2]
        assert await resolver.resolve(1) == set()
        assert await resolver.resolve(2) == {"update:users", "read:observations"}
        assert await resources.resource_ids_for("location", observe.id, 2) == {5}

    @pytest.mark.asyncio
    async def test_additive_mode(self, admin, resolver):
        """Test additive keeps previous assignments."""
        read, update = await create_permissions(
            admin, AccessControlTestData.READ_USERS, AccessControlTestData.UPDATE_USERS
        )
        group = await create_group(admin, "Team", [read], user_ids=[1])
        await admin.register_user(2)

        await admin.update_access_group_with_assignments(
            group.id,
            {"name": "Team v2", "user_ids": [2], "permissions": [{"permission_id": update.id}]},
            mode="additive",
        )

        assert await admin.get_access_group_users(group.id) == [1, 2]
        assert await resolver.resolve(1) == {"read:users", "update:users"}
        assert (await admin.get_access_group(group.id)).name == "Team v2"

    @pytest.mark.asyncio
    async def test_replace_invalidates_removed_members(self, admin, resolver, cache):
        """Test members dropped by a replace lose their cached permissions."""
        (read,) = await create_permissions(admin, AccessControlTestData.READ_USERS)
        group = await create_group(admin, "Team", [read], user_ids=[1])
        await resolver.resolve(1)
        assert await cache.backend.get(user_permissions_key(1)) == ["read:users"]

        await admin.update_access_group_with_assignments(group.id, {"name": "Team"})

        assert await cache.backend.get(user_permissions_key(1)) is None
        assert await resolver.resolve(1) == set()

    @pytest.mark.asyncio
    async def test_unknown_mode(self, admin):
        """Test an unknown assignment mode is rejected."""
        group = await admin.create_access_group({"name": "Team"})

        with pytest.raises(ValidationError):
            await admin.update_access_group_with_assignments(group.id, {"name": "Team"}, mode="merge")

    @pytest.mark.asyncio
    async def test_update_is_atomic(self, admin, resolver):
        """Test a failing replace keeps the previous assignments."""
        (read,) = await create_permissions(admin, AccessControlTestData.READ_USERS)
        group = await create_group(admin, "Team", [read], user_ids=[1])

        with pytest.raises(NotFoundError):
            await admin.update_access_group_with_assignments(
                group.id, {"name": "Team", "user_ids": [404]}
            )

        assert await admin.get_access_group_users(group.id) == [1]
        assert await resolver.resolve(1) == {"read:users"}
