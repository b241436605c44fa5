"""
Database models for access groups, permissions and resource-level grants.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.ext.hybrid import hybrid_property

from paasbaan.infrastructure.database.base import Base

ACTIVE_ONLY = text("deleted_at IS NULL")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin for created_at, updated_at, and soft delete support."""
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    @hybrid_property
    def is_deleted(self) -> bool:
        """Check if record is soft deleted."""
        return self.deleted_at is not None

    @is_deleted.expression
    def is_deleted(cls):
        return cls.deleted_at.isnot(None)

    def soft_delete(self) -> None:
        """Mark record as deleted."""
        self.deleted_at = utcnow()

    def restore(self) -> None:
        """Restore soft deleted record."""
        self.deleted_at = None


class User(Base, TimestampMixin):
    """
    Reference table for users.

    Only the id is required by the access layer; host applications own
    the rest of the user profile.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)


class AccessGroup(Base, TimestampMixin):
    """Named collection of users sharing a permission set."""
    __tablename__ = "access_groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")

    __table_args__ = (
        # Names are unique among live groups only; soft-deleted names can be reused.
        Index(
            "uq_access_groups_name_active",
            "name",
            unique=True,
            postgresql_where=ACTIVE_ONLY,
            sqlite_where=ACTIVE_ONLY,
        ),
    )


class Permission(Base, TimestampMixin):
    """Authorizable action identified by a stable code."""
    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")

    __table_args__ = (
        Index(
            "uq_permissions_code_active",
            "code",
            unique=True,
            postgresql_where=ACTIVE_ONLY,
            sqlite_where=ACTIVE_ONLY,
        ),
    )


class AccessGroupPermission(Base, TimestampMixin):
    """Links a group to a permission."""
    __tablename__ = "access_group_permissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    access_group_id = Column(Integer, ForeignKey("access_groups.id"), nullable=False, index=True)
    permission_id = Column(Integer, ForeignKey("permissions.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("access_group_id", "permission_id", name="uq_access_group_permission"),
    )


class AccessGroupUser(Base, TimestampMixin):
    """Links a user to a group."""
    __tablename__ = "access_groups_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    access_group_id = Column(Integer, ForeignKey("access_groups.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("access_group_id", "user_id", name="uq_access_group_user"),
    )


class ResourceLevelPermissionType(Base, TimestampMixin):
    """Declares that a permission is scoped by a named resource type."""
    __tablename__ = "resource_level_permission_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    permission_id = Column(Integer, ForeignKey("permissions.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("permission_id", "name", name="uq_resource_type_permission_name"),
    )


class ResourceLevelPermission(Base, TimestampMixin):
    """Grant: group G, via permission P, may act on resource R of type T."""
    __tablename__ = "resource_level_permissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    permission_id = Column(Integer, ForeignKey("permissions.id"), nullable=False)
    resource_id = Column(Integer, nullable=False)
    resource_type_id = Column(
        Integer, ForeignKey("resource_level_permission_types.id"), nullable=False
    )
    access_group_id = Column(Integer, ForeignKey("access_groups.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint(
            "permission_id",
            "resource_id",
            "resource_type_id",
            "access_group_id",
            name="uq_resource_level_permission",
        ),
        Index(
            "idx_resource_level_permission_lookup",
            "resource_type_id",
            "permission_id",
            "access_group_id",
        ),
    )


CORE_TABLES = (
    AccessGroup.__tablename__,
    Permission.__tablename__,
    AccessGroupPermission.__tablename__,
    AccessGroupUser.__tablename__,
    User.__tablename__,
)

RESOURCE_LEVEL_TABLES = (
    ResourceLevelPermissionType.__tablename__,
    ResourceLevelPermission.__tablename__,
)
