"""
Custom exceptions for the access control layer.
"""
from enum import Enum
from typing import Any, Dict, Optional


class PaasbaanException(Exception):
    """Base exception for all access control exceptions."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(PaasbaanException):
    """Missing or malformed input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        self.field = field
        super().__init__(message, status_code=422, details=details)


class NotFoundError(PaasbaanException):
    """Referenced entity does not exist (or is soft deleted)."""

    def __init__(self, resource: str, resource_id: Any, state: str = "absent"):
        message = f"{resource} with ID {resource_id} not found"
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            message,
            status_code=404,
            details={"resource": resource, "id": resource_id, "state": state},
        )


class DuplicateKind(str, Enum):
    """Discriminant for uniqueness violations."""
    ACCESS_GROUP_NAME = "duplicate_group_name"
    PERMISSION_CODE = "duplicate_permission_code"


class DuplicateError(PaasbaanException):
    """Uniqueness violation on create or rename."""

    kind: DuplicateKind

    def __init__(self, message: str, value: str):
        self.value = value
        super().__init__(
            message,
            status_code=409,
            details={"kind": self.kind.value, "value": value},
        )


class DuplicateNameError(DuplicateError):
    """An active access group already uses this name."""

    kind = DuplicateKind.ACCESS_GROUP_NAME

    def __init__(self, name: str):
        super().__init__(f"Access group with name '{name}' already exists", name)


class DuplicateCodeError(DuplicateError):
    """An active permission already uses this code."""

    kind = DuplicateKind.PERMISSION_CODE

    def __init__(self, code: str):
        super().__init__(f"Permission with code '{code}' already exists", code)


class UnconfiguredResourceTypeError(PaasbaanException):
    """A (permission, resource type) pair was used before being declared."""

    def __init__(self, permission_id: int, resource_type: str):
        self.permission_id = permission_id
        self.resource_type = resource_type
        message = (
            f"Resource type '{resource_type}' is not declared for permission {permission_id}"
        )
        super().__init__(
            message,
            status_code=400,
            details={"permission_id": permission_id, "resource_type": resource_type},
        )


class AccessGroupInUseError(PaasbaanException):
    """Group still owns memberships, permission links or resource grants."""

    def __init__(self, group_id: int, users: int, permissions: int, resource_grants: int):
        message = (
            f"Access group {group_id} cannot be deleted: "
            f"{users} user(s), {permissions} permission(s), "
            f"{resource_grants} resource grant(s) still assigned"
        )
        super().__init__(
            message,
            status_code=409,
            details={
                "group_id": group_id,
                "users": users,
                "permissions": permissions,
                "resource_grants": resource_grants,
            },
        )


class ResourceTypeInUseError(PaasbaanException):
    """Resource type declaration still referenced by active grants."""

    def __init__(self, permission_id: int, resource_type: str, grants: int):
        message = (
            f"Resource type '{resource_type}' for permission {permission_id} "
            f"is referenced by {grants} active grant(s)"
        )
        super().__init__(
            message,
            status_code=409,
            details={
                "permission_id": permission_id,
                "resource_type": resource_type,
                "grants": grants,
            },
        )


class AuthenticationError(PaasbaanException):
    """Missing, malformed or expired credential."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status_code=401)


class AuthorizationError(PaasbaanException):
    """Authenticated but not permitted."""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403)


class StoreError(PaasbaanException):
    """Persistence failure."""

    def __init__(self, message: str, operation: Optional[str] = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message, status_code=500, details=details)


class ConfigurationError(PaasbaanException):
    """Invalid configuration or missing tables at startup."""

    def __init__(self, message: str):
        super().__init__(message, status_code=500)
