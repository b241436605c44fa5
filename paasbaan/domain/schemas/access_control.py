"""
Access control schemas.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Type, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from paasbaan.core.exceptions import ValidationError

EntityId = Annotated[int, Field(gt=0)]
Name = Annotated[str, Field(min_length=1, max_length=255)]

SchemaType = TypeVar("SchemaType", bound=BaseModel)

_entity_id = TypeAdapter(EntityId)


class AssignmentMode(str, Enum):
    """How bulk updates treat the group's existing assignments."""
    REPLACE = "replace"
    ADDITIVE = "additive"


class AccessGroupCreate(BaseModel):
    """Access group creation schema."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Name
    description: str = ""


class AccessGroupUpdate(BaseModel):
    """Access group update schema."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[Name] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def require_a_field(self) -> "AccessGroupUpdate":
        if self.name is None and self.description is None:
            raise ValueError("At least one of name or description is required")
        return self


class PermissionCreate(BaseModel):
    """Permission creation schema."""
    model_config = ConfigDict(str_strip_whitespace=True)

    code: Name
    name: Name
    description: str = ""


class AccessGroupRead(BaseModel):
    """Access group response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    created_at: datetime
    updated_at: datetime


class PermissionRead(BaseModel):
    """Permission response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    description: str
    created_at: datetime
    updated_at: datetime


class ResourceTypeRead(BaseModel):
    """Resource type declaration response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    permission_id: int
    name: str


class ResourceGrantRead(BaseModel):
    """Resource-level grant response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    permission_id: int
    resource_id: int
    resource_type_id: int
    access_group_id: int


class AccessGroupPermissionRead(BaseModel):
    """Group permission link response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    access_group_id: int
    permission_id: int


class AccessGroupUserRead(BaseModel):
    """Group membership response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    access_group_id: int
    user_id: int


class PermissionAssignment(BaseModel):
    """
    One permission to link to a group, with optional resource scoping.

    ``resource_level_permissions`` maps a resource type name to the resource
    IDs the group may act on through this permission.
    """
    permission_id: EntityId
    resource_level_permissions: Dict[Name, List[EntityId]] = Field(default_factory=dict)


class AccessGroupWithAssignments(BaseModel):
    """Payload of the bulk create/update operations."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Name
    description: str = ""
    user_ids: List[EntityId] = Field(default_factory=list)
    permissions: List[PermissionAssignment] = Field(default_factory=list)


class AccessGroupAssignments(BaseModel):
    """Result of a bulk create/update operation."""
    access_group: AccessGroupRead
    user_ids: List[int]
    permission_ids: List[int]
    resource_grants: int


class GroupPermissionView(BaseModel):
    """A permission of a group with its resource grants by type name."""
    id: int
    code: str
    name: str
    resources: Dict[str, List[int]] = Field(default_factory=dict)


class GroupPermissionsView(BaseModel):
    """Administrative view of a group's permissions."""
    permissions: List[GroupPermissionView] = Field(default_factory=list)


def _describe(error: pydantic.ValidationError) -> tuple:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    message = first.get("msg", "Invalid input")
    return (f"{field}: {message}" if field else message), field


def parse(schema: Type[SchemaType], data: Any) -> SchemaType:
    """
    Validate input against a schema.

    Raises:
        ValidationError: naming the first offending field
    """
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except pydantic.ValidationError as e:
        message, field = _describe(e)
        raise ValidationError(message, field=field) from e


def coerce_id(value: Any, field: str = "id") -> int:
    """
    Validate an entity or user identifier.

    Integers and digit strings are accepted; anything else is rejected.

    Raises:
        ValidationError: if the value is missing or not a positive integer
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", field=field)
    try:
        return _entity_id.validate_python(value)
    except pydantic.ValidationError as e:
        raise ValidationError(f"{field} must be a positive integer", field=field) from e


def coerce_ids(values: Any, field: str = "ids") -> List[int]:
    """Validate a non-empty list of identifiers, keeping order and dropping repeats."""
    if values is None or isinstance(values, (str, bytes)) or not hasattr(values, "__iter__"):
        raise ValidationError(f"{field} must be a list", field=field)
    ids = [coerce_id(v, field) for v in values]
    if not ids:
        raise ValidationError(f"{field} must not be empty", field=field)
    return list(dict.fromkeys(ids))
