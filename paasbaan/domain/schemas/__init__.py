"""
Domain schemas for the access control layer.
"""

from .access_control import *

__all__ = [
    "AssignmentMode",
    "AccessGroupCreate",
    "AccessGroupUpdate",
    "PermissionCreate",
    "AccessGroupRead",
    "PermissionRead",
    "ResourceTypeRead",
    "ResourceGrantRead",
    "AccessGroupPermissionRead",
    "AccessGroupUserRead",
    "PermissionAssignment",
    "AccessGroupWithAssignments",
    "AccessGroupAssignments",
    "GroupPermissionView",
    "GroupPermissionsView",
    "parse",
    "coerce_id",
    "coerce_ids",
]
