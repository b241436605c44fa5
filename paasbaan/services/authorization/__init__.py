"""
Access group authorization.

Permission resolution, resource-level permissions, access group
administration, route matching and the request decision engine.
"""

from .access_groups import AccessGroupAdministrator
from .decision import AuthorizationDecision, AuthorizationEngine
from .middleware import AccessControlMiddleware
from .resolver import PermissionResolver, holds_super_admin
from .resource_permissions import ResourcePermissionService
from .routes import RouteMatcher, compile_path

__all__ = [
    # Core services
    "PermissionResolver",
    "ResourcePermissionService",
    "AccessGroupAdministrator",
    "AuthorizationEngine",

    # Request handling
    "RouteMatcher",
    "AccessControlMiddleware",
    "AuthorizationDecision",

    # Helpers
    "compile_path",
    "holds_super_admin",
]
