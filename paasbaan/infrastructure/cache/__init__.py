"""
Cache infrastructure module.
"""
from .memory import InMemoryTTLCache, NullCache
from .permission_cache import PermissionCache

__all__ = ["InMemoryTTLCache", "NullCache", "PermissionCache"]
