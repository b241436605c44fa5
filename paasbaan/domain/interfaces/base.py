"""
Collaborator interfaces for the access control layer.
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional


class ITokenVerifier(ABC):
    """Black-box bearer credential verification."""

    @abstractmethod
    def verify(self, token: str, secret: str) -> Optional[dict[str, Any]]:
        """Return the token claims, or None when verification fails."""
        pass


class ICacheBackend(ABC):
    """
    Key/value cache port used by the permission cache.

    Implementations must be safe to call from concurrent coroutines of one
    event loop. Values are JSON-compatible (lists, strings, numbers).
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get a value, or None on miss or expiry."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store a value."""
        pass

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys; return how many existed."""
        pass

    @abstractmethod
    async def keys_with_prefix(self, prefix: str) -> List[str]:
        """List live keys starting with ``prefix``."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Drop every entry."""
        pass

