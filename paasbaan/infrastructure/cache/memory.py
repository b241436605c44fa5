"""
Process-local cache backends.
"""
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from paasbaan.domain.interfaces.base import ICacheBackend


class InMemoryTTLCache(ICacheBackend):
    """
    Dictionary cache with per-entry time-to-live.

    Expired entries are invisible to reads immediately and are physically
    removed by a sweep that runs at most once per ``sweep_interval`` seconds,
    triggered by ordinary cache calls. No background task is started.

    Args:
        ttl: Seconds an entry stays valid; 0 keeps entries until deleted
        sweep_interval: Minimum seconds between sweeps
        clock: Monotonic time source
    """

    def __init__(
        self,
        ttl: float = 0,
        sweep_interval: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._entries)

    def _expired(self, expires_at: Optional[float], now: float) -> bool:
        return expires_at is not None and expires_at <= now

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self.sweep_interval:
            return
        self._last_sweep = now
        for key in [k for k, (_, exp) in self._entries.items() if self._expired(exp, now)]:
            del self._entries[key]

    async def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        self._maybe_sweep(now)
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._expired(expires_at, now):
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Any) -> None:
        now = self._clock()
        self._maybe_sweep(now)
        expires_at = now + self.ttl if self.ttl > 0 else None
        self._entries[key] = (value, expires_at)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._entries.pop(key, None) is not None:
                removed += 1
        return removed

    async def keys_with_prefix(self, prefix: str) -> List[str]:
        now = self._clock()
        self._maybe_sweep(now)
        return [
            key
            for key, (_, expires_at) in self._entries.items()
            if key.startswith(prefix) and not self._expired(expires_at, now)
        ]

    async def clear(self) -> None:
        self._entries.clear()


class NullCache(ICacheBackend):
    """Cache used when caching is disabled: stores nothing, always misses."""

    async def get(self, key: str) -> Optional[Any]:
        return None

    async def set(self, key: str, value: Any) -> None:
        return None

    async def delete(self, *keys: str) -> int:
        return 0

    async def keys_with_prefix(self, prefix: str) -> List[str]:
        return []

    async def clear(self) -> None:
        return None
