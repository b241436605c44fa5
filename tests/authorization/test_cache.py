"""
Tests for the permission cache and its backends.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from paasbaan.infrastructure.cache import InMemoryTTLCache, NullCache, PermissionCache
from paasbaan.infrastructure.cache.permission_cache import (
    resource_permissions_key,
    user_permissions_key,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestInMemoryTTLCache:
    """Test the in-memory TTL backend."""

    @pytest.mark.asyncio
    async def test_set_and_get(self):
        """Test values are returned until deleted."""
        backend = InMemoryTTLCache()
        await backend.set("a", [1, 2])

        assert await backend.get("a") == [1, 2]
        assert await backend.delete("a", "missing") == 1
        assert await backend.get("a") is None

    @pytest.mark.asyncio
    async def test_entries_expire(self, clock):
        """Test an entry older than its ttl is a miss."""
        backend = InMemoryTTLCache(ttl=60, clock=clock)
        await backend.set("a", "value")

        clock.advance(59)
        assert await backend.get("a") == "value"

        clock.advance(1)
        assert await backend.get("a") is None

    @pytest.mark.asyncio
    async def test_zero_ttl_never_expires(self, clock):
        """Test a ttl of zero keeps entries indefinitely."""
        backend = InMemoryTTLCache(ttl=0, clock=clock)
        await backend.set("a", "value")

        clock.advance(10 ** 6)

        assert await backend.get("a") == "value"

    @pytest.mark.asyncio
    async def test_sweep_removes_expired_entries(self, clock):
        """Test the periodic sweep drops expired entries from storage."""
        backend = InMemoryTTLCache(ttl=10, sweep_interval=100, clock=clock)
        await backend.set("old", 1)
        clock.advance(50)
        await backend.set("fresh", 2)
        assert len(backend) == 2

        clock.advance(50)
        await backend.get("fresh")

        assert len(backend) == 0

    @pytest.mark.asyncio
    async def test_no_sweep_before_interval(self, clock):
        """Test expired entries stay stored until the sweep interval passes."""
        backend = InMemoryTTLCache(ttl=10, sweep_interval=100, clock=clock)
        await backend.set("old", 1)
        clock.advance(20)

        await backend.set("other", 2)

        assert len(backend) == 2
        assert await backend.keys_with_prefix("o") == ["other"]

    @pytest.mark.asyncio
    async def test_keys_with_prefix(self):
        """Test prefix scans match only the given prefix."""
        backend = InMemoryTTLCache()
        await backend.set("resource_permissions:1:location:3", [1])
        await backend.set("resource_permissions:12:location:3", [2])

        assert await backend.keys_with_prefix("resource_permissions:1:") == [
            "resource_permissions:1:location:3"
        ]

    @pytest.mark.asyncio
    async def test_clear(self):
        """Test clear empties the cache."""
        backend = InMemoryTTLCache()
        await backend.set("a", 1)

        await backend.clear()

        assert len(backend) == 0


class TestNullCache:
    """Test the disabled cache backend."""

    @pytest.mark.asyncio
    async def test_always_misses(self):
        """Test nothing is ever stored."""
        backend = NullCache()
        await backend.set("a", 1)

        assert await backend.get("a") is None
        assert await backend.keys_with_prefix("") == []
        assert await backend.delete("a") == 0

    def test_permission_cache_disabled(self):
        """Test a permission cache without backend reports disabled."""
        assert PermissionCache().enabled is False
        assert PermissionCache(InMemoryTTLCache()).enabled is True


class TestPermissionCache:
    """Test permission cache keyspaces and invalidation."""

    @pytest.mark.asyncio
    async def test_empty_backend_is_kept(self):
        """Test an empty in-memory backend is used rather than replaced."""
        backend = InMemoryTTLCache()
        cache = PermissionCache(backend)

        await cache.set_user_permissions(7, {"read:users"})

        assert cache.backend is backend
        assert cache.enabled is True
        assert await backend.get(user_permissions_key(7)) == ["read:users"]

    @pytest.mark.asyncio
    async def test_user_permissions_round_trip(self, cache):
        """Test permission sets are stored sorted and read back as sets."""
        await cache.set_user_permissions(1, {"b", "a"})

        assert await cache.backend.get(user_permissions_key(1)) == ["a", "b"]
        assert await cache.get_user_permissions(1) == {"a", "b"}

    @pytest.mark.asyncio
    async def test_empty_set_is_a_hit(self, cache):
        """Test an empty permission set is cached rather than treated as a miss."""
        await cache.set_user_permissions(1, set())

        assert await cache.get_user_permissions(1) == set()

    @pytest.mark.asyncio
    async def test_invalidate_user_is_prefix_safe(self, cache):
        """Test invalidating user 1 leaves user 12 untouched."""
        await cache.set_user_permissions(1, {"a"})
        await cache.set_user_permissions(12, {"a"})
        await cache.set_resource_ids(1, "location", 3, {1})
        await cache.set_resource_ids(12, "location", 3, {2})

        removed = await cache.invalidate_user(1)

        assert removed == 2
        assert await cache.get_user_permissions(1) is None
        assert await cache.get_resource_ids(1, "location", 3) is None
        assert await cache.get_user_permissions(12) == {"a"}
        assert await cache.get_resource_ids(12, "location", 3) == {2}

    @pytest.mark.asyncio
    async def test_invalidate_resource(self, cache):
        """Test only the (type, permission) entry of the listed users is dropped."""
        await cache.set_user_permissions(1, {"a"})
        await cache.set_resource_ids(1, "location", 3, {1})
        await cache.set_resource_ids(1, "site", 3, {1})

        await cache.invalidate_resource([1, 1], "location", 3)

        assert await cache.get_resource_ids(1, "location", 3) is None
        assert await cache.get_resource_ids(1, "site", 3) == {1}
        assert await cache.get_user_permissions(1) == {"a"}

    @pytest.mark.asyncio
    async def test_invalidate_resource_type(self, cache):
        """Test a type entry is dropped for every user."""
        await cache.set_resource_ids(1, "location", 3, {1})
        await cache.set_resource_ids(2, "location", 3, {1})
        await cache.set_resource_ids(2, "location", 33, {1})

        assert await cache.invalidate_resource_type("location", 3) == 2
        assert await cache.backend.get(resource_permissions_key(2, "location", 33)) == [1]

    @pytest.mark.asyncio
    async def test_backend_failures_never_raise(self):
        """Test a failing backend degrades to misses and no-ops."""
        backend = MagicMock()
        backend.get = AsyncMock(side_effect=ConnectionError("down"))
        backend.set = AsyncMock(side_effect=ConnectionError("down"))
        backend.delete = AsyncMock(side_effect=ConnectionError("down"))
        backend.keys_with_prefix = AsyncMock(side_effect=ConnectionError("down"))
        backend.clear = AsyncMock(side_effect=ConnectionError("down"))
        logger = MagicMock()
        cache = PermissionCache(backend, logger=logger)

        await cache.set_user_permissions(1, {"a"})
        assert await cache.get_user_permissions(1) is None
        assert await cache.invalidate_user(1) == 0
        assert await cache.invalidate_resource_type("location", 3) == 0
        await cache.clear()

        assert logger.warning.call_count == 6

    @pytest.mark.asyncio
    async def test_clear(self, cache):
        """Test clear drops every keyspace."""
        await cache.set_user_permissions(1, {"a"})
        await cache.set_resource_ids(1, "location", 3, {1})

        await cache.clear()

        assert len(cache.backend) == 0
