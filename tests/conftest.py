"""
Shared fixtures: an in-memory SQLite entity store and wired services.
"""
import pytest
import pytest_asyncio
import structlog

from paasbaan.infrastructure.cache import InMemoryTTLCache, PermissionCache
from paasbaan.infrastructure.database.base import create_engine, create_session_factory, create_tables
from paasbaan.services.authorization import (
    AccessGroupAdministrator,
    PermissionResolver,
    ResourcePermissionService,
)


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo any global structlog configuration made by a test."""
    yield
    structlog.reset_defaults()


@pytest_asyncio.fixture
async def engine():
    """In-memory entity store with every table created."""
    engine = create_engine("sqlite+aiosqlite://")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def cache():
    return PermissionCache(InMemoryTTLCache())


@pytest.fixture
def resolver(session_factory, cache):
    return PermissionResolver(session_factory, cache)


@pytest.fixture
def resources(session_factory, resolver, cache):
    return ResourcePermissionService(session_factory, resolver, cache)


@pytest.fixture
def admin(session_factory, cache):
    return AccessGroupAdministrator(session_factory, cache)
