"""
AccessControl: one configured instance of the access layer.

Wires the entity store, permission cache, resolvers, administrator and
request decision engine together from an ``AccessControlConfig``.
"""
from typing import Any, Dict, List, Optional, Set, Union

import pydantic
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine

from paasbaan.core.config import (
    AccessControlConfig,
    Settings,
    get_settings,
    load_access_control_config,
)
from paasbaan.core.exceptions import ConfigurationError
from paasbaan.core.logging import build_logger
from paasbaan.core.security import JoseTokenVerifier
from paasbaan.domain.interfaces.base import ICacheBackend, ITokenVerifier
from paasbaan.domain.schemas import coerce_id
from paasbaan.infrastructure.cache import InMemoryTTLCache, NullCache, PermissionCache
from paasbaan.infrastructure.database.base import create_engine, create_session_factory
from paasbaan.infrastructure.database.utils import setup_initial_data, validate_tables
from paasbaan.services.authorization import (
    AccessControlMiddleware,
    AccessGroupAdministrator,
    AuthorizationEngine,
    PermissionResolver,
    ResourcePermissionService,
    RouteMatcher,
)


class AccessControl:
    """
    Access control for an application.

    Usage:
        access = AccessControl(
            {"route_access": {"/api/users/:id": {"method": "GET", "permissions": ["read:users"]}},
             "cache": "in-memory"},
            database_url="postgresql+asyncpg://...",
            secret=os.environ["JWT_SECRET"],
        )
        await access.initialize()
        access.install(app)
    """

    def __init__(
        self,
        config: Union[AccessControlConfig, Dict[str, Any]],
        engine: Optional[AsyncEngine] = None,
        database_url: Optional[str] = None,
        secret: Optional[str] = None,
        verifier: Optional[ITokenVerifier] = None,
        cache_backend: Optional[ICacheBackend] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            config: Route access table and instance options
            engine: Async engine for the entity store
            database_url: Used to create an engine when none is given
            secret: Token verification secret; defaults to ``JWT_SECRET``
            verifier: Token verifier; defaults to python-jose
            cache_backend: Cache port implementation overriding ``cache``
            settings: Deployment settings; read from the environment by default

        Raises:
            ConfigurationError: on invalid configuration or a missing secret
        """
        try:
            self.config = load_access_control_config(config)
        except pydantic.ValidationError as e:
            raise ConfigurationError(f"Invalid access control configuration: {e}") from e

        settings = settings or get_settings()
        self.secret = secret or settings.JWT_SECRET
        if not self.secret:
            raise ConfigurationError("A token verification secret is required (JWT_SECRET)")

        self._owns_engine = engine is None
        self.engine = engine or create_engine(
            database_url or settings.DATABASE_URL,
            echo=settings.DATABASE_ECHO,
        )
        self.session_factory = create_session_factory(self.engine)
        self.logger = build_logger(self.config.logging, "paasbaan")

        if cache_backend is None:
            if self.config.cache == "in-memory":
                cache_backend = InMemoryTTLCache(
                    ttl=self.config.cache_config.ttl,
                    sweep_interval=self.config.cache_config.sweep_interval,
                )
            else:
                cache_backend = NullCache()
        self.cache = PermissionCache(cache_backend, logger=self.logger)

        self.resolver = PermissionResolver(self.session_factory, self.cache, self.logger)
        self.resources = ResourcePermissionService(
            self.session_factory, self.resolver, self.cache, self.logger
        )
        self.access_groups = AccessGroupAdministrator(self.session_factory, self.cache, self.logger)
        self.matcher = RouteMatcher(self.config.route_access)
        self.authorization = AuthorizationEngine(
            matcher=self.matcher,
            resolver=self.resolver,
            secret=self.secret,
            verifier=verifier or JoseTokenVerifier(algorithms=[settings.JWT_ALGORITHM]),
            user_id_key=self.config.user_id_key,
            logger=self.logger,
        )

    async def initialize(self) -> None:
        """
        Validate the schema and seed the super admin permission and group.

        Raises:
            ConfigurationError: if required tables are missing
        """
        await validate_tables(self.engine, self.config.resource_level_permissions, logger=self.logger)
        await setup_initial_data(self.session_factory, logger=self.logger)
        self.logger.info("access_control_initialized", routes=len(self.matcher))

    def install(self, app: FastAPI) -> FastAPI:
        """Add the authorization middleware to an application."""
        app.add_middleware(AccessControlMiddleware, engine=self.authorization, logger=self.logger)
        return app

    async def close(self) -> None:
        """Dispose the engine if this instance created it."""
        if self._owns_engine:
            await self.engine.dispose()

    # Permission checks

    async def get_user_permissions(self, user_id: Any) -> List[str]:
        return sorted(await self.resolver.resolve(user_id))

    async def has_permission(self, user_id: Any, permissions: Union[str, List[str]]) -> bool:
        return await self.resolver.has_permission(user_id, permissions)

    async def get_resource_ids(self, resource_type: str, permission_id: Any, user_id: Any) -> Set[int]:
        return await self.resources.resource_ids_for(resource_type, permission_id, user_id)

    async def has_resource_access(
        self,
        resource_type: str,
        permission_id: Any,
        resource_ids: List[Any],
        user_id: Any,
    ) -> bool:
        return await self.resources.has_access(resource_type, permission_id, resource_ids, user_id)

    # Administration

    async def create_access_group(self, data: Dict[str, Any]):
        return await self.access_groups.create_access_group(data)

    async def create_permission(self, data: Dict[str, Any]):
        return await self.access_groups.create_permission(data)

    async def assign_permission_to_access_group(self, group_id: Any, permission_id: Any):
        return await self.access_groups.assign_permission_to_access_group(group_id, permission_id)

    async def add_user_to_access_group(self, group_id: Any, user_id: Any):
        return await self.access_groups.add_user_to_access_group(group_id, user_id)

    # Cache

    async def clear_user_cache(self, user_id: Any) -> None:
        """Drop every cached answer for a user."""
        uid = coerce_id(user_id, "user_id")
        removed = await self.cache.invalidate_user(uid)
        self.logger.info("user_cache_cleared", user_id=uid, removed=removed)

    async def clear_cache(self) -> None:
        """Drop every cached answer."""
        await self.cache.clear()
