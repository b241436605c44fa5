"""
Configuration management using Pydantic and Pydantic Settings.

Two layers:

* ``Settings`` holds deployment values read from the environment
  (database URL, JWT secret).
* ``AccessControlConfig`` is the per-instance configuration handed to
  ``AccessControl`` (route access table, cache, logging, feature flags).
"""
from functools import lru_cache
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPER_ADMIN_CODE = "super_admin"
SUPER_ADMIN_GROUP_NAME = "Super Admin"


class Settings(BaseSettings):
    """
    Deployment settings loaded from environment variables.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    APP_NAME: str = "paasbaan"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = Field(default="development", pattern="^(development|staging|production)$")

    # Store
    DATABASE_URL: str = "sqlite+aiosqlite:///./paasbaan.db"
    DATABASE_ECHO: bool = False

    # Token verification
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT == "development"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Deployment settings
    """
    return Settings()


class CacheConfig(BaseModel):
    """Time-to-live cache tuning. ``ttl`` of 0 means entries never expire."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ttl: float = Field(default=0, ge=0, alias="stdTTL")
    sweep_interval: float = Field(default=600, gt=0, alias="checkperiod")


class RouteRule(BaseModel):
    """A declared route: path pattern, HTTP method and the permissions it requires."""
    path: str = Field(..., min_length=1)
    method: str = Field(..., min_length=1)
    permissions: List[str] = Field(default_factory=list)

    @field_validator("method")
    @classmethod
    def normalize_method(cls, v: str) -> str:
        return v.strip().upper()


class AccessControlConfig(BaseModel):
    """
    Runtime configuration for an ``AccessControl`` instance.

    Accepts both snake_case names and the camelCase aliases used by
    existing configuration files (``userIdKey``, ``resourceLevelPermissions``).
    ``cache`` and ``logging`` accept ``False`` as a synonym for ``"disabled"``.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    route_access: List[RouteRule]
    cache: Literal["disabled", "in-memory"] = "disabled"
    cache_config: CacheConfig = Field(default_factory=CacheConfig)
    user_id_key: str = Field(default="userId", alias="userIdKey", min_length=1)
    logging: Literal["disabled", "console"] = "disabled"
    resource_level_permissions: bool = Field(default=False, alias="resourceLevelPermissions")

    @field_validator("cache", "logging", mode="before")
    @classmethod
    def false_means_disabled(cls, v: Any) -> Any:
        if v is False or v is None:
            return "disabled"
        return v

    @field_validator("route_access", mode="before")
    @classmethod
    def expand_route_access(cls, v: Any) -> Any:
        """
        Normalize the route access table into an ordered list of rules.

        Supported shapes:
            {"/users/:id": {"method": "GET", "permissions": [...]}}
            {"/users/:id": [{"method": "GET", ...}, {"method": "PUT", ...}]}
            [{"path": "/users/:id", "method": "GET", "permissions": [...]}]

        Declaration order is preserved; it decides which rule wins when
        several patterns match the same path.
        """
        if isinstance(v, dict):
            rules: List[Dict[str, Any]] = []
            for path, declared in v.items():
                entries = declared if isinstance(declared, list) else [declared]
                for entry in entries:
                    if isinstance(entry, RouteRule):
                        entry = entry.model_dump()
                    rules.append({**entry, "path": path})
            return rules
        return v


def load_access_control_config(
    config: Union[AccessControlConfig, Dict[str, Any]],
) -> AccessControlConfig:
    """Coerce a plain mapping into ``AccessControlConfig``."""
    if isinstance(config, AccessControlConfig):
        return config
    return AccessControlConfig.model_validate(config)
