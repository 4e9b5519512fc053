"""Health check configuration — loads health.yaml into typed models.

Validated once at startup. Keys may be camelCase (``timeoutMs``) or
snake_case (``timeout_ms``); unknown keys are rejected.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from healthcore.config import Settings
from healthcore.health.errors import ConfigurationError

logger = logging.getLogger(__name__)


class _CheckModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


# ── Per-probe sections ───────────────────────────────────────────────────────


class DatabaseCheckConfig(_CheckModel):
    enabled: bool = True
    connection_string: str | None = None
    timeout_ms: int = Field(5000, gt=0)
    max_waiting: int = Field(0, ge=0)  # soft bound on queued pool acquirers


class CacheCheckConfig(_CheckModel):
    enabled: bool = True
    host: str | None = None
    port: int | None = Field(None, gt=0, lt=65536)
    password: str | None = None
    timeout_ms: int = Field(5000, gt=0)


class ExternalApiConfig(_CheckModel):
    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    timeout_ms: int = Field(5000, gt=0)
    headers: dict[str, str] = Field(default_factory=dict)
    expected_status: int = Field(200, ge=100, le=599)


class FilesystemPath(_CheckModel):
    path: str = Field(min_length=1)
    required: bool = True


class FilesystemCheckConfig(_CheckModel):
    enabled: bool = True
    paths: list[FilesystemPath] = Field(default_factory=lambda: [FilesystemPath(path=".")])
    permissions: list[Literal["read", "write"]] = Field(default_factory=lambda: ["read", "write"])
    timeout_ms: int = Field(5000, gt=0)

    @field_validator("paths", mode="before")
    @classmethod
    def _expand_plain_paths(cls, value: Any) -> Any:
        # A bare string means a required path
        if isinstance(value, list):
            return [{"path": v} if isinstance(v, str) else v for v in value]
        return value


class MemoryCheckConfig(_CheckModel):
    enabled: bool = True
    max_usage_percent: int = Field(90, ge=1, le=100)
    timeout_ms: int = Field(1000, gt=0)


class HealthConfig(_CheckModel):
    """Full probe configuration."""

    database: DatabaseCheckConfig = Field(default_factory=DatabaseCheckConfig)
    cache: CacheCheckConfig = Field(default_factory=CacheCheckConfig)
    external_apis: list[ExternalApiConfig] = Field(default_factory=list)
    filesystem: FilesystemCheckConfig = Field(default_factory=FilesystemCheckConfig)
    memory: MemoryCheckConfig = Field(default_factory=MemoryCheckConfig)

    @model_validator(mode="after")
    def _unique_api_names(self) -> HealthConfig:
        seen: set[str] = set()
        for api in self.external_apis:
            if api.name in seen:
                raise ValueError(f"Duplicate external API name: {api.name}")
            seen.add(api.name)
        return self

    @classmethod
    def all_disabled(cls) -> HealthConfig:
        return cls(
            database=DatabaseCheckConfig(enabled=False),
            cache=CacheCheckConfig(enabled=False),
            filesystem=FilesystemCheckConfig(enabled=False),
            memory=MemoryCheckConfig(enabled=False),
        )


# ── Loading ──────────────────────────────────────────────────────────────────


def parse_health_config(raw: dict[str, Any] | None) -> HealthConfig:
    """Validate a raw mapping. Raises ConfigurationError on bad input."""
    try:
        return HealthConfig.model_validate(raw or {})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid health configuration: {e}") from e


def load_health_config(path: Path, app_settings: Settings | None = None) -> HealthConfig:
    """Read health.yaml, validate it and fill connection fallbacks from Settings.

    A missing file means "all defaults".
    """
    if not path.exists():
        logger.warning("Health config not found: %s — using defaults", path)
        config = HealthConfig()
    else:
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse {path}: {e}") from e
        if raw is not None and not isinstance(raw, dict):
            raise ConfigurationError(f"{path} must contain a mapping at the top level")
        config = parse_health_config(raw)
        logger.info("Loaded health config from %s", path)

    if app_settings is not None:
        config = apply_settings_fallbacks(config, app_settings)
    return config


def apply_settings_fallbacks(config: HealthConfig, app_settings: Settings) -> HealthConfig:
    """Fill connection fields left empty in the file from environment settings."""
    db = config.database
    if not db.connection_string:
        dsn = app_settings.database_url or app_settings.postgres_url
        if dsn:
            db = db.model_copy(update={"connection_string": dsn})

    cache = config.cache.model_copy(update={
        "host": config.cache.host or app_settings.redis_host,
        "port": config.cache.port or app_settings.redis_port,
        "password": config.cache.password or app_settings.redis_password or None,
    })

    return config.model_copy(update={"database": db, "cache": cache})
