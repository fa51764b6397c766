"""Configuration loader and settings helpers for Staging_Ingestor."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError

REQUIRED_ENV: tuple[str, ...] = ("STAGING_DATABASE_URL",)


def load_yaml_config(config_path: str | Path) -> dict[str, Any]:
    """Read a YAML mapping from ``config_path``; an empty file yields ``{}``.

    Raises:
        ConfigurationError: If the file is missing, is not valid YAML, or does
            not hold a mapping at the top level.
    """
    path = Path(config_path)
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected a mapping at the top of {path}")
    return loaded


class DatabasePoolSettings(BaseModel):
    """Connection pooling configuration for the SQLAlchemy engine."""

    model_config = ConfigDict(extra="forbid")

    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    timeout: float = Field(default=30.0, gt=0)
    recycle_seconds: int = Field(default=1800, ge=0)
    pre_ping: bool = True


class StorageSettings(BaseModel):
    """Object storage settings for uploaded source files."""

    model_config = ConfigDict(extra="forbid")

    backend: Literal["s3", "local"] = "local"
    bucket: str | None = None
    region: str | None = None
    profile: str | None = None
    endpoint_url: str | None = None
    local_root: Path = Path("var/uploads")

    @model_validator(mode="after")
    def _require_bucket_for_s3(self) -> "StorageSettings":
        if self.backend == "s3" and not self.bucket:
            raise ValueError("storage.bucket is required when storage.backend is 's3'")
        return self


class QueueSettings(BaseModel):
    """Job queue defaults applied to the ingestion job type."""

    model_config = ConfigDict(extra="forbid")

    name: str = "create-dump-table-queue"
    concurrency: int = Field(default=2, ge=1)
    max_attempts: int = Field(default=1, ge=1)
    backoff_seconds: float = Field(default=5.0, gt=0)
    max_backoff_seconds: float = Field(default=30.0, gt=0)
    initial_delay_seconds: float = Field(default=0.0, ge=0)
    remove_on_complete: bool = True
    failed_retention_seconds: int = Field(default=2 * 24 * 3600, ge=0)
    cleanup_completed_age_seconds: int = Field(default=24 * 3600, ge=0)
    cleanup_failed_age_seconds: int = Field(default=48 * 3600, ge=0)
    visibility_timeout_seconds: int = Field(default=3600, ge=1)

    @model_validator(mode="after")
    def _check_backoff_bounds(self) -> "QueueSettings":
        if self.max_backoff_seconds < self.backoff_seconds:
            raise ValueError("queue.max_backoff_seconds must be >= queue.backoff_seconds")
        return self


class IngestionSettings(BaseModel):
    """Row parsing and staging behaviour."""

    model_config = ConfigDict(extra="forbid")

    batch_size: int = Field(default=10_000, ge=1)
    progress_interval_seconds: float = Field(default=0.5, ge=0)
    strict_schemas: bool = False
    schemas_file: Path | None = None
    generic_file_types: list[str] = Field(default_factory=lambda: ["csv", "excel", "dbf"])

    @field_validator("generic_file_types", mode="before")
    @classmethod
    def _parse_file_types(cls, value: Any) -> Any:
        """Support comma-separated strings for file type lists."""

        if isinstance(value, str):
            return [item.strip().lower() for item in value.split(",") if item.strip()]
        return value


class GlobalSettings(BaseSettings):
    """Global application settings sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STAGING_",
        env_nested_delimiter="__",
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    log_level: str = "INFO"
    redis_url: str | None = None
    database_url: str | None = None
    database: DatabasePoolSettings = DatabasePoolSettings()
    storage: StorageSettings = StorageSettings()
    queue: QueueSettings = QueueSettings()
    ingestion: IngestionSettings = IngestionSettings()
    api_keys: list[str] = Field(default_factory=list)

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        """Ensure log level values are uppercase for logging config."""

        return value.upper()

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, value: str) -> str:
        return value.lower()

    @field_validator("api_keys", mode="before")
    @classmethod
    def _split_api_keys(cls, value: Any) -> Any:
        """Accept ``"k1,k2"`` as well as a list; blank entries are dropped."""

        if value is None:
            return []
        items = value.split(",") if isinstance(value, str) else value
        if not isinstance(items, list | tuple | set):
            raise ValueError("api_keys must be a list or a comma-separated string")
        return [str(item).strip() for item in items if str(item).strip()]

    def resolved_database_url(self) -> str:
        """Return the configured database URL or the local SQLite fallback."""

        return self.database_url or "sqlite:///./staging_ingestor.db"

    def resolved_redis_url(self) -> str:
        """Return the configured Redis URL or the local default."""

        return self.redis_url or "redis://localhost:6379/0"


def ensure_runtime_configuration(settings: GlobalSettings | None = None) -> GlobalSettings:
    """Fail fast when a process is started without what it needs to run.

    Checks the required environment variables and, when configured, that the
    schema file exists. Returns the validated settings.
    """

    settings = settings or get_settings()

    if missing := [name for name in REQUIRED_ENV if not os.environ.get(name)]:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(sorted(missing))}. "
            "Set them in the environment or a .env file."
        )

    schemas_file = settings.ingestion.schemas_file
    if schemas_file is not None and not Path(schemas_file).is_file():
        raise ConfigurationError(f"Schema configuration file not found: {schemas_file}")
    return settings


@lru_cache(maxsize=1)
def _get_settings_cached() -> GlobalSettings:
    return GlobalSettings()


def get_settings(*, reload: bool = False) -> GlobalSettings:
    """Return cached settings, optionally forcing a reload."""

    if reload:
        _get_settings_cached.cache_clear()
    return _get_settings_cached()
