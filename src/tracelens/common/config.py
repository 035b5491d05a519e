"""Application configuration using Pydantic Settings.

Loads configuration from environment variables and .env files.
Supports component-specific settings with shared base configuration.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Span store configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    keyspace: str = "zipkin"
    # Comma-separated list of host:port coordinator addresses
    contact_points: str = "localhost:5432"
    user: str = "tracelens"
    password: SecretStr = SecretStr("tracelens")
    database: str = "tracelens"

    # Connection pool settings, per contact point
    pool_size: int = Field(default=5, ge=1, le=100)
    max_overflow: int = Field(default=5, ge=0, le=50)
    pool_timeout: int = Field(default=30, ge=1)

    echo: bool = False

    @property
    def contact_point_list(self) -> list[str]:
        """Parse contact points from comma-separated string."""
        return [p.strip() for p in self.contact_points.split(",") if p.strip()]


class IngestionSettings(BaseSettings):
    """Span ingestion configuration."""

    model_config = SettingsConfigDict(env_prefix="INGESTION_")

    # Spans per write; bounds outstanding writes to one chunk
    chunk_size: int = Field(default=100, ge=1, le=10000)

    # Drain barrier
    drain_poll_interval_ms: int = Field(default=100, ge=1)
    drain_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Give up waiting for in-flight writes after this long (unbounded if unset)",
    )


class DependencySettings(BaseSettings):
    """Dependency job configuration."""

    model_config = SettingsConfigDict(env_prefix="DEPENDENCIES_")

    unknown_service_name: str = Field(
        default="unknown",
        min_length=1,
        description="Placeholder service for edges whose service name cannot be resolved",
    )

    @field_validator("unknown_service_name")
    @classmethod
    def normalize_unknown(cls, v: str) -> str:
        """Service names are compared lower-case."""
        return v.strip().lower()


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "json"
    include_timestamp: bool = True
    include_caller: bool = True


class Settings(BaseSettings):
    """Main application settings aggregating all configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application info
    app_name: str = "TraceLens"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"

    # Sub-configurations
    storage: StorageSettings = Field(default_factory=StorageSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    dependencies: DependencySettings = Field(default_factory=DependencySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
