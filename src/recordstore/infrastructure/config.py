"""Configuration management for recordstore."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """Defaults applied to database handles and implicitly created stores."""

    default_key_path: str = Field(
        default="id", min_length=1, description="Primary key path for implicitly created stores"
    )
    auto_increment: bool = Field(
        default=False, description="Generate keys for records missing one in implicit stores"
    )
    initial_version: int | None = Field(
        default=None,
        ge=1,
        description="Version requested by open_database (None opens at the stored version)",
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    configure_logging: bool = Field(
        default=False,
        description="Install the recordstore log handler when the container is created",
    )
    metrics_enabled: bool = Field(default=True, description="Record Prometheus metrics")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="recordstore", description="Service name for tracing")


class Config(BaseSettings):
    """Main configuration for recordstore."""

    model_config = SettingsConfigDict(
        env_prefix="RECORDSTORE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
