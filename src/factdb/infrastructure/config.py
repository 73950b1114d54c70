"""Configuration management for the fact database."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreConfig(BaseModel):
    """Entity store configuration."""

    id_start: int = Field(
        default=1000,
        ge=100,
        description="First entity id handed out to user entities and transactions",
    )
    default_partition: str = Field(
        default="db.part/user", description="Partition used for generated tempids"
    )


class QueryConfig(BaseModel):
    """Query evaluation configuration."""

    max_bindings: int = Field(
        default=1_000_000,
        ge=1,
        description="Maximum number of bindings a single query may produce",
    )


class ServerConfig(BaseModel):
    """REST server configuration."""

    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, ge=1, le=65535, description="Server port")
    metrics_port: int = Field(default=8001, ge=1, le=65535, description="Prometheus metrics port")


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="factdb", description="Service name for tracing")


class FactDBConfig(BaseSettings):
    """Main configuration for the fact database."""

    model_config = SettingsConfigDict(
        env_prefix="FACTDB_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    store: StoreConfig = Field(default_factory=StoreConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> FactDBConfig:
    """Get the global configuration instance."""
    return FactDBConfig()
