"""Configuration management for the query engine and function sandbox."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SandboxConfig(BaseModel):
    """Function sandbox configuration."""

    timeout_seconds: float = Field(
        default=5.0, gt=0, description="Wall-clock budget per function call in seconds"
    )
    max_steps: int = Field(
        default=5_000_000, ge=1, description="Interpreter step budget per function call"
    )
    max_call_depth: int = Field(default=64, ge=1, le=1000, description="Max closure nesting")
    max_array_length: int = Field(
        default=1_000_000,
        ge=1,
        description="Largest length an index or length write may grow a script array to",
    )
    worker_threads: int = Field(default=4, ge=1, le=256, description="Sandbox worker pool size")
    compile_cache_size: int = Field(
        default=256, ge=1, description="Compiled function bodies kept in the LRU cache"
    )


class QueryConfig(BaseModel):
    """Query executor configuration."""

    case_insensitive_text: bool = Field(
        default=True, description="Compare text case-insensitively in WHERE equality"
    )
    max_rows: int | None = Field(
        default=None, ge=0, description="Cap on returned rows, applied after LIMIT"
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
    otel_service_name: str = Field(default="gridql", description="Service name for tracing")


class Config(BaseSettings):
    """Main configuration for gridql."""

    model_config = SettingsConfigDict(
        env_prefix="GRIDQL_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
