"""
Shared configuration management for the marketplace entitlements layer.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MARKETPLACE_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    postgres_dsn: str = Field(default="postgres://localhost:5432/marketplace")
    auth_service_url: str = Field(default="http://localhost:8010")
    auth_timeout_seconds: float = Field(default=10.0)

    # Quota ledger
    enable_limit_cache: bool = Field(default=True)
    limit_cache_ttl_seconds: int = Field(default=300, ge=0)

    # Profile state thresholds (completeness percentage)
    profile_in_progress_threshold: int = Field(default=20, ge=0, le=100)
    profile_established_threshold: int = Field(default=60, ge=0, le=100)
    profile_complete_threshold: int = Field(default=80, ge=0, le=100)
    profile_complete_min_social_links: int = Field(default=2, ge=0)

    # Navigation
    redirect_debounce_ms: int = Field(default=300, ge=0)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
