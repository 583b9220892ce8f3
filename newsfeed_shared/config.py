"""
Shared configuration management for the Newsfeed Access Layer.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="NEWSFEED_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = "local"
    log_level: str = "info"
    log_format: str = "json"

    # Downstream services
    user_service_url: str = "http://localhost:4001"
    post_service_url: str = "http://localhost:4002"
    redis_url: str = "redis://localhost:6379/0"

    # Security
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_leeway_seconds: int = 0
    internal_secret: str = "change-me-internal"
    trust_forwarded_for: bool = False

    # Downstream call policy
    downstream_timeout_seconds: float = Field(default=5.0, gt=0)
    author_lookup_timeout_seconds: float = Field(default=3.0, gt=0)
    downstream_retry_attempts: int = Field(default=2, ge=1)
    downstream_retry_base_delay: float = Field(default=0.2, ge=0)
    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_recovery_timeout: float = Field(default=30.0, ge=0)

    # Rate limiting
    rate_limit_backend: str = "memory"
    rate_limit_max_requests: int = Field(default=100, ge=1)
    rate_limit_window_seconds: float = Field(default=60.0, gt=0)
    rate_limit_max_clients: int = Field(default=100_000, ge=1)
    rate_limit_sweep_interval_seconds: float = Field(default=60.0, ge=0)
    rate_limit_exempt_paths: List[str] = ["/metrics"]

    # Feed assembly
    feed_default_limit: int = Field(default=50, ge=1)
    feed_max_limit: int = Field(default=100, ge=1)
    author_lookup_concurrency: int = Field(default=10, ge=1)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
