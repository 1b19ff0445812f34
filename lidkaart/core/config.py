"""
Lidkaart Edge Configuration

Configuration management with environment variable support.
Implements secure defaults and validation for all settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import List
from functools import lru_cache
from dotenv import load_dotenv

from ..domain.cache.value_objects import CacheNamespace, VerifyPathPattern

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation and secure defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Application environment"
    )

    # Upstream membership API
    UPSTREAM_URL: str = Field(
        default="http://localhost:5000",
        description="Origin of the membership API the edge cache fronts",
    )
    UPSTREAM_TIMEOUT_SECONDS: float = Field(
        default=10.0, gt=0, le=300, description="Upstream request timeout"
    )

    # Cache storage
    CACHE_BACKEND: str = Field(
        default="memory", description="Cache store backend (memory or redis)"
    )
    REDIS_URL: str = Field(
        default="redis://localhost:6379", description="Redis connection URL"
    )
    REDIS_MAX_CONNECTIONS: int = Field(
        default=10, ge=1, le=50, description="Redis connection pool size"
    )

    # Cache policy
    CACHE_PREFIX: str = Field(
        default="lidkaart", description="Prefix of cache namespace names"
    )
    CACHE_VERSION: str = Field(
        default="1", description="Version suffix of current cache namespaces"
    )
    VERIFY_PATH_PREFIX: str = Field(
        default="/api/card/verify",
        description="Path prefix of the card verification endpoint",
    )
    STATIC_ASSETS: str = Field(
        default="/,/manifest.webmanifest,/icon-192.svg,/icon-512.svg",
        description="Static asset manifest pre-cached on install (comma-separated)",
    )
    CARD_REFRESH_SYNC_TAG: str = Field(
        default="card-refresh",
        description="Background sync tag that invalidates cached verifications",
    )
    AUTO_INSTALL: bool = Field(
        default=True, description="Install and activate the engine on startup"
    )

    # API configuration
    API_HOST: str = Field(default="0.0.0.0", description="API server host")
    API_PORT: int = Field(default=8000, ge=1, le=65535, description="API server port")

    # OpenTelemetry configuration
    OTEL_SERVICE_NAME: str = Field(
        default="lidkaart-edge", description="OpenTelemetry service name"
    )
    OTEL_SERVICE_VERSION: str = Field(
        default="1.0.0", description="OpenTelemetry service version"
    )

    # Development and debugging
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    @field_validator("UPSTREAM_URL")
    @classmethod
    def validate_upstream_url(cls, v):
        """Validate upstream URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("UPSTREAM_URL must be an http(s) URL")
        return v.rstrip("/")

    @field_validator("CACHE_BACKEND")
    @classmethod
    def validate_cache_backend(cls, v):
        """Validate cache backend value."""
        allowed = ["memory", "redis"]
        if v.lower() not in allowed:
            raise ValueError(f"CACHE_BACKEND must be one of: {allowed}")
        return v.lower()

    @field_validator("VERIFY_PATH_PREFIX")
    @classmethod
    def validate_verify_path_prefix(cls, v):
        """Validate verification path prefix."""
        if not v.startswith("/"):
            raise ValueError("VERIFY_PATH_PREFIX must start with '/'")
        return v.rstrip("/")

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def static_assets_list(self) -> List[str]:
        """Get static asset manifest as list."""
        return [asset.strip() for asset in self.STATIC_ASSETS.split(",") if asset.strip()]

    @property
    def dynamic_namespace(self) -> CacheNamespace:
        return CacheNamespace.dynamic(self.CACHE_PREFIX, self.CACHE_VERSION)

    @property
    def static_namespace(self) -> CacheNamespace:
        return CacheNamespace.static(self.CACHE_PREFIX, self.CACHE_VERSION)

    @property
    def verify_pattern(self) -> VerifyPathPattern:
        return VerifyPathPattern(self.VERIFY_PATH_PREFIX)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Create global settings instance
settings = get_settings()
