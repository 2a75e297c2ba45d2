"""
Clinic Cache Configuration

Configuration management with environment variable support.
Implements secure defaults and validation for all cache, session
and invalidation settings.
"""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Cache core settings with validation and secure defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Application environment"
    )

    # Redis configuration
    REDIS_URL: str = Field(
        default="redis://localhost:6379", description="Redis connection URL"
    )
    REDIS_MAX_CONNECTIONS: int = Field(
        default=10, ge=1, le=50, description="Redis connection pool size"
    )
    REDIS_CONNECTION_TIMEOUT: float = Field(
        default=5.0, gt=0, le=60, description="Redis socket connect timeout in seconds"
    )
    REDIS_OPERATION_TIMEOUT: float = Field(
        default=5.0, gt=0, le=60, description="Redis operation timeout in seconds"
    )
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(
        default=30, ge=0, le=300, description="Redis connection health check interval"
    )

    # Circuit breaker settings
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(
        default=5, ge=1, le=20, description="Circuit breaker failure threshold"
    )
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: int = Field(
        default=60,
        ge=1,
        le=300,
        description="Circuit breaker recovery timeout in seconds",
    )

    # Cache settings
    CACHE_TAG_TTL_GRACE_SECONDS: int = Field(
        default=300,
        ge=0,
        le=86400,
        description="Extra lifetime of a tag index beyond its members' TTL",
    )
    CACHE_COMPRESSION_THRESHOLD_BYTES: int = Field(
        default=1024, ge=0, description="Payloads larger than this are gzipped"
    )
    CACHE_REFRESH_LOCK_SECONDS: int = Field(
        default=30, ge=1, le=600, description="remember_forever recompute lock TTL"
    )
    CACHE_REFRESH_RETRY_DELAY_SECONDS: float = Field(
        default=0.2,
        ge=0,
        le=10,
        description="Wait before retrying when another worker holds the refresh lock",
    )

    # Session settings
    SESSION_MAX_AGE_SECONDS: int = Field(
        default=86400, ge=60, le=86400 * 30, description="Session lifetime in seconds"
    )
    SESSION_MAX_CONCURRENT: int = Field(
        default=10, ge=1, le=100, description="Maximum concurrent sessions per user"
    )
    SESSION_COOKIE_NAME: str = Field(
        default="session", description="Name of the session cookie"
    )
    SESSION_COOKIE_SAMESITE: str = Field(
        default="lax", description="SameSite attribute of the session cookie"
    )

    # Invalidation settings
    INVALIDATION_SWEEP_INTERVAL_SECONDS: float = Field(
        default=1.0,
        gt=0,
        le=60,
        description="Interval of the background invalidation queue sweep",
    )

    # Monitoring
    METRICS_COLLECTION_INTERVAL_SECONDS: int = Field(
        default=60, ge=1, le=3600, description="Cache metrics collection interval"
    )
    METRICS_HISTORY_SIZE: int = Field(
        default=1440, ge=1, le=100000, description="Number of metric summaries kept"
    )

    # Observability
    OTEL_SERVICE_NAME: str = Field(
        default="clinic-cache", description="OpenTelemetry service name"
    )
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_JSON: bool = Field(default=True, description="Render logs as JSON")

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

    @field_validator("SESSION_COOKIE_SAMESITE")
    @classmethod
    def validate_samesite(cls, v):
        """Validate SameSite cookie attribute."""
        allowed = ["strict", "lax", "none"]
        if v.lower() not in allowed:
            raise ValueError(f"SESSION_COOKIE_SAMESITE must be one of: {allowed}")
        return v.lower()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def session_cookie_secure(self) -> bool:
        """Session cookies are HTTPS-only in production."""
        return self.is_production


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Create global settings instance
settings = get_settings()
