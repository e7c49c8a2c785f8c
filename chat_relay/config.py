"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with validation.
"""
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    environment: str = Field(default="development", description="Environment: development, staging, production")
    debug: bool = Field(default=False, description="Debug mode")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./chat_relay.db",
        description="Async database URL (sqlite+aiosqlite or postgresql+asyncpg)"
    )

    # Redis
    redis_url: str = Field(default="", description="Redis connection URL (empty disables the cache)")
    redis_password: str = Field(default="", description="Redis password")

    # Security
    jwt_secret: str = Field(
        default="development-secret-change-me-0123456789",
        min_length=32,
        description="JWT secret key (min 32 chars)"
    )
    jwt_algorithm: str = Field(default="HS256", description="JWT algorithm")
    jwt_expiration_hours: int = Field(default=24, description="JWT expiration time in hours")

    # CORS
    allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins"
    )

    # Socket.IO transport
    ws_ping_interval: int = Field(default=10, description="Ping interval in seconds")
    ws_ping_timeout: int = Field(default=5, description="Ping timeout in seconds (shorter than the interval)")
    ws_handshake_timeout: float = Field(default=5.0, description="Seconds allowed to authenticate a new socket")
    ws_max_payload_bytes: int = Field(default=1_000_000, description="Maximum inbound payload size in bytes")
    message_max_length: int = Field(default=10000, description="Maximum message content length")

    # Notification fan-out
    notification_batch_interval: float = Field(default=0.1, description="Batch flush period in seconds")
    notification_dedup_ttl: float = Field(default=60.0, description="Dedup cache entry lifetime in seconds")
    notification_dedup_max_size: int = Field(default=10000, description="Dedup cache capacity")
    notification_broadcast_chunk_size: int = Field(default=500, description="Sockets per broadcast chunk")
    notification_priority_types: str = Field(
        default="alert,critical",
        description="Comma-separated notification types delivered immediately"
    )
    connection_rate_limit_interval: float = Field(
        default=0.5,
        description="Minimum seconds between connections from one address"
    )
    connection_rate_limit_prune_after: float = Field(
        default=300.0,
        description="Seconds after which per-address bookkeeping is pruned"
    )

    # Typing indicators
    typing_indicator_ttl: float = Field(default=8.0, description="Seconds before a typing flag expires")
    typing_rate_limit: str = Field(default="100/minute", description="REST typing indicator rate limit per sender")

    # Connection pool
    pool_default_size: int = Field(default=8, description="Working maximum of pooled storage handles")
    pool_max_size: int = Field(default=32, description="Hard ceiling for the pool size")
    pool_min_idle: int = Field(default=2, description="Handles opened eagerly and floor for resizing")
    pool_acquire_timeout: float = Field(default=30.0, description="Seconds to wait for a free handle")

    # Cache TTL (in seconds)
    cache_presence_ttl: int = Field(default=300, description="Presence cache TTL in seconds")
    cache_public_key_ttl: int = Field(default=600, description="Public key cache TTL in seconds")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Upper-case the level name so logging accepts it."""
        return v.upper()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    def get_priority_types(self) -> set[str]:
        """Parse comma-separated priority notification types."""
        return {t.strip().lower() for t in self.notification_priority_types.split(",") if t.strip()}

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
