# ==============================================================================
# Application Configuration
# ==============================================================================
"""
Configuration management using pydantic-settings.

All configuration is loaded from environment variables, with support for
.env files via python-dotenv.
"""

from functools import lru_cache
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file before any settings are instantiated
load_dotenv()


class AgentSettings(BaseSettings):
    """Tracking agent defaults (batching, session expiry, delivery)."""

    model_config = SettingsConfigDict(env_prefix="AGENT_")

    endpoint: str = Field(
        default="http://localhost:8000/api/track", description="Ingestion endpoint URL"
    )
    batch_size: int = Field(default=10, ge=1, description="Queue length that triggers a flush")
    batch_timeout_seconds: float = Field(
        default=5.0, gt=0, description="Idle time after the first unflushed event before a flush"
    )
    session_timeout_minutes: int = Field(
        default=30, ge=1, description="Session inactivity timeout in minutes"
    )
    scroll_throttle_seconds: float = Field(
        default=1.0, ge=1.0, description="Minimum interval between scroll events"
    )
    max_queue_size: int = Field(
        default=1000, ge=1, description="Queue bound; oldest events are dropped beyond it"
    )
    request_timeout_seconds: float = Field(
        default=10.0, gt=0, description="HTTP timeout for a single batch delivery"
    )


class IngestionSettings(BaseSettings):
    """Ingestion gate settings."""

    model_config = SettingsConfigDict(env_prefix="INGESTION_")

    host: str = Field(default="0.0.0.0", description="Bind address for the ingestion API")
    port: int = Field(default=8000, description="Port for the ingestion API")
    path: str = Field(default="/api/track", description="Ingestion route")
    min_credential_length: int = Field(default=3, description="Minimum site credential length")
    max_batch_size: int = Field(default=500, ge=1, description="Maximum events per batch")

    store_backend: Literal["memory", "postgresql"] = Field(
        default="memory", description="Event store backend (memory, postgresql)"
    )
    registry_backend: Literal["static", "valkey", "postgresql"] = Field(
        default="static",
        description="Site credential registry backend (static, valkey, postgresql)",
    )
    static_credentials: str = Field(
        default="",
        description="Comma-separated credential:site_id pairs for the static registry",
    )

    @property
    def credential_map(self) -> dict[str, str]:
        """Parse static_credentials into a credential -> site_id mapping."""
        mapping = {}
        for pair in self.static_credentials.split(","):
            pair = pair.strip()
            if not pair:
                continue
            credential, _, site_id = pair.partition(":")
            mapping[credential.strip()] = site_id.strip() or credential.strip()
        return mapping


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings."""

    model_config = SettingsConfigDict(env_prefix="PG_")

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL username")
    password: str = Field(default="postgres", description="PostgreSQL password")
    database: str = Field(default="clickpulse", description="Database name")
    schema_name: str = Field(default="clickpulse", description="Schema name")
    sslmode: str = Field(default="prefer", description="SSL mode")
    pool_size: int = Field(default=10, ge=1, description="Max pooled connections per adapter")

    @property
    def connection_string(self) -> str:
        """Build PostgreSQL connection string."""
        return (
            f"postgresql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?sslmode={self.sslmode}"
        )


class ValkeySettings(BaseSettings):
    """Valkey (Redis-compatible) connection settings for the credential registry."""

    model_config = SettingsConfigDict(env_prefix="VALKEY_")

    host: str = Field(default="localhost", description="Valkey host")
    port: int = Field(default=6379, description="Valkey port")
    password: Optional[str] = Field(default=None, description="Valkey password")
    db: int = Field(default=0, description="Valkey database number")
    ssl: bool = Field(default=False, description="Use SSL/TLS connection")

    registry_key: str = Field(
        default="clickpulse:sites", description="Hash holding credential -> site_id"
    )

    @property
    def url(self) -> str:
        """Build Valkey connection URL."""
        scheme = "rediss" if self.ssl else "redis"
        if self.password:
            return f"{scheme}://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"{scheme}://{self.host}:{self.port}/{self.db}"


class AnalyticsSettings(BaseSettings):
    """Analytics query settings."""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    default_window: Literal["1d", "7d", "30d", "all"] = Field(
        default="7d", description="Time window used when none is given"
    )
    timeout_seconds: float = Field(
        default=30.0, gt=0, description="Deadline for a single analytics computation"
    )
    reference_event_types: int = Field(
        default=5, ge=1, description="Event type cardinality the engagement score is scaled to"
    )
    split_on_inactivity: bool = Field(
        default=False, description="Split sessions on inactivity gaps during reconstruction"
    )
    session_timeout_minutes: int = Field(
        default=30, ge=1, description="Inactivity gap used when splitting sessions"
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    # Nested settings
    agent: AgentSettings = Field(default_factory=AgentSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    valkey: ValkeySettings = Field(default_factory=ValkeySettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)

    # General settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for subsequent calls.
    """
    return Settings()
