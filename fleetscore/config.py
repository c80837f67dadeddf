"""
Fleet Score Configuration Module
================================

Worker settings backed by pydantic-settings.

Values resolve from process environment first, then a local ``.env``
file, then the defaults declared below. Field names map to environment
variables case-insensitively (``SCORE_WINDOW_DAYS`` -> ``score_window_days``).

Usage:
    from fleetscore.config import settings

    print(settings.kafka_telemetry_topic)
    print(settings.score_window_days)

Author: Fleet Platform Team
Version: 1.0.0
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Settings for the detection and scoring stages."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Application
    # =========================================================================

    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=True, description="Emit JSON log lines")

    # =========================================================================
    # PostgreSQL
    # =========================================================================

    postgres_host: str = Field(default="localhost", description="PostgreSQL host")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_db: str = Field(default="fleet", description="PostgreSQL database")
    postgres_user: str = Field(default="fleet_user", description="PostgreSQL user")
    postgres_password: str = Field(
        default="fleet_password_change_me",
        description="PostgreSQL password"
    )
    postgres_pool_size: int = Field(default=5, ge=1, description="Connection pool size")

    @property
    def postgres_dsn(self) -> str:
        """Get PostgreSQL connection string."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def postgres_async_dsn(self) -> str:
        """Get async PostgreSQL connection string for asyncpg."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # =========================================================================
    # Kafka
    # =========================================================================

    kafka_bootstrap_servers: str = Field(
        default="localhost:9092",
        description="Kafka bootstrap servers (comma-separated)"
    )
    kafka_telemetry_topic: str = Field(
        default="raw-telemetry",
        description="Kafka topic for raw telemetry readings"
    )
    kafka_violation_topic: str = Field(
        default="violation-events",
        description="Kafka topic for detected violations"
    )
    kafka_consumer_group: str = Field(
        default="fleet-scoring",
        description="Kafka consumer group ID prefix"
    )
    kafka_dlq_suffix: str = Field(
        default=".dlq",
        description="Suffix appended to a topic name for its dead letter topic"
    )

    # =========================================================================
    # Scoring
    # =========================================================================

    score_window_days: int = Field(
        default=30,
        ge=1,
        description="Trailing window (days) of violations counted in a score"
    )
    score_baseline: int = Field(
        default=100,
        ge=0,
        le=100,
        description="Score of a driver with no violations in the window"
    )
    score_write_attempts: int = Field(
        default=5,
        ge=1,
        description="Recompute attempts when a versioned score write conflicts"
    )

    # =========================================================================
    # Reliability
    # =========================================================================

    persistence_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Upper bound for a single persistence call"
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        description="Handler attempts before a message is dead-lettered"
    )
    retry_backoff_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Linear backoff step between handler attempts"
    )
    dedupe_cache_size: int = Field(
        default=100_000,
        ge=0,
        description="Recently handled message keys remembered per consumer"
    )


@lru_cache()
def get_settings() -> Settings:
    """Settings are read once per process and shared."""
    return Settings()


# Module-level instance
settings = get_settings()
