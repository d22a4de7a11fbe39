from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CACHESYNC_", env_file=".env", extra="ignore")

    app_name: str = "cachesync"
    env: str = Field(default="dev", validation_alias="ENV")

    # Redis connection
    redis_host: str = Field(default="localhost", validation_alias="REDIS_HOST")
    redis_port: int = Field(default=6379, validation_alias="REDIS_PORT")
    redis_password: str | None = Field(default=None, validation_alias="REDIS_PASSWORD")
    redis_db: int = Field(default=0, validation_alias="REDIS_DB")
    redis_tls: bool = Field(default=False, validation_alias="REDIS_TLS")
    redis_disabled: bool = Field(default=False, validation_alias="REDIS_DISABLED")
    redis_socket_timeout: float = Field(default=5.0, validation_alias="REDIS_SOCKET_TIMEOUT")

    # Cache TTLs (seconds)
    ttl_default: int = Field(default=60 * 60 * 24, validation_alias="REDIS_TTL_DEFAULT")
    ttl_short: int = Field(default=60 * 60, validation_alias="REDIS_TTL_SHORT")
    ttl_long: int = Field(default=60 * 60 * 24 * 7, validation_alias="REDIS_TTL_LONG")

    # Consistency monitoring
    consistency_check_interval: float = Field(
        default=60 * 60 * 24, validation_alias="CONSISTENCY_CHECK_INTERVAL"
    )
    consistency_sample_size: int = Field(default=10, validation_alias="CONSISTENCY_SAMPLE_SIZE")
    # Milliseconds; compared against TTL seconds after conversion
    consistency_stale_threshold: int = Field(
        default=60 * 60 * 24, validation_alias="CONSISTENCY_STALE_THRESHOLD"
    )

    # Event handling
    event_channel_prefix: str = Field(
        default="cachesync:events:", validation_alias="EVENT_CHANNEL_PREFIX"
    )
    event_max_retries: int = Field(default=3, validation_alias="EVENT_MAX_RETRIES")
    event_retry_delay: float = Field(default=1.0, validation_alias="EVENT_RETRY_DELAY")

    # Subscriber reconnection
    subscriber_max_reconnect_attempts: int = Field(
        default=5, validation_alias="SUBSCRIBER_MAX_RECONNECT_ATTEMPTS"
    )
    subscriber_reconnect_delay_initial: float = Field(
        default=1.0, validation_alias="SUBSCRIBER_RECONNECT_DELAY_INITIAL"
    )
    subscriber_reconnect_delay_max: float = Field(
        default=30.0, validation_alias="SUBSCRIBER_RECONNECT_DELAY_MAX"
    )

    # Observability
    enable_metrics: bool = Field(default=True, validation_alias="ENABLE_METRICS")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(default=True, validation_alias="LOG_JSON")

    @property
    def redis_url(self) -> str:
        """Connection URL assembled from the individual Redis settings."""
        scheme = "rediss" if self.redis_tls else "redis"
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"{scheme}://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"


settings = Settings()
