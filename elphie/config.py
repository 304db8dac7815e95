"""Configuration management for the Elphie feed engine."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    # HTTP bridge (serves series state + SSE chart operations to the browser chart)
    http_host: str = Field(default="0.0.0.0", description="HTTP bridge host")
    http_port: int = Field(default=8030, description="HTTP bridge port")
    sse_ping_interval_sec: int = Field(
        default=10,
        description="SSE keepalive ping interval (seconds) for /events",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    debug: bool = Field(default=False)

    # Analytics feed
    feed_ws_url: str = Field(default="ws://localhost:8000/ws")
    default_ticker: str | None = Field(default=None)
    default_interval: str | None = Field(default=None)

    # Wire units.
    #
    # The analytics server sends prices and dark-pool dollar amounts in cents and
    # period starts in epoch milliseconds. The chart works in dollars and seconds.
    price_scale: float = Field(default=100.0, description="Wire price units per dollar")
    time_divisor_ms: int = Field(default=1000, description="Wire time units per chart time unit")

    # How a history snapshot resolves two points with the same periodStart.
    # "first" keeps the first occurrence in input order; "last" matches the
    # append path (last write wins).
    snapshot_duplicate_policy: Literal["first", "last"] = Field(default="first")

    # Reconnect policy (exponential backoff)
    reconnect_base_delay_sec: float = Field(default=1.0)
    reconnect_max_delay_sec: float = Field(default=30.0)
    # 0 = retry forever
    reconnect_max_attempts: int = Field(default=0)
    ws_heartbeat_sec: float = Field(default=20.0)

    # Initial visible range after a snapshot load
    initial_range_hours: float = Field(default=2.0)
    initial_range_max_bars: int = Field(default=120)
    initial_range_right_pad_sec: int = Field(default=300)

    def reconnect_delay(self, attempt: int) -> float:
        """Backoff delay (seconds) before reconnect attempt ``attempt`` (1-based)."""
        attempt = max(1, int(attempt))
        base = max(0.0, float(self.reconnect_base_delay_sec))
        return min(float(self.reconnect_max_delay_sec), base * (2.0 ** (attempt - 1)))


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get settings instance."""
    return settings
