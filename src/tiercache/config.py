"""Configuration module using Pydantic Settings."""

import re
from functools import lru_cache
from urllib.parse import urlparse

from apscheduler.triggers.cron import CronTrigger
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from redis.connection import parse_url

REMOTE_SCHEMES = ("redis", "rediss", "unix")


def check_remote_url(url: str) -> str:
    """
    Validate a Redis connection URL the way the client will parse it.

    Raises:
        ValueError: If the scheme, port or query options are malformed
    """
    if urlparse(url).scheme not in REMOTE_SCHEMES:
        raise ValueError(
            f"remote_url must use one of {', '.join(REMOTE_SCHEMES)}: {url!r}"
        )
    try:
        parse_url(url)
    except ValueError as e:
        raise ValueError(f"Malformed remote_url {url!r}: {e}") from e
    return url


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Remote tier
    remote_enabled: bool = False
    remote_url: str = "redis://localhost:6379/0"
    remote_prefix: str = "tiercache:"  # Key prefix for namespacing
    remote_timeout_seconds: float = 5.0
    remote_max_attempts: int = 10

    # Cache
    default_ttl_seconds: int = 3600  # 1 hour

    # Sweeper
    sweeper_enabled: bool = True
    sweeper_schedule: str = "*/1 * * * *"  # every minute
    sweeper_timezone: str = "UTC"

    # Logging
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    @field_validator("default_ttl_seconds")
    @classmethod
    def _check_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("default_ttl_seconds must be greater than 0")
        return value

    @field_validator("remote_max_attempts")
    @classmethod
    def _check_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("remote_max_attempts must be at least 1")
        return value

    @field_validator("remote_url")
    @classmethod
    def _check_remote_url(cls, value: str) -> str:
        return check_remote_url(value)

    @field_validator("sweeper_schedule")
    @classmethod
    def _check_schedule(cls, value: str) -> str:
        CronTrigger.from_crontab(value)
        return value

    @field_validator("api_port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError("api_port must be between 1 and 65535")
        return value

    @property
    def active_remote_url(self) -> str | None:
        """Remote URL when the remote tier is enabled, else None."""
        return self.remote_url if self.remote_enabled else None

    @property
    def redacted_remote_url(self) -> str:
        """Remote URL with any password masked, for logging."""
        return re.sub(r":([^:@/]+)@", ":***@", self.remote_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
