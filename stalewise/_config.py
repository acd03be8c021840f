"""
Configuration — environment-driven settings.
"""

from __future__ import annotations

from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from stalewise._logging import configure_logging
from stalewise.cache._options import CacheOptions


class CacheSettings(BaseSettings):
    """
    Process-wide cache settings.

    Read from STALEWISE_* environment variables or a .env file.
    Durations accept seconds or ISO 8601 ("PT12H").
    """

    model_config = SettingsConfigDict(
        env_prefix="STALEWISE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = Field(default="sqlite+aiosqlite:///stalewise.db")
    database_echo: bool = Field(default=False)
    log_level: str = Field(default="info")
    log_json: bool = Field(default=False)

    default_soft_ttl: timedelta = Field(default=timedelta(hours=12))
    default_hard_ttl: timedelta = Field(default=timedelta(hours=12))
    default_negative_ttl: timedelta = Field(default=timedelta(seconds=10))
    default_allow_stale: bool = Field(default=False)

    def configure_logging(self) -> None:
        """Apply log_level / log_json to the process."""
        configure_logging(self.log_level, json=self.log_json)

    def default_options(self, topic: str, key: str) -> CacheOptions:
        """CacheOptions carrying the configured defaults."""
        return CacheOptions(
            topic=topic,
            key=key,
            soft_ttl=self.default_soft_ttl,
            hard_ttl=self.default_hard_ttl,
            negative_ttl=self.default_negative_ttl,
            allow_stale=self.default_allow_stale,
        )


__all__ = ("CacheSettings",)
