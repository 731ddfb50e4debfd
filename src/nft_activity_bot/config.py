"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the NFT
Activity Bot, loading and validating environment variables at startup.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nft_activity_bot.alerter.routing import parse_channel_events, parse_event_kinds


class DiscordSettings(BaseSettings):
    """Discord notification settings."""

    model_config = SettingsConfigDict(env_prefix="DISCORD_")

    token: SecretStr | None = Field(
        default=None,
        alias="DISCORD_TOKEN",
        description="Discord bot token",
    )
    events: str = Field(
        default="",
        alias="DISCORD_EVENTS",
        description="Channel routing, e.g. 123=sale,offer&456=listing",
    )

    @field_validator("events")
    @classmethod
    def validate_events(cls, v: str) -> str:
        """Validate the channel routing string."""
        parse_channel_events(v)
        return v

    @property
    def enabled(self) -> bool:
        """Check if Discord notifications are enabled."""
        return self.token is not None and bool(self.events.strip())


class TwitterSettings(BaseSettings):
    """Twitter notification settings."""

    model_config = SettingsConfigDict(env_prefix="TWITTER_")

    consumer_key: SecretStr | None = Field(default=None, alias="TWITTER_CONSUMER_KEY")
    consumer_secret: SecretStr | None = Field(default=None, alias="TWITTER_CONSUMER_SECRET")
    access_token: SecretStr | None = Field(default=None, alias="TWITTER_ACCESS_TOKEN")
    access_token_secret: SecretStr | None = Field(default=None, alias="TWITTER_ACCESS_TOKEN_SECRET")
    events: str = Field(
        default="",
        alias="TWITTER_EVENTS",
        description="Comma separated event kinds to tweet",
    )
    prepend: str = Field(
        default="",
        alias="TWITTER_PREPEND_TWEET",
        description="Text placed before every tweet",
    )
    append: str = Field(
        default="",
        alias="TWITTER_APPEND_TWEET",
        description="Text placed after every tweet",
    )

    @field_validator("events")
    @classmethod
    def validate_events(cls, v: str) -> str:
        """Validate the event kind list."""
        parse_event_kinds(v)
        return v

    @property
    def has_credentials(self) -> bool:
        return all(
            (self.consumer_key, self.consumer_secret, self.access_token, self.access_token_secret)
        )

    @property
    def enabled(self) -> bool:
        """Check if Twitter notifications are enabled."""
        return self.has_credentials and bool(self.events.strip())


class OpenSeaSettings(BaseSettings):
    """OpenSea API settings."""

    model_config = SettingsConfigDict(env_prefix="OPENSEA_")

    api_token: SecretStr | None = Field(
        default=None,
        alias="OPENSEA_API_TOKEN",
        description="OpenSea API key for account lookups",
    )
    api_url: str = Field(
        default="https://api.opensea.io",
        alias="OPENSEA_API_URL",
        description="OpenSea API base URL",
    )
    collection_url: str | None = Field(
        default=None,
        alias="OPENSEA_COLLECTION_URL",
        description="Collection page linked from sweep messages",
    )

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Validate API URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("OPENSEA_API_URL must be an HTTP(S) endpoint")
        return v


class DispatchSettings(BaseSettings):
    """Grouping, pacing and deduplication settings."""

    model_config = SettingsConfigDict(env_prefix="")

    min_group_size: int = Field(
        default=2,
        alias="SWEEP_MIN_GROUP_SIZE",
        description="Minimum same-transaction events collapsed into one sweep",
        ge=2,
    )
    delay_ms: int = Field(
        default=3000,
        alias="INTER_MESSAGE_DELAY_MS",
        description="Pause between sends on one destination queue",
        ge=0,
    )
    retention_seconds: int = Field(
        default=0,
        alias="DEDUP_RETENTION_SECONDS",
        description="How long dispatched keys are remembered (0 = forever)",
        ge=0,
    )

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000

    @property
    def retention(self) -> timedelta | None:
        """Dedup retention window, or None to keep keys forever."""
        return timedelta(seconds=self.retention_seconds) if self.retention_seconds else None


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from nft_activity_bot.config import get_settings

        settings = get_settings()
        print(settings.discord.events)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Nested configuration groups
    discord: DiscordSettings = Field(default_factory=DiscordSettings)
    twitter: TwitterSettings = Field(default_factory=TwitterSettings)
    opensea: OpenSeaSettings = Field(default_factory=OpenSeaSettings)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        alias="DEBUG",
        description="Force DEBUG logging",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Log messages instead of sending them",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        if self.debug:
            return logging.DEBUG
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "discord": {
                "token": "(set)" if self.discord.token else "(not set)",
                "events": self.discord.events or "(not set)",
            },
            "twitter": {
                "credentials": "(set)" if self.twitter.has_credentials else "(not set)",
                "events": self.twitter.events or "(not set)",
            },
            "opensea": {
                "api_url": self.opensea.api_url,
                "api_token": "(set)" if self.opensea.api_token else "(not set)",
            },
            "sweep_min_group_size": str(self.dispatch.min_group_size),
            "inter_message_delay_ms": str(self.dispatch.delay_ms),
            "dedup_retention_seconds": str(self.dispatch.retention_seconds or "forever"),
            "log_level": "DEBUG" if self.debug else self.log_level,
            "dry_run": str(self.dry_run),
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
