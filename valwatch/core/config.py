"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, SecretStr, field_validator

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class ChainConfig(BaseModel):
    """Substrate node connection configuration."""

    ws_url: str = "ws://localhost:9944"
    ss58_format: int = 87


class MonitorConfig(BaseModel):
    """Validator monitoring cycle and alert policy configuration."""

    poll_interval_secs: float = 300.0
    cooldown_days: float = 14.0
    inactivity_thresholds: list[int] = [10, 25, 50]
    rearm_on_recovery: bool = False
    alert_on_rejoin: bool = False

    @field_validator("inactivity_thresholds")
    @classmethod
    def _ascending_unique(cls, v: list[int]) -> list[int]:
        if any(t <= 0 or t > 100 for t in v):
            raise ValueError("inactivity thresholds must be within (0, 100]")
        return sorted(set(v))

    @property
    def cooldown(self) -> timedelta:
        return timedelta(days=self.cooldown_days)


class StorageConfig(BaseModel):
    """Locations of the JSON state files."""

    validators_path: Path = Path("data/validators.json")
    followers_path: Path = Path("data/followers.json")


class TelegramConfig(BaseModel):
    """Telegram Bot API channel."""

    enabled: bool = False
    bot_token: SecretStr = SecretStr("")
    chat_id: str = ""


class DiscordConfig(BaseModel):
    """Discord webhook channel."""

    enabled: bool = False
    webhook_url: SecretStr = SecretStr("")
    username: str = "Validator Watch"


class AlertsConfig(BaseModel):
    """Alert delivery configuration."""

    telegram: TelegramConfig = TelegramConfig()
    discord: DiscordConfig = DiscordConfig()


class CommandsConfig(BaseModel):
    """Chat command intake: the HTTP surface and the Discord bot."""

    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8080
    prefix: str = "!"
    username: str = ""
    password: SecretStr = SecretStr("")
    discord_bot_enabled: bool = False
    discord_bot_token: SecretStr = SecretStr("")

    @property
    def any_enabled(self) -> bool:
        return self.enabled or self.discord_bot_enabled


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["json", "console"] = "json"
    # JSON-lines audit file for the decision_log logger; disabled when unset.
    decision_log_path: Path | None = None

    @field_validator("level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v!r}")
        return level


class Settings(BaseModel):
    """Root settings container."""

    chain: ChainConfig = ChainConfig()
    monitor: MonitorConfig = MonitorConfig()
    storage: StorageConfig = StorageConfig()
    alerts: AlertsConfig = AlertsConfig()
    commands: CommandsConfig = CommandsConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
