"""Convenience factory for wiring the notification stack."""

from __future__ import annotations

import structlog

from valwatch.core.config import AlertsConfig
from valwatch.monitor.channels import (
    DiscordChannel,
    NotificationChannel,
    TelegramChannel,
)
from valwatch.monitor.notifier import Notifier
from valwatch.validators.subscriptions import SubscriptionStore

logger = structlog.get_logger(__name__)


def create_notifier(
    config: AlertsConfig,
    subscriptions: SubscriptionStore | None = None,
) -> Notifier:
    """Build a notifier with every channel enabled in *config*."""
    channels: list[NotificationChannel] = []

    if config.telegram.enabled:
        channels.append(TelegramChannel(config.telegram))

    if config.discord.enabled:
        channels.append(DiscordChannel(config.discord))

    if not channels:
        logger.warning("no_notification_channels", reason="alerts are only logged")

    return Notifier(channels=channels, subscriptions=subscriptions)
