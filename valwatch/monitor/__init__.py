"""Alert rendering and delivery subsystem."""

from valwatch.monitor.channels import DiscordChannel, NotificationChannel, TelegramChannel
from valwatch.monitor.exceptions import TransportError
from valwatch.monitor.factory import create_notifier
from valwatch.monitor.formatters import (
    format_address,
    format_help,
    format_status,
    format_validator_alert,
)
from valwatch.monitor.notifier import Notifier
from valwatch.monitor.types import AlertMessage, Severity

__all__ = [
    "AlertMessage",
    "DiscordChannel",
    "NotificationChannel",
    "Notifier",
    "Severity",
    "TelegramChannel",
    "TransportError",
    "create_notifier",
    "format_address",
    "format_help",
    "format_status",
    "format_validator_alert",
]
