"""Core module — config, types, logging."""

from valwatch.core.config import Settings, get_settings, load_settings, reset_settings
from valwatch.core.logging import setup_logging
from valwatch.core.types import (
    AlertKind,
    EraPoints,
    SlashingInfo,
    ValidatorAlert,
    ValidatorRecord,
    ValidatorSnapshot,
)

__all__ = [
    "AlertKind",
    "EraPoints",
    "Settings",
    "SlashingInfo",
    "ValidatorAlert",
    "ValidatorRecord",
    "ValidatorSnapshot",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
