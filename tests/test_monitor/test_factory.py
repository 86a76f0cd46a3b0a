"""Tests for the notifier factory — wiring logic with various config combinations."""

from __future__ import annotations

from pydantic import SecretStr

from valwatch.core.config import AlertsConfig, DiscordConfig, TelegramConfig
from valwatch.monitor.channels import DiscordChannel, TelegramChannel
from valwatch.monitor.factory import create_notifier
from valwatch.monitor.notifier import Notifier
from valwatch.validators.subscriptions import SubscriptionStore

ADDR = "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"


# ── Helpers ─────────────────────────────────────────────────────


def _alerts(**kw: object) -> AlertsConfig:
    defaults: dict[str, object] = {}
    defaults.update(kw)
    return AlertsConfig(**defaults)  # type: ignore[arg-type]


def _telegram() -> TelegramConfig:
    return TelegramConfig(enabled=True, bot_token=SecretStr("tok"), chat_id="123")


def _discord() -> DiscordConfig:
    return DiscordConfig(enabled=True, webhook_url=SecretStr("https://discord.com/webhook"))


# ── Config Combinations ────────────────────────────────────────


class TestFactoryWiring:
    def test_no_channels_enabled(self) -> None:
        notifier = create_notifier(_alerts())
        assert isinstance(notifier, Notifier)
        assert notifier.channels == []

    def test_telegram_enabled(self) -> None:
        notifier = create_notifier(_alerts(telegram=_telegram()))
        assert len(notifier.channels) == 1
        assert isinstance(notifier.channels[0], TelegramChannel)

    def test_discord_enabled(self) -> None:
        notifier = create_notifier(_alerts(discord=_discord()))
        assert len(notifier.channels) == 1
        assert isinstance(notifier.channels[0], DiscordChannel)

    def test_both_channels_enabled(self) -> None:
        notifier = create_notifier(_alerts(telegram=_telegram(), discord=_discord()))
        types = {type(ch) for ch in notifier.channels}
        assert types == {TelegramChannel, DiscordChannel}

    def test_disabled_channels_not_added(self) -> None:
        config = _alerts(
            telegram=TelegramConfig(enabled=False),
            discord=DiscordConfig(enabled=False),
        )
        assert create_notifier(config).channels == []

    def test_subscriptions_passed_through(self) -> None:
        subs = SubscriptionStore()
        subs.follow(ADDR, "111")
        notifier = create_notifier(_alerts(), subscriptions=subs)
        assert notifier._subscriptions is subs
