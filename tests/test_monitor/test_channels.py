"""Tests for notification channels — HTTP mocking, error handling, session management."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from valwatch.core.config import DiscordConfig, TelegramConfig
from valwatch.monitor.channels import (
    DiscordChannel,
    TelegramChannel,
    discord_embed,
    mention_header,
)
from valwatch.monitor.exceptions import TransportError
from valwatch.monitor.types import AlertMessage, Severity

ADDR = "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"


# ── Helpers ─────────────────────────────────────────────────────


def _msg(**kw: object) -> AlertMessage:
    defaults: dict[str, object] = {
        "severity": Severity.INFO,
        "title": "New Validator",
        "body": "**5GrwvaEF...utQY** joined the active set",
        "fields": {"Era": "42"},
        "address": ADDR,
        "source_event_type": "JOINED",
        "timestamp": 1000.0,
    }
    defaults.update(kw)
    return AlertMessage(**defaults)  # type: ignore[arg-type]


def _tg_config(**kw: object) -> TelegramConfig:
    defaults: dict[str, object] = {
        "enabled": True,
        "bot_token": SecretStr("fake-token"),
        "chat_id": "12345",
    }
    defaults.update(kw)
    return TelegramConfig(**defaults)  # type: ignore[arg-type]


def _dc_config(**kw: object) -> DiscordConfig:
    defaults: dict[str, object] = {
        "enabled": True,
        "webhook_url": SecretStr("https://discord.com/api/webhooks/fake"),
    }
    defaults.update(kw)
    return DiscordConfig(**defaults)  # type: ignore[arg-type]


def _mock_response(status: int = 200, text: str = "ok") -> AsyncMock:
    resp = AsyncMock()
    resp.status = status
    resp.text = AsyncMock(return_value=text)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


def _session(status: int = 200, text: str = "ok") -> MagicMock:
    mock_session = MagicMock()
    mock_session.post = MagicMock(return_value=_mock_response(status, text))
    mock_session.closed = False
    return mock_session


def test_mention_header_shortens_address() -> None:
    assert mention_header(_msg()) == "Validator Alert for 5GrwvaEF...utQY:"


def test_discord_embed_document() -> None:
    embed = discord_embed(_msg(severity=Severity.CRITICAL, body=""))
    assert embed == {
        "title": "New Validator",
        "color": 0xE74C3C,
        "fields": [{"name": "Era", "value": "42", "inline": True}],
    }


# ── TelegramChannel ────────────────────────────────────────────


class TestTelegramChannel:
    async def test_send_success(self) -> None:
        ch = TelegramChannel(_tg_config())
        mock_session = _session(200)
        ch._session = mock_session

        await ch.send(_msg())
        mock_session.post.assert_called_once()
        call_args = mock_session.post.call_args
        assert call_args[0][0] == "https://api.telegram.org/botfake-token/sendMessage"
        payload = call_args[1]["json"]
        assert payload["chat_id"] == "12345"
        assert payload["parse_mode"] == "HTML"

    async def test_send_failure_status(self) -> None:
        ch = TelegramChannel(_tg_config())
        ch._session = _session(400, "bad request")

        with pytest.raises(TransportError) as exc_info:
            await ch.send(_msg())
        assert exc_info.value.status == 400
        assert exc_info.value.channel == "telegram"

    async def test_send_exception(self) -> None:
        ch = TelegramChannel(_tg_config())
        mock_session = MagicMock()
        mock_session.post = MagicMock(side_effect=ConnectionError("timeout"))
        mock_session.closed = False
        ch._session = mock_session

        with pytest.raises(TransportError):
            await ch.send(_msg())

    async def test_bold_markup_and_escaping(self) -> None:
        ch = TelegramChannel(_tg_config())
        mock_session = _session(200)
        ch._session = mock_session

        await ch.send(_msg(title="<script>x</script>", body="**a & b** left"))
        text = mock_session.post.call_args[1]["json"]["text"]
        assert "<script>" not in text
        assert "&lt;script&gt;" in text
        assert "<b>a &amp; b</b> left" in text

    async def test_severity_label_and_fields(self) -> None:
        ch = TelegramChannel(_tg_config())
        mock_session = _session(200)
        ch._session = mock_session

        await ch.send(_msg(severity=Severity.CRITICAL, fields={"Span Index": "3"}))
        text = mock_session.post.call_args[1]["json"]["text"]
        assert "[CRITICAL]" in text
        assert "<code>Span Index</code>: 3" in text

    async def test_send_mention(self) -> None:
        ch = TelegramChannel(_tg_config())
        mock_session = _session(200)
        ch._session = mock_session

        await ch.send_mention(_msg(), ["111", "222"])
        text = mock_session.post.call_args[1]["json"]["text"]
        assert text.startswith("Validator Alert for ")
        assert 'href="tg://user?id=111"' in text
        assert 'href="tg://user?id=222"' in text

    async def test_close_session(self) -> None:
        ch = TelegramChannel(_tg_config())
        mock_session = AsyncMock()
        mock_session.closed = False
        ch._session = mock_session

        await ch.close()
        mock_session.close.assert_awaited_once()

    async def test_close_when_no_session(self) -> None:
        ch = TelegramChannel(_tg_config())
        await ch.close()  # should not raise

    async def test_lazy_session_creation(self) -> None:
        ch = TelegramChannel(_tg_config())
        assert ch._session is None
        session = ch._get_session()
        assert session is not None
        await ch.close()


# ── DiscordChannel ──────────────────────────────────────────────


class TestDiscordChannel:
    async def test_send_success(self) -> None:
        ch = DiscordChannel(_dc_config())
        mock_session = _session(204)
        ch._session = mock_session

        await ch.send(_msg())
        call_args = mock_session.post.call_args
        assert call_args[0][0] == "https://discord.com/api/webhooks/fake"
        payload = call_args[1]["json"]
        assert payload["username"] == "Validator Watch"
        assert payload["allowed_mentions"] == {"parse": []}
        assert len(payload["embeds"]) == 1
        assert payload["embeds"][0]["title"] == "New Validator"

    async def test_send_200_also_success(self) -> None:
        ch = DiscordChannel(_dc_config())
        ch._session = _session(200)
        await ch.send(_msg())

    async def test_rate_limited(self) -> None:
        ch = DiscordChannel(_dc_config())
        ch._session = _session(429, "rate limited")

        with pytest.raises(TransportError) as exc_info:
            await ch.send(_msg())
        assert exc_info.value.status == 429

    async def test_send_exception(self) -> None:
        ch = DiscordChannel(_dc_config())
        mock_session = MagicMock()
        mock_session.post = MagicMock(side_effect=TimeoutError())
        mock_session.closed = False
        ch._session = mock_session

        with pytest.raises(TransportError):
            await ch.send(_msg())

    async def test_color_by_severity(self) -> None:
        ch = DiscordChannel(_dc_config())
        for severity, expected_color in [
            (Severity.INFO, 0x2ECC71),
            (Severity.WARNING, 0xF39C12),
            (Severity.CRITICAL, 0xE74C3C),
        ]:
            mock_session = _session(204)
            ch._session = mock_session

            await ch.send(_msg(severity=severity))
            payload = mock_session.post.call_args[1]["json"]
            assert payload["embeds"][0]["color"] == expected_color

    async def test_embed_fields_inline(self) -> None:
        ch = DiscordChannel(_dc_config())
        mock_session = _session(204)
        ch._session = mock_session

        await ch.send(_msg(fields={"Era": "42", "Performance": "5.00%"}))
        fields = mock_session.post.call_args[1]["json"]["embeds"][0]["fields"]
        assert fields == [
            {"name": "Era", "value": "42", "inline": True},
            {"name": "Performance", "value": "5.00%", "inline": True},
        ]

    async def test_no_body_no_description(self) -> None:
        ch = DiscordChannel(_dc_config())
        mock_session = _session(204)
        ch._session = mock_session

        await ch.send(_msg(body=""))
        payload = mock_session.post.call_args[1]["json"]
        assert "description" not in payload["embeds"][0]

    async def test_send_mention_pings_only_subscribers(self) -> None:
        ch = DiscordChannel(_dc_config(username="Watcher"))
        mock_session = _session(204)
        ch._session = mock_session

        await ch.send_mention(_msg(), ["111", "222"])
        payload = mock_session.post.call_args[1]["json"]
        assert payload["username"] == "Watcher"
        assert payload["content"].endswith("<@111> <@222>")
        assert payload["allowed_mentions"] == {"users": ["111", "222"]}

    async def test_close_session(self) -> None:
        ch = DiscordChannel(_dc_config())
        mock_session = AsyncMock()
        mock_session.closed = False
        ch._session = mock_session

        await ch.close()
        mock_session.close.assert_awaited_once()
