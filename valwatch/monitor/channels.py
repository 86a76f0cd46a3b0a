"""Notification channels — Telegram and Discord delivery."""

from __future__ import annotations

import abc
import re
from collections.abc import Sequence
from html import escape as html_escape
from typing import Any

import aiohttp
import structlog

from valwatch.core.config import DiscordConfig, TelegramConfig
from valwatch.monitor.exceptions import TransportError
from valwatch.monitor.formatters import format_address
from valwatch.monitor.types import AlertMessage, Severity

logger = structlog.get_logger(__name__)

# Discord embed colours keyed by severity.
_DISCORD_COLORS: dict[Severity, int] = {
    Severity.DEBUG: 0x95A5A6,    # grey
    Severity.INFO: 0x2ECC71,     # green
    Severity.WARNING: 0xF39C12,  # orange
    Severity.CRITICAL: 0xE74C3C, # red
}

_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")


def mention_header(msg: AlertMessage) -> str:
    return f"Validator Alert for {format_address(msg.address)}:"


def discord_embed(msg: AlertMessage) -> dict[str, Any]:
    """Colour-coded Discord embed document for *msg*."""
    embed: dict[str, Any] = {
        "title": msg.title,
        "color": _DISCORD_COLORS.get(msg.severity, _DISCORD_COLORS[Severity.DEBUG]),
    }
    if msg.body:
        embed["description"] = msg.body
    if msg.fields:
        embed["fields"] = [
            {"name": k, "value": v, "inline": True}
            for k, v in msg.fields.items()
        ]
    return embed


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels.

    ``send`` and ``send_mention`` raise ``TransportError`` when delivery
    fails; callers decide whether to log or propagate.
    """

    @abc.abstractmethod
    async def send(self, msg: AlertMessage) -> None:
        """Send an alert message."""

    @abc.abstractmethod
    async def send_mention(self, msg: AlertMessage, subscriber_ids: Sequence[str]) -> None:
        """Send a short message mentioning the subscribers of ``msg.address``."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class _HttpChannel(NotificationChannel):
    """Shared aiohttp session handling."""

    name = "http"
    ok_statuses: tuple[int, ...] = (200,)

    def __init__(self) -> None:
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=15),
            )
        return self._session

    async def _post(self, url: str, payload: dict[str, Any]) -> None:
        try:
            session = self._get_session()
            async with session.post(url, json=payload) as resp:
                if resp.status in self.ok_statuses:
                    return
                body = await resp.text()
        except (aiohttp.ClientError, TimeoutError, OSError) as exc:
            raise TransportError(self.name, str(exc) or type(exc).__name__) from exc
        logger.warning(f"{self.name}_send_failed", status=resp.status, body=body[:200])
        raise TransportError(self.name, body[:200], status=resp.status)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class TelegramChannel(_HttpChannel):
    """Delivers alerts via the Telegram Bot API (HTML parse mode)."""

    name = "telegram"

    def __init__(self, config: TelegramConfig) -> None:
        super().__init__()
        self._token = config.bot_token.get_secret_value()
        self._chat_id = config.chat_id

    @property
    def _url(self) -> str:
        return f"https://api.telegram.org/bot{self._token}/sendMessage"

    async def send(self, msg: AlertMessage) -> None:
        severity_label = msg.severity.name
        text_parts = [f"<b>[{severity_label}] {html_escape(msg.title)}</b>"]
        if msg.body:
            text_parts.append(_BOLD_RE.sub(r"<b>\1</b>", html_escape(msg.body)))
        if msg.fields:
            lines = [
                f"  <code>{html_escape(k)}</code>: {html_escape(v)}"
                for k, v in msg.fields.items()
            ]
            text_parts.append("\n".join(lines))

        await self._post(self._url, {
            "chat_id": self._chat_id,
            "text": "\n".join(text_parts),
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        })

    async def send_mention(self, msg: AlertMessage, subscriber_ids: Sequence[str]) -> None:
        mentions = " ".join(
            f'<a href="tg://user?id={html_escape(sid)}">{html_escape(sid)}</a>'
            for sid in subscriber_ids
        )
        await self._post(self._url, {
            "chat_id": self._chat_id,
            "text": f"{html_escape(mention_header(msg))}\n{mentions}",
            "parse_mode": "HTML",
        })


class DiscordChannel(_HttpChannel):
    """Delivers alerts via a Discord webhook with colour-coded embeds."""

    name = "discord"
    ok_statuses = (200, 204)

    def __init__(self, config: DiscordConfig) -> None:
        super().__init__()
        self._webhook_url = config.webhook_url.get_secret_value()
        self._username = config.username

    async def send(self, msg: AlertMessage) -> None:
        await self._post(self._webhook_url, {
            "username": self._username,
            "embeds": [discord_embed(msg)],
            "allowed_mentions": {"parse": []},
        })

    async def send_mention(self, msg: AlertMessage, subscriber_ids: Sequence[str]) -> None:
        mentions = " ".join(f"<@{sid}>" for sid in subscriber_ids)
        await self._post(self._webhook_url, {
            "username": self._username,
            "content": f"{mention_header(msg)}\n{mentions}",
            "allowed_mentions": {"users": list(subscriber_ids)},
        })
