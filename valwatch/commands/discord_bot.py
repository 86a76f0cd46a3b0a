"""Discord gateway intake — feeds channel messages to the command handler.

Any message starting with the command prefix is run through
``CommandHandler.handle`` with the author's Discord id as subscriber id, and
the result is posted back as a reply: plain text as-is, rendered messages
(status, help) as an embed.
"""

from __future__ import annotations

import asyncio

import discord
import structlog

from valwatch.commands.handler import CommandHandler, Reply
from valwatch.monitor.channels import discord_embed
from valwatch.monitor.types import AlertMessage

logger = structlog.get_logger(__name__)


def _default_client() -> discord.Client:
    intents = discord.Intents.default()
    # Reading command text needs the privileged message-content intent.
    intents.message_content = True
    intents.presences = False
    intents.members = False
    return discord.Client(intents=intents)


class DiscordCommandBot:
    """Runs a ``discord.Client`` whose messages are answered by *commands*.

    Usage::

        bot = DiscordCommandBot(commands, token)
        await bot.start()
        ...
        await bot.close()
    """

    def __init__(
        self,
        commands: CommandHandler,
        token: str,
        client: discord.Client | None = None,
    ) -> None:
        self._commands = commands
        self._token = token
        self._client = client or _default_client()
        self._task: asyncio.Task[None] | None = None

        self._client.event(self.on_ready)
        self._client.event(self.on_message)

    @property
    def client(self) -> discord.Client:
        return self._client

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Events ──────────────────────────────────────────────────

    async def on_ready(self) -> None:
        logger.info("discord_bot_ready", user=str(self._client.user))

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return
        reply = await self._commands.handle(message.content, str(message.author.id))
        if reply is None:
            return
        try:
            await self._reply(message, reply)
        except discord.HTTPException as exc:
            logger.warning(
                "command_reply_failed",
                channel_id=getattr(message.channel, "id", None),
                status=exc.status,
                error=str(exc),
            )

    async def _reply(self, message: discord.Message, reply: Reply) -> None:
        if isinstance(reply, AlertMessage):
            await message.reply(embed=discord.Embed.from_dict(discord_embed(reply)))
        else:
            await message.reply(reply)

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> None:
        """Log in and run the gateway connection in the background."""
        if self.running:
            return
        self._task = asyncio.create_task(self._client.start(self._token))
        self._task.add_done_callback(self._on_stopped)
        logger.info("discord_bot_starting", prefix=self._commands.prefix)

    async def close(self) -> None:
        if not self._client.is_closed():
            await self._client.close()
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    @staticmethod
    def _on_stopped(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "discord_bot_stopped",
                error=str(exc),
                error_type=type(exc).__name__,
            )
