"""Command surface — chat commands, the HTTP server and the Discord bot that feed them."""

from valwatch.commands.discord_bot import DiscordCommandBot
from valwatch.commands.handler import CommandHandler
from valwatch.commands.server import create_command_app, start_command_server

__all__ = [
    "CommandHandler",
    "DiscordCommandBot",
    "create_command_app",
    "start_command_server",
]
