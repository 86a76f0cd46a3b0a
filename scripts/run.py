#!/usr/bin/env python3
"""Main entrypoint — wires the chain client, monitor, notifier and commands.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Single monitoring cycle, then exit
    python scripts/run.py --once --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from valwatch.chain.client import SubstrateChainClient
from valwatch.chain.exceptions import ChainError
from valwatch.commands.discord_bot import DiscordCommandBot
from valwatch.commands.handler import CommandHandler
from valwatch.commands.server import start_command_server
from valwatch.core.config import load_settings
from valwatch.core.logging import setup_logging
from valwatch.monitor.factory import create_notifier
from valwatch.validators.detector import ChangeDetector
from valwatch.validators.registry import ValidatorRegistry
from valwatch.validators.subscriptions import SubscriptionStore

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start all components and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    logger.info(
        "watch_starting",
        ws_url=settings.chain.ws_url,
        poll_interval=settings.monitor.poll_interval_secs,
        cooldown_days=settings.monitor.cooldown_days,
        thresholds=settings.monitor.inactivity_thresholds,
    )

    # ── Chain client (startup failure is fatal) ──────────────────
    chain = SubstrateChainClient(settings.chain)
    try:
        await chain.connect()
    except ChainError:
        logger.exception("chain_connect_failed")
        return 1

    # ── State ────────────────────────────────────────────────────
    registry = ValidatorRegistry(settings.storage.validators_path)
    registry.restore()
    subscriptions = SubscriptionStore(settings.storage.followers_path)
    subscriptions.restore()

    # ── Notifier + detector ──────────────────────────────────────
    notifier = create_notifier(settings.alerts, subscriptions=subscriptions)
    detector = ChangeDetector(chain, registry, config=settings.monitor)
    detector.on_alert(notifier.on_validator_alert)

    if args.once:
        alerts = await detector.cycle()
        logger.info("single_cycle_done", alerts=len(alerts))
        await notifier.close()
        await chain.close()
        return 0

    # ── Command intake ───────────────────────────────────────────
    commands = None
    if settings.commands.any_enabled:
        commands = CommandHandler(
            chain,
            subscriptions,
            ss58_format=settings.chain.ss58_format,
            prefix=settings.commands.prefix,
        )

    runner = None
    if commands is not None and settings.commands.enabled:
        runner = await start_command_server(
            commands,
            registry,
            detector,
            host=settings.commands.host,
            port=settings.commands.port,
            username=settings.commands.username or None,
            password=settings.commands.password.get_secret_value() or None,
        )
        logger.info(
            "command_server_started",
            host=settings.commands.host,
            port=settings.commands.port,
        )

    bot = None
    if commands is not None and settings.commands.discord_bot_enabled:
        bot = DiscordCommandBot(
            commands, settings.commands.discord_bot_token.get_secret_value(),
        )
        await bot.start()

    # The loop runs its first cycle immediately.
    await detector.start()

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("watch_shutting_down")

    # Flushes any unsaved registry changes.
    await detector.stop()
    if runner is not None:
        await runner.cleanup()
    if bot is not None:
        await bot.close()
    await notifier.close()
    await chain.close()

    logger.info(
        "watch_stopped",
        cycles=detector.cycle_count,
        tracked=len(registry),
        delivered=notifier.delivered,
        failed=notifier.failed,
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Watch Substrate validators and alert their followers.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single monitoring cycle and exit",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
