"""Notifier — renders validator alerts and delivers them to channels.

Delivery is best effort: every failure is logged and the message dropped,
never retried and never propagated to the monitoring cycle, whose state is
already committed by the time an alert reaches this module.
"""

from __future__ import annotations

import structlog

from valwatch.core.logging import DECISION_LOGGER
from valwatch.core.types import ValidatorAlert
from valwatch.monitor.channels import NotificationChannel
from valwatch.monitor.formatters import format_validator_alert
from valwatch.monitor.types import AlertMessage, Severity
from valwatch.validators.subscriptions import SubscriptionStore

# Dedicated structured logger for decision records.
decision_logger = structlog.get_logger(DECISION_LOGGER)

logger = structlog.get_logger(__name__)


class Notifier:
    """Routes alerts to notification channels, mentioning subscribers first.

    - Every message is logged via *decision_logger*.
    - DEBUG messages are log-only — never sent to channels.
    - For each channel, subscribers of the validator are mentioned in a
      separate message before the alert itself; a failed mention does not
      stop the alert.
    """

    def __init__(
        self,
        channels: list[NotificationChannel] | None = None,
        subscriptions: SubscriptionStore | None = None,
    ) -> None:
        self._channels: list[NotificationChannel] = channels or []
        self._subscriptions = subscriptions
        self._delivered = 0
        self._failed = 0

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    @property
    def delivered(self) -> int:
        """Alert messages delivered, counted per channel."""
        return self._delivered

    @property
    def failed(self) -> int:
        """Alert messages dropped after a transport failure, per channel."""
        return self._failed

    # ── Callback entry point ────────────────────────────────────

    async def on_validator_alert(self, alert: ValidatorAlert) -> None:
        await self.notify(format_validator_alert(alert))

    # ── Dispatch ────────────────────────────────────────────────

    async def notify(self, msg: AlertMessage) -> None:
        """Deliver *msg* to every channel. Never raises."""
        self._log_decision(msg)
        if msg.severity == Severity.DEBUG:
            return

        subscribers: list[str] = []
        if msg.address and self._subscriptions is not None:
            subscribers = sorted(self._subscriptions.followers(msg.address))

        for ch in self._channels:
            channel = type(ch).__name__
            if subscribers:
                try:
                    await ch.send_mention(msg, subscribers)
                except Exception:
                    logger.exception(
                        "mention_dispatch_error",
                        channel=channel,
                        address=msg.address,
                        subscribers=len(subscribers),
                    )
            try:
                await ch.send(msg)
            except Exception:
                self._failed += 1
                logger.exception(
                    "channel_dispatch_error",
                    channel=channel,
                    title=msg.title,
                    address=msg.address,
                )
            else:
                self._delivered += 1

    def _log_decision(self, msg: AlertMessage) -> None:
        decision_logger.info(
            "decision",
            severity=msg.severity.name,
            title=msg.title,
            body=msg.body,
            address=msg.address,
            source_event_type=msg.source_event_type,
            fields=msg.fields,
        )

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        for ch in self._channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=type(ch).__name__)
