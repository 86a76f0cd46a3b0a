"""Notification transport exceptions."""

from __future__ import annotations


class TransportError(Exception):
    """A channel failed to deliver a message."""

    def __init__(self, channel: str, reason: str, status: int | None = None) -> None:
        self.channel = channel
        self.reason = reason
        self.status = status
        super().__init__(f"{channel} delivery failed: {reason}")
