"""Exception hierarchy for the chain-data source."""

from __future__ import annotations


class ChainError(Exception):
    """Base exception for all chain-data errors."""


class TransientFetchError(ChainError):
    """Fetching one validator's snapshot failed; retried next cycle."""

    def __init__(self, address: str, reason: str = "") -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"snapshot fetch failed for {address}: {reason}")


class EraUnavailableError(ChainError):
    """The chain did not report a current era."""


class InvalidAddressError(ChainError):
    """Address is not a valid SS58 address for the configured network."""
