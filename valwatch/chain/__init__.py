"""Chain-data source — Substrate queries for validator status."""

from valwatch.chain.client import (
    ChainDataSource,
    SubstrateChainClient,
    is_valid_address,
)
from valwatch.chain.exceptions import (
    ChainError,
    EraUnavailableError,
    InvalidAddressError,
    TransientFetchError,
)

__all__ = [
    "ChainDataSource",
    "ChainError",
    "EraUnavailableError",
    "InvalidAddressError",
    "SubstrateChainClient",
    "TransientFetchError",
    "is_valid_address",
]
