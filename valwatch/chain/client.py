"""Chain-data source — active set, current era and per-validator snapshots.

``ChainDataSource`` is the boundary the monitoring cycle talks to;
``SubstrateChainClient`` implements it over ``async-substrate-interface``
against a Substrate node exposing the Session, Staking and Identity pallets.
"""

from __future__ import annotations

import abc
import asyncio
from decimal import Decimal
from types import TracebackType
from typing import Any

import structlog
from async_substrate_interface import AsyncSubstrateInterface
from scalecodec.utils.ss58 import is_valid_ss58_address, ss58_encode

from valwatch.chain.exceptions import ChainError, EraUnavailableError, TransientFetchError
from valwatch.core.config import ChainConfig
from valwatch.core.types import EraPoints, SlashingInfo, ValidatorSnapshot

logger = structlog.stdlib.get_logger()

# Commission is stored on chain as Perbill.
_PERBILL_PER_PERCENT = Decimal(10_000_000)


def is_valid_address(address: str, ss58_format: int) -> bool:
    """Whether *address* is a well-formed SS58 address for the network."""
    try:
        return bool(is_valid_ss58_address(address, valid_ss58_format=ss58_format))
    except (ValueError, TypeError):
        return False


class ChainDataSource(abc.ABC):
    """Read-only view of validator state on chain."""

    @abc.abstractmethod
    async def current_era(self) -> int | None:
        """Current era index, or None if the chain does not report one."""

    @abc.abstractmethod
    async def active_validators(self) -> list[str]:
        """Addresses in the current session's active set."""

    @abc.abstractmethod
    async def fetch_snapshot(self, address: str, era: int) -> ValidatorSnapshot:
        """Status of *address*, with reward points of the era before *era*.

        Raises:
            TransientFetchError: the snapshot could not be retrieved.
        """

    async def connect(self) -> None:
        """Open the connection, if the source needs one."""

    async def close(self) -> None:
        """Release the connection."""

    async def __aenter__(self) -> ChainDataSource:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


class SubstrateChainClient(ChainDataSource):
    """``ChainDataSource`` backed by a Substrate websocket endpoint.

    Usage::

        async with SubstrateChainClient(settings.chain) as chain:
            era = await chain.current_era()
            snapshot = await chain.fetch_snapshot(address, era)
    """

    def __init__(
        self,
        config: ChainConfig | None = None,
        substrate: AsyncSubstrateInterface | None = None,
    ) -> None:
        self._config = config or ChainConfig()
        self._substrate = substrate
        # Reward points of one era are shared by every snapshot of a cycle.
        self._points_era: int | None = None
        self._points_task: asyncio.Task[tuple[int, dict[str, int]]] | None = None

    @property
    def ss58_format(self) -> int:
        return self._config.ss58_format

    async def connect(self) -> None:
        if self._substrate is not None:
            return
        substrate = AsyncSubstrateInterface(
            self._config.ws_url,
            ss58_format=self._config.ss58_format,
        )
        try:
            await substrate.initialize()
        except Exception as exc:
            raise ChainError(f"cannot connect to {self._config.ws_url}: {exc}") from exc
        self._substrate = substrate
        logger.info("chain_connected", ws_url=self._config.ws_url)

    async def close(self) -> None:
        if self._substrate is not None:
            await self._substrate.close()
            self._substrate = None
            logger.info("chain_closed")

    async def _query(self, module: str, storage: str, params: list[Any] | None = None) -> Any:
        if self._substrate is None:
            raise ChainError("chain client is not connected")
        result = await self._substrate.query(module, storage, params or [])
        return getattr(result, "value", result)

    # ── ChainDataSource ──────────────────────────────────────────

    async def current_era(self) -> int | None:
        try:
            value = await self._query("Staking", "CurrentEra")
        except ChainError:
            raise
        except Exception as exc:
            raise EraUnavailableError(f"current era query failed: {exc}") from exc
        return int(value) if value is not None else None

    async def active_validators(self) -> list[str]:
        value = await self._query("Session", "Validators")
        return [self._to_ss58(v) for v in value or []]

    async def fetch_snapshot(self, address: str, era: int) -> ValidatorSnapshot:
        try:
            identity, spans, prefs, points = await asyncio.gather(
                self._query("Identity", "IdentityOf", [address]),
                self._query("Staking", "SlashingSpans", [address]),
                self._query("Staking", "Validators", [address]),
                self._era_reward_points(era - 1),
            )
        except Exception as exc:
            raise TransientFetchError(address, str(exc)) from exc

        total, individual = points
        slashing = _parse_slashing_spans(spans)
        perbill = int((prefs or {}).get("commission", 0))
        return ValidatorSnapshot(
            address=address,
            era=era,
            identity=_identity_display(identity),
            slashed=slashing is not None,
            slashing=slashing,
            commission=Decimal(perbill) / _PERBILL_PER_PERCENT,
            era_points=EraPoints.from_points(individual.get(address, 0), total),
        )

    # ── Internal ─────────────────────────────────────────────────

    async def _era_reward_points(self, era: int) -> tuple[int, dict[str, int]]:
        if era < 0:
            return 0, {}
        if self._points_era != era or self._points_task is None:
            self._points_era = era
            self._points_task = asyncio.create_task(self._load_reward_points(era))
        try:
            return await asyncio.shield(self._points_task)
        except Exception:
            # Do not cache a failed lookup.
            self._points_task = None
            raise

    async def _load_reward_points(self, era: int) -> tuple[int, dict[str, int]]:
        value = await self._query("Staking", "ErasRewardPoints", [era]) or {}
        raw = value.get("individual") or {}
        pairs = raw.items() if isinstance(raw, dict) else raw
        individual = {self._to_ss58(addr): int(pts) for addr, pts in pairs}
        return int(value.get("total", 0)), individual

    def _to_ss58(self, account: Any) -> str:
        if isinstance(account, str):
            return account
        if isinstance(account, list | tuple) and len(account) == 1:
            account = account[0]
        return ss58_encode(bytes(account), ss58_format=self._config.ss58_format)


def _parse_slashing_spans(value: Any) -> SlashingInfo | None:
    if not value:
        return None
    return SlashingInfo(
        span_index=int(value.get("span_index", 0)),
        last_start=int(value.get("last_start", 0)),
        last_nonzero_slash=int(value.get("last_nonzero_slash", 0)),
        prior=[int(p) for p in value.get("prior", [])],
    )


def _identity_display(value: Any) -> str | None:
    """Extract the display name from an ``Identity.IdentityOf`` entry."""
    if not value:
        return None
    # Newer runtimes store (Registration, Option<Username>).
    if isinstance(value, list | tuple):
        value = value[0]
    if not isinstance(value, dict):
        return None
    info = value.get("info", value)
    display = info.get("display") if isinstance(info, dict) else None
    if isinstance(display, dict):
        display = next(iter(display.values()), None)
    if isinstance(display, list | tuple):
        display = bytes(display).decode("utf-8", errors="replace")
    if isinstance(display, str) and display.startswith("0x"):
        try:
            display = bytes.fromhex(display[2:]).decode("utf-8", errors="replace")
        except ValueError:
            pass
    return display or None
