"""ChangeDetector — turns periodic chain snapshots into validator alerts.

Each cycle classifies every address as newly-joined, still-active or
newly-removed against the registry, runs the alert policy on still-active
validators, persists the registry if anything changed and hands fired
alerts to the registered callbacks.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable, Iterator
from datetime import datetime

import structlog

from valwatch.chain.client import ChainDataSource
from valwatch.chain.exceptions import ChainError
from valwatch.core.config import MonitorConfig
from valwatch.core.types import (
    AlertKind,
    ValidatorAlert,
    ValidatorRecord,
    ValidatorSnapshot,
    to_millis_precision,
    utcnow,
)
from valwatch.validators.exceptions import PersistenceError, ValidatorStateError
from valwatch.validators.policy import AlertPolicy
from valwatch.validators.registry import ValidatorRegistry

logger = structlog.stdlib.get_logger()

AlertCallback = Callable[[ValidatorAlert], Awaitable[None] | None]
Clock = Callable[[], datetime]


class ChangeDetector:
    """Runs monitoring cycles against a chain source and a registry.

    Usage::

        detector = ChangeDetector(chain, registry, config=settings.monitor)
        detector.on_alert(notifier.on_validator_alert)

        # Single cycle (also run once at startup)
        alerts = await detector.cycle()

        # Or the periodic loop
        await detector.start()
        ...
        await detector.stop()

    Cycles never overlap: the loop waits for each cycle to finish, and a
    lock serialises any manual ``cycle()`` call made meanwhile.
    """

    def __init__(
        self,
        chain: ChainDataSource,
        registry: ValidatorRegistry,
        policy: AlertPolicy | None = None,
        config: MonitorConfig | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._chain = chain
        self._registry = registry
        self._config = config or MonitorConfig()
        self._policy = policy or AlertPolicy.from_config(self._config)
        self._clock = clock
        self._callbacks: list[AlertCallback] = []
        self._lock = asyncio.Lock()

        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._cycle_count = 0
        self._last_cycle_at: datetime | None = None
        self._last_era: int | None = None

    # ── Properties ───────────────────────────────────────────────

    @property
    def registry(self) -> ValidatorRegistry:
        return self._registry

    @property
    def policy(self) -> AlertPolicy:
        return self._policy

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cycle_count(self) -> int:
        """Number of completed (non-aborted) cycles."""
        return self._cycle_count

    @property
    def last_cycle_at(self) -> datetime | None:
        return self._last_cycle_at

    @property
    def last_era(self) -> int | None:
        return self._last_era

    def on_alert(self, callback: AlertCallback) -> None:
        """Register a callback for fired alerts."""
        self._callbacks.append(callback)

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the background cycle loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "change_detector_started",
            poll_interval=self._config.poll_interval_secs,
            tracked_validators=len(self._registry),
        )

    async def stop(self) -> None:
        """Stop the loop and flush pending registry changes."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._persist()
        logger.info("change_detector_stopped", cycle_count=self._cycle_count)

    async def _loop(self) -> None:
        interval = self._config.poll_interval_secs
        while self._running:
            started = time.monotonic()
            try:
                await self.cycle()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("monitor_cycle_error")

            # An overrunning cycle defers the next one rather than overlapping it.
            delay = max(0.0, interval - (time.monotonic() - started))
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                break

    # ── Cycle ────────────────────────────────────────────────────

    async def cycle(self) -> list[ValidatorAlert]:
        """Run one monitoring cycle and return the alerts it fired."""
        async with self._lock:
            alerts = await self._run_cycle()
        for alert in alerts:
            await self._emit(alert)
        return alerts

    async def _run_cycle(self) -> list[ValidatorAlert]:
        try:
            era = await self._chain.current_era()
        except ChainError as exc:
            logger.warning("cycle_aborted", reason="era_unavailable", error=str(exc))
            return []
        if era is None:
            logger.warning("cycle_aborted", reason="era_unavailable")
            return []

        try:
            active = set(await self._chain.active_validators())
        except Exception:
            logger.exception("cycle_aborted", reason="active_set_unavailable", era=era)
            return []
        if not active:
            logger.warning("cycle_aborted", reason="active_set_empty", era=era)
            return []

        now = to_millis_precision(self._clock())
        snapshots = await self._fetch_snapshots(sorted(active), era)

        alerts: list[ValidatorAlert] = []
        joined = [a for a in sorted(snapshots) if a not in self._registry]
        existing = [a for a in sorted(snapshots) if a in self._registry]
        removed = sorted(self._registry.active_addresses() - active)

        for address in joined:
            with self._isolated(address, "joined", era):
                alerts.append(self._handle_joined(snapshots[address], now))
        for address in existing:
            with self._isolated(address, "still_active", era):
                alerts.extend(self._handle_still_active(snapshots[address], now))
        for address in removed:
            with self._isolated(address, "removed", era):
                alerts.append(self._handle_removed(address, era, now))

        self._persist()

        self._cycle_count += 1
        self._last_cycle_at = now
        self._last_era = era
        logger.info(
            "cycle_completed",
            era=era,
            active=len(active),
            fetched=len(snapshots),
            joined=len(joined),
            removed=len(removed),
            alerts=len(alerts),
        )
        return alerts

    async def _fetch_snapshots(
        self, addresses: list[str], era: int,
    ) -> dict[str, ValidatorSnapshot]:
        results = await asyncio.gather(
            *(self._chain.fetch_snapshot(address, era) for address in addresses),
            return_exceptions=True,
        )
        snapshots: dict[str, ValidatorSnapshot] = {}
        for address, result in zip(addresses, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "snapshot_fetch_failed",
                    address=address,
                    era=era,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                continue
            snapshots[address] = result
        return snapshots

    def _handle_joined(self, snapshot: ValidatorSnapshot, now: datetime) -> ValidatorAlert:
        record = self._registry.upsert(
            snapshot.address, lambda _: ValidatorRecord.from_snapshot(snapshot),
        )
        logger.info("validator_joined", address=snapshot.address, era=snapshot.era)
        return ValidatorAlert(
            kind=AlertKind.JOINED,
            address=snapshot.address,
            era=snapshot.era,
            snapshot=snapshot,
            record=record,
            timestamp=now,
        )

    def _handle_still_active(
        self, snapshot: ValidatorSnapshot, now: datetime,
    ) -> list[ValidatorAlert]:
        previous = self._registry.get(snapshot.address)
        if previous is None:
            raise ValidatorStateError(f"{snapshot.address} is not tracked")
        rejoined = not previous.active

        merged = previous.model_copy(update={
            "active": True,
            "commission": snapshot.commission,
            "era_points": snapshot.era_points,
        })
        outcome = self._policy.evaluate(merged, snapshot, now)
        record = self._registry.upsert(snapshot.address, lambda _: outcome.record)

        alerts: list[ValidatorAlert] = []
        if rejoined:
            logger.info(
                "validator_rejoined",
                address=snapshot.address,
                era=snapshot.era,
                alert=self._config.alert_on_rejoin,
            )
            if self._config.alert_on_rejoin:
                alerts.append(ValidatorAlert(
                    kind=AlertKind.REACTIVATED,
                    address=snapshot.address,
                    era=snapshot.era,
                    snapshot=snapshot,
                    record=record,
                    timestamp=now,
                ))
        alerts.extend(outcome.alerts)
        return alerts

    def _handle_removed(self, address: str, era: int, now: datetime) -> ValidatorAlert:
        record = self._registry.upsert(
            address, lambda rec: rec.model_copy(update={"active": False}),  # type: ignore[union-attr]
        )
        logger.info("validator_removed", address=address, era=era)
        return ValidatorAlert(
            kind=AlertKind.REMOVED,
            address=address,
            era=era,
            record=record,
            timestamp=now,
        )

    # ── Internal ─────────────────────────────────────────────────

    @contextlib.contextmanager
    def _isolated(self, address: str, stage: str, era: int) -> Iterator[None]:
        """Log and skip a failure while handling one address."""
        try:
            yield
        except Exception:
            logger.exception("validator_handling_failed", address=address, stage=stage, era=era)

    def _persist(self) -> None:
        if not self._registry.dirty:
            return
        try:
            self._registry.persist()
        except PersistenceError:
            logger.exception("registry_persist_failed")

    async def _emit(self, alert: ValidatorAlert) -> None:
        """Dispatch an alert to all registered callbacks."""
        for cb in self._callbacks:
            try:
                result = cb(alert)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception(
                    "alert_callback_error",
                    kind=alert.kind,
                    address=alert.address,
                )
