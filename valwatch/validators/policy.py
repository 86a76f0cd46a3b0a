"""Alert policy — which alerts a still-active validator fires this cycle.

Every cooldown-gated alert kind shares one slot per validator: the cooldown
is read once per cycle, slash is evaluated before inactivity, and at most
one gated alert fires per validator per cycle.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

import structlog
from pydantic import BaseModel, Field

from valwatch.core.config import MonitorConfig
from valwatch.core.types import AlertKind, ValidatorAlert, ValidatorRecord, ValidatorSnapshot

logger = structlog.stdlib.get_logger()

DEFAULT_COOLDOWN = timedelta(days=14)
DEFAULT_THRESHOLDS = (10, 25, 50)


class PolicyOutcome(BaseModel):
    """Record after the transition plus the alerts it fired."""

    record: ValidatorRecord
    alerts: list[ValidatorAlert] = Field(default_factory=list)


class AlertPolicy:
    """Edge-triggered slash alerts and a one-shot inactivity threshold ladder.

    - **Slash** fires when the snapshot reports a slash the record has not
      latched yet and the cooldown is clear. The latch (``slashed``) only
      closes when the alert fires, so a slash seen during a cooldown is
      reported once the cooldown ends.
    - **Inactivity** walks the thresholds in ascending order and considers
      only the first one the validator is below and has not been alerted
      for. It fires if the cooldown is clear and no slash fired this cycle.
    - With ``rearm_on_recovery`` a notified threshold is forgotten once
      performance is back at or above it, so a later drop alerts again.
    """

    def __init__(
        self,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        thresholds: Iterable[int] = DEFAULT_THRESHOLDS,
        rearm_on_recovery: bool = False,
    ) -> None:
        self._cooldown = cooldown
        self._thresholds = tuple(sorted(set(thresholds)))
        self._rearm_on_recovery = rearm_on_recovery

    @classmethod
    def from_config(cls, config: MonitorConfig) -> AlertPolicy:
        return cls(
            cooldown=config.cooldown,
            thresholds=config.inactivity_thresholds,
            rearm_on_recovery=config.rearm_on_recovery,
        )

    @property
    def cooldown(self) -> timedelta:
        return self._cooldown

    @property
    def thresholds(self) -> tuple[int, ...]:
        return self._thresholds

    @property
    def rearm_on_recovery(self) -> bool:
        return self._rearm_on_recovery

    def cooldown_clear(self, record: ValidatorRecord, now: datetime) -> bool:
        last = record.last_notification_at
        return last is None or (now - last) > self._cooldown

    def evaluate(
        self,
        record: ValidatorRecord,
        snapshot: ValidatorSnapshot,
        now: datetime,
    ) -> PolicyOutcome:
        """Apply the policy to a record already merged with *snapshot*.

        ``record.slashed`` and ``record.inactivity_notified`` must still hold
        the memory from before this cycle.
        """
        slot_free = self.cooldown_clear(record, now)
        update: dict[str, Any] = {}
        fired: list[tuple[AlertKind, int | None]] = []
        notified = set(record.inactivity_notified)
        perf = snapshot.performance

        if self._rearm_on_recovery and perf is not None:
            rearmed = {t for t in notified if perf >= t}
            if rearmed:
                notified -= rearmed
                logger.info(
                    "inactivity_thresholds_rearmed",
                    address=record.address,
                    thresholds=sorted(rearmed),
                    performance=str(perf),
                )

        if snapshot.slashed and not record.slashed:
            if slot_free:
                update["slashed"] = True
                update["slashed_era"] = (
                    snapshot.slashing.last_nonzero_slash if snapshot.slashing else snapshot.era
                )
                update["last_notification_at"] = now
                fired.append((AlertKind.SLASHED, None))
                slot_free = False
            else:
                logger.info("slash_alert_deferred", address=record.address, reason="cooldown")

        if perf is not None:
            threshold = self._next_threshold(perf, notified)
            if threshold is not None:
                if slot_free:
                    notified.add(threshold)
                    update["last_notification_at"] = now
                    fired.append((AlertKind.INACTIVITY, threshold))
                else:
                    logger.debug(
                        "inactivity_alert_suppressed",
                        address=record.address,
                        threshold=threshold,
                        performance=str(perf),
                    )

        if notified != record.inactivity_notified:
            update["inactivity_notified"] = notified

        new_record = record.model_copy(update=update) if update else record
        alerts = [
            ValidatorAlert(
                kind=kind,
                address=record.address,
                era=snapshot.era,
                threshold=threshold,
                snapshot=snapshot,
                record=new_record,
                timestamp=now,
            )
            for kind, threshold in fired
        ]
        return PolicyOutcome(record=new_record, alerts=alerts)

    def _next_threshold(self, perf: Decimal, notified: set[int]) -> int | None:
        for threshold in self._thresholds:
            if perf < threshold and threshold not in notified:
                return threshold
        return None
