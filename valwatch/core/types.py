"""Domain types for validator monitoring — commission/performance use Decimal."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

_TWO_PLACES = Decimal("0.01")
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utcnow() -> datetime:
    """Current UTC instant truncated to millisecond precision."""
    return to_millis_precision(datetime.now(UTC))


def to_millis_precision(ts: datetime) -> datetime:
    return ts.replace(microsecond=(ts.microsecond // 1000) * 1000)


def to_epoch_millis(ts: datetime) -> int:
    return (ts - _EPOCH) // timedelta(milliseconds=1)


def from_epoch_millis(ms: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=ms)


def compute_performance(validator_share: int, total: int) -> Decimal | None:
    """Share of the era's reward points, as a percentage with two decimals.

    Returns None when the era has no points at all.
    """
    if total <= 0:
        return None
    pct = Decimal(validator_share) * 100 / Decimal(total)
    return pct.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


# ── Chain snapshot types ─────────────────────────────────────────


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EraPoints(_CamelModel):
    """Reward points for the previous completed era."""

    total: int = Field(default=0, ge=0)
    validator_share: int = Field(default=0, ge=0)
    performance_percent: Decimal | None = None

    @classmethod
    def from_points(cls, validator_share: int, total: int) -> EraPoints:
        return cls(
            total=total,
            validator_share=validator_share,
            performance_percent=compute_performance(validator_share, total),
        )


class SlashingInfo(BaseModel):
    """Slashing-span record of a validator."""

    span_index: int = 0
    last_start: int = 0
    last_nonzero_slash: int = 0
    prior: list[int] = Field(default_factory=list)


class ValidatorSnapshot(BaseModel):
    """Point-in-time status of one validator, fetched once per cycle."""

    address: str
    era: int
    identity: str | None = None
    slashed: bool = False
    slashing: SlashingInfo | None = None
    commission: Decimal = Decimal(0)
    era_points: EraPoints = Field(default_factory=EraPoints)

    @property
    def performance(self) -> Decimal | None:
        return self.era_points.performance_percent


# ── Registry record ──────────────────────────────────────────────


class ValidatorRecord(_CamelModel):
    """Last-known status and notification memory of a tracked validator.

    Serialises (``by_alias=True``, ``mode="json"``) to the persisted layout:
    camelCase keys, ``inactivityNotified`` as a sorted list and
    ``lastNotificationAt`` as epoch milliseconds.
    """

    address: str
    active: bool = True
    slashed: bool = False
    slashed_era: int | None = None
    commission: Decimal = Decimal(0)
    era_points: EraPoints = Field(default_factory=EraPoints)
    inactivity_notified: set[int] = Field(default_factory=set)
    last_notification_at: datetime | None = None

    @field_validator("last_notification_at", mode="before")
    @classmethod
    def _parse_instant(cls, v: Any) -> Any:
        if isinstance(v, int | float) and not isinstance(v, bool):
            return from_epoch_millis(int(v))
        return v

    @field_validator("last_notification_at")
    @classmethod
    def _normalise_instant(cls, v: datetime | None) -> datetime | None:
        if v is None:
            return None
        if v.tzinfo is None:
            v = v.replace(tzinfo=UTC)
        return to_millis_precision(v.astimezone(UTC))

    @field_serializer("inactivity_notified")
    def _dump_notified(self, v: set[int]) -> list[int]:
        return sorted(v)

    @field_serializer("last_notification_at")
    def _dump_instant(self, v: datetime | None) -> int | None:
        return to_epoch_millis(v) if v is not None else None

    @classmethod
    def from_snapshot(cls, snapshot: ValidatorSnapshot) -> ValidatorRecord:
        """Fresh record for a validator seen active for the first time."""
        return cls(
            address=snapshot.address,
            active=True,
            slashed=snapshot.slashed,
            slashed_era=(
                snapshot.slashing.last_nonzero_slash
                if snapshot.slashed and snapshot.slashing is not None
                else None
            ),
            commission=snapshot.commission,
            era_points=snapshot.era_points,
        )

    @property
    def performance(self) -> Decimal | None:
        return self.era_points.performance_percent


# ── Alerts ───────────────────────────────────────────────────────


class AlertKind(StrEnum):
    """Kind of validator alert."""

    JOINED = "JOINED"
    REACTIVATED = "REACTIVATED"
    SLASHED = "SLASHED"
    INACTIVITY = "INACTIVITY"
    REMOVED = "REMOVED"


class ValidatorAlert(BaseModel):
    """An alert fired by the monitoring cycle."""

    kind: AlertKind
    address: str
    era: int
    threshold: int | None = None
    snapshot: ValidatorSnapshot | None = None
    record: ValidatorRecord
    timestamp: datetime = Field(default_factory=utcnow)
