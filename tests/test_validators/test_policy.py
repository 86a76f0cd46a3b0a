"""Tests for AlertPolicy — slash edge-trigger, threshold ladder, shared cooldown."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from valwatch.core.config import MonitorConfig
from valwatch.core.types import (
    AlertKind,
    EraPoints,
    SlashingInfo,
    ValidatorRecord,
    ValidatorSnapshot,
)
from valwatch.validators.policy import AlertPolicy

ADDR = "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"
T0 = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

# ── Helpers ─────────────────────────────────────────────────────


def _points(perf: int | None) -> EraPoints:
    if perf is None:
        return EraPoints.from_points(0, 0)
    return EraPoints.from_points(perf, 100)


def _snapshot(perf: int | None = 80, slashed: bool = False, era: int = 10) -> ValidatorSnapshot:
    return ValidatorSnapshot(
        address=ADDR,
        era=era,
        slashed=slashed,
        slashing=SlashingInfo(span_index=2, last_nonzero_slash=9, prior=[4]) if slashed else None,
        commission=Decimal("5"),
        era_points=_points(perf),
    )


def _record(**kw: object) -> ValidatorRecord:
    defaults: dict[str, object] = {"address": ADDR}
    defaults.update(kw)
    return ValidatorRecord(**defaults)  # type: ignore[arg-type]


def _policy(**kw: object) -> AlertPolicy:
    return AlertPolicy(**kw)  # type: ignore[arg-type]


# ── Cooldown ────────────────────────────────────────────────────


class TestCooldown:
    def test_clear_when_never_notified(self) -> None:
        assert _policy().cooldown_clear(_record(), T0) is True

    def test_blocked_within_window(self) -> None:
        rec = _record(last_notification_at=T0)
        assert _policy().cooldown_clear(rec, T0 + timedelta(days=13)) is False

    def test_exact_boundary_still_blocked(self) -> None:
        rec = _record(last_notification_at=T0)
        assert _policy().cooldown_clear(rec, T0 + timedelta(days=14)) is False

    def test_clear_after_window(self) -> None:
        rec = _record(last_notification_at=T0)
        assert _policy().cooldown_clear(rec, T0 + timedelta(days=14, seconds=1)) is True

    def test_from_config(self) -> None:
        policy = AlertPolicy.from_config(
            MonitorConfig(cooldown_days=2, inactivity_thresholds=[30, 5], rearm_on_recovery=True),
        )
        assert policy.cooldown == timedelta(days=2)
        assert policy.thresholds == (5, 30)
        assert policy.rearm_on_recovery is True


# ── Slash ───────────────────────────────────────────────────────


class TestSlash:
    def test_first_slash_fires(self) -> None:
        out = _policy().evaluate(_record(), _snapshot(slashed=True), T0)
        assert [a.kind for a in out.alerts] == [AlertKind.SLASHED]
        assert out.record.slashed is True
        assert out.record.slashed_era == 9
        assert out.record.last_notification_at == T0

    def test_still_slashed_does_not_refire(self) -> None:
        rec = _record(slashed=True, slashed_era=9)
        out = _policy().evaluate(rec, _snapshot(slashed=True), T0)
        assert out.alerts == []
        assert out.record.last_notification_at is None

    def test_slash_during_cooldown_is_deferred(self) -> None:
        rec = _record(last_notification_at=T0)
        out = _policy().evaluate(rec, _snapshot(slashed=True), T0 + timedelta(days=1))
        assert out.alerts == []
        assert out.record.slashed is False
        assert out.record.last_notification_at == T0

        later = T0 + timedelta(days=15)
        out = _policy().evaluate(out.record, _snapshot(slashed=True), later)
        assert [a.kind for a in out.alerts] == [AlertKind.SLASHED]
        assert out.record.slashed is True

    def test_slash_takes_priority_over_inactivity(self) -> None:
        out = _policy().evaluate(_record(), _snapshot(perf=5, slashed=True), T0)
        assert [a.kind for a in out.alerts] == [AlertKind.SLASHED]
        assert out.record.inactivity_notified == set()

    def test_alert_carries_snapshot_and_record(self) -> None:
        snap = _snapshot(slashed=True, era=42)
        out = _policy().evaluate(_record(), snap, T0)
        alert = out.alerts[0]
        assert alert.address == ADDR
        assert alert.era == 42
        assert alert.snapshot == snap
        assert alert.record == out.record
        assert alert.timestamp == T0


# ── Inactivity ──────────────────────────────────────────────────


class TestInactivity:
    def test_healthy_validator_fires_nothing(self) -> None:
        rec = _record()
        out = _policy().evaluate(rec, _snapshot(perf=80), T0)
        assert out.alerts == []
        assert out.record is rec

    def test_drop_fires_lowest_threshold_only(self) -> None:
        out = _policy().evaluate(_record(), _snapshot(perf=5), T0)
        assert len(out.alerts) == 1
        assert out.alerts[0].kind == AlertKind.INACTIVITY
        assert out.alerts[0].threshold == 10
        assert out.record.inactivity_notified == {10}
        assert out.record.last_notification_at == T0

    def test_one_shot_within_cooldown(self) -> None:
        first = _policy().evaluate(_record(), _snapshot(perf=5), T0)
        second = _policy().evaluate(first.record, _snapshot(perf=5), T0 + timedelta(hours=1))
        assert second.alerts == []
        assert second.record.inactivity_notified == {10}

    def test_next_threshold_after_cooldown(self) -> None:
        rec = _record(inactivity_notified={10}, last_notification_at=T0)
        out = _policy().evaluate(rec, _snapshot(perf=5), T0 + timedelta(days=15))
        assert [a.threshold for a in out.alerts] == [25]
        assert out.record.inactivity_notified == {10, 25}

    def test_moderate_drop_fires_matching_threshold(self) -> None:
        out = _policy().evaluate(_record(), _snapshot(perf=30), T0)
        assert [a.threshold for a in out.alerts] == [50]

    def test_equal_to_threshold_does_not_fire(self) -> None:
        out = _policy().evaluate(_record(), _snapshot(perf=50), T0)
        assert out.alerts == []

    def test_all_notified_fires_nothing(self) -> None:
        rec = _record(inactivity_notified={10, 25, 50})
        out = _policy().evaluate(rec, _snapshot(perf=1), T0)
        assert out.alerts == []

    def test_unknown_performance_skips_inactivity(self) -> None:
        out = _policy().evaluate(_record(), _snapshot(perf=None), T0)
        assert out.alerts == []

    def test_custom_thresholds(self) -> None:
        policy = _policy(thresholds=[40, 5])
        out = policy.evaluate(_record(), _snapshot(perf=20), T0)
        assert [a.threshold for a in out.alerts] == [40]


# ── Recovery re-arm ─────────────────────────────────────────────


class TestRearm:
    def test_default_never_clears_memory(self) -> None:
        rec = _record(inactivity_notified={10, 25})
        out = _policy().evaluate(rec, _snapshot(perf=90), T0)
        assert out.record.inactivity_notified == {10, 25}

    def test_recovery_rearms_thresholds(self) -> None:
        rec = _record(inactivity_notified={10, 25})
        out = _policy(rearm_on_recovery=True).evaluate(rec, _snapshot(perf=90), T0)
        assert out.record.inactivity_notified == set()
        assert out.alerts == []

    def test_partial_recovery_rearms_only_crossed(self) -> None:
        rec = _record(inactivity_notified={10, 25, 50})
        out = _policy(rearm_on_recovery=True).evaluate(rec, _snapshot(perf=15), T0)
        assert out.record.inactivity_notified == {25, 50}
        assert out.alerts == []

    def test_redrop_after_rearm_alerts_again(self) -> None:
        policy = _policy(rearm_on_recovery=True)
        rec = _record(inactivity_notified={10}, last_notification_at=T0)
        recovered = policy.evaluate(rec, _snapshot(perf=90), T0 + timedelta(days=1))
        dropped = policy.evaluate(
            recovered.record, _snapshot(perf=5), T0 + timedelta(days=20),
        )
        assert [a.threshold for a in dropped.alerts] == [10]
