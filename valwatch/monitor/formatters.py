"""Pure functions that render validator alerts and status into AlertMessage objects."""

from __future__ import annotations

from decimal import Decimal

from valwatch.core.types import AlertKind, SlashingInfo, ValidatorAlert, ValidatorSnapshot
from valwatch.monitor.types import AlertMessage, Severity

# ── Severity mappings ───────────────────────────────────────────

_ALERT_SEVERITY: dict[AlertKind, Severity] = {
    AlertKind.JOINED: Severity.INFO,
    AlertKind.REACTIVATED: Severity.INFO,
    AlertKind.SLASHED: Severity.CRITICAL,
    AlertKind.INACTIVITY: Severity.WARNING,
    AlertKind.REMOVED: Severity.WARNING,
}


# ── Helpers ─────────────────────────────────────────────────────


def format_address(address: str | None) -> str:
    """Shorten an address to ``first8...last4``."""
    if not address:
        return "Unknown Address"
    if len(address) <= 12:
        return address
    return f"{address[:8]}...{address[-4:]}"


def format_percent(value: Decimal | None) -> str:
    return f"{value}%" if value is not None else "N/A"


def _slashing_fields(slashing: SlashingInfo | None) -> dict[str, str]:
    if slashing is None:
        return {}
    return {
        "Span Index": str(slashing.span_index),
        "Last Non-zero Slash": str(slashing.last_nonzero_slash),
        "Prior Spans": ", ".join(str(p) for p in slashing.prior) or "none",
    }


# ── Formatters ──────────────────────────────────────────────────


def format_validator_alert(alert: ValidatorAlert) -> AlertMessage:
    """Convert a ValidatorAlert to an AlertMessage."""
    short = format_address(alert.address)
    snapshot = alert.snapshot
    fields: dict[str, str] = {}

    if alert.kind == AlertKind.JOINED:
        title = "New Validator"
        body = f"**{short}** joined the active set"
        fields["Era"] = str(alert.era)
        fields["Initial Commission"] = format_percent(alert.record.commission)
        fields["Performance"] = format_percent(alert.record.performance)
    elif alert.kind == AlertKind.REACTIVATED:
        title = "Validator Reactivated"
        body = f"**{short}** rejoined the active set"
        fields["Era"] = str(alert.era)
        fields["Commission"] = format_percent(alert.record.commission)
        fields["Performance"] = format_percent(alert.record.performance)
    elif alert.kind == AlertKind.SLASHED:
        title = "Validator Slashed"
        body = f"**{short}** has been slashed"
        fields.update(_slashing_fields(snapshot.slashing if snapshot else None))
        fields["Era"] = str(alert.era)
    elif alert.kind == AlertKind.INACTIVITY:
        title = f"Inactivity Threshold ({alert.threshold}%)"
        body = f"**{short}** fell below {alert.threshold}% of era reward points"
        fields["Current Performance"] = format_percent(alert.record.performance)
        fields["Era"] = str(alert.era)
    else:
        title = "Validator Removed"
        body = f"**{short}** left the active set"
        fields["Final Performance"] = format_percent(alert.record.performance)
        fields["Last Era"] = str(alert.era)

    return AlertMessage(
        severity=_ALERT_SEVERITY.get(alert.kind, Severity.INFO),
        title=title,
        body=body,
        fields=fields,
        address=alert.address,
        source_event_type=alert.kind.value,
        timestamp=alert.timestamp.timestamp(),
        raw=alert.model_dump(mode="json"),
    )


def format_status(snapshot: ValidatorSnapshot, active: bool) -> AlertMessage:
    """Render a live validator status for the ``status`` command."""
    fields: dict[str, str] = {
        "Status": "Active" if active else "Inactive",
        "Commission": format_percent(snapshot.commission),
        "Last Era Performance": format_percent(snapshot.performance),
        "Total Last Era Points": str(snapshot.era_points.total),
        "Validator Points Last Era": str(snapshot.era_points.validator_share),
        "Identity": snapshot.identity or "No Identity Set",
    }
    if snapshot.slashed and snapshot.slashing is not None:
        fields["Last Slash Era"] = str(snapshot.slashing.last_nonzero_slash)
        fields["Slash Spans"] = ", ".join(str(p) for p in snapshot.slashing.prior) or "none"

    return AlertMessage(
        severity=Severity.INFO if active else Severity.WARNING,
        title=f"Validator Status - {format_address(snapshot.address)}",
        fields=fields,
        address=snapshot.address,
        source_event_type="STATUS",
        raw=snapshot.model_dump(mode="json"),
    )


def format_help(prefix: str = "!") -> AlertMessage:
    lines = [
        f"`{prefix}follow <address>` - Start following a validator",
        f"`{prefix}unfollow <address>` - Stop following a validator",
        f"`{prefix}following` - List followed validators",
        f"`{prefix}status <address>` - Show detailed validator status",
        f"`{prefix}help` - Show this help message",
    ]
    return AlertMessage(
        severity=Severity.INFO,
        title="Validator Watch Commands",
        body="\n".join(lines),
        source_event_type="HELP",
    )
