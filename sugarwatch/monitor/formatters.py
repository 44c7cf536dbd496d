"""Pure functions that convert engine output into AlertMessage objects."""

from __future__ import annotations

from sugarwatch.core.types import AlarmEvent, AlarmKind, MonitoringSnapshot
from sugarwatch.monitor.types import AlertLevel, AlertMessage

_KIND_LEVEL: dict[AlarmKind, AlertLevel] = {
    AlarmKind.CRITICAL_LOW: AlertLevel.CRITICAL,
    AlarmKind.LOW: AlertLevel.WARNING,
    AlarmKind.HIGH: AlertLevel.WARNING,
    AlarmKind.CRITICAL_HIGH: AlertLevel.CRITICAL,
    AlarmKind.MISSED_READINGS: AlertLevel.WARNING,
    AlarmKind.LOOP_NOT_RESPONDING: AlertLevel.WARNING,
    AlarmKind.READING_FROZEN: AlertLevel.WARNING,
    AlarmKind.CONNECTIVITY_DEGRADED: AlertLevel.WARNING,
    AlarmKind.AUTOMATIC_RECOVERY: AlertLevel.INFO,
}


def format_alarm_event(event: AlarmEvent) -> AlertMessage:
    """Convert an AlarmEvent to an AlertMessage.

    ``is_critical`` always wins over the per-kind level.
    """
    level = AlertLevel.CRITICAL if event.is_critical else _KIND_LEVEL.get(
        event.kind, AlertLevel.WARNING,
    )
    fields: dict[str, str] = {"severity": event.severity.name}
    if event.reading is not None:
        fields["value"] = str(event.reading.value)
        fields["trend"] = event.reading.trend.arrow
        if event.reading.delta is not None:
            fields["delta"] = event.reading.format_delta()

    return AlertMessage(
        level=level,
        title=event.title,
        body=event.message,
        fields=fields,
        source_event_type=event.kind.value,
        category=event.kind.category,
        timestamp=event.timestamp,
        raw=event.model_dump(mode="json"),
    )


def format_snapshot(snapshot: MonitoringSnapshot) -> AlertMessage:
    """Snapshots are log-only status records."""
    value = "---" if snapshot.value is None else str(snapshot.value)
    body = f"{value} {snapshot.trend_arrow} {snapshot.delta}".strip()
    if snapshot.is_stale:
        body += " (stale)"
    fields = {
        "mode": snapshot.mode.value,
        "poll_interval_secs": str(snapshot.poll_interval_secs),
        "consecutive_failures": str(snapshot.consecutive_failures),
        "pump_connected": str(snapshot.pump_connected),
    }
    if snapshot.minutes_since_update is not None:
        fields["minutes_since_update"] = str(snapshot.minutes_since_update)
    return AlertMessage(
        level=AlertLevel.DEBUG,
        title="MONITORING_SNAPSHOT",
        body=body,
        fields=fields,
        source_event_type="snapshot",
        timestamp=snapshot.timestamp,
        raw=snapshot.model_dump(mode="json"),
    )
