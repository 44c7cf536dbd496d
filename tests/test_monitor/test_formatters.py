"""Tests for alarm/snapshot formatters."""

from __future__ import annotations

import pytest

from sugarwatch.core.types import (
    AlarmEvent,
    AlarmKind,
    MonitoringSnapshot,
    Reading,
    SchedulerMode,
    Severity,
    TrendDirection,
)
from sugarwatch.monitor.formatters import format_alarm_event, format_snapshot
from sugarwatch.monitor.types import AlertLevel


class TestFormatAlarmEvent:
    def test_reading_fields(self) -> None:
        ev = AlarmEvent(
            kind=AlarmKind.LOW,
            severity=Severity.LOW,
            reading=Reading(
                value=65, trend=TrendDirection.SINGLE_DOWN, timestamp=1000.0, delta=-4.0,
            ),
            title="Low glucose",
            message="65 mg/dL",
            timestamp=1000.0,
        )
        msg = format_alarm_event(ev)
        assert msg.level == AlertLevel.WARNING
        assert msg.title == "Low glucose"
        assert msg.body == "65 mg/dL"
        assert msg.fields == {
            "severity": "LOW",
            "value": "65",
            "trend": "↓",
            "delta": "-4.0",
        }
        assert msg.source_event_type == "low"
        assert msg.category == "ALARM_LOW"
        assert msg.timestamp == 1000.0
        assert msg.raw["kind"] == "low"

    def test_critical_flag_wins(self) -> None:
        ev = AlarmEvent(kind=AlarmKind.HIGH, title="x", is_critical=True)
        assert format_alarm_event(ev).level == AlertLevel.CRITICAL

    @pytest.mark.parametrize(("kind", "level"), [
        (AlarmKind.CRITICAL_LOW, AlertLevel.CRITICAL),
        (AlarmKind.MISSED_READINGS, AlertLevel.WARNING),
        (AlarmKind.AUTOMATIC_RECOVERY, AlertLevel.INFO),
    ])
    def test_level_by_kind(self, kind: AlarmKind, level: AlertLevel) -> None:
        assert format_alarm_event(AlarmEvent(kind=kind, title="x")).level == level

    def test_no_reading(self) -> None:
        msg = format_alarm_event(AlarmEvent(kind=AlarmKind.CONNECTIVITY_DEGRADED, title="x"))
        assert msg.fields == {"severity": "NORMAL"}
        assert msg.category == "ALARM_SYSTEM"


class TestFormatSnapshot:
    def test_fresh(self) -> None:
        snap = MonitoringSnapshot(
            value=120,
            trend_arrow="↗",
            delta="+1.5",
            minutes_since_update=3,
            mode=SchedulerMode.NORMAL,
            timestamp=5.0,
        )
        msg = format_snapshot(snap)
        assert msg.level == AlertLevel.DEBUG
        assert msg.title == "MONITORING_SNAPSHOT"
        assert msg.body == "120 ↗ +1.5"
        assert msg.fields["minutes_since_update"] == "3"
        assert msg.fields["mode"] == "NORMAL"

    def test_stale(self) -> None:
        msg = format_snapshot(MonitoringSnapshot(value=110, is_stale=True))
        assert msg.body == "110 → (stale)"

    def test_no_value(self) -> None:
        msg = format_snapshot(MonitoringSnapshot())
        assert msg.body == "--- →"
        assert "minutes_since_update" not in msg.fields
