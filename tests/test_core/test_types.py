"""Tests for sugarwatch/core/types.py — trend parsing, readings, alarm kinds."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from sugarwatch.core.types import (
    AlarmKind,
    MonitoringState,
    Reading,
    Severity,
    TrendDirection,
)


class TestTrendDirection:
    def test_parse_exact(self) -> None:
        assert TrendDirection.parse("FortyFiveDown") == TrendDirection.FORTY_FIVE_DOWN

    def test_parse_case_insensitive(self) -> None:
        assert TrendDirection.parse("doubleup") == TrendDirection.DOUBLE_UP
        assert TrendDirection.parse(" FLAT ") == TrendDirection.FLAT

    def test_parse_unknown(self) -> None:
        assert TrendDirection.parse("NOT COMPUTABLE") == TrendDirection.UNKNOWN
        assert TrendDirection.parse(None) == TrendDirection.UNKNOWN
        assert TrendDirection.parse(3) == TrendDirection.UNKNOWN

    def test_arrows(self) -> None:
        assert TrendDirection.DOUBLE_UP.arrow == "⇈"
        assert TrendDirection.SINGLE_DOWN.arrow == "↓"
        assert TrendDirection.UNKNOWN.arrow == "→"


class TestReading:
    def test_frozen(self) -> None:
        r = Reading(value=120, timestamp=1000.0)
        with pytest.raises(ValidationError):
            r.value = 130  # type: ignore[misc]

    def test_format_delta(self) -> None:
        assert Reading(value=1, timestamp=0, delta=1.5).format_delta() == "+1.5"
        assert Reading(value=1, timestamp=0, delta=-2.0).format_delta() == "-2.0"
        assert Reading(value=1, timestamp=0, delta=0.0).format_delta() == "+0.0"
        assert Reading(value=1, timestamp=0).format_delta() == ""

    def test_age(self) -> None:
        assert Reading(value=1, timestamp=1000.0).age_secs(1600.0) == 600.0


class TestAlarmKind:
    @pytest.mark.parametrize("kind", [
        AlarmKind.MISSED_READINGS,
        AlarmKind.LOOP_NOT_RESPONDING,
        AlarmKind.READING_FROZEN,
    ])
    def test_auto_kinds(self, kind: AlarmKind) -> None:
        assert kind.is_auto
        assert kind.category == "ALARM_AUTO"

    def test_user_actionable_categories(self) -> None:
        assert AlarmKind.LOW.category == "ALARM_LOW"
        assert AlarmKind.CRITICAL_LOW.category == "ALARM_CRITICAL_LOW"
        assert AlarmKind.HIGH.category == "ALARM_HIGH"
        assert AlarmKind.CRITICAL_HIGH.category == "ALARM_CRITICAL_HIGH"
        assert not AlarmKind.LOW.is_auto

    def test_system_kinds(self) -> None:
        assert AlarmKind.CONNECTIVITY_DEGRADED.is_system
        assert AlarmKind.AUTOMATIC_RECOVERY.category == "ALARM_SYSTEM"


class TestSeverity:
    def test_normal_is_lowest(self) -> None:
        assert min(Severity) == Severity.NORMAL


class TestMonitoringState:
    def test_failures_non_negative(self) -> None:
        with pytest.raises(ValidationError):
            MonitoringState(consecutive_failures=-1)

    def test_defaults(self) -> None:
        s = MonitoringState()
        assert s.last_reading is None
        assert s.poll_interval_secs == 300
        assert s.pump_connected is True
