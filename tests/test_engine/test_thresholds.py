"""Tests for threshold classification — evaluation order and boundaries."""

from __future__ import annotations

import pytest

from sugarwatch.core.config import ThresholdsConfig
from sugarwatch.core.types import AlarmKind, Severity
from sugarwatch.engine.thresholds import alarm_kind_for, classify, is_urgent

_CFG = ThresholdsConfig(critical_low=55, low=70, high=180, critical_high=250)


class TestClassify:
    @pytest.mark.parametrize("value", [0, 40, 54, 55])
    def test_critical_low_inclusive(self, value: int) -> None:
        assert classify(value, _CFG) == Severity.CRITICAL_LOW

    @pytest.mark.parametrize("value", [56, 69])
    def test_low_exclusive(self, value: int) -> None:
        assert classify(value, _CFG) == Severity.LOW

    @pytest.mark.parametrize("value", [70, 71, 120, 179, 180])
    def test_normal_band(self, value: int) -> None:
        assert classify(value, _CFG) == Severity.NORMAL

    @pytest.mark.parametrize("value", [181, 249])
    def test_high_exclusive(self, value: int) -> None:
        assert classify(value, _CFG) == Severity.HIGH

    @pytest.mark.parametrize("value", [250, 400])
    def test_critical_high_inclusive(self, value: int) -> None:
        assert classify(value, _CFG) == Severity.CRITICAL_HIGH

    def test_critical_low_independent_of_other_bounds(self) -> None:
        cfg = ThresholdsConfig(critical_low=80, low=90, high=100, critical_high=110)
        assert classify(80, cfg) == Severity.CRITICAL_LOW


class TestUrgency:
    def test_urgent_only_for_critical(self) -> None:
        assert is_urgent(Severity.CRITICAL_LOW)
        assert is_urgent(Severity.CRITICAL_HIGH)
        assert not is_urgent(Severity.LOW)
        assert not is_urgent(Severity.HIGH)
        assert not is_urgent(Severity.NORMAL)

    def test_alarm_kind_for(self) -> None:
        assert alarm_kind_for(Severity.NORMAL) is None
        assert alarm_kind_for(Severity.LOW) == AlarmKind.LOW
        assert alarm_kind_for(Severity.CRITICAL_HIGH) == AlarmKind.CRITICAL_HIGH
