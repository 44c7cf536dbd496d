"""Threshold classification — pure functions, no state."""

from __future__ import annotations

from sugarwatch.core.config import ThresholdsConfig
from sugarwatch.core.types import AlarmKind, Severity

_SEVERITY_ALARMS: dict[Severity, AlarmKind] = {
    Severity.CRITICAL_LOW: AlarmKind.CRITICAL_LOW,
    Severity.LOW: AlarmKind.LOW,
    Severity.HIGH: AlarmKind.HIGH,
    Severity.CRITICAL_HIGH: AlarmKind.CRITICAL_HIGH,
}


def classify(value: int, thresholds: ThresholdsConfig) -> Severity:
    """Map a glucose value to a Severity.

    Order matters: critical bounds are inclusive, the plain low/high bounds
    are exclusive (a value equal to ``low`` is NORMAL).
    """
    if value <= thresholds.critical_low:
        return Severity.CRITICAL_LOW
    if value < thresholds.low:
        return Severity.LOW
    if value >= thresholds.critical_high:
        return Severity.CRITICAL_HIGH
    if value > thresholds.high:
        return Severity.HIGH
    return Severity.NORMAL


def is_urgent(severity: Severity) -> bool:
    return severity in (Severity.CRITICAL_LOW, Severity.CRITICAL_HIGH)


def alarm_kind_for(severity: Severity) -> AlarmKind | None:
    """Alarm raised for a severity; None for NORMAL."""
    return _SEVERITY_ALARMS.get(severity)
