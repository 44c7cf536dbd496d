"""Domain types for glucose monitoring — readings, alarms, engine state."""

from __future__ import annotations

import time
from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ── Readings ─────────────────────────────────────────────────────


class TrendDirection(StrEnum):
    """CGM trend arrow as reported by Nightscout ``direction``."""

    DOUBLE_UP = "DoubleUp"
    SINGLE_UP = "SingleUp"
    FORTY_FIVE_UP = "FortyFiveUp"
    FLAT = "Flat"
    FORTY_FIVE_DOWN = "FortyFiveDown"
    SINGLE_DOWN = "SingleDown"
    DOUBLE_DOWN = "DoubleDown"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, raw: object) -> TrendDirection:
        """Case-insensitive lookup; anything unrecognised is UNKNOWN."""
        if not isinstance(raw, str):
            return cls.UNKNOWN
        key = raw.strip().upper()
        for member in cls:
            if member.value.upper() == key:
                return member
        return cls.UNKNOWN

    @property
    def arrow(self) -> str:
        return _TREND_ARROWS.get(self, "→")


_TREND_ARROWS: dict[TrendDirection, str] = {
    TrendDirection.DOUBLE_UP: "⇈",
    TrendDirection.SINGLE_UP: "↑",
    TrendDirection.FORTY_FIVE_UP: "↗",
    TrendDirection.FLAT: "→",
    TrendDirection.FORTY_FIVE_DOWN: "↘",
    TrendDirection.SINGLE_DOWN: "↓",
    TrendDirection.DOUBLE_DOWN: "⇊",
}


class Reading(BaseModel):
    """A single sensor glucose value. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    value: int
    trend: TrendDirection = TrendDirection.UNKNOWN
    timestamp: float
    delta: float | None = None

    def format_delta(self) -> str:
        if self.delta is None:
            return ""
        sign = "+" if self.delta >= 0 else ""
        return f"{sign}{self.delta:.1f}"

    def age_secs(self, now: float) -> float:
        return now - self.timestamp


class TreatmentEvent(BaseModel):
    """A bolus, carb entry or temp basal from ``treatments.json``."""

    created_at: float
    event_type: str = ""
    insulin: float | None = None
    carbs: float | None = None
    rate: float | None = None
    duration: float | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class BasalScheduleEntry(BaseModel):
    """One row of a profile basal schedule (``"time": "HH:MM"``)."""

    time: str
    value: float
    time_as_seconds: int | None = None


# ── Classification / alarms ─────────────────────────────────────


class Severity(IntEnum):
    """Classification of a reading against the configured thresholds."""

    NORMAL = 0
    LOW = 1
    CRITICAL_LOW = 2
    HIGH = 3
    CRITICAL_HIGH = 4


class AlarmKind(StrEnum):
    """Independent alarm identities — each has its own snooze state."""

    CRITICAL_LOW = "critical_low"
    LOW = "low"
    HIGH = "high"
    CRITICAL_HIGH = "critical_high"
    MISSED_READINGS = "missed_readings"
    LOOP_NOT_RESPONDING = "loop_not_responding"
    READING_FROZEN = "reading_frozen"
    CONNECTIVITY_DEGRADED = "connectivity_degraded"
    AUTOMATIC_RECOVERY = "automatic_recovery"

    @property
    def is_auto(self) -> bool:
        """Diagnostic kinds that snooze themselves right after firing."""
        return self in _AUTO_KINDS

    @property
    def is_system(self) -> bool:
        return self in _SYSTEM_KINDS

    @property
    def category(self) -> str:
        """Notification category (drives the snooze buttons offered)."""
        if self.is_auto:
            return "ALARM_AUTO"
        if self.is_system:
            return "ALARM_SYSTEM"
        return f"ALARM_{self.name}"


_AUTO_KINDS = frozenset({
    AlarmKind.MISSED_READINGS,
    AlarmKind.LOOP_NOT_RESPONDING,
    AlarmKind.READING_FROZEN,
})

_SYSTEM_KINDS = frozenset({
    AlarmKind.CONNECTIVITY_DEGRADED,
    AlarmKind.AUTOMATIC_RECOVERY,
})


class AlarmEvent(BaseModel):
    """Discrete alarm handed to the notifier collaborator."""

    kind: AlarmKind
    severity: Severity = Severity.NORMAL
    reading: Reading | None = None
    title: str
    message: str = ""
    is_critical: bool = False
    timestamp: float = Field(default_factory=time.time)


class SnoozeEntry(BaseModel):
    """Mute window for one alarm kind."""

    alarm_kind: AlarmKind
    muted_until: float
    times_snoozed: int = 0


# ── Engine state ────────────────────────────────────────────────


class SchedulerMode(StrEnum):
    """Polling cadence mode."""

    NORMAL = "NORMAL"
    CRITICAL = "CRITICAL"


class LifecycleEvent(StrEnum):
    """Host lifecycle signals fed into the engine as explicit inputs."""

    ENTERED_FOREGROUND = "ENTERED_FOREGROUND"
    BECAME_ACTIVE = "BECAME_ACTIVE"
    WILL_RESIGN_ACTIVE = "WILL_RESIGN_ACTIVE"
    ENTERED_BACKGROUND = "ENTERED_BACKGROUND"
    WILL_TERMINATE = "WILL_TERMINATE"


class MonitoringState(BaseModel):
    """Mutable engine state, owned by the polling scheduler."""

    last_reading: Reading | None = None
    last_successful_fetch_at: float = 0.0
    consecutive_failures: int = Field(default=0, ge=0)
    is_critical: bool = False
    poll_interval_secs: int = 300
    is_stale: bool = False
    pump_last_contact: float | None = None
    pump_connected: bool = True


class MonitoringSnapshot(BaseModel):
    """Read-only view published to subscribers after each state change."""

    value: int | None = None
    trend_arrow: str = "→"
    delta: str = ""
    reading_timestamp: float | None = None
    minutes_since_update: int | None = None
    is_stale: bool = False
    mode: SchedulerMode = SchedulerMode.NORMAL
    poll_interval_secs: int = 300
    consecutive_failures: int = 0
    pump_connected: bool = True
    timestamp: float = 0.0
