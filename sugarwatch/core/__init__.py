"""Core module — config, types, logging."""

from sugarwatch.core.config import Settings, get_settings, load_settings, reset_settings
from sugarwatch.core.logging import setup_logging
from sugarwatch.core.types import (
    AlarmEvent,
    AlarmKind,
    LifecycleEvent,
    MonitoringSnapshot,
    MonitoringState,
    Reading,
    SchedulerMode,
    Severity,
    SnoozeEntry,
    TreatmentEvent,
    TrendDirection,
)

__all__ = [
    "AlarmEvent",
    "AlarmKind",
    "LifecycleEvent",
    "MonitoringSnapshot",
    "MonitoringState",
    "Reading",
    "SchedulerMode",
    "Settings",
    "Severity",
    "SnoozeEntry",
    "TreatmentEvent",
    "TrendDirection",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
