"""Monitoring engine — polling state machine, alarms, snoozing and watchdog."""

from sugarwatch.engine.engine import MonitoringEngine
from sugarwatch.engine.exceptions import EngineError, EngineStoppedError
from sugarwatch.engine.guard import CompletionGuard, guarded_call
from sugarwatch.engine.history import ReadingHistory
from sugarwatch.engine.persistence import (
    JsonFileStateStore,
    MemoryStateStore,
    StateStore,
)
from sugarwatch.engine.scheduler import AlarmCallback, PollingScheduler, StateCallback
from sugarwatch.engine.snooze import AlarmSnoozeRegistry
from sugarwatch.engine.thresholds import alarm_kind_for, classify, is_urgent
from sugarwatch.engine.watchdog import HealthWatchdog

__all__ = [
    "AlarmCallback",
    "AlarmSnoozeRegistry",
    "CompletionGuard",
    "EngineError",
    "EngineStoppedError",
    "HealthWatchdog",
    "JsonFileStateStore",
    "MemoryStateStore",
    "MonitoringEngine",
    "PollingScheduler",
    "ReadingHistory",
    "StateCallback",
    "StateStore",
    "alarm_kind_for",
    "classify",
    "guarded_call",
    "is_urgent",
]
