"""Last-known-good reading persistence (simple last-writer-wins key/value)."""

from __future__ import annotations

import abc
import json
import os
import tempfile
from pathlib import Path
from typing import Any

import structlog

from sugarwatch.core.types import Reading, TrendDirection

logger = structlog.stdlib.get_logger()

# Keys kept stable so an older state file still loads.
_KEY_VALUE = "last_valid_glucose"
_KEY_TIMESTAMP = "last_valid_update"
_KEY_TREND = "direction"
_KEY_DELTA = "delta"


def reading_to_record(reading: Reading) -> dict[str, Any]:
    return {
        _KEY_VALUE: reading.value,
        _KEY_TIMESTAMP: reading.timestamp,
        _KEY_TREND: reading.trend.value,
        _KEY_DELTA: reading.delta,
    }


def reading_from_record(record: dict[str, Any]) -> Reading | None:
    """Rebuild a Reading; None if the record lacks a usable value/timestamp."""
    value = record.get(_KEY_VALUE)
    timestamp = record.get(_KEY_TIMESTAMP)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        return None
    delta = record.get(_KEY_DELTA)
    return Reading(
        value=value,
        timestamp=float(timestamp),
        trend=TrendDirection.parse(record.get(_KEY_TREND)),
        delta=float(delta) if isinstance(delta, (int, float)) and not isinstance(delta, bool) else None,
    )


class StateStore(abc.ABC):
    """Durable home of the last valid reading."""

    @abc.abstractmethod
    def load(self) -> Reading | None:
        """Return the persisted reading, or None if nothing usable is stored."""

    @abc.abstractmethod
    def save(self, reading: Reading) -> None:
        """Persist ``reading``, replacing whatever was stored."""


class MemoryStateStore(StateStore):
    """In-process store, for tests and ephemeral runs."""

    def __init__(self, initial: Reading | None = None) -> None:
        self._record: dict[str, Any] | None = (
            reading_to_record(initial) if initial is not None else None
        )
        self.save_count = 0

    def load(self) -> Reading | None:
        if self._record is None:
            return None
        return reading_from_record(self._record)

    def save(self, reading: Reading) -> None:
        self._record = reading_to_record(reading)
        self.save_count += 1


class JsonFileStateStore(StateStore):
    """Stores the reading as a small JSON object, replaced atomically."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Reading | None:
        if not self._path.exists():
            return None
        try:
            with open(self._path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError):
            logger.exception("state_load_error", path=str(self._path))
            return None
        if not isinstance(raw, dict):
            return None
        reading = reading_from_record(raw)
        if reading is not None:
            logger.info(
                "state_loaded",
                value=reading.value,
                timestamp=reading.timestamp,
            )
        return reading

    def save(self, reading: Reading) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", dir=self._path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(reading_to_record(reading), f)
            os.replace(tmp_name, self._path)
        except OSError:
            logger.exception("state_save_error", path=str(self._path))
            Path(tmp_name).unlink(missing_ok=True)
            raise
