"""Permissive view over ``devicestatus.json`` pump / loop telemetry.

Uploaders (Loop, AAPS/OpenAPS, xDrip) report the same concepts under
different keys, and any nested object may be missing. Each extraction
helper tries its documented key paths in a fixed priority order and returns
the first usable value, or None.
"""

from __future__ import annotations

import datetime
from typing import Any

# Key paths per concept, highest priority first.
_RESERVOIR_PATHS: tuple[tuple[str, ...], ...] = (
    ("reservoir",),
    ("pump", "reservoir"),
)
_BATTERY_PATHS: tuple[tuple[str, ...], ...] = (
    ("battery", "percent"),
    ("pump", "battery", "percent"),
    ("pump", "battery"),
    ("uploader", "battery"),
)
_PHONE_BATTERY_PATHS: tuple[tuple[str, ...], ...] = (
    ("uploader", "battery"),
    ("uploaderBattery",),
)
_IOB_PATHS: tuple[tuple[str, ...], ...] = (
    ("loop", "iob", "iob"),
    ("openaps", "iob", "iob"),
    ("pump", "iob", "iob"),
)
_COB_PATHS: tuple[tuple[str, ...], ...] = (
    ("loop", "cob", "cob"),
    ("openaps", "suggested", "COB"),
)
_TEMP_BASAL_PATHS: tuple[tuple[str, ...], ...] = (
    ("loop", "enacted", "rate"),
    ("openaps", "enacted", "rate"),
)
_LAST_CONTACT_PATHS: tuple[tuple[str, ...], ...] = (
    ("pump", "clock"),
    ("loop", "timestamp"),
    ("openaps", "iob", "timestamp"),
    ("created_at",),
)


def _dig(data: Any, path: tuple[str, ...]) -> Any:
    node = data
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def parse_iso_timestamp(raw: Any) -> float | None:
    """Parse an ISO8601 string (with or without fractional seconds) to epoch secs."""
    if not isinstance(raw, str) or not raw:
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.UTC)
    return parsed.timestamp()


class DeviceStatus:
    """Wraps one raw devicestatus record. Every field is optional."""

    def __init__(self, raw: dict[str, Any] | None = None) -> None:
        self._raw: dict[str, Any] = raw if isinstance(raw, dict) else {}

    @property
    def raw(self) -> dict[str, Any]:
        return dict(self._raw)

    @property
    def empty(self) -> bool:
        return not self._raw

    def _first_float(self, paths: tuple[tuple[str, ...], ...]) -> float | None:
        for path in paths:
            value = _as_float(_dig(self._raw, path))
            if value is not None:
                return value
        return None

    def reservoir(self) -> float | None:
        """Insulin units left in the pump reservoir."""
        return self._first_float(_RESERVOIR_PATHS)

    def battery_percent(self) -> int | None:
        """Pump battery, falling back to the uploader phone battery."""
        value = self._first_float(_BATTERY_PATHS)
        return int(value) if value is not None else None

    def phone_battery(self) -> int | None:
        value = self._first_float(_PHONE_BATTERY_PATHS)
        return int(value) if value is not None else None

    def iob(self) -> float | None:
        """Insulin on board (U)."""
        return self._first_float(_IOB_PATHS)

    def cob(self) -> float | None:
        """Carbs on board (g)."""
        return self._first_float(_COB_PATHS)

    def temp_basal_rate(self) -> float | None:
        """Currently enacted temp basal (U/h); zero or missing means none."""
        for path in _TEMP_BASAL_PATHS:
            value = _as_float(_dig(self._raw, path))
            if value is not None and value > 0:
                return value
        return None

    def pump_suspended(self) -> bool | None:
        value = _dig(self._raw, ("pump", "suspended"))
        return value if isinstance(value, bool) else None

    def pump_model(self) -> str | None:
        value = _dig(self._raw, ("pump", "model"))
        return str(value) if value else None

    def last_contact(self) -> float | None:
        """Most recent time the pump / loop reported in, as epoch seconds."""
        for path in _LAST_CONTACT_PATHS:
            ts = parse_iso_timestamp(_dig(self._raw, path))
            if ts is not None:
                return ts
        return None

    def summary(self) -> dict[str, object]:
        """Flat dict of every extracted concept, for logging."""
        return {
            "reservoir": self.reservoir(),
            "battery_percent": self.battery_percent(),
            "phone_battery": self.phone_battery(),
            "iob": self.iob(),
            "cob": self.cob(),
            "temp_basal_rate": self.temp_basal_rate(),
            "suspended": self.pump_suspended(),
            "last_contact": self.last_contact(),
        }
