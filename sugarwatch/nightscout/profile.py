"""Therapy profile parsing and scheduled basal lookup."""

from __future__ import annotations

import datetime
from typing import Any

from pydantic import BaseModel, Field

from sugarwatch.core.types import BasalScheduleEntry
from sugarwatch.nightscout.device_status import DeviceStatus


class ProfileStore(BaseModel):
    """One named profile inside ``store``."""

    dia: float | None = None
    basal: list[BasalScheduleEntry] = Field(default_factory=list)
    timezone: str | None = None
    units: str | None = None


class Profile(BaseModel):
    """First record of ``profile.json``."""

    default_profile: str | None = None
    store: dict[str, ProfileStore] = Field(default_factory=dict)

    def basal_schedule(self) -> list[BasalScheduleEntry]:
        """Basal schedule of the default profile, empty if absent."""
        if self.default_profile is None:
            return []
        store = self.store.get(self.default_profile)
        return list(store.basal) if store is not None else []


def parse_profile(raw: dict[str, Any]) -> Profile:
    """Build a Profile from a raw record, skipping malformed schedule rows."""
    stores: dict[str, ProfileStore] = {}
    raw_store = raw.get("store")
    if isinstance(raw_store, dict):
        for name, body in raw_store.items():
            if not isinstance(body, dict):
                continue
            entries: list[BasalScheduleEntry] = []
            for row in body.get("basal") or []:
                if not isinstance(row, dict):
                    continue
                try:
                    entries.append(BasalScheduleEntry(
                        time=str(row["time"]),
                        value=float(row["value"]),
                        time_as_seconds=row.get("timeAsSeconds"),
                    ))
                except (KeyError, TypeError, ValueError):
                    continue
            stores[str(name)] = ProfileStore(
                dia=body.get("dia") if isinstance(body.get("dia"), (int, float)) else None,
                basal=entries,
                timezone=body.get("timezone") if isinstance(body.get("timezone"), str) else None,
                units=body.get("units") if isinstance(body.get("units"), str) else None,
            )
    default = raw.get("defaultProfile")
    return Profile(
        default_profile=str(default) if default else None,
        store=stores,
    )


def _entry_seconds(entry: BasalScheduleEntry) -> int | None:
    parts = entry.time.split(":")
    if len(parts) != 2:
        return None
    try:
        hours, minutes = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    return hours * 3600 + minutes * 60


def scheduled_basal(
    schedule: list[BasalScheduleEntry],
    seconds_of_day: int,
) -> float:
    """Rate of the latest schedule entry whose time-of-day is <= now.

    The schedule is assumed sorted by time. Falls back to the first entry's
    rate when nothing matches, and 0.0 for an empty schedule.
    """
    if not schedule:
        return 0.0
    current = schedule[0].value
    for entry in schedule:
        entry_secs = _entry_seconds(entry)
        if entry_secs is None:
            continue
        if seconds_of_day >= entry_secs:
            current = entry.value
        else:
            break
    return current


def seconds_of_day(now: datetime.datetime) -> int:
    return now.hour * 3600 + now.minute * 60


def current_basal(
    status: DeviceStatus,
    profile: Profile | None,
    now: datetime.datetime,
) -> float | None:
    """Active temp basal if one is enacted, else the scheduled rate."""
    temp = status.temp_basal_rate()
    if temp is not None:
        return temp
    if profile is None:
        return None
    schedule = profile.basal_schedule()
    if not schedule:
        return None
    return scheduled_basal(schedule, seconds_of_day(now))
