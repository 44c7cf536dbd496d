"""AlarmSnoozeRegistry — per-kind mute windows with lazy expiry."""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from sugarwatch.core.types import AlarmKind, SnoozeEntry

logger = structlog.stdlib.get_logger()

Clock = Callable[[], float]


class AlarmSnoozeRegistry:
    """Tracks which alarm kinds are muted and until when.

    Expiry is lazy: ``is_suppressed`` compares the clock with
    ``muted_until`` and drops the entry once it has elapsed, so no timer is
    needed for correctness. Kinds never share state.
    """

    def __init__(
        self,
        snooze_options: dict[str, list[int]] | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._entries: dict[AlarmKind, SnoozeEntry] = {}
        self._options: dict[str, list[int]] = dict(snooze_options or {})
        self._clock = clock

    # ── Queries ──────────────────────────────────────────────────

    def is_suppressed(self, kind: AlarmKind) -> bool:
        entry = self._entries.get(kind)
        if entry is None:
            return False
        if self._clock() < entry.muted_until:
            return True
        del self._entries[kind]
        logger.info("alarm_snooze_expired", alarm_kind=kind.value)
        return False

    def entry(self, kind: AlarmKind) -> SnoozeEntry | None:
        """Copy of the live entry for ``kind``, if any (expired entries are dropped)."""
        if not self.is_suppressed(kind):
            return None
        return self._entries[kind].model_copy()

    @property
    def entries(self) -> dict[AlarmKind, SnoozeEntry]:
        return {k: e.model_copy() for k, e in self._entries.items()}

    def purge_expired(self) -> list[AlarmKind]:
        """Drop every entry whose window has elapsed; returns the kinds dropped."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now >= e.muted_until]
        for kind in expired:
            del self._entries[kind]
            logger.info("alarm_snooze_expired", alarm_kind=kind.value)
        return expired

    def next_expiry(self) -> float | None:
        """Earliest ``muted_until`` among live entries (always in the future)."""
        self.purge_expired()
        if not self._entries:
            return None
        return min(e.muted_until for e in self._entries.values())

    def allowed_snooze_minutes(self, kind: AlarmKind) -> list[int]:
        """Durations a user may pick for ``kind`` (empty = unrestricted)."""
        return list(self._options.get(kind.value, []))

    # ── Mutation ─────────────────────────────────────────────────

    def snooze(self, kind: AlarmKind, minutes: float) -> SnoozeEntry:
        """Mute ``kind`` for ``minutes`` from now, counting repeat snoozes.

        Overwrites any existing window; ``times_snoozed`` keeps counting
        while an entry exists.
        """
        if minutes <= 0:
            raise ValueError("snooze duration must be positive")
        previous = self._entries.get(kind)
        entry = SnoozeEntry(
            alarm_kind=kind,
            muted_until=self._clock() + minutes * 60,
            times_snoozed=(previous.times_snoozed if previous else 0) + 1,
        )
        self._entries[kind] = entry
        logger.info(
            "alarm_snoozed",
            alarm_kind=kind.value,
            minutes=minutes,
            muted_until=entry.muted_until,
            times_snoozed=entry.times_snoozed,
        )
        return entry.model_copy()

    def user_snooze(self, kind: AlarmKind, minutes: int) -> SnoozeEntry:
        """Snooze on behalf of the user, restricted to the configured choices."""
        allowed = self.allowed_snooze_minutes(kind)
        if allowed and minutes not in allowed:
            raise ValueError(
                f"{minutes} min is not a valid snooze for {kind.value}"
                f" (allowed: {allowed})"
            )
        return self.snooze(kind, minutes)

    def clear(self, kind: AlarmKind) -> None:
        if self._entries.pop(kind, None) is not None:
            logger.info("alarm_snooze_cleared", alarm_kind=kind.value)

    def clear_all(self) -> None:
        self._entries.clear()
