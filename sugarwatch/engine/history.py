"""ReadingHistory — bounded ring of recent readings for frozen-sensor detection."""

from __future__ import annotations

from collections import deque

from sugarwatch.core.types import Reading


class ReadingHistory:
    """Keeps the last ``capacity`` readings, oldest evicted first.

    Only sustained identical values over real wall-clock time count as
    frozen: the same value fetched twice seconds apart does not.
    Rebuilt empty on every process start.
    """

    def __init__(self, capacity: int = 5) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._entries: deque[Reading] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[Reading]:
        """Oldest first."""
        return list(self._entries)

    def record(self, reading: Reading) -> None:
        self._entries.append(reading)

    def clear(self) -> None:
        self._entries.clear()

    def _tail(self, min_samples: int) -> list[Reading] | None:
        if min_samples < 1 or len(self._entries) < min_samples:
            return None
        return list(self._entries)[-min_samples:]

    def frozen_span_secs(self, min_samples: int = 3) -> float | None:
        """Span of the last ``min_samples`` entries if they share one value."""
        tail = self._tail(min_samples)
        if tail is None:
            return None
        first = tail[0].value
        if any(r.value != first for r in tail):
            return None
        return tail[-1].timestamp - tail[0].timestamp

    def is_frozen(self, window_mins: float = 15, min_samples: int = 3) -> bool:
        """True iff the last ``min_samples`` values are identical and span >= window."""
        span = self.frozen_span_secs(min_samples)
        if span is None:
            return False
        return span >= window_mins * 60
