"""Summaries over treatment events (boluses, carbs)."""

from __future__ import annotations

from sugarwatch.core.types import TreatmentEvent


def boluses(events: list[TreatmentEvent]) -> list[TreatmentEvent]:
    return [e for e in events if e.insulin is not None and e.insulin > 0]


def last_bolus(events: list[TreatmentEvent]) -> TreatmentEvent | None:
    """Most recent treatment carrying a positive insulin amount."""
    candidates = boluses(events)
    if not candidates:
        return None
    return max(candidates, key=lambda e: e.created_at)


def total_insulin(events: list[TreatmentEvent]) -> float:
    return sum(e.insulin or 0.0 for e in boluses(events))


def carbs_sum(events: list[TreatmentEvent], now: float, hours: float = 3.0) -> float:
    """Grams of carbs entered in the last ``hours`` hours."""
    cutoff = now - hours * 3600
    return sum(
        e.carbs
        for e in events
        if e.carbs is not None and e.carbs > 0 and e.created_at >= cutoff
    )
