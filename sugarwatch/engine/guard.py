"""Timeout race with an idempotent completion guard.

A fetch races a fixed-delay fallback. Whichever side finishes first checks
and sets the guard and delivers the outcome; the loser sees the guard set
and does nothing. A network response arriving after the fallback fired is
logged and discarded, never delivered a second time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from sugarwatch.nightscout.exceptions import FetchTimeoutError

logger = structlog.stdlib.get_logger()

T = TypeVar("T")


class CompletionGuard:
    """One-shot flag. ``try_complete`` returns True exactly once.

    All callers run on the event loop thread and the check-and-set has no
    await in between, so it is atomic with respect to other callbacks.
    """

    def __init__(self) -> None:
        self._completed = False

    @property
    def completed(self) -> bool:
        return self._completed

    def try_complete(self) -> bool:
        if self._completed:
            return False
        self._completed = True
        return True


async def guarded_call(
    operation: Awaitable[T],
    timeout_secs: float,
    label: str = "fetch",
) -> T:
    """Await ``operation`` but give up after ``timeout_secs``.

    On timeout raises FetchTimeoutError immediately while the operation is
    left to finish on its own; its late result is discarded.

    Raises:
        FetchTimeoutError: if the fallback fired first.
        Exception: whatever the operation raised, if it finished first.
    """
    loop = asyncio.get_running_loop()
    guard = CompletionGuard()
    outcome: asyncio.Future[T] = loop.create_future()
    task = asyncio.ensure_future(operation)

    def _on_timeout() -> None:
        if not guard.try_complete():
            return
        logger.warning("fetch_timeout", label=label, timeout_secs=timeout_secs)
        outcome.set_exception(
            FetchTimeoutError(f"{label} did not complete within {timeout_secs}s"),
        )

    timer = loop.call_later(timeout_secs, _on_timeout)

    def _on_done(done: asyncio.Future[T]) -> None:
        if done.cancelled():
            if guard.try_complete():
                timer.cancel()
                outcome.cancel()
            return
        exc = done.exception()
        if not guard.try_complete():
            logger.warning(
                "late_result_discarded",
                label=label,
                error=repr(exc) if exc is not None else None,
            )
            return
        timer.cancel()
        if exc is not None:
            outcome.set_exception(exc)
        else:
            outcome.set_result(done.result())

    task.add_done_callback(_on_done)

    try:
        return await outcome
    except asyncio.CancelledError:
        if guard.try_complete():
            timer.cancel()
            task.cancel()
        raise
