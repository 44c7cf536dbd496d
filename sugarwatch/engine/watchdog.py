"""HealthWatchdog — independent liveness check for the polling scheduler."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import structlog

from sugarwatch.core.config import WatchdogConfig
from sugarwatch.engine.scheduler import PollingScheduler

logger = structlog.stdlib.get_logger()

Clock = Callable[[], float]


class HealthWatchdog:
    """Makes sure monitoring cannot silently stop while the process lives.

    Runs on its own fixed interval, untouched by the scheduler's cadence
    changes. Each check revives a dead poll timer, triggers an emergency
    restart after ``max_silence_secs`` without a successful fetch, and
    otherwise re-runs the staleness checks (missed-readings alarm).
    """

    def __init__(
        self,
        scheduler: PollingScheduler,
        config: WatchdogConfig | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._scheduler = scheduler
        self._config = config or WatchdogConfig()
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._check_count = 0
        self._last_check_at: float = 0.0

    # ── Properties ───────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def check_count(self) -> int:
        return self._check_count

    @property
    def last_check_at(self) -> float:
        return self._last_check_at

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "watchdog_started",
            interval_secs=self._config.interval_secs,
            max_silence_secs=self._config.max_silence_secs,
        )

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("watchdog_stopped", checks=self._check_count)

    async def _loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._config.interval_secs)
            except asyncio.CancelledError:
                break
            try:
                await self.check()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("watchdog_check_error")

    # ── Check ────────────────────────────────────────────────────

    async def check(self) -> None:
        """One watchdog pass."""
        self._check_count += 1
        self._last_check_at = self._clock()
        scheduler = self._scheduler
        if not scheduler.running or scheduler.restart_pending:
            return

        if scheduler.revive_timer():
            logger.warning("watchdog_revived_poll_timer")

        silence = scheduler.seconds_since_success(self._last_check_at)
        if silence > self._config.max_silence_secs:
            logger.error(
                "watchdog_silence_detected",
                silence_secs=round(silence, 1),
                max_silence_secs=self._config.max_silence_secs,
                consecutive_failures=scheduler.state.consecutive_failures,
            )
            scheduler.emergency_restart(
                f"no successful fetch for {int(silence // 60)} minutes",
            )
            return

        await scheduler.check_conditions(reading_checks=False)
