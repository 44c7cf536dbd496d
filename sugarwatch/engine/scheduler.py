"""PollingScheduler — the Normal/Critical polling state machine.

Owns MonitoringState, ReadingHistory and the AlarmSnoozeRegistry. All
mutation happens on the event loop; network fetches are awaited through
``guarded_call`` so a slow server never wedges the loop.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import structlog

from sugarwatch.core.config import (
    AlarmsConfig,
    PollingConfig,
    ThresholdsConfig,
)
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
)
from sugarwatch.engine.exceptions import EngineStoppedError
from sugarwatch.engine.guard import guarded_call
from sugarwatch.engine.history import ReadingHistory
from sugarwatch.engine.persistence import MemoryStateStore, StateStore
from sugarwatch.engine.snooze import AlarmSnoozeRegistry
from sugarwatch.engine.thresholds import alarm_kind_for, classify, is_urgent
from sugarwatch.nightscout.device_status import DeviceStatus
from sugarwatch.nightscout.exceptions import EmptyResultError, FetchError

if TYPE_CHECKING:
    from sugarwatch.engine.watchdog import HealthWatchdog
    from sugarwatch.nightscout.client import NightscoutClient

logger = structlog.stdlib.get_logger()

Clock = Callable[[], float]
AlarmCallback = Callable[[AlarmEvent], Awaitable[None] | None]
StateCallback = Callable[[MonitoringSnapshot], Awaitable[None] | None]

_SEVERITY_TITLES: dict[Severity, str] = {
    Severity.CRITICAL_LOW: "Urgent low glucose",
    Severity.LOW: "Low glucose",
    Severity.HIGH: "High glucose",
    Severity.CRITICAL_HIGH: "Urgent high glucose",
}


class PollingScheduler:
    """Polls the latest reading and drives alarms from it.

    Two cadences: NORMAL uses ``normal_interval_secs``; CRITICAL uses
    ``urgent_interval_secs`` when the reading itself is critical, else
    ``critical_interval_secs`` (staleness or unresponsive loop). A change of
    interval cancels the pending wait and schedules a fresh one.

    Usage::

        scheduler = PollingScheduler(client, store=JsonFileStateStore(path))
        scheduler.on_alarm(notify)
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        client: NightscoutClient,
        polling: PollingConfig | None = None,
        thresholds: ThresholdsConfig | None = None,
        alarms: AlarmsConfig | None = None,
        store: StateStore | None = None,
        fetch_timeout_secs: float = 30.0,
        clock: Clock = time.time,
    ) -> None:
        self._client = client
        self._polling = polling or PollingConfig()
        self._thresholds = thresholds or ThresholdsConfig()
        self._alarms = alarms or AlarmsConfig()
        self._store = store or MemoryStateStore()
        self._fetch_timeout_secs = fetch_timeout_secs
        self._clock = clock

        self._history = ReadingHistory(self._alarms.history_capacity)
        self._snooze = AlarmSnoozeRegistry(self._alarms.snooze_options, clock)
        self._state = MonitoringState(
            last_reading=self._store.load(),
            poll_interval_secs=self._polling.normal_interval_secs,
        )
        self._device_status = DeviceStatus()

        self._alarm_callbacks: list[AlarmCallback] = []
        self._state_callbacks: list[StateCallback] = []
        self._watchdog: HealthWatchdog | None = None

        self._running = False
        self._started_at: float = 0.0
        self._launched_at: float | None = None
        self._task: asyncio.Task[None] | None = None
        self._wake = asyncio.Event()
        self._recheck_task: asyncio.Task[None] | None = None
        self._restart_task: asyncio.Task[None] | None = None
        self._restart_pending = False
        self._restart_count = 0
        self._fetch_in_flight = False
        self._tick_count = 0

    # ── Properties ───────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def state(self) -> MonitoringState:
        """Read-only copy of the current monitoring state."""
        return self._state.model_copy()

    @property
    def mode(self) -> SchedulerMode:
        return SchedulerMode.CRITICAL if self._state.is_critical else SchedulerMode.NORMAL

    @property
    def history(self) -> ReadingHistory:
        return self._history

    @property
    def snooze_registry(self) -> AlarmSnoozeRegistry:
        return self._snooze

    @property
    def device_status(self) -> DeviceStatus:
        return self._device_status

    @property
    def timer_alive(self) -> bool:
        """Whether the poll timer task exists and has not finished."""
        return self._task is not None and not self._task.done()

    @property
    def restart_pending(self) -> bool:
        return self._restart_pending

    @property
    def restart_count(self) -> int:
        return self._restart_count

    @property
    def restart_task(self) -> asyncio.Task[None] | None:
        return self._restart_task

    @property
    def tick_count(self) -> int:
        return self._tick_count

    def attach_watchdog(self, watchdog: HealthWatchdog) -> None:
        """Watchdog stopped and re-armed by the emergency restart."""
        self._watchdog = watchdog

    # ── Subscriptions ────────────────────────────────────────────

    def on_alarm(self, callback: AlarmCallback) -> None:
        """Register a callback for raised alarms."""
        self._alarm_callbacks.append(callback)

    def on_state_change(self, callback: StateCallback) -> None:
        """Register a callback receiving a snapshot after each cycle."""
        self._state_callbacks.append(callback)

    async def _emit_alarm(self, event: AlarmEvent) -> None:
        for cb in self._alarm_callbacks:
            try:
                result = cb(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("alarm_callback_error", alarm_kind=event.kind.value)

    async def _publish_state(self) -> None:
        snapshot = self.snapshot()
        for cb in self._state_callbacks:
            try:
                result = cb(snapshot)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("state_callback_error")

    # ── Views ────────────────────────────────────────────────────

    def seconds_since_update(self, now: float | None = None) -> float | None:
        """Age of the last reading, None before any reading is known."""
        reading = self._state.last_reading
        if reading is None:
            return None
        return reading.age_secs(self._clock() if now is None else now)

    def seconds_since_success(self, now: float | None = None) -> float:
        """Wall-clock time since the last successful fetch (or since start)."""
        now = self._clock() if now is None else now
        return now - max(self._state.last_successful_fetch_at, self._started_at)

    def snapshot(self) -> MonitoringSnapshot:
        now = self._clock()
        reading = self._state.last_reading
        age = self.seconds_since_update(now)
        return MonitoringSnapshot(
            value=reading.value if reading else None,
            trend_arrow=reading.trend.arrow if reading else "→",
            delta=reading.format_delta() if reading else "",
            reading_timestamp=reading.timestamp if reading else None,
            minutes_since_update=int(age // 60) if age is not None else None,
            is_stale=self._state.is_stale,
            mode=self.mode,
            poll_interval_secs=self._state.poll_interval_secs,
            consecutive_failures=self._state.consecutive_failures,
            pump_connected=self._state.pump_connected,
            timestamp=now,
        )

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Fetch once, then arm the recurring poll timer."""
        if self._running:
            return
        self._running = True
        self._started_at = self._clock()
        if self._launched_at is None:
            self._launched_at = self._started_at
        logger.info(
            "scheduler_started",
            normal_interval_secs=self._polling.normal_interval_secs,
            critical_interval_secs=self._polling.critical_interval_secs,
            seeded_value=(
                self._state.last_reading.value if self._state.last_reading else None
            ),
        )
        await self.tick()
        if self._running and not self._restart_pending and not self.timer_alive:
            self._arm_poll_timer(self._state.poll_interval_secs)

    async def stop(self) -> None:
        """Cancel every pending timer and persist the last reading."""
        self._running = False
        await self._cancel_poll_timer()
        await _cancel_task(self._recheck_task)
        self._recheck_task = None
        if self._restart_task is not asyncio.current_task():
            await _cancel_task(self._restart_task)
            self._restart_task = None
            self._restart_pending = False
        self.persist()
        logger.info(
            "scheduler_stopped",
            ticks=self._tick_count,
            restarts=self._restart_count,
        )

    async def handle_lifecycle(self, event: LifecycleEvent) -> None:
        """Apply a host lifecycle signal."""
        logger.info("lifecycle_event", lifecycle_event=event.value)
        if event in (LifecycleEvent.ENTERED_FOREGROUND, LifecycleEvent.BECAME_ACTIVE):
            if not self._running:
                return
            if self._watchdog is not None and not self._watchdog.running:
                await self._watchdog.start()
            revived = self.revive_timer(fetch_now=False)
            await self.tick()
            if revived:
                logger.info("poll_timer_revived", source="lifecycle")
        elif event in (LifecycleEvent.ENTERED_BACKGROUND, LifecycleEvent.WILL_TERMINATE):
            self.persist()

    def persist(self) -> None:
        """Write the last valid reading to the state store."""
        reading = self._state.last_reading
        if reading is None:
            return
        try:
            self._store.save(reading)
        except OSError:
            logger.warning("state_persist_skipped", value=reading.value)

    # ── Poll timer ───────────────────────────────────────────────

    def _arm_poll_timer(self, first_delay: float) -> None:
        self._task = asyncio.create_task(self._poll_loop(first_delay))

    async def _cancel_poll_timer(self) -> None:
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            await _cancel_task(task)

    def revive_timer(self, fetch_now: bool = True) -> bool:
        """Re-arm the poll timer if it died. Returns True when revived."""
        if not self._running or self._restart_pending or self.timer_alive:
            return False
        self._arm_poll_timer(0 if fetch_now else self._state.poll_interval_secs)
        logger.warning("poll_timer_dead", fetch_now=fetch_now)
        return True

    async def _poll_loop(self, first_delay: float) -> None:
        """Wait, tick, repeat. The interval is re-read after every tick.

        A wake-up during the wait (``_reschedule``) abandons it and starts a
        fresh wait at the current interval. A tick in progress is never
        interrupted.
        """
        delay = first_delay
        while self._running:
            self._wake.clear()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=delay)
            except TimeoutError:
                pass
            except asyncio.CancelledError:
                break
            else:
                delay = self._state.poll_interval_secs
                logger.debug("poll_wait_restarted", interval_secs=delay)
                continue
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("poll_tick_error")
            delay = self._state.poll_interval_secs

    def _reschedule(self) -> None:
        """Restart the pending wait at the current interval.

        Only the wait is abandoned. If the poll task is mid-fetch the fetch
        completes and the loop then waits the new interval.
        """
        if not self._running or self._restart_pending:
            return
        if not self.timer_alive:
            self._arm_poll_timer(self._state.poll_interval_secs)
            return
        self._wake.set()

    # ── Poll cycle ───────────────────────────────────────────────

    async def tick(self) -> bool:
        """Run one poll cycle.

        Returns False when coalesced into a fetch that is already in flight.
        """
        if self._fetch_in_flight:
            logger.debug("poll_tick_coalesced")
            return False
        self._fetch_in_flight = True
        self._tick_count += 1
        try:
            try:
                reading = await guarded_call(
                    self._client.fetch_latest(),
                    self._fetch_timeout_secs,
                    label="fetch_latest",
                )
                if reading.value <= 0:
                    raise EmptyResultError(f"unusable glucose value {reading.value}")
            except FetchError as exc:
                success = False
                restart_due = await self._handle_failure(exc)
            else:
                success = True
                restart_due = False
                self._handle_success(reading)
            if self._polling.track_device_status:
                await self._refresh_device_status()
        finally:
            self._fetch_in_flight = False

        await self.check_conditions(reading_checks=success)
        await self._publish_state()
        if restart_due and self._running and not self._restart_pending:
            self.emergency_restart(
                f"{self._state.consecutive_failures} consecutive fetch failures",
            )
        return True

    def _handle_success(self, reading: Reading) -> None:
        now = self._clock()
        self._state.consecutive_failures = 0
        self._state.last_successful_fetch_at = now
        self._state.last_reading = reading
        self._history.record(reading)
        self.persist()
        logger.info(
            "reading_received",
            value=reading.value,
            trend=reading.trend.value,
            delta=reading.delta,
            age_secs=round(reading.age_secs(now), 1),
        )

    async def _handle_failure(self, exc: FetchError) -> bool:
        """Count the failure; True when the restart threshold is reached."""
        self._state.consecutive_failures += 1
        failures = self._state.consecutive_failures
        last = self._state.last_reading
        logger.warning(
            "fetch_failed",
            error_kind=exc.kind.value,
            error=str(exc),
            consecutive_failures=failures,
            last_valid_value=last.value if last else None,
        )

        if failures == self._polling.degraded_after_failures:
            await self._raise_alarm(
                AlarmKind.CONNECTIVITY_DEGRADED,
                title="Server problem",
                message=(
                    f"{failures} consecutive fetches failed ({exc.kind.value});"
                    " showing the last valid reading"
                ),
            )

        return failures >= self._polling.restart_after_failures

    async def _refresh_device_status(self) -> None:
        try:
            status = await guarded_call(
                self._client.fetch_device_status(),
                self._fetch_timeout_secs,
                label="fetch_device_status",
            )
        except FetchError as exc:
            logger.warning(
                "device_status_failed",
                error_kind=exc.kind.value,
                error=str(exc),
            )
            return
        self._device_status = status
        contact = status.last_contact()
        if contact is not None:
            self._state.pump_last_contact = contact

    # ── Condition checks ─────────────────────────────────────────

    async def check_conditions(self, reading_checks: bool = True) -> None:
        """Re-derive staleness, loop connectivity and mode; raise alarms.

        ``reading_checks`` adds the severity and frozen-sensor checks, which
        only make sense against a fresh reading.
        """
        now = self._clock()
        reading = self._state.last_reading
        age = self.seconds_since_update(now)
        if age is None and self._launched_at is not None:
            # Nothing received yet: count from launch.
            age = now - self._launched_at

        was_stale = self._state.is_stale
        self._state.is_stale = age is not None and age >= self._polling.stale_after_mins * 60
        if self._state.is_stale and not was_stale:
            logger.warning("reading_stale", age_secs=round(age or 0.0, 1))

        if age is not None and age >= self._polling.missed_readings_after_mins * 60:
            await self._raise_alarm(
                AlarmKind.MISSED_READINGS,
                title="Missed readings",
                message=f"No new reading for {int(age // 60)} minutes",
                reading=reading,
            )

        contact = self._state.pump_last_contact
        if contact is not None:
            silent = now - contact
            connected = silent < self._polling.loop_unresponsive_after_mins * 60
            if connected != self._state.pump_connected:
                logger.warning(
                    "pump_connectivity_changed",
                    connected=connected,
                    silent_secs=round(silent, 1),
                )
            self._state.pump_connected = connected
            if not connected:
                await self._raise_alarm(
                    AlarmKind.LOOP_NOT_RESPONDING,
                    title="Loop not responding",
                    message=f"No pump/loop contact for {int(silent // 60)} minutes",
                )

        if reading_checks and reading is not None and not self._state.is_stale:
            await self._check_reading(reading)

        self._update_mode(reading, age)

    async def _check_reading(self, reading: Reading) -> None:
        severity = classify(reading.value, self._thresholds)
        kind = alarm_kind_for(severity)
        if kind is not None:
            await self._raise_alarm(
                kind,
                severity=severity,
                title=_SEVERITY_TITLES[severity],
                message=f"{reading.value} mg/dL {reading.trend.arrow} {reading.format_delta()}".strip(),
                reading=reading,
                is_critical=is_urgent(severity),
            )

        if self._history.is_frozen(
            self._alarms.frozen_window_mins, self._alarms.frozen_min_samples,
        ):
            await self._raise_alarm(
                AlarmKind.READING_FROZEN,
                title="Sensor reading frozen",
                message=(
                    f"{reading.value} mg/dL unchanged for"
                    f" {self._alarms.frozen_window_mins}+ minutes"
                ),
                reading=reading,
            )

    def _update_mode(self, reading: Reading | None, age: float | None) -> None:
        urgent_value = reading is not None and is_urgent(
            classify(reading.value, self._thresholds),
        )
        long_stale = age is not None and age >= self._polling.critical_stale_after_mins * 60
        critical = urgent_value or long_stale or not self._state.pump_connected

        if urgent_value:
            interval = self._polling.urgent_interval_secs
        elif critical:
            interval = self._polling.critical_interval_secs
        else:
            interval = self._polling.normal_interval_secs

        if critical != self._state.is_critical:
            logger.warning(
                "scheduler_mode_changed",
                mode=(SchedulerMode.CRITICAL if critical else SchedulerMode.NORMAL).value,
                urgent_value=urgent_value,
                long_stale=long_stale,
                pump_connected=self._state.pump_connected,
            )
        self._state.is_critical = critical

        if interval != self._state.poll_interval_secs:
            logger.info(
                "poll_interval_changed",
                old=self._state.poll_interval_secs,
                new=interval,
            )
            self._state.poll_interval_secs = interval
            self._reschedule()

    # ── Alarms & snoozing ────────────────────────────────────────

    async def _raise_alarm(
        self,
        kind: AlarmKind,
        title: str,
        message: str = "",
        severity: Severity = Severity.NORMAL,
        reading: Reading | None = None,
        is_critical: bool = False,
    ) -> bool:
        if self._snooze.is_suppressed(kind):
            logger.debug("alarm_suppressed", alarm_kind=kind.value)
            return False
        event = AlarmEvent(
            kind=kind,
            severity=severity,
            reading=reading,
            title=title,
            message=message,
            is_critical=is_critical,
            timestamp=self._clock(),
        )
        if kind.is_auto:
            self._snooze.snooze(kind, self._alarms.auto_snooze_mins)
            self._schedule_recheck()
        logger.warning(
            "alarm_raised",
            alarm_kind=kind.value,
            severity=severity.name,
            is_critical=is_critical,
            value=reading.value if reading else None,
        )
        await self._emit_alarm(event)
        return True

    def snooze(self, kind: AlarmKind, minutes: int) -> SnoozeEntry:
        """User snooze: ``minutes`` must be one of the kind's allowed choices."""
        entry = self._snooze.user_snooze(kind, minutes)
        self._schedule_recheck()
        return entry

    def _schedule_recheck(self) -> None:
        """Re-run the checks when the earliest snooze lifts."""
        if not self._running:
            return
        expiry = self._snooze.next_expiry()
        if self._recheck_task is not None and not self._recheck_task.done():
            if self._recheck_task is asyncio.current_task():
                return
            self._recheck_task.cancel()
        self._recheck_task = None
        if expiry is None:
            return
        delay = max(0.0, expiry - self._clock())
        self._recheck_task = asyncio.create_task(self._recheck_after(delay))

    async def _recheck_after(self, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return
        logger.info("snooze_expiry_recheck")
        try:
            await self.check_conditions(reading_checks=True)
            await self._publish_state()
        except Exception:
            logger.exception("snooze_recheck_error")
        self._recheck_task = None
        self._schedule_recheck()

    # ── Emergency restart ────────────────────────────────────────

    def emergency_restart(self, reason: str) -> bool:
        """Schedule a controlled re-initialisation.

        Runs at most once at a time; returns False if one is already pending.

        Raises:
            EngineStoppedError: if the scheduler is not running.
        """
        if not self._running:
            raise EngineStoppedError("scheduler is not running")
        if self._restart_pending:
            logger.debug("emergency_restart_already_pending", reason=reason)
            return False
        self._restart_pending = True
        self._restart_task = asyncio.create_task(self._run_restart(reason))
        return True

    async def _run_restart(self, reason: str) -> None:
        self._restart_count += 1
        logger.error(
            "emergency_restart",
            reason=reason,
            consecutive_failures=self._state.consecutive_failures,
            restart_count=self._restart_count,
        )
        try:
            await self._cancel_poll_timer()
            await _cancel_task(self._recheck_task)
            self._recheck_task = None
            if self._watchdog is not None:
                await self._watchdog.stop()
            self._state.consecutive_failures = 0

            await self._raise_alarm(
                AlarmKind.AUTOMATIC_RECOVERY,
                title="Automatic recovery",
                message=f"Monitoring restarted automatically: {reason}",
            )

            await asyncio.sleep(self._polling.restart_delay_secs)
            if not self._running:
                return

            self._started_at = self._clock()
            if self._watchdog is not None:
                await self._watchdog.start()
            self._restart_pending = False
            await self.tick()
            if self._running and not self.timer_alive:
                self._arm_poll_timer(self._state.poll_interval_secs)
            self._schedule_recheck()
            logger.info("emergency_restart_complete", restart_count=self._restart_count)
        finally:
            self._restart_pending = False


async def _cancel_task(task: asyncio.Task[None] | None) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
