"""MonitoringEngine — explicit composition of client, scheduler and watchdog."""

from __future__ import annotations

import time
from collections.abc import Callable
from types import TracebackType

import structlog

from sugarwatch.core.config import Settings
from sugarwatch.core.types import (
    AlarmKind,
    LifecycleEvent,
    MonitoringSnapshot,
    SnoozeEntry,
)
from sugarwatch.engine.persistence import JsonFileStateStore, StateStore
from sugarwatch.engine.scheduler import AlarmCallback, PollingScheduler, StateCallback
from sugarwatch.engine.watchdog import HealthWatchdog
from sugarwatch.nightscout.client import NightscoutClient

logger = structlog.stdlib.get_logger()


class MonitoringEngine:
    """One instance per process, handed to whatever needs it.

    Any collaborator may be injected; missing ones are built from
    ``settings``. A client the engine built itself is also closed by it.

    Usage::

        engine = MonitoringEngine(settings)
        engine.on_alarm(dispatcher.on_alarm)
        async with engine:
            await stop_event.wait()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: NightscoutClient | None = None,
        store: StateStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or Settings()
        self._owns_client = client is None
        self._client = client or NightscoutClient(self._settings.nightscout)
        self._store = store or JsonFileStateStore(self._settings.persistence.path)
        self._scheduler = PollingScheduler(
            self._client,
            polling=self._settings.polling,
            thresholds=self._settings.thresholds,
            alarms=self._settings.alarms,
            store=self._store,
            fetch_timeout_secs=self._settings.nightscout.timeout_secs,
            clock=clock,
        )
        self._watchdog = HealthWatchdog(
            self._scheduler, self._settings.watchdog, clock=clock,
        )
        self._scheduler.attach_watchdog(self._watchdog)
        self._started = False

    @property
    def scheduler(self) -> PollingScheduler:
        return self._scheduler

    @property
    def watchdog(self) -> HealthWatchdog:
        return self._watchdog

    @property
    def client(self) -> NightscoutClient:
        return self._client

    @property
    def running(self) -> bool:
        return self._started

    def on_alarm(self, callback: AlarmCallback) -> None:
        self._scheduler.on_alarm(callback)

    def on_state_change(self, callback: StateCallback) -> None:
        self._scheduler.on_state_change(callback)

    def snapshot(self) -> MonitoringSnapshot:
        return self._scheduler.snapshot()

    def snooze(self, kind: AlarmKind, minutes: int) -> SnoozeEntry:
        return self._scheduler.snooze(kind, minutes)

    async def start(self) -> None:
        """Arm the watchdog, then start polling (which fetches immediately)."""
        if self._started:
            return
        self._started = True
        if self._owns_client and not self._client.connected:
            await self._client.connect()
        await self._watchdog.start()
        await self._scheduler.start()
        logger.info("engine_started", base_url=self._settings.nightscout.base_url)

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        await self._watchdog.stop()
        await self._scheduler.stop()
        if self._owns_client:
            await self._client.close()
        logger.info("engine_stopped")

    async def handle_lifecycle(self, event: LifecycleEvent) -> None:
        """Forward a lifecycle signal; WILL_TERMINATE also stops the engine."""
        await self._scheduler.handle_lifecycle(event)
        if event == LifecycleEvent.WILL_TERMINATE:
            await self.stop()

    async def __aenter__(self) -> MonitoringEngine:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
