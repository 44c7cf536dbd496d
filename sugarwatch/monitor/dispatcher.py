"""Central alert dispatcher — routes alarms to channels with throttling."""

from __future__ import annotations

import time

import structlog

from sugarwatch.core.types import AlarmEvent, MonitoringSnapshot
from sugarwatch.monitor.channels import NotificationChannel
from sugarwatch.monitor.formatters import format_alarm_event, format_snapshot
from sugarwatch.monitor.types import AlertLevel, AlertMessage

# Dedicated structured logger for decision records.
decision_logger = structlog.get_logger("decision_log")

logger = structlog.get_logger(__name__)


class AlertDispatcher:
    """Routes engine output to notification channels.

    - Every message is logged via *decision_logger*.
    - DEBUG messages (state snapshots) are log-only.
    - INFO/WARNING messages are throttled per alarm kind.
    - CRITICAL messages bypass the throttle and are dispatched immediately.
    """

    def __init__(
        self,
        channels: list[NotificationChannel] | None = None,
        throttle_secs: float = 0.0,
    ) -> None:
        self._channels: list[NotificationChannel] = channels or []
        self._throttle_secs = throttle_secs
        # Last dispatch time per source_event_type.
        self._last_sent: dict[str, float] = {}

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    # ── Callback entry points ───────────────────────────────────

    async def on_alarm(self, event: AlarmEvent) -> None:
        await self._handle(format_alarm_event(event))

    async def on_state_change(self, snapshot: MonitoringSnapshot) -> None:
        await self._handle(format_snapshot(snapshot))

    async def send(self, msg: AlertMessage) -> None:
        """Dispatch an AlertMessage directly (bypasses throttle)."""
        self._log_decision(msg)
        await self._dispatch_to_channels(msg)

    # ── Internal routing ────────────────────────────────────────

    async def _handle(self, msg: AlertMessage) -> None:
        self._log_decision(msg)

        if msg.level == AlertLevel.DEBUG:
            return

        if msg.level == AlertLevel.CRITICAL:
            self._last_sent[msg.source_event_type] = time.monotonic()
            await self._dispatch_to_channels(msg)
            return

        now = time.monotonic()
        last = self._last_sent.get(msg.source_event_type, -float("inf"))
        if now - last < self._throttle_secs:
            logger.debug("alert_throttled", source_event_type=msg.source_event_type)
            return

        self._last_sent[msg.source_event_type] = now
        await self._dispatch_to_channels(msg)

    def _log_decision(self, msg: AlertMessage) -> None:
        decision_logger.info(
            "decision",
            level=msg.level.name,
            title=msg.title,
            body=msg.body,
            source_event_type=msg.source_event_type,
            category=msg.category,
            fields=msg.fields,
        )

    async def _dispatch_to_channels(self, msg: AlertMessage) -> None:
        for ch in self._channels:
            try:
                await ch.send(msg)
            except Exception:
                logger.exception(
                    "channel_dispatch_error",
                    channel=type(ch).__name__,
                    title=msg.title,
                )

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        for ch in self._channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=type(ch).__name__)
