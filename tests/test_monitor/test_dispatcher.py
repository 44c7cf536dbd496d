"""Tests for AlertDispatcher — routing, throttling, CRITICAL bypass, decision logging."""

from __future__ import annotations

from unittest.mock import patch

from sugarwatch.core.types import (
    AlarmEvent,
    AlarmKind,
    MonitoringSnapshot,
    Reading,
    Severity,
)
from sugarwatch.monitor.channels import NotificationChannel
from sugarwatch.monitor.dispatcher import AlertDispatcher
from sugarwatch.monitor.types import AlertLevel, AlertMessage


# ── Helpers ─────────────────────────────────────────────────────


class FakeChannel(NotificationChannel):
    """In-memory channel for testing."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[AlertMessage] = []
        self._fail = fail
        self.closed = False

    async def send(self, msg: AlertMessage) -> bool:
        if self._fail:
            raise ConnectionError("fake error")
        self.sent.append(msg)
        return True

    async def close(self) -> None:
        self.closed = True


def _alarm(kind: AlarmKind = AlarmKind.HIGH, is_critical: bool = False) -> AlarmEvent:
    return AlarmEvent(
        kind=kind,
        severity=Severity.HIGH,
        reading=Reading(value=200, timestamp=1000.0),
        title="High glucose",
        message="200 mg/dL",
        is_critical=is_critical,
        timestamp=1000.0,
    )


# ── Routing ─────────────────────────────────────────────────────


class TestRouting:
    async def test_alarm_routed(self) -> None:
        ch = FakeChannel()
        disp = AlertDispatcher(channels=[ch], throttle_secs=0)
        await disp.on_alarm(_alarm())
        assert len(ch.sent) == 1
        assert ch.sent[0].title == "High glucose"
        assert ch.sent[0].level == AlertLevel.WARNING

    async def test_snapshot_log_only(self) -> None:
        ch = FakeChannel()
        disp = AlertDispatcher(channels=[ch], throttle_secs=0)
        await disp.on_state_change(MonitoringSnapshot(value=120))
        assert ch.sent == []

    async def test_multiple_channels(self) -> None:
        ch1, ch2 = FakeChannel(), FakeChannel()
        disp = AlertDispatcher(channels=[ch1, ch2], throttle_secs=0)
        await disp.on_alarm(_alarm())
        assert len(ch1.sent) == 1
        assert len(ch2.sent) == 1

    async def test_no_channels(self) -> None:
        disp = AlertDispatcher()
        await disp.on_alarm(_alarm())
        assert disp.channels == []


# ── Throttling ──────────────────────────────────────────────────


class TestThrottling:
    async def test_same_kind_throttled(self) -> None:
        ch = FakeChannel()
        disp = AlertDispatcher(channels=[ch], throttle_secs=60)
        await disp.on_alarm(_alarm())
        await disp.on_alarm(_alarm())
        assert len(ch.sent) == 1

    async def test_different_kinds_independent(self) -> None:
        ch = FakeChannel()
        disp = AlertDispatcher(channels=[ch], throttle_secs=60)
        await disp.on_alarm(_alarm(AlarmKind.HIGH))
        await disp.on_alarm(_alarm(AlarmKind.MISSED_READINGS))
        assert len(ch.sent) == 2

    async def test_throttle_expires(self) -> None:
        ch = FakeChannel()
        disp = AlertDispatcher(channels=[ch], throttle_secs=60)
        with patch("sugarwatch.monitor.dispatcher.time.monotonic", return_value=100.0):
            await disp.on_alarm(_alarm())
        with patch("sugarwatch.monitor.dispatcher.time.monotonic", return_value=161.0):
            await disp.on_alarm(_alarm())
        assert len(ch.sent) == 2

    async def test_critical_bypasses_throttle(self) -> None:
        ch = FakeChannel()
        disp = AlertDispatcher(channels=[ch], throttle_secs=3600)
        await disp.on_alarm(_alarm(AlarmKind.CRITICAL_HIGH, is_critical=True))
        await disp.on_alarm(_alarm(AlarmKind.CRITICAL_HIGH, is_critical=True))
        assert len(ch.sent) == 2
        assert all(m.level == AlertLevel.CRITICAL for m in ch.sent)

    async def test_direct_send_bypasses_throttle(self) -> None:
        ch = FakeChannel()
        disp = AlertDispatcher(channels=[ch], throttle_secs=3600)
        msg = AlertMessage(level=AlertLevel.INFO, title="T", source_event_type="x")
        await disp.send(msg)
        await disp.send(msg)
        assert len(ch.sent) == 2


# ── Error isolation / logging / lifecycle ───────────────────────


class TestErrorsAndLifecycle:
    async def test_failing_channel_does_not_block_others(self) -> None:
        bad, good = FakeChannel(fail=True), FakeChannel()
        disp = AlertDispatcher(channels=[bad, good], throttle_secs=0)
        await disp.on_alarm(_alarm())
        assert len(good.sent) == 1

    async def test_decision_logged(self) -> None:
        disp = AlertDispatcher(throttle_secs=0)
        with patch("sugarwatch.monitor.dispatcher.decision_logger") as mock_log:
            await disp.on_state_change(MonitoringSnapshot(value=99))
        mock_log.info.assert_called_once()
        kwargs = mock_log.info.call_args.kwargs
        assert kwargs["level"] == "DEBUG"
        assert kwargs["source_event_type"] == "snapshot"

    async def test_close_closes_channels(self) -> None:
        ch1, ch2 = FakeChannel(), FakeChannel()
        disp = AlertDispatcher(channels=[ch1, ch2])
        await disp.close()
        assert ch1.closed
        assert ch2.closed
