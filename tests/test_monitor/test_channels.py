"""Tests for WebhookChannel — payload, HTTP mocking, error handling, client lifecycle."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
from pydantic import SecretStr

from sugarwatch.core.config import WebhookConfig
from sugarwatch.monitor.channels import WebhookChannel
from sugarwatch.monitor.types import AlertLevel, AlertMessage

_URL = "https://hooks.example.com/alarm"


# ── Helpers ─────────────────────────────────────────────────────


def _msg(**kw: object) -> AlertMessage:
    defaults: dict[str, object] = {
        "level": AlertLevel.CRITICAL,
        "title": "Urgent low glucose",
        "body": "50 mg/dL ↓",
        "fields": {"value": "50"},
        "source_event_type": "critical_low",
        "category": "ALARM_CRITICAL_LOW",
        "timestamp": 1000.0,
    }
    defaults.update(kw)
    return AlertMessage(**defaults)  # type: ignore[arg-type]


def _channel() -> WebhookChannel:
    return WebhookChannel(WebhookConfig(enabled=True, url=SecretStr(_URL)))


def _response(status: int, text: str = "") -> httpx.Response:
    return httpx.Response(status, text=text, request=httpx.Request("POST", _URL))


# ── Payload ─────────────────────────────────────────────────────


class TestPayload:
    def test_payload_shape(self) -> None:
        body = WebhookChannel.payload(_msg())
        assert body == {
            "level": "CRITICAL",
            "title": "Urgent low glucose",
            "body": "50 mg/dL ↓",
            "category": "ALARM_CRITICAL_LOW",
            "kind": "critical_low",
            "fields": {"value": "50"},
            "timestamp": 1000.0,
        }


# ── Send ────────────────────────────────────────────────────────


class TestSend:
    async def test_send_success(self) -> None:
        ch = _channel()
        client = ch._get_client()
        with patch.object(client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = _response(204)
            assert await ch.send(_msg()) is True
        args, kwargs = mock_post.call_args
        assert args[0] == _URL
        assert kwargs["json"]["kind"] == "critical_low"
        await ch.close()

    async def test_send_rejected_status(self) -> None:
        ch = _channel()
        client = ch._get_client()
        with patch.object(client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.return_value = _response(500, "boom")
            assert await ch.send(_msg()) is False
        await ch.close()

    async def test_send_transport_error(self) -> None:
        ch = _channel()
        client = ch._get_client()
        with patch.object(client, "post", new_callable=AsyncMock) as mock_post:
            mock_post.side_effect = httpx.ConnectError("refused")
            assert await ch.send(_msg()) is False
        await ch.close()


# ── Client lifecycle ────────────────────────────────────────────


class TestClientLifecycle:
    async def test_client_reused(self) -> None:
        ch = _channel()
        assert ch._get_client() is ch._get_client()
        await ch.close()

    async def test_close_and_recreate(self) -> None:
        ch = _channel()
        first = ch._get_client()
        await ch.close()
        assert first.is_closed
        assert ch._get_client() is not first
        await ch.close()

    async def test_injected_client_used(self) -> None:
        http = httpx.AsyncClient()
        ch = WebhookChannel(WebhookConfig(enabled=True, url=SecretStr(_URL)), http=http)
        assert ch._get_client() is http
        await ch.close()
        assert http.is_closed

    async def test_close_without_client(self) -> None:
        await _channel().close()
