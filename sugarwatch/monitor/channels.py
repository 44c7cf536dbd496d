"""Notification channels — outbound alarm delivery."""

from __future__ import annotations

import abc

import httpx
import structlog

from sugarwatch.core.config import WebhookConfig
from sugarwatch.monitor.types import AlertMessage

logger = structlog.get_logger(__name__)


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    @abc.abstractmethod
    async def send(self, msg: AlertMessage) -> bool:
        """Send an alert message. Returns True on success."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP clients, etc.)."""


class WebhookChannel(NotificationChannel):
    """POSTs each alert as JSON to a configured URL."""

    def __init__(
        self,
        config: WebhookConfig,
        http: httpx.AsyncClient | None = None,
        timeout_secs: float = 10.0,
    ) -> None:
        self._url = config.url.get_secret_value()
        self._timeout_secs = timeout_secs
        self._http = http

    def _get_client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self._timeout_secs)
        return self._http

    @staticmethod
    def payload(msg: AlertMessage) -> dict[str, object]:
        return {
            "level": msg.level.name,
            "title": msg.title,
            "body": msg.body,
            "category": msg.category,
            "kind": msg.source_event_type,
            "fields": msg.fields,
            "timestamp": msg.timestamp,
        }

    async def send(self, msg: AlertMessage) -> bool:
        try:
            resp = await self._get_client().post(self._url, json=self.payload(msg))
        except httpx.HTTPError:
            logger.exception("webhook_send_error", title=msg.title)
            return False
        if resp.status_code in (200, 201, 202, 204):
            return True
        logger.warning(
            "webhook_send_failed",
            status=resp.status_code,
            body=resp.text[:200],
        )
        return False

    async def close(self) -> None:
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
        self._http = None
