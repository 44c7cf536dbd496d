"""Convenience factory for wiring alarm delivery."""

from __future__ import annotations

from sugarwatch.core.config import AlertsConfig
from sugarwatch.monitor.channels import NotificationChannel, WebhookChannel
from sugarwatch.monitor.dispatcher import AlertDispatcher


def create_alert_dispatcher(config: AlertsConfig) -> AlertDispatcher:
    """Build a dispatcher with every channel enabled in ``config``."""
    channels: list[NotificationChannel] = []

    if config.webhook.enabled:
        channels.append(WebhookChannel(config.webhook))

    return AlertDispatcher(
        channels=channels,
        throttle_secs=config.throttle_secs,
    )
