"""Alarm delivery and decision logging subsystem."""

from sugarwatch.monitor.channels import NotificationChannel, WebhookChannel
from sugarwatch.monitor.dispatcher import AlertDispatcher
from sugarwatch.monitor.factory import create_alert_dispatcher
from sugarwatch.monitor.formatters import format_alarm_event, format_snapshot
from sugarwatch.monitor.types import AlertLevel, AlertMessage

__all__ = [
    "AlertDispatcher",
    "AlertLevel",
    "AlertMessage",
    "NotificationChannel",
    "WebhookChannel",
    "create_alert_dispatcher",
    "format_alarm_event",
    "format_snapshot",
]
