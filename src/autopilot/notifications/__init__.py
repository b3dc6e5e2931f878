"""Notifications - Slack, Discord and generic webhook delivery of lifecycle events."""

from autopilot.notifications.exceptions import NotificationError
from autopilot.notifications.formatter import (
    format_discord,
    format_duration,
    format_event,
    format_slack,
    format_webhook,
)
from autopilot.notifications.models import EventType, NotificationEvent
from autopilot.notifications.notifier import WebhookNotifier

__all__ = [
    "EventType",
    "NotificationError",
    "NotificationEvent",
    "WebhookNotifier",
    "format_discord",
    "format_duration",
    "format_event",
    "format_slack",
    "format_webhook",
]
