"""WebhookNotifier - Best-effort delivery of lifecycle events to tenant channels."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx

from autopilot.config import ChannelType
from autopilot.notifications.exceptions import NotificationError
from autopilot.notifications.formatter import format_discord, format_slack, format_webhook

if TYPE_CHECKING:
    from autopilot.config import NotificationChannel
    from autopilot.notifications.models import NotificationEvent

logger = logging.getLogger("autopilot.notifications")

_FORMATTERS: dict[ChannelType, Callable[[NotificationEvent], dict[str, Any]]] = {
    ChannelType.SLACK: format_slack,
    ChannelType.DISCORD: format_discord,
    ChannelType.WEBHOOK: format_webhook,
}


class WebhookNotifier:
    """Posts events to each of the tenant's configured channels.

    Failures are logged and never raised: a broken webhook must not affect
    the agent lifecycle.
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client for webhooks."""
        if self._client is None:
            self._client = httpx.Client(
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def notify(self, event: NotificationEvent) -> int:
        """Send an event to every channel of its tenant.

        Returns:
            Number of channels that accepted the message.
        """
        channels = event.tenant.notifications
        if not channels:
            return 0

        delivered = 0
        for channel in channels:
            try:
                self._send(channel, event)
            except NotificationError as e:
                logger.error(
                    "Failed to send %s notification for %s: %s",
                    channel.type.value,
                    event.ticket.identifier,
                    e,
                )
                continue
            delivered += 1
            logger.debug(
                "Sent %s notification (%s) for %s",
                channel.type.value,
                event.type.value,
                event.ticket.identifier,
            )

        if delivered < len(channels):
            logger.warning(
                "%d of %d notifications failed for %s",
                len(channels) - delivered,
                len(channels),
                event.ticket.identifier,
            )
        return delivered

    def _send(self, channel: NotificationChannel, event: NotificationEvent) -> None:
        """Post one payload.

        Raises:
            NotificationError: If the request fails or is rejected.
        """
        payload = _FORMATTERS[channel.type](event)
        try:
            response = self.client.post(channel.webhook_url, json=payload)
        except httpx.HTTPError as e:
            raise NotificationError(f"{channel.type.value} webhook request failed: {e}") from e
        if response.status_code >= 400:
            raise NotificationError(
                f"{channel.type.value} webhook failed: {response.status_code} {response.text}"
            )
