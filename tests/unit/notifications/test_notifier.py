"""Unit tests for WebhookNotifier."""

from unittest.mock import MagicMock

import httpx
import pytest

from autopilot.config import ChannelType, NotificationChannel
from autopilot.notifications import NotificationEvent, WebhookNotifier


@pytest.fixture
def mock_client() -> MagicMock:
    """Create a mock HTTP client."""
    client = MagicMock()
    client.post.return_value = MagicMock(status_code=200)
    return client


@pytest.fixture
def notifier(mock_client: MagicMock) -> WebhookNotifier:
    notifier = WebhookNotifier()
    notifier._client = mock_client
    return notifier


@pytest.fixture
def channels() -> tuple[NotificationChannel, ...]:
    return (
        NotificationChannel(ChannelType.SLACK, "https://hooks.slack.com/a"),
        NotificationChannel(ChannelType.DISCORD, "https://discord.com/api/webhooks/b"),
        NotificationChannel(ChannelType.WEBHOOK, "https://example.com/c"),
    )


@pytest.mark.unit
class TestNotify:
    """Tests for notify."""

    def test_posts_to_every_channel(
        self, notifier, mock_client, make_tenant, ticket, channels
    ) -> None:
        tenant = make_tenant(notifications=channels)

        delivered = notifier.notify(NotificationEvent.agent_started(ticket, tenant, "acme-1"))

        assert delivered == 3
        urls = [c.args[0] for c in mock_client.post.call_args_list]
        assert urls == [ch.webhook_url for ch in channels]
        slack_payload = mock_client.post.call_args_list[0].kwargs["json"]
        assert "attachments" in slack_payload
        discord_payload = mock_client.post.call_args_list[1].kwargs["json"]
        assert "embeds" in discord_payload

    def test_no_channels(self, notifier, mock_client, make_tenant, ticket) -> None:
        tenant = make_tenant(notifications=())

        assert notifier.notify(NotificationEvent.agent_started(ticket, tenant, "b")) == 0
        mock_client.post.assert_not_called()

    def test_failures_are_isolated(
        self, notifier, mock_client, make_tenant, ticket, channels, caplog
    ) -> None:
        """One broken channel does not stop the others and nothing is raised."""
        tenant = make_tenant(notifications=channels)
        mock_client.post.side_effect = [
            httpx.ConnectError("refused"),
            MagicMock(status_code=500, text="oops"),
            MagicMock(status_code=204),
        ]

        with caplog.at_level("WARNING"):
            delivered = notifier.notify(NotificationEvent.agent_started(ticket, tenant, "b"))

        assert delivered == 1
        assert "2 of 3 notifications failed for ACME-1" in caplog.text
        assert "discord webhook failed: 500 oops" in caplog.text
