"""Tests for NotificationService fan-out."""

from unittest.mock import AsyncMock

import pytest

from conductor.notifications import NotificationChannel


class StubChannel(NotificationChannel):
    def __init__(self, name: str, error: Exception | None = None):
        self.name = name
        self.error = error
        self.sent = []
        self.closed = False

    async def send(self, notification):
        if self.error:
            raise self.error
        self.sent.append(notification)

    async def close(self):
        self.closed = True


class TestNotificationService:
    """Tests for dispatch and the send helpers."""

    @pytest.mark.asyncio
    async def test_failing_channel_does_not_block_others(self):
        from conductor.notifications import NotificationService

        email = StubChannel("email", error=RuntimeError("smtp down"))
        slack = StubChannel("slack")
        service = NotificationService(channels=[email, slack])

        delivered = await service.send_start("pipeline-1", "staging", "manual")

        assert delivered == {"email": False, "slack": True}
        assert slack.sent[0].pipeline_id == "pipeline-1"

    @pytest.mark.asyncio
    async def test_no_channels(self):
        from conductor.notifications import NotificationService

        assert await NotificationService().test_notifications() == {}

    @pytest.mark.asyncio
    async def test_send_failure(self):
        from conductor.notifications import NotificationService, NotificationType

        slack = StubChannel("slack")
        service = NotificationService(channels=[slack])

        await service.send_failure("pipeline-2", "staging", ValueError("bad config"), 1_000)

        (notification,) = slack.sent
        assert notification.type == NotificationType.FAILURE
        assert notification.urgent is True

    @pytest.mark.asyncio
    async def test_custom_channels_survive_config_update(self):
        from conductor.config import NotificationConfig, WebhookChannelConfig
        from conductor.notifications import NotificationService

        slack = StubChannel("slack")
        service = NotificationService(channels=[slack])

        service.update_config(
            NotificationConfig(webhook=WebhookChannelConfig(enabled=True, url="https://hooks.example.test"))
        )

        assert service.channels == [slack]

    @pytest.mark.asyncio
    async def test_config_channels_rebuilt(self):
        from conductor.config import NotificationConfig, WebhookChannelConfig
        from conductor.notifications import NotificationService

        service = NotificationService()
        assert service.channels == []

        service.update_config(
            NotificationConfig(webhook=WebhookChannelConfig(enabled=True, url="https://hooks.example.test"))
        )

        assert [c.name for c in service.channels] == ["webhook"]
        await service.close()

    @pytest.mark.asyncio
    async def test_close(self):
        from conductor.notifications import NotificationService

        channel = StubChannel("slack")
        channel.close = AsyncMock()

        await NotificationService(channels=[channel]).close()

        channel.close.assert_awaited_once()
