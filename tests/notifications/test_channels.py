"""Tests for notification channels."""

import json

import httpx
import pytest


class TestWebhookChannel:
    """Tests for WebhookChannel."""

    @pytest.mark.asyncio
    async def test_posts_payload(self):
        from conductor.notifications import WebhookChannel, build_test_notification

        received = []

        def handler(request):
            received.append((request.headers["X-Token"], json.loads(request.content)))
            return httpx.Response(204)

        channel = WebhookChannel(
            "https://hooks.example.test/ci",
            headers={"X-Token": "abc"},
            transport=httpx.MockTransport(handler),
        )

        await channel.send(build_test_notification())
        await channel.close()

        token, payload = received[0]
        assert token == "abc"
        assert payload["type"] == "test"

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        from conductor.notifications import NotificationError, WebhookChannel, build_test_notification

        channel = WebhookChannel(
            "https://hooks.example.test/ci",
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text="oops")),
        )

        with pytest.raises(NotificationError, match="webhook: HTTP 500"):
            await channel.send(build_test_notification())

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        from conductor.notifications import NotificationError, WebhookChannel, build_test_notification

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        channel = WebhookChannel("https://hooks.example.test/ci", transport=httpx.MockTransport(handler))

        with pytest.raises(NotificationError, match="request failed"):
            await channel.send(build_test_notification())


class TestChannelsFromConfig:
    """Tests for channels_from_config()."""

    def test_webhook_enabled(self):
        from conductor.config import NotificationConfig, WebhookChannelConfig
        from conductor.notifications import WebhookChannel, channels_from_config

        config = NotificationConfig(webhook=WebhookChannelConfig(enabled=True, url="https://hooks.example.test"))

        (channel,) = channels_from_config(config)
        assert isinstance(channel, WebhookChannel)

    def test_webhook_without_url_is_skipped(self):
        from conductor.config import NotificationConfig, WebhookChannelConfig
        from conductor.notifications import channels_from_config

        assert channels_from_config(NotificationConfig(webhook=WebhookChannelConfig(enabled=True))) == []

    def test_application_channels_not_built(self):
        from conductor.config import EmailChannelConfig, NotificationConfig
        from conductor.notifications import channels_from_config

        config = NotificationConfig(email=EmailChannelConfig(enabled=True, recipients=["qa@example.test"]))

        assert channels_from_config(config) == []
