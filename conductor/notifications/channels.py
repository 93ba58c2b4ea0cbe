"""Notification channels.

A channel delivers a Notification over one transport. Email and chat
transports are supplied by the embedding application; the webhook channel
posts the structured payload with httpx.
"""

from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog

from ..config import NotificationConfig
from .models import Notification, NotificationError

logger = structlog.get_logger()


class NotificationChannel(ABC):
    """Delivers notifications over one transport."""

    name: str = "channel"

    @abstractmethod
    async def send(self, notification: Notification) -> None:
        """Deliver a notification.

        Raises:
            NotificationError: If delivery failed
        """

    async def close(self) -> None:
        return None


class WebhookChannel(NotificationChannel):
    """POSTs the notification payload as JSON to a URL."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
        timeout_s: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self.timeout_s = timeout_s
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.log = logger.bind(component="webhook_channel")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_s,
                headers=self.headers,
                transport=self._transport,
            )
        return self._client

    async def send(self, notification: Notification) -> None:
        client = await self._get_client()
        try:
            response = await client.post(self.url, json=notification.to_payload())
        except httpx.HTTPError as e:
            raise NotificationError(self.name, f"request failed: {e}") from e

        if response.status_code >= 400:
            raise NotificationError(self.name, f"HTTP {response.status_code}: {response.text[:200]}")
        self.log.info("Webhook notification sent", type=notification.type.value, url=self.url)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def channels_from_config(config: NotificationConfig) -> list[NotificationChannel]:
    """Build the channels this package can deliver on its own."""
    channels: list[NotificationChannel] = []

    if config.webhook.enabled:
        if config.webhook.url:
            channels.append(WebhookChannel(config.webhook.url, headers=config.webhook.headers))
        else:
            logger.warning("Webhook notifications enabled without a URL")

    for name, channel_config in (("email", config.email), ("slack", config.slack)):
        if channel_config.enabled:
            logger.info("Channel must be supplied by the application", channel=name)

    return channels
