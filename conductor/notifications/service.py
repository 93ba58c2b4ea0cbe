"""Best-effort fan-out of pipeline notifications."""

import asyncio
from typing import TYPE_CHECKING, Optional

import structlog

from ..config import NotificationConfig
from .channels import NotificationChannel, channels_from_config
from .models import (
    Notification,
    build_completion_notification,
    build_failure_notification,
    build_start_notification,
    build_test_notification,
)

if TYPE_CHECKING:
    from ..orchestrator.models import PipelineResult

logger = structlog.get_logger()


class NotificationService:
    """Sends pipeline notifications to every channel concurrently.

    A failing channel is logged and never affects the other channels or
    the caller.

    Usage:
        service = NotificationService(config, channels=[slack_channel])
        await service.send_start("pipeline-1", "staging", "schedule")
    """

    def __init__(
        self,
        config: Optional[NotificationConfig] = None,
        channels: Optional[list[NotificationChannel]] = None,
    ):
        self.config = config or NotificationConfig()
        self._custom_channels = channels is not None
        self.channels = channels if channels is not None else channels_from_config(self.config)
        self.log = logger.bind(component="notifications")

    async def send_start(self, pipeline_id: str, environment: str, triggered_by: str) -> dict[str, bool]:
        return await self.dispatch(build_start_notification(pipeline_id, environment, triggered_by))

    async def send_completion(self, result: "PipelineResult") -> dict[str, bool]:
        return await self.dispatch(build_completion_notification(result))

    async def send_failure(
        self,
        pipeline_id: str,
        environment: str,
        error: BaseException,
        duration_ms: float,
    ) -> dict[str, bool]:
        return await self.dispatch(build_failure_notification(pipeline_id, environment, error, duration_ms))

    async def test_notifications(self) -> dict[str, bool]:
        """Send a test message through each channel and report which worked."""
        return await self.dispatch(build_test_notification())

    async def dispatch(self, notification: Notification) -> dict[str, bool]:
        """Deliver to all channels.

        Returns:
            Delivery outcome per channel name
        """
        if not self.channels:
            self.log.debug("No notification channels", type=notification.type.value)
            return {}

        outcomes = await asyncio.gather(
            *(channel.send(notification) for channel in self.channels),
            return_exceptions=True,
        )

        delivered: dict[str, bool] = {}
        for channel, outcome in zip(self.channels, outcomes):
            if isinstance(outcome, Exception):
                self.log.warning(
                    "Notification failed",
                    channel=channel.name,
                    type=notification.type.value,
                    error=str(outcome),
                )
                delivered[channel.name] = False
            else:
                delivered[channel.name] = True
        return delivered

    def update_config(self, config: NotificationConfig) -> None:
        """Swap the config. Config-driven channels are rebuilt."""
        self.config = config
        if not self._custom_channels:
            self.channels = channels_from_config(config)

    async def close(self) -> None:
        for channel in self.channels:
            await channel.close()
